"""Tests for FetchCoordinator: shared, cancellable in-flight requests."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, wait

import pytest

from mmdb_images.application.services.fetch_coordinator import FetchCoordinator


class GatedLoader:
    """Counts invocations and blocks each one until ``gate`` is set."""

    def __init__(self, result: object = "image", error: Exception | None = None):
        self.gate = threading.Event()
        self.started = threading.Event()
        self.calls = 0
        self.tokens: list[threading.Event] = []
        self._result = result
        self._error = error
        self._lock = threading.Lock()

    def __call__(self, cancel_event: threading.Event):
        with self._lock:
            self.calls += 1
            self.tokens.append(cancel_event)
        self.started.set()
        self.gate.wait(timeout=5)
        if self._error is not None:
            raise self._error
        return self._result


@pytest.fixture()
def coordinator():
    coord = FetchCoordinator(max_workers=4)
    yield coord
    coord.shutdown()


class TestFetchCoordinator:
    def test_concurrent_callers_share_one_load(self, coordinator):
        loader = GatedLoader(result="poster")
        futures = [coordinator.fetch("k", loader) for _ in range(10)]
        assert coordinator.in_flight_count == 1

        loader.gate.set()
        results = [f.result(timeout=5) for f in futures]

        assert results == ["poster"] * 10
        assert loader.calls == 1
        assert coordinator.in_flight_count == 0

    def test_distinct_keys_load_independently(self, coordinator):
        loader = GatedLoader()
        a = coordinator.fetch("a", loader)
        b = coordinator.fetch("b", loader)
        loader.gate.set()
        wait([a, b], timeout=5)
        assert loader.calls == 2

    def test_cancelling_one_caller_keeps_shared_fetch_alive(self, coordinator):
        loader = GatedLoader(result="poster")
        first = coordinator.fetch("k", loader)
        second = coordinator.fetch("k", loader)
        assert loader.started.wait(timeout=5)

        assert first.cancel()
        assert coordinator.is_in_flight("k")
        loader.gate.set()

        assert second.result(timeout=5) == "poster"
        assert first.cancelled()
        assert loader.calls == 1
        assert not loader.tokens[0].is_set()

    def test_last_cancel_cancels_shared_fetch(self, coordinator):
        loader = GatedLoader()
        first = coordinator.fetch("k", loader)
        second = coordinator.fetch("k", loader)
        assert loader.started.wait(timeout=5)

        first.cancel()
        second.cancel()

        assert loader.tokens[0].is_set()
        assert not coordinator.is_in_flight("k")
        loader.gate.set()

    def test_new_request_after_full_cancel_starts_fresh(self, coordinator):
        loader = GatedLoader(result="poster")
        stale = coordinator.fetch("k", loader)
        assert loader.started.wait(timeout=5)
        stale.cancel()

        fresh = coordinator.fetch("k", loader)
        loader.gate.set()

        assert fresh.result(timeout=5) == "poster"
        assert loader.calls == 2

    def test_cancel_before_start_never_runs_loader(self):
        executor = ThreadPoolExecutor(max_workers=1)
        coord = FetchCoordinator(executor=executor)
        blocker = GatedLoader()
        busy = coord.fetch("busy", blocker)
        assert blocker.started.wait(timeout=5)

        queued_loader = GatedLoader()
        queued = coord.fetch("queued", queued_loader)
        queued.cancel()
        blocker.gate.set()
        busy.result(timeout=5)
        executor.shutdown(wait=True)

        assert queued_loader.calls == 0
        assert not coord.is_in_flight("queued")

    def test_failure_is_broadcast_and_entry_removed(self, coordinator):
        error = RuntimeError("network down")
        loader = GatedLoader(error=error)
        futures = [coordinator.fetch("k", loader) for _ in range(3)]
        loader.gate.set()

        for future in futures:
            assert future.exception(timeout=5) is error
        assert not coordinator.is_in_flight("k")

        retry_loader = GatedLoader(result="ok")
        retry_loader.gate.set()
        assert coordinator.fetch("k", retry_loader).result(timeout=5) == "ok"
        assert retry_loader.calls == 1

    def test_fetch_after_shutdown_fails_caller(self):
        coord = FetchCoordinator(max_workers=1)
        coord.shutdown()
        future = coord.fetch("k", GatedLoader())
        assert isinstance(future.exception(timeout=1), RuntimeError)
        assert coord.in_flight_count == 0
