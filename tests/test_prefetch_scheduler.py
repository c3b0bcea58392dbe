"""Tests for PrefetchScheduler: window-driven cache warming."""

from __future__ import annotations

import threading
import time
from concurrent.futures import wait
from pathlib import Path

import pytest

from mmdb_images.application.services.fetch_coordinator import FetchCoordinator
from mmdb_images.application.services.image_cache import ImageCache
from mmdb_images.application.services.prefetch_scheduler import PrefetchScheduler
from mmdb_images.errors import TransportError
from mmdb_images.infrastructure.services.disk_store import DiskStore
from mmdb_images.infrastructure.services.memory_store import MemoryStore

A, B, C, D = (f"https://example/{name}.jpg" for name in "abcd")


def _eventually(predicate, timeout: float = 5.0) -> bool:
    """Poll *predicate*; completion callbacks run just after a future resolves."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class GatedTransport:
    def __init__(self, payload: bytes, fail: bool = False):
        self.payload = payload
        self.fail = fail
        self.gate = threading.Event()
        self.calls: dict[str, int] = {}
        self.tokens: dict[str, threading.Event] = {}
        self._lock = threading.Lock()

    def fetch(self, url: str, cancel_event: threading.Event | None = None) -> bytes:
        with self._lock:
            self.calls[url] = self.calls.get(url, 0) + 1
            self.tokens[url] = cancel_event
        self.gate.wait(timeout=5)
        if self.fail:
            raise TransportError("offline", url=url)
        return self.payload


@pytest.fixture()
def setup(tmp_path: Path, png_bytes):
    transport = GatedTransport(png_bytes(8, 8))
    coordinator = FetchCoordinator(max_workers=8)
    cache = ImageCache(
        memory_store=MemoryStore(),
        disk_store=DiskStore(tmp_path / "images"),
        transport=transport,
        coordinator=coordinator,
    )
    scheduler = PrefetchScheduler(cache)
    yield scheduler, cache, transport
    transport.gate.set()
    scheduler.cancel_all()
    cache.disk_store.flush(timeout=5)
    coordinator.shutdown()


class TestPrefetchScheduler:
    def test_window_update_retracts_and_starts(self, setup):
        scheduler, _cache, transport = setup
        scheduler.update_visible_window([A, B, C])
        handle_a = scheduler.handle_for(A)
        handle_b = scheduler.handle_for(B)
        handle_c = scheduler.handle_for(C)

        scheduler.update_visible_window([B, C, D])

        assert handle_a.cancelled()
        assert scheduler.handle_for(B) is handle_b
        assert scheduler.handle_for(C) is handle_c
        assert not handle_b.done()
        assert scheduler.active_keys == {B, C, D}

        handle_d = scheduler.handle_for(D)
        transport.gate.set()
        wait([handle_b, handle_c, handle_d], timeout=5)
        assert transport.calls.get(D) == 1
        assert transport.calls.get(B) == 1

    def test_retracted_prefetch_cancels_shared_fetch(self, setup):
        scheduler, _cache, transport = setup
        scheduler.update_visible_window([A])
        handle = scheduler.handle_for(A)

        scheduler.update_visible_window([])

        assert handle.cancelled()
        assert scheduler.active_keys == set()
        # The transport may not have started yet; if it did, it was told to stop.
        token = transport.tokens.get(A)
        assert token is None or token.is_set()

    def test_repeated_window_does_not_duplicate(self, setup):
        scheduler, _cache, transport = setup
        scheduler.update_visible_window([A, B])
        first = scheduler.handle_for(A)
        second = scheduler.handle_for(B)
        scheduler.update_visible_window([A, B, A])
        assert scheduler.handle_for(A) is first
        assert scheduler.handle_for(B) is second

        transport.gate.set()
        wait([first, second], timeout=5)
        assert transport.calls.get(A) == 1

    def test_cached_images_are_not_prefetched(self, setup):
        scheduler, cache, transport = setup
        transport.gate.set()
        cache.image(A).result(timeout=5)

        scheduler.update_visible_window([A])

        assert scheduler.active_keys == set()
        assert transport.calls[A] == 1

    def test_completed_prefetch_leaves_tracking_set(self, setup):
        scheduler, cache, transport = setup
        scheduler.update_visible_window([A])
        handle = scheduler.handle_for(A)
        transport.gate.set()
        handle.result(timeout=5)

        assert _eventually(lambda: A not in scheduler.active_keys)
        assert cache.memory_store.contains(A)

    def test_failures_are_swallowed(self, setup):
        scheduler, _cache, transport = setup
        transport.fail = True
        scheduler.update_visible_window([A])
        handle = scheduler.handle_for(A)
        transport.gate.set()

        wait([handle], timeout=5)
        assert handle.exception() is not None
        assert _eventually(lambda: scheduler.active_keys == set())

    def test_concurrent_updates_never_duplicate_fetches(self, setup):
        scheduler, _cache, transport = setup
        windows = [[A, B], [B, C], [A, B, C], [C, D], [A, D]]
        barrier = threading.Barrier(len(windows))

        def _scroll(window):
            barrier.wait(timeout=5)
            for _ in range(20):
                scheduler.update_visible_window(window)

        threads = [threading.Thread(target=_scroll, args=(w,)) for w in windows]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        # Every tracked handle is live and unique per key.
        active = scheduler.active_keys
        handles = [scheduler.handle_for(k) for k in active]
        assert all(h is not None and not h.cancelled() for h in handles)
        assert len(set(map(id, handles))) == len(active)

    def test_cancel_all(self, setup):
        scheduler, _cache, _transport = setup
        scheduler.update_visible_window([A, B])
        handles = [scheduler.handle_for(A), scheduler.handle_for(B)]
        scheduler.cancel_all()
        assert all(h.cancelled() for h in handles)
        assert scheduler.active_keys == set()

    def test_disk_entries_are_lifted_without_transport(self, setup, png_bytes):
        scheduler, cache, transport = setup
        cache.disk_store.write(A, png_bytes(8, 8)).result(timeout=5)

        scheduler.update_visible_window([A])

        assert _eventually(lambda: cache.memory_store.contains(A))
        assert _eventually(lambda: scheduler.active_keys == set())
        assert A not in transport.calls
