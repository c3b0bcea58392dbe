"""De-duplicating, cancellable fetch coordination keyed by cache key.

Concurrent requests for the same key share one underlying operation.  Each
caller gets its own :class:`concurrent.futures.Future`; cancelling it only
withdraws that caller's interest.  The shared operation is cancelled once
the last interested caller has gone, by setting the cancel token handed to
the loader and cancelling the pool job if it has not started yet.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, InvalidStateError, ThreadPoolExecutor
from functools import partial
from typing import Callable, Generic, TypeVar

from mmdb_images.config import FETCH_WORKERS
from mmdb_images.domain.models import CacheKey
from mmdb_images.errors import FetchCancelled

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

# A loader receives the shared cancel token and returns the fetched value.
Loader = Callable[[threading.Event], T]


class _InFlightRequest:
    """One shared pending operation and the callers attached to it."""

    __slots__ = ("key", "cancel_event", "waiters", "operation")

    def __init__(self, key: CacheKey) -> None:
        self.key = key
        self.cancel_event = threading.Event()
        self.waiters: set[Future] = set()
        self.operation: Future | None = None


class FetchCoordinator(Generic[T]):
    """Track one cancellable unit of work per requested key.

    Parameters
    ----------
    executor:
        Pool that runs loaders.  When omitted the coordinator creates and
        owns one with ``max_workers`` threads.
    """

    def __init__(
        self,
        executor: ThreadPoolExecutor | None = None,
        max_workers: int = FETCH_WORKERS,
    ) -> None:
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="mmdb-fetch"
        )
        self._in_flight: dict[CacheKey, _InFlightRequest] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def fetch(self, key: CacheKey, loader: Loader) -> Future:
        """Return a per-caller future for *key*.

        *loader* runs only when no request for *key* is already in flight;
        otherwise the caller attaches to the pending one.
        """

        waiter: Future = Future()
        with self._lock:
            request = self._in_flight.get(key)
            joined = request is not None
            if request is None:
                request = _InFlightRequest(key)
                self._in_flight[key] = request
            request.waiters.add(waiter)

        if joined:
            LOGGER.debug("Joined in-flight request for %s", key)
        else:
            try:
                operation = self._executor.submit(self._run, request, loader)
            except RuntimeError as exc:
                # Executor already shut down.
                self._abandon(request, exc)
                return waiter
            with self._lock:
                request.operation = operation
            operation.add_done_callback(partial(self._settle, request))

        waiter.add_done_callback(partial(self._on_waiter_done, request))
        return waiter

    def is_in_flight(self, key: CacheKey) -> bool:
        with self._lock:
            return key in self._in_flight

    @property
    def in_flight_count(self) -> int:
        with self._lock:
            return len(self._in_flight)

    def shutdown(self) -> None:
        """Shut down the internal executor if it was created by this coordinator.

        Callers that supply their own executor are responsible for its
        lifecycle; calling ``shutdown()`` on those instances is a no-op.
        """
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _run(request: _InFlightRequest, loader: Loader):
        if request.cancel_event.is_set():
            raise FetchCancelled(request.key)
        return loader(request.cancel_event)

    def _settle(self, request: _InFlightRequest, operation: Future) -> None:
        """Broadcast the shared outcome to every caller still attached."""

        with self._lock:
            if self._in_flight.get(request.key) is request:
                del self._in_flight[request.key]
            waiters = list(request.waiters)
            request.waiters.clear()

        if operation.cancelled():
            error: BaseException | None = FetchCancelled(request.key)
        else:
            error = operation.exception()

        for waiter in waiters:
            try:
                if error is not None:
                    waiter.set_exception(error)
                else:
                    waiter.set_result(operation.result())
            except InvalidStateError:
                # The caller cancelled between the snapshot and delivery.
                continue

    def _on_waiter_done(self, request: _InFlightRequest, waiter: Future) -> None:
        if not waiter.cancelled():
            return
        with self._lock:
            request.waiters.discard(waiter)
            if request.waiters or self._in_flight.get(request.key) is not request:
                return
            # Last interested caller gone: later callers start afresh.
            del self._in_flight[request.key]
            request.cancel_event.set()
            operation = request.operation
        LOGGER.debug("Cancelled shared fetch for %s", request.key)
        if operation is not None:
            operation.cancel()

    def _abandon(self, request: _InFlightRequest, error: BaseException) -> None:
        with self._lock:
            if self._in_flight.get(request.key) is request:
                del self._in_flight[request.key]
            waiters = list(request.waiters)
            request.waiters.clear()
        for waiter in waiters:
            try:
                waiter.set_exception(error)
            except InvalidStateError:
                continue
