"""Speculative cache warming for rows about to scroll into view."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import CancelledError, Future
from functools import partial
from typing import Iterable

from mmdb_images.application.services.image_cache import ImageCache
from mmdb_images.domain.models import CacheKey, cache_key_for_url

LOGGER = logging.getLogger(__name__)


class PrefetchScheduler:
    """Keep one best-effort fetch running per upcoming image.

    Each :meth:`update_visible_window` call starts fetches for upcoming URLs
    that are neither in memory nor already prefetching, and cancels prefetches
    whose URL left the window.  Disk presence is left to the fetch worker,
    which lifts a disk hit into memory without a transport call.  Results
    are discarded; failures are logged at debug level and a later on-demand
    request simply retries.

    A :class:`threading.RLock` (reentrant) guards the tracking table because
    cancelling a handle, or a fetch that completes immediately, runs the
    completion callback on the thread that already holds the lock.
    """

    def __init__(self, image_cache: ImageCache) -> None:
        self._cache = image_cache
        self._active: dict[CacheKey, Future] = {}
        self._lock = threading.RLock()

    def update_visible_window(self, upcoming_urls: Iterable[str]) -> None:
        upcoming: dict[CacheKey, str] = {}
        for url in upcoming_urls:
            upcoming.setdefault(cache_key_for_url(url), url)

        with self._lock:
            for key in [k for k in self._active if k not in upcoming]:
                handle = self._active.pop(key)
                handle.cancel()
                LOGGER.debug("Prefetch retracted for %s", key)

            for key, url in upcoming.items():
                if key in self._active or self._cache.memory_store.contains(key):
                    continue
                handle = self._cache.image(url)
                self._active[key] = handle
                handle.add_done_callback(partial(self._on_done, key))

    @property
    def active_keys(self) -> set[CacheKey]:
        with self._lock:
            return set(self._active)

    def handle_for(self, key: CacheKey) -> Future | None:
        with self._lock:
            return self._active.get(key)

    def cancel_all(self) -> None:
        with self._lock:
            handles = list(self._active.values())
            self._active.clear()
            for handle in handles:
                handle.cancel()

    def _on_done(self, key: CacheKey, handle: Future) -> None:
        with self._lock:
            if self._active.get(key) is handle:
                del self._active[key]
        try:
            handle.result()
        except CancelledError:
            pass
        except Exception as exc:
            LOGGER.debug("Prefetch of %s failed: %s", key, exc)
