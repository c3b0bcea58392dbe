"""L1: cost-bounded LRU in-memory image store."""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict

from mmdb_images.config import DEFAULT_MAX_ENTRY_COUNT, DEFAULT_MAX_TOTAL_COST
from mmdb_images.domain.models import CacheKey, CachedImage

LOGGER = logging.getLogger(__name__)


class MemoryStore:
    """L1: LRU memory cache for decoded images, bounded by cost and count.

    Every ``set`` runs an eviction pass that drops the least-recently
    accessed entries until both ``max_total_cost`` and ``max_entry_count``
    hold.  An entry whose cost alone exceeds ``max_total_cost`` is rejected
    rather than flushing the whole store.

    All public methods are protected by a lock so the store can be shared
    between UI-driven requests, prefetch workers and lifecycle signals.
    """

    def __init__(
        self,
        max_total_cost: int = DEFAULT_MAX_TOTAL_COST,
        max_entry_count: int = DEFAULT_MAX_ENTRY_COUNT,
    ):
        if max_total_cost <= 0:
            raise ValueError("max_total_cost must be positive")
        if max_entry_count <= 0:
            raise ValueError("max_entry_count must be positive")
        self._entries: OrderedDict[CacheKey, tuple[CachedImage, int]] = OrderedDict()
        self._max_total_cost = max_total_cost
        self._max_entry_count = max_entry_count
        self._total_cost = 0
        self._lock = threading.Lock()

    def get(self, key: CacheKey) -> CachedImage | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            self._entries.move_to_end(key)
            return entry[0]

    def set(self, key: CacheKey, image: CachedImage, cost: int | None = None) -> bool:
        """Insert *image* under *key*; return ``False`` if it was rejected."""

        if cost is None:
            cost = image.cost
        if cost > self._max_total_cost:
            LOGGER.debug(
                "Rejecting %s: cost %d exceeds budget %d", key, cost, self._max_total_cost
            )
            with self._lock:
                self._discard(key)
            return False

        with self._lock:
            self._discard(key)
            self._entries[key] = (image, cost)
            self._total_cost += cost
            self._evict()
        return True

    def remove(self, key: CacheKey) -> None:
        with self._lock:
            self._discard(key)

    def remove_all(self) -> None:
        with self._lock:
            self._entries.clear()
            self._total_cost = 0

    def contains(self, key: CacheKey) -> bool:
        """Presence check that does not touch recency."""
        with self._lock:
            return key in self._entries

    def keys(self) -> list[CacheKey]:
        """Resident keys, least-recently used first."""
        with self._lock:
            return list(self._entries)

    @property
    def total_cost(self) -> int:
        with self._lock:
            return self._total_cost

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def max_total_cost(self) -> int:
        return self._max_total_cost

    @property
    def max_entry_count(self) -> int:
        return self._max_entry_count

    # ------------------------------------------------------------------
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------

    def _discard(self, key: CacheKey) -> None:
        old = self._entries.pop(key, None)
        if old is not None:
            self._total_cost -= old[1]

    def _evict(self) -> None:
        while self._entries and (
            self._total_cost > self._max_total_cost
            or len(self._entries) > self._max_entry_count
        ):
            evicted_key, (_image, evicted_cost) = self._entries.popitem(last=False)  # evict oldest
            self._total_cost -= evicted_cost
            LOGGER.debug("Evicted %s (cost %d)", evicted_key, evicted_cost)
