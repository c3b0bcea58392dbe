"""Hit and miss counters for the memory and disk tiers.

Also counts how many loads had to go to the transport and how many of
those failed.  One collector is shared by on-demand requests and prefetch
workers.
"""

from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass

MEMORY_TIER = "memory"
DISK_TIER = "disk"
NETWORK = "network"

_HIT = "hit"
_MISS = "miss"
_FETCHED = "fetched"
_FAILED = "failed"


@dataclass(frozen=True)
class CacheStats:
    """Immutable snapshot of one tier's statistics."""

    hits: int = 0
    misses: int = 0

    @property
    def total(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        """Fraction of lookups answered by the tier; 0.0 before any lookup."""
        return self.hits / self.total if self.total else 0.0


class CacheStatsCollector:
    """Thread-safe counters keyed by ``(tier, outcome)``.

    Usage::

        stats = CacheStatsCollector()
        stats.record_hit(MEMORY_TIER)
        stats.record_miss(MEMORY_TIER)
        print(stats.get(MEMORY_TIER).hit_rate)
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts: Counter[tuple[str, str]] = Counter()

    def record_hit(self, tier: str) -> None:
        self._bump((tier, _HIT))

    def record_miss(self, tier: str) -> None:
        self._bump((tier, _MISS))

    def record_fetch(self, *, failed: bool = False) -> None:
        """Record one transport round trip."""
        self._bump((NETWORK, _FETCHED))
        if failed:
            self._bump((NETWORK, _FAILED))

    @property
    def network_fetches(self) -> int:
        with self._lock:
            return self._counts[(NETWORK, _FETCHED)]

    @property
    def network_failures(self) -> int:
        with self._lock:
            return self._counts[(NETWORK, _FAILED)]

    def get(self, tier: str) -> CacheStats:
        with self._lock:
            return self._snapshot(tier)

    def all(self) -> dict[str, CacheStats]:
        """Snapshots for every cache tier that has recorded a lookup."""
        with self._lock:
            tiers = {tier for tier, _outcome in self._counts if tier != NETWORK}
            return {tier: self._snapshot(tier) for tier in sorted(tiers)}

    def reset(self) -> None:
        with self._lock:
            self._counts.clear()

    def _bump(self, key: tuple[str, str]) -> None:
        with self._lock:
            self._counts[key] += 1

    def _snapshot(self, tier: str) -> CacheStats:
        return CacheStats(hits=self._counts[(tier, _HIT)], misses=self._counts[(tier, _MISS)])
