"""Two-tier image cache entry point: memory, then disk, then transport."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from datetime import timedelta

from mmdb_images.application.interfaces import ImageDecoder, Transport
from mmdb_images.application.services.fetch_coordinator import FetchCoordinator
from mmdb_images.config import DISK_RETENTION
from mmdb_images.domain.models import CacheKey, CachedImage, cache_key_for_url
from mmdb_images.errors import CacheError, DecodeError, FetchCancelled
from mmdb_images.events.bus import EventBus, Subscription
from mmdb_images.events.lifecycle_events import EnteredBackgroundEvent, MemoryPressureEvent
from mmdb_images.infrastructure.services.cache_stats import (
    DISK_TIER,
    MEMORY_TIER,
    CacheStatsCollector,
)
from mmdb_images.infrastructure.services.disk_store import DiskStore
from mmdb_images.infrastructure.services.image_decoder import PillowImageDecoder
from mmdb_images.infrastructure.services.memory_store import MemoryStore

LOGGER = logging.getLogger(__name__)


def _completed(value: CachedImage) -> Future:
    future: Future = Future()
    future.set_result(value)
    return future


class ImageCache:
    """Unified image lookup for the view layer.

    ``image(url)`` answers memory hits synchronously and routes everything
    else through the :class:`FetchCoordinator`, so concurrent misses for one
    URL share a single disk read and a single transport call.  Only
    transport and decode failures reach callers, wrapped in
    :class:`CacheError`; storage failures degrade to a miss.

    The instance is constructed once by the host and handed to every
    consumer; it keeps no module-level state.
    """

    def __init__(
        self,
        memory_store: MemoryStore,
        disk_store: DiskStore,
        transport: Transport,
        decoder: ImageDecoder | None = None,
        coordinator: FetchCoordinator | None = None,
        stats: CacheStatsCollector | None = None,
        disk_retention: timedelta = DISK_RETENTION,
    ):
        self._memory = memory_store
        self._disk = disk_store
        self._transport = transport
        self._decoder = decoder or PillowImageDecoder()
        self._owns_coordinator = coordinator is None
        self._coordinator = coordinator or FetchCoordinator()
        self._stats = stats or CacheStatsCollector()
        self._disk_retention = disk_retention
        self._subscriptions: list[Subscription] = []

    @property
    def memory_store(self) -> MemoryStore:
        return self._memory

    @property
    def disk_store(self) -> DiskStore:
        return self._disk

    @property
    def coordinator(self) -> FetchCoordinator:
        return self._coordinator

    @property
    def stats(self) -> CacheStatsCollector:
        return self._stats

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def image(self, url: str) -> Future:
        """Return a cancellable future resolving to the :class:`CachedImage`.

        ``future.cancel()`` withdraws this caller only.  Callers that apply
        the result to a reusable view must still check that the view has
        not moved on before using it.
        """
        key = cache_key_for_url(url)

        # L1: memory, answered on the calling thread
        cached = self._memory.get(key)
        if cached is not None:
            self._stats.record_hit(MEMORY_TIER)
            return _completed(cached)
        self._stats.record_miss(MEMORY_TIER)

        return self._coordinator.fetch(key, lambda cancel_event: self._load(url, key, cancel_event))

    def cached(self, url: str) -> bool:
        """Whether *url* is resident in memory or present on disk (no decode)."""
        key = cache_key_for_url(url)
        return self._memory.contains(key) or self._disk.contains(key)

    def clear(self) -> None:
        """Empty both tiers; disk writes already queued are removed as well."""
        self._memory.remove_all()
        self._disk.remove_all()

    # ------------------------------------------------------------------
    # Lifecycle signals
    # ------------------------------------------------------------------

    def on_memory_pressure(self, _event: MemoryPressureEvent | None = None) -> None:
        LOGGER.info("Memory pressure: dropping %d in-memory images", self._memory.count)
        self._memory.remove_all()

    def on_enter_background(self, _event: EnteredBackgroundEvent | None = None) -> Future:
        """Queue the disk retention sweep; never waits for it."""
        LOGGER.info("Entered background: scheduling disk sweep (%s)", self._disk_retention)
        return self._disk.schedule_remove_expired(self._disk_retention)

    def bind_events(self, bus: EventBus) -> None:
        """Subscribe the lifecycle entry points to *bus*."""
        self._subscriptions.append(bus.subscribe(MemoryPressureEvent, self.on_memory_pressure))
        self._subscriptions.append(
            bus.subscribe(EnteredBackgroundEvent, self.on_enter_background)
        )

    def shutdown(self) -> None:
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions.clear()
        if self._owns_coordinator:
            self._coordinator.shutdown()

    # ------------------------------------------------------------------
    # Internals (run on a coordinator worker)
    # ------------------------------------------------------------------

    def _load(self, url: str, key: CacheKey, cancel_event: threading.Event) -> CachedImage:
        # A fetch for this key may have settled after the caller missed L1.
        image = self._memory.get(key)
        if image is not None:
            return image

        # L2: disk
        image = self._load_from_disk(key)
        if image is not None:
            self._memory.set(key, image)  # backfill L1
            return image

        if cancel_event.is_set():
            raise FetchCancelled(key)

        # L3: transport
        try:
            data = self._transport.fetch(url, cancel_event)
        except FetchCancelled:
            raise
        except Exception as exc:
            self._stats.record_fetch(failed=True)
            LOGGER.debug("Transport failed for %s: %s", url, exc)
            raise CacheError(f"Failed to fetch {url}: {exc}", url=url, cause=exc) from exc
        self._stats.record_fetch()

        try:
            image = self._decoder.decode(data)
        except DecodeError as exc:
            raise CacheError(f"Failed to decode {url}: {exc}", url=url, cause=exc) from exc

        self._memory.set(key, image)  # backfill L1
        self._disk.write(key, data)  # backfill L2, fire-and-forget
        return image

    def _load_from_disk(self, key: CacheKey) -> CachedImage | None:
        data = self._disk.read(key)
        if data is None:
            self._stats.record_miss(DISK_TIER)
            return None
        try:
            image = self._decoder.decode(data)
        except DecodeError as exc:
            LOGGER.warning("Discarding corrupt disk entry for %s: %s", key, exc)
            self._disk.remove(key)
            self._stats.record_miss(DISK_TIER)
            return None
        self._stats.record_hit(DISK_TIER)
        return image
