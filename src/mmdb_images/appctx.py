"""Composition root that wires the image cache for a host process."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from .application.interfaces import Transport
from .application.services.fetch_coordinator import FetchCoordinator
from .application.services.image_cache import ImageCache
from .application.services.prefetch_scheduler import PrefetchScheduler
from .events.bus import EventBus
from .events.lifecycle_events import EnteredBackgroundEvent, MemoryPressureEvent
from .infrastructure.services.cache_stats import CacheStatsCollector
from .infrastructure.services.disk_store import DiskStore
from .infrastructure.services.http_transport import HttpTransport
from .infrastructure.services.memory_store import MemoryStore
from .settings.manager import ImageCacheConfig


@dataclass
class ImageCacheContext:
    """Owns one :class:`ImageCache` and its collaborators.

    Created once at process start and closed at exit; consumers receive
    ``context.cache`` / ``context.prefetcher`` explicitly instead of reaching
    for a global.  The host wires its platform notifications to
    :meth:`memory_pressure` and :meth:`entered_background`.
    """

    config: ImageCacheConfig = field(default_factory=ImageCacheConfig.defaults)
    transport: Optional[Transport] = None
    events: EventBus = field(default_factory=EventBus)

    def __post_init__(self) -> None:
        if self.transport is None:
            self.transport = HttpTransport(timeout=self.config.timeout_sec)
        self.stats = CacheStatsCollector()
        self.memory = MemoryStore(
            max_total_cost=self.config.max_total_cost,
            max_entry_count=self.config.max_entry_count,
        )
        self.disk = DiskStore(self.config.disk_directory)
        self.coordinator = FetchCoordinator(max_workers=self.config.workers)
        self.cache = ImageCache(
            memory_store=self.memory,
            disk_store=self.disk,
            transport=self.transport,
            coordinator=self.coordinator,
            stats=self.stats,
            disk_retention=self.config.disk_retention,
        )
        self.cache.bind_events(self.events)
        self.prefetcher = PrefetchScheduler(self.cache)

    def memory_pressure(self) -> None:
        self.events.publish(MemoryPressureEvent())

    def entered_background(self) -> None:
        self.events.publish(EnteredBackgroundEvent())

    def close(self) -> None:
        self.prefetcher.cancel_all()
        self.cache.shutdown()
        self.coordinator.shutdown()
        self.disk.flush()
        self.disk.shutdown()
        self.events.shutdown()
        if isinstance(self.transport, HttpTransport):
            self.transport.close()
