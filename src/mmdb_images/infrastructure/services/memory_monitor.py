"""Process memory monitor that turns RSS thresholds into pressure signals.

Hosts without a native low-memory notification poll :meth:`MemoryMonitor.check`
(e.g. from a timer) and let a critical breach publish a
:class:`MemoryPressureEvent`, which the image cache answers by dropping its
in-memory tier.
"""

from __future__ import annotations

import logging
import sys
import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from mmdb_images.events.bus import EventBus
from mmdb_images.events.lifecycle_events import MemoryPressureEvent

LOGGER = logging.getLogger(__name__)

MiB: int = 1 << 20
GiB: int = 1 << 30


@dataclass
class MemorySnapshot:
    """Point-in-time memory reading."""

    rss_bytes: int = 0

    @property
    def rss_mib(self) -> float:
        return self.rss_bytes / MiB


MemoryCallback = Callable[[MemorySnapshot], None]


@dataclass
class _Threshold:
    name: str
    limit: int
    callbacks: List[MemoryCallback] = field(default_factory=list)
    tripped: bool = False

    def crossed(self, snap: MemorySnapshot) -> bool:
        """Update the latch; ``True`` only on the sample that trips it."""
        if snap.rss_bytes < self.limit:
            self.tripped = False
            return False
        if self.tripped:
            return False
        self.tripped = True
        LOGGER.warning(
            "Memory %s: %.1f MiB (threshold %.1f MiB)", self.name, snap.rss_mib, self.limit / MiB
        )
        return True


class MemoryMonitor:
    """Track process memory and fire callbacks on threshold breach.

    Parameters
    ----------
    warning_bytes:
        When RSS reaches this value, warning callbacks fire.
    critical_bytes:
        When RSS reaches this value, critical callbacks fire and, if an
        *event_bus* was given, a :class:`MemoryPressureEvent` is published.
    reader:
        Optional RSS sampler, mostly for tests.

    Each level fires once per breach and re-arms when RSS drops back below
    it.  Callbacks run outside the monitor's lock.
    """

    def __init__(
        self,
        warning_bytes: int = 512 * MiB,
        critical_bytes: int = 1 * GiB,
        event_bus: Optional[EventBus] = None,
        reader: Optional[Callable[[], MemorySnapshot]] = None,
    ) -> None:
        self._critical = _Threshold("critical", critical_bytes)
        self._warning = _Threshold("warning", warning_bytes)
        self._event_bus = event_bus
        self._reader = reader or read_process_rss
        self._lock = threading.Lock()
        self._last_snapshot = MemorySnapshot()

    def add_warning_callback(self, cb: MemoryCallback) -> None:
        with self._lock:
            self._warning.callbacks.append(cb)

    def add_critical_callback(self, cb: MemoryCallback) -> None:
        with self._lock:
            self._critical.callbacks.append(cb)

    @property
    def last_snapshot(self) -> MemorySnapshot:
        with self._lock:
            return self._last_snapshot

    def check(self) -> MemorySnapshot:
        """Sample current RSS and invoke callbacks for newly crossed levels."""
        snap = self._reader()
        pending: List[MemoryCallback] = []
        critical = False

        with self._lock:
            self._last_snapshot = snap
            for level in (self._critical, self._warning):
                if level.crossed(snap):
                    pending.extend(level.callbacks)
                    critical = critical or level is self._critical

        for cb in pending:
            try:
                cb(snap)
            except Exception:
                LOGGER.exception("Memory callback %r failed", cb)
        if critical and self._event_bus is not None:
            self._event_bus.publish(
                MemoryPressureEvent(rss_bytes=snap.rss_bytes, source="memory_monitor")
            )
        return snap


def read_process_rss() -> MemorySnapshot:
    """Current RSS from ``/proc/self/status``, else peak RSS from :mod:`resource`."""
    try:
        with open("/proc/self/status") as status:
            for line in status:
                if line.startswith("VmRSS:"):
                    return MemorySnapshot(rss_bytes=int(line.split()[1]) * 1024)
    except OSError:
        pass
    try:
        import resource
    except ImportError:
        return MemorySnapshot()
    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # bytes on macOS, KiB elsewhere
    return MemorySnapshot(rss_bytes=peak if sys.platform == "darwin" else peak * 1024)
