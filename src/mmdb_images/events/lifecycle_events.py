"""Host lifecycle signals consumed by the image cache."""

from __future__ import annotations

from dataclasses import dataclass

from .bus import Event


@dataclass(kw_only=True)
class MemoryPressureEvent(Event):
    """The host is low on memory; in-memory images should be dropped."""

    rss_bytes: int = 0
    source: str = "host"


@dataclass(kw_only=True)
class EnteredBackgroundEvent(Event):
    """The host moved to the background; a good moment for disk housekeeping."""
