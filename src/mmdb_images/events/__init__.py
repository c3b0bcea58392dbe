from .bus import Event, EventBus, Subscription
from .lifecycle_events import EnteredBackgroundEvent, MemoryPressureEvent

__all__ = [
    "EnteredBackgroundEvent",
    "Event",
    "EventBus",
    "MemoryPressureEvent",
    "Subscription",
]
