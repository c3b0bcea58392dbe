"""Publish/subscribe dispatch for host lifecycle signals."""

from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Type

LOGGER = logging.getLogger(__name__)

Handler = Callable[["Event"], object]


@dataclass(kw_only=True)
class Event:
    """Base class for everything published on an :class:`EventBus`."""

    timestamp: datetime = field(default_factory=datetime.now)
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass(eq=False)
class Subscription:
    """Registration handle returned by :meth:`EventBus.subscribe`."""

    event_type: Type[Event]
    handler: Handler
    background: bool = False
    bus: Optional["EventBus"] = field(default=None, repr=False)
    active: bool = True

    def cancel(self) -> None:
        if self.bus is not None:
            self.bus.unsubscribe(self)
        else:
            self.active = False


class EventBus:
    """Dispatches host lifecycle events to the cache components.

    Foreground handlers run on the publishing thread in subscription order.
    Handlers subscribed with ``async_=True`` run on a small pool that is
    created on first use.  A failing handler is logged and the remaining
    handlers still run.
    """

    def __init__(self, logger: Optional[logging.Logger] = None, max_workers: int = 2):
        self._logger = logger or LOGGER
        self._max_workers = max_workers
        self._subscriptions: Dict[Type[Event], List[Subscription]] = {}
        self._executor: Optional[ThreadPoolExecutor] = None
        self._lock = threading.Lock()

    def subscribe(
        self, event_type: Type[Event], handler: Handler, async_: bool = False
    ) -> Subscription:
        subscription = Subscription(event_type, handler, background=async_, bus=self)
        with self._lock:
            self._subscriptions.setdefault(event_type, []).append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.active = False
        with self._lock:
            registered = self._subscriptions.get(subscription.event_type, [])
            if subscription in registered:
                registered.remove(subscription)

    def handler_count(self, event_type: Type[Event]) -> int:
        with self._lock:
            return len(self._subscriptions.get(event_type, []))

    def publish(self, event: Event) -> List[Future]:
        """Deliver *event*; return futures for its background handlers."""

        futures: List[Future] = []
        for subscription in self._snapshot(event):
            if subscription.background:
                futures.append(self._submit(subscription.handler, event))
            else:
                self._invoke(subscription.handler, event)
        return futures

    def publish_async(self, event: Event) -> List[Future]:
        """Run every handler for *event* on the pool, foreground ones included."""

        return [self._submit(sub.handler, event) for sub in self._snapshot(event)]

    def shutdown(self) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)

    def _snapshot(self, event: Event) -> List[Subscription]:
        with self._lock:
            registered = list(self._subscriptions.get(type(event), []))
        return [sub for sub in registered if sub.active]

    def _submit(self, handler: Handler, event: Event) -> Future:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers, thread_name_prefix="mmdb-events"
                )
            executor = self._executor
        return executor.submit(self._invoke, handler, event)

    def _invoke(self, handler: Handler, event: Event) -> None:
        try:
            handler(event)
        except Exception:
            self._logger.exception("Handler %r failed for %s", handler, type(event).__name__)
