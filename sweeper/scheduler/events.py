"""Scheduler event stream.

The scheduler publishes execution lifecycle events here instead of holding
UI callbacks. Subscribers each get their own bounded queue; a slow
subscriber loses its oldest events rather than blocking the scheduler.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator

from sweeper.models.domain import SchedulerEvent

logger = logging.getLogger(__name__)


class EventSubscription:
    """One subscriber's view of the event stream.

    Usage:
        subscription = bus.subscribe()
        async for event in subscription:
            ...
        # or: event = await subscription.get()
    """

    def __init__(self, bus: "SchedulerEventBus", max_queue_size: int) -> None:
        self._bus = bus
        self._queue: asyncio.Queue[SchedulerEvent] = asyncio.Queue(
            maxsize=max_queue_size
        )
        self.dropped = 0

    def _offer(self, event: SchedulerEvent) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(event)

    async def get(self, timeout: float | None = None) -> SchedulerEvent:
        """Wait for the next event."""
        if timeout is None:
            return await self._queue.get()
        return await asyncio.wait_for(self._queue.get(), timeout=timeout)

    def get_nowait(self) -> SchedulerEvent | None:
        """Next queued event, or None if nothing is pending."""
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        """Stop receiving events."""
        self._bus.unsubscribe(self)

    def __aiter__(self) -> AsyncIterator[SchedulerEvent]:
        return self

    async def __anext__(self) -> SchedulerEvent:
        return await self._queue.get()


class SchedulerEventBus:
    """Fan-out of SchedulerEvents to any number of subscribers."""

    DEFAULT_QUEUE_SIZE = 256

    def __init__(self, max_queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self.max_queue_size = max_queue_size
        self._subscribers: list[EventSubscription] = []

    def subscribe(self) -> EventSubscription:
        subscription = EventSubscription(self, self.max_queue_size)
        self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: EventSubscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: SchedulerEvent) -> None:
        """Deliver an event to every subscriber without blocking."""
        for subscription in list(self._subscribers):
            before = subscription.dropped
            subscription._offer(event)
            if subscription.dropped > before:
                logger.warning(
                    "Event subscriber queue full, dropped oldest event (%d dropped so far)",
                    subscription.dropped,
                )
