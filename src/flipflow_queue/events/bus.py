"""
Event bus for job lifecycle events.

This module provides the EventBus abstraction and the in-memory
implementation the queue publishes to.
"""

from __future__ import annotations

import asyncio
import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field

from .types import JobEvent, JobEventType


@dataclass
class EventSubscription:
    """Subscription to events from the event bus."""
    subscription_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    job_id: str | None = None
    event_types: set[JobEventType] | None = None  # None = all types
    job_type: str | None = None

    def matches(self, event: JobEvent) -> bool:
        """Check if an event matches this subscription."""
        if self.job_id and event.job_id != self.job_id:
            return False
        if self.job_type and event.job_type != self.job_type:
            return False
        if self.event_types and event.type not in self.event_types:
            return False
        return True


class EventBus(ABC):
    """Abstract event bus for job events.

    ``publish`` is synchronous and must not block: the queue calls it
    from inside its own state transitions.
    """

    @abstractmethod
    def publish(self, event: JobEvent) -> None:
        """Publish an event to all matching subscribers."""
        ...

    @abstractmethod
    def subscribe(
        self,
        job_id: str | None = None,
        event_types: set[JobEventType] | None = None,
        job_type: str | None = None,
    ) -> EventSubscription:
        """Create a subscription and return it."""
        ...

    @abstractmethod
    def events(self, subscription: EventSubscription) -> AsyncIterator[JobEvent]:
        """Iterate over events for a subscription."""
        ...

    @abstractmethod
    def unsubscribe(self, subscription: EventSubscription) -> None:
        """Remove a subscription."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the event bus and clean up resources."""
        ...


class InMemoryEventBus(EventBus):
    """In-memory event bus implementation.

    Uses one bounded asyncio.Queue per subscription. When a subscriber
    falls behind, either its oldest buffered event or the new event is
    dropped, depending on ``drop_policy``.
    """

    def __init__(
        self,
        max_queue_size: int = 1000,
        drop_policy: str = "oldest",  # "oldest" or "newest"
    ):
        if drop_policy not in ("oldest", "newest"):
            raise ValueError(f"Invalid drop policy: {drop_policy}")
        self._queues: dict[str, asyncio.Queue[JobEvent | None]] = {}
        self._subscriptions: dict[str, EventSubscription] = {}
        self._max_queue_size = max_queue_size
        self._drop_policy = drop_policy
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, event: JobEvent) -> None:
        if self._closed:
            return

        for sub_id, subscription in list(self._subscriptions.items()):
            if not subscription.matches(event):
                continue
            queue = self._queues.get(sub_id)
            if queue is None:
                continue
            if queue.full():
                self.dropped += 1
                if self._drop_policy == "newest":
                    continue
                queue.get_nowait()
            queue.put_nowait(event)

    def subscribe(
        self,
        job_id: str | None = None,
        event_types: set[JobEventType] | None = None,
        job_type: str | None = None,
    ) -> EventSubscription:
        subscription = EventSubscription(
            job_id=job_id,
            event_types=event_types,
            job_type=job_type,
        )
        self._subscriptions[subscription.subscription_id] = subscription
        self._queues[subscription.subscription_id] = asyncio.Queue(
            maxsize=self._max_queue_size
        )
        return subscription

    async def events(self, subscription: EventSubscription) -> AsyncIterator[JobEvent]:
        """Iterate over events for a subscription.

        Yields events until the subscription is closed.
        """
        queue = self._queues.get(subscription.subscription_id)
        if queue is None:
            return

        while True:
            event = await queue.get()
            if event is None:  # Sentinel for close
                break
            yield event

    def unsubscribe(self, subscription: EventSubscription) -> None:
        sub_id = subscription.subscription_id
        self._subscriptions.pop(sub_id, None)
        queue = self._queues.pop(sub_id, None)
        if queue is not None:
            _put_sentinel(queue)

    async def close(self) -> None:
        self._closed = True
        for queue in self._queues.values():
            _put_sentinel(queue)
        self._queues.clear()
        self._subscriptions.clear()

    async def wait_for_event(
        self,
        subscription: EventSubscription,
        timeout: float | None = None,
    ) -> JobEvent | None:
        """Wait for a single event with optional timeout."""
        queue = self._queues.get(subscription.subscription_id)
        if queue is None:
            return None

        try:
            return await asyncio.wait_for(queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None


def _put_sentinel(queue: asyncio.Queue[JobEvent | None]) -> None:
    """Unblock consumers, discarding the oldest event if the buffer is full."""
    if queue.full():
        queue.get_nowait()
    queue.put_nowait(None)


__all__ = [
    "EventBus",
    "EventSubscription",
    "InMemoryEventBus",
]
