"""
Job lifecycle events.

- JobEvent / JobEventType: what the queue publishes
- EventBus: publish/subscribe interface
- InMemoryEventBus: bounded in-process implementation
"""

from .bus import EventBus, EventSubscription, InMemoryEventBus
from .types import JobEvent, JobEventType

__all__ = [
    "JobEvent",
    "JobEventType",
    "EventBus",
    "EventSubscription",
    "InMemoryEventBus",
]
