"""
Notification bus for the job hierarchy.

- HierarchyEvent: Job and workflow status-change events
- EventBus: Publish/subscribe interface with in-memory and Redis implementations
"""

from .types import HierarchyEvent, HierarchyEventType
from .bus import (
    EventBus,
    EventSubscription,
    InMemoryEventBus,
    NullEventBus,
    RedisEventBus,
)

__all__ = [
    "HierarchyEvent",
    "HierarchyEventType",
    "EventBus",
    "EventSubscription",
    "InMemoryEventBus",
    "NullEventBus",
    "RedisEventBus",
]
