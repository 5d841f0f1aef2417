"""
Job lifecycle events.
"""

from .types import (
    JobEventType,
    JobEvent,
)
from .bus import (
    EventBus,
    InMemoryEventBus,
    EventSubscription,
)

__all__ = [
    "JobEventType",
    "JobEvent",
    "EventBus",
    "InMemoryEventBus",
    "EventSubscription",
]
