"""
Job system for the collection tracker.

This module provides the collection job lifecycle:
- JobRecord: Persisted job state
- CollectionJobManager: Lifecycle operations (trigger, status, results, cancel)
- JobStore: Persistence interface with an in-memory implementation
- AccessGuard: Ownership-or-admin access predicate
"""

from .types import (
    ID_PATTERN,
    CollectionType,
    JobState,
    JobRecord,
    JobStatusView,
    JobResultsView,
    TriggerReceipt,
    CancelAck,
    VALID_TRANSITIONS,
    STATE_ORDER,
)
from .store import (
    JobStore,
    InMemoryJobStore,
    JobFilter,
)
from .guard import (
    AccessGuard,
)
from .manager import (
    CollectionJobManager,
)

__all__ = [
    "ID_PATTERN",
    "CollectionType",
    "JobState",
    "JobRecord",
    "JobStatusView",
    "JobResultsView",
    "TriggerReceipt",
    "CancelAck",
    "VALID_TRANSITIONS",
    "STATE_ORDER",
    "JobStore",
    "InMemoryJobStore",
    "JobFilter",
    "AccessGuard",
    "CollectionJobManager",
]
