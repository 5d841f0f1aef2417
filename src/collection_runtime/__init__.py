"""
Collection Runtime - asynchronous data-collection job tracking.

This package tracks multi-service data-collection runs through a small
state machine:
- Job records with per-job serialized mutation (jobs)
- Ownership-or-admin access control (jobs.guard)
- Fire-and-forget hand-off to collection workers (dispatch)
- Lifecycle events for observers (events)

Example:
    ```python
    from collection_runtime import build_tracker

    tracker = build_tracker()
    receipt = await tracker.trigger("u1", "full")
    view = await tracker.status(receipt.job_id, "u1", "learner")
    ```
"""

from .config import (
    TrackerConfig,
    DEFAULT_SERVICES,
    KNOWN_SERVICES,
    load_env,
)
from .errors import (
    ErrorCode,
    ErrorContext,
    TrackerError,
    ValidationError,
    NotFoundError,
    ForbiddenError,
    NotReadyError,
    AlreadyTerminalError,
    InvalidTransitionError,
    AlreadyExistsError,
    StorageError,
)
from .jobs import (
    CollectionType,
    JobState,
    JobRecord,
    JobStatusView,
    JobResultsView,
    TriggerReceipt,
    CancelAck,
    VALID_TRANSITIONS,
    JobStore,
    InMemoryJobStore,
    JobFilter,
    AccessGuard,
    CollectionJobManager,
)
from .dispatch import (
    CollectionDispatcher,
    ProgressReporter,
    CollectionWorker,
    SimulatedCollectionWorker,
    WorkerPoolDispatcher,
)
from .events import (
    JobEvent,
    JobEventType,
    EventBus,
    InMemoryEventBus,
)
from .runtime import build_tracker

__version__ = "0.1.0"

__all__ = [
    # Config
    "TrackerConfig",
    "DEFAULT_SERVICES",
    "KNOWN_SERVICES",
    "load_env",
    # Errors
    "ErrorCode",
    "ErrorContext",
    "TrackerError",
    "ValidationError",
    "NotFoundError",
    "ForbiddenError",
    "NotReadyError",
    "AlreadyTerminalError",
    "InvalidTransitionError",
    "AlreadyExistsError",
    "StorageError",
    # Jobs
    "CollectionType",
    "JobState",
    "JobRecord",
    "JobStatusView",
    "JobResultsView",
    "TriggerReceipt",
    "CancelAck",
    "VALID_TRANSITIONS",
    "JobStore",
    "InMemoryJobStore",
    "JobFilter",
    "AccessGuard",
    "CollectionJobManager",
    # Dispatch
    "CollectionDispatcher",
    "ProgressReporter",
    "CollectionWorker",
    "SimulatedCollectionWorker",
    "WorkerPoolDispatcher",
    # Events
    "JobEvent",
    "JobEventType",
    "EventBus",
    "InMemoryEventBus",
    # Wiring
    "build_tracker",
]
