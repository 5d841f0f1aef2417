"""
Job types for the collection tracker.

This module defines the JobState enum, the transition table and the
JobRecord dataclass that form the core of the collection lifecycle,
plus the read-only projections handed back to callers.
"""

from __future__ import annotations

import dataclasses
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from ..config import DEFAULT_ESTIMATED_DURATION, DEFAULT_SERVICES
from ..errors import InvalidTransitionError

ID_PATTERN = re.compile(r"[A-Za-z0-9-]+")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_job_id(prefix: str = "collection") -> str:
    return f"{prefix}-{uuid.uuid4()}"


class CollectionType(str, Enum):
    """Kind of collection run."""
    FULL = "full"
    INCREMENTAL = "incremental"
    TARGETED = "targeted"


class JobState(str, Enum):
    """Job lifecycle states.

    State transitions:
    - STARTED -> IN_PROGRESS (first progress report)
    - IN_PROGRESS -> COMPLETED (dispatcher finished)
    - STARTED | IN_PROGRESS -> CANCELLED (caller cancelled)
    - STARTED | IN_PROGRESS -> FAILED (dispatcher error)
    """
    STARTED = "started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Check if this is a terminal state."""
        return self in {
            JobState.COMPLETED,
            JobState.CANCELLED,
            JobState.FAILED,
        }

    @property
    def is_active(self) -> bool:
        """Check if the job is still active."""
        return self in {
            JobState.STARTED,
            JobState.IN_PROGRESS,
        }


VALID_TRANSITIONS: dict[JobState, set[JobState]] = {
    JobState.STARTED: {JobState.IN_PROGRESS, JobState.CANCELLED, JobState.FAILED},
    JobState.IN_PROGRESS: {JobState.COMPLETED, JobState.CANCELLED, JobState.FAILED},
    # Terminal states have no valid transitions
    JobState.COMPLETED: set(),
    JobState.CANCELLED: set(),
    JobState.FAILED: set(),
}

# Position of each state along the lifecycle; polling must never see it decrease.
STATE_ORDER: dict[JobState, int] = {
    JobState.STARTED: 0,
    JobState.IN_PROGRESS: 1,
    JobState.COMPLETED: 2,
    JobState.CANCELLED: 2,
    JobState.FAILED: 2,
}


@dataclass(frozen=True)
class JobRecord:
    """Persistent record of one collection run.

    Records are immutable: every change produces a new record, which the
    store swaps in whole so readers always see a consistent snapshot.
    """
    owner_id: str
    collection_type: CollectionType
    requested_services: tuple[str, ...] = DEFAULT_SERVICES
    job_id: str = field(default_factory=new_job_id)

    state: JobState = JobState.STARTED
    progress_percent: int = 0
    records_processed: int = 0

    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None

    estimated_duration: str = DEFAULT_ESTIMATED_DURATION

    error: str | None = None
    error_code: str | None = None

    def can_transition_to(self, new_state: JobState) -> bool:
        """Check if transition to new_state is valid."""
        return new_state in VALID_TRANSITIONS.get(self.state, set())

    def transition_to(self, new_state: JobState) -> JobRecord:
        """Create a new JobRecord with updated state.

        Raises:
            InvalidTransitionError: If the transition is invalid
        """
        if not self.can_transition_to(new_state):
            raise InvalidTransitionError(
                from_state=self.state.value,
                to_state=new_state.value,
            )

        now = utcnow()
        return dataclasses.replace(
            self,
            state=new_state,
            updated_at=now,
            completed_at=now if new_state.is_terminal else self.completed_at,
        )

    def with_progress(self, progress_percent: int, records_processed: int) -> JobRecord:
        """Create a new JobRecord with updated progress.

        Neither counter is allowed to regress: lower inputs keep the
        previous value.
        """
        return dataclasses.replace(
            self,
            progress_percent=max(self.progress_percent, progress_percent),
            records_processed=max(self.records_processed, records_processed),
            updated_at=utcnow(),
        )

    def with_final_count(self, records_processed: int) -> JobRecord:
        """Create a new JobRecord carrying the authoritative final count."""
        return dataclasses.replace(
            self,
            progress_percent=100,
            records_processed=records_processed,
            updated_at=utcnow(),
        )

    def with_error(self, error: str, error_code: str | None = None) -> JobRecord:
        """Create a new JobRecord with error set."""
        return dataclasses.replace(
            self,
            error=error,
            error_code=error_code,
            updated_at=utcnow(),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "job_id": self.job_id,
            "owner_id": self.owner_id,
            "collection_type": self.collection_type.value,
            "requested_services": list(self.requested_services),
            "state": self.state.value,
            "progress_percent": self.progress_percent,
            "records_processed": self.records_processed,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "estimated_duration": self.estimated_duration,
            "error": self.error,
            "error_code": self.error_code,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JobRecord:
        """Deserialize from dictionary."""
        completed_at = data.get("completed_at")
        return cls(
            job_id=data["job_id"],
            owner_id=data["owner_id"],
            collection_type=CollectionType(data["collection_type"]),
            requested_services=tuple(data.get("requested_services") or DEFAULT_SERVICES),
            state=JobState(data.get("state", "started")),
            progress_percent=int(data.get("progress_percent", 0)),
            records_processed=int(data.get("records_processed", 0)),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            completed_at=datetime.fromisoformat(completed_at) if completed_at else None,
            estimated_duration=data.get("estimated_duration", DEFAULT_ESTIMATED_DURATION),
            error=data.get("error"),
            error_code=data.get("error_code"),
        )


# =============================================================================
# Projections
# =============================================================================


@dataclass(frozen=True)
class JobStatusView:
    """Read-only status projection of a job."""
    job_id: str
    state: JobState
    progress_percent: int
    records_processed: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, job: JobRecord) -> JobStatusView:
        return cls(
            job_id=job.job_id,
            state=job.state,
            progress_percent=job.progress_percent,
            records_processed=job.records_processed,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )


@dataclass(frozen=True)
class JobResultsView:
    """Results projection; only ever built from a completed job."""
    job_id: str
    total_records: int
    services_processed: tuple[str, ...]
    completed_at: datetime

    @classmethod
    def from_record(cls, job: JobRecord) -> JobResultsView:
        return cls(
            job_id=job.job_id,
            total_records=job.records_processed,
            services_processed=job.requested_services,
            completed_at=job.completed_at or job.updated_at,
        )


@dataclass(frozen=True)
class TriggerReceipt:
    job_id: str
    state: JobState
    estimated_duration: str


@dataclass(frozen=True)
class CancelAck:
    job_id: str
    state: JobState
    changed: bool


__all__ = [
    "ID_PATTERN",
    "CollectionType",
    "JobState",
    "VALID_TRANSITIONS",
    "STATE_ORDER",
    "JobRecord",
    "JobStatusView",
    "JobResultsView",
    "TriggerReceipt",
    "CancelAck",
    "new_job_id",
    "utcnow",
]
