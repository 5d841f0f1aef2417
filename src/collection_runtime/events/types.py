"""
Job lifecycle event types.

Every state or progress change accepted by the job manager is published
as a JobEvent so observers (dashboards, audit sinks, tests) can follow a
collection run without polling the store.
"""

from __future__ import annotations

import dataclasses
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class JobEventType(str, Enum):
    JOB_STARTED = "job.started"
    JOB_PROGRESS = "job.progress"
    JOB_COMPLETED = "job.completed"
    JOB_FAILED = "job.failed"
    JOB_CANCELLED = "job.cancelled"


@dataclass
class JobEvent:
    """One lifecycle change of one job; ``data`` holds a state snapshot."""
    type: JobEventType = JobEventType.JOB_PROGRESS
    job_id: str | None = None
    owner_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: float = field(default_factory=time.time)
    schema_version: int = 1

    def to_dict(self) -> dict[str, Any]:
        payload = dataclasses.asdict(self)
        payload["type"] = self.type.value
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> JobEvent:
        known = {f.name for f in dataclasses.fields(cls)}
        values = {k: v for k, v in payload.items() if k in known}
        values["type"] = JobEventType(payload["type"])
        values["data"] = dict(payload.get("data") or {})
        return cls(**values)


__all__ = [
    "JobEventType",
    "JobEvent",
]
