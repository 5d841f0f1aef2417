"""
Dispatcher contract.

The job manager hands every triggered job to a CollectionDispatcher and
never waits for the work itself. The dispatcher reports back through the
ProgressReporter it was given; the manager implements that protocol.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..jobs.types import CollectionType, JobRecord


@runtime_checkable
class ProgressReporter(Protocol):
    """Callbacks a dispatcher uses to drive a job forward.

    ``report_progress``, ``complete`` and ``fail`` return the updated
    record, or None when the job is already terminal (for example because
    it was cancelled). A None return means the dispatcher should stop.
    """

    async def report_progress(
        self,
        job_id: str,
        progress_percent: int,
        records_processed: int,
    ) -> JobRecord | None: ...

    async def complete(self, job_id: str, final_records_processed: int) -> JobRecord | None: ...

    async def fail(
        self,
        job_id: str,
        error: str,
        error_code: str | None = None,
    ) -> JobRecord | None: ...

    async def is_cancelled(self, job_id: str) -> bool: ...


class CollectionDispatcher(ABC):
    """Starts collection work for a job.

    ``dispatch`` must return promptly; long-running work belongs in the
    background. Cancellation is cooperative: implementations consult
    ``reporter.is_cancelled`` and stop once a callback returns None.
    """

    @abstractmethod
    async def dispatch(
        self,
        job_id: str,
        collection_type: CollectionType,
        services: Sequence[str],
        reporter: ProgressReporter,
    ) -> None:
        """Accept a job for background execution."""
        ...

    async def shutdown(self) -> None:
        """Stop background work. Default: nothing to stop."""
        return None


__all__ = [
    "ProgressReporter",
    "CollectionDispatcher",
]
