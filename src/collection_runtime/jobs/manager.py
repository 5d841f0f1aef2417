"""
Job manager for collection lifecycle operations.

This module provides the CollectionJobManager that drives the collection
state machine: triggering jobs and handing them to the dispatcher,
applying dispatcher callbacks, and serving guarded status, results and
cancel requests.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

from ..config import TrackerConfig
from ..dispatch.base import CollectionDispatcher
from ..errors import (
    AlreadyExistsError,
    AlreadyTerminalError,
    ErrorContext,
    InvalidTransitionError,
    NotFoundError,
    NotReadyError,
    ValidationError,
)
from ..events import EventBus, JobEvent, JobEventType
from ..logging import StructuredLogger, TransitionLog, get_logger
from .guard import AccessGuard
from .store import JobFilter, JobMutator, JobStore
from .types import (
    ID_PATTERN,
    CancelAck,
    CollectionType,
    JobRecord,
    JobResultsView,
    JobState,
    JobStatusView,
    TriggerReceipt,
    new_job_id,
)

_MAX_ID_ATTEMPTS = 3


def _is_count(value: object) -> bool:
    """Non-negative int; bools are rejected."""
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


class CollectionJobManager:
    """Manages the collection job lifecycle.

    The CollectionJobManager is responsible for:
    - Validating and creating jobs, then handing them to the dispatcher
    - State transitions with validation (all via ``JobStore.update``)
    - Access-checked status, results and cancellation
    - Event emission for observability

    It also implements the ProgressReporter protocol the dispatcher calls
    back into.
    """

    def __init__(
        self,
        store: JobStore,
        dispatcher: CollectionDispatcher,
        *,
        guard: AccessGuard | None = None,
        config: TrackerConfig | None = None,
        event_bus: EventBus | None = None,
        logger: StructuredLogger | None = None,
    ):
        self._store = store
        self._dispatcher = dispatcher
        self._config = config or TrackerConfig()
        self._guard = guard or AccessGuard(self._config.admin_roles)
        self._event_bus = event_bus
        self._log = logger or get_logger()
        self._handoffs: set[asyncio.Task] = set()

    @property
    def guard(self) -> AccessGuard:
        return self._guard

    @property
    def config(self) -> TrackerConfig:
        return self._config

    # =========================================================================
    # Caller-facing operations
    # =========================================================================

    async def trigger(
        self,
        caller_id: str,
        collection_type: CollectionType | str,
        services: Sequence[str] | None = None,
    ) -> TriggerReceipt:
        """Create a job for ``caller_id`` and hand it to the dispatcher.

        Returns as soon as the record is stored; the dispatch runs as a
        background task.

        Raises:
            ValidationError: If any input is malformed (no job is created)
        """
        self._validate_id(caller_id, "user_id")
        kind = self._validate_collection_type(collection_type)
        requested = self._validate_services(services)

        job = await self._create_job(caller_id, kind, requested)

        self._log.log_transition(TransitionLog(
            job_id=job.job_id,
            from_state=None,
            to_state=job.state.value,
            reason=f"triggered by {caller_id}",
        ))
        await self._emit(job, JobEventType.JOB_STARTED)

        task = asyncio.create_task(self._hand_off(job), name=f"handoff:{job.job_id}")
        self._handoffs.add(task)
        task.add_done_callback(self._handoffs.discard)

        return TriggerReceipt(
            job_id=job.job_id,
            state=job.state,
            estimated_duration=job.estimated_duration,
        )

    async def status(self, job_id: str, caller_id: str, caller_role: str | None) -> JobStatusView:
        """Status projection of a job.

        Raises:
            NotFoundError: If the job doesn't exist
            ForbiddenError: If the caller may not see the job
        """
        job = await self._get_guarded(job_id, caller_id, caller_role, "status")
        return JobStatusView.from_record(job)

    async def results(self, job_id: str, caller_id: str, caller_role: str | None) -> JobResultsView:
        """Results projection of a completed job.

        Raises:
            NotFoundError: If the job doesn't exist
            ForbiddenError: If the caller may not see the job
            NotReadyError: If the job is not completed
        """
        job = await self._get_guarded(job_id, caller_id, caller_role, "results")
        if job.state != JobState.COMPLETED:
            raise NotReadyError(context=ErrorContext(job_id=job_id, caller_id=caller_id, operation="results"))
        return JobResultsView.from_record(job)

    async def cancel(self, job_id: str, caller_id: str, caller_role: str | None) -> CancelAck:
        """Cancel a job.

        Cancelling a job that is already cancelled (or failed) succeeds
        without changing it.

        Raises:
            NotFoundError: If the job doesn't exist
            ForbiddenError: If the caller may not cancel the job
            AlreadyTerminalError: If the job already completed
        """
        await self._get_guarded(job_id, caller_id, caller_role, "cancel")

        previous: list[JobState] = []

        def mutate(job: JobRecord) -> JobRecord:
            previous.append(job.state)
            if job.state == JobState.COMPLETED:
                raise AlreadyTerminalError(
                    context=ErrorContext(job_id=job_id, caller_id=caller_id, operation="cancel"),
                )
            if job.state.is_terminal:
                return job
            return job.transition_to(JobState.CANCELLED)

        job = await self._store.update(job_id, mutate)
        changed = previous[-1] != job.state

        if changed:
            self._log.log_transition(TransitionLog(
                job_id=job_id,
                from_state=previous[-1].value,
                to_state=job.state.value,
                progress_percent=job.progress_percent,
                reason=f"cancelled by {caller_id}",
            ))
            await self._emit(job, JobEventType.JOB_CANCELLED, previous[-1])

        return CancelAck(job_id=job_id, state=job.state, changed=changed)

    # =========================================================================
    # Dispatcher callbacks (ProgressReporter)
    # =========================================================================

    async def report_progress(
        self,
        job_id: str,
        progress_percent: int,
        records_processed: int,
    ) -> JobRecord | None:
        """Apply a progress report from the dispatcher.

        Moves ``started`` to ``in_progress`` on the first report. Neither
        counter regresses. Reports on a terminal job are logged and
        ignored (returns None).

        Raises:
            NotFoundError: If the job doesn't exist
            ValidationError: If a value is out of range
        """
        self._validate_progress(progress_percent, records_processed)

        previous: list[JobState] = []

        def mutate(job: JobRecord) -> JobRecord:
            previous.append(job.state)
            if job.state == JobState.STARTED:
                job = job.transition_to(JobState.IN_PROGRESS)
            elif job.state != JobState.IN_PROGRESS:
                raise InvalidTransitionError(
                    from_state=job.state.value,
                    to_state=JobState.IN_PROGRESS.value,
                    context=ErrorContext(job_id=job_id, operation="report_progress"),
                )
            return job.with_progress(progress_percent, records_processed)

        job = await self._apply_report(job_id, mutate, "report_progress")
        if job is None:
            return None

        if previous[-1] != job.state:
            self._log.log_transition(TransitionLog(
                job_id=job_id,
                from_state=previous[-1].value,
                to_state=job.state.value,
                progress_percent=job.progress_percent,
                records_processed=job.records_processed,
            ))
        await self._emit(job, JobEventType.JOB_PROGRESS, previous[-1])
        return job

    async def complete(self, job_id: str, final_records_processed: int) -> JobRecord | None:
        """Mark a job completed; the only path that makes results servable.

        Raises:
            NotFoundError: If the job doesn't exist
            ValidationError: If the record count is negative
        """
        if not _is_count(final_records_processed):
            raise ValidationError(
                "final_records_processed must be a non-negative integer",
                field_name="final_records_processed",
            )

        previous: list[JobState] = []

        def mutate(job: JobRecord) -> JobRecord:
            previous.append(job.state)
            if job.state == JobState.STARTED:
                job = job.transition_to(JobState.IN_PROGRESS)
            return job.transition_to(JobState.COMPLETED).with_final_count(final_records_processed)

        job = await self._apply_report(job_id, mutate, "complete")
        if job is None:
            return None

        self._log.log_transition(TransitionLog(
            job_id=job_id,
            from_state=previous[-1].value,
            to_state=job.state.value,
            progress_percent=job.progress_percent,
            records_processed=job.records_processed,
        ))
        await self._emit(job, JobEventType.JOB_COMPLETED, previous[-1])
        return job

    async def fail(
        self,
        job_id: str,
        error: str,
        error_code: str | None = None,
    ) -> JobRecord | None:
        """Mark a job failed on behalf of the dispatcher.

        Raises:
            NotFoundError: If the job doesn't exist
        """
        previous: list[JobState] = []

        def mutate(job: JobRecord) -> JobRecord:
            previous.append(job.state)
            return job.transition_to(JobState.FAILED).with_error(error, error_code)

        job = await self._apply_report(job_id, mutate, "fail")
        if job is None:
            return None

        self._log.log_transition(TransitionLog(
            job_id=job_id,
            from_state=previous[-1].value,
            to_state=job.state.value,
            progress_percent=job.progress_percent,
            reason=error,
        ))
        await self._emit(job, JobEventType.JOB_FAILED, previous[-1])
        return job

    async def is_cancelled(self, job_id: str) -> bool:
        """Cooperative cancellation check for dispatchers."""
        job = await self._store.get(job_id)
        if job is None:
            raise NotFoundError(job_id=job_id)
        return job.state == JobState.CANCELLED

    # =========================================================================
    # Internal
    # =========================================================================

    async def get(self, job_id: str) -> JobRecord | None:
        """Get a job by ID without access checks."""
        return await self._store.get(job_id)

    async def active_jobs(self, owner_id: str | None = None) -> list[JobRecord]:
        """Jobs still in ``started`` or ``in_progress``, newest first."""
        return await self._store.list(JobFilter(owner_id=owner_id, state={JobState.STARTED, JobState.IN_PROGRESS}))

    async def job_counts(self) -> dict[str, int]:
        """Number of stored jobs per state."""
        return {state.value: await self._store.count(JobFilter(state=state)) for state in JobState}

    async def shutdown(self) -> None:
        """Wait for outstanding hand-offs, then stop the dispatcher."""
        if self._handoffs:
            await asyncio.gather(*list(self._handoffs), return_exceptions=True)

        active = await self.active_jobs()
        if active:
            self._log.warning(
                f"Shutting down with {len(active)} active job(s)",
                active_jobs=[job.job_id for job in active],
                job_counts=await self.job_counts(),
            )
        await self._dispatcher.shutdown()

    async def _create_job(
        self,
        caller_id: str,
        kind: CollectionType,
        requested: tuple[str, ...],
    ) -> JobRecord:
        attempts = 0
        while True:
            attempts += 1
            job = JobRecord(
                job_id=new_job_id(self._config.job_id_prefix),
                owner_id=caller_id,
                collection_type=kind,
                requested_services=requested,
                estimated_duration=self._config.estimated_duration,
            )
            try:
                return await self._store.create(job)
            except AlreadyExistsError:
                if attempts >= _MAX_ID_ATTEMPTS:
                    raise

    async def _hand_off(self, job: JobRecord) -> None:
        try:
            await self._dispatcher.dispatch(
                job.job_id,
                job.collection_type,
                job.requested_services,
                self,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._log.log_error(exc, f"Dispatch of job {job.job_id} failed", job_id=job.job_id)
            await self.fail(job.job_id, f"dispatch failed: {exc}", "DISPATCH_ERROR")

    async def _apply_report(self, job_id: str, mutate: JobMutator, operation: str) -> JobRecord | None:
        try:
            return await self._store.update(job_id, mutate)
        except InvalidTransitionError as exc:
            self._log.warning(
                f"Ignored {operation} for job {job_id}: {exc.message}",
                job_id=job_id,
                operation=operation,
                error_code=exc.code.value,
            )
            return None

    async def _get_guarded(
        self,
        job_id: str,
        caller_id: str,
        caller_role: str | None,
        operation: str,
    ) -> JobRecord:
        job = await self._store.get(job_id)
        if job is None:
            raise NotFoundError(
                job_id=job_id,
                context=ErrorContext(job_id=job_id, caller_id=caller_id, operation=operation),
            )
        self._guard.require_access(job, caller_id, caller_role, operation=operation)
        return job

    def _validate_id(self, value: str, field_name: str) -> None:
        if not isinstance(value, str) or not ID_PATTERN.fullmatch(value):
            raise ValidationError(f"Invalid {field_name} format", field_name=field_name)

    def _validate_collection_type(self, value: CollectionType | str) -> CollectionType:
        try:
            return CollectionType(value)
        except ValueError:
            allowed = ", ".join(t.value for t in CollectionType)
            raise ValidationError(
                f"Invalid collection type {value!r}; expected one of: {allowed}",
                field_name="collection_type",
            ) from None

    def _validate_services(self, services: Sequence[str] | None) -> tuple[str, ...]:
        if services is None:
            return tuple(self._config.default_services)
        if isinstance(services, str) or not isinstance(services, Sequence):
            raise ValidationError("Services must be an array", field_name="services")
        if not services:
            raise ValidationError("Services must not be empty", field_name="services")
        unknown = [s for s in services if s not in self._config.known_services]
        if unknown:
            raise ValidationError(f"Unknown services: {', '.join(map(str, unknown))}", field_name="services")
        if len(set(services)) != len(services):
            raise ValidationError("Services must not contain duplicates", field_name="services")
        return tuple(services)

    def _validate_progress(self, progress_percent: int, records_processed: int) -> None:
        if not _is_count(progress_percent) or progress_percent > 100:
            raise ValidationError("progress_percent must be an integer in 0..100", field_name="progress_percent")
        if not _is_count(records_processed):
            raise ValidationError("records_processed must be a non-negative integer", field_name="records_processed")

    async def _emit(
        self,
        job: JobRecord,
        event_type: JobEventType,
        previous_state: JobState | None = None,
    ) -> None:
        if not self._event_bus:
            return

        await self._event_bus.publish(JobEvent(
            type=event_type,
            job_id=job.job_id,
            owner_id=job.owner_id,
            data={
                "state": job.state.value,
                "previous_state": previous_state.value if previous_state else None,
                "progress_percent": job.progress_percent,
                "records_processed": job.records_processed,
                "error": job.error,
            },
        ))


__all__ = [
    "CollectionJobManager",
]
