"""
Local asyncio dispatcher.

Runs the requested services of a job one after another inside a
background task, reporting cumulative progress to the job manager after
each service. Suitable for single-process deployments and local
development; the workers themselves are pluggable.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from typing import Protocol, runtime_checkable

from ..errors import NotFoundError, TrackerError
from ..jobs.types import CollectionType
from ..logging import StructuredLogger, get_logger
from .base import CollectionDispatcher, ProgressReporter


@runtime_checkable
class CollectionWorker(Protocol):
    """Extracts data from one upstream service.

    Returns the number of records collected.
    """

    async def collect(self, job_id: str, collection_type: CollectionType) -> int: ...


class SimulatedCollectionWorker:
    """Worker that pretends to collect a fixed number of records."""

    def __init__(self, records: int = 500, delay: float = 0.0):
        self.records = records
        self.delay = delay

    async def collect(self, job_id: str, collection_type: CollectionType) -> int:
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.records


class WorkerPoolDispatcher(CollectionDispatcher):
    """Dispatches jobs to per-service workers on the running event loop.

    At most ``max_concurrent_jobs`` jobs execute at once; further jobs wait
    on a semaphore in their own task, so ``dispatch`` never blocks.
    """

    def __init__(
        self,
        workers: Mapping[str, CollectionWorker],
        *,
        max_concurrent_jobs: int = 8,
        logger: StructuredLogger | None = None,
    ):
        self._workers = dict(workers)
        self._semaphore = asyncio.Semaphore(max_concurrent_jobs)
        self._tasks: set[asyncio.Task] = set()
        self._log = logger or get_logger()

    @property
    def active_tasks(self) -> int:
        return len(self._tasks)

    async def dispatch(
        self,
        job_id: str,
        collection_type: CollectionType,
        services: Sequence[str],
        reporter: ProgressReporter,
    ) -> None:
        task = asyncio.create_task(
            self._run(job_id, collection_type, tuple(services), reporter),
            name=f"collection:{job_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def join(self) -> None:
        """Wait for every dispatched job to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run(
        self,
        job_id: str,
        collection_type: CollectionType,
        services: tuple[str, ...],
        reporter: ProgressReporter,
    ) -> None:
        async with self._semaphore:
            try:
                await self._collect_all(job_id, collection_type, services, reporter)
            except NotFoundError as exc:
                self._log.log_error(exc, f"Job {job_id} vanished during collection", job_id=job_id)
            except TrackerError as exc:
                self._log.log_error(exc, f"Collection of job {job_id} aborted", job_id=job_id)
                await reporter.fail(job_id, exc.message, exc.code.name)

    async def _collect_all(
        self,
        job_id: str,
        collection_type: CollectionType,
        services: tuple[str, ...],
        reporter: ProgressReporter,
    ) -> None:
        if await reporter.report_progress(job_id, 0, 0) is None:
            return

        total = len(services)
        records = 0
        for index, service in enumerate(services):
            if await reporter.is_cancelled(job_id):
                self._log.info("Collection stopped after cancel", job_id=job_id, service=service)
                return

            worker = self._workers.get(service)
            if worker is None:
                await reporter.fail(
                    job_id,
                    f"No worker registered for service {service!r}",
                    "WORKER_NOT_FOUND",
                )
                return

            try:
                collected = await worker.collect(job_id, collection_type)
                if not isinstance(collected, int) or isinstance(collected, bool) or collected < 0:
                    raise ValueError(f"invalid record count {collected!r}")
                records += collected
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self._log.log_error(exc, f"Worker {service} failed", job_id=job_id, service=service)
                await reporter.fail(job_id, f"{service}: {exc}", "WORKER_ERROR")
                return

            done = index + 1
            if done < total:
                updated = await reporter.report_progress(job_id, done * 100 // total, records)
                if updated is None:
                    return

        await reporter.complete(job_id, records)


def simulated_workers(
    services: Sequence[str],
    *,
    records: int = 500,
    delay: float = 0.0,
) -> dict[str, CollectionWorker]:
    """Build one SimulatedCollectionWorker per service name."""
    return {name: SimulatedCollectionWorker(records=records, delay=delay) for name in services}


__all__ = [
    "CollectionWorker",
    "SimulatedCollectionWorker",
    "WorkerPoolDispatcher",
    "simulated_workers",
]
