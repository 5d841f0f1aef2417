"""
Job store implementations.

This module provides the JobStore interface and an in-memory
implementation for persisting collection job records.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

from ..errors import AlreadyExistsError, NotFoundError, StorageError
from .types import CollectionType, JobRecord, JobState

JobMutator = Callable[[JobRecord], JobRecord]


@dataclass
class JobFilter:
    """Filter criteria for listing jobs."""
    owner_id: str | None = None
    state: JobState | set[JobState] | None = None
    collection_type: CollectionType | None = None
    limit: int = 100
    offset: int = 0
    order_desc: bool = True

    def matches(self, job: JobRecord) -> bool:
        """Check if a job matches this filter."""
        if self.owner_id and job.owner_id != self.owner_id:
            return False
        if self.collection_type and job.collection_type != self.collection_type:
            return False
        if self.state:
            if isinstance(self.state, set):
                if job.state not in self.state:
                    return False
            elif job.state != self.state:
                return False
        return True


class JobStore(ABC):
    """Abstract interface for job persistence.

    Implementations must serialize ``update`` calls per job id while
    letting distinct job ids proceed concurrently.
    """

    @abstractmethod
    async def create(self, job: JobRecord) -> JobRecord:
        """Create a new job record.

        Raises:
            AlreadyExistsError: If job_id already exists
        """
        ...

    @abstractmethod
    async def get(self, job_id: str) -> JobRecord | None:
        """Get a job by ID."""
        ...

    @abstractmethod
    async def update(self, job_id: str, mutator: JobMutator) -> JobRecord:
        """Atomically apply ``mutator`` to the stored record.

        The mutator receives the current record and returns its
        replacement. If it raises, nothing is stored and the exception
        propagates.

        Raises:
            NotFoundError: If the job doesn't exist
        """
        ...

    @abstractmethod
    async def list(self, filter: JobFilter | None = None) -> list[JobRecord]:
        """List jobs matching the filter."""
        ...

    @abstractmethod
    async def count(self, filter: JobFilter | None = None) -> int:
        """Count jobs matching the filter."""
        ...


class InMemoryJobStore(JobStore):
    """In-memory job store implementation.

    Suitable for testing and single-process deployments. Each job id gets
    its own asyncio.Lock for read-modify-write; reads take no lock because
    records are immutable and replaced whole.
    """

    def __init__(self):
        self._jobs: dict[str, JobRecord] = {}
        self._key_locks: dict[str, asyncio.Lock] = {}
        self._create_lock = asyncio.Lock()

    async def create(self, job: JobRecord) -> JobRecord:
        async with self._create_lock:
            if job.job_id in self._jobs:
                raise AlreadyExistsError(job_id=job.job_id)

            self._key_locks[job.job_id] = asyncio.Lock()
            self._jobs[job.job_id] = job
            return job

    async def get(self, job_id: str) -> JobRecord | None:
        return self._jobs.get(job_id)

    async def update(self, job_id: str, mutator: JobMutator) -> JobRecord:
        lock = self._key_locks.get(job_id)
        if lock is None:
            raise NotFoundError(job_id=job_id)

        async with lock:
            current = self._jobs[job_id]
            updated = mutator(current)
            if updated is current:
                return current
            if not isinstance(updated, JobRecord) or updated.job_id != job_id:
                raise StorageError(f"Mutator returned an invalid record for job {job_id}")

            self._jobs[job_id] = updated
            return updated

    async def list(self, filter: JobFilter | None = None) -> list[JobRecord]:
        jobs = list(self._jobs.values())

        if filter:
            jobs = [j for j in jobs if filter.matches(j)]
            jobs.sort(key=lambda j: j.created_at, reverse=filter.order_desc)
            jobs = jobs[filter.offset:filter.offset + filter.limit]

        return jobs

    async def count(self, filter: JobFilter | None = None) -> int:
        if filter:
            return sum(1 for j in self._jobs.values() if filter.matches(j))
        return len(self._jobs)


__all__ = [
    "JobStore",
    "InMemoryJobStore",
    "JobFilter",
    "JobMutator",
]
