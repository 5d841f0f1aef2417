"""
Shared test fixtures for the collection tracker tests.

This module provides:
- A recording dispatcher that accepts jobs and does no work
- A store, event bus and job manager wired together
- Helpers to let background hand-offs run
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

import pytest

from collection_runtime.config import TrackerConfig
from collection_runtime.dispatch.base import CollectionDispatcher, ProgressReporter
from collection_runtime.events import InMemoryEventBus
from collection_runtime.jobs import CollectionJobManager, CollectionType, InMemoryJobStore
from collection_runtime.logging import StructuredLogger

# =============================================================================
# Fake dispatchers
# =============================================================================


@dataclass
class DispatchCall:
    job_id: str
    collection_type: CollectionType
    services: tuple[str, ...]
    reporter: ProgressReporter


@dataclass
class RecordingDispatcher(CollectionDispatcher):
    """Accepts every job and records it; tests drive the reporter by hand."""

    calls: list[DispatchCall] = field(default_factory=list)
    shutdown_called: bool = False

    async def dispatch(
        self,
        job_id: str,
        collection_type: CollectionType,
        services: Sequence[str],
        reporter: ProgressReporter,
    ) -> None:
        self.calls.append(DispatchCall(job_id, collection_type, tuple(services), reporter))

    async def shutdown(self) -> None:
        self.shutdown_called = True


class ExplodingDispatcher(CollectionDispatcher):
    """Refuses every job."""

    async def dispatch(self, job_id, collection_type, services, reporter) -> None:
        raise RuntimeError("upstream unavailable")


async def settle(rounds: int = 5) -> None:
    """Give background tasks a few turns of the event loop."""
    for _ in range(rounds):
        await asyncio.sleep(0)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def config() -> TrackerConfig:
    return TrackerConfig(log_format="text", log_level="DEBUG")


@pytest.fixture
def logger() -> StructuredLogger:
    return StructuredLogger("collection_runtime.tests", level="DEBUG", json_output=False)


@pytest.fixture
def store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def event_bus() -> InMemoryEventBus:
    return InMemoryEventBus()


@pytest.fixture
def manager(store, dispatcher, config, event_bus, logger) -> CollectionJobManager:
    return CollectionJobManager(
        store,
        dispatcher,
        config=config,
        event_bus=event_bus,
        logger=logger,
    )


@pytest.fixture
def flush():
    return settle


@pytest.fixture
def capture(caplog):
    """Route a StructuredLogger's records into ``caplog``.

    Tracker loggers do not propagate to the root logger, so caplog's
    handler is attached to them directly.
    """
    attached: list[logging.Logger] = []

    def attach(logger: StructuredLogger, level: int = logging.DEBUG) -> None:
        target = logging.getLogger(logger.name)
        caplog.set_level(level, logger=logger.name)
        target.addHandler(caplog.handler)
        attached.append(target)

    yield attach
    for target in attached:
        target.removeHandler(caplog.handler)
