"""
Process-level wiring for the collection tracker.

One store and one dispatcher are constructed per process and injected
into the job manager; nothing in the runtime is a module-level singleton.
"""

from __future__ import annotations

from collections.abc import Mapping

from .config import TrackerConfig
from .dispatch import CollectionWorker, WorkerPoolDispatcher, simulated_workers
from .events import EventBus
from .jobs import AccessGuard, CollectionJobManager, InMemoryJobStore, JobStore
from .logging import StructuredLogger, configure_logging


def build_tracker(
    config: TrackerConfig | None = None,
    *,
    workers: Mapping[str, CollectionWorker] | None = None,
    store: JobStore | None = None,
    event_bus: EventBus | None = None,
    logger: StructuredLogger | None = None,
) -> CollectionJobManager:
    """Assemble a CollectionJobManager backed by the local worker pool.

    Without ``workers``, every known service gets a simulated worker.
    """
    config = config or TrackerConfig()
    logger = logger or configure_logging(
        level=config.log_level,
        json_output=config.log_format == "json",
    )
    dispatcher = WorkerPoolDispatcher(
        workers if workers is not None else simulated_workers(config.known_services),
        max_concurrent_jobs=config.max_concurrent_jobs,
        logger=logger,
    )
    return CollectionJobManager(
        store or InMemoryJobStore(),
        dispatcher,
        guard=AccessGuard(config.admin_roles),
        config=config,
        event_bus=event_bus,
        logger=logger,
    )


__all__ = ["build_tracker"]
