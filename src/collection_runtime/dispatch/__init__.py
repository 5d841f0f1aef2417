"""
Collection dispatch: the contract between the job manager and the
services that perform the actual extraction.
"""

from .base import (
    CollectionDispatcher,
    ProgressReporter,
)
from .local import (
    CollectionWorker,
    SimulatedCollectionWorker,
    WorkerPoolDispatcher,
    simulated_workers,
)

__all__ = [
    "CollectionDispatcher",
    "ProgressReporter",
    "CollectionWorker",
    "SimulatedCollectionWorker",
    "WorkerPoolDispatcher",
    "simulated_workers",
]
