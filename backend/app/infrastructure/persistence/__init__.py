"""Persistence primitives shared by the execution stores."""

from .in_memory import InMemoryExecutionStore, InMemoryUnitOfWork
from .locks import AggregateLockRegistry, lock_key
from .unit_of_work import TrackingUnitOfWork

__all__ = [
    "AggregateLockRegistry",
    "InMemoryExecutionStore",
    "InMemoryUnitOfWork",
    "TrackingUnitOfWork",
    "lock_key",
]
