"""Repository and collaborator interfaces for the execution domain."""

from .reference_data import ReferenceDataGateway
from .repositories import (
    DowntimeRepository,
    ExecutionStore,
    ExecutionUnitOfWork,
    WorkOrderRepository,
    WorkResultRepository,
)

__all__ = [
    "DowntimeRepository",
    "ExecutionStore",
    "ExecutionUnitOfWork",
    "ReferenceDataGateway",
    "WorkOrderRepository",
    "WorkResultRepository",
]
