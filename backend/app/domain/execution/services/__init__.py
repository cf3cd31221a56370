"""Domain services for production execution."""

from .downtime_tracker import DowntimeTrackingService
from .work_order_lifecycle import TransitionOutcome, WorkOrderLifecycleService
from .work_result_recorder import WorkResultService

__all__ = [
    "DowntimeTrackingService",
    "TransitionOutcome",
    "WorkOrderLifecycleService",
    "WorkResultService",
]
