"""Value objects for the execution domain."""

from .enums import DowntimeType, PriorityLevel, TransitionAction, WorkOrderStatus
from .quantity import ProductionQuantities, QuantityLedger
from .time_interval import TimeInterval, duration_minutes, overlaps

__all__ = [
    "DowntimeType",
    "PriorityLevel",
    "ProductionQuantities",
    "QuantityLedger",
    "TimeInterval",
    "TransitionAction",
    "WorkOrderStatus",
    "duration_minutes",
    "overlaps",
]
