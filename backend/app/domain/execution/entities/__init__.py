"""Execution domain entities."""

from .downtime import DowntimeEvent
from .work_order import WorkOrder
from .work_result import WorkResult

__all__ = ["DowntimeEvent", "WorkOrder", "WorkResult"]
