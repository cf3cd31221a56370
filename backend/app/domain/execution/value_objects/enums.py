"""Domain enums for production execution."""

from enum import Enum


class WorkOrderStatus(str, Enum):
    """Work order status enumeration."""

    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CLOSED = "closed"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        """Check if work order status represents running production."""
        return self == WorkOrderStatus.IN_PROGRESS

    @property
    def is_terminal(self) -> bool:
        """Check if no further results may be recorded in this status."""
        return self in {
            WorkOrderStatus.COMPLETED,
            WorkOrderStatus.CLOSED,
            WorkOrderStatus.CANCELLED,
        }

    @property
    def accepts_results(self) -> bool:
        return self in {WorkOrderStatus.PLANNED, WorkOrderStatus.IN_PROGRESS}

    def can_transition_to(self, target_status: "WorkOrderStatus") -> bool:
        """Check if work order can transition from current status to target status."""
        valid_transitions = {
            WorkOrderStatus.PLANNED: {
                WorkOrderStatus.IN_PROGRESS,
                WorkOrderStatus.CANCELLED,
            },
            WorkOrderStatus.IN_PROGRESS: {
                WorkOrderStatus.COMPLETED,
                WorkOrderStatus.CANCELLED,
            },
            WorkOrderStatus.COMPLETED: {WorkOrderStatus.CLOSED},
            WorkOrderStatus.CLOSED: set(),  # Terminal state
            WorkOrderStatus.CANCELLED: set(),  # Terminal state
        }
        return target_status in valid_transitions.get(self, set())


class TransitionAction(str, Enum):
    """Explicit lifecycle actions a caller can request on a work order."""

    RELEASE = "release"
    COMPLETE = "complete"
    CLOSE = "close"
    CANCEL = "cancel"

    @property
    def target_status(self) -> WorkOrderStatus:
        return {
            TransitionAction.RELEASE: WorkOrderStatus.IN_PROGRESS,
            TransitionAction.COMPLETE: WorkOrderStatus.COMPLETED,
            TransitionAction.CLOSE: WorkOrderStatus.CLOSED,
            TransitionAction.CANCEL: WorkOrderStatus.CANCELLED,
        }[self]


class PriorityLevel(str, Enum):
    """Priority level enumeration."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def numeric_value(self) -> int:
        """Get numeric value for priority comparison."""
        priority_map = {
            PriorityLevel.LOW: 1,
            PriorityLevel.MEDIUM: 2,
            PriorityLevel.HIGH: 3,
        }
        return priority_map[self]

    def is_higher_than(self, other: "PriorityLevel") -> bool:
        """Check if this priority is higher than another."""
        return self.numeric_value > other.numeric_value


class DowntimeType(str, Enum):
    """Equipment downtime type enumeration."""

    BREAKDOWN = "breakdown"
    SETUP_CHANGE = "setup_change"
    MATERIAL_SHORTAGE = "material_shortage"
    QUALITY_ISSUE = "quality_issue"
    PLANNED_MAINTENANCE = "planned_maintenance"
    UNPLANNED_MAINTENANCE = "unplanned_maintenance"
    NO_ORDER = "no_order"
    OTHER = "other"

    @property
    def is_planned(self) -> bool:
        """Check if the stop was scheduled ahead of time."""
        return self in {DowntimeType.PLANNED_MAINTENANCE, DowntimeType.NO_ORDER}
