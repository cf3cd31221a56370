"""
Domain Events

Events raised by the execution aggregates. They are collected on the
aggregate, published after the unit of work commits, and consumed by
audit and notification handlers.
"""

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from ...shared.base import DomainEvent
from ..value_objects.enums import DowntimeType, TransitionAction, WorkOrderStatus


# Work order events
@dataclass(frozen=True, kw_only=True)
class WorkOrderCreated(DomainEvent):
    """Raised when a work order is planned."""

    work_order_no: str
    planned_quantity: int
    planned_start_date: datetime
    planned_end_date: datetime


@dataclass(frozen=True, kw_only=True)
class WorkOrderStatusChanged(DomainEvent):
    """Raised on every lifecycle transition of a work order."""

    work_order_no: str
    old_status: WorkOrderStatus
    new_status: WorkOrderStatus
    action: TransitionAction
    reason: str | None = None


@dataclass(frozen=True, kw_only=True)
class QuantityShortfallWarning(DomainEvent):
    """
    Raised when a work order completes with actual != planned quantity.

    Acceptance of the shortfall (or surplus) is left to the caller.
    """

    work_order_no: str
    planned_quantity: int
    actual_quantity: int

    @property
    def shortfall(self) -> int:
        """Positive when short of plan, negative when over plan."""
        return self.planned_quantity - self.actual_quantity


@dataclass(frozen=True, kw_only=True)
class WorkOrderPlanUpdated(DomainEvent):
    """Raised when the plan of a not-yet-started work order is revised."""

    work_order_no: str
    changed_fields: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True, kw_only=True)
class WorkOrderActivationChanged(DomainEvent):
    """Raised when a work order is soft-deactivated or reactivated."""

    work_order_no: str
    is_active: bool


# Work result events
@dataclass(frozen=True, kw_only=True)
class WorkResultRecorded(DomainEvent):
    """Raised when production is reported against a work order."""

    work_order_id: UUID
    quantity: int
    good_quantity: int
    defect_quantity: int
    worker_id: UUID | None = None


@dataclass(frozen=True, kw_only=True)
class WorkResultUpdated(DomainEvent):
    """Raised when a recorded result is corrected."""

    work_order_id: UUID
    quantity_delta: int
    good_delta: int
    defect_delta: int
    changed_fields: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True, kw_only=True)
class WorkResultReversed(DomainEvent):
    """Raised when a result is reversed; the record itself is retained."""

    work_order_id: UUID
    quantity: int
    reversed_by: UUID | None = None


# Downtime events
@dataclass(frozen=True, kw_only=True)
class DowntimeOpened(DomainEvent):
    """Raised when equipment stops."""

    equipment_id: UUID
    downtime_id: UUID
    downtime_type: DowntimeType
    timestamp: datetime


@dataclass(frozen=True, kw_only=True)
class DowntimeResolved(DomainEvent):
    """Raised when a stopped equipment is back in service."""

    equipment_id: UUID
    downtime_id: UUID
    timestamp: datetime
    duration_minutes: int


@dataclass(frozen=True, kw_only=True)
class DowntimeUpdated(DomainEvent):
    """Raised when downtime details are patched or annotated."""

    equipment_id: UUID
    downtime_id: UUID
    changed_fields: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True, kw_only=True)
class DowntimeActivationChanged(DomainEvent):
    """Raised when a downtime record is hidden or restored."""

    equipment_id: UUID
    downtime_id: UUID
    is_active: bool


class DomainEventHandler:
    """Base interface for domain event handlers."""

    def can_handle(self, event: DomainEvent) -> bool:
        """Check if this handler can handle the given event."""
        raise NotImplementedError

    async def handle(self, event: DomainEvent) -> None:
        """Handle the domain event."""
        raise NotImplementedError
