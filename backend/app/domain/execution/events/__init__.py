"""
Domain Events Module

Exports all execution domain events and the handler interface.
"""

from ...shared.base import DomainEvent
from .domain_events import (
    DomainEventHandler,
    DowntimeActivationChanged,
    # Downtime events
    DowntimeOpened,
    DowntimeResolved,
    DowntimeUpdated,
    QuantityShortfallWarning,
    WorkOrderActivationChanged,
    # Work order events
    WorkOrderCreated,
    WorkOrderPlanUpdated,
    WorkOrderStatusChanged,
    # Work result events
    WorkResultRecorded,
    WorkResultReversed,
    WorkResultUpdated,
)

__all__ = [
    "DomainEvent",
    "DomainEventHandler",
    "DowntimeActivationChanged",
    "DowntimeOpened",
    "DowntimeResolved",
    "DowntimeUpdated",
    "QuantityShortfallWarning",
    "WorkOrderActivationChanged",
    "WorkOrderCreated",
    "WorkOrderPlanUpdated",
    "WorkOrderStatusChanged",
    "WorkResultRecorded",
    "WorkResultReversed",
    "WorkResultUpdated",
]
