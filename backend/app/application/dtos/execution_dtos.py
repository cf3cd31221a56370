"""
Execution Data Transfer Objects.

Request DTOs only shape the payload; business validation happens in the
domain so every rule reports its own error code. Response DTOs provide a
stable API surface independent of the aggregates.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.domain.execution.entities import DowntimeEvent, WorkOrder, WorkResult
from app.domain.execution.value_objects import (
    DowntimeType,
    PriorityLevel,
    TransitionAction,
    WorkOrderStatus,
)


class CreateWorkOrderRequest(BaseModel):
    """DTO for planning a new work order."""

    work_order_no: str = Field(..., description="Work order number, unique per tenant")
    product_id: UUID
    process_id: UUID
    planned_quantity: int = Field(..., description="Units to produce")
    planned_start_date: datetime
    planned_end_date: datetime
    priority: PriorityLevel = PriorityLevel.MEDIUM
    assigned_user_id: UUID | None = None
    remarks: str | None = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "work_order_no": "WO-2024-001",
                "product_id": "8f8e4d2a-4b7c-4f0e-9a55-3f0b1f1c2d01",
                "process_id": "0c1d9b7e-2f6a-4d8e-8b3c-6a5f4e3d2c10",
                "planned_quantity": 100,
                "planned_start_date": "2024-06-01T08:00:00",
                "planned_end_date": "2024-06-01T17:00:00",
                "priority": "high",
            }
        }
    )


class UpdateWorkOrderRequest(BaseModel):
    """DTO for revising the plan of a PLANNED work order; only supplied fields change."""

    planned_quantity: int | None = None
    planned_start_date: datetime | None = None
    planned_end_date: datetime | None = None
    priority: PriorityLevel | None = None
    assigned_user_id: UUID | None = None
    remarks: str | None = None

    def to_patch(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class TransitionRequest(BaseModel):
    """DTO for an explicit lifecycle action."""

    action: TransitionAction
    reason: str | None = Field(None, max_length=500)


class RecordWorkResultRequest(BaseModel):
    """DTO for reporting production against a work order."""

    work_order_id: UUID
    result_date: datetime
    quantity: int
    good_quantity: int
    defect_quantity: int
    work_start_time: datetime
    work_end_time: datetime
    work_duration: int | None = Field(None, description="Minutes; derived when omitted")
    worker_id: UUID | None = None
    defect_reason: str | None = None
    remarks: str | None = None


class UpdateWorkResultRequest(BaseModel):
    """DTO for correcting a work result; only supplied fields change."""

    result_date: datetime | None = None
    quantity: int | None = None
    good_quantity: int | None = None
    defect_quantity: int | None = None
    work_start_time: datetime | None = None
    work_end_time: datetime | None = None
    work_duration: int | None = None
    worker_id: UUID | None = None
    defect_reason: str | None = None
    remarks: str | None = None

    def to_patch(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class OpenDowntimeRequest(BaseModel):
    """DTO for opening a downtime on an equipment."""

    equipment_id: UUID
    downtime_code: str
    downtime_type: DowntimeType
    start_time: datetime
    downtime_category: str | None = None
    work_order_id: UUID | None = None
    operation_id: UUID | None = None
    responsible_user_id: UUID | None = None
    responsible_name: str | None = None
    cause: str | None = None
    remarks: str | None = None


class ResolveDowntimeRequest(BaseModel):
    end_time: datetime
    countermeasure: str | None = None
    preventive_action: str | None = None


class UpdateDowntimeRequest(BaseModel):
    """DTO for patching an open downtime; only supplied fields change."""

    downtime_type: DowntimeType | None = None
    downtime_category: str | None = None
    work_order_id: UUID | None = None
    operation_id: UUID | None = None
    responsible_user_id: UUID | None = None
    responsible_name: str | None = None
    cause: str | None = None
    countermeasure: str | None = None
    preventive_action: str | None = None
    remarks: str | None = None

    def to_patch(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class AnnotateDowntimeRequest(BaseModel):
    """Text appended to the matching downtime fields."""

    cause: str | None = None
    countermeasure: str | None = None
    preventive_action: str | None = None
    remarks: str | None = None

    def to_patch(self) -> dict[str, str]:
        return self.model_dump(exclude_none=True)


class WorkOrderResponse(BaseModel):
    """DTO for work order responses."""

    id: UUID
    work_order_no: str
    product_id: UUID
    process_id: UUID
    planned_quantity: int
    planned_start_date: datetime
    planned_end_date: datetime
    assigned_user_id: UUID | None
    priority: PriorityLevel
    status: WorkOrderStatus
    actual_quantity: int
    good_quantity: int
    defect_quantity: int
    remaining_quantity: int
    completion_percentage: float
    actual_start_date: datetime | None
    actual_end_date: datetime | None
    remarks: str | None
    is_active: bool
    version: int
    created_at: datetime
    updated_at: datetime | None

    @classmethod
    def from_entity(cls, work_order: WorkOrder) -> "WorkOrderResponse":
        return cls(
            **work_order.model_dump(exclude={"tenant_id"}),
            remaining_quantity=work_order.remaining_quantity,
            completion_percentage=work_order.completion_percentage,
        )


class WorkResultResponse(BaseModel):
    """DTO for work result responses."""

    id: UUID
    work_order_id: UUID
    result_date: datetime
    quantity: int
    good_quantity: int
    defect_quantity: int
    work_start_time: datetime
    work_end_time: datetime
    work_duration: int
    worker_id: UUID | None
    defect_reason: str | None
    remarks: str | None
    is_reversed: bool
    reversed_at: datetime | None
    reversed_by: UUID | None
    version: int
    created_at: datetime
    updated_at: datetime | None

    @classmethod
    def from_entity(cls, result: WorkResult) -> "WorkResultResponse":
        return cls(**result.model_dump(exclude={"tenant_id"}))


class DowntimeResponse(BaseModel):
    """DTO for downtime event responses."""

    id: UUID
    equipment_id: UUID
    downtime_code: str
    downtime_type: DowntimeType
    downtime_category: str | None
    start_time: datetime
    end_time: datetime | None
    duration_minutes: int | None
    work_order_id: UUID | None
    operation_id: UUID | None
    responsible_user_id: UUID | None
    responsible_name: str | None
    cause: str | None
    countermeasure: str | None
    preventive_action: str | None
    remarks: str | None
    is_resolved: bool
    resolved_at: datetime | None
    is_active: bool
    version: int
    created_at: datetime
    updated_at: datetime | None

    @classmethod
    def from_entity(cls, downtime: DowntimeEvent) -> "DowntimeResponse":
        return cls(
            **downtime.model_dump(exclude={"tenant_id"}),
            duration_minutes=downtime.duration_minutes,
        )


class WorkOrderTotals(BaseModel):
    """Figures derived from a work order and its linked records."""

    result_count: int
    yield_rate: float
    defect_rate: float
    downtime_count: int
    open_downtime_count: int
    downtime_minutes: int


class WorkOrderSnapshot(BaseModel):
    """A work order with its active results and linked downtime."""

    work_order: WorkOrderResponse
    results: list[WorkResultResponse]
    downtimes: list[DowntimeResponse]
    totals: WorkOrderTotals


class TransitionResponse(BaseModel):
    work_order: WorkOrderResponse
    changed: bool
    warning: str | None = None
    reversed_result_ids: list[UUID] = []
