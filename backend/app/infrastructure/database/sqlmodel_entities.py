"""
SQLModel table definitions for production execution.

Rows mirror the domain aggregates one to one. The ``version`` column backs the
optimistic compare-and-swap performed on every commit.
"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Index, UniqueConstraint, text
from sqlmodel import Column, Field, SQLModel, Text

from app.domain.execution.value_objects.enums import (
    DowntimeType,
    PriorityLevel,
    WorkOrderStatus,
)


# Base classes for shared fields
class TenantScopedModel(SQLModel):
    """Base model with UUID primary key, tenant, version and timestamps."""

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    tenant_id: str = Field(max_length=50, index=True)
    version: int = Field(default=1, ge=1)
    created_at: datetime
    updated_at: datetime | None = None


class WorkOrderRow(TenantScopedModel, table=True):
    """Work order table definition."""

    __tablename__ = "work_orders"
    __table_args__ = (
        UniqueConstraint("tenant_id", "work_order_no", name="uq_work_orders_tenant_no"),
    )

    work_order_no: str = Field(max_length=50, index=True)
    product_id: UUID
    process_id: UUID
    planned_quantity: int
    planned_start_date: datetime
    planned_end_date: datetime
    assigned_user_id: UUID | None = None
    priority: PriorityLevel = Field(default=PriorityLevel.MEDIUM)
    status: WorkOrderStatus = Field(default=WorkOrderStatus.PLANNED, index=True)

    actual_quantity: int = 0
    good_quantity: int = 0
    defect_quantity: int = 0
    actual_start_date: datetime | None = None
    actual_end_date: datetime | None = None
    remarks: str | None = Field(default=None, sa_column=Column(Text))
    is_active: bool = True


class WorkResultRow(TenantScopedModel, table=True):
    """Work result table definition."""

    __tablename__ = "work_results"

    work_order_id: UUID = Field(foreign_key="work_orders.id", index=True)
    result_date: datetime = Field(index=True)
    quantity: int
    good_quantity: int
    defect_quantity: int
    work_start_time: datetime
    work_end_time: datetime
    work_duration: int
    worker_id: UUID | None = Field(default=None, index=True)
    defect_reason: str | None = Field(default=None, max_length=500)
    remarks: str | None = Field(default=None, sa_column=Column(Text))
    is_reversed: bool = False
    reversed_at: datetime | None = None
    reversed_by: UUID | None = None


class DowntimeRow(TenantScopedModel, table=True):
    """Downtime event table definition."""

    __tablename__ = "downtime_events"
    __table_args__ = (
        # At most one open downtime per equipment
        Index(
            "uq_downtime_events_open_equipment",
            "tenant_id",
            "equipment_id",
            unique=True,
            sqlite_where=text("is_resolved = 0"),
            postgresql_where=text("NOT is_resolved"),
        ),
    )

    equipment_id: UUID = Field(index=True)
    downtime_code: str = Field(max_length=50)
    downtime_type: DowntimeType = Field(index=True)
    downtime_category: str | None = Field(default=None, max_length=50)
    start_time: datetime = Field(index=True)
    end_time: datetime | None = None
    work_order_id: UUID | None = Field(default=None, index=True)
    operation_id: UUID | None = None
    responsible_user_id: UUID | None = None
    responsible_name: str | None = Field(default=None, max_length=100)
    cause: str | None = Field(default=None, sa_column=Column(Text))
    countermeasure: str | None = Field(default=None, sa_column=Column(Text))
    preventive_action: str | None = Field(default=None, sa_column=Column(Text))
    remarks: str | None = Field(default=None, sa_column=Column(Text))
    is_resolved: bool = False
    resolved_at: datetime | None = None
    is_active: bool = True
