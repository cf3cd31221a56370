"""Work order aggregate root for production execution."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field

from ...shared.base import AggregateRoot, utcnow
from ...shared.exceptions import StateError, ValidationError
from ...shared.validation import (
    BusinessRuleValidators,
    DataSanitizer,
    ValidationContext,
    model_errors_as_validation,
)
from ..events.domain_events import (
    QuantityShortfallWarning,
    WorkOrderActivationChanged,
    WorkOrderCreated,
    WorkOrderPlanUpdated,
    WorkOrderStatusChanged,
)
from ..value_objects.enums import PriorityLevel, TransitionAction, WorkOrderStatus
from ..value_objects.quantity import ProductionQuantities, QuantityLedger

WORK_ORDER_NO_MAX_LENGTH = 50
REMARKS_MAX_LENGTH = 1000

# Fields a plan revision may change; only while the order is still PLANNED.
PLAN_FIELDS = frozenset(
    {
        "planned_quantity",
        "planned_start_date",
        "planned_end_date",
        "priority",
        "assigned_user_id",
        "remarks",
    }
)


class WorkOrder(AggregateRoot):
    """
    Work order aggregate root representing a planned production run.

    A work order owns its lifecycle status and the actual/good/defect
    accumulators. Both are written only through the lifecycle methods below,
    which the work order lifecycle service drives; results never touch the
    order directly.
    """

    work_order_no: str = Field(min_length=1, max_length=WORK_ORDER_NO_MAX_LENGTH)
    product_id: UUID
    process_id: UUID
    planned_quantity: int = Field(gt=0)
    planned_start_date: datetime
    planned_end_date: datetime
    assigned_user_id: UUID | None = None
    priority: PriorityLevel = Field(default=PriorityLevel.MEDIUM)
    status: WorkOrderStatus = Field(default=WorkOrderStatus.PLANNED)

    # Accumulators
    actual_quantity: int = Field(default=0, ge=0)
    good_quantity: int = Field(default=0, ge=0)
    defect_quantity: int = Field(default=0, ge=0)

    actual_start_date: datetime | None = None
    actual_end_date: datetime | None = None
    remarks: str | None = Field(default=None, max_length=REMARKS_MAX_LENGTH)
    is_active: bool = True

    def is_valid(self) -> bool:
        """Validate business rules."""
        return (
            bool(self.work_order_no)
            and self.planned_quantity > 0
            and self.planned_start_date < self.planned_end_date
            and self.quantities.is_balanced
        )

    @property
    def quantities(self) -> ProductionQuantities:
        """Current accumulators as a quantity triple."""
        return ProductionQuantities(
            actual=self.actual_quantity,
            good=self.good_quantity,
            defect=self.defect_quantity,
        )

    @property
    def remaining_quantity(self) -> int:
        return max(self.planned_quantity - self.actual_quantity, 0)

    @property
    def completion_percentage(self) -> float:
        """Actual quantity as a percentage of plan."""
        return round(self.actual_quantity / self.planned_quantity * 100, 2)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def ensure_accepts_results(self, action: str = "record result for") -> None:
        """
        Check that production can still be reported against this order.

        Raises:
            StateError: If the order is terminal or deactivated
        """
        if not self.status.accepts_results:
            raise StateError("WorkOrder", self.id, self.status.value, action)
        if not self.is_active:
            raise StateError(
                "WorkOrder",
                self.id,
                "inactive",
                action,
                f"Work order {self.work_order_no} is deactivated",
            )

    def change_status(
        self,
        new_status: WorkOrderStatus,
        action: TransitionAction,
        at: datetime | None = None,
        reason: str | None = None,
    ) -> None:
        """
        Change work order status with validation and events.

        Raises:
            StateError: If the transition is not in the transition table
        """
        if not self.status.can_transition_to(new_status):
            raise StateError(
                "WorkOrder",
                self.id,
                self.status.value,
                action.value,
                f"Cannot {action.value} work order {self.work_order_no}: "
                f"transition from {self.status.value} to {new_status.value} "
                "is not allowed",
            )

        old_status = self.status
        self.status = new_status
        self.mark_updated(at)

        self.add_domain_event(
            WorkOrderStatusChanged(
                aggregate_id=self.id,
                tenant_id=self.tenant_id,
                work_order_no=self.work_order_no,
                old_status=old_status,
                new_status=new_status,
                action=action,
                reason=reason,
            )
        )

    def release(self, at: datetime | None = None, reason: str | None = None) -> bool:
        """
        Start production (PLANNED -> IN_PROGRESS).

        Returns:
            False when the order was already in progress, True otherwise
        """
        if self.status == WorkOrderStatus.IN_PROGRESS:
            return False
        self.change_status(
            WorkOrderStatus.IN_PROGRESS, TransitionAction.RELEASE, at, reason
        )
        return True

    def complete(
        self, at: datetime | None = None, reason: str | None = None
    ) -> QuantityShortfallWarning | None:
        """
        Finish production (IN_PROGRESS -> COMPLETED) and stamp the end date.

        Returns:
            A shortfall warning when actual differs from planned quantity
        """
        at = at or utcnow()
        self.change_status(
            WorkOrderStatus.COMPLETED, TransitionAction.COMPLETE, at, reason
        )
        self.actual_end_date = at

        if self.actual_quantity == self.planned_quantity:
            return None

        warning = QuantityShortfallWarning(
            aggregate_id=self.id,
            tenant_id=self.tenant_id,
            work_order_no=self.work_order_no,
            planned_quantity=self.planned_quantity,
            actual_quantity=self.actual_quantity,
        )
        self.add_domain_event(warning)
        return warning

    def close(self, at: datetime | None = None, reason: str | None = None) -> None:
        """Close a completed order (COMPLETED -> CLOSED)."""
        self.change_status(WorkOrderStatus.CLOSED, TransitionAction.CLOSE, at, reason)

    def cancel(self, at: datetime | None = None, reason: str | None = None) -> None:
        """Cancel an order that has not completed."""
        self.change_status(
            WorkOrderStatus.CANCELLED, TransitionAction.CANCEL, at, reason
        )

    def apply_quantities(
        self,
        delta: ProductionQuantities,
        tolerance: int = 0,
        work_start: datetime | None = None,
        at: datetime | None = None,
    ) -> ProductionQuantities:
        """
        Apply a result delta to the accumulators through the quantity ledger.

        ``actual_start_date`` follows the earliest ``work_start`` seen.

        Raises:
            ValidationError: If the ledger rejects the delta
        """
        updated = QuantityLedger.apply(
            self.quantities, delta, self.planned_quantity, tolerance
        )
        self.actual_quantity = updated.actual
        self.good_quantity = updated.good
        self.defect_quantity = updated.defect

        if work_start is not None and (
            self.actual_start_date is None or work_start < self.actual_start_date
        ):
            self.actual_start_date = work_start

        self.mark_updated(at)
        return updated

    def update_plan(
        self,
        patch: dict[str, Any],
        tolerance: int = 0,
        at: datetime | None = None,
    ) -> tuple[str, ...]:
        """
        Revise the plan of an order that has not started.

        The merged plan is validated the way :meth:`create` validates a new
        one, and the planned quantity may not fall below what was already
        produced beyond the over-production tolerance.

        Returns:
            Names of the fields that changed, empty when nothing did

        Raises:
            StateError: If the order is no longer PLANNED
            ValidationError: If the patch names another field or the merged
                plan is invalid
            InvalidIntervalError: If the planned end is not after the start
        """
        if self.status != WorkOrderStatus.PLANNED:
            raise StateError(
                "WorkOrder",
                self.id,
                self.status.value,
                "update",
                f"Work order {self.work_order_no} can only be revised while planned",
            )
        unknown = set(patch) - PLAN_FIELDS
        if unknown:
            field_name = sorted(unknown)[0]
            raise ValidationError(
                field_name,
                str(patch[field_name]),
                "Field cannot be changed on a work order plan",
                "FIELD_NOT_PATCHABLE",
            )

        values = {name: getattr(self, name) for name in PLAN_FIELDS}
        values.update(patch)

        ctx = ValidationContext()
        ctx.check(
            BusinessRuleValidators.validate_positive_number,
            "planned_quantity",
            values["planned_quantity"],
        )
        ctx.check(
            BusinessRuleValidators.validate_required_field,
            "planned_start_date",
            values["planned_start_date"],
        )
        ctx.check(
            BusinessRuleValidators.validate_required_field,
            "planned_end_date",
            values["planned_end_date"],
        )
        ctx.raise_if_errors()
        BusinessRuleValidators.validate_date_range(
            "planned_start_date",
            values["planned_start_date"],
            "planned_end_date",
            values["planned_end_date"],
        )
        if values["planned_quantity"] + tolerance < self.actual_quantity:
            raise ValidationError(
                "planned_quantity",
                values["planned_quantity"],
                f"Planned quantity cannot fall below the {self.actual_quantity} "
                "units already produced",
                "BELOW_ACTUAL_QUANTITY",
            )
        values["remarks"] = DataSanitizer.sanitize_optional(
            values["remarks"], REMARKS_MAX_LENGTH, "remarks"
        )

        with model_errors_as_validation():
            revised = WorkOrder.model_validate({**self.model_dump(), **values})

        changed = tuple(
            sorted(
                name
                for name in PLAN_FIELDS
                if getattr(self, name) != getattr(revised, name)
            )
        )
        if not changed:
            return changed
        for name in changed:
            setattr(self, name, getattr(revised, name))

        self.mark_updated(at)
        self.add_domain_event(
            WorkOrderPlanUpdated(
                aggregate_id=self.id,
                tenant_id=self.tenant_id,
                work_order_no=self.work_order_no,
                changed_fields=changed,
            )
        )
        return changed

    def deactivate(self, at: datetime | None = None) -> None:
        """
        Hide a finished order from active listings.

        Raises:
            StateError: If the order has not reached a terminal state
        """
        if not self.status.is_terminal:
            raise StateError(
                "WorkOrder",
                self.id,
                self.status.value,
                "deactivate",
                f"Work order {self.work_order_no} can only be deactivated "
                "once completed, closed or cancelled",
            )
        self._set_active(False, at)

    def activate(self, at: datetime | None = None) -> None:
        self._set_active(True, at)

    def _set_active(self, is_active: bool, at: datetime | None) -> None:
        if self.is_active == is_active:
            return
        self.is_active = is_active
        self.mark_updated(at)
        self.add_domain_event(
            WorkOrderActivationChanged(
                aggregate_id=self.id,
                tenant_id=self.tenant_id,
                work_order_no=self.work_order_no,
                is_active=is_active,
            )
        )

    @staticmethod
    def create(
        tenant_id: str,
        work_order_no: str,
        product_id: UUID,
        process_id: UUID,
        planned_quantity: int,
        planned_start_date: datetime,
        planned_end_date: datetime,
        priority: PriorityLevel = PriorityLevel.MEDIUM,
        assigned_user_id: UUID | None = None,
        remarks: str | None = None,
    ) -> "WorkOrder":
        """
        Factory method to create a new WorkOrder.

        Args:
            tenant_id: Owning tenant
            work_order_no: Tenant-unique work order number
            product_id: Product to produce
            process_id: Process the order runs on
            planned_quantity: Target quantity (> 0)
            planned_start_date: Planned start
            planned_end_date: Planned end (after start)
            priority: Priority level
            assigned_user_id: Responsible user
            remarks: Free text

        Returns:
            New WorkOrder instance

        Raises:
            ValidationError: If a field is missing or malformed
            InvalidIntervalError: If the planned end is not after the start
        """
        ctx = ValidationContext()
        ctx.check(BusinessRuleValidators.validate_required_field, "tenant_id", tenant_id)
        ctx.check(
            BusinessRuleValidators.validate_required_field,
            "work_order_no",
            work_order_no,
        )
        ctx.check(
            BusinessRuleValidators.validate_required_field, "product_id", product_id
        )
        ctx.check(
            BusinessRuleValidators.validate_required_field, "process_id", process_id
        )
        ctx.check(
            BusinessRuleValidators.validate_positive_number,
            "planned_quantity",
            planned_quantity,
        )
        ctx.check(
            BusinessRuleValidators.validate_required_field,
            "planned_start_date",
            planned_start_date,
        )
        ctx.check(
            BusinessRuleValidators.validate_required_field,
            "planned_end_date",
            planned_end_date,
        )
        ctx.raise_if_errors()

        work_order_no = DataSanitizer.sanitize_code(work_order_no, "work_order_no")
        remarks = DataSanitizer.sanitize_optional(
            remarks, REMARKS_MAX_LENGTH, "remarks"
        )
        BusinessRuleValidators.validate_date_range(
            "planned_start_date",
            planned_start_date,
            "planned_end_date",
            planned_end_date,
        )

        with model_errors_as_validation():
            work_order = WorkOrder(
                tenant_id=tenant_id,
                work_order_no=work_order_no,
                product_id=product_id,
                process_id=process_id,
                planned_quantity=planned_quantity,
                planned_start_date=planned_start_date,
                planned_end_date=planned_end_date,
                priority=priority,
                assigned_user_id=assigned_user_id,
                remarks=remarks,
            )
        work_order.ensure_valid()
        work_order.add_domain_event(
            WorkOrderCreated(
                aggregate_id=work_order.id,
                tenant_id=tenant_id,
                work_order_no=work_order.work_order_no,
                planned_quantity=planned_quantity,
                planned_start_date=planned_start_date,
                planned_end_date=planned_end_date,
            )
        )
        return work_order
