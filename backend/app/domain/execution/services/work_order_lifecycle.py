"""
Work Order Lifecycle Service

Owns the work order state machine and the quantity accumulators. It is the
only component that writes a work order's status or actual/good/defect
quantities; the result recorder hands it deltas instead of touching the
order itself.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any
from uuid import UUID

from ...shared.base import DomainService, utcnow
from ...shared.exceptions import ConflictError, NotFoundError
from ...shared.validation import BusinessRuleValidators
from ..entities.work_order import WorkOrder
from ..entities.work_result import WorkResult
from ..events.domain_events import QuantityShortfallWarning
from ..repositories import ExecutionUnitOfWork, ReferenceDataGateway
from ..value_objects.enums import PriorityLevel, TransitionAction, WorkOrderStatus
from ..value_objects.quantity import ProductionQuantities

logger = logging.getLogger(__name__)


class TransitionOutcome:
    """Result of a lifecycle transition."""

    def __init__(
        self,
        work_order: WorkOrder,
        changed: bool,
        warning: QuantityShortfallWarning | None = None,
        reversed_results: list[WorkResult] | None = None,
    ) -> None:
        self.work_order = work_order
        self.changed = changed
        self.warning = warning
        self.reversed_results = reversed_results or []


class WorkOrderLifecycleService(DomainService):
    """
    Service driving work orders through PLANNED -> IN_PROGRESS -> COMPLETED -> CLOSED,
    with CANCELLED reachable from PLANNED and IN_PROGRESS.

    Args:
        reference_data: Product/process/operator existence checks
        over_production_tolerance: Units an order may exceed its plan by
        cancel_reverses_results: Reverse active results when cancelling
        clock: Source of operation timestamps
    """

    def __init__(
        self,
        reference_data: ReferenceDataGateway,
        over_production_tolerance: int = 0,
        cancel_reverses_results: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._reference_data = reference_data
        self._tolerance = over_production_tolerance
        self._cancel_reverses_results = cancel_reverses_results
        self._clock = clock

    @property
    def over_production_tolerance(self) -> int:
        return self._tolerance

    async def create(
        self,
        uow: ExecutionUnitOfWork,
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
    ) -> WorkOrder:
        """
        Plan a new work order.

        Raises:
            ValidationError: If a field is missing or malformed
            InvalidIntervalError: If the planned window is not ordered
            NotFoundError: If product, process or assignee does not exist
            ConflictError: If the number is already used in the tenant
        """
        work_order = WorkOrder.create(
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

        if not await self._reference_data.product_exists(tenant_id, product_id):
            raise NotFoundError("Product", product_id)
        if not await self._reference_data.process_exists(tenant_id, process_id):
            raise NotFoundError("Process", process_id)
        if assigned_user_id and not await self._reference_data.operator_exists(
            tenant_id, assigned_user_id
        ):
            raise NotFoundError("User", assigned_user_id)

        existing = await uow.work_orders.get_by_number(
            tenant_id, work_order.work_order_no
        )
        if existing is not None:
            raise ConflictError(
                f"Work order number {work_order.work_order_no} already exists",
                "WorkOrder",
                existing.id,
                {"work_order_no": work_order.work_order_no},
            )

        uow.work_orders.add(work_order)
        logger.info(
            "Planned work order %s (%s units)",
            work_order.work_order_no,
            planned_quantity,
        )
        return work_order

    async def update(
        self,
        uow: ExecutionUnitOfWork,
        tenant_id: str,
        work_order_id: UUID,
        patch: dict[str, Any],
    ) -> WorkOrder:
        """
        Revise the plan of a PLANNED work order.

        Raises:
            NotFoundError: If the order or a newly assigned user does not exist
            StateError: If the order has already started or finished
            ValidationError: If the merged plan is invalid or the planned
                quantity falls below what was produced
            InvalidIntervalError: If the merged planned window is not ordered
        """
        work_order = await self.get(uow, tenant_id, work_order_id)
        changed = work_order.update_plan(patch, self._tolerance, self._clock())
        if (
            "assigned_user_id" in changed
            and work_order.assigned_user_id
            and not await self._reference_data.operator_exists(
                tenant_id, work_order.assigned_user_id
            )
        ):
            raise NotFoundError("User", work_order.assigned_user_id)

        if changed:
            uow.work_orders.add(work_order)
            logger.info(
                "Revised plan of work order %s: %s",
                work_order.work_order_no,
                ", ".join(changed),
            )
        return work_order

    async def get(
        self, uow: ExecutionUnitOfWork, tenant_id: str, work_order_id: UUID
    ) -> WorkOrder:
        """
        Load a work order.

        Raises:
            NotFoundError: If it does not exist in the tenant
        """
        work_order = await uow.work_orders.get(tenant_id, work_order_id)
        if work_order is None:
            raise NotFoundError("WorkOrder", work_order_id)
        return work_order

    async def get_by_number(
        self, uow: ExecutionUnitOfWork, tenant_id: str, work_order_no: str
    ) -> WorkOrder:
        work_order = await uow.work_orders.get_by_number(
            tenant_id, work_order_no.strip().upper()
        )
        if work_order is None:
            raise NotFoundError("WorkOrder", work_order_no)
        return work_order

    async def list_all(
        self, uow: ExecutionUnitOfWork, tenant_id: str, include_inactive: bool = False
    ) -> list[WorkOrder]:
        """Every order of the tenant, by planned start then number."""
        return await uow.work_orders.list_orders(
            tenant_id, include_inactive=include_inactive
        )

    async def list_by_status(
        self,
        uow: ExecutionUnitOfWork,
        tenant_id: str,
        status: WorkOrderStatus,
        include_inactive: bool = False,
    ) -> list[WorkOrder]:
        return await uow.work_orders.list_orders(
            tenant_id, status=status, include_inactive=include_inactive
        )

    async def list_by_planned_range(
        self,
        uow: ExecutionUnitOfWork,
        tenant_id: str,
        start: datetime,
        end: datetime,
        include_inactive: bool = False,
    ) -> list[WorkOrder]:
        """Orders whose planned window overlaps ``[start, end)``."""
        BusinessRuleValidators.validate_required_field("start", start)
        BusinessRuleValidators.validate_required_field("end", end)
        BusinessRuleValidators.validate_date_range("start", start, "end", end)
        return await uow.work_orders.list_orders(
            tenant_id,
            planned_from=start,
            planned_to=end,
            include_inactive=include_inactive,
        )

    async def transition(
        self,
        uow: ExecutionUnitOfWork,
        tenant_id: str,
        work_order_id: UUID,
        action: TransitionAction,
        reason: str | None = None,
    ) -> TransitionOutcome:
        """
        Apply an explicit lifecycle action.

        Raises:
            NotFoundError: If the work order does not exist
            StateError: If the action is not allowed in the current status
        """
        handlers = {
            TransitionAction.RELEASE: self.release,
            TransitionAction.COMPLETE: self.complete,
            TransitionAction.CLOSE: self.close,
            TransitionAction.CANCEL: self.cancel,
        }
        return await handlers[action](uow, tenant_id, work_order_id, reason)

    async def release(
        self,
        uow: ExecutionUnitOfWork,
        tenant_id: str,
        work_order_id: UUID,
        reason: str | None = None,
    ) -> TransitionOutcome:
        """Release a planned order; a no-op when already in progress."""
        work_order = await self.get(uow, tenant_id, work_order_id)
        changed = work_order.release(self._clock(), reason)
        if changed:
            uow.work_orders.add(work_order)
        return TransitionOutcome(work_order, changed)

    async def complete(
        self,
        uow: ExecutionUnitOfWork,
        tenant_id: str,
        work_order_id: UUID,
        reason: str | None = None,
    ) -> TransitionOutcome:
        """
        Complete an in-progress order.

        The returned outcome carries a :class:`QuantityShortfallWarning` when
        the actual quantity differs from plan; accepting it is up to the caller.
        """
        work_order = await self.get(uow, tenant_id, work_order_id)
        warning = work_order.complete(self._clock(), reason)
        uow.work_orders.add(work_order)
        if warning is not None:
            logger.warning(
                "Work order %s completed with %s of %s planned units",
                work_order.work_order_no,
                warning.actual_quantity,
                warning.planned_quantity,
            )
        return TransitionOutcome(work_order, True, warning)

    async def close(
        self,
        uow: ExecutionUnitOfWork,
        tenant_id: str,
        work_order_id: UUID,
        reason: str | None = None,
    ) -> TransitionOutcome:
        work_order = await self.get(uow, tenant_id, work_order_id)
        work_order.close(self._clock(), reason)
        uow.work_orders.add(work_order)
        return TransitionOutcome(work_order, True)

    async def cancel(
        self,
        uow: ExecutionUnitOfWork,
        tenant_id: str,
        work_order_id: UUID,
        reason: str | None = None,
    ) -> TransitionOutcome:
        """
        Cancel a planned or in-progress order.

        With ``cancel_reverses_results`` enabled, every active result of the
        order is reversed in the same unit of work before the status changes.
        """
        work_order = await self.get(uow, tenant_id, work_order_id)
        # Fail on the status before touching any result.
        work_order.ensure_accepts_results("cancel")

        reversed_results: list[WorkResult] = []
        if self._cancel_reverses_results:
            now = self._clock()
            results = await uow.work_results.list_by_work_order(
                tenant_id, work_order_id
            )
            for result in results:
                delta = result.reverse(now)
                self.apply_result_delta(work_order, delta)
                uow.work_results.add(result)
                reversed_results.append(result)

        work_order.cancel(self._clock(), reason)
        uow.work_orders.add(work_order)
        if reversed_results:
            logger.info(
                "Cancelled work order %s and reversed %d results",
                work_order.work_order_no,
                len(reversed_results),
            )
        return TransitionOutcome(work_order, True, reversed_results=reversed_results)

    def apply_result_delta(
        self,
        work_order: WorkOrder,
        delta: ProductionQuantities,
        work_start: datetime | None = None,
        release: bool = False,
    ) -> ProductionQuantities:
        """
        Apply a work result delta to the order's accumulators.

        With ``release`` set, a planned order moves to IN_PROGRESS whatever
        the size of the delta; a newly recorded result sets it, corrections
        and reversals do not.

        Raises:
            StateError: If the order no longer accepts results
            ValidationError: If the quantity ledger rejects the delta
        """
        work_order.ensure_accepts_results()
        now = self._clock()
        updated = work_order.apply_quantities(delta, self._tolerance, work_start, now)
        if release and work_order.status == WorkOrderStatus.PLANNED:
            work_order.release(now, "first work result recorded")
        return updated

    async def deactivate(
        self, uow: ExecutionUnitOfWork, tenant_id: str, work_order_id: UUID
    ) -> WorkOrder:
        work_order = await self.get(uow, tenant_id, work_order_id)
        work_order.deactivate(self._clock())
        uow.work_orders.add(work_order)
        return work_order

    async def activate(
        self, uow: ExecutionUnitOfWork, tenant_id: str, work_order_id: UUID
    ) -> WorkOrder:
        work_order = await self.get(uow, tenant_id, work_order_id)
        work_order.activate(self._clock())
        uow.work_orders.add(work_order)
        return work_order
