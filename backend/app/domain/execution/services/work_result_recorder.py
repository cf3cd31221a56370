"""
Work Result Service

Records production against work orders. Checks run in a fixed order: field
values, work window, referenced entities, work order state, and finally the
quantity ledger. Nothing is staged until every check has passed.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any
from uuid import UUID

from ...shared.base import DomainService, utcnow
from ...shared.exceptions import NotFoundError
from ...shared.validation import BusinessRuleValidators
from ..entities.work_result import WorkResult
from ..repositories import ExecutionUnitOfWork, ReferenceDataGateway
from .work_order_lifecycle import WorkOrderLifecycleService

logger = logging.getLogger(__name__)


class WorkResultService(DomainService):
    """Service recording, correcting and reversing work results."""

    def __init__(
        self,
        lifecycle: WorkOrderLifecycleService,
        reference_data: ReferenceDataGateway,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._lifecycle = lifecycle
        self._reference_data = reference_data
        self._clock = clock

    async def record(
        self,
        uow: ExecutionUnitOfWork,
        tenant_id: str,
        work_order_id: UUID,
        result_date: datetime,
        quantity: int,
        good_quantity: int,
        defect_quantity: int,
        work_start_time: datetime,
        work_end_time: datetime,
        work_duration: int | None = None,
        worker_id: UUID | None = None,
        defect_reason: str | None = None,
        remarks: str | None = None,
    ) -> WorkResult:
        """
        Record production against a work order.

        The quantities are added to the order in the same unit of work; a
        planned order moves to IN_PROGRESS and its actual start follows the
        earliest work start seen.

        Raises:
            ValidationError: Unbalanced or negative quantities, missing defect
                reason, or over-production beyond the tolerance
            InvalidIntervalError: If work end is not after work start
            NotFoundError: If the work order or worker does not exist
            StateError: If the order is terminal or deactivated
        """
        BusinessRuleValidators.validate_required_field("work_order_id", work_order_id)
        result = WorkResult.create(
            tenant_id=tenant_id,
            work_order_id=work_order_id,
            result_date=result_date,
            quantity=quantity,
            good_quantity=good_quantity,
            defect_quantity=defect_quantity,
            work_start_time=work_start_time,
            work_end_time=work_end_time,
            work_duration=work_duration,
            worker_id=worker_id,
            defect_reason=defect_reason,
            remarks=remarks,
        )

        work_order = await self._lifecycle.get(uow, tenant_id, work_order_id)
        await self._ensure_worker_exists(tenant_id, worker_id)
        work_order.ensure_accepts_results()

        self._lifecycle.apply_result_delta(
            work_order, result.quantities, result.work_start_time, release=True
        )
        uow.work_results.add(result)
        uow.work_orders.add(work_order)

        logger.info(
            "Recorded %s against work order %s, now %s/%s",
            result.quantities,
            work_order.work_order_no,
            work_order.actual_quantity,
            work_order.planned_quantity,
        )
        return result

    async def update(
        self,
        uow: ExecutionUnitOfWork,
        tenant_id: str,
        work_result_id: UUID,
        patch: dict[str, Any],
    ) -> WorkResult:
        """
        Correct a work result and re-apply the quantity difference.

        Raises:
            NotFoundError: If the result, its order or a new worker does not exist
            StateError: If the result is reversed or its order is terminal
            ValidationError: If the merged values are invalid
            InvalidIntervalError: If the merged work window is not ordered
        """
        result = await self.get(uow, tenant_id, work_result_id)
        delta = result.apply_patch(patch, self._clock())

        work_order = await self._lifecycle.get(uow, tenant_id, result.work_order_id)
        if "worker_id" in patch:
            await self._ensure_worker_exists(tenant_id, result.worker_id)
        work_order.ensure_accepts_results("update result for")

        self._lifecycle.apply_result_delta(work_order, delta, result.work_start_time)
        uow.work_results.add(result)
        uow.work_orders.add(work_order)
        return result

    async def reverse(
        self,
        uow: ExecutionUnitOfWork,
        tenant_id: str,
        work_result_id: UUID,
        reversed_by: UUID | None = None,
    ) -> WorkResult:
        """
        Take a result back out of its work order, keeping the record.

        Raises:
            NotFoundError: If the result or its order does not exist
            StateError: If the result is already reversed or the order is terminal
        """
        result = await self.get(uow, tenant_id, work_result_id)
        delta = result.reverse(self._clock(), reversed_by)

        work_order = await self._lifecycle.get(uow, tenant_id, result.work_order_id)
        work_order.ensure_accepts_results("reverse result for")

        self._lifecycle.apply_result_delta(work_order, delta)
        uow.work_results.add(result)
        uow.work_orders.add(work_order)
        logger.info(
            "Reversed work result %s on work order %s",
            result.id,
            work_order.work_order_no,
        )
        return result

    async def get(
        self, uow: ExecutionUnitOfWork, tenant_id: str, work_result_id: UUID
    ) -> WorkResult:
        result = await uow.work_results.get(tenant_id, work_result_id)
        if result is None:
            raise NotFoundError("WorkResult", work_result_id)
        return result

    async def list_by_work_order(
        self,
        uow: ExecutionUnitOfWork,
        tenant_id: str,
        work_order_id: UUID,
        include_reversed: bool = False,
    ) -> list[WorkResult]:
        return await uow.work_results.list_by_work_order(
            tenant_id, work_order_id, include_reversed
        )

    async def list_by_worker(
        self, uow: ExecutionUnitOfWork, tenant_id: str, worker_id: UUID
    ) -> list[WorkResult]:
        return await uow.work_results.list_by_worker(tenant_id, worker_id)

    async def list_by_date_range(
        self,
        uow: ExecutionUnitOfWork,
        tenant_id: str,
        start: datetime,
        end: datetime,
    ) -> list[WorkResult]:
        BusinessRuleValidators.validate_required_field("start", start)
        BusinessRuleValidators.validate_required_field("end", end)
        BusinessRuleValidators.validate_date_range("start", start, "end", end)
        return await uow.work_results.list_by_date_range(tenant_id, start, end)

    async def count_by_work_order(
        self,
        uow: ExecutionUnitOfWork,
        tenant_id: str,
        work_order_id: UUID,
        include_reversed: bool = False,
    ) -> int:
        return await uow.work_results.count_by_work_order(
            tenant_id, work_order_id, include_reversed
        )

    async def _ensure_worker_exists(self, tenant_id: str, worker_id: UUID | None) -> None:
        if worker_id and not await self._reference_data.operator_exists(
            tenant_id, worker_id
        ):
            raise NotFoundError("Worker", worker_id)
