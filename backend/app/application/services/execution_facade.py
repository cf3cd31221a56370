"""
Execution Facade

Single entry point for the production execution use cases. Every call:

1. validates the caller's :class:`ExecutionContext`,
2. holds the per-aggregate locks it needs and runs the domain services on a
   fresh unit of work, bounded by a deadline and an optional cancel event,
3. publishes the committed domain events,
4. hands an audit record to the audit sink (best effort),
5. translates domain errors into :class:`ExecutionFailure`.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypeVar
from uuid import UUID

from app.application.dtos import (
    DowntimeResponse,
    WorkOrderResponse,
    WorkOrderSnapshot,
    WorkOrderTotals,
    WorkResultResponse,
)
from app.core.config import Settings, settings
from app.core.observability import get_logger, log_error_with_context, record_operation
from app.domain.execution.entities import DowntimeEvent, WorkOrder, WorkResult
from app.domain.execution.repositories import (
    ExecutionStore,
    ExecutionUnitOfWork,
    ReferenceDataGateway,
)
from app.domain.execution.services import (
    DowntimeTrackingService,
    TransitionOutcome,
    WorkOrderLifecycleService,
    WorkResultService,
)
from app.domain.execution.value_objects import (
    DowntimeType,
    PriorityLevel,
    TransitionAction,
    WorkOrderStatus,
)
from app.domain.shared.base import AggregateRoot, utcnow
from app.domain.shared.exceptions import (
    DomainError,
    MultipleValidationError,
    ValidationError,
)
from app.domain.shared.validation import model_errors_as_validation
from app.infrastructure.audit import (
    AuditDeliveryReport,
    AuditRecord,
    AuditSink,
    InMemoryAuditLog,
    deliver_audit_record,
)
from app.infrastructure.events import DomainEventPublisher
from app.infrastructure.persistence import (
    AggregateLockRegistry,
    InMemoryExecutionStore,
    lock_key,
)
from app.infrastructure.reference_data import PermissiveReferenceData

from .base_service import ApplicationServiceBase

logger = get_logger(__name__)

T = TypeVar("T")

TENANT_ID_MAX_LENGTH = 50


@dataclass(frozen=True)
class ExecutionContext:
    """Identity of the caller; required on every facade call."""

    tenant_id: str
    actor_user_id: str

    @property
    def actor_uuid(self) -> UUID | None:
        try:
            return UUID(str(self.actor_user_id))
        except ValueError:
            return None


class ExecutionFailure(Exception):
    """
    Boundary error raised by the facade.

    Attributes:
        code: One of VALIDATION_ERROR, INVALID_INTERVAL, INVALID_STATE,
            CONFLICT, NOT_FOUND, TIMEOUT, CANCELLED
        details: Offending fields or entity ids
        retryable: Whether repeating the call may succeed
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}
        self.retryable = retryable

    @classmethod
    def from_domain_error(cls, error: DomainError) -> "ExecutionFailure":
        details = dict(error.details)
        if isinstance(error, MultipleValidationError):
            details["errors"] = [e.details for e in error.validation_errors]
        return cls(error.code, error.message, details, error.retryable)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }


class AuditTrail:
    """Before/after images of the aggregate a mutation touched."""

    def __init__(self, action: str, entity_type: str, entity_id: UUID | None = None):
        self.action = action
        self.entity_type = entity_type
        self.entity_id = str(entity_id) if entity_id is not None else None
        self.old_value: dict[str, Any] | None = None
        self.new_value: dict[str, Any] | None = None

    def before(self, entity: AggregateRoot) -> None:
        self.entity_id = str(entity.id)
        self.old_value = _audit_image(entity)

    def after(self, entity: AggregateRoot) -> None:
        self.entity_id = str(entity.id)
        self.new_value = _audit_image(entity)


def _audit_image(entity: AggregateRoot) -> dict[str, Any]:
    return entity.model_dump(mode="json", exclude={"tenant_id", "created_at"})


class ExecutionFacade(ApplicationServiceBase):
    """
    Application service exposing work orders, work results and downtime.

    Mutations of one work order (including results recorded against it) are
    serialized by a lock on the work order; mutations of one equipment's
    downtime ledger by a lock on the equipment.
    """

    def __init__(
        self,
        store: ExecutionStore,
        lifecycle: WorkOrderLifecycleService,
        results: WorkResultService,
        downtime: DowntimeTrackingService,
        audit_sink: AuditSink,
        publisher: DomainEventPublisher | None = None,
        locks: AggregateLockRegistry | None = None,
        timeout_seconds: float = 5.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(store, locks, timeout_seconds)
        self._lifecycle = lifecycle
        self._results = results
        self._downtime = downtime
        self._audit_sink = audit_sink
        self._publisher = publisher or DomainEventPublisher()
        self._clock = clock
        self.last_audit_report: AuditDeliveryReport | None = None

    @property
    def publisher(self) -> DomainEventPublisher:
        return self._publisher

    @property
    def audit_sink(self) -> AuditSink:
        return self._audit_sink

    # Work orders

    async def create_work_order(
        self,
        context: ExecutionContext,
        work_order_no: str,
        product_id: UUID,
        process_id: UUID,
        planned_quantity: int,
        planned_start_date: datetime,
        planned_end_date: datetime,
        priority: PriorityLevel = PriorityLevel.MEDIUM,
        assigned_user_id: UUID | None = None,
        remarks: str | None = None,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> WorkOrder:
        trail = AuditTrail("create_work_order", "WorkOrder")

        async def work(uow: ExecutionUnitOfWork) -> WorkOrder:
            order = await self._lifecycle.create(
                uow,
                context.tenant_id,
                work_order_no,
                product_id,
                process_id,
                planned_quantity,
                planned_start_date,
                planned_end_date,
                priority,
                assigned_user_id,
                remarks,
            )
            trail.after(order)
            return order

        number_key = str(work_order_no).strip().upper() if work_order_no else ""
        return await self._mutate(
            context,
            trail,
            work,
            (lock_key("work_order_no", context.tenant_id, number_key),),
            timeout,
            cancel_event,
        )

    async def transition(
        self,
        context: ExecutionContext,
        work_order_id: UUID,
        action: TransitionAction | str,
        reason: str | None = None,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> TransitionOutcome:
        """
        Apply RELEASE, COMPLETE, CLOSE or CANCEL to a work order.

        A completion short of plan still succeeds; the outcome carries the
        shortfall warning.
        """
        try:
            action = _parse_action(action)
        except ValidationError as e:
            raise ExecutionFailure.from_domain_error(e) from e
        trail = AuditTrail(f"{action.value}_work_order", "WorkOrder", work_order_id)

        async def work(uow: ExecutionUnitOfWork) -> TransitionOutcome:
            trail.before(await self._lifecycle.get(uow, context.tenant_id, work_order_id))
            outcome = await self._lifecycle.transition(
                uow, context.tenant_id, work_order_id, action, reason
            )
            trail.after(outcome.work_order)
            return outcome

        outcome = await self._mutate(
            context,
            trail,
            work,
            self._work_order_keys(context, work_order_id),
            timeout,
            cancel_event,
        )
        if outcome.warning is not None:
            logger.warning(
                "Work order completed short of plan",
                work_order_no=outcome.warning.work_order_no,
                planned_quantity=outcome.warning.planned_quantity,
                actual_quantity=outcome.warning.actual_quantity,
            )
        return outcome

    async def deactivate_work_order(
        self,
        context: ExecutionContext,
        work_order_id: UUID,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> WorkOrder:
        return await self._toggle_work_order(
            context, work_order_id, False, timeout, cancel_event
        )

    async def activate_work_order(
        self,
        context: ExecutionContext,
        work_order_id: UUID,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> WorkOrder:
        return await self._toggle_work_order(
            context, work_order_id, True, timeout, cancel_event
        )

    async def update_work_order(
        self,
        context: ExecutionContext,
        work_order_id: UUID,
        patch: dict[str, Any],
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> WorkOrder:
        """Revise quantity, window, priority, assignee or remarks of a PLANNED order."""
        trail = AuditTrail("update_work_order", "WorkOrder", work_order_id)

        async def work(uow: ExecutionUnitOfWork) -> WorkOrder:
            trail.before(await self._lifecycle.get(uow, context.tenant_id, work_order_id))
            order = await self._lifecycle.update(
                uow, context.tenant_id, work_order_id, patch
            )
            trail.after(order)
            return order

        return await self._mutate(
            context,
            trail,
            work,
            self._work_order_keys(context, work_order_id),
            timeout,
            cancel_event,
        )

    async def _toggle_work_order(
        self,
        context: ExecutionContext,
        work_order_id: UUID,
        active: bool,
        timeout: float | None,
        cancel_event: asyncio.Event | None,
    ) -> WorkOrder:
        action = "activate_work_order" if active else "deactivate_work_order"
        trail = AuditTrail(action, "WorkOrder", work_order_id)

        async def work(uow: ExecutionUnitOfWork) -> WorkOrder:
            trail.before(await self._lifecycle.get(uow, context.tenant_id, work_order_id))
            toggle = self._lifecycle.activate if active else self._lifecycle.deactivate
            order = await toggle(uow, context.tenant_id, work_order_id)
            trail.after(order)
            return order

        return await self._mutate(
            context,
            trail,
            work,
            self._work_order_keys(context, work_order_id),
            timeout,
            cancel_event,
        )

    async def get_work_order(
        self, context: ExecutionContext, work_order_id: UUID, timeout: float | None = None
    ) -> WorkOrder:
        return await self._query(
            context,
            "get_work_order",
            lambda uow: self._lifecycle.get(uow, context.tenant_id, work_order_id),
            timeout,
        )

    async def get_work_order_by_number(
        self, context: ExecutionContext, work_order_no: str, timeout: float | None = None
    ) -> WorkOrder:
        return await self._query(
            context,
            "get_work_order_by_number",
            lambda uow: self._lifecycle.get_by_number(uow, context.tenant_id, work_order_no),
            timeout,
        )

    async def list_work_orders(
        self,
        context: ExecutionContext,
        include_inactive: bool = False,
        timeout: float | None = None,
    ) -> list[WorkOrder]:
        return await self._query(
            context,
            "list_work_orders",
            lambda uow: self._lifecycle.list_all(
                uow, context.tenant_id, include_inactive
            ),
            timeout,
        )

    async def list_work_orders_by_status(
        self,
        context: ExecutionContext,
        status: WorkOrderStatus,
        include_inactive: bool = False,
        timeout: float | None = None,
    ) -> list[WorkOrder]:
        return await self._query(
            context,
            "list_work_orders_by_status",
            lambda uow: self._lifecycle.list_by_status(
                uow, context.tenant_id, status, include_inactive
            ),
            timeout,
        )

    async def list_work_orders_by_planned_range(
        self,
        context: ExecutionContext,
        start: datetime,
        end: datetime,
        include_inactive: bool = False,
        timeout: float | None = None,
    ) -> list[WorkOrder]:
        return await self._query(
            context,
            "list_work_orders_by_planned_range",
            lambda uow: self._lifecycle.list_by_planned_range(
                uow, context.tenant_id, start, end, include_inactive
            ),
            timeout,
        )

    async def get_work_order_snapshot(
        self, context: ExecutionContext, work_order_id: UUID, timeout: float | None = None
    ) -> WorkOrderSnapshot:
        """Work order with its active results, linked downtime and derived totals."""

        async def read(uow: ExecutionUnitOfWork) -> WorkOrderSnapshot:
            order = await self._lifecycle.get(uow, context.tenant_id, work_order_id)
            results = await self._results.list_by_work_order(
                uow, context.tenant_id, work_order_id
            )
            downtimes = await self._downtime.list_by_work_order(
                uow, context.tenant_id, work_order_id
            )
            return _build_snapshot(order, results, downtimes)

        return await self._query(context, "get_work_order_snapshot", read, timeout)

    # Work results

    async def record_result(
        self,
        context: ExecutionContext,
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
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> WorkResult:
        trail = AuditTrail("record_result", "WorkResult")

        async def work(uow: ExecutionUnitOfWork) -> WorkResult:
            result = await self._results.record(
                uow,
                context.tenant_id,
                work_order_id,
                result_date,
                quantity,
                good_quantity,
                defect_quantity,
                work_start_time,
                work_end_time,
                work_duration,
                worker_id,
                defect_reason,
                remarks,
            )
            trail.after(result)
            return result

        return await self._mutate(
            context,
            trail,
            work,
            self._work_order_keys(context, work_order_id),
            timeout,
            cancel_event,
        )

    async def update_result(
        self,
        context: ExecutionContext,
        work_result_id: UUID,
        patch: dict[str, Any],
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> WorkResult:
        trail = AuditTrail("update_result", "WorkResult", work_result_id)

        async def work(uow: ExecutionUnitOfWork) -> WorkResult:
            trail.before(await self._results.get(uow, context.tenant_id, work_result_id))
            result = await self._results.update(
                uow, context.tenant_id, work_result_id, patch
            )
            trail.after(result)
            return result

        return await self._mutate(
            context,
            trail,
            work,
            self._result_keys(context, work_result_id),
            timeout,
            cancel_event,
        )

    async def reverse_result(
        self,
        context: ExecutionContext,
        work_result_id: UUID,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> WorkResult:
        trail = AuditTrail("reverse_result", "WorkResult", work_result_id)

        async def work(uow: ExecutionUnitOfWork) -> WorkResult:
            trail.before(await self._results.get(uow, context.tenant_id, work_result_id))
            result = await self._results.reverse(
                uow, context.tenant_id, work_result_id, context.actor_uuid
            )
            trail.after(result)
            return result

        return await self._mutate(
            context,
            trail,
            work,
            self._result_keys(context, work_result_id),
            timeout,
            cancel_event,
        )

    async def get_result(
        self, context: ExecutionContext, work_result_id: UUID, timeout: float | None = None
    ) -> WorkResult:
        return await self._query(
            context,
            "get_result",
            lambda uow: self._results.get(uow, context.tenant_id, work_result_id),
            timeout,
        )

    async def list_results_by_work_order(
        self,
        context: ExecutionContext,
        work_order_id: UUID,
        include_reversed: bool = False,
        timeout: float | None = None,
    ) -> list[WorkResult]:
        return await self._query(
            context,
            "list_results_by_work_order",
            lambda uow: self._results.list_by_work_order(
                uow, context.tenant_id, work_order_id, include_reversed
            ),
            timeout,
        )

    async def list_results_by_worker(
        self, context: ExecutionContext, worker_id: UUID, timeout: float | None = None
    ) -> list[WorkResult]:
        return await self._query(
            context,
            "list_results_by_worker",
            lambda uow: self._results.list_by_worker(uow, context.tenant_id, worker_id),
            timeout,
        )

    async def list_results_by_date_range(
        self,
        context: ExecutionContext,
        start: datetime,
        end: datetime,
        timeout: float | None = None,
    ) -> list[WorkResult]:
        return await self._query(
            context,
            "list_results_by_date_range",
            lambda uow: self._results.list_by_date_range(
                uow, context.tenant_id, start, end
            ),
            timeout,
        )

    # Downtime

    async def open_downtime(
        self,
        context: ExecutionContext,
        equipment_id: UUID,
        downtime_code: str,
        downtime_type: DowntimeType | str,
        start_time: datetime,
        downtime_category: str | None = None,
        work_order_id: UUID | None = None,
        operation_id: UUID | None = None,
        responsible_user_id: UUID | None = None,
        responsible_name: str | None = None,
        cause: str | None = None,
        remarks: str | None = None,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> DowntimeEvent:
        trail = AuditTrail("open_downtime", "DowntimeEvent")

        async def work(uow: ExecutionUnitOfWork) -> DowntimeEvent:
            downtime = await self._downtime.open(
                uow,
                context.tenant_id,
                equipment_id,
                downtime_code,
                downtime_type,
                start_time,
                downtime_category,
                work_order_id,
                operation_id,
                responsible_user_id,
                responsible_name,
                cause,
                remarks,
            )
            trail.after(downtime)
            return downtime

        return await self._mutate(
            context,
            trail,
            work,
            (lock_key("equipment", context.tenant_id, equipment_id),),
            timeout,
            cancel_event,
        )

    async def resolve_downtime(
        self,
        context: ExecutionContext,
        downtime_id: UUID,
        end_time: datetime,
        countermeasure: str | None = None,
        preventive_action: str | None = None,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> DowntimeEvent:
        return await self._change_downtime(
            context,
            "resolve_downtime",
            downtime_id,
            lambda uow: self._downtime.resolve(
                uow,
                context.tenant_id,
                downtime_id,
                end_time,
                countermeasure,
                preventive_action,
            ),
            timeout,
            cancel_event,
        )

    async def update_downtime(
        self,
        context: ExecutionContext,
        downtime_id: UUID,
        patch: dict[str, Any],
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> DowntimeEvent:
        return await self._change_downtime(
            context,
            "update_downtime",
            downtime_id,
            lambda uow: self._downtime.update(uow, context.tenant_id, downtime_id, patch),
            timeout,
            cancel_event,
        )

    async def annotate_downtime(
        self,
        context: ExecutionContext,
        downtime_id: UUID,
        patch: dict[str, str],
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> DowntimeEvent:
        return await self._change_downtime(
            context,
            "annotate_downtime",
            downtime_id,
            lambda uow: self._downtime.annotate(
                uow, context.tenant_id, downtime_id, patch
            ),
            timeout,
            cancel_event,
        )

    async def deactivate_downtime(
        self,
        context: ExecutionContext,
        downtime_id: UUID,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> DowntimeEvent:
        return await self._change_downtime(
            context,
            "deactivate_downtime",
            downtime_id,
            lambda uow: self._downtime.deactivate(uow, context.tenant_id, downtime_id),
            timeout,
            cancel_event,
        )

    async def activate_downtime(
        self,
        context: ExecutionContext,
        downtime_id: UUID,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> DowntimeEvent:
        return await self._change_downtime(
            context,
            "activate_downtime",
            downtime_id,
            lambda uow: self._downtime.activate(uow, context.tenant_id, downtime_id),
            timeout,
            cancel_event,
        )

    async def _change_downtime(
        self,
        context: ExecutionContext,
        action: str,
        downtime_id: UUID,
        change: Callable[[ExecutionUnitOfWork], Awaitable[DowntimeEvent]],
        timeout: float | None,
        cancel_event: asyncio.Event | None,
    ) -> DowntimeEvent:
        trail = AuditTrail(action, "DowntimeEvent", downtime_id)

        async def work(uow: ExecutionUnitOfWork) -> DowntimeEvent:
            trail.before(await self._downtime.get(uow, context.tenant_id, downtime_id))
            downtime = await change(uow)
            trail.after(downtime)
            return downtime

        return await self._mutate(
            context,
            trail,
            work,
            self._downtime_keys(context, downtime_id),
            timeout,
            cancel_event,
        )

    async def get_downtime(
        self, context: ExecutionContext, downtime_id: UUID, timeout: float | None = None
    ) -> DowntimeEvent:
        return await self._query(
            context,
            "get_downtime",
            lambda uow: self._downtime.get(uow, context.tenant_id, downtime_id),
            timeout,
        )

    async def list_downtime_by_equipment(
        self,
        context: ExecutionContext,
        equipment_id: UUID,
        include_inactive: bool = False,
        timeout: float | None = None,
    ) -> list[DowntimeEvent]:
        return await self._query(
            context,
            "list_downtime_by_equipment",
            lambda uow: self._downtime.list_by_equipment(
                uow, context.tenant_id, equipment_id, include_inactive
            ),
            timeout,
        )

    async def list_downtime_by_type(
        self,
        context: ExecutionContext,
        downtime_type: DowntimeType,
        include_inactive: bool = False,
        timeout: float | None = None,
    ) -> list[DowntimeEvent]:
        return await self._query(
            context,
            "list_downtime_by_type",
            lambda uow: self._downtime.list_by_type(
                uow, context.tenant_id, downtime_type, include_inactive
            ),
            timeout,
        )

    async def list_downtime_by_date_range(
        self,
        context: ExecutionContext,
        start: datetime,
        end: datetime,
        include_inactive: bool = False,
        timeout: float | None = None,
    ) -> list[DowntimeEvent]:
        return await self._query(
            context,
            "list_downtime_by_date_range",
            lambda uow: self._downtime.list_by_date_range(
                uow, context.tenant_id, start, end, include_inactive
            ),
            timeout,
        )

    async def list_unresolved_downtime(
        self, context: ExecutionContext, timeout: float | None = None
    ) -> list[DowntimeEvent]:
        return await self._query(
            context,
            "list_unresolved_downtime",
            lambda uow: self._downtime.list_unresolved(uow, context.tenant_id),
            timeout,
        )

    # Lock keys

    def _work_order_keys(self, context: ExecutionContext, work_order_id: UUID):
        return (lock_key("work_order", context.tenant_id, work_order_id),)

    def _result_keys(self, context: ExecutionContext, work_result_id: UUID):
        """Resolve the lock of the work order owning a result."""

        async def resolve():
            async with self._store.unit_of_work() as uow:
                result = await uow.work_results.get(context.tenant_id, work_result_id)
            if result is None:
                return (lock_key("work_result", context.tenant_id, work_result_id),)
            return self._work_order_keys(context, result.work_order_id)

        return resolve

    def _downtime_keys(self, context: ExecutionContext, downtime_id: UUID):
        """Resolve the lock of the equipment owning a downtime."""

        async def resolve():
            async with self._store.unit_of_work() as uow:
                downtime = await uow.downtimes.get(context.tenant_id, downtime_id)
            if downtime is None:
                return (lock_key("downtime", context.tenant_id, downtime_id),)
            return (lock_key("equipment", context.tenant_id, downtime.equipment_id),)

        return resolve

    # Guarded execution

    async def _mutate(
        self,
        context: ExecutionContext,
        trail: AuditTrail,
        work: Callable[[ExecutionUnitOfWork], Awaitable[T]],
        lock_keys,
        timeout: float | None,
        cancel_event: asyncio.Event | None,
    ) -> T:
        started = time.perf_counter()
        try:
            self._check_context(context)
            with model_errors_as_validation():
                value, events = await self.run_in_transaction(
                    trail.action, work, lock_keys, timeout, cancel_event
                )
        except DomainError as e:
            record_operation(trail.action, e.code, time.perf_counter() - started)
            await self._audit(context, trail, e.code)
            logger.info(
                "Execution operation rejected",
                operation=trail.action,
                tenant_id=context.tenant_id,
                entity_id=trail.entity_id,
                error_code=e.code,
                error=e.message,
            )
            raise ExecutionFailure.from_domain_error(e) from e
        except Exception as e:
            record_operation(trail.action, "error", time.perf_counter() - started)
            await self._audit(context, trail, "INTERNAL_ERROR")
            log_error_with_context(
                e, trail.action, {"tenant_id": context.tenant_id, "entity_id": trail.entity_id}
            )
            raise

        await self._publisher.publish_batch_async(events)
        await self._audit(context, trail, None)
        record_operation(trail.action, "success", time.perf_counter() - started)
        return value

    async def _query(
        self,
        context: ExecutionContext,
        operation: str,
        read: Callable[[ExecutionUnitOfWork], Awaitable[T]],
        timeout: float | None,
    ) -> T:
        started = time.perf_counter()
        try:
            self._check_context(context)
            with model_errors_as_validation():
                value, _ = await self.run_in_transaction(
                    operation, read, timeout=timeout, commit=False
                )
        except DomainError as e:
            record_operation(operation, e.code, time.perf_counter() - started)
            raise ExecutionFailure.from_domain_error(e) from e
        record_operation(operation, "success", time.perf_counter() - started)
        return value

    def _check_context(self, context: ExecutionContext) -> None:
        if not str(context.tenant_id or "").strip():
            raise ValidationError("tenant_id", None, "tenant_id is required", "REQUIRED_FIELD")
        if len(str(context.tenant_id)) > TENANT_ID_MAX_LENGTH:
            raise ValidationError(
                "tenant_id",
                str(context.tenant_id),
                f"Value exceeds maximum length of {TENANT_ID_MAX_LENGTH}",
                "TOO_LONG",
            )
        if not str(context.actor_user_id or "").strip():
            raise ValidationError(
                "actor_user_id", None, "actor_user_id is required", "REQUIRED_FIELD"
            )

    async def _audit(
        self, context: ExecutionContext, trail: AuditTrail, error_code: str | None
    ) -> None:
        record = AuditRecord(
            action=trail.action,
            entity_type=trail.entity_type,
            entity_id=trail.entity_id,
            old_value=trail.old_value,
            new_value=trail.new_value if error_code is None else None,
            actor_user_id=str(context.actor_user_id or ""),
            tenant_id=str(context.tenant_id or ""),
            timestamp=self._clock(),
            success=error_code is None,
            error_code=error_code,
        )
        self.last_audit_report = await deliver_audit_record(self._audit_sink, record)


def _parse_action(action: TransitionAction | str) -> TransitionAction:
    if isinstance(action, TransitionAction):
        return action
    try:
        return TransitionAction(str(action).strip().lower())
    except ValueError:
        raise ValidationError(
            "action",
            action,
            f"Must be one of: {', '.join(a.value for a in TransitionAction)}",
            "INVALID_ACTION",
        ) from None


def _build_snapshot(
    order: WorkOrder, results: list[WorkResult], downtimes: list[DowntimeEvent]
) -> WorkOrderSnapshot:
    quantities = order.quantities
    totals = WorkOrderTotals(
        result_count=len(results),
        yield_rate=quantities.yield_rate,
        defect_rate=quantities.defect_rate,
        downtime_count=len(downtimes),
        open_downtime_count=sum(1 for d in downtimes if not d.is_resolved),
        downtime_minutes=sum(d.duration_minutes or 0 for d in downtimes),
    )
    return WorkOrderSnapshot(
        work_order=WorkOrderResponse.from_entity(order),
        results=[WorkResultResponse.from_entity(r) for r in results],
        downtimes=[DowntimeResponse.from_entity(d) for d in downtimes],
        totals=totals,
    )


def build_execution_facade(
    config: Settings = settings,
    store: ExecutionStore | None = None,
    reference_data: ReferenceDataGateway | None = None,
    audit_sink: AuditSink | None = None,
    publisher: DomainEventPublisher | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> ExecutionFacade:
    """
    Wire the facade from configuration.

    Collaborators not supplied fall back to the in-process adapters.
    """
    if store is None:
        if config.STORE_BACKEND == "sql":
            from app.infrastructure.database.sql_store import SqlModelExecutionStore

            store = SqlModelExecutionStore(
                database_url=config.DATABASE_URL, workers=config.DATABASE_WORKERS
            )
        else:
            store = InMemoryExecutionStore()
    reference_data = reference_data or PermissiveReferenceData()
    audit_sink = audit_sink or InMemoryAuditLog(config.AUDIT_INTEGRITY_SECRET)

    lifecycle = WorkOrderLifecycleService(
        reference_data,
        over_production_tolerance=config.OVER_PRODUCTION_TOLERANCE,
        cancel_reverses_results=config.CANCEL_REVERSES_RESULTS,
        clock=clock,
    )
    return ExecutionFacade(
        store=store,
        lifecycle=lifecycle,
        results=WorkResultService(lifecycle, reference_data, clock=clock),
        downtime=DowntimeTrackingService(reference_data, clock=clock),
        audit_sink=audit_sink,
        publisher=publisher,
        timeout_seconds=config.PERSISTENCE_TIMEOUT_SECONDS,
        clock=clock,
    )
