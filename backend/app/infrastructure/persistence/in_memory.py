"""
In-memory execution store.

Reference persistence adapter. Stored aggregates are private copies; every
read hands out a fresh working copy, and a commit swaps in new copies only
after all version and uniqueness checks for the whole batch have passed.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any, Generic, TypeVar
from uuid import UUID

from app.domain.execution.entities import DowntimeEvent, WorkOrder, WorkResult
from app.domain.execution.repositories import (
    DowntimeRepository,
    ExecutionStore,
    WorkOrderRepository,
    WorkResultRepository,
)
from app.domain.execution.value_objects import (
    DowntimeType,
    TimeInterval,
    WorkOrderStatus,
)
from app.domain.shared.base import AggregateRoot
from app.domain.shared.exceptions import ConflictError

from .unit_of_work import TrackingUnitOfWork

logger = logging.getLogger(__name__)

AggregateT = TypeVar("AggregateT", bound=AggregateRoot)


def _work_order_number_key(order: WorkOrder) -> tuple[str, str]:
    return (order.tenant_id, order.work_order_no)


def _open_downtime_key(downtime: DowntimeEvent) -> tuple[str, UUID] | None:
    if downtime.is_resolved:
        return None
    return (downtime.tenant_id, downtime.equipment_id)


def _stored_copy(entity: AggregateT, version: int | None = None) -> AggregateT:
    copy = entity.model_copy(deep=True)
    copy.clear_domain_events()
    if version is not None:
        copy.version = version
    return copy


class InMemoryRepository(Generic[AggregateT]):
    """Tenant-scoped reads over one table of the store."""

    entity_type: type[AggregateT]

    def __init__(self, uow: "InMemoryUnitOfWork", table: dict[UUID, AggregateT]):
        self._uow = uow
        self._table = table

    async def get(self, tenant_id: str, entity_id: UUID) -> AggregateT | None:
        tracked = self._uow.tracked(self.entity_type, entity_id)
        if tracked is not None:
            return tracked if tracked.tenant_id == tenant_id else None
        stored = self._table.get(entity_id)
        if stored is None or stored.tenant_id != tenant_id:
            return None
        return self._uow.track(_stored_copy(stored))

    def add(self, entity: AggregateT) -> None:
        self._uow.stage(entity)

    def _select(
        self,
        tenant_id: str,
        predicate: Callable[[AggregateT], bool],
        sort_key: Callable[[AggregateT], object] | None = None,
        reverse: bool = False,
    ) -> list[AggregateT]:
        rows = [
            entity
            for entity in self._table.values()
            if entity.tenant_id == tenant_id and predicate(entity)
        ]
        if sort_key is not None:
            rows.sort(key=sort_key, reverse=reverse)
        return [self._uow.track(_stored_copy(entity)) for entity in rows]


class InMemoryWorkOrderRepository(InMemoryRepository[WorkOrder], WorkOrderRepository):
    entity_type = WorkOrder

    async def get_by_number(self, tenant_id: str, work_order_no: str) -> WorkOrder | None:
        matches = self._select(
            tenant_id, lambda order: order.work_order_no == work_order_no
        )
        return matches[0] if matches else None

    async def list_orders(
        self,
        tenant_id: str,
        status: WorkOrderStatus | None = None,
        planned_from: datetime | None = None,
        planned_to: datetime | None = None,
        include_inactive: bool = False,
    ) -> list[WorkOrder]:
        def matches(order: WorkOrder) -> bool:
            if status is not None and order.status != status:
                return False
            if not include_inactive and not order.is_active:
                return False
            if planned_to is not None and order.planned_start_date >= planned_to:
                return False
            if planned_from is not None and order.planned_end_date <= planned_from:
                return False
            return True

        return self._select(
            tenant_id, matches, lambda order: (order.planned_start_date, order.work_order_no)
        )


class InMemoryWorkResultRepository(InMemoryRepository[WorkResult], WorkResultRepository):
    entity_type = WorkResult

    async def list_by_work_order(
        self, tenant_id: str, work_order_id: UUID, include_reversed: bool = False
    ) -> list[WorkResult]:
        return self._select(
            tenant_id,
            lambda result: result.work_order_id == work_order_id
            and (include_reversed or not result.is_reversed),
            lambda result: result.work_start_time,
        )

    async def list_by_worker(self, tenant_id: str, worker_id: UUID) -> list[WorkResult]:
        return self._select(
            tenant_id,
            lambda result: result.worker_id == worker_id and not result.is_reversed,
            lambda result: result.work_start_time,
            reverse=True,
        )

    async def list_by_date_range(
        self, tenant_id: str, start: datetime, end: datetime
    ) -> list[WorkResult]:
        return self._select(
            tenant_id,
            lambda result: start <= result.result_date <= end and not result.is_reversed,
            lambda result: result.result_date,
        )

    async def count_by_work_order(
        self, tenant_id: str, work_order_id: UUID, include_reversed: bool = False
    ) -> int:
        return sum(
            1
            for result in self._table.values()
            if result.tenant_id == tenant_id
            and result.work_order_id == work_order_id
            and (include_reversed or not result.is_reversed)
        )


class InMemoryDowntimeRepository(InMemoryRepository[DowntimeEvent], DowntimeRepository):
    entity_type = DowntimeEvent

    def _latest_first(self, tenant_id, predicate) -> list[DowntimeEvent]:
        return self._select(
            tenant_id, predicate, lambda downtime: downtime.start_time, reverse=True
        )

    async def find_unresolved_by_equipment(
        self, tenant_id: str, equipment_id: UUID
    ) -> DowntimeEvent | None:
        matches = self._select(
            tenant_id,
            lambda downtime: downtime.equipment_id == equipment_id
            and not downtime.is_resolved,
        )
        return matches[0] if matches else None

    async def list_by_equipment(
        self, tenant_id: str, equipment_id: UUID, include_inactive: bool = False
    ) -> list[DowntimeEvent]:
        return self._latest_first(
            tenant_id,
            lambda downtime: downtime.equipment_id == equipment_id
            and (include_inactive or downtime.is_active),
        )

    async def list_by_type(
        self,
        tenant_id: str,
        downtime_type: DowntimeType,
        include_inactive: bool = False,
    ) -> list[DowntimeEvent]:
        return self._latest_first(
            tenant_id,
            lambda downtime: downtime.downtime_type == downtime_type
            and (include_inactive or downtime.is_active),
        )

    async def list_by_work_order(
        self, tenant_id: str, work_order_id: UUID, include_inactive: bool = False
    ) -> list[DowntimeEvent]:
        return self._latest_first(
            tenant_id,
            lambda downtime: downtime.work_order_id == work_order_id
            and (include_inactive or downtime.is_active),
        )

    async def list_overlapping(
        self,
        tenant_id: str,
        start: datetime,
        end: datetime,
        include_inactive: bool = False,
    ) -> list[DowntimeEvent]:
        window = TimeInterval(start=start, end=end)
        return self._latest_first(
            tenant_id,
            lambda downtime: downtime.interval.overlaps(window)
            and (include_inactive or downtime.is_active),
        )

    async def list_unresolved(self, tenant_id: str) -> list[DowntimeEvent]:
        return self._latest_first(tenant_id, lambda downtime: not downtime.is_resolved)


class InMemoryUnitOfWork(TrackingUnitOfWork):
    """Unit of work over an :class:`InMemoryExecutionStore`."""

    def __init__(self, store: "InMemoryExecutionStore") -> None:
        super().__init__()
        self._store = store
        self.work_orders = InMemoryWorkOrderRepository(self, store.work_order_table)
        self.work_results = InMemoryWorkResultRepository(self, store.work_result_table)
        self.downtimes = InMemoryDowntimeRepository(self, store.downtime_table)

    async def _write(self, staged: list[AggregateRoot]) -> None:
        await self._store.write(staged)


class InMemoryExecutionStore(ExecutionStore):
    """
    Process-local store keyed by aggregate id.

    Args:
        latency: Seconds each commit waits before writing, to exercise
            timeouts and interleavings
    """

    def __init__(self, latency: float = 0.0) -> None:
        self.work_order_table: dict[UUID, WorkOrder] = {}
        self.work_result_table: dict[UUID, WorkResult] = {}
        self.downtime_table: dict[UUID, DowntimeEvent] = {}
        # Unique keys of committed rows, kept in step with the tables on every swap.
        self.work_order_numbers: dict[tuple[str, str], UUID] = {}
        self.open_downtime: dict[tuple[str, UUID], UUID] = {}
        self.latency = latency
        self.commit_count = 0

    def unit_of_work(self) -> InMemoryUnitOfWork:
        return InMemoryUnitOfWork(self)

    def _table_for(self, entity: AggregateRoot) -> dict[UUID, AggregateRoot]:
        tables = {
            WorkOrder: self.work_order_table,
            WorkResult: self.work_result_table,
            DowntimeEvent: self.downtime_table,
        }
        return tables[type(entity)]

    async def write(self, staged: list[AggregateRoot]) -> None:
        """
        Atomically write a batch of aggregates.

        No await happens between the checks and the swap, so the batch is
        applied as a whole or not at all.

        Raises:
            ConflictError: On a version mismatch or a uniqueness violation
        """
        if self.latency:
            await asyncio.sleep(self.latency)

        for entity in staged:
            self._check_version(entity)
        self._check_work_order_numbers(staged)
        self._check_open_downtime(staged)

        for entity in staged:
            table = self._table_for(entity)
            previous = table.get(entity.id)
            table[entity.id] = _stored_copy(entity, entity.version + 1)
            self._reindex(previous, entity)
        self.commit_count += 1

    def _check_version(self, entity: AggregateRoot) -> None:
        stored = self._table_for(entity).get(entity.id)
        found = stored.version if stored is not None else 0
        if (stored is not None and stored.tenant_id != entity.tenant_id) or (
            found != entity.version
        ):
            raise ConflictError(
                f"{type(entity).__name__} {entity.id} was modified concurrently "
                f"(expected version {entity.version}, found {found})",
                type(entity).__name__,
                entity.id,
                {"expected_version": entity.version, "found_version": found},
            )

    def _check_work_order_numbers(self, staged: list[AggregateRoot]) -> None:
        owner = self._unique_key_owner(
            staged, WorkOrder, self.work_order_numbers, _work_order_number_key
        )
        if owner is not None:
            order, holder = owner
            raise ConflictError(
                f"Work order number {order.work_order_no} already exists",
                "WorkOrder",
                holder,
                {"work_order_no": order.work_order_no},
            )

    def _check_open_downtime(self, staged: list[AggregateRoot]) -> None:
        owner = self._unique_key_owner(
            staged, DowntimeEvent, self.open_downtime, _open_downtime_key
        )
        if owner is not None:
            downtime, holder = owner
            raise ConflictError(
                f"Equipment {downtime.equipment_id} already has an open downtime",
                "DowntimeEvent",
                holder,
                {"equipment_id": str(downtime.equipment_id)},
            )

    @staticmethod
    def _unique_key_owner(
        staged: list[AggregateRoot],
        entity_type: type[AggregateT],
        index: dict[Any, UUID],
        key_of: Callable[[AggregateT], Any],
    ) -> tuple[AggregateT, UUID] | None:
        """
        First staged entity whose key is already held, with the holder's id.

        Only the staged keys are looked up. A key held by an entity that is
        itself in the batch counts only if that entity still claims it.
        """
        batch = [entity for entity in staged if isinstance(entity, entity_type)]
        in_batch = {entity.id for entity in batch}
        claimed: dict[Any, UUID] = {}
        for entity in batch:
            key = key_of(entity)
            if key is None:
                continue
            holder = claimed.get(key)
            if holder is None:
                holder = index.get(key)
                if holder in in_batch:
                    holder = None
            if holder is not None and holder != entity.id:
                return entity, holder
            claimed[key] = entity.id
        return None

    def _reindex(self, previous: AggregateRoot | None, entity: AggregateRoot) -> None:
        if isinstance(entity, WorkOrder):
            index, key_of = self.work_order_numbers, _work_order_number_key
        elif isinstance(entity, DowntimeEvent):
            index, key_of = self.open_downtime, _open_downtime_key
        else:
            return
        if previous is not None:
            old_key = key_of(previous)
            if old_key is not None and index.get(old_key) == previous.id:
                del index[old_key]
        new_key = key_of(entity)
        if new_key is not None:
            index[new_key] = entity.id
