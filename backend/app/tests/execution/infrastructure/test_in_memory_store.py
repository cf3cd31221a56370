"""Tests specific to the in-memory execution store."""

import asyncio
from datetime import datetime, timedelta
from uuid import uuid4

import pytest

from app.domain.execution.entities import DowntimeEvent, WorkOrder
from app.domain.shared.exceptions import ConflictError
from app.infrastructure.persistence import InMemoryExecutionStore

from ..factories import TENANT

START = datetime(2024, 6, 3, 8, 0)


def new_order(work_order_no: str = "WO-MEM") -> WorkOrder:
    return WorkOrder.create(
        tenant_id=TENANT,
        work_order_no=work_order_no,
        product_id=uuid4(),
        process_id=uuid4(),
        planned_quantity=10,
        planned_start_date=START,
        planned_end_date=START + timedelta(hours=8),
    )


class TestInMemoryExecutionStore:
    """Test copy isolation and commit latency."""

    async def test_stored_copy_is_isolated_from_caller(self):
        store = InMemoryExecutionStore()
        order = new_order()
        async with store.unit_of_work() as uow:
            uow.work_orders.add(order)
            await uow.commit()

        order.remarks = "changed after commit"

        assert store.work_order_table[order.id].remarks is None
        assert store.work_order_table[order.id] is not order
        assert store.commit_count == 1

    async def test_empty_commit_does_not_write(self):
        store = InMemoryExecutionStore()

        async with store.unit_of_work() as uow:
            await uow.commit()

        assert store.commit_count == 0

    async def test_cancelled_commit_writes_nothing(self):
        store = InMemoryExecutionStore(latency=0.2)
        order = new_order()

        async def commit():
            async with store.unit_of_work() as uow:
                uow.work_orders.add(order)
                await uow.commit()

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(commit(), timeout=0.05)

        assert store.work_order_table == {}
        assert order.version == 0

    async def test_committed_unit_of_work_is_closed(self):
        store = InMemoryExecutionStore()
        async with store.unit_of_work() as uow:
            await uow.commit()

            with pytest.raises(RuntimeError):
                uow.work_orders.add(new_order())


def new_downtime(equipment_id, start: datetime = START) -> DowntimeEvent:
    return DowntimeEvent.create(
        tenant_id=TENANT,
        equipment_id=equipment_id,
        downtime_code="BRK-01",
        downtime_type="breakdown",
        start_time=start,
    )


async def commit(store: InMemoryExecutionStore, *entities) -> None:
    async with store.unit_of_work() as uow:
        for entity in entities:
            if isinstance(entity, WorkOrder):
                uow.work_orders.add(entity)
            else:
                uow.downtimes.add(entity)
        await uow.commit()


class TestUniqueKeyIndex:
    """Test the unique-key indexes checked on commit."""

    async def test_committed_orders_are_indexed_by_number(self):
        store = InMemoryExecutionStore()
        first, second = new_order("WO-1"), new_order("WO-2")
        await commit(store, first, second)

        assert store.work_order_numbers == {
            (TENANT, "WO-1"): first.id,
            (TENANT, "WO-2"): second.id,
        }

    async def test_duplicate_number_against_index(self):
        store = InMemoryExecutionStore()
        existing = new_order("WO-1")
        await commit(store, existing)

        with pytest.raises(ConflictError) as exc_info:
            await commit(store, new_order("WO-1"))

        assert exc_info.value.entity_id == existing.id
        assert len(store.work_order_table) == 1

    async def test_duplicate_number_within_one_batch(self):
        store = InMemoryExecutionStore()

        with pytest.raises(ConflictError):
            await commit(store, new_order("WO-1"), new_order("WO-1"))

        assert store.work_order_table == {}
        assert store.work_order_numbers == {}

    async def test_recommitting_an_order_keeps_its_number(self):
        store = InMemoryExecutionStore()
        order = new_order("WO-1")
        await commit(store, order)

        async with store.unit_of_work() as uow:
            loaded = await uow.work_orders.get(TENANT, order.id)
            loaded.remarks = "second pass"
            uow.work_orders.add(loaded)
            await uow.commit()

        assert store.work_order_numbers == {(TENANT, "WO-1"): order.id}
        assert store.work_order_table[order.id].remarks == "second pass"

    async def test_resolution_frees_the_equipment(self):
        store = InMemoryExecutionStore()
        equipment_id = uuid4()
        first = new_downtime(equipment_id)
        await commit(store, first)
        assert store.open_downtime == {(TENANT, equipment_id): first.id}

        with pytest.raises(ConflictError):
            await commit(store, new_downtime(equipment_id, START + timedelta(minutes=5)))

        async with store.unit_of_work() as uow:
            loaded = await uow.downtimes.get(TENANT, first.id)
            loaded.resolve(START + timedelta(minutes=30))
            uow.downtimes.add(loaded)
            await uow.commit()
        assert store.open_downtime == {}

        second = new_downtime(equipment_id, START + timedelta(hours=1))
        await commit(store, second)
        assert store.open_downtime == {(TENANT, equipment_id): second.id}

    async def test_resolve_and_reopen_in_one_batch(self):
        store = InMemoryExecutionStore()
        equipment_id = uuid4()
        first = new_downtime(equipment_id)
        await commit(store, first)

        async with store.unit_of_work() as uow:
            loaded = await uow.downtimes.get(TENANT, first.id)
            loaded.resolve(START + timedelta(minutes=30))
            uow.downtimes.add(loaded)
            uow.downtimes.add(new_downtime(equipment_id, START + timedelta(hours=1)))
            await uow.commit()

        assert len(store.downtime_table) == 2
        assert store.open_downtime[(TENANT, equipment_id)] != first.id
