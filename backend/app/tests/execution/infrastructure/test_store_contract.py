"""
Behaviour shared by every execution store.

The same tests run against the in-memory store and the SQLModel store on an
in-memory SQLite database.
"""

from datetime import datetime, timedelta
from uuid import uuid4

import pytest

from app.domain.execution.entities import DowntimeEvent, WorkOrder, WorkResult
from app.domain.execution.events import WorkOrderCreated
from app.domain.execution.value_objects import (
    DowntimeType,
    ProductionQuantities,
    WorkOrderStatus,
)
from app.domain.shared.exceptions import ConflictError
from app.infrastructure.database.sql_store import SqlModelExecutionStore
from app.infrastructure.persistence import InMemoryExecutionStore

from ..factories import OTHER_TENANT, SHIFT_START, TENANT, result_kwargs

DOWN_AT = datetime(2024, 6, 3, 10, 0)


@pytest.fixture(params=["memory", "sql"])
def execution_store(request):
    if request.param == "memory":
        yield InMemoryExecutionStore()
        return
    store = SqlModelExecutionStore(database_url="sqlite://")
    yield store
    store.dispose()


def new_order(work_order_no: str = "WO-1", **overrides) -> WorkOrder:
    values = {
        "tenant_id": TENANT,
        "work_order_no": work_order_no,
        "product_id": uuid4(),
        "process_id": uuid4(),
        "planned_quantity": 100,
        "planned_start_date": SHIFT_START,
        "planned_end_date": SHIFT_START + timedelta(hours=9),
    }
    values.update(overrides)
    return WorkOrder.create(**values)


def new_downtime(equipment_id, start_time=DOWN_AT, **overrides) -> DowntimeEvent:
    return DowntimeEvent.create(
        tenant_id=overrides.pop("tenant_id", TENANT),
        equipment_id=equipment_id,
        downtime_code="BRK-01",
        downtime_type=overrides.pop("downtime_type", DowntimeType.BREAKDOWN),
        start_time=start_time,
        **overrides,
    )


async def save(store, *entities):
    async with store.unit_of_work() as uow:
        repositories = {
            WorkOrder: uow.work_orders,
            WorkResult: uow.work_results,
            DowntimeEvent: uow.downtimes,
        }
        for entity in entities:
            repositories[type(entity)].add(entity)
        await uow.commit()
        return uow.collect_events()


class TestCommit:
    """Test versioning, events and rollback."""

    async def test_commit_persists_and_bumps_version(self, execution_store):
        order = new_order()

        events = await save(execution_store, order)

        assert order.version == 1
        assert [type(e) for e in events] == [WorkOrderCreated]
        async with execution_store.unit_of_work() as uow:
            loaded = await uow.work_orders.get(TENANT, order.id)
        assert loaded.version == 1
        assert loaded.work_order_no == "WO-1"
        assert loaded.status == WorkOrderStatus.PLANNED
        assert loaded.get_domain_events() == []

    async def test_identity_map_returns_same_copy(self, execution_store):
        order = new_order()
        await save(execution_store, order)

        async with execution_store.unit_of_work() as uow:
            first = await uow.work_orders.get(TENANT, order.id)
            second = await uow.work_orders.get(TENANT, order.id)

        assert first is second

    async def test_stale_write_conflicts(self, execution_store):
        order = new_order()
        await save(execution_store, order)

        async with execution_store.unit_of_work() as first_uow:
            first = await first_uow.work_orders.get(TENANT, order.id)
            async with execution_store.unit_of_work() as second_uow:
                second = await second_uow.work_orders.get(TENANT, order.id)

                first.apply_quantities(ProductionQuantities.of(10, 0))
                first_uow.work_orders.add(first)
                await first_uow.commit()

                second.apply_quantities(ProductionQuantities.of(20, 0))
                second_uow.work_orders.add(second)
                with pytest.raises(ConflictError) as exc_info:
                    await second_uow.commit()

        assert exc_info.value.details["found_version"] == 2
        async with execution_store.unit_of_work() as uow:
            loaded = await uow.work_orders.get(TENANT, order.id)
        assert loaded.actual_quantity == 10
        assert loaded.version == 2

    async def test_failed_batch_writes_nothing(self, execution_store):
        existing = new_order("WO-1")
        await save(execution_store, existing)

        fresh = new_order("WO-2")
        clash = new_order("WO-1")
        with pytest.raises(ConflictError):
            await save(execution_store, fresh, clash)

        async with execution_store.unit_of_work() as uow:
            assert await uow.work_orders.get(TENANT, fresh.id) is None
            assert await uow.work_orders.get_by_number(TENANT, "WO-2") is None

    async def test_leaving_without_commit_discards_changes(self, execution_store):
        order = new_order()
        await save(execution_store, order)

        async with execution_store.unit_of_work() as uow:
            loaded = await uow.work_orders.get(TENANT, order.id)
            loaded.release()
            uow.work_orders.add(loaded)

        async with execution_store.unit_of_work() as uow:
            reloaded = await uow.work_orders.get(TENANT, order.id)
        assert reloaded.status == WorkOrderStatus.PLANNED
        assert reloaded.version == 1


class TestUniqueness:
    """Test the store-level uniqueness rules."""

    async def test_work_order_number_unique_per_tenant(self, execution_store):
        await save(execution_store, new_order("WO-7"))

        with pytest.raises(ConflictError):
            await save(execution_store, new_order("WO-7"))

        await save(execution_store, new_order("WO-7", tenant_id=OTHER_TENANT))

    async def test_one_open_downtime_per_equipment(self, execution_store):
        equipment_id = uuid4()
        first = new_downtime(equipment_id)
        await save(execution_store, first)

        with pytest.raises(ConflictError):
            await save(execution_store, new_downtime(equipment_id, DOWN_AT + timedelta(minutes=5)))

        async with execution_store.unit_of_work() as uow:
            loaded = await uow.downtimes.get(TENANT, first.id)
            loaded.resolve(DOWN_AT + timedelta(minutes=30))
            uow.downtimes.add(loaded)
            await uow.commit()

        await save(execution_store, new_downtime(equipment_id, DOWN_AT + timedelta(hours=1)))

        async with execution_store.unit_of_work() as uow:
            history = await uow.downtimes.list_by_equipment(TENANT, equipment_id)
            open_now = await uow.downtimes.find_unresolved_by_equipment(TENANT, equipment_id)
        assert len(history) == 2
        assert open_now.start_time == DOWN_AT + timedelta(hours=1)


class TestQueries:
    """Test tenant scoping and the read models."""

    async def test_other_tenant_cannot_read(self, execution_store):
        order = new_order()
        await save(execution_store, order)

        async with execution_store.unit_of_work() as uow:
            assert await uow.work_orders.get(OTHER_TENANT, order.id) is None
            assert await uow.work_orders.get_by_number(OTHER_TENANT, "WO-1") is None

    async def test_list_orders_filters(self, execution_store):
        early = new_order("WO-A")
        late = new_order(
            "WO-B",
            planned_start_date=SHIFT_START + timedelta(days=1),
            planned_end_date=SHIFT_START + timedelta(days=1, hours=8),
        )
        late.release()
        await save(execution_store, early, late)

        async with execution_store.unit_of_work() as uow:
            in_progress = await uow.work_orders.list_orders(
                TENANT, status=WorkOrderStatus.IN_PROGRESS
            )
            first_day = await uow.work_orders.list_orders(
                TENANT,
                planned_from=SHIFT_START,
                planned_to=SHIFT_START + timedelta(hours=12),
            )
            everything = await uow.work_orders.list_orders(TENANT)

        assert [o.work_order_no for o in in_progress] == ["WO-B"]
        assert [o.work_order_no for o in first_day] == ["WO-A"]
        assert [o.work_order_no for o in everything] == ["WO-A", "WO-B"]

    async def test_results_by_order_skip_reversed(self, execution_store):
        order = new_order()
        kept = WorkResult.create(tenant_id=TENANT, **result_kwargs(order.id, 10))
        dropped = WorkResult.create(
            tenant_id=TENANT,
            **result_kwargs(
                order.id,
                5,
                work_start_time=datetime(2024, 6, 3, 11, 0),
                work_end_time=datetime(2024, 6, 3, 12, 0),
            ),
        )
        dropped.reverse()
        await save(execution_store, order, kept, dropped)

        async with execution_store.unit_of_work() as uow:
            active = await uow.work_results.list_by_work_order(TENANT, order.id)
            every = await uow.work_results.list_by_work_order(
                TENANT, order.id, include_reversed=True
            )
            count = await uow.work_results.count_by_work_order(TENANT, order.id)

        assert [r.id for r in active] == [kept.id]
        assert [r.id for r in every] == [kept.id, dropped.id]
        assert count == 1

    async def test_overlap_treats_open_downtime_as_unbounded(self, execution_store):
        resolved = new_downtime(uuid4(), DOWN_AT - timedelta(hours=2))
        resolved.resolve(DOWN_AT - timedelta(hours=1))
        still_open = new_downtime(uuid4(), DOWN_AT, downtime_type=DowntimeType.SETUP_CHANGE)
        await save(execution_store, resolved, still_open)

        async with execution_store.unit_of_work() as uow:
            tomorrow = await uow.downtimes.list_overlapping(
                TENANT, DOWN_AT + timedelta(days=1), DOWN_AT + timedelta(days=1, hours=1)
            )
            touching = await uow.downtimes.list_overlapping(
                TENANT, DOWN_AT - timedelta(hours=1), DOWN_AT
            )
            setups = await uow.downtimes.list_by_type(TENANT, DowntimeType.SETUP_CHANGE)
            unresolved = await uow.downtimes.list_unresolved(TENANT)

        assert [d.id for d in tomorrow] == [still_open.id]
        # Half-open intervals: adjacent windows do not overlap
        assert touching == []
        assert [d.id for d in setups] == [still_open.id]
        assert [d.id for d in unresolved] == [still_open.id]
