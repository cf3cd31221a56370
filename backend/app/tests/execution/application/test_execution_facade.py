"""
Tests for the execution facade.

Covers error translation, auditing, event publication, deadlines,
cancellation, tenant isolation and concurrent callers.
"""

import asyncio
from datetime import datetime, timedelta
from uuid import uuid4

import pytest

from app.application.services import (
    ExecutionContext,
    ExecutionFailure,
    build_execution_facade,
)
from app.domain.execution.events import (
    DowntimeOpened,
    WorkOrderCreated,
    WorkOrderPlanUpdated,
    WorkOrderStatusChanged,
    WorkResultRecorded,
)
from app.domain.execution.value_objects import WorkOrderStatus
from app.infrastructure.audit import AuditRecord, AuditSink, InMemoryAuditLog
from app.infrastructure.persistence import InMemoryExecutionStore

from ..factories import TENANT, downtime_kwargs, result_kwargs, work_order_kwargs

DOWN_AT = datetime(2024, 6, 3, 10, 0)


class BrokenAuditSink(AuditSink):
    async def record(self, record: AuditRecord) -> None:
        raise ConnectionError("audit store offline")


@pytest.fixture
async def order(facade, context, master):
    return await facade.create_work_order(context, **work_order_kwargs(master))


class TestWorkOrderOperations:
    """Test work order use cases end to end."""

    async def test_create_audits_and_publishes(self, facade, context, master, audit_log, event_bus):
        order = await facade.create_work_order(context, **work_order_kwargs(master))

        assert order.version == 1
        record = audit_log.records[-1]
        assert record.action == "create_work_order"
        assert record.success
        assert record.entity_id == str(order.id)
        assert record.actor_user_id == context.actor_user_id
        assert record.new_value["work_order_no"] == "WO-2024-001"
        assert facade.last_audit_report.delivered
        assert [type(e) for e in event_bus.get_event_history()] == [WorkOrderCreated]

    async def test_duplicate_number_is_a_conflict(self, facade, context, master, order, audit_log):
        with pytest.raises(ExecutionFailure) as exc_info:
            await facade.create_work_order(
                context, **work_order_kwargs(master, work_order_no="wo-2024-001")
            )

        assert exc_info.value.code == "CONFLICT"
        assert exc_info.value.retryable
        failed = audit_log.failures(TENANT)
        assert [(r.action, r.error_code) for r in failed] == [("create_work_order", "CONFLICT")]

    async def test_invalid_window_code(self, facade, context, master):
        with pytest.raises(ExecutionFailure) as exc_info:
            await facade.create_work_order(
                context,
                **work_order_kwargs(master, planned_end_date=datetime(2024, 6, 3, 7, 0)),
            )

        assert exc_info.value.code == "INVALID_INTERVAL"

    async def test_multiple_errors_are_listed(self, facade, context, master):
        with pytest.raises(ExecutionFailure) as exc_info:
            await facade.create_work_order(
                context, **work_order_kwargs(master, work_order_no="", planned_quantity=0)
            )

        failure = exc_info.value
        assert failure.code == "VALIDATION_ERROR"
        assert len(failure.details["errors"]) == 2
        assert failure.to_dict()["code"] == "VALIDATION_ERROR"

    async def test_transition_by_name(self, facade, context, order, event_bus):
        outcome = await facade.transition(context, order.id, "Release", reason="go")

        assert outcome.changed
        assert outcome.work_order.status == WorkOrderStatus.IN_PROGRESS
        changes = event_bus.get_event_history(WorkOrderStatusChanged)
        assert changes[-1].reason == "go"

    async def test_unknown_action(self, facade, context, order):
        with pytest.raises(ExecutionFailure) as exc_info:
            await facade.transition(context, order.id, "pause")

        assert exc_info.value.code == "VALIDATION_ERROR"

    async def test_illegal_transition_is_invalid_state(self, facade, context, order, audit_log):
        with pytest.raises(ExecutionFailure) as exc_info:
            await facade.transition(context, order.id, "complete")

        assert exc_info.value.code == "INVALID_STATE"
        assert audit_log.records[-1].action == "complete_work_order"
        assert audit_log.records[-1].error_code == "INVALID_STATE"

    async def test_complete_short_of_plan_returns_warning(self, facade, context, order):
        await facade.record_result(context, **result_kwargs(order.id, 70))

        outcome = await facade.transition(context, order.id, "complete")

        assert outcome.warning.shortfall == 30
        assert outcome.work_order.status == WorkOrderStatus.COMPLETED

    async def test_deactivate_requires_terminal_order(self, facade, context, order):
        with pytest.raises(ExecutionFailure) as exc_info:
            await facade.deactivate_work_order(context, order.id)
        assert exc_info.value.code == "INVALID_STATE"

        await facade.transition(context, order.id, "cancel")
        deactivated = await facade.deactivate_work_order(context, order.id)

        assert not deactivated.is_active
        assert await facade.list_work_orders_by_status(context, WorkOrderStatus.CANCELLED) == []
        inactive = await facade.list_work_orders_by_status(
            context, WorkOrderStatus.CANCELLED, include_inactive=True
        )
        assert [o.id for o in inactive] == [order.id]

    async def test_update_plan_audits_and_publishes(
        self, facade, context, order, audit_log, event_bus
    ):
        updated = await facade.update_work_order(
            context, order.id, {"planned_quantity": 80, "priority": "high"}
        )

        assert updated.planned_quantity == 80
        assert updated.version == 2
        record = audit_log.records[-1]
        assert record.action == "update_work_order"
        assert record.old_value["planned_quantity"] == 100
        assert record.new_value["planned_quantity"] == 80
        [event] = event_bus.get_event_history(WorkOrderPlanUpdated)
        assert event.changed_fields == ("planned_quantity", "priority")

    async def test_update_plan_of_started_order(self, facade, context, order, audit_log):
        await facade.record_result(context, **result_kwargs(order.id, 10))

        with pytest.raises(ExecutionFailure) as exc_info:
            await facade.update_work_order(context, order.id, {"planned_quantity": 50})

        assert exc_info.value.code == "INVALID_STATE"
        assert audit_log.records[-1].error_code == "INVALID_STATE"

    async def test_list_all_orders_of_tenant(self, facade, context, other_context, master, order):
        started = await facade.create_work_order(
            context, **work_order_kwargs(master, work_order_no="WO-2024-002")
        )
        await facade.record_result(context, **result_kwargs(started.id, 10))
        await facade.create_work_order(
            other_context, **work_order_kwargs(master, work_order_no="WO-9")
        )

        listed = await facade.list_work_orders(context)

        assert sorted(o.work_order_no for o in listed) == ["WO-2024-001", "WO-2024-002"]
        assert {o.status for o in listed} == {
            WorkOrderStatus.PLANNED,
            WorkOrderStatus.IN_PROGRESS,
        }

    async def test_snapshot_totals(self, facade, context, master, order):
        await facade.record_result(context, **result_kwargs(order.id, 45, 5))
        await facade.open_downtime(
            context, **downtime_kwargs(master.equipment_id, work_order_id=order.id)
        )

        snapshot = await facade.get_work_order_snapshot(context, order.id)

        assert snapshot.work_order.actual_quantity == 50
        assert snapshot.work_order.remaining_quantity == 50
        assert snapshot.totals.result_count == 1
        assert snapshot.totals.yield_rate == 90.0
        assert snapshot.totals.defect_rate == 10.0
        assert snapshot.totals.open_downtime_count == 1
        assert snapshot.totals.downtime_minutes == 0


class TestWorkResultOperations:
    """Test result recording through the facade."""

    async def test_record_publishes_after_commit(self, facade, context, order, event_bus):
        result = await facade.record_result(context, **result_kwargs(order.id, 20))

        assert result.version == 1
        recorded = event_bus.get_event_history(WorkResultRecorded)
        assert [e.aggregate_id for e in recorded] == [result.id]
        stored = await facade.get_work_order(context, order.id)
        assert stored.status == WorkOrderStatus.IN_PROGRESS

    async def test_over_production_is_rejected(self, facade, context, order):
        await facade.record_result(context, **result_kwargs(order.id, 60))

        with pytest.raises(ExecutionFailure) as exc_info:
            await facade.record_result(context, **result_kwargs(order.id, 50))

        assert exc_info.value.code == "VALIDATION_ERROR"
        assert exc_info.value.details["planned_quantity"] == 100
        stored = await facade.get_work_order(context, order.id)
        assert stored.actual_quantity == 60

    async def test_update_and_reverse(self, facade, context, master, order, audit_log):
        result = await facade.record_result(context, **result_kwargs(order.id, 30))

        await facade.update_result(context, result.id, {"quantity": 35, "good_quantity": 35})
        reversed_result = await facade.reverse_result(context, result.id)

        assert reversed_result.reversed_by == master.operator_id
        stored = await facade.get_work_order(context, order.id)
        assert stored.quantities.is_zero
        update_record = audit_log.find(action="update_result")[0]
        assert update_record.old_value["quantity"] == 30
        assert update_record.new_value["quantity"] == 35
        assert await facade.list_results_by_work_order(context, order.id) == []
        everything = await facade.list_results_by_work_order(
            context, order.id, include_reversed=True
        )
        assert len(everything) == 1

    async def test_unknown_result_is_not_found(self, facade, context):
        with pytest.raises(ExecutionFailure) as exc_info:
            await facade.reverse_result(context, uuid4())

        assert exc_info.value.code == "NOT_FOUND"

    async def test_queries_by_worker_and_date(self, facade, context, master, order):
        await facade.record_result(
            context, **result_kwargs(order.id, 10, worker_id=master.operator_id)
        )

        by_worker = await facade.list_results_by_worker(context, master.operator_id)
        by_date = await facade.list_results_by_date_range(
            context, DOWN_AT - timedelta(days=1), DOWN_AT + timedelta(days=1)
        )

        assert len(by_worker) == 1
        assert by_worker == by_date

        with pytest.raises(ExecutionFailure) as exc_info:
            await facade.list_results_by_date_range(context, DOWN_AT, DOWN_AT)
        assert exc_info.value.code == "INVALID_INTERVAL"


class TestDowntimeOperations:
    """Test the downtime ledger through the facade."""

    async def test_open_resolve_annotate(self, facade, context, master, event_bus):
        downtime = await facade.open_downtime(context, **downtime_kwargs(master.equipment_id))

        resolved = await facade.resolve_downtime(
            context, downtime.id, DOWN_AT + timedelta(minutes=30), countermeasure="reset"
        )
        annotated = await facade.annotate_downtime(
            context, downtime.id, {"remarks": "verified by maintenance"}
        )

        assert resolved.duration_minutes == 30
        assert annotated.remarks == "verified by maintenance"
        assert len(event_bus.get_event_history(DowntimeOpened)) == 1
        assert await facade.list_unresolved_downtime(context) == []

    async def test_resolve_twice_is_not_found(self, facade, context, master):
        downtime = await facade.open_downtime(context, **downtime_kwargs(master.equipment_id))
        await facade.resolve_downtime(context, downtime.id, DOWN_AT + timedelta(minutes=30))

        with pytest.raises(ExecutionFailure) as exc_info:
            await facade.resolve_downtime(context, downtime.id, DOWN_AT + timedelta(hours=1))

        assert exc_info.value.code == "NOT_FOUND"
        stored = await facade.get_downtime(context, downtime.id)
        assert stored.end_time == DOWN_AT + timedelta(minutes=30)

    async def test_update_after_resolution_conflicts(self, facade, context, master):
        downtime = await facade.open_downtime(context, **downtime_kwargs(master.equipment_id))
        await facade.resolve_downtime(context, downtime.id, DOWN_AT + timedelta(minutes=5))

        with pytest.raises(ExecutionFailure) as exc_info:
            await facade.update_downtime(context, downtime.id, {"cause": "jam"})

        assert exc_info.value.code == "CONFLICT"

    async def test_deactivate_resolved_downtime(self, facade, context, master):
        downtime = await facade.open_downtime(context, **downtime_kwargs(master.equipment_id))
        await facade.resolve_downtime(context, downtime.id, DOWN_AT + timedelta(minutes=5))

        await facade.deactivate_downtime(context, downtime.id)

        assert await facade.list_downtime_by_equipment(context, master.equipment_id) == []
        reactivated = await facade.activate_downtime(context, downtime.id)
        assert reactivated.is_active


class TestGuards:
    """Test context checks, deadlines and cancellation."""

    async def test_blank_context_is_rejected(self, facade, master):
        with pytest.raises(ExecutionFailure) as exc_info:
            await facade.create_work_order(
                ExecutionContext(tenant_id=" ", actor_user_id="user-1"),
                **work_order_kwargs(master),
            )

        assert exc_info.value.code == "VALIDATION_ERROR"
        assert exc_info.value.details["field"] == "tenant_id"

    async def test_other_tenant_sees_not_found(self, facade, other_context, order):
        with pytest.raises(ExecutionFailure) as exc_info:
            await facade.get_work_order(other_context, order.id)
        assert exc_info.value.code == "NOT_FOUND"

        with pytest.raises(ExecutionFailure) as exc_info:
            await facade.transition(other_context, order.id, "release")
        assert exc_info.value.code == "NOT_FOUND"

    async def test_deadline_leaves_store_untouched(
        self, test_settings, reference_data, master, context, audit_log
    ):
        store = InMemoryExecutionStore(latency=0.2)
        facade = build_execution_facade(
            test_settings, store=store, reference_data=reference_data, audit_sink=audit_log
        )

        with pytest.raises(ExecutionFailure) as exc_info:
            await facade.create_work_order(context, **work_order_kwargs(master), timeout=0.05)

        assert exc_info.value.code == "TIMEOUT"
        assert exc_info.value.retryable
        assert store.work_order_table == {}
        assert audit_log.records[-1].error_code == "TIMEOUT"

    async def test_cancelled_before_start(self, facade, context, master, store):
        cancel = asyncio.Event()
        cancel.set()

        with pytest.raises(ExecutionFailure) as exc_info:
            await facade.create_work_order(
                context, **work_order_kwargs(master), cancel_event=cancel
            )

        assert exc_info.value.code == "CANCELLED"
        assert store.work_order_table == {}

    async def test_audit_failure_does_not_fail_operation(
        self, test_settings, store, reference_data, master, context
    ):
        facade = build_execution_facade(
            test_settings, store=store, reference_data=reference_data, audit_sink=BrokenAuditSink()
        )

        order = await facade.create_work_order(context, **work_order_kwargs(master))

        assert order.id in store.work_order_table
        assert not facade.last_audit_report.delivered
        assert "offline" in facade.last_audit_report.error


class TestMalformedInput:
    """Malformed values surface as validation failures naming the field."""

    async def test_patch_with_malformed_worker_id(self, facade, context, order, store):
        result = await facade.record_result(context, **result_kwargs(order.id, 30))

        with pytest.raises(ExecutionFailure) as exc_info:
            await facade.update_result(context, result.id, {"worker_id": "not-a-uuid"})

        assert exc_info.value.code == "VALIDATION_ERROR"
        assert exc_info.value.details["field"] == "worker_id"
        assert exc_info.value.details["error_code"] == "INVALID_UUID"
        assert store.work_result_table[result.id].worker_id is None

    async def test_patch_with_text_quantity(self, facade, context, order, store):
        result = await facade.record_result(context, **result_kwargs(order.id, 30))

        with pytest.raises(ExecutionFailure) as exc_info:
            await facade.update_result(context, result.id, {"quantity": "7"})

        assert exc_info.value.code == "VALIDATION_ERROR"
        assert exc_info.value.details["field"] == "quantity"
        assert exc_info.value.details["error_code"] == "INVALID_TYPE"
        assert store.work_order_table[order.id].actual_quantity == 30

    async def test_record_with_text_timestamp(self, facade, context, order):
        with pytest.raises(ExecutionFailure) as exc_info:
            await facade.record_result(
                context, **result_kwargs(order.id, 5, work_start_time="09:00")
            )

        assert exc_info.value.details["field"] == "work_start_time"
        assert exc_info.value.details["error_code"] == "INVALID_TYPE"

    async def test_tenant_id_too_long(self, facade, master):
        with pytest.raises(ExecutionFailure) as exc_info:
            await facade.create_work_order(
                ExecutionContext(tenant_id="t" * 60, actor_user_id="user-1"),
                **work_order_kwargs(master),
            )

        assert exc_info.value.code == "VALIDATION_ERROR"
        assert exc_info.value.details["field"] == "tenant_id"
        assert exc_info.value.details["error_code"] == "TOO_LONG"

    async def test_create_with_malformed_product_id(self, facade, context, master):
        with pytest.raises(ExecutionFailure) as exc_info:
            await facade.create_work_order(
                context, **work_order_kwargs(master, product_id="not-a-uuid")
            )

        assert exc_info.value.details["field"] == "product_id"
        assert exc_info.value.details["error_code"] == "INVALID_UUID"

    async def test_downtime_patch_with_malformed_user(self, facade, context, master):
        downtime = await facade.open_downtime(context, **downtime_kwargs(master.equipment_id))

        with pytest.raises(ExecutionFailure) as exc_info:
            await facade.update_downtime(
                context, downtime.id, {"responsible_user_id": "nobody"}
            )

        assert exc_info.value.details["field"] == "responsible_user_id"
        stored = await facade.get_downtime(context, downtime.id)
        assert stored.responsible_user_id is None


class TestConcurrency:
    """Test concurrent callers on the same aggregate."""

    async def test_concurrent_results_respect_plan(self, facade, context, order):
        outcomes = await asyncio.gather(
            facade.record_result(context, **result_kwargs(order.id, 60)),
            facade.record_result(context, **result_kwargs(order.id, 60)),
            return_exceptions=True,
        )

        failures = [o for o in outcomes if isinstance(o, ExecutionFailure)]
        assert len(failures) == 1
        assert failures[0].code == "VALIDATION_ERROR"
        stored = await facade.get_work_order(context, order.id)
        assert stored.actual_quantity == 60

    async def test_concurrent_opens_on_one_equipment(self, facade, context, master):
        outcomes = await asyncio.gather(
            facade.open_downtime(context, **downtime_kwargs(master.equipment_id)),
            facade.open_downtime(
                context,
                **downtime_kwargs(master.equipment_id, start_time=DOWN_AT + timedelta(minutes=1)),
            ),
            return_exceptions=True,
        )

        failures = [o for o in outcomes if isinstance(o, ExecutionFailure)]
        assert [f.code for f in failures] == ["CONFLICT"]
        assert len(await facade.list_unresolved_downtime(context)) == 1

    async def test_concurrent_creates_with_same_number(self, facade, context, master):
        outcomes = await asyncio.gather(
            *(facade.create_work_order(context, **work_order_kwargs(master)) for _ in range(3)),
            return_exceptions=True,
        )

        codes = sorted(o.code for o in outcomes if isinstance(o, ExecutionFailure))
        assert codes == ["CONFLICT", "CONFLICT"]
