"""
Unit tests for the WorkOrder aggregate.

Covers creation, the status transition table, the quantity accumulators
and activation.
"""

from datetime import datetime
from uuid import uuid4

import pytest
from pydantic import ValidationError as PydanticValidationError

from app.domain.execution.entities import WorkOrder
from app.domain.execution.events import (
    QuantityShortfallWarning,
    WorkOrderCreated,
    WorkOrderPlanUpdated,
    WorkOrderStatusChanged,
)
from app.domain.execution.value_objects import (
    PriorityLevel,
    ProductionQuantities,
    WorkOrderStatus,
)
from app.domain.shared.exceptions import (
    InvalidIntervalError,
    MultipleValidationError,
    StateError,
    ValidationError,
)

START = datetime(2024, 6, 3, 8, 0)
END = datetime(2024, 6, 3, 17, 0)


def make_order(**overrides) -> WorkOrder:
    values = {
        "tenant_id": "tenant-a",
        "work_order_no": "wo-2024-001",
        "product_id": uuid4(),
        "process_id": uuid4(),
        "planned_quantity": 100,
        "planned_start_date": START,
        "planned_end_date": END,
    }
    values.update(overrides)
    return WorkOrder.create(**values)


class TestWorkOrderCreation:
    """Test work order creation and validation."""

    def test_create_valid_work_order(self):
        order = make_order(priority=PriorityLevel.HIGH, remarks="  rush  ")

        assert order.work_order_no == "WO-2024-001"
        assert order.status == WorkOrderStatus.PLANNED
        assert order.priority == PriorityLevel.HIGH
        assert order.remarks == "rush"
        assert order.quantities.is_zero
        assert order.is_active
        assert order.version == 0
        assert order.is_valid()

        events = order.get_domain_events()
        assert len(events) == 1
        assert isinstance(events[0], WorkOrderCreated)
        assert events[0].planned_quantity == 100

    def test_planned_quantity_must_be_positive(self):
        with pytest.raises(ValidationError) as exc_info:
            make_order(planned_quantity=0)

        assert exc_info.value.field_name == "planned_quantity"

    def test_missing_fields_are_reported_together(self):
        with pytest.raises(MultipleValidationError) as exc_info:
            make_order(work_order_no="", planned_quantity=-1)

        assert exc_info.value.error_count == 2

    def test_planned_window_must_be_ordered(self):
        with pytest.raises(InvalidIntervalError) as exc_info:
            make_order(planned_end_date=START)

        assert exc_info.value.field_name == "planned_end_date"

    def test_work_order_number_format(self):
        with pytest.raises(ValidationError) as exc_info:
            make_order(work_order_no="WO 2024/001")

        assert exc_info.value.error_code == "INVALID_FORMAT"

    def test_tenant_cannot_change(self):
        order = make_order()

        with pytest.raises(PydanticValidationError):
            order.tenant_id = "tenant-b"


class TestWorkOrderLifecycle:
    """Test the status transition table."""

    def test_release_then_complete_sets_actual_end_date(self):
        order = make_order()
        at = datetime(2024, 6, 3, 16, 0)

        assert order.release(at) is True
        order.apply_quantities(ProductionQuantities.of(100, 0))
        warning = order.complete(at)

        assert warning is None
        assert order.status == WorkOrderStatus.COMPLETED
        assert order.actual_end_date == at

    def test_release_is_idempotent(self):
        order = make_order()
        order.release()

        assert order.release() is False
        assert order.status == WorkOrderStatus.IN_PROGRESS

    def test_complete_from_planned_is_rejected(self):
        order = make_order()

        with pytest.raises(StateError) as exc_info:
            order.complete()

        assert exc_info.value.current_state == "planned"
        assert order.status == WorkOrderStatus.PLANNED
        assert order.actual_end_date is None

    def test_complete_twice_is_rejected(self):
        order = make_order()
        order.release()
        first_end = datetime(2024, 6, 3, 16, 0)
        order.complete(first_end)

        with pytest.raises(StateError):
            order.complete(datetime(2024, 6, 3, 18, 0))

        assert order.actual_end_date == first_end

    def test_complete_short_of_plan_returns_warning(self):
        order = make_order()
        order.release()
        order.apply_quantities(ProductionQuantities.of(80, 5))

        warning = order.complete()

        assert isinstance(warning, QuantityShortfallWarning)
        assert warning.shortfall == 15
        assert order.status == WorkOrderStatus.COMPLETED

    @pytest.mark.parametrize(
        "status, allowed",
        [
            (WorkOrderStatus.PLANNED, {WorkOrderStatus.IN_PROGRESS, WorkOrderStatus.CANCELLED}),
            (WorkOrderStatus.IN_PROGRESS, {WorkOrderStatus.COMPLETED, WorkOrderStatus.CANCELLED}),
            (WorkOrderStatus.COMPLETED, {WorkOrderStatus.CLOSED}),
            (WorkOrderStatus.CLOSED, set()),
            (WorkOrderStatus.CANCELLED, set()),
        ],
    )
    def test_transition_table(self, status, allowed):
        for target in WorkOrderStatus:
            assert status.can_transition_to(target) == (target in allowed)

    def test_closed_order_cannot_be_cancelled(self):
        order = make_order()
        order.release()
        order.complete()
        order.close()

        with pytest.raises(StateError):
            order.cancel()

    def test_status_change_events(self):
        order = make_order()
        order.clear_domain_events()
        order.release(reason="material staged")
        order.cancel(reason="customer withdrew")

        events = [e for e in order.get_domain_events() if isinstance(e, WorkOrderStatusChanged)]
        assert [(e.old_status, e.new_status) for e in events] == [
            (WorkOrderStatus.PLANNED, WorkOrderStatus.IN_PROGRESS),
            (WorkOrderStatus.IN_PROGRESS, WorkOrderStatus.CANCELLED),
        ]
        assert events[1].reason == "customer withdrew"


class TestWorkOrderQuantities:
    """Test accumulators and derived figures."""

    def test_apply_quantities_tracks_earliest_start(self):
        order = make_order()
        order.apply_quantities(
            ProductionQuantities.of(10, 0), work_start=datetime(2024, 6, 3, 10, 0)
        )
        order.apply_quantities(
            ProductionQuantities.of(10, 0), work_start=datetime(2024, 6, 3, 9, 0)
        )

        assert order.actual_start_date == datetime(2024, 6, 3, 9, 0)
        assert order.remaining_quantity == 80
        assert order.completion_percentage == 20.0

    def test_rejected_delta_leaves_accumulators_unchanged(self):
        order = make_order()
        order.apply_quantities(ProductionQuantities.of(60, 0))

        with pytest.raises(ValidationError):
            order.apply_quantities(ProductionQuantities.of(50, 0))

        assert order.quantities == ProductionQuantities.of(60, 0)

    def test_terminal_order_does_not_accept_results(self):
        order = make_order()
        order.cancel()

        with pytest.raises(StateError):
            order.ensure_accepts_results()


class TestWorkOrderActivation:
    """Test deactivation rules."""

    def test_only_terminal_orders_can_be_deactivated(self):
        order = make_order()

        with pytest.raises(StateError):
            order.deactivate()

        order.cancel()
        order.deactivate()
        assert not order.is_active

        order.activate()
        assert order.is_active

    def test_inactive_order_does_not_accept_results(self):
        order = make_order()
        order.is_active = False

        with pytest.raises(StateError) as exc_info:
            order.ensure_accepts_results()

        assert exc_info.value.current_state == "inactive"


class TestWorkOrderPlanUpdate:
    """Test plan revisions of orders that have not started."""

    def test_revise_planned_order(self):
        order = make_order()
        order.clear_domain_events()
        assignee = uuid4()

        changed = order.update_plan(
            {
                "planned_quantity": 120,
                "priority": "high",
                "assigned_user_id": assignee,
                "remarks": "  second shift  ",
            }
        )

        assert changed == ("assigned_user_id", "planned_quantity", "priority", "remarks")
        assert order.planned_quantity == 120
        assert order.priority == PriorityLevel.HIGH
        assert order.assigned_user_id == assignee
        assert order.remarks == "second shift"
        [event] = order.get_domain_events()
        assert isinstance(event, WorkOrderPlanUpdated)
        assert event.changed_fields == changed

    def test_unchanged_values_raise_no_event(self):
        order = make_order()
        order.clear_domain_events()

        assert order.update_plan({"planned_quantity": 100, "planned_start_date": START}) == ()
        assert order.get_domain_events() == []

    def test_started_order_cannot_be_revised(self):
        order = make_order()
        order.release()

        with pytest.raises(StateError):
            order.update_plan({"planned_quantity": 50})

        assert order.planned_quantity == 100

    def test_window_is_revalidated_against_current_start(self):
        order = make_order()

        with pytest.raises(InvalidIntervalError):
            order.update_plan({"planned_end_date": datetime(2024, 6, 3, 7, 0)})

        assert order.planned_end_date == END

    def test_quantity_must_stay_positive(self):
        order = make_order()

        with pytest.raises(ValidationError) as exc_info:
            order.update_plan({"planned_quantity": 0})

        assert exc_info.value.error_code == "NOT_POSITIVE"

    def test_identity_fields_are_not_patchable(self):
        order = make_order()

        with pytest.raises(ValidationError) as exc_info:
            order.update_plan({"work_order_no": "WO-OTHER"})

        assert exc_info.value.error_code == "FIELD_NOT_PATCHABLE"
        assert order.work_order_no == "WO-2024-001"

    def test_malformed_assignee_leaves_order_unchanged(self):
        order = make_order()

        with pytest.raises(ValidationError) as exc_info:
            order.update_plan({"planned_quantity": 80, "assigned_user_id": "nobody"})

        assert exc_info.value.field_name == "assigned_user_id"
        assert exc_info.value.error_code == "INVALID_UUID"
        assert order.planned_quantity == 100

    def test_quantity_cannot_fall_below_production(self):
        order = make_order()
        order.apply_quantities(ProductionQuantities.of(40, 0))

        with pytest.raises(ValidationError) as exc_info:
            order.update_plan({"planned_quantity": 30})
        assert exc_info.value.error_code == "BELOW_ACTUAL_QUANTITY"

        assert order.update_plan({"planned_quantity": 30}, tolerance=10) == (
            "planned_quantity",
        )
