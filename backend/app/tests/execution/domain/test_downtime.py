"""Unit tests for the DowntimeEvent aggregate."""

from datetime import datetime, timedelta
from uuid import uuid4

import pytest

from app.domain.execution.entities import DowntimeEvent
from app.domain.execution.events import DowntimeOpened, DowntimeResolved
from app.domain.execution.value_objects import DowntimeType
from app.domain.shared.exceptions import (
    ConflictError,
    InvalidIntervalError,
    MultipleValidationError,
    NotFoundError,
    StateError,
    ValidationError,
)

from ..factories import TENANT, downtime_kwargs

START = datetime(2024, 6, 3, 10, 0)


def make_downtime(**overrides) -> DowntimeEvent:
    return DowntimeEvent.create(tenant_id=TENANT, **downtime_kwargs(uuid4(), **overrides))


class TestDowntimeCreation:
    """Test opening a downtime."""

    def test_open_downtime(self):
        downtime = make_downtime(downtime_code="brk-01", cause="  spindle  ")

        assert downtime.downtime_code == "BRK-01"
        assert downtime.downtime_type == DowntimeType.BREAKDOWN
        assert downtime.cause == "spindle"
        assert downtime.is_open
        assert downtime.end_time is None
        assert downtime.duration_minutes is None
        assert downtime.interval.is_open
        assert isinstance(downtime.get_domain_events()[0], DowntimeOpened)

    def test_unknown_type_is_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            make_downtime(downtime_type="coffee_break")

        assert exc_info.value.error_code == "INVALID_TYPE"

    def test_required_fields(self):
        with pytest.raises(MultipleValidationError) as exc_info:
            make_downtime(downtime_code="", start_time=None)

        fields = {error.field_name for error in exc_info.value.validation_errors}
        assert fields == {"downtime_code", "start_time"}


class TestDowntimeResolution:
    """Test resolving and the fixed interval afterwards."""

    def test_resolve_sets_duration(self):
        downtime = make_downtime()

        downtime.resolve(START + timedelta(minutes=30), countermeasure="replaced belt")

        assert downtime.is_resolved
        assert downtime.duration_minutes == 30
        assert downtime.countermeasure == "replaced belt"
        event = downtime.get_domain_events()[-1]
        assert isinstance(event, DowntimeResolved)
        assert event.duration_minutes == 30

    def test_end_must_follow_start(self):
        downtime = make_downtime()

        with pytest.raises(InvalidIntervalError):
            downtime.resolve(START)

        assert downtime.is_open

    def test_resolving_twice_reports_no_open_downtime(self):
        downtime = make_downtime()
        first_end = START + timedelta(minutes=30)
        downtime.resolve(first_end)

        with pytest.raises(NotFoundError):
            downtime.resolve(START + timedelta(hours=2))

        assert downtime.end_time == first_end


class TestDowntimeMaintenance:
    """Test patches, annotations and activation."""

    def test_update_open_downtime(self):
        downtime = make_downtime()

        changed = downtime.update(
            {"downtime_type": "quality_issue", "responsible_name": "Line lead"}
        )

        assert changed == ("downtime_type", "responsible_name")
        assert downtime.downtime_type == DowntimeType.QUALITY_ISSUE

    def test_interval_fields_are_not_patchable(self):
        downtime = make_downtime()

        with pytest.raises(ValidationError) as exc_info:
            downtime.update({"start_time": START - timedelta(hours=1)})

        assert exc_info.value.error_code == "FIELD_NOT_PATCHABLE"

    def test_resolved_downtime_rejects_updates(self):
        downtime = make_downtime()
        downtime.resolve(START + timedelta(minutes=5))

        with pytest.raises(ConflictError):
            downtime.update({"cause": "operator error"})

    def test_annotations_append_after_resolution(self):
        downtime = make_downtime(cause="belt slipped")
        downtime.resolve(START + timedelta(minutes=5))

        changed = downtime.annotate({"cause": "belt worn out", "remarks": "checked"})

        assert changed == ("cause", "remarks")
        assert downtime.cause == "belt slipped\nbelt worn out"
        assert downtime.remarks == "checked"
        assert downtime.duration_minutes == 5

    def test_annotation_length_is_checked_after_append(self):
        downtime = make_downtime(cause="x" * 999)

        with pytest.raises(ValidationError) as exc_info:
            downtime.annotate({"cause": "y"})

        assert exc_info.value.error_code == "TOO_LONG"
        assert downtime.cause == "x" * 999

    def test_only_resolved_downtime_can_be_deactivated(self):
        downtime = make_downtime()

        with pytest.raises(StateError):
            downtime.deactivate()

        downtime.resolve(START + timedelta(minutes=5))
        downtime.deactivate()
        assert not downtime.is_active
