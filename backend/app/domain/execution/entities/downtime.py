"""Downtime event aggregate: an interval of non-production for one equipment."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field

from ...shared.base import AggregateRoot, utcnow
from ...shared.exceptions import (
    ConflictError,
    NotFoundError,
    StateError,
    ValidationError,
)
from ...shared.validation import (
    BusinessRuleValidators,
    DataSanitizer,
    ValidationContext,
    model_errors_as_validation,
)
from ..events.domain_events import (
    DowntimeActivationChanged,
    DowntimeOpened,
    DowntimeResolved,
    DowntimeUpdated,
)
from ..value_objects.enums import DowntimeType
from ..value_objects.time_interval import TimeInterval, duration_minutes

TEXT_MAX_LENGTH = 1000
CATEGORY_MAX_LENGTH = 50
NAME_MAX_LENGTH = 100

# Fields that may be patched while the downtime is still open.
PATCHABLE_FIELDS = frozenset(
    {
        "downtime_type",
        "downtime_category",
        "cause",
        "countermeasure",
        "preventive_action",
        "remarks",
        "responsible_user_id",
        "responsible_name",
        "work_order_id",
        "operation_id",
    }
)

# Free-text fields that may be appended to after resolution.
ANNOTATABLE_FIELDS = frozenset(
    {"cause", "countermeasure", "preventive_action", "remarks"}
)

_TEXT_LIMITS = {
    "downtime_category": CATEGORY_MAX_LENGTH,
    "responsible_name": NAME_MAX_LENGTH,
    "cause": TEXT_MAX_LENGTH,
    "countermeasure": TEXT_MAX_LENGTH,
    "preventive_action": TEXT_MAX_LENGTH,
    "remarks": TEXT_MAX_LENGTH,
}


class DowntimeEvent(AggregateRoot):
    """
    Equipment downtime.

    Open while ``end_time`` is unset. Resolution fixes the interval for good:
    a resolved event is never reopened and only its free-text fields can be
    extended afterwards.
    """

    equipment_id: UUID
    downtime_code: str = Field(min_length=1, max_length=50)
    downtime_type: DowntimeType
    downtime_category: str | None = Field(default=None, max_length=CATEGORY_MAX_LENGTH)
    start_time: datetime
    end_time: datetime | None = None

    work_order_id: UUID | None = None
    operation_id: UUID | None = None
    responsible_user_id: UUID | None = None
    responsible_name: str | None = Field(default=None, max_length=NAME_MAX_LENGTH)

    cause: str | None = Field(default=None, max_length=TEXT_MAX_LENGTH)
    countermeasure: str | None = Field(default=None, max_length=TEXT_MAX_LENGTH)
    preventive_action: str | None = Field(default=None, max_length=TEXT_MAX_LENGTH)
    remarks: str | None = Field(default=None, max_length=TEXT_MAX_LENGTH)

    is_resolved: bool = False
    resolved_at: datetime | None = None
    is_active: bool = True

    def is_valid(self) -> bool:
        """Validate business rules."""
        if self.is_resolved and self.end_time is None:
            return False
        return self.end_time is None or self.end_time > self.start_time

    @property
    def interval(self) -> TimeInterval:
        return TimeInterval(start=self.start_time, end=self.end_time)

    @property
    def duration_minutes(self) -> int | None:
        """Whole minutes between start and end, ``None`` while open."""
        if self.end_time is None:
            return None
        return duration_minutes(self.start_time, self.end_time)

    @property
    def is_open(self) -> bool:
        return not self.is_resolved

    def resolve(
        self,
        end_time: datetime,
        countermeasure: str | None = None,
        preventive_action: str | None = None,
        at: datetime | None = None,
    ) -> None:
        """
        Close the downtime interval.

        Raises:
            NotFoundError: If the downtime is already resolved
            InvalidIntervalError: If ``end_time`` is not after ``start_time``
        """
        if self.is_resolved:
            raise NotFoundError("DowntimeEvent", self.id, "no open downtime")
        BusinessRuleValidators.validate_required_field("end_time", end_time)
        BusinessRuleValidators.validate_date_range(
            "start_time", self.start_time, "end_time", end_time
        )

        at = at or utcnow()
        self.end_time = end_time
        self.is_resolved = True
        self.resolved_at = at
        if countermeasure is not None:
            self.countermeasure = DataSanitizer.sanitize_optional(
                countermeasure, TEXT_MAX_LENGTH, "countermeasure"
            )
        if preventive_action is not None:
            self.preventive_action = DataSanitizer.sanitize_optional(
                preventive_action, TEXT_MAX_LENGTH, "preventive_action"
            )
        self.mark_updated(at)

        self.add_domain_event(
            DowntimeResolved(
                aggregate_id=self.id,
                tenant_id=self.tenant_id,
                equipment_id=self.equipment_id,
                downtime_id=self.id,
                timestamp=end_time,
                duration_minutes=self.duration_minutes,
            )
        )

    def update(self, patch: dict[str, Any], at: datetime | None = None) -> tuple[str, ...]:
        """
        Patch the details of an open downtime.

        Returns:
            Names of the fields that changed

        Raises:
            ConflictError: If the downtime is already resolved
            ValidationError: If a field cannot be patched or is malformed
        """
        if self.is_resolved:
            raise ConflictError(
                f"Downtime {self.id} is resolved; only annotations are allowed",
                "DowntimeEvent",
                self.id,
            )
        values = _clean_patch(patch, PATCHABLE_FIELDS)
        if "downtime_type" in values:
            values["downtime_type"] = _parse_type(values["downtime_type"])
        with model_errors_as_validation():
            DowntimeEvent.model_validate({**self.model_dump(), **values})

        changed = tuple(
            sorted(name for name, value in values.items() if getattr(self, name) != value)
        )
        for name in changed:
            setattr(self, name, values[name])
        self._record_update(changed, at)
        return changed

    def annotate(self, patch: dict[str, str], at: datetime | None = None) -> tuple[str, ...]:
        """
        Append text to the free-text fields without touching the interval.

        Returns:
            Names of the fields that changed

        Raises:
            ValidationError: If a field cannot be annotated or becomes too long
        """
        values = _clean_patch(patch, ANNOTATABLE_FIELDS)
        changed = []
        for name in sorted(values):
            addition = values[name]
            if not addition:
                continue
            current = getattr(self, name)
            combined = f"{current}\n{addition}" if current else addition
            if len(combined) > _TEXT_LIMITS[name]:
                raise ValidationError(
                    name,
                    addition,
                    f"Value exceeds maximum length of {_TEXT_LIMITS[name]}",
                    "TOO_LONG",
                )
            setattr(self, name, combined)
            changed.append(name)
        self._record_update(tuple(changed), at)
        return tuple(changed)

    def _record_update(self, changed: tuple[str, ...], at: datetime | None) -> None:
        if not changed:
            return
        self.mark_updated(at)
        self.add_domain_event(
            DowntimeUpdated(
                aggregate_id=self.id,
                tenant_id=self.tenant_id,
                equipment_id=self.equipment_id,
                downtime_id=self.id,
                changed_fields=changed,
            )
        )

    def deactivate(self, at: datetime | None = None) -> None:
        """
        Hide a resolved downtime from active listings.

        Raises:
            StateError: If the downtime is still open
        """
        if not self.is_resolved:
            raise StateError(
                "DowntimeEvent",
                self.id,
                "open",
                "deactivate",
                f"Downtime {self.id} must be resolved before it can be deactivated",
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
            DowntimeActivationChanged(
                aggregate_id=self.id,
                tenant_id=self.tenant_id,
                equipment_id=self.equipment_id,
                downtime_id=self.id,
                is_active=is_active,
            )
        )

    @staticmethod
    def create(
        tenant_id: str,
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
    ) -> "DowntimeEvent":
        """
        Factory method to open a new DowntimeEvent.

        Raises:
            ValidationError: If equipment, code, type or start is missing
        """
        ctx = ValidationContext()
        ctx.check(
            BusinessRuleValidators.validate_required_field, "equipment_id", equipment_id
        )
        ctx.check(
            BusinessRuleValidators.validate_required_field,
            "downtime_code",
            downtime_code,
        )
        ctx.check(
            BusinessRuleValidators.validate_required_field,
            "downtime_type",
            downtime_type,
        )
        ctx.check(
            BusinessRuleValidators.validate_required_field, "start_time", start_time
        )
        ctx.check(BusinessRuleValidators.validate_datetime, "start_time", start_time)
        ctx.raise_if_errors()

        values = _clean_patch(
            {
                "downtime_category": downtime_category,
                "responsible_name": responsible_name,
                "cause": cause,
                "remarks": remarks,
            },
            PATCHABLE_FIELDS,
        )
        downtime_code = DataSanitizer.sanitize_code(downtime_code, "downtime_code")
        parsed_type = _parse_type(downtime_type)
        with model_errors_as_validation():
            downtime = DowntimeEvent(
                tenant_id=tenant_id,
                equipment_id=equipment_id,
                downtime_code=downtime_code,
                downtime_type=parsed_type,
                start_time=start_time,
                work_order_id=work_order_id,
                operation_id=operation_id,
                responsible_user_id=responsible_user_id,
                **values,
            )
        downtime.add_domain_event(
            DowntimeOpened(
                aggregate_id=downtime.id,
                tenant_id=tenant_id,
                equipment_id=equipment_id,
                downtime_id=downtime.id,
                downtime_type=downtime.downtime_type,
                timestamp=start_time,
            )
        )
        return downtime


def _parse_type(value: DowntimeType | str) -> DowntimeType:
    try:
        return DowntimeType(value)
    except ValueError:
        raise ValidationError(
            "downtime_type",
            str(value),
            f"Must be one of: {', '.join(t.value for t in DowntimeType)}",
            "INVALID_TYPE",
        ) from None


def _clean_patch(patch: dict[str, Any], allowed: frozenset[str]) -> dict[str, Any]:
    unknown = set(patch) - allowed
    if unknown:
        field_name = sorted(unknown)[0]
        raise ValidationError(
            field_name,
            str(patch[field_name]),
            "Field cannot be changed on a downtime event",
            "FIELD_NOT_PATCHABLE",
        )
    values = dict(patch)
    for name, limit in _TEXT_LIMITS.items():
        if name in values:
            values[name] = DataSanitizer.sanitize_optional(values[name], limit, name)
    return values
