"""Work result entity: production reported against a work order."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field

from ...shared.base import AggregateRoot, utcnow
from ...shared.exceptions import StateError, ValidationError
from ...shared.validation import (
    BusinessRuleValidators,
    DataSanitizer,
    ValidationContext,
    model_errors_as_validation,
)
from ..events.domain_events import (
    WorkResultRecorded,
    WorkResultReversed,
    WorkResultUpdated,
)
from ..value_objects.quantity import ProductionQuantities
from ..value_objects.time_interval import TimeInterval, duration_minutes

DEFECT_REASON_MAX_LENGTH = 500
REMARKS_MAX_LENGTH = 1000

# Fields a correction may change; the owning order never changes.
PATCHABLE_FIELDS = frozenset(
    {
        "result_date",
        "quantity",
        "good_quantity",
        "defect_quantity",
        "work_start_time",
        "work_end_time",
        "work_duration",
        "worker_id",
        "defect_reason",
        "remarks",
    }
)


def validate_result_values(
    quantity: int,
    good_quantity: int,
    defect_quantity: int,
    work_start_time: datetime,
    work_end_time: datetime,
    result_date: datetime | None = None,
    work_duration: int | None = None,
    defect_reason: str | None = None,
) -> int:
    """
    Validate the values of a work result and derive its duration.

    Field-level errors are reported first, then the interval.

    Returns:
        The work duration in minutes (derived when not supplied)

    Raises:
        ValidationError: For missing, negative or unbalanced values
        InvalidIntervalError: If the work window is not ordered
    """
    ctx = ValidationContext()
    ctx.check(BusinessRuleValidators.validate_required_field, "result_date", result_date)
    ctx.check(
        BusinessRuleValidators.validate_required_field, "work_start_time", work_start_time
    )
    ctx.check(
        BusinessRuleValidators.validate_required_field, "work_end_time", work_end_time
    )
    for name, value in (
        ("result_date", result_date),
        ("work_start_time", work_start_time),
        ("work_end_time", work_end_time),
    ):
        ctx.check(BusinessRuleValidators.validate_datetime, name, value)
    ctx.check(BusinessRuleValidators.validate_non_negative, "quantity", quantity)
    ctx.check(
        BusinessRuleValidators.validate_non_negative, "good_quantity", good_quantity
    )
    ctx.check(
        BusinessRuleValidators.validate_non_negative,
        "defect_quantity",
        defect_quantity,
    )
    if work_duration is not None:
        ctx.check(
            BusinessRuleValidators.validate_non_negative, "work_duration", work_duration
        )
    ctx.raise_if_errors()

    if quantity != good_quantity + defect_quantity:
        raise ValidationError(
            "quantity",
            quantity,
            f"Quantity must equal good ({good_quantity}) plus defect "
            f"({defect_quantity})",
            "QUANTITY_MISMATCH",
        )
    if defect_quantity > 0 and not (defect_reason and defect_reason.strip()):
        raise ValidationError(
            "defect_reason",
            defect_reason,
            "Defect reason is required when defect quantity is greater than zero",
            "DEFECT_REASON_REQUIRED",
        )

    window = duration_minutes(
        work_start_time, work_end_time, "work_start_time", "work_end_time"
    )
    if work_duration is None:
        return window
    if work_duration > window:
        raise ValidationError(
            "work_duration",
            work_duration,
            f"Work duration cannot exceed the {window} minute work window",
            "DURATION_EXCEEDS_WINDOW",
        )
    return work_duration


class WorkResult(AggregateRoot):
    """
    Production reported against a work order.

    Results are append-only: a correction goes through :meth:`apply_patch` and
    a withdrawal through :meth:`reverse`, which keeps the record and flags it.
    """

    work_order_id: UUID
    result_date: datetime
    quantity: int = Field(ge=0)
    good_quantity: int = Field(ge=0)
    defect_quantity: int = Field(ge=0)
    work_start_time: datetime
    work_end_time: datetime
    work_duration: int = Field(ge=0)
    worker_id: UUID | None = None
    defect_reason: str | None = Field(default=None, max_length=DEFECT_REASON_MAX_LENGTH)
    remarks: str | None = Field(default=None, max_length=REMARKS_MAX_LENGTH)

    is_reversed: bool = False
    reversed_at: datetime | None = None
    reversed_by: UUID | None = None

    def is_valid(self) -> bool:
        """Validate business rules."""
        return (
            self.quantity == self.good_quantity + self.defect_quantity
            and self.work_start_time < self.work_end_time
            and (self.defect_quantity == 0 or bool(self.defect_reason))
        )

    @property
    def quantities(self) -> ProductionQuantities:
        return ProductionQuantities(
            actual=self.quantity, good=self.good_quantity, defect=self.defect_quantity
        )

    @property
    def effective_quantities(self) -> ProductionQuantities:
        """What this result currently contributes to its work order."""
        if self.is_reversed:
            return ProductionQuantities.zero()
        return self.quantities

    @property
    def work_interval(self) -> TimeInterval:
        return TimeInterval(start=self.work_start_time, end=self.work_end_time)

    def _ensure_not_reversed(self, action: str) -> None:
        if self.is_reversed:
            raise StateError(
                "WorkResult",
                self.id,
                "reversed",
                action,
                f"Work result {self.id} has been reversed and cannot be {action}d",
            )

    def merged_values(self, patch: dict[str, Any]) -> dict[str, Any]:
        """
        Current values overlaid with a patch.

        Raises:
            ValidationError: If the patch names a field that cannot change
        """
        unknown = set(patch) - PATCHABLE_FIELDS
        if unknown:
            field_name = sorted(unknown)[0]
            raise ValidationError(
                field_name,
                str(patch[field_name]),
                "Field cannot be changed on a work result",
                "FIELD_NOT_PATCHABLE",
            )

        values = {name: getattr(self, name) for name in PATCHABLE_FIELDS}
        values.update(patch)
        # A new work window re-derives the duration unless one is supplied.
        if "work_duration" not in patch and (
            "work_start_time" in patch or "work_end_time" in patch
        ):
            values["work_duration"] = None
        return values

    def apply_patch(
        self, patch: dict[str, Any], at: datetime | None = None
    ) -> ProductionQuantities:
        """
        Re-validate the merged values and apply them.

        Returns:
            The quantity delta between the new and the old values

        Raises:
            StateError: If the result has been reversed
            ValidationError: If the merged values are invalid
        """
        self._ensure_not_reversed("update")
        values = self.merged_values(patch)
        values["work_duration"] = validate_result_values(
            quantity=values["quantity"],
            good_quantity=values["good_quantity"],
            defect_quantity=values["defect_quantity"],
            work_start_time=values["work_start_time"],
            work_end_time=values["work_end_time"],
            result_date=values["result_date"],
            work_duration=values["work_duration"],
            defect_reason=values["defect_reason"],
        )
        values["defect_reason"] = DataSanitizer.sanitize_optional(
            values["defect_reason"], DEFECT_REASON_MAX_LENGTH, "defect_reason"
        )
        values["remarks"] = DataSanitizer.sanitize_optional(
            values["remarks"], REMARKS_MAX_LENGTH, "remarks"
        )

        # Validate the whole merged record before touching this one.
        with model_errors_as_validation():
            WorkResult.model_validate({**self.model_dump(), **values})

        old = self.quantities
        changed = tuple(
            sorted(name for name, value in values.items() if getattr(self, name) != value)
        )
        for name in changed:
            setattr(self, name, values[name])
        delta = self.quantities.difference(old)

        self.mark_updated(at)
        self.add_domain_event(
            WorkResultUpdated(
                aggregate_id=self.id,
                tenant_id=self.tenant_id,
                work_order_id=self.work_order_id,
                quantity_delta=delta.actual,
                good_delta=delta.good,
                defect_delta=delta.defect,
                changed_fields=changed,
            )
        )
        return delta

    def reverse(
        self, at: datetime | None = None, reversed_by: UUID | None = None
    ) -> ProductionQuantities:
        """
        Withdraw the result, keeping the record.

        Returns:
            The delta that takes the result back out of its work order

        Raises:
            StateError: If the result was already reversed
        """
        self._ensure_not_reversed("reverse")
        at = at or utcnow()
        self.is_reversed = True
        self.reversed_at = at
        self.reversed_by = reversed_by
        self.mark_updated(at)
        self.add_domain_event(
            WorkResultReversed(
                aggregate_id=self.id,
                tenant_id=self.tenant_id,
                work_order_id=self.work_order_id,
                quantity=self.quantity,
                reversed_by=reversed_by,
            )
        )
        return self.quantities.negate()

    @staticmethod
    def create(
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
    ) -> "WorkResult":
        """
        Factory method to create a new WorkResult.

        Raises:
            ValidationError: If a value is missing, negative or unbalanced
            InvalidIntervalError: If the work window is not ordered
        """
        work_duration = validate_result_values(
            quantity=quantity,
            good_quantity=good_quantity,
            defect_quantity=defect_quantity,
            work_start_time=work_start_time,
            work_end_time=work_end_time,
            result_date=result_date,
            work_duration=work_duration,
            defect_reason=defect_reason,
        )

        defect_reason = DataSanitizer.sanitize_optional(
            defect_reason, DEFECT_REASON_MAX_LENGTH, "defect_reason"
        )
        remarks = DataSanitizer.sanitize_optional(remarks, REMARKS_MAX_LENGTH, "remarks")
        with model_errors_as_validation():
            result = WorkResult(
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
        result.add_domain_event(
            WorkResultRecorded(
                aggregate_id=result.id,
                tenant_id=tenant_id,
                work_order_id=work_order_id,
                quantity=quantity,
                good_quantity=good_quantity,
                defect_quantity=defect_quantity,
                worker_id=worker_id,
            )
        )
        return result
