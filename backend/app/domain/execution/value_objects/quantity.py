"""
Production quantity triples and the ledger that accumulates them.

A triple is ``(actual, good, defect)``. The same type is used for running
totals on a work order and for the deltas applied to them, so components
may be negative when the triple is a delta.
"""

from ...shared.base import ValueObject
from ...shared.exceptions import ValidationError


class ProductionQuantities(ValueObject):
    """Actual/good/defect quantities (a total or a delta)."""

    actual: int = 0
    good: int = 0
    defect: int = 0

    @classmethod
    def zero(cls) -> "ProductionQuantities":
        return cls()

    @classmethod
    def of(cls, good: int, defect: int) -> "ProductionQuantities":
        """Build a balanced triple from its good and defect parts."""
        return cls(actual=good + defect, good=good, defect=defect)

    @property
    def is_balanced(self) -> bool:
        """Check that actual equals good plus defect."""
        return self.good + self.defect == self.actual

    @property
    def is_zero(self) -> bool:
        return self.actual == 0 and self.good == 0 and self.defect == 0

    @property
    def yield_rate(self) -> float:
        """Share of good parts in the actual quantity, in percent."""
        if self.actual <= 0:
            return 0.0
        return round(self.good / self.actual * 100, 2)

    @property
    def defect_rate(self) -> float:
        """Share of defective parts in the actual quantity, in percent."""
        if self.actual <= 0:
            return 0.0
        return round(self.defect / self.actual * 100, 2)

    def add(self, other: "ProductionQuantities") -> "ProductionQuantities":
        return ProductionQuantities(
            actual=self.actual + other.actual,
            good=self.good + other.good,
            defect=self.defect + other.defect,
        )

    def negate(self) -> "ProductionQuantities":
        """Delta that undoes this triple."""
        return ProductionQuantities(
            actual=-self.actual, good=-self.good, defect=-self.defect
        )

    def difference(self, previous: "ProductionQuantities") -> "ProductionQuantities":
        """Delta that turns ``previous`` into this triple."""
        return self.add(previous.negate())

    def __str__(self) -> str:
        return f"{self.actual} ({self.good} good / {self.defect} defect)"


class QuantityLedger:
    """
    Pure accumulation rules for work order quantities.

    Every write to a work order's accumulators goes through :meth:`apply`, so
    ``actual == good + defect`` holds after each application and the order can
    never report more than ``planned_quantity + tolerance`` produced units.
    """

    @staticmethod
    def apply(
        current: ProductionQuantities,
        delta: ProductionQuantities,
        planned_quantity: int,
        tolerance: int = 0,
    ) -> ProductionQuantities:
        """
        Apply a delta to the current totals.

        Args:
            current: Running totals of the work order
            delta: Quantities to add (negative to take back)
            planned_quantity: Planned quantity of the work order
            tolerance: Units allowed above the planned quantity

        Returns:
            Updated totals

        Raises:
            ValidationError: If the delta is unbalanced, a component would go
                negative, or the planned quantity plus tolerance is exceeded
        """
        if not delta.is_balanced:
            raise ValidationError(
                "quantity",
                delta.actual,
                f"Quantity {delta.actual} must equal good ({delta.good}) "
                f"plus defect ({delta.defect})",
                "QUANTITY_MISMATCH",
            )

        updated = current.add(delta)

        for field_name, value in (
            ("actual_quantity", updated.actual),
            ("good_quantity", updated.good),
            ("defect_quantity", updated.defect),
        ):
            if value < 0:
                raise ValidationError(
                    field_name,
                    value,
                    "Accumulated quantity cannot be negative",
                    "NEGATIVE_VALUE",
                )

        limit = planned_quantity + max(tolerance, 0)
        if updated.actual > limit:
            raise ValidationError(
                "quantity",
                delta.actual,
                f"Actual quantity {updated.actual} would exceed planned quantity "
                f"{planned_quantity} (tolerance {tolerance})",
                "OVER_PRODUCTION",
                {
                    "planned_quantity": planned_quantity,
                    "current_actual": current.actual,
                },
            )

        return updated
