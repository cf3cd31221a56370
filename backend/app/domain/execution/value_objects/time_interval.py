"""Time intervals for work results and downtime windows."""

from datetime import datetime, timedelta

from pydantic import model_validator

from ...shared.base import ValueObject
from ...shared.exceptions import InvalidIntervalError

_MINUTE = timedelta(minutes=1)


def duration_minutes(
    start: datetime,
    end: datetime,
    start_field: str = "start_time",
    end_field: str = "end_time",
) -> int:
    """
    Whole minutes between two instants, rounded down.

    Raises:
        InvalidIntervalError: If ``end`` is not after ``start``
    """
    if end <= start:
        raise InvalidIntervalError(start_field, start, end_field, end)
    return (end - start) // _MINUTE


class TimeInterval(ValueObject):
    """
    Half-open interval ``[start, end)``.

    An interval without ``end`` is still open (for example a downtime that has
    not been resolved yet) and extends indefinitely.
    """

    start: datetime
    end: datetime | None = None

    @model_validator(mode="after")
    def end_after_start(self) -> "TimeInterval":
        if self.end is not None and self.end <= self.start:
            raise InvalidIntervalError("start", self.start, "end", self.end)
        return self

    @property
    def is_open(self) -> bool:
        return self.end is None

    @property
    def duration_minutes(self) -> int | None:
        """Duration in whole minutes, ``None`` while open."""
        if self.end is None:
            return None
        return duration_minutes(self.start, self.end)

    def overlaps(self, other: "TimeInterval") -> bool:
        """Check if this interval shares any instant with another."""
        starts_before_other_ends = other.end is None or self.start < other.end
        other_starts_before_end = self.end is None or other.start < self.end
        return starts_before_other_ends and other_starts_before_end

    def contains(self, point: datetime) -> bool:
        """Check if a datetime point is within this interval."""
        return self.start <= point and (self.end is None or point < self.end)

    def __str__(self) -> str:
        end = self.end.isoformat() if self.end else "open"
        return f"[{self.start.isoformat()}, {end})"


def overlaps(a: TimeInterval, b: TimeInterval) -> bool:
    """Check if two intervals overlap."""
    return a.overlaps(b)
