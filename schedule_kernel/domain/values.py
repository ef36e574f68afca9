"""
Values -- Immutable, self-validating scheduling value objects.

Responsibility:
    Provides the foundational value types for every schedule computation:
    Duration (a non-negative span on the fixed working calendar) and Float
    (the total/free slack of a scheduled task).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by every engine module. No outward dependencies except
    schedule_kernel.exceptions.

Invariants enforced:
    - Duration value is finite and >= 0, checked at construction.
    - Fixed calendar: 1 day = 8 h, 1 week = 40 h, 1 month = 160 h.
    - Duration equality holds within 0.01 hour.
    - Float: free float <= total float; total float is never negative
      (ScheduleInvariant.NON_NEGATIVE_FLOAT, FREE_FLOAT_WITHIN_TOTAL).

Failure modes:
    - InvalidDurationError on negative, non-finite or non-numeric values,
      unknown units, or invalid multiplication factors.
    - ScheduleInvariantViolation when a Float would break its invariants.
      Floats are derived by the critical-path engine, so a violation is an
      algorithm defect rather than bad input.

Usage:
    >>> Duration.from_days(3).to_hours()
    24.0
    >>> str(Duration.from_hours(12).convert_to(DurationUnit.DAYS))
    '1.50 days'
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from schedule_kernel.exceptions import (
    InvalidDurationError,
    ScheduleInvariantViolation,
)
from schedule_kernel.invariants import ScheduleInvariant

HOURS_PER_DAY = 8.0
HOURS_PER_WEEK = 40.0
HOURS_PER_MONTH = 160.0
MILLISECONDS_PER_HOUR = 3_600_000

# Durations closer than this are equal.
EQUALITY_TOLERANCE_HOURS = 0.01

# A task with this much total float counts as fully flexible.
FULL_FLEXIBILITY_HOURS = 40.0


class DurationUnit(str, Enum):
    """Units on the fixed working calendar."""

    HOURS = "hours"
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"

    @property
    def hours(self) -> float:
        """Number of working hours in one unit."""
        return _HOURS_PER_UNIT[self]


_HOURS_PER_UNIT: dict[DurationUnit, float] = {
    DurationUnit.HOURS: 1.0,
    DurationUnit.DAYS: HOURS_PER_DAY,
    DurationUnit.WEEKS: HOURS_PER_WEEK,
    DurationUnit.MONTHS: HOURS_PER_MONTH,
}


def _finite_non_negative(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    number = float(value)
    if not math.isfinite(number) or number < 0:
        return None
    return number


@dataclass(frozen=True, slots=True, eq=False)
class Duration:
    """
    Non-negative time span with a unit.

    Contract:
        Pairs a finite, non-negative value with a DurationUnit. Conversions
        go through hours on the fixed 8/40/160 calendar.

    Guarantees:
        - Immutable (frozen dataclass with slots).
        - ``value`` is always a float >= 0 and finite.
        - ``==`` compares hours within EQUALITY_TOLERANCE_HOURS.
        - Unhashable; not usable in sets or as a dict key.
        - ``add`` and ``subtract`` return days; ``subtract`` floors at zero.

    Non-goals:
        - Does NOT model calendars with holidays or weekends.
        - Does NOT represent negative spans (use subtract, which floors).
    """

    value: float
    unit: DurationUnit

    def __post_init__(self) -> None:
        try:
            unit = DurationUnit(self.unit)
        except ValueError as e:
            raise InvalidDurationError(self.value, str(self.unit), "unknown unit") from e
        number = _finite_non_negative(self.value)
        if number is None:
            raise InvalidDurationError(self.value, unit.value)
        object.__setattr__(self, "value", number)
        object.__setattr__(self, "unit", unit)

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    @classmethod
    def create(cls, value: float, unit: DurationUnit | str) -> Duration:
        """
        Build a Duration, validating value and unit.

        Raises:
            InvalidDurationError: value negative, NaN, infinite or not a
                number, or unit unknown.
        """
        return cls(value=value, unit=unit)

    @classmethod
    def from_hours(cls, hours: float) -> Duration:
        return cls(value=hours, unit=DurationUnit.HOURS)

    @classmethod
    def from_days(cls, days: float) -> Duration:
        return cls(value=days, unit=DurationUnit.DAYS)

    @classmethod
    def from_weeks(cls, weeks: float) -> Duration:
        return cls(value=weeks, unit=DurationUnit.WEEKS)

    @classmethod
    def from_months(cls, months: float) -> Duration:
        return cls(value=months, unit=DurationUnit.MONTHS)

    @classmethod
    def from_milliseconds(cls, milliseconds: int) -> Duration:
        """Hours-based duration from a millisecond offset delta."""
        return cls(value=milliseconds / MILLISECONDS_PER_HOUR, unit=DurationUnit.HOURS)

    @classmethod
    def zero(cls, unit: DurationUnit | str = DurationUnit.HOURS) -> Duration:
        return cls(value=0.0, unit=unit)

    # ------------------------------------------------------------------
    # Conversions
    # ------------------------------------------------------------------

    def to_hours(self) -> float:
        return self.value * self.unit.hours

    def to_days(self) -> float:
        return self.to_hours() / HOURS_PER_DAY

    def to_weeks(self) -> float:
        return self.to_hours() / HOURS_PER_WEEK

    def to_months(self) -> float:
        return self.to_hours() / HOURS_PER_MONTH

    def to_milliseconds(self) -> int:
        """Whole milliseconds, the unit of critical-path arithmetic."""
        return round(self.to_hours() * MILLISECONDS_PER_HOUR)

    def convert_to(self, unit: DurationUnit | str) -> Duration:
        target = DurationUnit(unit)
        return Duration(value=self.to_hours() / target.hours, unit=target)

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def add(self, other: Duration) -> Duration:
        """Sum of both durations, expressed in days."""
        return Duration.from_days(self.to_days() + other.to_days())

    def subtract(self, other: Duration) -> Duration:
        """Difference expressed in days, floored at zero."""
        return Duration.from_days(max(0.0, self.to_days() - other.to_days()))

    def multiply(self, factor: float) -> Duration:
        """
        Scale the value, keeping the unit.

        Raises:
            InvalidDurationError: factor negative or not finite.
        """
        number = _finite_non_negative(factor)
        if number is None:
            raise InvalidDurationError(
                factor, self.unit.value, "multiplication factor must be finite and non-negative"
            )
        return Duration(value=self.value * number, unit=self.unit)

    def __add__(self, other: Duration) -> Duration:
        if not isinstance(other, Duration):
            return NotImplemented
        return self.add(other)

    def __sub__(self, other: Duration) -> Duration:
        if not isinstance(other, Duration):
            return NotImplemented
        return self.subtract(other)

    def __mul__(self, factor: float) -> Duration:
        return self.multiply(factor)

    __rmul__ = __mul__

    # ------------------------------------------------------------------
    # Comparison
    # ------------------------------------------------------------------

    @property
    def is_zero(self) -> bool:
        return self.to_hours() < EQUALITY_TOLERANCE_HOURS

    def is_longer_than(self, other: Duration) -> bool:
        return self.to_hours() > other.to_hours()

    def is_shorter_than(self, other: Duration) -> bool:
        return self.to_hours() < other.to_hours()

    def equals(self, other: Duration) -> bool:
        return abs(self.to_hours() - other.to_hours()) < EQUALITY_TOLERANCE_HOURS

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Duration):
            return NotImplemented
        return self.equals(other)

    # Tolerance equality is not transitive, so no hash can agree with it.
    __hash__ = None  # type: ignore[assignment]

    def __lt__(self, other: Duration) -> bool:
        if not isinstance(other, Duration):
            return NotImplemented
        return self.is_shorter_than(other)

    def __le__(self, other: Duration) -> bool:
        if not isinstance(other, Duration):
            return NotImplemented
        return self.is_shorter_than(other) or self.equals(other)

    def __gt__(self, other: Duration) -> bool:
        if not isinstance(other, Duration):
            return NotImplemented
        return self.is_longer_than(other)

    def __ge__(self, other: Duration) -> bool:
        if not isinstance(other, Duration):
            return NotImplemented
        return self.is_longer_than(other) or self.equals(other)

    def __str__(self) -> str:
        return f"{self.value:.2f} {self.unit.value}"

    def __repr__(self) -> str:
        return f"Duration({self.value!r}, {self.unit.value!r})"


class FloatStatus(str, Enum):
    """Criticality classification of a scheduled task."""

    CRITICAL = "critical"
    NEAR_CRITICAL = "near-critical"
    NORMAL = "normal"


@dataclass(frozen=True, slots=True)
class Float:
    """
    Scheduling slack of one task.

    Contract:
        Total float is how long a task can slip without moving the project
        finish; free float is how long it can slip without moving any
        successor. Both are derived by the critical-path engine.

    Guarantees:
        - ``free_float <= total_float`` (within Duration tolerance).

    Non-goals:
        - Does NOT model negative float (late projects); a negative delta
          is an invariant violation.
    """

    total_float: Duration
    free_float: Duration

    def __post_init__(self) -> None:
        if self.free_float.to_hours() > self.total_float.to_hours() + EQUALITY_TOLERANCE_HOURS:
            raise ScheduleInvariantViolation(
                ScheduleInvariant.FREE_FLOAT_WITHIN_TOTAL,
                f"free float {self.free_float} exceeds total float {self.total_float}",
            )

    @classmethod
    def create(cls, total_float: Duration, free_float: Duration) -> Float:
        return cls(total_float=total_float, free_float=free_float)

    @classmethod
    def zero(cls) -> Float:
        return cls(total_float=Duration.zero(), free_float=Duration.zero())

    @staticmethod
    def calculate_total_float(latest_start: datetime, earliest_start: datetime) -> Duration:
        """
        Total float as LS - ES.

        Raises:
            ScheduleInvariantViolation: LS precedes ES.
        """
        delta = latest_start - earliest_start
        milliseconds = round(delta.total_seconds() * 1000)
        if milliseconds < 0:
            raise ScheduleInvariantViolation(
                ScheduleInvariant.NON_NEGATIVE_FLOAT,
                f"latest start {latest_start.isoformat()} precedes "
                f"earliest start {earliest_start.isoformat()}",
            )
        return Duration.from_milliseconds(milliseconds)

    @staticmethod
    def calculate_free_float(
        current_earliest_finish: datetime, successor_earliest_start: datetime
    ) -> Duration:
        """Free float as successor ES - current EF, floored at zero."""
        delta = successor_earliest_start - current_earliest_finish
        milliseconds = round(delta.total_seconds() * 1000)
        return Duration.from_milliseconds(max(0, milliseconds))

    def is_critical(self, tolerance_hours: float = 0.1) -> bool:
        return self.total_float.to_hours() <= tolerance_hours

    def is_near_critical(self, threshold_hours: float = 8.0) -> bool:
        hours = self.total_float.to_hours()
        return 0 < hours <= threshold_hours

    def status(self, tolerance_hours: float = 0.1, threshold_hours: float = 8.0) -> FloatStatus:
        if self.is_critical(tolerance_hours):
            return FloatStatus.CRITICAL
        if self.is_near_critical(threshold_hours):
            return FloatStatus.NEAR_CRITICAL
        return FloatStatus.NORMAL

    @property
    def flexibility(self) -> float:
        """Share of a full work week of slack, between 0 and 1."""
        return min(1.0, self.total_float.to_hours() / FULL_FLEXIBILITY_HOURS)

    def can_delay_by(self, duration: Duration) -> bool:
        return duration.to_hours() <= self.total_float.to_hours()

    def __str__(self) -> str:
        return f"Float(total: {self.total_float}, free: {self.free_float})"
