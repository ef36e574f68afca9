"""
Tests for Float (scheduling slack) and ScheduleOutcome.

Covers:
- Float construction invariants and calculations
- Criticality classification and flexibility
- Outcome success/failure handling
"""

from datetime import UTC, datetime, timedelta

import pytest

from schedule_kernel.domain.outcome import ScheduleOutcome
from schedule_kernel.domain.values import Duration, Float, FloatStatus
from schedule_kernel.exceptions import (
    CircularDependencyError,
    ScheduleInvariantViolation,
    SchedulingError,
)
from schedule_kernel.invariants import ScheduleInvariant

T0 = datetime(2024, 3, 4, 8, 0, tzinfo=UTC)


class TestFloatConstruction:
    """Float invariants."""

    def test_free_within_total(self):
        f = Float.create(Duration.from_hours(8), Duration.from_hours(4))
        assert f.free_float.to_hours() == 4

    def test_free_exceeding_total_is_invariant_violation(self):
        with pytest.raises(ScheduleInvariantViolation) as exc_info:
            Float.create(Duration.from_hours(4), Duration.from_hours(8))
        assert exc_info.value.invariant == ScheduleInvariant.FREE_FLOAT_WITHIN_TOTAL
        assert "free_float_within_total" in str(exc_info.value)

    def test_invariant_violation_is_not_a_scheduling_error(self):
        assert not issubclass(ScheduleInvariantViolation, SchedulingError)

    def test_zero(self):
        f = Float.zero()
        assert f.total_float.is_zero
        assert f.is_critical()


class TestFloatCalculations:
    """Total and free float from dates."""

    def test_total_float(self):
        total = Float.calculate_total_float(T0 + timedelta(hours=8), T0)
        assert total.to_hours() == 8

    def test_negative_total_float_raises(self):
        with pytest.raises(ScheduleInvariantViolation) as exc_info:
            Float.calculate_total_float(T0, T0 + timedelta(hours=1))
        assert exc_info.value.invariant == ScheduleInvariant.NON_NEGATIVE_FLOAT

    def test_free_float(self):
        free = Float.calculate_free_float(T0, T0 + timedelta(hours=3))
        assert free.to_hours() == 3

    def test_free_float_floors_at_zero(self):
        free = Float.calculate_free_float(T0 + timedelta(hours=3), T0)
        assert free.is_zero


class TestFloatClassification:
    """Critical / near-critical / normal."""

    @pytest.mark.parametrize(
        "hours,expected",
        [
            (0.0, FloatStatus.CRITICAL),
            (0.05, FloatStatus.CRITICAL),
            (0.5, FloatStatus.NEAR_CRITICAL),
            (8.0, FloatStatus.NEAR_CRITICAL),
            (9.0, FloatStatus.NORMAL),
        ],
    )
    def test_status(self, hours, expected):
        f = Float.create(Duration.from_hours(hours), Duration.zero())
        assert f.status() == expected

    def test_custom_thresholds(self):
        f = Float.create(Duration.from_hours(2), Duration.zero())
        assert f.status(tolerance_hours=2.0) == FloatStatus.CRITICAL
        assert f.status(threshold_hours=1.0) == FloatStatus.NORMAL

    def test_flexibility(self):
        assert Float.create(Duration.from_hours(20), Duration.zero()).flexibility == 0.5
        assert Float.create(Duration.from_weeks(2), Duration.zero()).flexibility == 1.0

    def test_can_delay_by(self):
        f = Float.create(Duration.from_days(2), Duration.zero())
        assert f.can_delay_by(Duration.from_days(2))
        assert not f.can_delay_by(Duration.from_days(3))


class TestScheduleOutcome:
    """Tagged success/failure result."""

    def test_ok(self):
        outcome = ScheduleOutcome.ok(("A", "B"))
        assert outcome.is_success
        assert bool(outcome)
        assert outcome.unwrap() == ("A", "B")
        assert outcome.error_code is None

    def test_ok_without_value(self):
        assert ScheduleOutcome.ok().value is None

    def test_fail_carries_code_and_message(self):
        error = CircularDependencyError("A", ("A", "B", "A"))
        outcome = ScheduleOutcome.fail(error)
        assert outcome.is_failure
        assert not outcome
        assert outcome.error is error
        assert outcome.error_code == "CIRCULAR_DEPENDENCY"
        assert "A -> B -> A" in outcome.error_message

    def test_unwrap_failure_reraises(self):
        outcome = ScheduleOutcome.fail(CircularDependencyError("A"))
        with pytest.raises(CircularDependencyError):
            outcome.unwrap()

    def test_unwrap_failure_without_error_raises_scheduling_error(self):
        outcome = ScheduleOutcome(success=False, error_message="lost")
        with pytest.raises(SchedulingError, match="lost"):
            outcome.unwrap()
        with pytest.raises(SchedulingError, match="carries no error"):
            ScheduleOutcome(success=False).unwrap()
