"""
Schedule Invariants Contract.

These invariants are structural law. They are hardcoded in the value
types and the calculation engines. No configuration value may override
them.

This module exists solely to declare these invariants explicitly. The
enforcement is distributed across Float, CriticalPathCalculator,
ResourceLevelingEngine and TaskNetwork, each of which raises
ScheduleInvariantViolation citing the member below.
"""

from enum import Enum, unique


@unique
class ScheduleInvariant(str, Enum):
    """Non-configurable invariants enforced by the schedule engines.

    Configuration may tune tolerances and thresholds, but never whether
    these rules apply.
    """

    NON_NEGATIVE_FLOAT = "non_negative_float"
    """Total float (LS - ES) is never negative. A negative delta is
    surfaced, never clamped. Enforced by Float.calculate_total_float."""

    FREE_FLOAT_WITHIN_TOTAL = "free_float_within_total"
    """Free float never exceeds total float. Enforced by Float.create."""

    LEVELING_NEVER_ACCELERATES = "leveling_never_accelerates"
    """Resource leveling only delays work, so the leveled duration is at
    least the original critical-path duration. Enforced by
    LevelingResult construction."""

    COMPLETE_PASS = "complete_pass"
    """Forward and backward passes assign dates to every task of a
    validated network. Enforced by CriticalPathCalculator."""


# The kernel and engine packages may not import from these packages.
# This is enforced by tests/architecture/test_import_boundaries.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "schedule_services",
    "schedule_config",
)
