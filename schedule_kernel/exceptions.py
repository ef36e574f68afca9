"""
Typed Exception Hierarchy for the Schedule Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A scheduling caller needs to tell "your network has a cycle" apart from
"your crashing option is malformed" without parsing message strings.
Every error in this module therefore:
  1. Has its own class (catch by type, not message)
  2. Carries a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (task ids, cycle path, reason)

Example - WRONG way to handle errors:
    try:
        analysis = calculator.calculate(tasks=tasks, ...)
    except Exception as e:
        if "cycle" in str(e):  # FRAGILE - message might change
            reject_plan()

Example - RIGHT way (what this module enables):
    try:
        analysis = calculator.calculate(tasks=tasks, ...)
    except CircularDependencyError as e:
        log.warning("cycle through %s", e.task_id)
        api_response(code=e.code, cycle=e.cycle)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

Recoverable input errors inherit from SchedulingError:

    SchedulingError (base)
    |
    +-- DurationError
    |   +-- InvalidDurationError
    |
    +-- NetworkError
    |   +-- SelfDependencyError
    |   +-- CircularDependencyError
    |   +-- UnknownPredecessorError
    |   +-- DuplicateTaskError
    |   +-- EmptyNetworkError
    |   +-- NoCriticalPathFoundError
    |
    +-- ResourceError
    |   +-- InvalidResourceConstraintError
    |   +-- InvalidLevelingInputError
    |
    +-- CompressionError
        +-- InvalidCrashingOptionError
        +-- InvalidFastTrackingOptionError
        +-- InvalidCompressionSelectionError

Algorithm defects are NOT scheduling errors:

    ScheduleInvariantViolation (AssertionError)

The service boundary converts SchedulingError into a failed
ScheduleOutcome.  ScheduleInvariantViolation always propagates: it means
the engine computed something impossible (negative total float, a leveled
schedule shorter than the original) and no caller can recover from that.

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                          | When Raised
-------------|-------------------------------|---------------------------------------
Duration     | INVALID_DURATION              | Negative / non-finite value or factor
-------------|-------------------------------|---------------------------------------
Network      | SELF_DEPENDENCY               | Task lists itself as a predecessor
             | CIRCULAR_DEPENDENCY           | Dependency graph contains a cycle
             | UNKNOWN_PREDECESSOR           | Predecessor id is not in the network
             | DUPLICATE_TASK                | Two tasks share an id
             | EMPTY_NETWORK                 | Critical path over zero tasks
             | NO_CRITICAL_PATH_FOUND        | No task within the critical tolerance
-------------|-------------------------------|---------------------------------------
Resource     | INVALID_RESOURCE_CONSTRAINT   | Bad capacity, cost or availability
             | INVALID_LEVELING_INPUT        | Unknown algorithm or mismatched inputs
-------------|-------------------------------|---------------------------------------
Compression  | INVALID_CRASHING_OPTION       | crashed >= normal, cost decreases
             | INVALID_FAST_TRACKING_OPTION  | proposed lag >= original, p outside [0,1]
             | INVALID_COMPRESSION_SELECTION | Selection names an unknown option
-------------|-------------------------------|---------------------------------------
Invariant    | SCHEDULE_INVARIANT_VIOLATION  | Engine produced an impossible result

===============================================================================
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any


class SchedulingError(Exception):
    """
    Base exception for all recoverable scheduling errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "SCHEDULING_ERROR"


# Duration exceptions


class DurationError(SchedulingError):
    """Base exception for duration value errors."""

    code: str = "DURATION_ERROR"


class InvalidDurationError(DurationError):
    """Duration value (or multiplication factor) is negative or not finite."""

    code: str = "INVALID_DURATION"

    def __init__(self, value: Any, unit: str | None = None, reason: str = "must be a finite, non-negative number"):
        self.value = value
        self.unit = unit
        self.reason = reason
        suffix = f" {unit}" if unit else ""
        super().__init__(f"Invalid duration {value!r}{suffix}: {reason}")


# Network exceptions


class NetworkError(SchedulingError):
    """Base exception for task network errors."""

    code: str = "NETWORK_ERROR"


class SelfDependencyError(NetworkError):
    """A task lists itself as its own predecessor."""

    code: str = "SELF_DEPENDENCY"

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task cannot depend on itself: {task_id}")


class CircularDependencyError(NetworkError):
    """The dependency graph contains a cycle."""

    code: str = "CIRCULAR_DEPENDENCY"

    def __init__(self, task_id: str, cycle: Sequence[str] = ()):
        self.task_id = task_id
        self.cycle = tuple(cycle)
        if self.cycle:
            path = " -> ".join(self.cycle)
            super().__init__(f"Circular dependency detected involving task {task_id}: {path}")
        else:
            super().__init__(f"Circular dependency detected involving task {task_id}")


class UnknownPredecessorError(NetworkError):
    """A predecessor id does not name a task in the network."""

    code: str = "UNKNOWN_PREDECESSOR"

    def __init__(self, task_id: str, missing_id: str):
        self.task_id = task_id
        self.missing_id = missing_id
        super().__init__(
            f"Task {task_id} references unknown predecessor {missing_id}"
        )


class DuplicateTaskError(NetworkError):
    """Two tasks in the same network share an id."""

    code: str = "DUPLICATE_TASK"

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Duplicate task id in network: {task_id}")


class EmptyNetworkError(NetworkError):
    """A critical path was requested for a network with no tasks."""

    code: str = "EMPTY_NETWORK"

    def __init__(self) -> None:
        super().__init__("Cannot calculate critical path for an empty task network")


class NoCriticalPathFoundError(NetworkError):
    """No task has total float within the critical tolerance."""

    code: str = "NO_CRITICAL_PATH_FOUND"

    def __init__(self, task_count: int, tolerance_hours: float):
        self.task_count = task_count
        self.tolerance_hours = tolerance_hours
        super().__init__(
            f"No critical path found among {task_count} tasks "
            f"(tolerance {tolerance_hours} hours)"
        )


# Resource exceptions


class ResourceError(SchedulingError):
    """Base exception for resource and leveling errors."""

    code: str = "RESOURCE_ERROR"


class InvalidResourceConstraintError(ResourceError):
    """Resource constraint or availability period is malformed."""

    code: str = "INVALID_RESOURCE_CONSTRAINT"

    def __init__(self, resource_id: str | None, reason: str):
        self.resource_id = resource_id
        self.reason = reason
        super().__init__(f"Invalid resource constraint {resource_id!r}: {reason}")


class InvalidLevelingInputError(ResourceError):
    """Leveling inputs are inconsistent (unknown algorithm, task mismatch)."""

    code: str = "INVALID_LEVELING_INPUT"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid leveling input: {reason}")


# Compression exceptions


class CompressionError(SchedulingError):
    """Base exception for schedule compression errors."""

    code: str = "COMPRESSION_ERROR"


class InvalidCrashingOptionError(CompressionError):
    """Crashing option violates its duration or cost invariants."""

    code: str = "INVALID_CRASHING_OPTION"

    def __init__(self, task_id: str, reason: str):
        self.task_id = task_id
        self.reason = reason
        super().__init__(f"Invalid crashing option for task {task_id}: {reason}")


class InvalidFastTrackingOptionError(CompressionError):
    """Fast-tracking option violates its lag or probability invariants."""

    code: str = "INVALID_FAST_TRACKING_OPTION"

    def __init__(self, task_id: str, successor_id: str, reason: str):
        self.task_id = task_id
        self.successor_id = successor_id
        self.reason = reason
        super().__init__(
            f"Invalid fast-tracking option {task_id} -> {successor_id}: {reason}"
        )


class InvalidCompressionSelectionError(CompressionError):
    """Compression selection references unknown or duplicated options."""

    code: str = "INVALID_COMPRESSION_SELECTION"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid compression selection: {reason}")


# Invariant violations


class ScheduleInvariantViolation(AssertionError):
    """
    An engine produced a structurally impossible result.

    Deliberately outside the SchedulingError hierarchy so that no
    outcome-converting boundary can swallow it.
    """

    code: str = "SCHEDULE_INVARIANT_VIOLATION"

    def __init__(self, invariant: str, details: str):
        self.invariant = invariant
        self.details = details
        name = getattr(invariant, "value", invariant)
        super().__init__(f"Invariant {name} violated: {details}")
