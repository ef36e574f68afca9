"""
schedule_engines.resources -- Resource constraints, allocation profiles and conflicts.

Responsibility:
    Model what a resource can supply (ResourceConstraint with optional
    availability periods) and how much of it a schedule consumes over time
    (ResourceProfile, a date-ordered series of allocation points).  Derive
    the profile metrics the leveling engine works from: peak, average,
    utilization, overallocation periods, smoothness and levelness.  Also
    builds daily profiles from a critical-path schedule and detects
    percentage-based assignment conflicts with a sweep line.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumed by schedule_engines.leveling and schedule_services.

Invariants enforced:
    - ResourceConstraint: id and name present, max units > 0, cost >= 0,
      availability periods pairwise non-overlapping (inclusive ends).
    - ResourceProfile allocations are always sorted by date ascending.
    - Overallocation periods merge contiguous over-limit points and close
      at the first point back within the limit.

Failure modes:
    - InvalidResourceConstraintError for malformed constraints, periods,
      allocation points or conflict-detection inputs.

Usage:
    crane = ResourceConstraint.create(
        resource_id="crane", resource_name="Tower crane",
        resource_type=ResourceType.EQUIPMENT, max_units_available=1,
        cost_per_unit=Decimal("250"),
    )
    profile = ResourceProfile.create(crane, points)
    profile.overallocation_periods()
"""

from __future__ import annotations

import math
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from enum import Enum

from schedule_engines.critical_path import CriticalPathAnalysis
from schedule_engines.network import TaskNode
from schedule_engines.tracer import traced_engine
from schedule_kernel.domain.values import HOURS_PER_DAY
from schedule_kernel.exceptions import InvalidResourceConstraintError
from schedule_kernel.logging_config import get_logger

logger = get_logger("engines.resources")

DEFAULT_LEVEL_TOLERANCE_PERCENTAGE = 10.0

_EPSILON = 1e-9


class ResourceType(str, Enum):
    """Kind of resource a constraint describes."""

    LABOR = "labor"
    EQUIPMENT = "equipment"
    MATERIAL = "material"
    SUBCONTRACTOR = "subcontractor"
    FACILITY = "facility"


@dataclass(frozen=True)
class AvailabilityPeriod:
    """Inclusive date range in which a resource is available."""

    start_date: date
    end_date: date
    units_available: float | None = None

    def overlaps(self, start: date, end: date) -> bool:
        return self.start_date <= end and start <= self.end_date

    def covers(self, start: date, end: date) -> bool:
        return self.start_date <= start and self.end_date >= end


@dataclass(frozen=True)
class ResourceConstraint:
    """
    Capacity and cost of one resource.

    Contract:
        Without availability periods the resource is always available at
        ``max_units_available``.  With periods, it is available only inside
        them and each period may cap units lower.

    Guarantees:
        - Validated at construction (see module invariants).
        - ``cost_per_unit`` is always Decimal.
    """

    resource_id: str
    resource_name: str
    resource_type: ResourceType
    max_units_available: float
    cost_per_unit: Decimal = Decimal("0")
    available_periods: tuple[AvailabilityPeriod, ...] = ()

    def __post_init__(self) -> None:
        if not self.resource_id or not self.resource_name:
            raise InvalidResourceConstraintError(
                self.resource_id or None, "resource id and name are required"
            )
        try:
            object.__setattr__(self, "resource_type", ResourceType(self.resource_type))
        except ValueError as e:
            raise InvalidResourceConstraintError(
                self.resource_id, f"unknown resource type {self.resource_type!r}"
            ) from e
        if not math.isfinite(self.max_units_available) or self.max_units_available <= 0:
            raise InvalidResourceConstraintError(
                self.resource_id, "max units available must be positive"
            )
        try:
            cost = Decimal(str(self.cost_per_unit))
        except InvalidOperation as e:
            raise InvalidResourceConstraintError(
                self.resource_id, f"invalid cost per unit {self.cost_per_unit!r}"
            ) from e
        if not cost.is_finite() or cost < 0:
            raise InvalidResourceConstraintError(
                self.resource_id, "cost per unit cannot be negative"
            )
        object.__setattr__(self, "cost_per_unit", cost)

        periods = tuple(self.available_periods)
        for period in periods:
            if period.end_date < period.start_date:
                raise InvalidResourceConstraintError(
                    self.resource_id, "availability period ends before it starts"
                )
            if period.units_available is not None and period.units_available < 0:
                raise InvalidResourceConstraintError(
                    self.resource_id, "availability period units cannot be negative"
                )
        for i, first in enumerate(periods):
            for second in periods[i + 1:]:
                if first.overlaps(second.start_date, second.end_date):
                    raise InvalidResourceConstraintError(
                        self.resource_id, "availability periods cannot overlap"
                    )
        object.__setattr__(self, "available_periods", periods)

    @classmethod
    def create(
        cls,
        *,
        resource_id: str,
        resource_name: str,
        resource_type: ResourceType | str,
        max_units_available: float,
        cost_per_unit: Decimal | str | int = Decimal("0"),
        available_periods: Iterable[AvailabilityPeriod] = (),
    ) -> ResourceConstraint:
        return cls(
            resource_id=resource_id,
            resource_name=resource_name,
            resource_type=resource_type,  # type: ignore[arg-type]
            max_units_available=max_units_available,
            cost_per_unit=cost_per_unit,  # type: ignore[arg-type]
            available_periods=tuple(available_periods),
        )

    def is_available_during(self, start: date, end: date) -> bool:
        if not self.available_periods:
            return True
        return any(p.covers(start, end) for p in self.available_periods)

    def available_units(self, start: date, end: date) -> float:
        """Units usable across the whole range (0 when unavailable)."""
        if not self.is_available_during(start, end):
            return 0.0
        overlapping = [p for p in self.available_periods if p.overlaps(start, end)]
        caps = [
            p.units_available if p.units_available is not None else self.max_units_available
            for p in overlapping
        ]
        return min([self.max_units_available, *caps])

    def calculate_cost(self, units: float, duration_hours: float) -> Decimal:
        return Decimal(str(units)) * Decimal(str(duration_hours)) * self.cost_per_unit

    def is_overallocated(self, allocated_units: float, start: date, end: date) -> bool:
        return allocated_units > self.available_units(start, end)

    def utilization(self, allocated_units: float, start: date, end: date) -> float:
        """Allocated units as a percentage of available units."""
        available = self.available_units(start, end)
        if available == 0:
            return 0.0
        return allocated_units / available * 100

    def __str__(self) -> str:
        return (
            f"{self.resource_name} ({self.resource_type.value}): "
            f"{self.max_units_available} units @ ${self.cost_per_unit}/hr"
        )


@dataclass(frozen=True)
class ResourceAllocationPoint:
    """Units of a resource held on one day and the tasks holding them."""

    date: date
    units_allocated: float
    task_ids: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "task_ids", tuple(self.task_ids))
        if not math.isfinite(self.units_allocated) or self.units_allocated < 0:
            raise InvalidResourceConstraintError(
                None, f"allocation on {self.date} must be finite and non-negative"
            )


@dataclass(frozen=True)
class OverallocationPeriod:
    """Run of consecutive over-limit allocation points."""

    start_date: date
    end_date: date
    peak_overallocation: float
    affected_task_ids: tuple[str, ...]

    @property
    def length_days(self) -> int:
        """Inclusive number of calendar days spanned."""
        return (self.end_date - self.start_date).days + 1


@dataclass(frozen=True)
class HistogramBucket:
    min_units: float
    max_units: float
    count: int


@dataclass(frozen=True)
class ResourceProfile:
    """
    Allocation series of one resource.

    Contract:
        Metrics are computed on demand from ``allocations``; the profile
        itself is never mutated.

    Guarantees:
        - ``allocations`` sorted by date ascending (stable for ties).
        - Empty profiles report zero peak, average, smoothness and
          utilization, and are level.
    """

    constraint: ResourceConstraint
    allocations: tuple[ResourceAllocationPoint, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "allocations", tuple(sorted(self.allocations, key=lambda a: a.date))
        )

    @classmethod
    def create(
        cls,
        constraint: ResourceConstraint,
        allocations: Iterable[ResourceAllocationPoint],
    ) -> ResourceProfile:
        return cls(constraint=constraint, allocations=tuple(allocations))

    @property
    def resource_id(self) -> str:
        return self.constraint.resource_id

    def peak_allocation(self) -> float:
        if not self.allocations:
            return 0.0
        return max(a.units_allocated for a in self.allocations)

    def average_allocation(self) -> float:
        if not self.allocations:
            return 0.0
        return sum(a.units_allocated for a in self.allocations) / len(self.allocations)

    def utilization_percentage(self) -> float:
        """Peak allocation as a percentage of capacity."""
        return self.peak_allocation() / self.constraint.max_units_available * 100

    def overallocation_periods(self) -> tuple[OverallocationPeriod, ...]:
        limit = self.constraint.max_units_available
        periods: list[OverallocationPeriod] = []
        start: date | None = None
        end: date | None = None
        peak = 0.0
        task_ids: list[str] = []

        for point in self.allocations:
            excess = point.units_allocated - limit
            if excess > 0:
                if start is None:
                    start, peak, task_ids = point.date, excess, []
                end = point.date
                peak = max(peak, excess)
                task_ids.extend(t for t in point.task_ids if t not in task_ids)
            elif start is not None:
                periods.append(OverallocationPeriod(start, end, peak, tuple(task_ids)))  # type: ignore[arg-type]
                start = None

        if start is not None:
            periods.append(OverallocationPeriod(start, end, peak, tuple(task_ids)))  # type: ignore[arg-type]
        return tuple(periods)

    def smoothness(self) -> float:
        """Population standard deviation of units; lower is smoother."""
        if len(self.allocations) < 2:
            return 0.0
        mean = self.average_allocation()
        variance = sum((a.units_allocated - mean) ** 2 for a in self.allocations) / len(
            self.allocations
        )
        return math.sqrt(variance)

    def is_level(self, tolerance_percentage: float = DEFAULT_LEVEL_TOLERANCE_PERCENTAGE) -> bool:
        avg = self.average_allocation()
        if avg == 0:
            return True
        variation = (self.peak_allocation() - avg) / avg * 100
        return variation <= tolerance_percentage

    def allocation_at(self, day: date) -> float:
        if isinstance(day, datetime):
            day = day.date()
        for point in self.allocations:
            if point.date == day:
                return point.units_allocated
        return 0.0

    def histogram(self, bucket_size: float = 1.0) -> tuple[HistogramBucket, ...]:
        """Count of allocation points per units bucket, lowest bucket first."""
        if bucket_size <= 0:
            raise InvalidResourceConstraintError(self.resource_id, "bucket size must be positive")
        counts: dict[float, int] = {}
        for point in self.allocations:
            bucket = math.floor(point.units_allocated / bucket_size) * bucket_size
            counts[bucket] = counts.get(bucket, 0) + 1
        return tuple(
            HistogramBucket(min_units=b, max_units=b + bucket_size, count=counts[b])
            for b in sorted(counts)
        )

    def __str__(self) -> str:
        return (
            f"{self.constraint.resource_name}: Peak {self.peak_allocation():.1f}, "
            f"Avg {self.average_allocation():.1f}, "
            f"Utilization {self.utilization_percentage():.1f}%"
        )


# ---------------------------------------------------------------------------
# Profile construction from a schedule
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TaskWindow:
    """Working-hour window in which one task holds ``units`` of a resource."""

    task_id: str
    start_hours: float
    finish_hours: float
    units: float


def period_span(start_hours: float, finish_hours: float) -> range:
    """Indices of the working days a [start, finish) window touches."""
    first = math.floor(start_hours / HOURS_PER_DAY + _EPSILON)
    last = math.ceil(finish_hours / HOURS_PER_DAY - _EPSILON)
    return range(first, max(first, last))


def windows_for_resource(
    analysis: CriticalPathAnalysis,
    tasks: Sequence[TaskNode],
    resource_id: str,
) -> tuple[TaskWindow, ...]:
    """Scheduled windows of every task that declares units of ``resource_id``."""
    windows: list[TaskWindow] = []
    for node in tasks:
        units = node.resource_units.get(resource_id, 0)
        if units <= 0:
            continue
        scheduled = analysis.task(node.task_id)
        windows.append(TaskWindow(
            task_id=node.task_id,
            start_hours=analysis.offset_hours(scheduled.earliest_start),
            finish_hours=analysis.offset_hours(scheduled.earliest_finish),
            units=units,
        ))
    return tuple(windows)


@traced_engine("resource_profile", "1.0", fingerprint_fields=("constraint", "windows", "origin"))
def build_resource_profile(
    *,
    constraint: ResourceConstraint,
    windows: Sequence[TaskWindow],
    origin: date,
) -> ResourceProfile:
    """
    Daily allocation series from task windows.

    Working day ``i`` (``HOURS_PER_DAY`` long) maps to calendar day
    ``origin + i``.  Days on which nothing is allocated are omitted.
    """
    totals: dict[int, float] = {}
    holders: dict[int, list[str]] = {}
    for window in windows:
        for index in period_span(window.start_hours, window.finish_hours):
            totals[index] = totals.get(index, 0.0) + window.units
            holders.setdefault(index, []).append(window.task_id)

    points = [
        ResourceAllocationPoint(
            date=origin + timedelta(days=index),
            units_allocated=totals[index],
            task_ids=tuple(holders[index]),
        )
        for index in sorted(totals)
        if totals[index] > 0
    ]
    logger.debug("resource_profile_built", extra={
        "resource_id": constraint.resource_id,
        "window_count": len(windows),
        "point_count": len(points),
    })
    return ResourceProfile(constraint=constraint, allocations=tuple(points))


# ---------------------------------------------------------------------------
# Percentage-based conflict detection
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ResourceAssignment:
    """A task holding a share (percent) of a resource between two instants."""

    task_id: str
    allocation_percent: float
    start: datetime
    finish: datetime
    task_name: str = ""


@dataclass(frozen=True)
class ResourceConflict:
    """Interval in which the summed allocation exceeds capacity."""

    resource_id: str
    start: datetime
    end: datetime
    total_allocation_percent: float
    capacity_percent: float
    assignments: tuple[ResourceAssignment, ...]

    @property
    def excess_percent(self) -> float:
        return self.total_allocation_percent - self.capacity_percent

    @property
    def task_ids(self) -> tuple[str, ...]:
        return tuple(a.task_id for a in self.assignments)


@traced_engine("resource_conflicts", "1.0", fingerprint_fields=("resource_id", "assignments"))
def detect_resource_conflicts(
    *,
    resource_id: str,
    assignments: Sequence[ResourceAssignment],
    window_start: datetime,
    window_end: datetime,
    capacity_percent: float = 100.0,
) -> tuple[ResourceConflict, ...]:
    """
    Sweep-line over assignment start/finish events.

    Postconditions:
        Conflicts are ordered by start, clipped to the window, and adjacent
        conflicts with the same total and the same assignments are merged.

    Raises:
        InvalidResourceConstraintError: non-positive capacity, negative
            allocation, an assignment finishing before it starts, or an
            empty window.
    """
    t0 = time.monotonic()
    if capacity_percent <= 0:
        raise InvalidResourceConstraintError(resource_id, "capacity must be positive")
    if window_end <= window_start:
        raise InvalidResourceConstraintError(resource_id, "window end must follow window start")
    for a in assignments:
        if a.allocation_percent < 0:
            raise InvalidResourceConstraintError(
                resource_id, f"task {a.task_id} has negative allocation"
            )
        if a.finish < a.start:
            raise InvalidResourceConstraintError(
                resource_id, f"task {a.task_id} finishes before it starts"
            )

    # (instant, 0 = start / 1 = finish, assignment index)
    events: list[tuple[datetime, int, int]] = []
    for index, a in enumerate(assignments):
        if a.finish <= window_start or a.start >= window_end or a.finish == a.start:
            continue
        events.append((a.start, 0, index))
        events.append((a.finish, 1, index))
    events.sort()

    active: dict[int, ResourceAssignment] = {}
    conflicts: list[ResourceConflict] = []
    for position, (instant, kind, index) in enumerate(events[:-1]):
        if kind == 0:
            active[index] = assignments[index]
        else:
            active.pop(index, None)

        next_instant = events[position + 1][0]
        if next_instant <= instant:
            continue
        total = sum(a.allocation_percent for a in active.values())
        if total <= capacity_percent:
            continue

        start = max(instant, window_start)
        end = min(next_instant, window_end)
        if start >= end:
            continue
        members = tuple(active[k] for k in sorted(active))
        previous = conflicts[-1] if conflicts else None
        if (
            previous is not None
            and previous.end == start
            and math.isclose(previous.total_allocation_percent, total)
            and previous.assignments == members
        ):
            conflicts[-1] = replace(previous, end=end)
        else:
            conflicts.append(ResourceConflict(
                resource_id=resource_id,
                start=start,
                end=end,
                total_allocation_percent=total,
                capacity_percent=capacity_percent,
                assignments=members,
            ))

    logger.info("resource_conflicts_detected", extra={
        "resource_id": resource_id,
        "assignment_count": len(assignments),
        "conflict_count": len(conflicts),
        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
    })
    return tuple(conflicts)
