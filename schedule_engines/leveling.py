"""
schedule_engines.leveling -- Resource-constrained leveling of a CPM schedule.

Responsibility:
    Resolve resource overallocations by delaying non-critical tasks past
    the over-limit periods, chosen by a selectable priority heuristic.
    Propagates the delays through successors, rebuilds the resource
    profiles for the leveled schedule and scores the trade-off between
    smoother resource usage and schedule extension.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumes CriticalPathAnalysis (schedule_engines.critical_path) and
    ResourceProfile (schedule_engines.resources).

Invariants enforced:
    - ScheduleInvariant.LEVELING_NEVER_ACCELERATES: leveling only adds
      start-no-earlier-than floors, so the leveled duration is never
      shorter than the original; LevelingResult rejects anything else.
    - Only non-critical tasks are delayed.
    - Determinism: periods are processed by start date then resource id,
      candidates by heuristic then task id.

Failure modes:
    - InvalidLevelingInputError for an unknown algorithm, an analysis that
      does not match the tasks, duplicate resource profiles, or profiles
      naming unknown tasks.
    - Network validation errors surface unchanged.
    - Periods that cannot be covered by non-critical tasks stay
      overallocated; they are logged at warning level, not raised.
    - Leveling stops after ``max_passes`` passes even if delays are still
      moving conflicts forward; this is logged at warning level.

Usage:
    engine = ResourceLevelingEngine()
    result = engine.level(
        tasks=tasks,
        analysis=analysis,
        resource_profiles=profiles,
        algorithm=LevelingAlgorithm.MINIMUM_TOTAL_FLOAT,
    )
    result.recommendation().status
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum

from schedule_engines.critical_path import (
    CriticalPathAnalysis,
    CriticalPathCalculator,
    ScheduledTask,
    start_offsets_ms,
)
from schedule_engines.network import TaskNetwork, TaskNode
from schedule_engines.recommendation import (
    Confidence,
    Recommendation,
    RecommendationStatus,
)
from schedule_engines.resources import (
    DEFAULT_LEVEL_TOLERANCE_PERCENTAGE,
    OverallocationPeriod,
    ResourceAllocationPoint,
    ResourceProfile,
)
from schedule_engines.tracer import traced_engine
from schedule_kernel.domain.values import (
    EQUALITY_TOLERANCE_HOURS,
    HOURS_PER_DAY,
    MILLISECONDS_PER_HOUR,
    Duration,
)
from schedule_kernel.exceptions import (
    InvalidLevelingInputError,
    ScheduleInvariantViolation,
)
from schedule_kernel.invariants import ScheduleInvariant
from schedule_kernel.logging_config import get_logger

logger = get_logger("engines.leveling")

_UNITS_EPSILON = 1e-9
DEFAULT_MAX_PASSES = 100


class LevelingAlgorithm(str, Enum):
    """Priority heuristic deciding which task is delayed first."""

    MINIMUM_TOTAL_FLOAT = "minimum-total-float"  # most float first
    MINIMUM_LATE_FINISH = "minimum-late-finish"  # latest finish first
    MINIMUM_LATE_START = "minimum-late-start"  # latest start first
    SHORTEST_DURATION = "shortest-duration"
    LONGEST_DURATION = "longest-duration"


@dataclass(frozen=True)
class DelayedTask:
    task_id: str
    task_name: str
    original_start: datetime
    new_start: datetime
    delay_hours: float
    reason: str
    resource_id: str


@dataclass(frozen=True)
class LevelingMetrics:
    schedule_extension_hours: float
    schedule_impact_percent: float
    tasks_delayed: int
    total_delay_hours: float
    overallocations_resolved: int
    resource_smoothness: float
    peak_utilization: float
    average_utilization: float


@dataclass(frozen=True)
class ResourceUtilizationSummary:
    resource_id: str
    resource_name: str
    peak_allocation: float
    average_allocation: float
    utilization_percent: float
    smoothness: float
    is_level: bool


@dataclass(frozen=True)
class LevelingResult:
    """
    Outcome of one leveling run.

    Contract:
        ``resource_profiles`` describe the leveled schedule and
        ``original_profiles`` the input; ``metrics`` are derived from both
        by ``create``.

    Guarantees:
        - ``leveled_duration >= original_duration``.
        - ``effectiveness_score()`` is within [0, 100].
    """

    original_duration: Duration
    leveled_duration: Duration
    delayed_tasks: tuple[DelayedTask, ...]
    resource_profiles: tuple[ResourceProfile, ...]
    algorithm: LevelingAlgorithm
    metrics: LevelingMetrics
    original_profiles: tuple[ResourceProfile, ...] = ()
    level_tolerance_percent: float = DEFAULT_LEVEL_TOLERANCE_PERCENTAGE

    def __post_init__(self) -> None:
        shortfall = self.original_duration.to_hours() - self.leveled_duration.to_hours()
        if shortfall > EQUALITY_TOLERANCE_HOURS:
            raise ScheduleInvariantViolation(
                ScheduleInvariant.LEVELING_NEVER_ACCELERATES,
                f"leveled duration {self.leveled_duration} is shorter than "
                f"original {self.original_duration}",
            )

    @classmethod
    def create(
        cls,
        *,
        original_duration: Duration,
        leveled_duration: Duration,
        delayed_tasks: Sequence[DelayedTask],
        resource_profiles: Sequence[ResourceProfile],
        algorithm: LevelingAlgorithm,
        original_profiles: Sequence[ResourceProfile] = (),
        level_tolerance_percent: float = DEFAULT_LEVEL_TOLERANCE_PERCENTAGE,
    ) -> LevelingResult:
        extension = leveled_duration.to_hours() - original_duration.to_hours()
        original_hours = original_duration.to_hours()
        impact = extension / original_hours * 100 if original_hours > 0 else 0.0

        before = sum(len(p.overallocation_periods()) for p in original_profiles)
        after = sum(len(p.overallocation_periods()) for p in resource_profiles)

        utilizations = [p.utilization_percentage() for p in resource_profiles]
        smoothness = (
            sum(p.smoothness() for p in resource_profiles) / len(resource_profiles)
            if resource_profiles
            else 0.0
        )

        metrics = LevelingMetrics(
            schedule_extension_hours=extension,
            schedule_impact_percent=impact,
            tasks_delayed=len(delayed_tasks),
            total_delay_hours=sum(t.delay_hours for t in delayed_tasks),
            overallocations_resolved=max(0, before - after),
            resource_smoothness=smoothness,
            peak_utilization=max(utilizations, default=0.0),
            average_utilization=(
                sum(utilizations) / len(utilizations) if utilizations else 0.0
            ),
        )
        return cls(
            original_duration=original_duration,
            leveled_duration=leveled_duration,
            delayed_tasks=tuple(delayed_tasks),
            resource_profiles=tuple(resource_profiles),
            algorithm=algorithm,
            metrics=metrics,
            original_profiles=tuple(original_profiles),
            level_tolerance_percent=level_tolerance_percent,
        )

    @property
    def schedule_impact_days(self) -> float:
        return (self.leveled_duration.to_hours() - self.original_duration.to_hours()) / HOURS_PER_DAY

    def has_improved_resource_usage(self) -> bool:
        """True when no leveled profile is overallocated any more."""
        return not any(p.overallocation_periods() for p in self.resource_profiles)

    def most_impacted_tasks(self, limit: int = 5) -> tuple[DelayedTask, ...]:
        ranked = sorted(self.delayed_tasks, key=lambda t: (-t.delay_hours, t.task_id))
        return tuple(ranked[:limit])

    def resource_utilization_summary(self) -> tuple[ResourceUtilizationSummary, ...]:
        return tuple(
            ResourceUtilizationSummary(
                resource_id=p.constraint.resource_id,
                resource_name=p.constraint.resource_name,
                peak_allocation=p.peak_allocation(),
                average_allocation=p.average_allocation(),
                utilization_percent=p.utilization_percentage(),
                smoothness=p.smoothness(),
                is_level=p.is_level(self.level_tolerance_percent),
            )
            for p in self.resource_profiles
        )

    def effectiveness_score(self) -> float:
        m = self.metrics
        score = 100.0
        score -= min(30.0, m.schedule_impact_percent)
        if m.overallocations_resolved > 0:
            score += 40.0
        score -= min(20.0, m.resource_smoothness / 2)
        balance = max(0.0, 100.0 - abs(m.peak_utilization - m.average_utilization))
        score += balance / 100 * 10
        return max(0.0, min(100.0, score))

    def recommendation(self) -> Recommendation:
        score = self.effectiveness_score()
        impact_days = self.schedule_impact_days

        if score >= 80 and impact_days < 5:
            return Recommendation(
                RecommendationStatus.ACCEPT,
                "Leveling provides excellent resource optimization with minimal schedule impact",
                Confidence.HIGH,
            )
        if score >= 60 and impact_days < 10:
            return Recommendation(
                RecommendationStatus.REVIEW,
                "Leveling improves resource usage but extends schedule. Review trade-offs.",
                Confidence.MEDIUM,
            )
        return Recommendation(
            RecommendationStatus.REJECT,
            "Leveling causes significant schedule impact. Consider alternative approaches.",
            Confidence.LOW,
        )

    def __str__(self) -> str:
        return (
            f"{self.algorithm.value}: {len(self.delayed_tasks)} tasks delayed, "
            f"+{self.schedule_impact_days:.1f} days, "
            f"Score: {self.effectiveness_score():.0f}/100"
        )


class ResourceLevelingEngine:
    """
    Heuristic resource leveling over a CPM schedule.

    Contract:
        No I/O, no clock access.  The input analysis is never mutated; the
        leveled schedule is recomputed with a forward pass in which every
        delayed task carries a start-no-earlier-than floor.

    Guarantees:
        - A delayed task starts on a working day after the period it was
          delayed out of.
        - After each pass the profiles are rebuilt and scanned again, so a
          delay that only moves the conflict is followed by another delay.
        - Successors of delayed tasks move with them.
        - Units held by tasks are preserved when profiles are rebuilt.

    Non-goals:
        - Splitting tasks or changing their durations.
        - Optimal leveling; the heuristics are greedy.
    """

    def __init__(
        self,
        critical_tolerance_hours: float = 0.1,
        level_tolerance_percent: float = DEFAULT_LEVEL_TOLERANCE_PERCENTAGE,
        max_passes: int = DEFAULT_MAX_PASSES,
    ):
        self.critical_tolerance_hours = critical_tolerance_hours
        self.level_tolerance_percent = level_tolerance_percent
        self.max_passes = max_passes

    @traced_engine("resource_leveling", "1.0", fingerprint_fields=("tasks", "algorithm"))
    def level(
        self,
        *,
        tasks: Sequence[TaskNode],
        analysis: CriticalPathAnalysis,
        resource_profiles: Sequence[ResourceProfile],
        algorithm: LevelingAlgorithm | str,
    ) -> LevelingResult:
        """
        Level the schedule in ``analysis`` against ``resource_profiles``.

        Each pass walks the overallocation periods of the current leveled
        profiles and delays candidates past them.  Passes repeat until one
        delays nothing or ``max_passes`` is reached.

        Preconditions:
            ``analysis`` was computed for exactly ``tasks``.

        Postconditions:
            The result's leveled duration is at least the analysis'
            critical-path duration.

        Raises:
            InvalidLevelingInputError: see module failure modes.
        """
        t0 = time.monotonic()
        algorithm = self._coerce_algorithm(algorithm)
        logger.info("leveling_started", extra={
            "algorithm": algorithm.value,
            "task_count": len(tasks),
            "profile_count": len(resource_profiles),
        })

        network = TaskNetwork(tasks)
        network.validate()
        self._check_inputs(network, analysis, resource_profiles)

        scheduled = {t.task_id: t for t in analysis.tasks}
        original_starts = start_offsets_ms(analysis)
        origin = analysis.project_start.date()
        priority = self._priority_key(algorithm, scheduled, analysis)
        calculator = CriticalPathCalculator(critical_tolerance_hours=self.critical_tolerance_hours)

        floors: dict[str, int] = {}
        causes: dict[str, tuple[ResourceProfile, OverallocationPeriod]] = {}
        leveled = calculator.forward_pass(network, floors)
        starts = dict(original_starts)
        current = list(resource_profiles)

        passes = 0
        while passes < self.max_passes:
            passes += 1
            moved = self._level_pass(
                network, current, scheduled, starts, origin, priority, floors, causes,
            )
            if not moved:
                break
            leveled = calculator.forward_pass(network, floors)
            starts = {t: es for t, (es, _) in leveled.items()}
            current = [
                self._shift_profile(network, profile, original_starts, starts)
                for profile in resource_profiles
            ]
        else:
            logger.warning("leveling_pass_limit_reached", extra={
                "algorithm": algorithm.value,
                "max_passes": self.max_passes,
            })

        for profile, period in self._ordered_periods(current):
            logger.warning("leveling_period_unresolved", extra={
                "resource_id": profile.resource_id,
                "start_date": period.start_date,
                "end_date": period.end_date,
                "peak_overallocation": period.peak_overallocation,
                "affected_task_ids": list(period.affected_task_ids),
            })

        delayed_tasks = [
            self._delayed_task(
                scheduled[task_id], analysis, starts[task_id],
                original_starts[task_id], *causes[task_id],
            )
            for task_id in network.task_ids
            if task_id in floors
        ]

        leveled_finish = max(ef for _, ef in leveled.values())
        result = LevelingResult.create(
            original_duration=analysis.critical_path.total_duration,
            leveled_duration=Duration.from_milliseconds(leveled_finish),
            delayed_tasks=delayed_tasks,
            resource_profiles=current,
            algorithm=algorithm,
            original_profiles=resource_profiles,
            level_tolerance_percent=self.level_tolerance_percent,
        )

        logger.info("leveling_completed", extra={
            "algorithm": algorithm.value,
            "passes": passes,
            "tasks_delayed": result.metrics.tasks_delayed,
            "schedule_extension_hours": result.metrics.schedule_extension_hours,
            "overallocations_resolved": result.metrics.overallocations_resolved,
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return result

    def _level_pass(
        self,
        network: TaskNetwork,
        profiles: Sequence[ResourceProfile],
        scheduled: dict[str, ScheduledTask],
        starts: dict[str, int],
        origin: date,
        priority: Callable[[str], tuple[float, str]],
        floors: dict[str, int],
        causes: dict[str, tuple[ResourceProfile, OverallocationPeriod]],
    ) -> set[str]:
        """
        Delay candidates out of every period of ``profiles``.

        Updates ``floors`` and ``causes`` in place and returns the ids
        delayed in this pass.  A task is moved at most once per pass.
        """
        moved: set[str] = set()
        for profile, period in self._ordered_periods(profiles):
            shed = sum(
                self._share(network, profile, period, t)
                for t in period.affected_task_ids
                if t in moved
            )
            capacity = profile.constraint.max_units_available
            candidates = sorted(
                (
                    t for t in period.affected_task_ids
                    if t not in moved
                    and not scheduled[t].task_float.is_critical(self.critical_tolerance_hours)
                    and self._share(network, profile, period, t) <= capacity + _UNITS_EPSILON
                ),
                key=priority,
            )
            for task_id in candidates:
                if shed >= period.peak_overallocation - _UNITS_EPSILON:
                    break
                floors[task_id] = starts[task_id] + self._delay_past(period, starts[task_id], origin)
                causes[task_id] = (profile, period)
                moved.add(task_id)
                shed += self._share(network, profile, period, task_id)
        return moved

    # ------------------------------------------------------------------
    # Input handling
    # ------------------------------------------------------------------

    @staticmethod
    def _coerce_algorithm(algorithm: LevelingAlgorithm | str) -> LevelingAlgorithm:
        try:
            return LevelingAlgorithm(algorithm)
        except ValueError as e:
            logger.warning("leveling_unknown_algorithm", extra={"algorithm": str(algorithm)})
            raise InvalidLevelingInputError(f"unknown leveling algorithm {algorithm!r}") from e

    @staticmethod
    def _check_inputs(
        network: TaskNetwork,
        analysis: CriticalPathAnalysis,
        profiles: Sequence[ResourceProfile],
    ) -> None:
        analysed = {t.task_id for t in analysis.tasks}
        if analysed != set(network.task_ids):
            raise InvalidLevelingInputError(
                "critical path analysis does not cover exactly the supplied tasks"
            )
        seen: set[str] = set()
        for profile in profiles:
            if profile.resource_id in seen:
                raise InvalidLevelingInputError(
                    f"duplicate resource profile {profile.resource_id!r}"
                )
            seen.add(profile.resource_id)
            for point in profile.allocations:
                unknown = [t for t in point.task_ids if t not in network]
                if unknown:
                    raise InvalidLevelingInputError(
                        f"profile {profile.resource_id!r} references unknown tasks {unknown}"
                    )

    @staticmethod
    def _ordered_periods(
        profiles: Sequence[ResourceProfile],
    ) -> list[tuple[ResourceProfile, OverallocationPeriod]]:
        pairs = [(p, period) for p in profiles for period in p.overallocation_periods()]
        pairs.sort(key=lambda pair: (pair[1].start_date, pair[0].resource_id))
        return pairs

    @staticmethod
    def _priority_key(
        algorithm: LevelingAlgorithm,
        scheduled: dict[str, ScheduledTask],
        analysis: CriticalPathAnalysis,
    ) -> Callable[[str], tuple[float, str]]:
        """Sort key putting the task to delay first at the front."""
        if algorithm == LevelingAlgorithm.MINIMUM_TOTAL_FLOAT:
            return lambda t: (-scheduled[t].total_float_hours, t)
        if algorithm == LevelingAlgorithm.MINIMUM_LATE_FINISH:
            return lambda t: (-analysis.offset_hours(scheduled[t].latest_finish), t)
        if algorithm == LevelingAlgorithm.MINIMUM_LATE_START:
            return lambda t: (-analysis.offset_hours(scheduled[t].latest_start), t)
        if algorithm == LevelingAlgorithm.SHORTEST_DURATION:
            return lambda t: (scheduled[t].duration.to_hours(), t)
        return lambda t: (-scheduled[t].duration.to_hours(), t)

    # ------------------------------------------------------------------
    # Delay arithmetic
    # ------------------------------------------------------------------

    @staticmethod
    def _period_ms() -> int:
        return round(HOURS_PER_DAY * MILLISECONDS_PER_HOUR)

    def _day_index(self, offset_ms: int) -> int:
        return offset_ms // self._period_ms()

    def _delay_past(self, period: OverallocationPeriod, start_ms: int, origin: date) -> int:
        """Milliseconds that move a task to the working day after ``period``."""
        days_past_end = (period.end_date - origin).days - self._day_index(start_ms) + 1
        days = days_past_end if days_past_end > 0 else period.length_days
        return days * self._period_ms()

    @staticmethod
    def _share(
        network: TaskNetwork,
        profile: ResourceProfile,
        period: OverallocationPeriod,
        task_id: str,
    ) -> float:
        """Units ``task_id`` holds of the profile's resource inside ``period``."""
        declared = network.task(task_id).resource_units.get(profile.resource_id)
        if declared is not None:
            return declared
        shares = [
            _point_share(network, profile.resource_id, point, task_id)
            for point in profile.allocations
            if period.start_date <= point.date <= period.end_date and task_id in point.task_ids
        ]
        return max(shares, default=0.0)

    def _delayed_task(
        self,
        scheduled: ScheduledTask,
        analysis: CriticalPathAnalysis,
        new_start_ms: int,
        original_start_ms: int,
        profile: ResourceProfile,
        period: OverallocationPeriod,
    ) -> DelayedTask:
        return DelayedTask(
            task_id=scheduled.task_id,
            task_name=scheduled.name,
            original_start=scheduled.earliest_start,
            new_start=analysis.project_start + timedelta(milliseconds=new_start_ms),
            delay_hours=(new_start_ms - original_start_ms) / MILLISECONDS_PER_HOUR,
            reason=(
                f"Resolve {profile.constraint.resource_name} overallocation of "
                f"{period.peak_overallocation:.1f} units from {period.start_date} "
                f"to {period.end_date}"
            ),
            resource_id=profile.resource_id,
        )

    def _shift_profile(
        self,
        network: TaskNetwork,
        profile: ResourceProfile,
        original_starts: dict[str, int],
        leveled_starts: dict[str, int],
    ) -> ResourceProfile:
        """Move every task's share of each point by the days its start moved."""
        totals: dict[date, float] = {}
        holders: dict[date, list[str]] = {}

        for point in profile.allocations:
            attributed = 0.0
            for task_id in point.task_ids:
                share = _point_share(network, profile.resource_id, point, task_id)
                attributed += share
                shift = self._day_index(leveled_starts[task_id]) - self._day_index(
                    original_starts[task_id]
                )
                day = point.date + timedelta(days=shift)
                totals[day] = totals.get(day, 0.0) + share
                holders.setdefault(day, [])
                if task_id not in holders[day]:
                    holders[day].append(task_id)
            residual = point.units_allocated - attributed
            if residual > _UNITS_EPSILON:
                totals[point.date] = totals.get(point.date, 0.0) + residual
                holders.setdefault(point.date, [])

        points = [
            ResourceAllocationPoint(
                date=day,
                units_allocated=max(0.0, totals[day]),
                task_ids=tuple(holders[day]),
            )
            for day in sorted(totals)
            if totals[day] > _UNITS_EPSILON
        ]
        return ResourceProfile(constraint=profile.constraint, allocations=tuple(points))


def _point_share(
    network: TaskNetwork,
    resource_id: str,
    point: ResourceAllocationPoint,
    task_id: str,
) -> float:
    """
    Units of one point attributed to ``task_id``.

    Declared ``resource_units`` win; tasks without a declaration split the
    remainder of the point equally.
    """
    declared = {
        t: network.task(t).resource_units[resource_id]
        for t in point.task_ids
        if resource_id in network.task(t).resource_units
    }
    if task_id in declared:
        return declared[task_id]
    undeclared = [t for t in point.task_ids if t not in declared]
    remainder = max(0.0, point.units_allocated - sum(declared.values()))
    return remainder / len(undeclared) if undeclared else 0.0
