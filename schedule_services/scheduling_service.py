"""
SchedulingService -- public function surface of the scheduling engine.

Composes the pure engines (network, critical path, resources, leveling,
compression) with clock injection and EngineSettings.

Architecture: schedule_services -- imperative shell.
    Every public method returns a ScheduleOutcome.  Engines raise typed
    SchedulingError subclasses; this layer converts them into failed
    outcomes and logs them at warning.  ScheduleInvariantViolation is an
    algorithm defect, not an input problem, and always propagates.

Invariants enforced:
    - Engines never read the wall clock; ``project_start`` and
      ``calculated_at`` default to the injected Clock here.
    - Engines never read configuration; settings values are passed in as
      constructor and call parameters.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import date, datetime
from decimal import Decimal
from functools import lru_cache
from typing import TypeVar

from schedule_config import EngineSettings, get_active_config
from schedule_engines.compression import (
    CompressionResult,
    CompressionSelections,
    CrashingOption,
    FastTrackingOption,
    RiskLevel,
    ScheduleCompressionAnalyzer,
)
from schedule_engines.critical_path import CriticalPathAnalysis, CriticalPathCalculator
from schedule_engines.leveling import (
    LevelingAlgorithm,
    LevelingResult,
    ResourceLevelingEngine,
)
from schedule_engines.network import TaskNetwork, TaskNode
from schedule_engines.network import topological_sort as _topological_sort
from schedule_engines.network import validate_network as _validate_network
from schedule_engines.resources import (
    ResourceAssignment,
    ResourceConflict,
    ResourceConstraint,
    ResourceProfile,
    TaskWindow,
    windows_for_resource,
)
from schedule_engines.resources import build_resource_profile as _build_resource_profile
from schedule_engines.resources import (
    detect_resource_conflicts as _detect_resource_conflicts,
)
from schedule_kernel.domain.clock import Clock, SystemClock
from schedule_kernel.domain.outcome import ScheduleOutcome
from schedule_kernel.domain.values import Duration, DurationUnit
from schedule_kernel.exceptions import SchedulingError
from schedule_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.scheduling")

T = TypeVar("T")


class SchedulingService:
    """Service that runs scheduling analyses and returns outcomes.

    Contract:
        - Each method is a single synchronous engine call; no state is
          kept between calls.
        - Inputs are never mutated.

    Non-goals:
        - Does NOT persist schedules or results (caller decides).
        - Does NOT read project data from anywhere; callers build
          TaskNode snapshots.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
        project_id: str | None = None,
    ) -> None:
        self._clock = clock or SystemClock()
        self._project_id = project_id
        self._settings = settings or EngineSettings()
        cp = self._settings.critical_path
        self._calculator = CriticalPathCalculator(
            critical_tolerance_hours=cp.critical_tolerance_hours,
            near_critical_threshold_hours=cp.near_critical_threshold_hours,
        )
        self._leveler = ResourceLevelingEngine(
            critical_tolerance_hours=cp.critical_tolerance_hours,
            level_tolerance_percent=self._settings.leveling.level_tolerance_percent,
        )
        self._compressor = ScheduleCompressionAnalyzer(
            top_opportunities_limit=self._settings.compression.top_opportunities_limit,
        )

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    # ------------------------------------------------------------------
    # Value factories
    # ------------------------------------------------------------------

    def create_duration(self, value: float, unit: DurationUnit | str) -> ScheduleOutcome[Duration]:
        """Validated Duration; INVALID_DURATION on a bad value or unit."""
        return self._run("create_duration", lambda: Duration.create(value, unit))

    def create_crashing_option(
        self,
        *,
        task_id: str,
        task_name: str,
        normal_duration: Duration,
        crashed_duration: Duration,
        normal_cost: Decimal | str | int,
        crashed_cost: Decimal | str | int,
    ) -> ScheduleOutcome[CrashingOption]:
        return self._run(
            "create_crashing_option",
            lambda: CrashingOption.create(
                task_id=task_id,
                task_name=task_name,
                normal_duration=normal_duration,
                crashed_duration=crashed_duration,
                normal_cost=normal_cost,
                crashed_cost=crashed_cost,
            ),
        )

    def create_fast_tracking_option(
        self,
        *,
        task_id: str,
        task_name: str,
        successor_id: str,
        successor_name: str,
        original_lag: Duration,
        proposed_lag: Duration,
        risk_level: RiskLevel | str,
        rework_probability: float,
        risk_description: str = "",
    ) -> ScheduleOutcome[FastTrackingOption]:
        return self._run(
            "create_fast_tracking_option",
            lambda: FastTrackingOption.create(
                task_id=task_id,
                task_name=task_name,
                successor_id=successor_id,
                successor_name=successor_name,
                original_lag=original_lag,
                proposed_lag=proposed_lag,
                risk_level=risk_level,
                risk_description=risk_description,
                rework_probability=rework_probability,
            ),
        )

    # ------------------------------------------------------------------
    # Network
    # ------------------------------------------------------------------

    def validate_network(self, tasks: Sequence[TaskNode]) -> ScheduleOutcome[None]:
        """Check the network for duplicates, self loops, unknown ids and cycles."""
        def run() -> None:
            _validate_network(tasks=tasks)

        return self._run("validate_network", run)

    def topological_sort(self, tasks: Sequence[TaskNode]) -> ScheduleOutcome[tuple[str, ...]]:
        return self._run("topological_sort", lambda: _topological_sort(tasks=tasks))

    def would_create_cycle(
        self,
        tasks: Sequence[TaskNode],
        predecessor_id: str,
        successor_id: str,
    ) -> ScheduleOutcome[bool]:
        """Whether adding ``predecessor_id -> successor_id`` would close a cycle."""
        def run() -> bool:
            network = TaskNetwork(tasks)
            return network.would_create_cycle(predecessor_id, successor_id)

        return self._run("would_create_cycle", run)

    # ------------------------------------------------------------------
    # Critical path
    # ------------------------------------------------------------------

    def calculate_critical_path(
        self,
        tasks: Sequence[TaskNode],
        project_start: datetime | None = None,
        calculated_at: datetime | None = None,
    ) -> ScheduleOutcome[CriticalPathAnalysis]:
        """
        CPM analysis of ``tasks``.

        Both timestamps default to the injected clock's ``now()``.
        """
        now = self._clock.now()
        return self._run(
            "calculate_critical_path",
            lambda: self._calculator.calculate(
                tasks=tasks,
                project_start=project_start or now,
                calculated_at=calculated_at or now,
            ),
        )

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    def build_resource_profile(
        self,
        constraint: ResourceConstraint,
        windows: Sequence[TaskWindow],
        origin: date,
    ) -> ScheduleOutcome[ResourceProfile]:
        return self._run(
            "build_resource_profile",
            lambda: _build_resource_profile(
                constraint=constraint,
                windows=windows,
                origin=origin,
            ),
        )

    def build_resource_profiles(
        self,
        tasks: Sequence[TaskNode],
        analysis: CriticalPathAnalysis,
        constraints: Sequence[ResourceConstraint],
    ) -> ScheduleOutcome[tuple[ResourceProfile, ...]]:
        """One profile per constraint, from the tasks' declared resource units."""
        def run() -> tuple[ResourceProfile, ...]:
            origin = analysis.project_start.date()
            return tuple(
                _build_resource_profile(
                    constraint=constraint,
                    windows=windows_for_resource(analysis, tasks, constraint.resource_id),
                    origin=origin,
                )
                for constraint in constraints
            )

        return self._run("build_resource_profiles", run)

    def detect_resource_conflicts(
        self,
        resource_id: str,
        assignments: Sequence[ResourceAssignment],
        window_start: datetime,
        window_end: datetime,
        capacity_percent: float = 100.0,
    ) -> ScheduleOutcome[tuple[ResourceConflict, ...]]:
        return self._run(
            "detect_resource_conflicts",
            lambda: _detect_resource_conflicts(
                resource_id=resource_id,
                assignments=assignments,
                window_start=window_start,
                window_end=window_end,
                capacity_percent=capacity_percent,
            ),
        )

    def level_resources(
        self,
        tasks: Sequence[TaskNode],
        critical_path_result: CriticalPathAnalysis,
        resource_profiles: Sequence[ResourceProfile],
        algorithm: LevelingAlgorithm | str | None = None,
    ) -> ScheduleOutcome[LevelingResult]:
        """Level ``critical_path_result``; algorithm defaults to the configured one."""
        return self._run(
            "level_resources",
            lambda: self._leveler.level(
                tasks=tasks,
                analysis=critical_path_result,
                resource_profiles=resource_profiles,
                algorithm=algorithm or self._settings.leveling.default_algorithm,
            ),
        )

    # ------------------------------------------------------------------
    # Compression
    # ------------------------------------------------------------------

    def analyze_compression(
        self,
        crashing_options: Sequence[CrashingOption],
        fast_tracking_options: Sequence[FastTrackingOption],
        selections: CompressionSelections,
    ) -> ScheduleOutcome[CompressionResult]:
        return self._run(
            "analyze_compression",
            lambda: self._compressor.analyze(
                crashing_options=crashing_options,
                fast_tracking_options=fast_tracking_options,
                selections=selections,
            ),
        )

    def plan_compression(
        self,
        crashing_options: Sequence[CrashingOption],
        fast_tracking_options: Sequence[FastTrackingOption],
        original_duration: Duration,
        target_reduction_days: float,
        max_cost_increase: Decimal | None = None,
        max_risk_score: float | None = None,
    ) -> ScheduleOutcome[CompressionResult]:
        """Greedy selection of options toward ``target_reduction_days``."""
        return self._run(
            "plan_compression",
            lambda: self._compressor.plan(
                crashing_options=crashing_options,
                fast_tracking_options=fast_tracking_options,
                original_duration=original_duration,
                target_reduction_days=target_reduction_days,
                max_cost_increase=max_cost_increase,
                max_risk_score=max_risk_score,
            ),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _run(self, operation: str, call: Callable[[], T]) -> ScheduleOutcome[T]:
        """Run ``call`` with the operation and project bound to every log record."""
        with LogContext.bind(operation=operation, project_id=self._project_id):
            try:
                value = call()
            except SchedulingError as e:
                logger.warning("scheduling_operation_failed", extra={
                    "error_code": e.code,
                    "error_message": str(e),
                })
                return ScheduleOutcome.fail(e)
        return ScheduleOutcome.ok(value)


# ---------------------------------------------------------------------------
# Module-level surface
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def _default_service() -> SchedulingService:
    return SchedulingService(settings=get_active_config())


def validate_network(tasks: Sequence[TaskNode]) -> ScheduleOutcome[None]:
    return _default_service().validate_network(tasks)


def topological_sort(tasks: Sequence[TaskNode]) -> ScheduleOutcome[tuple[str, ...]]:
    return _default_service().topological_sort(tasks)


def would_create_cycle(
    tasks: Sequence[TaskNode], predecessor_id: str, successor_id: str
) -> ScheduleOutcome[bool]:
    return _default_service().would_create_cycle(tasks, predecessor_id, successor_id)


def calculate_critical_path(
    tasks: Sequence[TaskNode],
    project_start: datetime | None = None,
    calculated_at: datetime | None = None,
) -> ScheduleOutcome[CriticalPathAnalysis]:
    return _default_service().calculate_critical_path(tasks, project_start, calculated_at)


def build_resource_profile(
    constraint: ResourceConstraint, windows: Sequence[TaskWindow], origin: date
) -> ScheduleOutcome[ResourceProfile]:
    return _default_service().build_resource_profile(constraint, windows, origin)


def build_resource_profiles(
    tasks: Sequence[TaskNode],
    analysis: CriticalPathAnalysis,
    constraints: Sequence[ResourceConstraint],
) -> ScheduleOutcome[tuple[ResourceProfile, ...]]:
    return _default_service().build_resource_profiles(tasks, analysis, constraints)


def detect_resource_conflicts(
    resource_id: str,
    assignments: Sequence[ResourceAssignment],
    window_start: datetime,
    window_end: datetime,
    capacity_percent: float = 100.0,
) -> ScheduleOutcome[tuple[ResourceConflict, ...]]:
    return _default_service().detect_resource_conflicts(
        resource_id, assignments, window_start, window_end, capacity_percent
    )


def level_resources(
    tasks: Sequence[TaskNode],
    critical_path_result: CriticalPathAnalysis,
    resource_profiles: Sequence[ResourceProfile],
    algorithm: LevelingAlgorithm | str | None = None,
) -> ScheduleOutcome[LevelingResult]:
    return _default_service().level_resources(
        tasks, critical_path_result, resource_profiles, algorithm
    )


def analyze_compression(
    crashing_options: Sequence[CrashingOption],
    fast_tracking_options: Sequence[FastTrackingOption],
    selections: CompressionSelections,
) -> ScheduleOutcome[CompressionResult]:
    return _default_service().analyze_compression(
        crashing_options, fast_tracking_options, selections
    )


def plan_compression(
    crashing_options: Sequence[CrashingOption],
    fast_tracking_options: Sequence[FastTrackingOption],
    original_duration: Duration,
    target_reduction_days: float,
    max_cost_increase: Decimal | None = None,
    max_risk_score: float | None = None,
) -> ScheduleOutcome[CompressionResult]:
    return _default_service().plan_compression(
        crashing_options, fast_tracking_options, original_duration,
        target_reduction_days, max_cost_increase, max_risk_score,
    )


def create_duration(value: float, unit: DurationUnit | str) -> ScheduleOutcome[Duration]:
    return _default_service().create_duration(value, unit)


def create_crashing_option(
    *,
    task_id: str,
    task_name: str,
    normal_duration: Duration,
    crashed_duration: Duration,
    normal_cost: Decimal | str | int,
    crashed_cost: Decimal | str | int,
) -> ScheduleOutcome[CrashingOption]:
    return _default_service().create_crashing_option(
        task_id=task_id, task_name=task_name,
        normal_duration=normal_duration, crashed_duration=crashed_duration,
        normal_cost=normal_cost, crashed_cost=crashed_cost,
    )


def create_fast_tracking_option(
    *,
    task_id: str,
    task_name: str,
    successor_id: str,
    successor_name: str,
    original_lag: Duration,
    proposed_lag: Duration,
    risk_level: RiskLevel | str,
    rework_probability: float,
    risk_description: str = "",
) -> ScheduleOutcome[FastTrackingOption]:
    return _default_service().create_fast_tracking_option(
        task_id=task_id, task_name=task_name,
        successor_id=successor_id, successor_name=successor_name,
        original_lag=original_lag, proposed_lag=proposed_lag,
        risk_level=risk_level, rework_probability=rework_probability,
        risk_description=risk_description,
    )
