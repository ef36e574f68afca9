"""
schedule_engines.critical_path -- Critical Path Method forward/backward passes.

Responsibility:
    Compute earliest and latest start/finish for every task of a validated
    network, derive total and free float, classify each task (critical,
    near-critical, normal) and extract the critical path.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Builds on schedule_engines.network; consumed by leveling and by
    schedule_services.

Invariants enforced:
    - ScheduleInvariant.NON_NEGATIVE_FLOAT: a negative LS - ES raises
      ScheduleInvariantViolation, it is never clamped.
    - ScheduleInvariant.COMPLETE_PASS: both passes date every task.
    - Purity: ``project_start`` and ``calculated_at`` are parameters; the
      engine never reads a clock.
    - Arithmetic is integer milliseconds offset from ``project_start``, so
      results do not depend on float accumulation order.

Failure modes:
    - EmptyNetworkError for zero tasks.
    - Network validation errors surface unchanged.
    - NoCriticalPathFoundError when no task lies within the tolerance.

Usage:
    calculator = CriticalPathCalculator()
    analysis = calculator.calculate(
        tasks=tasks,
        project_start=datetime(2024, 1, 1, tzinfo=timezone.utc),
        calculated_at=clock.now(),
    )
    analysis.critical_path.task_ids  # ("A", "B", "C")
"""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from schedule_engines.network import TaskNetwork, TaskNode
from schedule_engines.tracer import traced_engine
from schedule_kernel.domain.values import Duration, Float, FloatStatus
from schedule_kernel.exceptions import (
    EmptyNetworkError,
    NoCriticalPathFoundError,
    ScheduleInvariantViolation,
)
from schedule_kernel.invariants import ScheduleInvariant
from schedule_kernel.logging_config import get_logger

logger = get_logger("engines.critical_path")

DEFAULT_CRITICAL_TOLERANCE_HOURS = 0.1
DEFAULT_NEAR_CRITICAL_THRESHOLD_HOURS = 8.0

# task_id -> (start, finish) in milliseconds from project start
PassDates = dict[str, tuple[int, int]]


@dataclass(frozen=True)
class CriticalPath:
    """
    Ordered chain of zero-float tasks.

    Contract:
        ``task_ids`` is non-empty and ordered by earliest start;
        ``total_duration`` spans from the earliest start to the latest
        finish of the analysed network.
    """

    task_ids: tuple[str, ...]
    total_duration: Duration
    calculated_at: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "task_ids", tuple(self.task_ids))
        if not self.task_ids:
            raise ValueError("Critical path must contain at least one task")

    def contains_task(self, task_id: str) -> bool:
        return task_id in self.task_ids

    @property
    def length(self) -> int:
        return len(self.task_ids)

    def __str__(self) -> str:
        return f"Critical Path: {' → '.join(self.task_ids)} ({self.total_duration})"


@dataclass(frozen=True)
class ScheduledTask:
    """CPM dates, float and status of one task."""

    task_id: str
    name: str
    duration: Duration
    earliest_start: datetime
    earliest_finish: datetime
    latest_start: datetime
    latest_finish: datetime
    task_float: Float
    status: FloatStatus

    @property
    def is_critical(self) -> bool:
        return self.status == FloatStatus.CRITICAL

    @property
    def total_float_hours(self) -> float:
        return self.task_float.total_float.to_hours()


@dataclass(frozen=True)
class CriticalPathAnalysis:
    """
    Full CPM result for one network snapshot.

    Contract:
        ``tasks`` follows the caller's insertion order.  Leveling consumes
        this object as the schedule it perturbs.
    """

    critical_path: CriticalPath
    tasks: tuple[ScheduledTask, ...]
    project_start: datetime
    project_finish: datetime

    @property
    def project_duration(self) -> Duration:
        return self.critical_path.total_duration

    def task(self, task_id: str) -> ScheduledTask:
        for scheduled in self.tasks:
            if scheduled.task_id == task_id:
                return scheduled
        raise KeyError(task_id)

    def critical_tasks(self) -> tuple[ScheduledTask, ...]:
        return tuple(t for t in self.tasks if t.status == FloatStatus.CRITICAL)

    def near_critical_tasks(self) -> tuple[ScheduledTask, ...]:
        return tuple(t for t in self.tasks if t.status == FloatStatus.NEAR_CRITICAL)

    def total_float_by_task(self) -> dict[str, float]:
        """Total float hours keyed by task id."""
        return {t.task_id: t.total_float_hours for t in self.tasks}

    def offset_hours(self, moment: datetime) -> float:
        """Hours between the project start and ``moment``."""
        return (moment - self.project_start) / timedelta(hours=1)


class CriticalPathCalculator:
    """
    Pure Critical Path Method calculator.

    Contract:
        No I/O, no clock access, fully deterministic.  One working hour of
        duration is one hour of offset from ``project_start``.

    Guarantees:
        - Forward pass: sources start at offset 0 (or their start floor);
          a task is dated only once every predecessor is dated, and it is
          re-queued whenever its earliest start grows.
        - Backward pass: sinks finish at the project finish; a task's
          latest finish is the minimum latest start of its successors.
        - Free float is floored at zero and capped at total float.

    Non-goals:
        - Lags and non finish-to-start dependency types.
        - Working-calendar gaps (weekends, holidays).
    """

    def __init__(
        self,
        critical_tolerance_hours: float = DEFAULT_CRITICAL_TOLERANCE_HOURS,
        near_critical_threshold_hours: float = DEFAULT_NEAR_CRITICAL_THRESHOLD_HOURS,
    ):
        self.critical_tolerance_hours = critical_tolerance_hours
        self.near_critical_threshold_hours = near_critical_threshold_hours

    @traced_engine("critical_path", "1.0", fingerprint_fields=("tasks", "project_start"))
    def calculate(
        self,
        *,
        tasks: Sequence[TaskNode],
        project_start: datetime,
        calculated_at: datetime,
    ) -> CriticalPathAnalysis:
        """
        Run both passes and extract the critical path.

        Preconditions:
            ``project_start`` and ``calculated_at`` are supplied by the
            caller (typically from an injected Clock).

        Postconditions:
            Every task has ES <= LS, EF <= LF and a Float whose free float
            does not exceed its total float.

        Raises:
            EmptyNetworkError: ``tasks`` is empty.
            DuplicateTaskError, SelfDependencyError,
            UnknownPredecessorError, CircularDependencyError: the network
                is malformed.
            NoCriticalPathFoundError: no task is within the tolerance.
            ScheduleInvariantViolation: a pass produced negative float.
        """
        t0 = time.monotonic()
        logger.info("critical_path_started", extra={
            "task_count": len(tasks),
            "project_start": project_start,
        })

        if not tasks:
            logger.warning("critical_path_empty_network")
            raise EmptyNetworkError()

        network = TaskNetwork(tasks)
        network.validate()

        earliest = self.forward_pass(network)
        latest = self.backward_pass(network, earliest)
        scheduled = self._schedule_tasks(network, earliest, latest, project_start)

        critical = sorted(
            (s for s in scheduled if s.task_float.is_critical(self.critical_tolerance_hours)),
            key=lambda s: (s.earliest_start, network.position(s.task_id)),
        )
        if not critical:
            logger.error("critical_path_not_found", extra={
                "task_count": len(tasks),
                "tolerance_hours": self.critical_tolerance_hours,
            })
            raise NoCriticalPathFoundError(len(tasks), self.critical_tolerance_hours)

        start_ms = min(es for es, _ in earliest.values())
        finish_ms = max(ef for _, ef in earliest.values())
        critical_path = CriticalPath(
            task_ids=tuple(s.task_id for s in critical),
            total_duration=Duration.from_milliseconds(finish_ms - start_ms),
            calculated_at=calculated_at,
        )

        logger.info("critical_path_calculated", extra={
            "task_count": len(tasks),
            "critical_task_count": critical_path.length,
            "total_duration_hours": critical_path.total_duration.to_hours(),
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })

        return CriticalPathAnalysis(
            critical_path=critical_path,
            tasks=tuple(scheduled),
            project_start=project_start,
            project_finish=project_start + timedelta(milliseconds=finish_ms),
        )

    def forward_pass(
        self,
        network: TaskNetwork,
        start_floors: Mapping[str, int] | None = None,
    ) -> PassDates:
        """
        Earliest start/finish per task, in milliseconds from project start.

        Args:
            network: A validated network.
            start_floors: Optional start-no-earlier-than offsets per task
                (milliseconds); leveling uses these to push tasks later.

        Raises:
            ScheduleInvariantViolation: a task was never dated.
        """
        floors = start_floors or {}
        durations = {t: network.task(t).duration.to_milliseconds() for t in network.task_ids}
        dates: PassDates = {}
        queue: deque[str] = deque()

        for task_id in network.sources():
            start = max(0, floors.get(task_id, 0))
            dates[task_id] = (start, start + durations[task_id])
            queue.append(task_id)

        while queue:
            current = queue.popleft()
            for succ in network.successors(current):
                preds = network.predecessors(succ)
                if any(p not in dates for p in preds):
                    continue
                start = max(dates[p][1] for p in preds)
                start = max(start, floors.get(succ, 0))
                if succ not in dates or start > dates[succ][0]:
                    dates[succ] = (start, start + durations[succ])
                    queue.append(succ)

        self._require_complete(network, dates, "forward")
        return dates

    def backward_pass(self, network: TaskNetwork, earliest: PassDates) -> PassDates:
        """
        Latest start/finish per task, anchored at the project finish.

        Raises:
            ScheduleInvariantViolation: a task was never dated.
        """
        project_finish = max(ef for _, ef in earliest.values())
        durations = {t: network.task(t).duration.to_milliseconds() for t in network.task_ids}
        dates: PassDates = {}
        queue: deque[str] = deque()

        for task_id in network.sinks():
            dates[task_id] = (project_finish - durations[task_id], project_finish)
            queue.append(task_id)

        while queue:
            current = queue.popleft()
            for pred in network.predecessors(current):
                succs = network.successors(pred)
                if any(s not in dates for s in succs):
                    continue
                finish = min(dates[s][0] for s in succs)
                if pred not in dates or finish < dates[pred][1]:
                    dates[pred] = (finish - durations[pred], finish)
                    queue.append(pred)

        self._require_complete(network, dates, "backward")
        return dates

    def _schedule_tasks(
        self,
        network: TaskNetwork,
        earliest: PassDates,
        latest: PassDates,
        project_start: datetime,
    ) -> list[ScheduledTask]:
        project_finish = max(ef for _, ef in earliest.values())

        def at(offset_ms: int) -> datetime:
            return project_start + timedelta(milliseconds=offset_ms)

        scheduled: list[ScheduledTask] = []
        for task_id in network.task_ids:
            node = network.task(task_id)
            es, ef = earliest[task_id]
            ls, lf = latest[task_id]

            total = Float.calculate_total_float(at(ls), at(es))
            succs = network.successors(task_id)
            next_start = min(earliest[s][0] for s in succs) if succs else project_finish
            free = Float.calculate_free_float(at(ef), at(next_start))
            if free.to_hours() > total.to_hours():
                free = total
            task_float = Float.create(total, free)

            scheduled.append(ScheduledTask(
                task_id=task_id,
                name=node.display_name,
                duration=node.duration,
                earliest_start=at(es),
                earliest_finish=at(ef),
                latest_start=at(ls),
                latest_finish=at(lf),
                task_float=task_float,
                status=task_float.status(
                    self.critical_tolerance_hours, self.near_critical_threshold_hours
                ),
            ))
        return scheduled

    @staticmethod
    def _require_complete(network: TaskNetwork, dates: PassDates, pass_name: str) -> None:
        missing = [t for t in network.task_ids if t not in dates]
        if missing:
            raise ScheduleInvariantViolation(
                ScheduleInvariant.COMPLETE_PASS,
                f"{pass_name} pass left tasks undated: {missing}",
            )


def start_offsets_ms(analysis: CriticalPathAnalysis) -> dict[str, int]:
    """Earliest start of every task as milliseconds from the project start."""
    return {
        t.task_id: round((t.earliest_start - analysis.project_start) / timedelta(milliseconds=1))
        for t in analysis.tasks
    }
