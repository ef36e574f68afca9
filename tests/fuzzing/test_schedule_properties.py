"""
Hypothesis-based property tests for the scheduling engines.

Property-based testing generates random acyclic task networks and
checks that the structural guarantees hold for all of them.

Properties checked:
- Duration: hour conversions round-trip within millisecond precision
- Topological order: every predecessor precedes its successors
- Cycle detection: adding an edge back along an existing path is a cycle
- CPM: forward-pass consistency, non-negative float, finish equals the
  latest early finish, results independent of repeated runs
- Leveling: never shortens the schedule and never delays critical tasks
"""

from datetime import UTC, datetime

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from hypothesis.strategies import composite

from schedule_engines.critical_path import CriticalPathCalculator
from schedule_engines.leveling import LevelingAlgorithm, ResourceLevelingEngine
from schedule_engines.network import TaskNetwork, TaskNode, topological_sort
from schedule_engines.resources import (
    ResourceConstraint,
    ResourceType,
    build_resource_profile,
    windows_for_resource,
)
from schedule_kernel.domain.values import EQUALITY_TOLERANCE_HOURS, Duration, DurationUnit

START = datetime(2024, 3, 4, 8, 0, tzinfo=UTC)

CREW = ResourceConstraint.create(
    resource_id="crew",
    resource_name="Crew",
    resource_type=ResourceType.LABOR,
    max_units_available=3,
)

FUZZ_SETTINGS = settings(
    max_examples=60,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)


@composite
def task_networks(draw, max_tasks: int = 10, with_crew: bool = False):
    """Random DAG: task i may only depend on tasks created before it."""
    count = draw(st.integers(min_value=1, max_value=max_tasks))
    tasks = []
    for i in range(count):
        ids = [f"T{j}" for j in range(i)]
        preds = draw(st.sets(st.sampled_from(ids), max_size=3)) if ids else set()
        units = {"crew": draw(st.integers(min_value=0, max_value=3))} if with_crew else {}
        tasks.append(TaskNode(
            task_id=f"T{i}",
            duration=Duration.from_hours(draw(st.integers(min_value=1, max_value=40))),
            predecessor_ids=frozenset(preds),
            resource_units={k: v for k, v in units.items() if v},
        ))
    return draw(st.permutations(tasks))


def _analyze(tasks):
    return CriticalPathCalculator().calculate(tasks=tasks, project_start=START, calculated_at=START)


class TestDurationProperties:
    """Unit conversions."""

    @FUZZ_SETTINGS
    @given(hours=st.floats(min_value=0, max_value=100_000, allow_nan=False))
    def test_hours_round_trip(self, hours):
        assert abs(Duration.from_hours(hours).to_hours() - hours) < 1e-3

    @FUZZ_SETTINGS
    @given(
        value=st.floats(min_value=0, max_value=10_000, allow_nan=False),
        unit=st.sampled_from(list(DurationUnit)),
        target=st.sampled_from(list(DurationUnit)),
    )
    def test_convert_round_trip(self, value, unit, target):
        d = Duration.create(value, unit)
        assert d.convert_to(target).convert_to(d.unit) == d

    @FUZZ_SETTINGS
    @given(a=st.integers(0, 10_000), b=st.integers(0, 10_000))
    def test_addition_commutes(self, a, b):
        x, y = Duration.from_hours(a), Duration.from_hours(b)
        assert x + y == y + x
        assert abs((x + y).to_hours() - (a + b)) < 1e-6


class TestNetworkProperties:
    """Ordering and cycle detection on random DAGs."""

    @FUZZ_SETTINGS
    @given(tasks=task_networks())
    def test_topological_order_respects_edges(self, tasks):
        order = topological_sort(tasks=tasks)
        position = {task_id: i for i, task_id in enumerate(order)}
        assert len(order) == len(tasks)
        for task in tasks:
            for pred in task.predecessor_ids:
                assert position[pred] < position[task.task_id]

    @FUZZ_SETTINGS
    @given(tasks=task_networks())
    def test_back_edge_along_path_is_cycle(self, tasks):
        network = TaskNetwork(tasks)
        for task in tasks:
            for pred in task.predecessor_ids:
                assert network.would_create_cycle(task.task_id, pred)


class TestCriticalPathProperties:
    """CPM invariants on random DAGs."""

    @FUZZ_SETTINGS
    @given(tasks=task_networks())
    def test_forward_pass_consistency(self, tasks):
        analysis = _analyze(tasks)
        by_id = {t.task_id: t for t in analysis.tasks}
        for task in tasks:
            scheduled = by_id[task.task_id]
            for pred in task.predecessor_ids:
                assert scheduled.earliest_start >= by_id[pred].earliest_finish
            assert scheduled.total_float_hours >= -EQUALITY_TOLERANCE_HOURS

    @FUZZ_SETTINGS
    @given(tasks=task_networks())
    def test_finish_is_latest_early_finish(self, tasks):
        analysis = _analyze(tasks)
        assert analysis.project_finish == max(t.earliest_finish for t in analysis.tasks)
        assert analysis.critical_path.task_ids
        assert all(analysis.task(t).is_critical for t in analysis.critical_path.task_ids)

    @FUZZ_SETTINGS
    @given(tasks=task_networks())
    def test_idempotent(self, tasks):
        first = _analyze(tasks)
        second = _analyze(tasks)
        assert first.critical_path == second.critical_path
        assert first.tasks == second.tasks

    @FUZZ_SETTINGS
    @given(tasks=task_networks())
    def test_repeatable(self, tasks):
        first = _analyze(tasks)
        second = _analyze(list(reversed(tasks)))
        assert first.total_float_by_task() == second.total_float_by_task()
        assert first.project_finish == second.project_finish


class TestLevelingProperties:
    """Leveling guarantees on random resource-loaded DAGs."""

    @FUZZ_SETTINGS
    @given(
        tasks=task_networks(max_tasks=8, with_crew=True),
        algorithm=st.sampled_from(list(LevelingAlgorithm)),
    )
    def test_never_shortens_and_never_delays_critical(self, tasks, algorithm):
        analysis = _analyze(tasks)
        profile = build_resource_profile(
            constraint=CREW,
            windows=windows_for_resource(analysis, tasks, "crew"),
            origin=START.date(),
        )
        result = ResourceLevelingEngine().level(
            tasks=tasks, analysis=analysis, resource_profiles=[profile], algorithm=algorithm,
        )
        assert result.leveled_duration >= result.original_duration
        critical = {t.task_id for t in analysis.critical_tasks()}
        assert not critical & {d.task_id for d in result.delayed_tasks}
        assert all(d.delay_hours > 0 for d in result.delayed_tasks)
