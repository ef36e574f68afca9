"""
Tests for the Critical Path Method calculator.

Covers:
- Chain and diamond schedules (dates, float, status)
- Error handling (empty network, malformed networks, no critical path)
- Determinism and idempotency
- Logging and tracing
"""

from datetime import timedelta

import pytest

from schedule_engines.critical_path import CriticalPath, CriticalPathCalculator
from schedule_kernel.domain.values import Duration, FloatStatus
from schedule_kernel.exceptions import (
    CircularDependencyError,
    EmptyNetworkError,
    NoCriticalPathFoundError,
    UnknownPredecessorError,
)


class TestChainSchedule:
    """A -> B -> C, one day each."""

    def setup_method(self):
        self.calculator = CriticalPathCalculator()

    def test_total_duration_is_24_hours(self, chain_tasks, project_start):
        analysis = self.calculator.calculate(
            tasks=chain_tasks, project_start=project_start, calculated_at=project_start
        )
        assert analysis.critical_path.total_duration.to_hours() == 24
        assert analysis.project_finish == project_start + timedelta(hours=24)

    def test_all_tasks_critical_with_zero_float(self, chain_tasks, project_start):
        analysis = self.calculator.calculate(
            tasks=chain_tasks, project_start=project_start, calculated_at=project_start
        )
        assert analysis.critical_path.task_ids == ("A", "B", "C")
        for scheduled in analysis.tasks:
            assert scheduled.is_critical
            assert scheduled.task_float.total_float.is_zero
            assert scheduled.task_float.free_float.is_zero

    def test_dates(self, chain_tasks, project_start):
        analysis = self.calculator.calculate(
            tasks=chain_tasks, project_start=project_start, calculated_at=project_start
        )
        b = analysis.task("B")
        assert b.earliest_start == project_start + timedelta(hours=8)
        assert b.earliest_finish == project_start + timedelta(hours=16)
        assert b.latest_start == b.earliest_start
        assert b.latest_finish == b.earliest_finish

    def test_calculated_at_is_caller_supplied(self, chain_tasks, project_start, deterministic_clock):
        stamp = deterministic_clock.tick()
        analysis = self.calculator.calculate(
            tasks=chain_tasks, project_start=project_start, calculated_at=stamp
        )
        assert analysis.critical_path.calculated_at == stamp


class TestDiamondSchedule:
    """A -> (B: 2 days, C: 1 day) -> D."""

    def setup_method(self):
        self.calculator = CriticalPathCalculator()

    def test_noncritical_branch_has_eight_hours_float(self, diamond_tasks, project_start):
        analysis = self.calculator.calculate(
            tasks=diamond_tasks, project_start=project_start, calculated_at=project_start
        )
        c = analysis.task("C")
        assert c.task_float.total_float.to_hours() == 8
        assert c.task_float.free_float.to_hours() == 8
        assert c.status == FloatStatus.NEAR_CRITICAL
        assert analysis.near_critical_tasks() == (c,)

    def test_critical_path_excludes_float_branch(self, diamond_tasks, project_start):
        analysis = self.calculator.calculate(
            tasks=diamond_tasks, project_start=project_start, calculated_at=project_start
        )
        assert analysis.critical_path.task_ids == ("A", "B", "D")
        assert analysis.critical_path.total_duration == Duration.from_days(4)
        assert not analysis.critical_path.contains_task("C")
        assert analysis.total_float_by_task() == {"A": 0.0, "B": 0.0, "C": 8.0, "D": 0.0}

    def test_free_float_measured_to_successor(self, make_task, project_start):
        tasks = [make_task("A", 3), make_task("C", 1), make_task("D", 1, "A", "C")]
        analysis = self.calculator.calculate(
            tasks=tasks, project_start=project_start, calculated_at=project_start
        )
        c = analysis.task("C")
        assert c.task_float.total_float.to_hours() == 16
        assert c.task_float.free_float.to_hours() == 16
        assert c.status == FloatStatus.NORMAL

    def test_parallel_sinks_share_project_finish(self, make_task, project_start):
        tasks = [make_task("A", 2), make_task("B", 1)]
        analysis = self.calculator.calculate(
            tasks=tasks, project_start=project_start, calculated_at=project_start
        )
        assert analysis.task("B").latest_finish == project_start + timedelta(hours=16)
        assert analysis.critical_path.task_ids == ("A",)

    def test_configurable_tolerance(self, diamond_tasks, project_start):
        calculator = CriticalPathCalculator(critical_tolerance_hours=8.0)
        analysis = calculator.calculate(
            tasks=diamond_tasks, project_start=project_start, calculated_at=project_start
        )
        assert analysis.critical_path.task_ids == ("A", "B", "C", "D")


class TestCriticalPathErrors:
    """Failure modes."""

    def setup_method(self):
        self.calculator = CriticalPathCalculator()

    def test_empty_network(self, project_start):
        with pytest.raises(EmptyNetworkError) as exc_info:
            self.calculator.calculate(tasks=[], project_start=project_start, calculated_at=project_start)
        assert exc_info.value.code == "EMPTY_NETWORK"

    def test_cycle_surfaces_unchanged(self, make_task, project_start):
        tasks = [make_task("A", 1, "B"), make_task("B", 1, "A")]
        with pytest.raises(CircularDependencyError):
            self.calculator.calculate(tasks=tasks, project_start=project_start, calculated_at=project_start)

    def test_unknown_predecessor_surfaces_unchanged(self, make_task, project_start):
        with pytest.raises(UnknownPredecessorError):
            self.calculator.calculate(
                tasks=[make_task("A", 1, "Z")], project_start=project_start, calculated_at=project_start
            )

    def test_negative_tolerance_finds_no_critical_path(self, chain_tasks, project_start):
        calculator = CriticalPathCalculator(critical_tolerance_hours=-1.0)
        with pytest.raises(NoCriticalPathFoundError) as exc_info:
            calculator.calculate(tasks=chain_tasks, project_start=project_start, calculated_at=project_start)
        assert exc_info.value.task_count == 3

    def test_critical_path_must_not_be_empty(self, project_start):
        with pytest.raises(ValueError):
            CriticalPath(task_ids=(), total_duration=Duration.zero(), calculated_at=project_start)


class TestCriticalPathDeterminism:
    """Same input, same output."""

    def test_idempotent(self, diamond_tasks, project_start):
        calculator = CriticalPathCalculator()
        first = calculator.calculate(tasks=diamond_tasks, project_start=project_start, calculated_at=project_start)
        second = calculator.calculate(tasks=diamond_tasks, project_start=project_start, calculated_at=project_start)
        assert first == second

    def test_zero_duration_milestone(self, make_task, project_start):
        tasks = [make_task("A", 1), make_task("M", 0, "A"), make_task("B", 1, "M")]
        analysis = CriticalPathCalculator().calculate(
            tasks=tasks, project_start=project_start, calculated_at=project_start
        )
        assert analysis.critical_path.task_ids == ("A", "M", "B")
        assert analysis.task("M").earliest_start == analysis.task("M").earliest_finish

    def test_high_fan_in(self, make_task, project_start):
        feeders = [make_task(f"F{i}", 1 + i % 3) for i in range(50)]
        sink = make_task("S", 1, *(f.task_id for f in feeders))
        analysis = CriticalPathCalculator().calculate(
            tasks=[*feeders, sink], project_start=project_start, calculated_at=project_start
        )
        assert analysis.critical_path.total_duration.to_days() == 4
        assert analysis.task("S").earliest_start == project_start + timedelta(hours=24)


class TestCriticalPathLogging:
    """Structured log events and traces."""

    def test_started_and_calculated_events(self, chain_tasks, project_start, captured_logs):
        CriticalPathCalculator().calculate(
            tasks=chain_tasks, project_start=project_start, calculated_at=project_start
        )
        messages = [r["message"] for r in captured_logs()]
        assert "critical_path_started" in messages
        assert "critical_path_calculated" in messages

    def test_engine_trace_emitted(self, chain_tasks, project_start, captured_logs):
        CriticalPathCalculator().calculate(
            tasks=chain_tasks, project_start=project_start, calculated_at=project_start
        )
        traces = [r for r in captured_logs() if r["message"] == "SCHEDULE_ENGINE_TRACE"]
        cp = [t for t in traces if t["engine_name"] == "critical_path"]
        assert len(cp) == 1
        assert cp[0]["status"] == "ok"
        assert len(cp[0]["input_fingerprint"]) == 16
