"""
Pytest fixtures for the scheduling engine test suite.

Provides:
- Structured logging at DEBUG for every test session
- Captured log records as parsed JSON dicts
- A deterministic clock and fixed project start
- Sample task networks (chain, diamond) used across engine tests
"""

import json
import logging
from datetime import UTC, datetime
from io import StringIO

import pytest

from schedule_engines.network import TaskNode
from schedule_kernel.domain.clock import DeterministicClock
from schedule_kernel.domain.values import Duration
from schedule_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)

PROJECT_START = datetime(2024, 3, 4, 8, 0, tzinfo=UTC)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture schedule_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            CriticalPathCalculator().calculate(...)
            logs = captured_logs()
            assert any(r["message"] == "critical_path_calculated" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("schedule_kernel")
    previous_level = root.level
    root.addHandler(handler)
    root.setLevel(logging.DEBUG)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Time fixtures
# =============================================================================


@pytest.fixture
def project_start() -> datetime:
    return PROJECT_START


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock(PROJECT_START)


# =============================================================================
# Network fixtures
# =============================================================================


def _task(task_id: str, days: float, *preds: str, **units: float) -> TaskNode:
    return TaskNode(
        task_id=task_id,
        duration=Duration.from_days(days),
        predecessor_ids=frozenset(preds),
        name=f"Task {task_id}",
        resource_units=units,
    )


@pytest.fixture
def make_task():
    """Compact TaskNode builder: ``make_task("B", 1, "A", crew=2)``."""
    return _task


@pytest.fixture
def chain_tasks() -> list[TaskNode]:
    """A -> B -> C, one day each."""
    return [_task("A", 1), _task("B", 1, "A"), _task("C", 1, "B")]


@pytest.fixture
def diamond_tasks() -> list[TaskNode]:
    """A -> (B: 2 days, C: 1 day) -> D; C carries one day of float."""
    return [
        _task("A", 1),
        _task("B", 2, "A"),
        _task("C", 1, "A"),
        _task("D", 1, "B", "C"),
    ]
