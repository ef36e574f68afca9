"""
Tests for SchedulingService, the public outcome-returning surface.

Covers:
- Successful operations wrap engine results in ScheduleOutcome.ok
- Typed engine errors become failed outcomes with error codes
- Failures are logged at warning with the operation name
- Clock injection for project_start and calculated_at
- Settings flow into the engines (tolerances, algorithm, limits)
- Value factories report validation errors as failed outcomes
- ScheduleInvariantViolation propagates instead of becoming an outcome
- Module-level functions delegate to a configured default service
"""

from dataclasses import replace
from datetime import timedelta
from decimal import Decimal

import pytest

import schedule_services
from schedule_config import EngineSettings, LevelingSettings
from schedule_engines.compression import (
    CompressionSelections,
    CrashingOption,
    CrashSelection,
)
from schedule_engines.leveling import LevelingAlgorithm
from schedule_engines.resources import (
    ResourceAssignment,
    ResourceConstraint,
    ResourceType,
)
from schedule_kernel.domain.values import Duration
from schedule_kernel.exceptions import (
    CircularDependencyError,
    ScheduleInvariantViolation,
)
from schedule_kernel.invariants import ScheduleInvariant
from schedule_services import SchedulingService

CREW = ResourceConstraint.create(
    resource_id="crew",
    resource_name="Crew",
    resource_type=ResourceType.LABOR,
    max_units_available=3,
)


@pytest.fixture
def service(deterministic_clock):
    return SchedulingService(clock=deterministic_clock)


@pytest.fixture
def cyclic_tasks(make_task):
    return [make_task("A", 1, "C"), make_task("B", 1, "A"), make_task("C", 1, "B")]


class TestValueFactories:
    """Validation errors of value types surface as failed outcomes."""

    def test_create_duration(self, service):
        outcome = service.create_duration(3, "days")
        assert outcome.unwrap() == Duration.from_hours(24)

    @pytest.mark.parametrize("value,unit", [(-1, "hours"), (2, "years")])
    def test_invalid_duration(self, service, value, unit, captured_logs):
        outcome = service.create_duration(value, unit)
        assert outcome.is_failure
        assert outcome.error_code == "INVALID_DURATION"
        failures = [r for r in captured_logs() if r["message"] == "scheduling_operation_failed"]
        assert failures[-1]["operation"] == "create_duration"

    def test_create_crashing_option(self, service):
        outcome = service.create_crashing_option(
            task_id="pour",
            task_name="Pour slab",
            normal_duration=Duration.from_hours(40),
            crashed_duration=Duration.from_hours(8),
            normal_cost="5000",
            crashed_cost="6000",
        )
        assert outcome.unwrap().cost_slope() == Decimal("31.25")

    def test_crashed_longer_than_normal(self, service):
        outcome = service.create_crashing_option(
            task_id="pour",
            task_name="Pour slab",
            normal_duration=Duration.from_hours(8),
            crashed_duration=Duration.from_hours(40),
            normal_cost="5000",
            crashed_cost="6000",
        )
        assert outcome.error_code == "INVALID_CRASHING_OPTION"

    def test_crashed_cost_below_normal(self, service):
        outcome = service.create_crashing_option(
            task_id="pour",
            task_name="Pour slab",
            normal_duration=Duration.from_hours(40),
            crashed_duration=Duration.from_hours(8),
            normal_cost="5000",
            crashed_cost="4000",
        )
        assert outcome.error_code == "INVALID_CRASHING_OPTION"

    def _fast_track(self, service, **overrides):
        fields = {
            "task_id": "design",
            "task_name": "Design",
            "successor_id": "build",
            "successor_name": "Build",
            "original_lag": Duration.from_hours(24),
            "proposed_lag": Duration.zero(),
            "risk_level": "low",
            "rework_probability": 0.2,
        }
        fields.update(overrides)
        return service.create_fast_tracking_option(**fields)

    def test_create_fast_tracking_option(self, service):
        option = self._fast_track(service).unwrap()
        assert option.key == ("design", "build")
        assert option.expected_time_savings() == Duration.from_hours(19.2)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"proposed_lag": Duration.from_hours(24)},
            {"rework_probability": 1.5},
            {"risk_level": "catastrophic"},
        ],
    )
    def test_invalid_fast_tracking_option(self, service, overrides):
        outcome = self._fast_track(service, **overrides)
        assert outcome.is_failure
        assert outcome.error_code == "INVALID_FAST_TRACKING_OPTION"


class TestNetworkOperations:
    """validate_network, topological_sort, would_create_cycle."""

    def test_valid_network(self, service, diamond_tasks):
        outcome = service.validate_network(diamond_tasks)
        assert outcome.is_success
        assert outcome.value is None

    def test_cycle_is_failed_outcome(self, service, cyclic_tasks):
        outcome = service.validate_network(cyclic_tasks)
        assert outcome.is_failure
        assert not outcome
        assert outcome.error_code == "CIRCULAR_DEPENDENCY"
        assert isinstance(outcome.error, CircularDependencyError)
        with pytest.raises(CircularDependencyError):
            outcome.unwrap()

    def test_failure_logged_at_warning(self, service, cyclic_tasks, captured_logs):
        service.topological_sort(cyclic_tasks)
        failures = [r for r in captured_logs() if r["message"] == "scheduling_operation_failed"]
        assert failures[-1]["level"] == "WARNING"
        assert failures[-1]["operation"] == "topological_sort"
        assert failures[-1]["error_code"] == "CIRCULAR_DEPENDENCY"

    def test_engine_logs_carry_operation_and_project(
        self, deterministic_clock, chain_tasks, captured_logs
    ):
        service = SchedulingService(clock=deterministic_clock, project_id="tower-7")
        service.calculate_critical_path(chain_tasks)
        [calculated] = [r for r in captured_logs() if r["message"] == "critical_path_calculated"]
        assert calculated["operation"] == "calculate_critical_path"
        assert calculated["project_id"] == "tower-7"

    def test_topological_sort(self, service, chain_tasks):
        assert service.topological_sort(chain_tasks).unwrap() == ("A", "B", "C")

    def test_would_create_cycle(self, service, chain_tasks):
        assert service.would_create_cycle(chain_tasks, "C", "A").unwrap() is True
        assert service.would_create_cycle(chain_tasks, "A", "C").unwrap() is False

    def test_empty_network(self, service):
        outcome = service.calculate_critical_path([])
        assert outcome.error_code == "EMPTY_NETWORK"


class TestCriticalPathOperation:
    """Clock injection and settings for calculate_critical_path."""

    def test_defaults_to_clock(self, service, diamond_tasks, deterministic_clock):
        analysis = service.calculate_critical_path(diamond_tasks).unwrap()
        assert analysis.project_start == deterministic_clock.now()
        assert analysis.critical_path.task_ids == ("A", "B", "D")

    def test_explicit_start(self, service, chain_tasks, project_start):
        later = project_start + timedelta(days=7)
        analysis = service.calculate_critical_path(chain_tasks, project_start=later).unwrap()
        assert analysis.project_start == later
        assert analysis.project_finish == later + timedelta(hours=24)

    def test_near_critical_threshold_from_settings(self, deterministic_clock, diamond_tasks):
        settings = EngineSettings()
        settings = replace(
            settings,
            critical_path=replace(settings.critical_path, near_critical_threshold_hours=4.0),
        )
        strict = SchedulingService(clock=deterministic_clock, settings=settings)
        analysis = strict.calculate_critical_path(diamond_tasks).unwrap()
        assert analysis.near_critical_tasks() == ()


class TestResourceOperations:
    """Profiles, conflicts and leveling through the service."""

    @pytest.fixture
    def tasks(self, make_task):
        return [make_task("A", 1, crew=2), make_task("B", 1, crew=2), make_task("C", 2, "A")]

    def test_level_with_configured_algorithm(self, service, tasks):
        analysis = service.calculate_critical_path(tasks).unwrap()
        profiles = service.build_resource_profiles(tasks, analysis, [CREW]).unwrap()
        assert profiles[0].peak_allocation() == 4

        result = service.level_resources(tasks, analysis, profiles).unwrap()
        assert result.algorithm == LevelingAlgorithm.MINIMUM_TOTAL_FLOAT
        assert [d.task_id for d in result.delayed_tasks] == ["B"]
        assert result.has_improved_resource_usage()

    def test_configured_algorithm_overridable(self, deterministic_clock, tasks):
        settings = replace(
            EngineSettings(),
            leveling=LevelingSettings(default_algorithm=LevelingAlgorithm.LONGEST_DURATION),
        )
        service = SchedulingService(clock=deterministic_clock, settings=settings)
        analysis = service.calculate_critical_path(tasks).unwrap()
        profiles = service.build_resource_profiles(tasks, analysis, [CREW]).unwrap()
        assert service.level_resources(tasks, analysis, profiles).unwrap().algorithm == (
            LevelingAlgorithm.LONGEST_DURATION
        )
        explicit = service.level_resources(tasks, analysis, profiles, "shortest-duration")
        assert explicit.unwrap().algorithm == LevelingAlgorithm.SHORTEST_DURATION

    def test_unknown_algorithm_is_failed_outcome(self, service, tasks):
        analysis = service.calculate_critical_path(tasks).unwrap()
        outcome = service.level_resources(tasks, analysis, [], "random")
        assert outcome.error_code == "INVALID_LEVELING_INPUT"

    def test_detect_conflicts(self, service, project_start):
        assignments = [
            ResourceAssignment("A", 60, project_start, project_start + timedelta(hours=4)),
            ResourceAssignment("B", 60, project_start, project_start + timedelta(hours=4)),
        ]
        conflicts = service.detect_resource_conflicts(
            "crew", assignments, project_start, project_start + timedelta(hours=8)
        ).unwrap()
        assert len(conflicts) == 1
        assert conflicts[0].total_allocation_percent == 120

    def test_invalid_conflict_window(self, service, project_start):
        outcome = service.detect_resource_conflicts(
            "crew", [], project_start, project_start - timedelta(hours=1)
        )
        assert outcome.is_failure

    def test_invariant_violation_propagates(self, service, tasks, monkeypatch):
        def broken(**kwargs):
            raise ScheduleInvariantViolation(
                ScheduleInvariant.LEVELING_NEVER_ACCELERATES, "leveled schedule finished early"
            )

        analysis = service.calculate_critical_path(tasks).unwrap()
        monkeypatch.setattr(service._leveler, "level", broken)
        with pytest.raises(ScheduleInvariantViolation):
            service.level_resources(tasks, analysis, [])


class TestCompressionOperations:
    """analyze_compression and plan_compression through the service."""

    @pytest.fixture
    def pour(self):
        return CrashingOption.create(
            task_id="pour",
            task_name="Pour slab",
            normal_duration=Duration.from_hours(40),
            crashed_duration=Duration.from_hours(8),
            normal_cost="5000",
            crashed_cost="6000",
        )

    def test_analyze(self, service, pour):
        result = service.analyze_compression(
            [pour], [],
            CompressionSelections(
                original_duration=Duration.from_days(10),
                crashes=(CrashSelection("pour", 16),),
            ),
        ).unwrap()
        assert result.total_cost_increase == Decimal("500")

    def test_bad_selection_is_failed_outcome(self, service, pour):
        outcome = service.analyze_compression(
            [pour], [],
            CompressionSelections(
                original_duration=Duration.from_days(10),
                crashes=(CrashSelection("roof"),),
            ),
        )
        assert outcome.error_code == "INVALID_COMPRESSION_SELECTION"

    def test_plan_uses_opportunity_limit(self, deterministic_clock, pour):
        settings = EngineSettings()
        settings = replace(
            settings, compression=replace(settings.compression, top_opportunities_limit=1)
        )
        service = SchedulingService(clock=deterministic_clock, settings=settings)
        extra = [
            CrashingOption.create(
                task_id=t,
                task_name=t,
                normal_duration=Duration.from_hours(16),
                crashed_duration=Duration.from_hours(8),
                normal_cost="100",
                crashed_cost="200",
            )
            for t in ("frame", "roof")
        ]
        result = service.plan_compression(
            [pour, *extra], [], Duration.from_days(20), target_reduction_days=1
        ).unwrap()
        assert [c.task_id for c in result.applied_crashes] == ["pour"]
        assert len(result.top_opportunities()) == 1

    def test_negative_target(self, service, pour):
        outcome = service.plan_compression([pour], [], Duration.from_days(20), -1)
        assert outcome.is_failure


class TestModuleSurface:
    """Module-level functions share one configured service."""

    def test_validate_network(self, cyclic_tasks):
        outcome = schedule_services.validate_network(cyclic_tasks)
        assert outcome.error_code == "CIRCULAR_DEPENDENCY"

    def test_calculate_critical_path(self, chain_tasks, project_start):
        outcome = schedule_services.calculate_critical_path(chain_tasks, project_start)
        assert outcome.unwrap().critical_path.task_ids == ("A", "B", "C")

    def test_default_service_uses_file_config(self):
        from schedule_services.scheduling_service import _default_service

        assert len(_default_service().settings.checksum) == 64

    def test_value_factories(self):
        assert schedule_services.create_duration(-2, "days").error_code == "INVALID_DURATION"
        crash = schedule_services.create_crashing_option(
            task_id="pour",
            task_name="Pour slab",
            normal_duration=Duration.from_hours(8),
            crashed_duration=Duration.from_hours(8),
            normal_cost="100",
            crashed_cost="100",
        )
        assert crash.error_code == "INVALID_CRASHING_OPTION"
        fast = schedule_services.create_fast_tracking_option(
            task_id="design",
            task_name="Design",
            successor_id="build",
            successor_name="Build",
            original_lag=Duration.from_hours(8),
            proposed_lag=Duration.from_hours(4),
            risk_level="low",
            rework_probability=-0.1,
        )
        assert fast.error_code == "INVALID_FAST_TRACKING_OPTION"
