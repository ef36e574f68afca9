"""
Module: schedule_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    scheduling engines.  This is the canonical import surface for higher
    layers (schedule_services, schedule_config).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import schedule_kernel (and sibling engine modules).
    MUST NOT import schedule_services or schedule_config.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
      Timestamps are passed in as explicit parameters by the services.
    - Decimal-only money: crashing costs and resource rates use ``Decimal``.
    - Determinism: identical inputs always produce identical outputs;
      insertion order breaks ties.

Audit relevance:
    Every engine invocation is traced via the ``@traced_engine`` decorator
    (see ``schedule_engines.tracer``), emitting SCHEDULE_ENGINE_TRACE log
    records that include engine name, version, input fingerprint, and
    duration.

Usage:
    from schedule_engines import CriticalPathCalculator, TaskNode
    from schedule_engines import ResourceLevelingEngine, LevelingAlgorithm
    from schedule_engines import ScheduleCompressionAnalyzer, CrashingOption
"""

from schedule_kernel.logging_config import get_logger

logger = get_logger("engines")

from schedule_engines.compression import (
    AppliedCrash,
    AppliedFastTrack,
    CompressionOpportunity,
    CompressionResult,
    CompressionSelections,
    CompressionStrategy,
    CrashingOption,
    CrashSelection,
    FastTrackingOption,
    FastTrackSelection,
    MethodBreakdown,
    RiskLevel,
    ScheduleCompressionAnalyzer,
)
from schedule_engines.critical_path import (
    CriticalPath,
    CriticalPathAnalysis,
    CriticalPathCalculator,
    ScheduledTask,
)
from schedule_engines.leveling import (
    DelayedTask,
    LevelingAlgorithm,
    LevelingMetrics,
    LevelingResult,
    ResourceLevelingEngine,
)
from schedule_engines.network import (
    TaskNetwork,
    TaskNode,
    topological_sort,
    validate_network,
)
from schedule_engines.recommendation import (
    Confidence,
    Recommendation,
    RecommendationStatus,
)
from schedule_engines.resources import (
    AvailabilityPeriod,
    OverallocationPeriod,
    ResourceAllocationPoint,
    ResourceAssignment,
    ResourceConflict,
    ResourceConstraint,
    ResourceProfile,
    ResourceType,
    TaskWindow,
    build_resource_profile,
    detect_resource_conflicts,
)
from schedule_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "AppliedCrash",
    "AppliedFastTrack",
    "AvailabilityPeriod",
    "CompressionOpportunity",
    "CompressionResult",
    "CompressionSelections",
    "CompressionStrategy",
    "Confidence",
    "CrashSelection",
    "CrashingOption",
    "CriticalPath",
    "CriticalPathAnalysis",
    "CriticalPathCalculator",
    "DelayedTask",
    "FastTrackSelection",
    "FastTrackingOption",
    "LevelingAlgorithm",
    "LevelingMetrics",
    "LevelingResult",
    "MethodBreakdown",
    "OverallocationPeriod",
    "Recommendation",
    "RecommendationStatus",
    "ResourceAllocationPoint",
    "ResourceAssignment",
    "ResourceConflict",
    "ResourceConstraint",
    "ResourceLevelingEngine",
    "ResourceProfile",
    "ResourceType",
    "RiskLevel",
    "ScheduleCompressionAnalyzer",
    "ScheduledTask",
    "TaskNetwork",
    "TaskNode",
    "TaskWindow",
    "build_resource_profile",
    "compute_input_fingerprint",
    "detect_resource_conflicts",
    "topological_sort",
    "traced_engine",
    "validate_network",
]
