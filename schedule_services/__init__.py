"""
schedule_services -- imperative shell over the scheduling engines.

Owns clock injection, configuration, and the conversion of typed
SchedulingError exceptions into ScheduleOutcome values.
"""

from schedule_services.scheduling_service import (
    SchedulingService,
    analyze_compression,
    build_resource_profile,
    build_resource_profiles,
    calculate_critical_path,
    create_crashing_option,
    create_duration,
    create_fast_tracking_option,
    detect_resource_conflicts,
    level_resources,
    plan_compression,
    topological_sort,
    validate_network,
    would_create_cycle,
)

__all__ = [
    "SchedulingService",
    "analyze_compression",
    "build_resource_profile",
    "build_resource_profiles",
    "calculate_critical_path",
    "create_crashing_option",
    "create_duration",
    "create_fast_tracking_option",
    "detect_resource_conflicts",
    "level_resources",
    "plan_compression",
    "topological_sort",
    "validate_network",
    "would_create_cycle",
]
