"""
Configuration Loader (``schedule_config.loader``).

Responsibility
--------------
Loads the YAML configuration document and parses it into the frozen
``schedule_config.schema`` dataclasses.  The single public entry point
for runtime config is ``schedule_config.get_active_config()``.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  Depends on the engine enums
it parses into; nothing in the kernel or engines depends on it.

Invariants enforced
-------------------
* Unknown sections and unknown keys are rejected; a typo never silently
  falls back to a default.
* Numeric settings are range checked.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Bad structure or out-of-range values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
import math
from pathlib import Path
from typing import Any

import yaml

from schedule_config.schema import (
    CompressionSettings,
    CriticalPathSettings,
    EngineSettings,
    LevelingSettings,
)
from schedule_engines.leveling import LevelingAlgorithm

_ROOT_KEYS = frozenset(
    {"config_id", "version", "critical_path", "leveling", "compression"}
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration root in {path} must be a mapping")
    return data


def _section(data: dict[str, Any], name: str, allowed: set[str]) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"Configuration section {name!r} must be a mapping")
    unknown = set(section) - allowed
    if unknown:
        raise ValueError(f"Unknown keys in {name!r}: {sorted(unknown)}")
    return section


def _positive(section: str, key: str, value: Any, *, allow_zero: bool = False) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{section}.{key} must be a number, got {value!r}")
    value = float(value)
    if not math.isfinite(value) or value < 0 or (value == 0 and not allow_zero):
        raise ValueError(f"{section}.{key} out of range: {value}")
    return value


def parse_critical_path(data: dict[str, Any]) -> CriticalPathSettings:
    section = _section(
        data, "critical_path", {"critical_tolerance_hours", "near_critical_threshold_hours"}
    )
    default = CriticalPathSettings()
    tolerance = _positive(
        "critical_path", "critical_tolerance_hours",
        section.get("critical_tolerance_hours", default.critical_tolerance_hours),
        allow_zero=True,
    )
    threshold = _positive(
        "critical_path", "near_critical_threshold_hours",
        section.get("near_critical_threshold_hours", default.near_critical_threshold_hours),
    )
    if threshold < tolerance:
        raise ValueError("critical_path.near_critical_threshold_hours must be >= tolerance")
    return CriticalPathSettings(
        critical_tolerance_hours=tolerance,
        near_critical_threshold_hours=threshold,
    )


def parse_leveling(data: dict[str, Any]) -> LevelingSettings:
    section = _section(data, "leveling", {"default_algorithm", "level_tolerance_percent"})
    default = LevelingSettings()
    raw_algorithm = section.get("default_algorithm", default.default_algorithm.value)
    try:
        algorithm = LevelingAlgorithm(raw_algorithm)
    except ValueError as e:
        raise ValueError(f"Unknown leveling algorithm: {raw_algorithm!r}") from e
    tolerance = _positive(
        "leveling", "level_tolerance_percent",
        section.get("level_tolerance_percent", default.level_tolerance_percent),
        allow_zero=True,
    )
    return LevelingSettings(default_algorithm=algorithm, level_tolerance_percent=tolerance)


def parse_compression(data: dict[str, Any]) -> CompressionSettings:
    section = _section(data, "compression", {"top_opportunities_limit"})
    limit = section.get("top_opportunities_limit", CompressionSettings().top_opportunities_limit)
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise ValueError(f"compression.top_opportunities_limit must be a positive integer: {limit!r}")
    return CompressionSettings(top_opportunities_limit=limit)


def parse_engine_settings(data: dict[str, Any]) -> EngineSettings:
    """
    Parse a complete ``EngineSettings`` from a dict.

    Postconditions:
        - ``checksum`` is ``compute_checksum(data)``.
    Raises:
        ValueError: on unknown keys or invalid values.
    """
    unknown = set(data) - _ROOT_KEYS
    if unknown:
        raise ValueError(f"Unknown configuration sections: {sorted(unknown)}")
    version = data.get("version", 1)
    if isinstance(version, bool) or not isinstance(version, int) or version < 1:
        raise ValueError(f"version must be a positive integer: {version!r}")
    return EngineSettings(
        config_id=str(data.get("config_id", "default")),
        version=version,
        critical_path=parse_critical_path(data),
        leveling=parse_leveling(data),
        compression=parse_compression(data),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Postconditions:
        - Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
