"""
EngineSettings schema.

Defines the typed, frozen form of the scheduling engine's configuration.
YAML is parsed into these types by the loader; the service layer reads
them and passes plain values into engine calls.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from schedule_engines.leveling import LevelingAlgorithm

# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CriticalPathSettings:
    critical_tolerance_hours: float = 0.1
    near_critical_threshold_hours: float = 8.0


@dataclass(frozen=True)
class LevelingSettings:
    default_algorithm: LevelingAlgorithm = LevelingAlgorithm.MINIMUM_TOTAL_FLOAT
    level_tolerance_percent: float = 10.0


@dataclass(frozen=True)
class CompressionSettings:
    top_opportunities_limit: int = 5


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineSettings:
    """
    Complete engine configuration.

    ``checksum`` is the SHA-256 of the canonical source document; it is
    empty for settings built in code.
    """

    config_id: str = "default"
    version: int = 1
    critical_path: CriticalPathSettings = field(default_factory=CriticalPathSettings)
    leveling: LevelingSettings = field(default_factory=LevelingSettings)
    compression: CompressionSettings = field(default_factory=CompressionSettings)
    checksum: str = ""
