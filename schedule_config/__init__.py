"""
schedule_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files or environment variables.  Returns a frozen ``EngineSettings``.

Architecture position:
    Configuration -- YAML-driven settings.  This package sits above
    ``schedule_engines`` and below ``schedule_services``.  The kernel and
    engines MUST NEVER import from ``schedule_config``; the service layer
    passes settings values into engine calls as parameters.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Deterministic: the same YAML always produces the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``yaml.YAMLError`` -- malformed YAML.
    - ``ValueError`` -- unknown keys or out-of-range values.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``SCHEDULE_CONFIG_TRACE`` log entry containing the config_id, version
    and checksum, tying every schedule computed by the service to the
    exact settings that governed it.
"""

from __future__ import annotations

from pathlib import Path

from schedule_config.loader import load_yaml_file, parse_engine_settings
from schedule_config.schema import (
    CompressionSettings,
    CriticalPathSettings,
    EngineSettings,
    LevelingSettings,
)
from schedule_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

__all__ = [
    "CompressionSettings",
    "CriticalPathSettings",
    "DEFAULT_CONFIG_PATH",
    "EngineSettings",
    "LevelingSettings",
    "get_active_config",
]


def get_active_config(config_path: Path | None = None) -> EngineSettings:
    """The ONLY public configuration entrypoint.

    Guarantees:
        - The returned settings passed structural and range validation.
        - A ``SCHEDULE_CONFIG_TRACE`` log entry is emitted on every
          successful call.

    Non-goals:
        - No caching across calls; callers hold the returned settings.

    Args:
        config_path: Override path to the YAML document.  Defaults to
            ``schedule_config/defaults.yaml``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If validation fails.
    """
    path = config_path or DEFAULT_CONFIG_PATH
    settings = parse_engine_settings(load_yaml_file(path))

    _logger.info(
        "SCHEDULE_CONFIG_TRACE",
        extra={
            "trace_type": "SCHEDULE_CONFIG_TRACE",
            "config_id": settings.config_id,
            "config_version": settings.version,
            "checksum": settings.checksum,
            "config_path": str(path),
            "leveling_algorithm": settings.leveling.default_algorithm.value,
        },
    )
    return settings
