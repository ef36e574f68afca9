"""
Tests for the YAML configuration layer.

Covers:
- Shipped defaults match the in-code defaults
- Overrides from a custom file
- Rejection of unknown sections, unknown keys and out-of-range values
- Checksum determinism
- SCHEDULE_CONFIG_TRACE emission
"""

import pytest
import yaml

from schedule_config import (
    DEFAULT_CONFIG_PATH,
    EngineSettings,
    get_active_config,
)
from schedule_config.loader import compute_checksum, load_yaml_file, parse_engine_settings
from schedule_engines.leveling import LevelingAlgorithm


def _write(tmp_path, data, name="engine.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaults:
    """The shipped defaults.yaml."""

    def test_defaults_file_exists(self):
        assert DEFAULT_CONFIG_PATH.exists()

    def test_defaults_match_dataclass_defaults(self):
        settings = get_active_config()
        defaults = EngineSettings()
        assert settings.config_id == "default"
        assert settings.version == 1
        assert settings.critical_path == defaults.critical_path
        assert settings.leveling == defaults.leveling
        assert settings.compression == defaults.compression
        assert len(settings.checksum) == 64

    def test_empty_document_uses_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        settings = get_active_config(path)
        assert settings.leveling.default_algorithm == LevelingAlgorithm.MINIMUM_TOTAL_FLOAT


class TestOverrides:
    """Values read from a custom file."""

    def test_partial_override(self, tmp_path):
        path = _write(tmp_path, {
            "config_id": "night-shift",
            "version": 3,
            "leveling": {"default_algorithm": "longest-duration"},
        })
        settings = get_active_config(path)
        assert settings.config_id == "night-shift"
        assert settings.version == 3
        assert settings.leveling.default_algorithm == LevelingAlgorithm.LONGEST_DURATION
        assert settings.leveling.level_tolerance_percent == 10.0
        assert settings.compression.top_opportunities_limit == 5

    def test_zero_critical_tolerance_allowed(self, tmp_path):
        path = _write(tmp_path, {"critical_path": {"critical_tolerance_hours": 0}})
        assert get_active_config(path).critical_path.critical_tolerance_hours == 0.0


class TestValidation:
    """ValueError on structural or range problems."""

    @pytest.mark.parametrize(
        "data",
        [
            {"scheduler": {}},
            {"critical_path": {"slack_hours": 4}},
            {"critical_path": "tight"},
            {"critical_path": {"critical_tolerance_hours": -1}},
            {"critical_path": {"critical_tolerance_hours": 4, "near_critical_threshold_hours": 2}},
            {"leveling": {"default_algorithm": "random"}},
            {"leveling": {"level_tolerance_percent": True}},
            {"compression": {"top_opportunities_limit": 0}},
            {"compression": {"top_opportunities_limit": 2.5}},
            {"version": 0},
        ],
    )
    def test_rejected(self, tmp_path, data):
        with pytest.raises(ValueError):
            get_active_config(_write(tmp_path, data))

    def test_working_day_is_not_configurable(self, tmp_path):
        # durations, profile days and leveling delays all use 8 hour days
        path = _write(tmp_path, {"calendar": {"hours_per_day": 10}})
        with pytest.raises(ValueError, match="calendar"):
            get_active_config(path)

    def test_non_mapping_root(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="mapping"):
            load_yaml_file(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("leveling: [unclosed\n")
        with pytest.raises(yaml.YAMLError):
            get_active_config(path)


class TestChecksum:
    """Configuration identity."""

    def test_key_order_irrelevant(self):
        a = {"version": 1, "leveling": {"level_tolerance_percent": 5}}
        b = {"leveling": {"level_tolerance_percent": 5}, "version": 1}
        assert compute_checksum(a) == compute_checksum(b)

    def test_value_change_changes_checksum(self):
        assert compute_checksum({"version": 1}) != compute_checksum({"version": 2})

    def test_settings_carry_checksum(self):
        data = {"config_id": "x"}
        assert parse_engine_settings(data).checksum == compute_checksum(data)


class TestConfigTrace:
    """SCHEDULE_CONFIG_TRACE log entry."""

    def test_trace_emitted(self, captured_logs):
        settings = get_active_config()
        traces = [r for r in captured_logs() if r["message"] == "SCHEDULE_CONFIG_TRACE"]
        assert traces, "expected a SCHEDULE_CONFIG_TRACE entry"
        trace = traces[-1]
        assert trace["trace_type"] == "SCHEDULE_CONFIG_TRACE"
        assert trace["config_id"] == "default"
        assert trace["checksum"] == settings.checksum
        assert trace["leveling_algorithm"] == "minimum-total-float"
        assert trace["config_path"].endswith("defaults.yaml")
