# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Tests for configuration loading and duration parsing."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from platypus.config import (
    CollectorConfig,
    EcoTagConfig,
    PlatypusConfig,
    load_config,
    parse_duration,
)
from platypus.errors import ConfigurationError

FIXTURES = Path(__file__).parent / "fixtures"
BUNDLED = Path(__file__).parent.parent / "configs" / "platypus.yaml"


class TestParseDuration:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("30s", timedelta(seconds=30)),
            ("5m", timedelta(minutes=5)),
            ("168h", timedelta(hours=168)),
            ("7d", timedelta(days=7)),
            ("1h30m", timedelta(hours=1, minutes=30)),
            ("250ms", timedelta(milliseconds=250)),
        ],
    )
    def test_compact_strings(self, raw, expected):
        assert parse_duration(raw) == expected

    def test_non_compact_passes_through(self):
        assert parse_duration("PT5M") == "PT5M"
        assert parse_duration(90) == 90

    def test_model_accepts_seconds_and_iso(self):
        cfg = CollectorConfig(retention_period=3600, collection_interval="PT2M")
        assert cfg.retention_period == timedelta(hours=1)
        assert cfg.collection_interval == timedelta(minutes=2)


class TestDefaults:
    def test_defaults_match_documented_values(self):
        cfg = PlatypusConfig()
        assert cfg.collector.retention_period == timedelta(hours=168)
        assert cfg.collector.buffer_size == 1000
        assert cfg.analyzer.min_data_points == 10
        assert cfg.analyzer.anomaly_threshold == 2.5
        assert cfg.autoscaler.cpu_threshold_high == 80.0
        assert cfg.autoscaler.scale_down_cooldown == timedelta(minutes=15)
        assert cfg.migration_planner.concurrent_migrations == 3
        assert cfg.migration_planner.max_downtime == timedelta(minutes=2)
        assert cfg.provider.type == "sim"

    def test_tag_keys_normalised(self):
        cfg = EcoTagConfig(tags={"energy_intensive": {"threshold": 300}})
        assert "energy-intensive" in cfg.tags
        assert cfg.tags["energy-intensive"].threshold == 300

    def test_concurrency_must_be_positive(self):
        with pytest.raises(ValueError):
            PlatypusConfig.model_validate({"migration_planner": {"concurrent_migrations": 0}})


class TestLoadConfig:
    def test_fixture_file(self):
        cfg = load_config(FIXTURES / "config.yaml")
        assert cfg.collector.retention_period == timedelta(hours=2)
        assert cfg.autoscaler.scale_up_cooldown == timedelta(seconds=90)
        assert cfg.migration_planner.max_downtime == timedelta(seconds=90)
        assert cfg.ecotags.tags["energy-intensive"].threshold == 400
        assert cfg.api.api_keys == ["test-key"]

    def test_bundled_config_is_valid(self):
        cfg = load_config(BUNDLED)
        defaults = PlatypusConfig()
        for section in ("collector", "analyzer", "autoscaler", "migration_planner", "ml_predictor", "api"):
            assert getattr(cfg, section) == getattr(defaults, section), section
        assert set(cfg.ecotags.tags) == {
            "eco-efficient", "energy-intensive", "carbon-neutral", "optimizable", "peak-hours",
        }

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("collector: [unclosed")
        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("autoscaler:\n  cpu_threshold_high: 150\n")
        with pytest.raises(ConfigurationError) as excinfo:
            load_config(path)
        assert excinfo.value.details

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path) == PlatypusConfig()
