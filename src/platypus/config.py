# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Configuration models and YAML loader."""

from __future__ import annotations

import re
from datetime import timedelta
from pathlib import Path
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, Field, ValidationError, field_validator

from platypus.errors import ConfigurationError


# ---------------------------------------------------------------------------
# Durations
# ---------------------------------------------------------------------------

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h|d)")
_COMPACT_DURATION = re.compile(r"(?:\d+(?:\.\d+)?(?:ms|s|m|h|d))+")
_UNIT_SECONDS = {"ms": 0.001, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value: Any) -> Any:
    """Accept compact duration strings such as ``"5m"``, ``"168h"`` or ``"1h30m"``.

    Anything that is not a compact string (numbers of seconds, ``timedelta``
    objects, ISO-8601 strings) is passed through for pydantic to coerce.
    """
    if not isinstance(value, str):
        return value
    compact = value.replace(" ", "").lower()
    if not _COMPACT_DURATION.fullmatch(compact):
        return value
    total = 0.0
    for amount, unit in _DURATION_PART.findall(compact):
        total += float(amount) * _UNIT_SECONDS[unit]
    return timedelta(seconds=total)


Duration = Annotated[timedelta, BeforeValidator(parse_duration)]


# ---------------------------------------------------------------------------
# Component sections
# ---------------------------------------------------------------------------

class CollectorConfig(BaseModel):
    """Metric store retention and buffering."""

    retention_period: Duration = Field(default=timedelta(hours=168))
    collection_interval: Duration = Field(
        default=timedelta(minutes=1), description="Eviction sweep interval"
    )
    batch_size: int = Field(default=100, ge=1)
    buffer_size: int = Field(default=1000, ge=1)


class AnalyzerConfig(BaseModel):
    """Scoring engine parameters."""

    min_data_points: int = Field(default=10, ge=1)
    smoothing_factor: float = Field(default=0.2, gt=0, le=1)
    anomaly_threshold: float = Field(default=2.5, gt=0)


class AutoscalerConfig(BaseModel):
    """Thresholds and cooldowns for the autoscaler."""

    cpu_threshold_high: float = Field(default=80.0, ge=0, le=100)
    cpu_threshold_low: float = Field(default=20.0, ge=0, le=100)
    power_threshold_high: float = Field(default=1000.0, ge=0)
    scale_up_cooldown: Duration = Field(default=timedelta(minutes=5))
    scale_down_cooldown: Duration = Field(default=timedelta(minutes=15))
    evaluation_interval: Duration = Field(default=timedelta(minutes=1))


class PlannerConfig(BaseModel):
    """Migration planner limits."""

    min_power_saving: float = Field(default=100.0, gt=0, description="Watts")
    max_downtime: Duration = Field(default=timedelta(minutes=2))
    planning_interval: Duration = Field(default=timedelta(minutes=5))
    concurrent_migrations: int = Field(default=3, ge=1)


class TagOverride(BaseModel):
    """Per-tag threshold and weight overrides."""

    threshold: float | None = None
    weight: float | None = Field(default=None, gt=0)


class EcoTagConfig(BaseModel):
    """Eco-tag classifier schedule and tag table overrides."""

    update_interval: Duration = Field(default=timedelta(minutes=15))
    min_data_points: int = Field(default=10, ge=1)
    tags: dict[str, TagOverride] = Field(default_factory=dict)

    @field_validator("tags", mode="before")
    @classmethod
    def _normalise_tag_names(cls, value: Any) -> Any:
        # YAML keys are often written eco_efficient rather than eco-efficient
        if isinstance(value, dict):
            return {str(k).replace("_", "-"): v for k, v in value.items()}
        return value


class PredictorConfig(BaseModel):
    """Forecasting module settings."""

    enabled: bool = Field(default=True)
    history_window: Duration = Field(default=timedelta(hours=168))
    prediction_window: Duration = Field(default=timedelta(hours=24))
    update_interval: Duration = Field(default=timedelta(hours=1))
    min_data_points: int = Field(default=24, ge=2)
    model_path: str = Field(default="./data/models")


class ProviderConfig(BaseModel):
    """Which fleet provider to use and its options."""

    type: str = Field(default="sim", description="sim or aws")
    options: dict[str, Any] = Field(default_factory=dict)


class ApiConfig(BaseModel):
    """HTTP API binding and authentication."""

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080, ge=1, le=65535)
    api_keys: list[str] = Field(
        default_factory=list,
        description="Accepted X-API-Key values; empty accepts any non-empty key",
    )


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------

class PlatypusConfig(BaseModel):
    """Top-level configuration loaded from YAML."""

    collector: CollectorConfig = Field(default_factory=CollectorConfig)
    analyzer: AnalyzerConfig = Field(default_factory=AnalyzerConfig)
    autoscaler: AutoscalerConfig = Field(default_factory=AutoscalerConfig)
    migration_planner: PlannerConfig = Field(default_factory=PlannerConfig)
    ecotags: EcoTagConfig = Field(default_factory=EcoTagConfig)
    ml_predictor: PredictorConfig = Field(default_factory=PredictorConfig)
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)


def load_config(path: str | Path) -> PlatypusConfig:
    """Load a :class:`PlatypusConfig` from a YAML file."""
    import yaml

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {config_path}", details=str(exc)) from exc

    try:
        return PlatypusConfig.model_validate(raw or {})
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration in {config_path}", details=str(exc)) from exc
