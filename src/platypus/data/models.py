# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Core Pydantic v2 data models for the platypus control loop.

This module defines the data contract shared by the metric store, the
scoring engine, the autoscaler, the migration planner, the eco-tag
classifier, the forecaster and the API/CLI layers.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, computed_field, field_validator


def utcnow() -> datetime:
    """Timezone-aware current UTC time used as the default clock."""
    return datetime.now(tz=timezone.utc)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Trend(str, Enum):
    """Direction of power draw across a server's retained window."""

    increasing = "increasing"
    decreasing = "decreasing"
    stable = "stable"


class AnomalyKind(str, Enum):
    """Whether an outlier sample sits above or below the mean."""

    spike = "spike"
    drop = "drop"


class ScalingDirection(str, Enum):
    """Autoscaler action direction."""

    up = "up"
    down = "down"


class ScalingStatus(str, Enum):
    """Outcome of one autoscaler action on one server."""

    completed = "completed"
    aborted = "aborted"
    skipped_efficient = "skipped_efficient"
    no_target = "no_target"
    failed = "failed"


# ---------------------------------------------------------------------------
# Observations
# ---------------------------------------------------------------------------

class Sample(BaseModel):
    """One immutable observation of a server."""

    model_config = {"frozen": True}

    server_id: str = Field(..., min_length=1, description="Server identifier")
    timestamp: datetime = Field(default_factory=utcnow)
    cpu_usage: float = Field(..., ge=0, le=100, description="CPU utilization (%)")
    memory_usage: float = Field(
        default=0.0, ge=0, le=100, description="Memory utilization (%)"
    )
    power_usage: float = Field(..., ge=0, description="Power draw in watts")
    carbon_footprint: float = Field(
        default=0.0, ge=0, description="Carbon footprint in kg CO2 equivalent"
    )

    @field_validator("timestamp")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        # naive timestamps are taken to be UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------

class Server(BaseModel):
    """A compute server known to the fleet inventory."""

    id: str = Field(..., description="Unique server identifier")
    provider: str = Field(default="sim", description="aws, gcp, azure or sim")
    region: str = Field(default="default", description="Provider region")
    instance_type: str = Field(default="", description="Provider instance type")


class Container(BaseModel):
    """A workload container running on a server."""

    id: str = Field(..., description="Unique container identifier")
    server_id: str = Field(..., description="Owning server")
    service_name: str = Field(..., description="Service the container belongs to")
    power_usage: float = Field(default=0.0, ge=0, description="Attributed power in watts")
    eco_tags: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

class Anomaly(BaseModel):
    """A sample whose power draw deviates beyond the z-score threshold."""

    timestamp: datetime
    value: float
    kind: AnomalyKind
    severity: float = Field(..., ge=0, description="Absolute z-score")


class ScoreSnapshot(BaseModel):
    """Statistical descriptors and eco-score derived from one window."""

    server_id: str
    sample_count: int = Field(..., ge=0)
    mean: float
    median: float
    stddev: float = Field(..., ge=0)
    min: float
    max: float
    trend: Trend
    anomalies: list[Anomaly] = Field(default_factory=list)
    peak_usage_time: Optional[datetime] = None
    efficiency_score: float = Field(..., ge=0, le=100)


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------

class MigrationPlan(BaseModel):
    """A proposed relocation of one container to a more efficient server."""

    container_id: str
    source_server_id: str
    target_server_id: str
    priority: int = Field(..., ge=1, le=10, description="10 = most urgent")
    power_saving: float = Field(..., description="Estimated saving in watts")
    downtime_estimate: timedelta
    created_at: datetime = Field(default_factory=utcnow)


class RelocationOutcome(BaseModel):
    """Result of one relocation attempt."""

    container_id: str
    source_server_id: str
    target_server_id: str
    success: bool
    error: Optional[str] = None


class ScalingAction(BaseModel):
    """What the autoscaler did about one server in one evaluation."""

    server_id: str
    direction: ScalingDirection
    status: ScalingStatus
    target_server_id: Optional[str] = None
    outcomes: list[RelocationOutcome] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utcnow)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def relocated(self) -> int:
        """Number of containers moved successfully."""
        return sum(1 for o in self.outcomes if o.success)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def failed(self) -> int:
        """Number of relocation attempts that failed."""
        return sum(1 for o in self.outcomes if not o.success)


class CooldownState(BaseModel):
    """Fleet-wide timestamps of the last scale-up and scale-down."""

    last_scale_up: Optional[datetime] = None
    last_scale_down: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Eco tags
# ---------------------------------------------------------------------------

class EcoTagDefinition(BaseModel):
    """Static definition of one eco tag."""

    model_config = {"frozen": True}

    name: str
    description: str = ""
    score: float = Field(..., ge=0, le=100, description="Score contribution")
    weight: float = Field(..., gt=0)
    threshold: float


class ServiceEcoProfile(BaseModel):
    """Tag set and composite score of one service."""

    service_name: str
    tags: list[str] = Field(default_factory=list)
    eco_score: float = Field(..., ge=0, le=100)
    power_usage: float = Field(..., ge=0, description="Average power in watts")
    carbon_footprint: float = Field(..., ge=0, description="Average kg CO2")
    last_update: datetime = Field(default_factory=utcnow)


# ---------------------------------------------------------------------------
# Forecasting
# ---------------------------------------------------------------------------

class TrendSegment(BaseModel):
    """Linear trend detected over one fixed-size window of samples."""

    start_time: datetime
    end_time: datetime
    slope: float
    trend: Trend


class ForecastModel(BaseModel):
    """Fitted per-server model state; persisted as JSON."""

    server_id: str
    coefficients: list[float] = Field(default_factory=list)
    last_update: datetime = Field(default_factory=utcnow)
    seasonality: timedelta = Field(default=timedelta(hours=24))
    sample_interval: timedelta = Field(
        default=timedelta(minutes=1), description="Median spacing of the fitted samples"
    )
    trends: list[TrendSegment] = Field(default_factory=list)
    hourly_deviation: dict[int, float] = Field(
        default_factory=dict,
        description="Mean power deviation from the window mean per hour of day",
    )


class Prediction(BaseModel):
    """Forecast values for one server at one future instant."""

    server_id: str
    timestamp: datetime
    cpu_usage: float = Field(..., ge=0)
    memory_usage: float = Field(..., ge=0)
    power_usage: float = Field(..., ge=0)
    carbon_footprint: float = Field(..., ge=0)
    confidence: float = Field(..., ge=0, le=1)
