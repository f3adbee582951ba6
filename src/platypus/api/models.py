# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""API request/response Pydantic models for the REST interface."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from platypus.data.models import Sample, ScoreSnapshot, Server


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class MetricRequest(BaseModel):
    """Request body for the ``POST /api/v1/metrics`` endpoint."""

    server_id: str = Field(..., min_length=1)
    timestamp: Optional[datetime] = Field(
        default=None, description="Observation time; defaults to the time of receipt."
    )
    cpu_usage: float = Field(..., ge=0, le=100)
    memory_usage: float = Field(default=0.0, ge=0, le=100)
    power_usage: float = Field(..., ge=0, description="Watts")
    carbon_footprint: float = Field(default=0.0, ge=0, description="kg CO2")
    region: str = Field(default="default")


class EcoScoreRequest(BaseModel):
    """Request body for the ``POST /api/v1/eco-score`` endpoint."""

    server_id: str = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------

class HealthResponse(BaseModel):
    status: str = Field(default="ok")
    version: str


class MetricAccepted(BaseModel):
    status: str = Field(default="accepted")
    server_id: str
    pending_batches: int


class MetricsResponse(BaseModel):
    server_id: str
    samples: list[Sample]


class ServerDetail(BaseModel):
    """Inventory record joined with the current score snapshot."""

    server: Server
    snapshot: ScoreSnapshot


class EcoScoreResponse(BaseModel):
    server_id: str
    eco_score: float = Field(..., ge=0, le=100)
    timestamp: datetime
