# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Platypus - energy-aware fleet control loop."""

__version__ = "0.1.0"

from platypus.config import PlatypusConfig, load_config
from platypus.data.models import (
    Container,
    MigrationPlan,
    Sample,
    ScoreSnapshot,
    Server,
    ServiceEcoProfile,
)
from platypus.ecotags.classifier import TagClassifier
from platypus.errors import (
    BufferFullError,
    CollaboratorError,
    ConfigurationError,
    InsufficientDataError,
    NotFoundError,
    PlatypusError,
)
from platypus.forecast.predictor import Forecaster
from platypus.metrics.store import MetricStore
from platypus.migration.planner import MigrationPlanner
from platypus.scaling.autoscaler import Autoscaler
from platypus.scoring.engine import ScoringEngine, calculate_eco_score
from platypus.service import FleetController

__all__ = [
    "Autoscaler",
    "BufferFullError",
    "CollaboratorError",
    "ConfigurationError",
    "Container",
    "FleetController",
    "Forecaster",
    "InsufficientDataError",
    "MetricStore",
    "MigrationPlan",
    "MigrationPlanner",
    "NotFoundError",
    "PlatypusConfig",
    "PlatypusError",
    "Sample",
    "ScoreSnapshot",
    "ScoringEngine",
    "Server",
    "ServiceEcoProfile",
    "TagClassifier",
    "calculate_eco_score",
    "load_config",
]
