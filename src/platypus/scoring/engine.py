# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Scoring engine: statistics, trend, anomalies and the composite eco-score.

The module-level functions are pure and operate on a list of samples;
:class:`ScoringEngine` binds them to the metric store and the analyzer
configuration.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Sequence

import numpy as np

from platypus.config import AnalyzerConfig
from platypus.data.models import Anomaly, AnomalyKind, Sample, ScoreSnapshot, Trend
from platypus.errors import InsufficientDataError, NotFoundError
from platypus.metrics.store import MetricStore
from platypus.scoring.thresholds import TREND_MARGIN
from platypus.scoring.weights import (
    CARBON_BASELINE_KG,
    CARBON_WEIGHT,
    CPU_SWEET_SPOT,
    POWER_BASELINE_WATTS,
    POWER_WEIGHT,
    SCORE_SCALE,
    UTILIZATION_WEIGHT,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def _power(samples: Sequence[Sample]) -> np.ndarray:
    return np.fromiter((s.power_usage for s in samples), dtype=float, count=len(samples))


def classify_trend(values: Sequence[float]) -> Trend:
    """Compare the means of the first and second halves of *values*.

    The split is by index; with an odd count the extra value lands in the
    second half.  A move of more than ``TREND_MARGIN`` of the first-half
    mean counts as a trend.
    """
    if len(values) < 2:
        return Trend.stable
    half = len(values) // 2
    first_mean = float(np.mean(values[:half]))
    second_mean = float(np.mean(values[half:]))
    diff = second_mean - first_mean
    margin = TREND_MARGIN * first_mean
    if diff > margin:
        return Trend.increasing
    if diff < -margin:
        return Trend.decreasing
    return Trend.stable


def detect_anomalies(
    samples: Sequence[Sample], mean: float, stddev: float, threshold: float
) -> list[Anomaly]:
    """Flag samples whose power z-score exceeds *threshold*.

    A zero standard deviation means every sample equals the mean, so
    nothing is reported.
    """
    if stddev <= 0:
        return []
    anomalies: list[Anomaly] = []
    for sample in samples:
        z = abs(sample.power_usage - mean) / stddev
        if z > threshold:
            anomalies.append(
                Anomaly(
                    timestamp=sample.timestamp,
                    value=sample.power_usage,
                    kind=AnomalyKind.spike if sample.power_usage > mean else AnomalyKind.drop,
                    severity=z,
                )
            )
    return anomalies


def find_peak_usage_time(samples: Sequence[Sample]) -> datetime | None:
    """Timestamp of the first sample with the highest positive power draw."""
    peak: datetime | None = None
    highest = 0.0
    for sample in samples:
        if sample.power_usage > highest:
            highest = sample.power_usage
            peak = sample.timestamp
    return peak


def power_score(samples: Sequence[Sample]) -> float:
    """1.0 at zero draw, falling linearly to 0 at the power baseline."""
    return max(0.0, 1.0 - float(np.mean(_power(samples))) / POWER_BASELINE_WATTS)


def utilization_score(samples: Sequence[Sample]) -> float:
    """Average closeness of CPU utilisation to the sweet spot."""
    cpu = np.fromiter((s.cpu_usage for s in samples), dtype=float, count=len(samples))
    per_sample = 1.0 - np.abs(CPU_SWEET_SPOT - cpu / 100.0)
    return max(0.0, float(np.mean(per_sample)))


def carbon_score(samples: Sequence[Sample]) -> float:
    """1.0 at zero footprint, falling linearly to 0 at the carbon baseline."""
    carbon = np.fromiter((s.carbon_footprint for s in samples), dtype=float, count=len(samples))
    return max(0.0, 1.0 - float(np.mean(carbon)) / CARBON_BASELINE_KG)


def calculate_eco_score(samples: Sequence[Sample]) -> float:
    """Composite eco-score in [0, 100]; 0 for an empty sample set."""
    if not samples:
        return 0.0
    score = (
        power_score(samples) * POWER_WEIGHT
        + utilization_score(samples) * UTILIZATION_WEIGHT
        + carbon_score(samples) * CARBON_WEIGHT
    ) * SCORE_SCALE
    return min(SCORE_SCALE, max(0.0, score))


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class ScoringEngine:
    """Turns a server's retained window into a :class:`ScoreSnapshot`.

    Usage::

        engine = ScoringEngine(AnalyzerConfig(), store)
        snapshot = await engine.analyze("srv-1")
        score = await engine.eco_score("srv-2")
    """

    def __init__(self, config: AnalyzerConfig, store: MetricStore) -> None:
        self.config = config
        self.store = store

    async def analyze(self, server_id: str) -> ScoreSnapshot:
        """Compute the full snapshot for *server_id*.

        Raises:
            NotFoundError: the store has never seen the server.
            InsufficientDataError: fewer than ``min_data_points`` samples.
        """
        samples = await self.store.query(server_id)
        return self.analyze_samples(server_id, samples)

    def analyze_samples(self, server_id: str, samples: Sequence[Sample]) -> ScoreSnapshot:
        """Snapshot over an already fetched window."""
        if len(samples) < self.config.min_data_points:
            raise InsufficientDataError(
                f"insufficient data points for analysis of {server_id}",
                available=len(samples),
                required=self.config.min_data_points,
            )

        power = _power(samples)
        mean = float(np.mean(power))
        stddev = float(np.std(power))

        return ScoreSnapshot(
            server_id=server_id,
            sample_count=len(samples),
            mean=mean,
            median=float(np.median(power)),
            stddev=stddev,
            min=float(np.min(power)),
            max=float(np.max(power)),
            trend=classify_trend(power),
            anomalies=detect_anomalies(samples, mean, stddev, self.config.anomaly_threshold),
            peak_usage_time=find_peak_usage_time(samples),
            efficiency_score=calculate_eco_score(samples),
        )

    def calculate_eco_score(self, samples: Sequence[Sample]) -> float:
        return calculate_eco_score(samples)

    async def eco_score(self, server_id: str) -> float:
        """Eco-score of the server's current window; 0 for unknown servers."""
        try:
            samples = await self.store.query(server_id)
        except NotFoundError:
            logger.debug("No metrics for %s; eco-score defaults to 0", server_id)
            return 0.0
        return calculate_eco_score(samples)
