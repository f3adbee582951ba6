# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Advisory per-server forecaster.

Fits a small model per server from its retained samples:

* a least-squares line of CPU utilisation over time,
* linear power trends over consecutive 12-sample windows,
* the mean power deviation for each hour of the day (24h seasonality).

Predictions start from an exponentially smoothed level of the recent
samples, grow with the latest trend and add the seasonal deviation of
the target hour.  Models are persisted as JSON, one file per server; a
file that cannot be read or written is logged and skipped.
"""

from __future__ import annotations

import asyncio
import logging
import math
from datetime import datetime, timedelta
from pathlib import Path
from typing import Sequence

import numpy as np
from pydantic import ValidationError

from platypus.config import PredictorConfig
from platypus.data.models import ForecastModel, Prediction, Sample, Trend, TrendSegment, utcnow
from platypus.errors import InsufficientDataError, NotFoundError
from platypus.metrics.store import MetricStore

logger = logging.getLogger(__name__)

TREND_WINDOW = 12
SLOPE_THRESHOLD = 0.1
SEASONALITY = timedelta(hours=24)
BASE_CONFIDENCE = 0.8
MIN_CONFIDENCE = 0.1
PREDICTION_STEP = timedelta(hours=1)


# ---------------------------------------------------------------------------
# Fitting helpers
# ---------------------------------------------------------------------------

def classify_slope(slope: float) -> Trend:
    if slope > SLOPE_THRESHOLD:
        return Trend.increasing
    if slope < -SLOPE_THRESHOLD:
        return Trend.decreasing
    return Trend.stable


def detect_trends(samples: Sequence[Sample]) -> list[TrendSegment]:
    """Power slope per sample over each full window of :data:`TREND_WINDOW` samples."""
    segments: list[TrendSegment] = []
    x = np.arange(TREND_WINDOW, dtype=float)
    for start in range(0, len(samples) - TREND_WINDOW + 1, TREND_WINDOW):
        window = samples[start:start + TREND_WINDOW]
        y = np.array([s.power_usage for s in window], dtype=float)
        slope = float(np.polyfit(x, y, 1)[0])
        segments.append(
            TrendSegment(
                start_time=window[0].timestamp,
                end_time=window[-1].timestamp,
                slope=slope,
                trend=classify_slope(slope),
            )
        )
    return segments


def hourly_deviation(samples: Sequence[Sample]) -> dict[int, float]:
    """Mean power deviation from the overall mean, per UTC hour of day."""
    power = np.array([s.power_usage for s in samples], dtype=float)
    hours = np.array([s.timestamp.hour for s in samples])
    overall = float(power.mean())
    return {
        int(hour): float(power[hours == hour].mean()) - overall
        for hour in np.unique(hours)
    }


def volatility(samples: Sequence[Sample]) -> float:
    """Coefficient of variation of power, clamped to [0, 1]."""
    if len(samples) < 2:
        return 0.0
    power = np.array([s.power_usage for s in samples], dtype=float)
    mean = float(power.mean())
    if mean <= 0:
        return 0.0
    return min(1.0, float(power.std()) / mean)


def smoothed(values: Sequence[float], alpha: float) -> float:
    """Exponentially smoothed level of *values* (oldest first)."""
    level = values[0]
    for value in values[1:]:
        level = alpha * value + (1 - alpha) * level
    return level


def fit_model(server_id: str, samples: Sequence[Sample], now: datetime) -> ForecastModel:
    """Fit a :class:`ForecastModel` to a server's window."""
    t0 = samples[0].timestamp
    seconds = np.array([(s.timestamp - t0).total_seconds() for s in samples], dtype=float)
    cpu = np.array([s.cpu_usage for s in samples], dtype=float)
    if np.ptp(seconds) > 0:
        slope, intercept = np.polyfit(seconds, cpu, 1)
    else:
        slope, intercept = 0.0, float(cpu.mean())

    spacing = np.diff(seconds)
    interval = timedelta(seconds=float(np.median(spacing))) if len(spacing) else timedelta(minutes=1)

    return ForecastModel(
        server_id=server_id,
        coefficients=[float(intercept), float(slope)],
        last_update=now,
        seasonality=SEASONALITY,
        sample_interval=interval if interval > timedelta(0) else timedelta(minutes=1),
        trends=detect_trends(samples),
        hourly_deviation=hourly_deviation(samples),
    )


# ---------------------------------------------------------------------------
# Forecaster
# ---------------------------------------------------------------------------

class Forecaster:
    """Keeps one fitted model per server and turns it into predictions."""

    def __init__(
        self,
        config: PredictorConfig,
        store: MetricStore,
        smoothing_factor: float = 0.2,
        clock=utcnow,
    ) -> None:
        self.config = config
        self.store = store
        self.smoothing_factor = smoothing_factor
        self._clock = clock
        self._models: dict[str, ForecastModel] = {}
        self._lock = asyncio.Lock()

    async def _window(self, server_id: str, now: datetime) -> list[Sample]:
        cutoff = now - self.config.history_window
        return [s for s in await self.store.query(server_id) if s.timestamp >= cutoff]

    async def update_models(self) -> int:
        """Refit every server with enough history; returns the number fitted."""
        now = self._clock()
        fitted: dict[str, ForecastModel] = {}
        for server_id in await self.store.server_ids():
            try:
                samples = await self._window(server_id, now)
            except NotFoundError:
                continue
            if len(samples) < self.config.min_data_points:
                continue
            fitted[server_id] = fit_model(server_id, samples, now)

        async with self._lock:
            self._models.update(fitted)
        if fitted:
            logger.info("Refitted %d forecast models", len(fitted))
        return len(fitted)

    async def get_model(self, server_id: str) -> ForecastModel:
        async with self._lock:
            model = self._models.get(server_id)
        if model is None:
            raise NotFoundError(f"no forecast model for server: {server_id}")
        return model

    async def predict(self, server_id: str, horizon: timedelta | None = None) -> list[Prediction]:
        """Hourly predictions from now up to *horizon* (default ``prediction_window``).

        Raises:
            NotFoundError: no model has been fitted for the server.
            InsufficientDataError: the server's window has shrunk below the minimum.
        """
        model = await self.get_model(server_id)
        now = self._clock()
        samples = await self._window(server_id, now)
        if len(samples) < self.config.min_data_points:
            raise InsufficientDataError(
                f"insufficient data points for prediction of {server_id}",
                available=len(samples),
                required=self.config.min_data_points,
            )

        horizon = horizon or self.config.prediction_window
        vol = volatility(samples)
        alpha = self.smoothing_factor
        level_cpu = smoothed([s.cpu_usage for s in samples], alpha)
        level_mem = smoothed([s.memory_usage for s in samples], alpha)
        level_power = smoothed([s.power_usage for s in samples], alpha)
        level_carbon = smoothed([s.carbon_footprint for s in samples], alpha)
        mean_power = float(np.mean([s.power_usage for s in samples]))
        rate = model.trends[-1].slope / mean_power if model.trends and mean_power > 0 else 0.0

        predictions: list[Prediction] = []
        target = now
        while target < now + horizon:
            ahead = target - now
            steps = ahead / model.sample_interval
            growth = max(-1.0, min(1.0, rate * steps))
            seasonal = model.hourly_deviation.get(target.hour, 0.0)
            confidence = BASE_CONFIDENCE * (1 - vol) * math.exp(-ahead.total_seconds() / 3600 / 24)
            predictions.append(
                Prediction(
                    server_id=server_id,
                    timestamp=target,
                    cpu_usage=min(100.0, max(0.0, level_cpu * (1 + growth))),
                    memory_usage=min(100.0, max(0.0, level_mem * (1 + growth))),
                    power_usage=max(0.0, level_power * (1 + growth) + seasonal),
                    carbon_footprint=max(0.0, level_carbon * (1 + growth)),
                    confidence=max(MIN_CONFIDENCE, min(1.0, confidence)),
                )
            )
            target += PREDICTION_STEP
        return predictions

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def save_models(self) -> int:
        """Write each model to ``<model_path>/<server_id>.json``; returns files written."""
        async with self._lock:
            models = list(self._models.values())
        if not models:
            return 0

        directory = Path(self.config.model_path)
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.warning("Cannot create model directory %s: %s", directory, exc)
            return 0

        written = 0
        for model in models:
            path = directory / f"{model.server_id}.json"
            try:
                path.write_text(model.model_dump_json(indent=2))
            except OSError as exc:
                logger.warning("Failed to save forecast model %s: %s", path, exc)
                continue
            written += 1
        logger.debug("Saved %d forecast models to %s", written, directory)
        return written

    async def load_models(self) -> int:
        """Load every ``*.json`` model under ``model_path``; returns models loaded."""
        directory = Path(self.config.model_path)
        if not directory.is_dir():
            return 0

        loaded: dict[str, ForecastModel] = {}
        for path in sorted(directory.glob("*.json")):
            try:
                model = ForecastModel.model_validate_json(path.read_text())
            except (OSError, ValidationError) as exc:
                logger.warning("Skipping unreadable forecast model %s: %s", path, exc)
                continue
            loaded[model.server_id] = model

        async with self._lock:
            self._models.update(loaded)
        if loaded:
            logger.info("Loaded %d forecast models from %s", len(loaded), directory)
        return len(loaded)

    def __len__(self) -> int:
        return len(self._models)
