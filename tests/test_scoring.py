# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Tests for the scoring engine."""

from __future__ import annotations

from datetime import timedelta

import numpy as np
import pytest

from platypus.data.models import AnomalyKind, Sample, Trend
from platypus.errors import InsufficientDataError, NotFoundError
from platypus.metrics.store import MetricStore
from platypus.scoring.engine import (
    ScoringEngine,
    calculate_eco_score,
    classify_trend,
    detect_anomalies,
    find_peak_usage_time,
)
from platypus.scoring.thresholds import score_to_color
from conftest import NOW, fill, make_samples


def _with_power(values: list[float]) -> list[Sample]:
    return [
        Sample(
            server_id="srv-1",
            timestamp=NOW + timedelta(minutes=i),
            cpu_usage=50.0,
            power_usage=v,
        )
        for i, v in enumerate(values)
    ]


class TestTrend:
    def test_increasing(self):
        assert classify_trend([100, 110, 120, 130, 140, 150, 160, 170]) is Trend.increasing

    def test_mirrored_series_is_decreasing(self):
        rising = [100.0 + 10 * i for i in range(10)]
        mean = sum(rising) / len(rising)
        mirrored = [2 * mean - v for v in rising]
        assert classify_trend(rising) is Trend.increasing
        assert classify_trend(mirrored) is Trend.decreasing

    def test_constant_is_stable(self):
        assert classify_trend([250.0] * 12) is Trend.stable

    def test_within_margin_is_stable(self):
        # second half 5% above the first
        assert classify_trend([100, 100, 105, 105]) is Trend.stable

    @pytest.mark.parametrize("values", [[], [42.0]])
    def test_fewer_than_two_is_stable(self, values):
        assert classify_trend(values) is Trend.stable

    def test_odd_count_extra_value_in_second_half(self):
        assert classify_trend([10, 10, 20]) is Trend.increasing


class TestAnomalies:
    def test_single_spike(self):
        samples = _with_power([100.0] * 19 + [1000.0])
        power = np.array([s.power_usage for s in samples])
        anomalies = detect_anomalies(samples, float(power.mean()), float(power.std()), 2.5)
        assert len(anomalies) == 1
        assert anomalies[0].kind is AnomalyKind.spike
        assert anomalies[0].value == 1000.0
        assert anomalies[0].severity > 2.5

    def test_drop(self):
        samples = _with_power([500.0] * 19 + [0.0])
        power = np.array([s.power_usage for s in samples])
        anomalies = detect_anomalies(samples, float(power.mean()), float(power.std()), 2.5)
        assert [a.kind for a in anomalies] == [AnomalyKind.drop]

    def test_zero_stddev_reports_nothing(self):
        samples = _with_power([300.0] * 10)
        assert detect_anomalies(samples, 300.0, 0.0, 2.5) == []


class TestPeakUsage:
    def test_first_maximum_wins(self):
        samples = _with_power([10.0, 50.0, 20.0, 50.0])
        assert find_peak_usage_time(samples) == samples[1].timestamp

    def test_all_zero_has_no_peak(self):
        assert find_peak_usage_time(_with_power([0.0, 0.0])) is None


class TestEcoScore:
    def test_empty_is_zero(self):
        assert calculate_eco_score([]) == 0.0

    def test_ideal_utilisation(self):
        samples = make_samples("srv-1", 10, cpu=70.0, power=100.0, carbon=0.0)
        assert calculate_eco_score(samples) == pytest.approx(96.0)

    def test_components_clamped_at_zero(self):
        samples = make_samples("srv-1", 10, cpu=0.0, power=5000.0, carbon=5.0)
        assert calculate_eco_score(samples) == pytest.approx(9.0)

    def test_always_in_range(self):
        rng = np.random.default_rng(3)
        for _ in range(50):
            n = int(rng.integers(1, 40))
            samples = [
                Sample(
                    server_id="srv-1",
                    timestamp=NOW,
                    cpu_usage=float(rng.uniform(0, 100)),
                    power_usage=float(rng.exponential(800)),
                    carbon_footprint=float(rng.exponential(0.8)),
                )
                for _ in range(n)
            ]
            assert 0.0 <= calculate_eco_score(samples) <= 100.0


class TestScoringEngine:
    async def test_analyze_snapshot(self, store: MetricStore, engine: ScoringEngine):
        await fill(store, _with_power([100.0, 200.0, 300.0, 400.0, 500.0, 600.0]))
        snap = await engine.analyze("srv-1")
        assert snap.sample_count == 6
        assert snap.mean == pytest.approx(350.0)
        assert snap.median == pytest.approx(350.0)
        assert snap.min == 100.0
        assert snap.max == 600.0
        assert snap.stddev == pytest.approx(float(np.std([100, 200, 300, 400, 500, 600])))
        assert snap.trend is Trend.increasing
        assert snap.peak_usage_time == NOW + timedelta(minutes=5)
        assert 0 <= snap.efficiency_score <= 100

    async def test_insufficient_data(self, store: MetricStore, engine: ScoringEngine):
        await fill(store, make_samples("srv-1", 4))
        with pytest.raises(InsufficientDataError) as excinfo:
            await engine.analyze("srv-1")
        assert excinfo.value.available == 4
        assert excinfo.value.required == 5

    async def test_unknown_server(self, engine: ScoringEngine):
        with pytest.raises(NotFoundError):
            await engine.analyze("ghost")

    async def test_eco_score_of_unknown_server_is_zero(self, engine: ScoringEngine):
        assert await engine.eco_score("ghost") == 0.0


class TestColors:
    @pytest.mark.parametrize("score, color", [(95, "green"), (80, "green"), (60, "yellow"), (10, "red")])
    def test_score_to_color(self, score, color):
        assert score_to_color(score) == color
