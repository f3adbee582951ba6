# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Trend and seasonality forecasting (advisory)."""

from platypus.forecast.predictor import Forecaster

__all__ = ["Forecaster"]
