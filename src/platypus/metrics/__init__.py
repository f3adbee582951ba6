# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Metric ingestion, retention and export."""

from platypus.metrics.store import MetricStore

__all__ = ["MetricStore"]
