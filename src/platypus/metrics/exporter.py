# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Prometheus gauges mirroring the latest incorporated sample per server."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Gauge, generate_latest

from platypus.data.models import Sample

_LABELS = ["server_id", "region"]


class MetricGauges:
    """Per-server gauges held in a registry private to one store."""

    def __init__(self) -> None:
        self.registry = CollectorRegistry()
        self.power_usage = Gauge(
            "platypus_server_power_usage_watts",
            "Current power usage in watts",
            _LABELS,
            registry=self.registry,
        )
        self.carbon_footprint = Gauge(
            "platypus_server_carbon_footprint_kg",
            "Current carbon footprint in kg CO2",
            _LABELS,
            registry=self.registry,
        )
        self.cpu_usage = Gauge(
            "platypus_server_cpu_usage_percent",
            "Current CPU usage percentage",
            _LABELS,
            registry=self.registry,
        )
        self.memory_usage = Gauge(
            "platypus_server_memory_usage_percent",
            "Current memory usage percentage",
            _LABELS,
            registry=self.registry,
        )

    def observe(self, server_id: str, region: str, sample: Sample) -> None:
        labels = {"server_id": server_id, "region": region}
        self.power_usage.labels(**labels).set(sample.power_usage)
        self.carbon_footprint.labels(**labels).set(sample.carbon_footprint)
        self.cpu_usage.labels(**labels).set(sample.cpu_usage)
        self.memory_usage.labels(**labels).set(sample.memory_usage)

    def export(self) -> bytes:
        return generate_latest(self.registry)
