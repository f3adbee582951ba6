# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""AWS EC2 fleet provider.

Uses **boto3** to enumerate running EC2 instances and pull CloudWatch
CPU utilisation.  Power is estimated from the instance-type table and
modulated by utilisation; carbon follows from the region's grid
intensity.

EC2 has no notion of containers, so container enumeration and relocation
are delegated to an *orchestrator* object (anything with async
``list_containers`` and ``relocate`` methods).  Without one, those calls
raise :class:`CollaboratorError`.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any

from platypus.config import ProviderConfig
from platypus.data.models import Container, Sample, Server, utcnow
from platypus.errors import CollaboratorError
from platypus.providers import check_dependency, register_provider
from platypus.providers.power_models import carbon_for_interval, estimate_power

logger = logging.getLogger(__name__)

_RUNNING = [{"Name": "instance-state-name", "Values": ["running"]}]


class AWSFleetProvider:
    """Fleet inventory backed by EC2 and CloudWatch."""

    def __init__(self, config: ProviderConfig, orchestrator: Any | None = None) -> None:
        check_dependency("boto3", "pip install 'platypus[aws]'")
        import boto3  # type: ignore[import-untyped]

        self.config = config
        self.options: dict[str, Any] = config.options
        self._region: str = self.options.get("region", "us-east-1")
        self._filters = self.options.get("filters", _RUNNING)
        self._period_minutes = int(self.options.get("period_minutes", 5))
        self._orchestrator = orchestrator

        session = boto3.Session(region_name=self._region)
        self._ec2 = session.client("ec2")
        self._cloudwatch = session.client("cloudwatch")
        self._instance_types: dict[str, str] = {}

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------

    async def list_servers(self) -> list[Server]:
        try:
            return await asyncio.to_thread(self._describe_instances)
        except Exception as exc:
            raise CollaboratorError("EC2 inventory failed", details=str(exc)) from exc

    def _describe_instances(self) -> list[Server]:
        servers: list[Server] = []
        paginator = self._ec2.get_paginator("describe_instances")
        for page in paginator.paginate(Filters=self._filters):
            for reservation in page["Reservations"]:
                for instance in reservation["Instances"]:
                    servers.append(self._parse_instance(instance))
        logger.debug("Discovered %d EC2 instances in %s", len(servers), self._region)
        return servers

    def _parse_instance(self, instance: dict[str, Any]) -> Server:
        instance_id: str = instance["InstanceId"]
        instance_type: str = instance["InstanceType"]
        self._instance_types[instance_id] = instance_type
        return Server(
            id=instance_id,
            provider="aws",
            region=self._region,
            instance_type=instance_type,
        )

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    async def fetch_samples(self, server: Server, since: datetime) -> list[Sample]:
        try:
            return await asyncio.to_thread(self._cloudwatch_samples, server, since)
        except Exception as exc:
            raise CollaboratorError(
                f"CloudWatch query failed for {server.id}", details=str(exc)
            ) from exc

    def _cloudwatch_samples(self, server: Server, since: datetime) -> list[Sample]:
        now = utcnow()
        period = timedelta(minutes=self._period_minutes)
        resp = self._cloudwatch.get_metric_statistics(
            Namespace="AWS/EC2",
            MetricName="CPUUtilization",
            Dimensions=[{"Name": "InstanceId", "Value": server.id}],
            StartTime=max(since, now - timedelta(hours=3)),
            EndTime=now,
            Period=int(period.total_seconds()),
            Statistics=["Average"],
        )
        tdp = estimate_power("aws", server.instance_type)
        hours = period.total_seconds() / 3600.0
        samples: list[Sample] = []
        for point in sorted(resp.get("Datapoints", []), key=lambda p: p["Timestamp"]):
            if point["Timestamp"] <= since:
                continue
            cpu = min(100.0, max(0.0, float(point["Average"])))
            power = tdp * (0.3 + 0.7 * cpu / 100.0)
            samples.append(
                Sample(
                    server_id=server.id,
                    timestamp=point["Timestamp"],
                    cpu_usage=cpu,
                    power_usage=round(power, 1),
                    carbon_footprint=carbon_for_interval(power, server.region, hours),
                )
            )
        return samples

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    async def list_containers(self, server_id: str) -> list[Container]:
        if self._orchestrator is None:
            raise CollaboratorError("no orchestrator configured for container enumeration")
        return await self._orchestrator.list_containers(server_id)

    async def relocate(
        self, container_id: str, source_server_id: str, target_server_id: str
    ) -> None:
        if self._orchestrator is None:
            raise CollaboratorError("no orchestrator configured for relocation")
        await self._orchestrator.relocate(container_id, source_server_id, target_server_id)


register_provider("aws", AWSFleetProvider)
