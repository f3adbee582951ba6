# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""In-memory simulated fleet.

Generates a seeded fleet of servers and containers and performs
relocations by moving containers between servers, so the control loops
can run end to end without cloud credentials or an orchestrator.

All randomness flows through a seeded :class:`numpy.random.Generator`
so that identical seeds always produce identical fleets.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

import numpy as np

from platypus.config import ProviderConfig
from platypus.data.models import Container, Sample, Server, utcnow
from platypus.errors import CollaboratorError
from platypus.providers import register_provider
from platypus.providers.power_models import AWS_INSTANCE_POWER, carbon_for_interval, estimate_power

logger = logging.getLogger(__name__)

_SIM_REGIONS: list[str] = ["us-east-1", "us-west-2", "eu-west-1", "eu-north-1"]

_SIM_SERVICES: list[str] = [
    "checkout", "search", "recommendations", "billing", "auth",
    "media-transcode", "analytics", "notifications",
]

CPU_NOISE_STD = 5.0
POWER_NOISE_STD = 0.03   # relative
MAX_SAMPLES_PER_POLL = 120


@dataclass
class _SimServer:
    server: Server
    tdp_watts: float
    base_cpu: float


class SimulatedFleetProvider:
    """Seeded fake fleet satisfying :class:`~platypus.providers.base.FleetProvider`.

    Options (``ProviderConfig.options``):
        seed: RNG seed.
        servers: number of servers to generate (default 8).
        regions: list of regions to spread servers over.
        containers_per_server: ``[min, max]`` containers (default ``[1, 4]``).
        sample_interval_seconds: spacing of generated samples (default 60).
        fail_relocations: container ids whose relocation always fails.
    """

    def __init__(self, config: ProviderConfig | None = None) -> None:
        self.config = config or ProviderConfig(type="sim")
        options = self.config.options
        self._rng = np.random.default_rng(options.get("seed"))
        self._regions: list[str] = list(options.get("regions", _SIM_REGIONS))
        self._sample_interval = timedelta(seconds=float(options.get("sample_interval_seconds", 60)))
        self.fail_relocations: set[str] = set(options.get("fail_relocations", []))
        self.fail_inventory = False
        self.relocations: list[tuple[str, str, str]] = []

        self._servers: dict[str, _SimServer] = {}
        self._containers: dict[str, Container] = {}
        self._generate(
            int(options.get("servers", 8)),
            tuple(options.get("containers_per_server", (1, 4))),
        )

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def _generate(self, count: int, containers_per_server: tuple[int, int]) -> None:
        instance_types = sorted(AWS_INSTANCE_POWER)
        low, high = containers_per_server
        for i in range(count):
            region = str(self._rng.choice(self._regions))
            instance_type = str(self._rng.choice(instance_types))
            server = Server(
                id=f"sim-{i:03d}",
                provider="sim",
                region=region,
                instance_type=instance_type,
            )
            self._servers[server.id] = _SimServer(
                server=server,
                tdp_watts=estimate_power("aws", instance_type),
                base_cpu=float(self._rng.uniform(5.0, 95.0)),
            )
            for j in range(int(self._rng.integers(low, high + 1))):
                self.add_container(
                    Container(
                        id=f"{server.id}-c{j}",
                        server_id=server.id,
                        service_name=str(self._rng.choice(_SIM_SERVICES)),
                        power_usage=0.0,
                    )
                )
        self._rebalance_power()

    def _rebalance_power(self) -> None:
        """Attribute each server's draw evenly to the containers it hosts."""
        for sim in self._servers.values():
            hosted = [c for c in self._containers.values() if c.server_id == sim.server.id]
            if not hosted:
                continue
            share = self._server_power(sim, sim.base_cpu) / len(hosted)
            for c in hosted:
                self._containers[c.id] = c.model_copy(update={"power_usage": round(share, 2)})

    @staticmethod
    def _server_power(sim: _SimServer, cpu: float) -> float:
        return sim.tdp_watts * (0.3 + 0.7 * cpu / 100.0)

    def add_container(self, container: Container) -> None:
        self._containers[container.id] = container

    def set_baseline_cpu(self, server_id: str, cpu: float) -> None:
        """Override a server's baseline utilisation (test and demo hook)."""
        self._servers[server_id].base_cpu = cpu

    # ------------------------------------------------------------------
    # Protocol methods
    # ------------------------------------------------------------------

    async def list_servers(self) -> list[Server]:
        if self.fail_inventory:
            raise CollaboratorError("simulated inventory outage")
        return [sim.server for sim in self._servers.values()]

    async def list_containers(self, server_id: str) -> list[Container]:
        if server_id not in self._servers:
            raise CollaboratorError(f"unknown server: {server_id}")
        return [c for c in self._containers.values() if c.server_id == server_id]

    async def relocate(
        self, container_id: str, source_server_id: str, target_server_id: str
    ) -> None:
        if container_id in self.fail_relocations:
            raise CollaboratorError(f"simulated relocation failure for {container_id}")
        container = self._containers.get(container_id)
        if container is None:
            raise CollaboratorError(f"unknown container: {container_id}")
        if target_server_id not in self._servers:
            raise CollaboratorError(f"unknown target server: {target_server_id}")
        if container.server_id == target_server_id:
            return
        if container.server_id != source_server_id:
            raise CollaboratorError(
                f"{container_id} is on {container.server_id}, not {source_server_id}"
            )
        self._containers[container_id] = container.model_copy(
            update={"server_id": target_server_id}
        )
        self.relocations.append((container_id, source_server_id, target_server_id))
        logger.debug("Moved %s from %s to %s", container_id, source_server_id, target_server_id)

    async def fetch_samples(self, server: Server, since: datetime) -> list[Sample]:
        return self.generate_samples(server.id, since, utcnow())

    # ------------------------------------------------------------------
    # Sample synthesis
    # ------------------------------------------------------------------

    def generate_samples(self, server_id: str, start: datetime, end: datetime) -> list[Sample]:
        """Samples for *server_id* spaced by the sample interval in ``(start, end]``."""
        sim = self._servers.get(server_id)
        if sim is None:
            raise CollaboratorError(f"unknown server: {server_id}")

        hours = self._sample_interval.total_seconds() / 3600.0
        samples: list[Sample] = []
        ts = start + self._sample_interval
        while ts <= end and len(samples) < MAX_SAMPLES_PER_POLL:
            cpu = float(np.clip(self._rng.normal(sim.base_cpu, CPU_NOISE_STD), 0.0, 100.0))
            power = self._server_power(sim, cpu) * float(
                max(0.0, self._rng.normal(1.0, POWER_NOISE_STD))
            )
            samples.append(
                Sample(
                    server_id=server_id,
                    timestamp=ts,
                    cpu_usage=round(cpu, 2),
                    memory_usage=round(float(np.clip(self._rng.normal(50.0, 10.0), 0.0, 100.0)), 2),
                    power_usage=round(power, 2),
                    carbon_footprint=round(
                        carbon_for_interval(power, sim.server.region, hours), 6
                    ),
                )
            )
            ts += self._sample_interval
        return samples

    def generate_history(
        self, now: datetime, count: int, interval: timedelta | None = None
    ) -> dict[str, list[Sample]]:
        """*count* back-filled samples per server ending at *now*."""
        step = interval or self._sample_interval
        previous, self._sample_interval = self._sample_interval, step
        try:
            start = now - step * count
            return {
                server_id: self.generate_samples(server_id, start, now)
                for server_id in self._servers
            }
        finally:
            self._sample_interval = previous

    def __repr__(self) -> str:
        return (
            f"SimulatedFleetProvider(servers={len(self._servers)}, "
            f"containers={len(self._containers)})"
        )


register_provider("sim", SimulatedFleetProvider)
