# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Shared test fixtures for the platypus test suite."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable

import pytest

from platypus.config import AnalyzerConfig, CollectorConfig
from platypus.data.models import Container, Sample, Server
from platypus.errors import CollaboratorError
from platypus.metrics.store import MetricStore
from platypus.scoring.engine import ScoringEngine

NOW = datetime(2025, 3, 3, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = NOW) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


class FakeProvider:
    """In-memory fleet with recorded relocations and failure injection."""

    def __init__(self, servers: list[Server] | None = None, delay: float = 0.0) -> None:
        self.servers: list[Server] = list(servers or [])
        self.containers: dict[str, Container] = {}
        self.fail: set[str] = set()
        self.fail_inventory = False
        self.relocations: list[tuple[str, str, str]] = []
        self.attempts: list[str] = []
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0
        self.samples: dict[str, list[Sample]] = {}

    def add_server(self, server_id: str, region: str = "eu-west-1") -> Server:
        server = Server(id=server_id, provider="sim", region=region, instance_type="m5.large")
        self.servers.append(server)
        return server

    def add_container(
        self, container_id: str, server_id: str, service: str = "web", power: float = 100.0
    ) -> Container:
        container = Container(
            id=container_id, server_id=server_id, service_name=service, power_usage=power
        )
        self.containers[container_id] = container
        return container

    async def list_servers(self) -> list[Server]:
        if self.fail_inventory:
            raise CollaboratorError("inventory down")
        return list(self.servers)

    async def list_containers(self, server_id: str) -> list[Container]:
        return [c for c in self.containers.values() if c.server_id == server_id]

    async def relocate(self, container_id: str, source_server_id: str, target_server_id: str) -> None:
        self.attempts.append(container_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if container_id in self.fail:
                raise CollaboratorError(f"cannot move {container_id}")
            container = self.containers[container_id]
            self.containers[container_id] = container.model_copy(
                update={"server_id": target_server_id}
            )
            self.relocations.append((container_id, source_server_id, target_server_id))
        finally:
            self.in_flight -= 1

    async def fetch_samples(self, server: Server, since: datetime) -> list[Sample]:
        return [s for s in self.samples.get(server.id, []) if s.timestamp > since]


def make_samples(
    server_id: str,
    count: int,
    cpu: float = 70.0,
    power: float = 100.0,
    carbon: float = 0.0,
    end: datetime = NOW,
    step: timedelta = timedelta(minutes=1),
) -> list[Sample]:
    """*count* identical samples ending at *end*, oldest first."""
    start = end - step * (count - 1)
    return [
        Sample(
            server_id=server_id,
            timestamp=start + step * i,
            cpu_usage=cpu,
            memory_usage=40.0,
            power_usage=power,
            carbon_footprint=carbon,
        )
        for i in range(count)
    ]


async def fill(store: MetricStore, samples: list[Sample], region: str = "default") -> None:
    """Ingest *samples* and incorporate them immediately."""
    for sample in samples:
        store.ingest(sample.server_id, sample, region=region)
    await store.flush()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store(clock: FakeClock) -> MetricStore:
    return MetricStore(
        CollectorConfig(retention_period=timedelta(hours=1), buffer_size=500, batch_size=50),
        clock=clock,
    )


@pytest.fixture()
def engine(store: MetricStore) -> ScoringEngine:
    return ScoringEngine(AnalyzerConfig(min_data_points=5), store)


@pytest.fixture()
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture()
def sample_factory() -> Callable[..., list[Sample]]:
    return make_samples
