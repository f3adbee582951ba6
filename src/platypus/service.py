# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Fleet controller: wires the components and runs their periodic tasks.

Every component gets its own long-lived ``asyncio`` task on its own
interval.  All tasks share one :class:`asyncio.Event`; setting it stops
each loop after its current tick, so relocations already in flight
finish or fail on their own.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Mapping, Sequence

from pydantic import BaseModel, Field

from platypus.config import PlatypusConfig
from platypus.data.models import CooldownState, RelocationOutcome, Sample, ScalingAction, utcnow
from platypus.ecotags.classifier import TagClassifier
from platypus.errors import BufferFullError, CollaboratorError
from platypus.forecast.predictor import Forecaster
from platypus.metrics.store import MetricStore
from platypus.migration.planner import MigrationPlanner
from platypus.providers import create_provider
from platypus.providers.base import FleetProvider
from platypus.scaling.autoscaler import Autoscaler
from platypus.scoring.engine import ScoringEngine

logger = logging.getLogger(__name__)

Tick = Callable[[], Awaitable[Any]]


async def run_periodic(name: str, interval: timedelta, tick: Tick, stop: asyncio.Event) -> None:
    """Call *tick* every *interval* until *stop* is set.

    A tick that raises is logged and the loop carries on with the next
    interval.
    """
    seconds = interval.total_seconds()
    logger.info("%s task started (every %s)", name, interval)
    while not stop.is_set():
        try:
            await asyncio.wait_for(stop.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
        else:
            break
        try:
            await tick()
        except Exception:
            logger.exception("%s tick failed", name)
    logger.info("%s task stopped", name)


class ControllerStatus(BaseModel):
    """Point-in-time view of the running controller."""

    running: bool
    tasks: dict[str, bool] = Field(default_factory=dict, description="Task name -> alive")
    servers: int = 0
    pending_batches: int = 0
    rejected_samples: int = 0
    active_plans: int = 0
    profiles: int = 0
    forecast_models: int = 0
    cooldown: CooldownState = Field(default_factory=CooldownState)


class FleetController:
    """Owns every component and their background tasks.

    Usage::

        controller = FleetController(load_config("configs/platypus.yaml"))
        await controller.start()
        ...
        await controller.stop()
    """

    def __init__(
        self,
        config: PlatypusConfig | None = None,
        provider: FleetProvider | None = None,
        clock=utcnow,
    ) -> None:
        self.config = config or PlatypusConfig()
        self.provider = provider or create_provider(self.config.provider)
        self._clock = clock

        self.store = MetricStore(self.config.collector, clock=clock)
        self.engine = ScoringEngine(self.config.analyzer, self.store)
        self.autoscaler = Autoscaler(
            self.config.autoscaler, self.store, self.engine, self.provider, clock=clock
        )
        self.planner = MigrationPlanner(
            self.config.migration_planner, self.store, self.engine, self.provider, clock=clock
        )
        self.classifier = TagClassifier(
            self.config.ecotags, self.store, self.engine, self.provider, clock=clock
        )
        self.forecaster = Forecaster(
            self.config.ml_predictor,
            self.store,
            smoothing_factor=self.config.analyzer.smoothing_factor,
            clock=clock,
        )

        self._stop = asyncio.Event()
        self._tasks: dict[str, asyncio.Task] = {}
        self._last_polled: dict[str, datetime] = {}

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    async def poll_metrics(self) -> int:
        """Pull new samples from the provider into the store; returns samples accepted."""
        try:
            servers = await self.provider.list_servers()
        except CollaboratorError as exc:
            logger.warning("Metric poll skipped this cycle: %s", exc)
            return 0
        now = self._clock()
        accepted = 0
        for server in servers:
            since = self._last_polled.get(server.id, now - self.config.collector.collection_interval)
            try:
                samples = await self.provider.fetch_samples(server, since)
            except CollaboratorError as exc:
                logger.warning("Polling %s failed: %s", server.id, exc)
                continue
            for sample in samples:
                try:
                    self.store.ingest(server.id, sample, region=server.region)
                except BufferFullError:
                    # resume from the last accepted sample next time
                    break
                self._last_polled[server.id] = sample.timestamp
                accepted += 1
        logger.debug("Polled %d samples from %d servers", accepted, len(servers))
        return accepted

    async def evict(self) -> int:
        return await self.store.evict(self._clock())

    async def migrate(self) -> None:
        await self.planner.run_cycle()

    async def run_once(self) -> tuple[list[ScalingAction], list[RelocationOutcome]]:
        """Run every tick once in pipeline order (used by ``simulate``).

        Returns the autoscaler's actions and the planner's relocation outcomes.
        """
        await self.store.flush()
        await self.evict()
        actions = await self.autoscaler.evaluate()
        _, outcomes = await self.planner.run_cycle()
        await self.classifier.update_profiles()
        if self.config.ml_predictor.enabled:
            await self.forecaster.update_models()
        return actions, outcomes

    async def backfill(
        self,
        history: Mapping[str, Sequence[Sample]],
        region: Mapping[str, str] | None = None,
    ) -> int:
        """Load historical samples, flushing whenever the buffer fills."""
        region = region or {}
        loaded = 0
        for server_id, samples in history.items():
            for sample in samples:
                label = region.get(server_id, "default")
                try:
                    self.store.ingest(server_id, sample, region=label)
                except BufferFullError:
                    await self.store.flush()
                    self.store.ingest(server_id, sample, region=label)
                loaded += 1
            if samples:
                self._last_polled[server_id] = samples[-1].timestamp
        await self.store.flush()
        return loaded

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _schedule(self, name: str, interval: timedelta, tick: Tick) -> None:
        self._tasks[name] = asyncio.create_task(
            run_periodic(name, interval, tick, self._stop), name=f"platypus-{name}"
        )

    async def start(self, poll: bool = True) -> None:
        """Start every periodic task; returns immediately."""
        if self._tasks:
            raise RuntimeError("controller already started")
        self._stop.clear()
        cfg = self.config

        if cfg.ml_predictor.enabled:
            await self.forecaster.load_models()

        self._tasks["drain"] = asyncio.create_task(
            self.store.run_drain(self._stop), name="platypus-drain"
        )
        self._schedule("evict", cfg.collector.collection_interval, self.evict)
        if poll:
            self._schedule("poll", cfg.collector.collection_interval, self.poll_metrics)
        self._schedule("autoscale", cfg.autoscaler.evaluation_interval, self.autoscaler.evaluate)
        self._schedule("migrate", cfg.migration_planner.planning_interval, self.migrate)
        self._schedule("classify", cfg.ecotags.update_interval, self.classifier.update_profiles)
        if cfg.ml_predictor.enabled:
            self._schedule("forecast", cfg.ml_predictor.update_interval, self.forecaster.update_models)
        logger.info("Fleet controller started with %d tasks", len(self._tasks))

    async def stop(self, timeout: float = 30.0) -> None:
        """Signal shutdown, wait for the tasks, then flush and persist."""
        if not self._tasks:
            return
        self._stop.set()
        _, pending = await asyncio.wait(self._tasks.values(), timeout=timeout)
        for task in pending:
            logger.warning("Cancelling %s after %.0fs", task.get_name(), timeout)
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._tasks.clear()

        await self.store.flush()
        if self.config.ml_predictor.enabled:
            await self.forecaster.save_models()
        logger.info("Fleet controller stopped")

    @property
    def running(self) -> bool:
        return bool(self._tasks) and not self._stop.is_set()

    async def status(self) -> ControllerStatus:
        return ControllerStatus(
            running=self.running,
            tasks={name: not task.done() for name, task in self._tasks.items()},
            servers=len(await self.store.server_ids()),
            pending_batches=self.store.pending(),
            rejected_samples=self.store.rejected,
            active_plans=len(await self.planner.active_plans()),
            profiles=len(await self.classifier.all_profiles()),
            forecast_models=len(self.forecaster),
            cooldown=self.autoscaler.cooldown,
        )
