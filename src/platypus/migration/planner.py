# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Migration planner.

A planning pass ranks the fleet by eco-score and, for every container on
an underperforming server, records at most one :class:`MigrationPlan`
towards the server that saves the most power.  An execution pass runs the
recorded plans in priority order under a hard concurrency cap.  Plans
that succeed are retired; plans that fail stay registered unchanged and
are retried on the next cycle.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Sequence

from platypus.config import PlannerConfig
from platypus.data.models import (
    Container,
    MigrationPlan,
    RelocationOutcome,
    Server,
    utcnow,
)
from platypus.errors import CollaboratorError, NotFoundError
from platypus.metrics.store import MetricStore
from platypus.providers.base import FleetProvider
from platypus.scoring.engine import ScoringEngine
from platypus.scoring.thresholds import UNDERPERFORMING_MAX

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Cost model
# ---------------------------------------------------------------------------

BASE_DOWNTIME = timedelta(seconds=30)
CROSS_REGION_PENALTY = timedelta(seconds=60)
LONG_DOWNTIME_PENALTY = 2
MIN_PRIORITY = 1
MAX_PRIORITY = 10


def estimate_power_saving(power_usage: float, source_score: float, target_score: float) -> float:
    """Watts saved moving a container drawing *power_usage* between servers.

    The container is assumed to draw in proportion to its host's eco-score,
    so the saving is ``power * (1 - target / source)``.  A source scoring 0
    yields no saving.
    """
    if source_score <= 0:
        return 0.0
    return power_usage * (1.0 - target_score / source_score)


def estimate_downtime(source: Server, target: Server) -> timedelta:
    """Fixed relocation cost plus a penalty when crossing regions."""
    downtime = BASE_DOWNTIME
    if source.region != target.region:
        downtime += CROSS_REGION_PENALTY
    return downtime


def calculate_priority(
    power_saving: float, downtime: timedelta, min_power_saving: float, max_downtime: timedelta
) -> int:
    """Priority in ``[1, 10]`` scaled from the saving relative to the minimum."""
    priority = round(power_saving / min_power_saving * 10)
    if downtime > max_downtime / 2:
        priority -= LONG_DOWNTIME_PENALTY
    return max(MIN_PRIORITY, min(MAX_PRIORITY, priority))


# ---------------------------------------------------------------------------
# Planner
# ---------------------------------------------------------------------------

class MigrationPlanner:
    """Owns the active-plans registry and the relocation concurrency cap.

    Usage::

        planner = MigrationPlanner(PlannerConfig(), store, engine, provider)
        created, outcomes = await planner.run_cycle()
    """

    def __init__(
        self,
        config: PlannerConfig,
        store: MetricStore,
        engine: ScoringEngine,
        provider: FleetProvider,
        clock=utcnow,
    ) -> None:
        self.config = config
        self.store = store
        self.engine = engine
        self.provider = provider
        self._clock = clock
        self._plans: dict[str, MigrationPlan] = {}
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Registry access
    # ------------------------------------------------------------------

    async def active_plans(self) -> list[MigrationPlan]:
        """Snapshot of registered plans, highest priority first."""
        async with self._lock:
            plans = list(self._plans.values())
        return sorted(plans, key=lambda p: p.priority, reverse=True)

    async def get_plan(self, container_id: str) -> MigrationPlan:
        async with self._lock:
            plan = self._plans.get(container_id)
        if plan is None:
            raise NotFoundError(f"no active plan for container: {container_id}")
        return plan

    async def _has_plan(self, container_id: str) -> bool:
        async with self._lock:
            return container_id in self._plans

    async def _register(self, plan: MigrationPlan) -> bool:
        async with self._lock:
            return self._plans.setdefault(plan.container_id, plan) is plan

    async def _retire(self, plan: MigrationPlan) -> None:
        async with self._lock:
            if self._plans.get(plan.container_id) is plan:
                del self._plans[plan.container_id]

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    async def _scores(self, servers: Sequence[Server]) -> dict[str, float]:
        """Eco-score per inventoried server; 0 for servers without samples."""
        return {server.id: await self.engine.eco_score(server.id) for server in servers}

    def find_best_plan(
        self,
        container: Container,
        source: Server,
        servers: Sequence[Server],
        scores: dict[str, float],
    ) -> MigrationPlan | None:
        """Best qualifying relocation of *container*, or None.

        A candidate qualifies when its saving reaches ``min_power_saving``
        and its downtime stays within ``max_downtime``; the largest saving
        wins and ties keep the first candidate.
        """
        source_score = scores[source.id]
        best: MigrationPlan | None = None
        for target in servers:
            if target.id == source.id:
                continue
            saving = estimate_power_saving(container.power_usage, source_score, scores[target.id])
            if saving < self.config.min_power_saving:
                continue
            downtime = estimate_downtime(source, target)
            if downtime > self.config.max_downtime:
                continue
            if best is None or saving > best.power_saving:
                best = MigrationPlan(
                    container_id=container.id,
                    source_server_id=source.id,
                    target_server_id=target.id,
                    priority=calculate_priority(
                        saving, downtime, self.config.min_power_saving, self.config.max_downtime
                    ),
                    power_saving=saving,
                    downtime_estimate=downtime,
                    created_at=self._clock(),
                )
        return best

    async def plan(self) -> list[MigrationPlan]:
        """Run one planning pass; returns the plans it registered."""
        try:
            servers = await self.provider.list_servers()
        except CollaboratorError as exc:
            logger.warning("Planning skipped this cycle: %s", exc)
            return []

        scores = await self._scores(servers)
        ranked = sorted(servers, key=lambda s: scores[s.id], reverse=True)

        created: list[MigrationPlan] = []
        for source in ranked:
            if scores[source.id] > UNDERPERFORMING_MAX:
                continue
            try:
                containers = await self.provider.list_containers(source.id)
            except CollaboratorError as exc:
                logger.warning("Cannot list containers on %s: %s", source.id, exc)
                continue

            for container in containers:
                if await self._has_plan(container.id):
                    continue
                plan = self.find_best_plan(container, source, servers, scores)
                if plan is not None and await self._register(plan):
                    created.append(plan)
                    logger.info(
                        "Planned %s: %s -> %s (saving %.1f W, priority %d)",
                        plan.container_id, plan.source_server_id,
                        plan.target_server_id, plan.power_saving, plan.priority,
                    )
        return created

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(self) -> list[RelocationOutcome]:
        """Execute every active plan, at most ``concurrent_migrations`` at a time."""
        plans = await self.active_plans()
        if not plans:
            return []
        gate = asyncio.Semaphore(self.config.concurrent_migrations)

        async def run(plan: MigrationPlan) -> RelocationOutcome:
            async with gate:
                return await self._execute_one(plan)

        outcomes = await asyncio.gather(*(run(plan) for plan in plans))
        succeeded = sum(1 for o in outcomes if o.success)
        logger.info("Executed %d plans: %d succeeded, %d kept for retry",
                    len(outcomes), succeeded, len(outcomes) - succeeded)
        return list(outcomes)

    async def _execute_one(self, plan: MigrationPlan) -> RelocationOutcome:
        error: str | None = None
        try:
            await self.provider.relocate(
                plan.container_id, plan.source_server_id, plan.target_server_id
            )
        except CollaboratorError as exc:
            error = exc.message
            logger.warning("Migration of %s failed: %s", plan.container_id, exc)
        except Exception as exc:
            error = str(exc)
            logger.exception("Unexpected error migrating %s", plan.container_id)
        else:
            await self._retire(plan)
            logger.debug("Retired plan for %s", plan.container_id)

        return RelocationOutcome(
            container_id=plan.container_id,
            source_server_id=plan.source_server_id,
            target_server_id=plan.target_server_id,
            success=error is None,
            error=error,
        )

    async def run_cycle(self) -> tuple[list[MigrationPlan], list[RelocationOutcome]]:
        """Plan, then execute."""
        created = await self.plan()
        outcomes = await self.execute()
        return created, outcomes

    def __repr__(self) -> str:
        return (
            f"MigrationPlanner(plans={len(self._plans)}, "
            f"concurrency={self.config.concurrent_migrations})"
        )
