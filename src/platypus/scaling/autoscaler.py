# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Threshold autoscaler with fleet-wide cooldowns.

Each evaluation looks at the most recent sample of every server in the
inventory.  An overloaded server (CPU or power above the high thresholds)
is evacuated to the fleet's most efficient server; an underused server
(CPU below the low threshold) is consolidated onto it unless its own
eco-score already exceeds :data:`EFFICIENT_MIN`.

The two directions deliberately differ in failure handling: scale-up
skips failed relocations and carries on, scale-down aborts the remaining
relocations of that server on the first failure.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Sequence

from platypus.config import AutoscalerConfig
from platypus.data.models import (
    CooldownState,
    RelocationOutcome,
    Sample,
    ScalingAction,
    ScalingDirection,
    ScalingStatus,
    Server,
    utcnow,
)
from platypus.errors import CollaboratorError, NotFoundError, PlatypusError
from platypus.metrics.store import MetricStore
from platypus.providers.base import FleetProvider
from platypus.scoring.engine import ScoringEngine
from platypus.scoring.thresholds import EFFICIENT_MIN

logger = logging.getLogger(__name__)


class Autoscaler:
    """Evacuates hot servers and consolidates cold, inefficient ones."""

    def __init__(
        self,
        config: AutoscalerConfig,
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
        self._cooldown = CooldownState()

    @property
    def cooldown(self) -> CooldownState:
        return self._cooldown.model_copy()

    # ------------------------------------------------------------------
    # Trigger conditions
    # ------------------------------------------------------------------

    def should_scale_up(self, sample: Sample, now: datetime | None = None) -> bool:
        now = now or self._clock()
        last = self._cooldown.last_scale_up
        if last is not None and now - last < self.config.scale_up_cooldown:
            return False
        return (
            sample.cpu_usage > self.config.cpu_threshold_high
            or sample.power_usage > self.config.power_threshold_high
        )

    def should_scale_down(self, sample: Sample, now: datetime | None = None) -> bool:
        now = now or self._clock()
        last = self._cooldown.last_scale_down
        if last is not None and now - last < self.config.scale_down_cooldown:
            return False
        return sample.cpu_usage < self.config.cpu_threshold_low

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    async def evaluate(self) -> list[ScalingAction]:
        """Run one evaluation pass over the whole inventory.

        Per-server failures are recorded as ``failed`` actions; the pass
        always continues with the next server.
        """
        try:
            servers = await self.provider.list_servers()
        except CollaboratorError as exc:
            logger.warning("Autoscaler skipped this cycle: %s", exc)
            return []

        actions: list[ScalingAction] = []
        for server in servers:
            try:
                samples = await self.store.query(server.id)
            except NotFoundError:
                continue
            if not samples:
                continue

            latest = samples[-1]
            now = self._clock()
            if self.should_scale_up(latest, now):
                direction = ScalingDirection.up
            elif self.should_scale_down(latest, now):
                direction = ScalingDirection.down
            else:
                continue

            try:
                if direction is ScalingDirection.up:
                    actions.append(await self.scale_up(server, servers))
                else:
                    actions.append(await self.scale_down(server, servers, samples))
            except PlatypusError as exc:
                logger.warning("Scaling %s for %s failed: %s", direction.value, server.id, exc)
                actions.append(
                    ScalingAction(
                        server_id=server.id,
                        direction=direction,
                        status=ScalingStatus.failed,
                    )
                )
        return actions

    async def find_best_target(
        self, source_id: str, servers: Sequence[Server]
    ) -> Server | None:
        """Highest eco-score server other than *source_id*; None if none scores above 0."""
        best: Server | None = None
        best_score = 0.0
        for server in servers:
            if server.id == source_id:
                continue
            score = await self.engine.eco_score(server.id)
            if score > best_score:
                best, best_score = server, score
        if best is not None:
            logger.debug("Best target for %s is %s (eco-score %.1f)", source_id, best.id, best_score)
        return best

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def scale_up(self, server: Server, servers: Sequence[Server]) -> ScalingAction:
        """Evacuate *server*; individual relocation failures are skipped."""
        target = await self.find_best_target(server.id, servers)
        if target is None:
            logger.info("Scale-up of %s found no target", server.id)
            return ScalingAction(
                server_id=server.id, direction=ScalingDirection.up, status=ScalingStatus.no_target
            )

        outcomes: list[RelocationOutcome] = []
        for container in await self.provider.list_containers(server.id):
            outcomes.append(await self._relocate(container.id, server.id, target.id))

        self._cooldown.last_scale_up = self._clock()
        action = ScalingAction(
            server_id=server.id,
            direction=ScalingDirection.up,
            status=ScalingStatus.completed,
            target_server_id=target.id,
            outcomes=outcomes,
        )
        logger.info(
            "Scaled up %s onto %s: %d relocated, %d failed",
            server.id, target.id, action.relocated, action.failed,
        )
        return action

    async def scale_down(
        self, server: Server, servers: Sequence[Server], samples: Sequence[Sample]
    ) -> ScalingAction:
        """Consolidate *server* unless it is already efficient.

        The first failed relocation aborts the rest and leaves the
        scale-down cooldown untouched.
        """
        own_score = self.engine.calculate_eco_score(samples)
        if own_score > EFFICIENT_MIN:
            logger.debug("Keeping %s in place (eco-score %.1f)", server.id, own_score)
            return ScalingAction(
                server_id=server.id,
                direction=ScalingDirection.down,
                status=ScalingStatus.skipped_efficient,
            )

        target = await self.find_best_target(server.id, servers)
        if target is None:
            logger.info("Scale-down of %s found no target", server.id)
            return ScalingAction(
                server_id=server.id, direction=ScalingDirection.down, status=ScalingStatus.no_target
            )

        outcomes: list[RelocationOutcome] = []
        for container in await self.provider.list_containers(server.id):
            outcome = await self._relocate(container.id, server.id, target.id)
            outcomes.append(outcome)
            if not outcome.success:
                logger.warning(
                    "Aborting scale-down of %s after failed relocation of %s",
                    server.id, container.id,
                )
                return ScalingAction(
                    server_id=server.id,
                    direction=ScalingDirection.down,
                    status=ScalingStatus.aborted,
                    target_server_id=target.id,
                    outcomes=outcomes,
                )

        self._cooldown.last_scale_down = self._clock()
        logger.info("Scaled down %s onto %s (%d containers)", server.id, target.id, len(outcomes))
        return ScalingAction(
            server_id=server.id,
            direction=ScalingDirection.down,
            status=ScalingStatus.completed,
            target_server_id=target.id,
            outcomes=outcomes,
        )

    async def _relocate(self, container_id: str, source_id: str, target_id: str) -> RelocationOutcome:
        error: str | None = None
        try:
            await self.provider.relocate(container_id, source_id, target_id)
        except CollaboratorError as exc:
            error = exc.message
            logger.warning("Relocation of %s to %s failed: %s", container_id, target_id, exc)
        except Exception as exc:
            error = str(exc)
            logger.exception("Unexpected error relocating %s to %s", container_id, target_id)
        return RelocationOutcome(
            container_id=container_id,
            source_server_id=source_id,
            target_server_id=target_id,
            success=error is None,
            error=error,
        )
