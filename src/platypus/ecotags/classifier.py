# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Eco-tag classifier: labels services from their host's samples."""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

import numpy as np

from platypus.config import EcoTagConfig
from platypus.data.models import Container, EcoTagDefinition, Sample, ServiceEcoProfile, utcnow
from platypus.ecotags.tags import TagInputs, TagRule, build_rules, peak_active_ratio, unknown_overrides
from platypus.errors import CollaboratorError, NotFoundError
from platypus.metrics.store import MetricStore
from platypus.providers.base import FleetProvider
from platypus.scoring.engine import ScoringEngine
from platypus.scoring.thresholds import NEUTRAL_PROFILE_SCORE

logger = logging.getLogger(__name__)


class TagClassifier:
    """Maintains one :class:`ServiceEcoProfile` per service."""

    def __init__(
        self,
        config: EcoTagConfig,
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
        self.rules: list[TagRule] = build_rules(config)
        self._profiles: dict[str, ServiceEcoProfile] = {}
        self._lock = asyncio.Lock()
        for name in unknown_overrides(config):
            logger.warning("Ignoring override for unknown eco tag '%s'", name)

    @property
    def definitions(self) -> list[EcoTagDefinition]:
        return [rule.definition for rule in self.rules]

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def classify(self, service_name: str, samples: Sequence[Sample]) -> ServiceEcoProfile:
        """Evaluate every rule against *samples* and build the profile.

        The profile score is the weight-averaged score of the activated
        tags, or :data:`NEUTRAL_PROFILE_SCORE` when none activates.
        """
        inputs = TagInputs(
            eco_score=self.engine.calculate_eco_score(samples),
            avg_power=float(np.mean([s.power_usage for s in samples])) if samples else 0.0,
            avg_carbon=float(np.mean([s.carbon_footprint for s in samples])) if samples else 0.0,
            peak_active_ratio=peak_active_ratio(samples),
        )

        tags: list[str] = []
        weighted = 0.0
        total_weight = 0.0
        for rule in self.rules:
            if rule.matches(inputs):
                tags.append(rule.name)
                weighted += rule.definition.score * rule.definition.weight
                total_weight += rule.definition.weight

        eco_score = weighted / total_weight if total_weight > 0 else NEUTRAL_PROFILE_SCORE
        return ServiceEcoProfile(
            service_name=service_name,
            tags=tags,
            eco_score=eco_score,
            power_usage=inputs.avg_power,
            carbon_footprint=inputs.avg_carbon,
            last_update=self._clock(),
        )

    async def analyze_container(self, container: Container) -> ServiceEcoProfile | None:
        """Profile for the container's service, or None with too little data."""
        try:
            samples = await self.store.query(container.server_id)
        except NotFoundError:
            return None
        if len(samples) < self.config.min_data_points:
            logger.debug(
                "Skipping %s: %d of %d samples on %s",
                container.service_name, len(samples),
                self.config.min_data_points, container.server_id,
            )
            return None
        return self.classify(container.service_name, samples)

    async def update_profiles(self) -> list[ServiceEcoProfile]:
        """Reclassify every service reachable through the fleet inventory.

        When several containers belong to one service, the last container
        processed determines the stored profile.
        """
        try:
            servers = await self.provider.list_servers()
        except CollaboratorError as exc:
            logger.warning("Tag update skipped this cycle: %s", exc)
            return []

        updated: list[ServiceEcoProfile] = []
        for server in servers:
            try:
                containers = await self.provider.list_containers(server.id)
            except CollaboratorError as exc:
                logger.warning("Cannot list containers on %s: %s", server.id, exc)
                continue
            for container in containers:
                profile = await self.analyze_container(container)
                if profile is None:
                    continue
                async with self._lock:
                    self._profiles[profile.service_name] = profile
                updated.append(profile)

        if updated:
            logger.info("Updated %d eco profiles", len(updated))
        return updated

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_profile(self, service_name: str) -> ServiceEcoProfile:
        async with self._lock:
            profile = self._profiles.get(service_name)
        if profile is None:
            raise NotFoundError(f"profile not found for service: {service_name}")
        return profile

    async def all_profiles(self) -> list[ServiceEcoProfile]:
        async with self._lock:
            return sorted(self._profiles.values(), key=lambda p: p.service_name)
