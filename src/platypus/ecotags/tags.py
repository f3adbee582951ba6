# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Built-in eco tags and the rule table that activates them.

Each :class:`TagRule` pairs a tag definition with a predicate over
:class:`TagInputs`.  The classifier evaluates the table uniformly, so a
new tag is added by appending a rule here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Sequence

from platypus.config import EcoTagConfig
from platypus.data.models import EcoTagDefinition, Sample

PEAK_HOURS: frozenset[int] = frozenset(range(9, 18))   # 09:00-17:59 UTC


@dataclass(frozen=True)
class TagInputs:
    """Aggregates one service is judged on."""

    eco_score: float
    avg_power: float
    avg_carbon: float
    peak_active_ratio: float | None


def peak_active_ratio(samples: Sequence[Sample]) -> float | None:
    """Share of peak-hour samples with positive power; None without peak samples."""
    in_peak = [s for s in samples if s.timestamp.hour in PEAK_HOURS]
    if not in_peak:
        return None
    active = sum(1 for s in in_peak if s.power_usage > 0)
    return active / len(in_peak)


def _peak_hours(inputs: TagInputs, threshold: float) -> bool:
    ratio = inputs.peak_active_ratio
    return ratio is not None and ratio >= threshold


Predicate = Callable[[TagInputs, float], bool]


@dataclass(frozen=True)
class TagRule:
    definition: EcoTagDefinition
    predicate: Predicate

    @property
    def name(self) -> str:
        return self.definition.name

    def matches(self, inputs: TagInputs) -> bool:
        return self.predicate(inputs, self.definition.threshold)


# ---------------------------------------------------------------------------
# Built-in table
# ---------------------------------------------------------------------------

BUILTIN_RULES: tuple[TagRule, ...] = (
    TagRule(
        EcoTagDefinition(
            name="eco-efficient",
            description="Service shows high energy efficiency",
            score=100, weight=1.0, threshold=80,
        ),
        lambda i, t: i.eco_score >= t,
    ),
    TagRule(
        EcoTagDefinition(
            name="energy-intensive",
            description="Service draws a significant amount of power (W)",
            score=20, weight=1.0, threshold=500,
        ),
        lambda i, t: i.avg_power >= t,
    ),
    TagRule(
        EcoTagDefinition(
            name="carbon-neutral",
            description="Service has a minimal carbon footprint (kg CO2)",
            score=100, weight=1.5, threshold=0.1,
        ),
        lambda i, t: i.avg_carbon <= t,
    ),
    TagRule(
        EcoTagDefinition(
            name="optimizable",
            description="Service has room for optimisation",
            score=50, weight=0.8, threshold=60,
        ),
        lambda i, t: i.eco_score < t,
    ),
    TagRule(
        EcoTagDefinition(
            name="peak-hours",
            description="Service is active during peak hours",
            score=30, weight=0.7, threshold=0.8,
        ),
        _peak_hours,
    ),
)


def build_rules(config: EcoTagConfig | None = None) -> list[TagRule]:
    """Built-in rules with threshold and weight overrides from *config* applied."""
    overrides = config.tags if config is not None else {}
    rules: list[TagRule] = []
    for rule in BUILTIN_RULES:
        override = overrides.get(rule.name)
        if override is None:
            rules.append(rule)
            continue
        update = override.model_dump(exclude_none=True)
        rules.append(TagRule(rule.definition.model_copy(update=update), rule.predicate))
    return rules


def unknown_overrides(config: EcoTagConfig) -> list[str]:
    """Override keys that name no built-in tag."""
    known = {rule.name for rule in BUILTIN_RULES}
    return sorted(set(config.tags) - known)
