# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Rich-markup gauges and sparklines for terminal tables."""

from __future__ import annotations

from typing import Sequence

from platypus.data.models import Trend
from platypus.scoring.thresholds import score_to_color

_BLOCKS = " ▁▂▃▄▅▆▇█"
_FULL = "█"
_EMPTY = "░"

_TREND_MARKUP: dict[Trend, str] = {
    Trend.increasing: "[red]↑ rising[/]",
    Trend.decreasing: "[green]↓ falling[/]",
    Trend.stable: "[dim]→ stable[/]",
}


def eco_gauge(score: float, width: int = 10) -> str:
    """Compact colour-coded eco-score bar, e.g. ``[green]████████░░[/] 82``."""
    clamped = max(0.0, min(100.0, score))
    filled = int(clamped / 100 * width)
    color = score_to_color(clamped)
    return f"[{color}]{_FULL * filled}{_EMPTY * (width - filled)}[/] {clamped:.0f}"


def _downsample(values: Sequence[float], width: int) -> list[float]:
    step = len(values) / width
    buckets = []
    for i in range(width):
        chunk = values[int(i * step):int((i + 1) * step)]
        buckets.append(sum(chunk) / len(chunk))
    return buckets


def sparkline(values: Sequence[float], width: int | None = None) -> str:
    """One block character per value, averaged down to *width* when longer."""
    if not values:
        return ""
    points = _downsample(values, width) if width and len(values) > width else list(values)
    low, high = min(points), max(points)
    span = high - low or 1
    return "".join(_BLOCKS[int((v - low) / span * 8)] for v in points)


def trend_label(trend: Trend) -> str:
    return _TREND_MARKUP[trend]
