# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Decision cut-offs applied to eco-scores and trends.

Every constant names the score band or ratio a decision hinges on so
that operators can trace a relocation back to a concrete number.
"""

# ---------------------------------------------------------------------------
# Trend classification
# ---------------------------------------------------------------------------
TREND_MARGIN = 0.10   # Second-half mean must move >10% of the first-half mean

# ---------------------------------------------------------------------------
# Eco-score bands
# ---------------------------------------------------------------------------
EFFICIENT_MIN = 80         # Above this a server is kept in place on scale-down
UNDERPERFORMING_MAX = 70   # At or below this the planner looks for relocations
NEUTRAL_PROFILE_SCORE = 50.0  # Profile score when no tag activates

# ---------------------------------------------------------------------------
# Colour bands for terminal rendering
# ---------------------------------------------------------------------------
GREEN_MIN = 80
YELLOW_MIN = 50
# Below 50 = Red


def score_to_color(score: float) -> str:
    """Convert a 0-100 eco-score to a color string.

    Returns 'green', 'yellow', or 'red'.
    """
    if score >= GREEN_MIN:
        return "green"
    if score >= YELLOW_MIN:
        return "yellow"
    return "red"
