# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Eco-score weight constants.

The three component weights must sum to 1.0.  Each component is a 0-1
fraction; the weighted sum is scaled to 0-100.
"""

# ---------------------------------------------------------------------------
# Component weights in the composite eco-score
# ---------------------------------------------------------------------------
POWER_WEIGHT = 0.40        # Normalised power draw
UTILIZATION_WEIGHT = 0.30  # CPU proximity to the sweet spot
CARBON_WEIGHT = 0.30       # Normalised carbon footprint

# ---------------------------------------------------------------------------
# Normalisation baselines
# ---------------------------------------------------------------------------
POWER_BASELINE_WATTS = 1000.0   # Mean draw at which the power score reaches 0
CPU_SWEET_SPOT = 0.70           # Utilisation fraction scoring 1.0
CARBON_BASELINE_KG = 1.0        # Mean footprint at which the carbon score reaches 0

SCORE_SCALE = 100.0
