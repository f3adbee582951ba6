# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Eco-scoring of server metric windows."""

from platypus.scoring.engine import ScoringEngine, calculate_eco_score

__all__ = ["ScoringEngine", "calculate_eco_score"]
