# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Fleet-wide migration planning and bounded execution."""

from platypus.migration.planner import MigrationPlanner

__all__ = ["MigrationPlanner"]
