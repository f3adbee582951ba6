# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Threshold-driven autoscaling."""

from platypus.scaling.autoscaler import Autoscaler

__all__ = ["Autoscaler"]
