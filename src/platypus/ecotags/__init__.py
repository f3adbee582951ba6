# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Rule-driven eco tags for services."""

from platypus.ecotags.classifier import TagClassifier
from platypus.ecotags.tags import BUILTIN_RULES, build_rules

__all__ = ["BUILTIN_RULES", "TagClassifier", "build_rules"]
