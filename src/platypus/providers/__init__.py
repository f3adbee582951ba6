# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Fleet providers: inventory, container enumeration and relocation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from platypus.errors import NotFoundError

if TYPE_CHECKING:
    from platypus.config import ProviderConfig
    from platypus.providers.base import FleetProvider

logger = logging.getLogger(__name__)

PROVIDER_REGISTRY: dict[str, type[FleetProvider]] = {}


def check_dependency(package: str, install_hint: str) -> None:
    """Raise *ImportError* with a helpful message if *package* is missing."""
    try:
        __import__(package)
    except ImportError:
        raise ImportError(
            f"Provider requires '{package}'. Install with: {install_hint}"
        ) from None


def register_provider(name: str, cls: type[FleetProvider]) -> None:
    """Register a provider class by name."""
    PROVIDER_REGISTRY[name] = cls


def get_provider(name: str) -> type[FleetProvider]:
    """Look up a registered provider by name."""
    _load_builtin_providers()

    if name not in PROVIDER_REGISTRY:
        available = ", ".join(sorted(PROVIDER_REGISTRY.keys()))
        raise NotFoundError(f"Unknown provider '{name}'. Available: {available}")
    return PROVIDER_REGISTRY[name]


def create_provider(config: ProviderConfig) -> FleetProvider:
    """Instantiate the provider named by ``config.type``."""
    cls = get_provider(config.type)
    logger.info("Using %s fleet provider", config.type)
    return cls(config)


def _load_builtin_providers() -> None:
    """Import built-in providers so they self-register."""
    # repeated imports are no-ops once the modules are cached
    from platypus.providers import aws, simulated  # noqa: F401
