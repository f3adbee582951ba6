# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Protocol every fleet provider satisfies.

Implementations wrap vendor SDKs or an orchestrator; any failure they
encounter surfaces as :class:`~platypus.errors.CollaboratorError` so the
control loops can log it and move on.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from platypus.data.models import Container, Sample, Server


@runtime_checkable
class FleetProvider(Protocol):
    """Boundary between the control loops and the outside world."""

    async def list_servers(self) -> list[Server]:
        """Enumerate every server in the fleet."""
        ...

    async def list_containers(self, server_id: str) -> list[Container]:
        """Enumerate containers currently placed on *server_id*."""
        ...

    async def relocate(
        self, container_id: str, source_server_id: str, target_server_id: str
    ) -> None:
        """Move a container; must tolerate being called again for the same move."""
        ...

    async def fetch_samples(self, server: Server, since: datetime) -> list[Sample]:
        """Observations for *server* newer than *since* (metric polling)."""
        ...
