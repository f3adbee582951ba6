# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Rich terminal rendering of fleet state, plans and eco profiles."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from platypus.data.models import (
    EcoTagDefinition,
    MigrationPlan,
    ScalingAction,
    ScalingStatus,
    ScoreSnapshot,
    Server,
    ServiceEcoProfile,
)
from platypus.errors import InsufficientDataError, NotFoundError
from platypus.reporting.ascii_charts import eco_gauge, sparkline, trend_label
from platypus.scoring.thresholds import score_to_color


@dataclass
class ServerRow:
    """One line of the fleet table."""

    server: Server
    snapshot: Optional[ScoreSnapshot] = None
    power: list[float] = field(default_factory=list)


async def collect_server_rows(controller) -> list[ServerRow]:
    """Snapshot every inventoried server through *controller*'s engine."""
    rows: list[ServerRow] = []
    for server in await controller.provider.list_servers():
        row = ServerRow(server=server)
        try:
            samples = await controller.store.query(server.id)
            row.power = [s.power_usage for s in samples]
            row.snapshot = controller.engine.analyze_samples(server.id, samples)
        except (NotFoundError, InsufficientDataError):
            pass
        rows.append(row)
    return rows


class FleetRenderer:
    """Renders controller state as Rich tables and a summary panel."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def render_servers(self, rows: Sequence[ServerRow]) -> None:
        table = Table(title="Fleet", show_header=True, header_style="bold", padding=(0, 1))
        table.add_column("Server", style="bold", min_width=10)
        table.add_column("Region", min_width=10)
        table.add_column("Type", min_width=10)
        table.add_column("Eco-score", min_width=16)
        table.add_column("Mean W", justify="right")
        table.add_column("Power", min_width=20)
        table.add_column("Trend", min_width=10)
        table.add_column("Anomalies", justify="right")

        for row in sorted(
            rows,
            key=lambda r: r.snapshot.efficiency_score if r.snapshot else -1.0,
            reverse=True,
        ):
            snap = row.snapshot
            table.add_row(
                row.server.id,
                row.server.region,
                row.server.instance_type or "-",
                eco_gauge(snap.efficiency_score) if snap else "[dim]no data[/]",
                f"{snap.mean:,.1f}" if snap else "-",
                sparkline(row.power, width=20),
                trend_label(snap.trend) if snap else "-",
                str(len(snap.anomalies)) if snap else "-",
            )

        self.console.print()
        self.console.print(table)

    def render_actions(self, actions: Sequence[ScalingAction]) -> None:
        if not actions:
            return
        table = Table(title="Scaling Actions", show_header=True, header_style="bold")
        table.add_column("Server", style="bold")
        table.add_column("Direction")
        table.add_column("Status")
        table.add_column("Target")
        table.add_column("Moved", justify="right")
        table.add_column("Failed", justify="right")
        for action in actions:
            color = "green" if action.status is ScalingStatus.completed else "yellow"
            table.add_row(
                action.server_id,
                action.direction.value,
                f"[{color}]{action.status.value}[/{color}]",
                action.target_server_id or "-",
                str(action.relocated),
                str(action.failed),
            )
        self.console.print()
        self.console.print(table)

    def render_plans(self, plans: Sequence[MigrationPlan]) -> None:
        table = Table(title="Active Migration Plans", show_header=True, header_style="bold")
        table.add_column("Container", style="bold")
        table.add_column("From")
        table.add_column("To")
        table.add_column("Priority", justify="right")
        table.add_column("Saving (W)", justify="right")
        table.add_column("Downtime", justify="right")
        for plan in plans:
            table.add_row(
                plan.container_id,
                plan.source_server_id,
                plan.target_server_id,
                str(plan.priority),
                f"{plan.power_saving:,.1f}",
                f"{plan.downtime_estimate.total_seconds():.0f}s",
            )
        if not plans:
            table.add_row("[dim]none[/]", "", "", "", "", "")
        self.console.print()
        self.console.print(table)

    def render_profiles(self, profiles: Sequence[ServiceEcoProfile]) -> None:
        table = Table(title="Service Eco Profiles", show_header=True, header_style="bold")
        table.add_column("Service", style="bold")
        table.add_column("Score", justify="right")
        table.add_column("Avg W", justify="right")
        table.add_column("Avg kg CO2", justify="right")
        table.add_column("Tags")
        for profile in profiles:
            color = score_to_color(profile.eco_score)
            table.add_row(
                profile.service_name,
                f"[{color}]{profile.eco_score:.1f}[/{color}]",
                f"{profile.power_usage:,.1f}",
                f"{profile.carbon_footprint:.4f}",
                ", ".join(profile.tags) or "[dim]-[/]",
            )
        self.console.print()
        self.console.print(table)

    def render_tag_table(self, definitions: Sequence[EcoTagDefinition]) -> None:
        table = Table(title="Eco Tags", show_header=True, header_style="bold")
        table.add_column("Tag", style="bold")
        table.add_column("Score", justify="right")
        table.add_column("Weight", justify="right")
        table.add_column("Threshold", justify="right")
        table.add_column("Description")
        for tag in definitions:
            table.add_row(
                tag.name, f"{tag.score:.0f}", f"{tag.weight:.2f}", f"{tag.threshold:g}", tag.description
            )
        self.console.print(table)

    def render_summary(self, rows: Sequence[ServerRow], plans: int, profiles: int, relocations: int) -> None:
        scored = [r.snapshot.efficiency_score for r in rows if r.snapshot]
        avg = sum(scored) / len(scored) if scored else 0.0
        lines = [
            f"[bold]Servers:[/bold]            {len(rows)}",
            f"[bold]Scored servers:[/bold]     {len(scored)}",
            f"[bold]Average eco-score:[/bold]  [{score_to_color(avg)}]{avg:.1f}[/]",
            f"[bold]Active plans:[/bold]       {plans}",
            f"[bold]Relocations:[/bold]        {relocations}",
            f"[bold]Service profiles:[/bold]   {profiles}",
        ]
        self.console.print()
        self.console.print(
            Panel("\n".join(lines), title="[bold]Fleet Summary[/bold]", border_style="cyan", padding=(1, 2))
        )
        self.console.print()
