# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Main CLI application for platypus."""

from __future__ import annotations

import asyncio
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from platypus import __version__
from platypus.config import PlatypusConfig, ProviderConfig, load_config
from platypus.data.models import utcnow
from platypus.ecotags.tags import build_rules
from platypus.errors import ConfigurationError
from platypus.providers import check_dependency
from platypus.providers.simulated import SimulatedFleetProvider
from platypus.reporting.terminal import FleetRenderer, collect_server_rows
from platypus.service import FleetController

LOG_LEVELS = ["debug", "info", "warning", "error"]


def configure_logging(level: str, console: Console | None = None) -> None:
    """Route library logging through a :class:`RichHandler`."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _load(config: str | None) -> PlatypusConfig:
    if config is None:
        return PlatypusConfig()
    try:
        return load_config(config)
    except ConfigurationError as exc:
        raise click.ClickException(f"{exc.message}\n{exc.details or ''}".rstrip()) from exc


@click.group()
@click.version_option(version=__version__)
@click.option("--no-color", is_flag=True, help="Disable colored output")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="warning",
    show_default=True,
    help="Logging verbosity",
)
@click.pass_context
def cli(ctx: click.Context, no_color: bool, log_level: str) -> None:
    """platypus: energy-aware fleet control loop

    Scores servers by energy efficiency and relocates containers to cut
    power draw and carbon footprint.

    \b
      serve         run the control loop (optionally with the REST API)
      simulate      run the loop against a seeded simulated fleet
      tags          show the eco-tag table
      check-config  validate a YAML configuration
    """
    ctx.ensure_object(dict)
    ctx.obj["console"] = Console(no_color=no_color)
    configure_logging(log_level, Console(stderr=True, no_color=no_color))


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------

async def _run_forever(controller: FleetController) -> None:
    await controller.start()
    try:
        await asyncio.Event().wait()
    finally:
        await controller.stop()


@cli.command()
@click.option("--config", "-c", type=click.Path(exists=True), default=None,
              help="Path to YAML config file")
@click.option("--api/--no-api", default=False, help="Also serve the REST API")
@click.option("--host", default=None, help="API bind host (overrides config)")
@click.option("--port", "-p", default=None, type=int, help="API bind port (overrides config)")
@click.pass_context
def serve(ctx: click.Context, config: str | None, api: bool, host: str | None, port: int | None) -> None:
    """Run the control loop until interrupted."""
    console: Console = ctx.obj["console"]
    cfg = _load(config)
    controller = FleetController(cfg)

    if not api:
        console.print(f"[bold cyan]Running control loop with the {cfg.provider.type} provider...[/]")
        try:
            asyncio.run(_run_forever(controller))
        except KeyboardInterrupt:
            console.print("[dim]Stopped.[/]")
        return

    check_dependency("fastapi", "pip install -e '.[api]'")
    check_dependency("uvicorn", "pip install -e '.[api]'")
    import uvicorn

    from platypus.api.server import create_app

    bind_host = host or cfg.api.host
    bind_port = port or cfg.api.port
    console.print(f"[bold cyan]Starting API server on {bind_host}:{bind_port}...[/]")
    uvicorn.run(create_app(controller, manage_lifecycle=True), host=bind_host, port=bind_port)


# ---------------------------------------------------------------------------
# simulate
# ---------------------------------------------------------------------------

async def _simulate(cfg: PlatypusConfig, ticks: int, history: int, console: Console) -> None:
    provider = SimulatedFleetProvider(cfg.provider)
    controller = FleetController(cfg, provider=provider)
    renderer = FleetRenderer(console)

    servers = await provider.list_servers()
    await controller.backfill(
        provider.generate_history(utcnow(), history),
        region={s.id: s.region for s in servers},
    )

    relocations = 0
    for tick in range(1, ticks + 1):
        await controller.poll_metrics()
        actions, outcomes = await controller.run_once()
        relocations += sum(a.relocated for a in actions) + sum(1 for o in outcomes if o.success)
        console.print(f"[bold]Tick {tick}[/]: {len(actions)} scaling actions, "
                      f"{len(outcomes)} plan executions")
        renderer.render_actions(actions)

    rows = await collect_server_rows(controller)
    plans = await controller.planner.active_plans()
    profiles = await controller.classifier.all_profiles()
    renderer.render_servers(rows)
    renderer.render_plans(plans)
    renderer.render_profiles(profiles)
    renderer.render_summary(rows, plans=len(plans), profiles=len(profiles), relocations=relocations)


@cli.command()
@click.option("--config", "-c", type=click.Path(exists=True), default=None,
              help="Path to YAML config file")
@click.option("--servers", "-n", type=int, default=8, show_default=True, help="Simulated servers")
@click.option("--ticks", "-t", type=int, default=3, show_default=True, help="Evaluation ticks to run")
@click.option("--history", type=int, default=60, show_default=True,
              help="Back-filled samples per server")
@click.option("--seed", "-s", type=int, default=None, help="Random seed for reproducibility")
@click.pass_context
def simulate(
    ctx: click.Context,
    config: str | None,
    servers: int,
    ticks: int,
    history: int,
    seed: int | None,
) -> None:
    """Run the control loop against a simulated fleet and render the result."""
    console: Console = ctx.obj["console"]
    cfg = _load(config)
    options = {**cfg.provider.options, "servers": servers}
    if seed is not None:
        options["seed"] = seed
    cfg = cfg.model_copy(update={"provider": ProviderConfig(type="sim", options=options)})
    # simulated runs never persist forecast models
    cfg.ml_predictor.enabled = False

    with console.status("[bold cyan]Simulating fleet..."):
        asyncio.run(_simulate(cfg, ticks, history, console))


# ---------------------------------------------------------------------------
# tags / check-config
# ---------------------------------------------------------------------------

@cli.command()
@click.option("--config", "-c", type=click.Path(exists=True), default=None,
              help="Path to YAML config file with tag overrides")
@click.pass_context
def tags(ctx: click.Context, config: str | None) -> None:
    """Show the effective eco-tag table."""
    console: Console = ctx.obj["console"]
    cfg = _load(config)
    FleetRenderer(console).render_tag_table([rule.definition for rule in build_rules(cfg.ecotags)])


@cli.command("check-config")
@click.option("--config", "-c", type=click.Path(exists=True), required=True,
              help="Path to YAML config file")
@click.pass_context
def check_config(ctx: click.Context, config: str) -> None:
    """Validate a config file and print the effective configuration."""
    console: Console = ctx.obj["console"]
    cfg = _load(config)
    console.print(f"[green]✓[/] {config} is valid")
    console.print_json(cfg.model_dump_json())
