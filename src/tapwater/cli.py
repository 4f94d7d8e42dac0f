"""Command-line interface for the tap-water planner."""

import json
import logging
import os
import random
from datetime import datetime, timezone
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from . import db
from .config import PlannerConfig, load_config
from .errors import ConfigurationError, SpotPriceError
from .execution import LoggingExecutor, execute_plan
from .forecast import (
    PriceForecast,
    fetch_spot_prices,
    load_forecast,
    parse_spot_prices,
    read_spot_prices_file,
    save_spot_prices,
)
from .models import WEEKDAYS, Plan, parse_instant
from .planning.plan import build_plan, confirm
from .state import get_history, load_state, record_sessions, reset_state, save_state

console = Console()

EXIT_FAILURE = 1
EXIT_MISCONFIGURED = 3


def setup_logging(level: str) -> None:
    """Send log records through rich on stderr."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@click.group()
@click.option("--db-path", type=click.Path(), help="Path to SQLite database")
@click.option("--config", "config_path", type=click.Path(), help="Path to config.yaml")
@click.option("--log-level", help="Log level (default: LOG_LEVEL or INFO)")
@click.pass_context
def cli(ctx, db_path, config_path, log_level):
    """Plan tap-water heating and desinfection around spot prices."""
    load_dotenv()
    setup_logging(log_level or os.environ.get("LOG_LEVEL", "INFO"))
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = Path(db_path) if db_path else None
    ctx.obj["config_path"] = Path(config_path) if config_path else None


def _load_config(ctx) -> PlannerConfig:
    try:
        return load_config(ctx.obj["config_path"])
    except ConfigurationError as e:
        console.print(f"[red]Configuration error: {escape(e.describe())}[/red]")
        ctx.exit(EXIT_MISCONFIGURED)


def _format_local(dt: datetime, config: PlannerConfig) -> str:
    return dt.astimezone(config.local_tz).strftime("%a %Y-%m-%d %H:%M")


# Planning
@cli.command()
@click.option("--now", help="Plan as if it were this instant (ISO-8601, default: now)")
@click.option("--seed", type=int, help="Seed for start time jitter (default: jitterSeed)")
@click.option("--execute/--no-execute", default=True, help="Hand the plan to the heat pump")
@click.option("--json", "as_json", is_flag=True, help="Output the plan as JSON")
@click.pass_context
def plan(ctx, now, seed, execute, as_json):
    """Plan the next sessions, execute them and store the new state."""
    config = _load_config(ctx)
    db_path = ctx.obj["db_path"]

    try:
        reference_now = parse_instant(now) if now else datetime.now(timezone.utc)
    except ValueError:
        raise click.BadParameter(f"Invalid instant {now!r}", param_hint="--now")

    try:
        forecast = load_forecast(
            config.spot_price_state_key, reference_now, reference_now + config.horizon, db_path
        )
    except SpotPriceError as e:
        console.print(f"[red]{escape(e.describe())}[/red]")
        ctx.exit(EXIT_FAILURE)

    state = load_state(config.state_key, db_path)
    rng = random.Random(seed if seed is not None else config.jitter_seed)
    result = build_plan(config, forecast, state, reference_now, rng)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2, sort_keys=True))
    else:
        _print_plan(result, config)

    if not execute:
        console.print("[yellow]Plan not executed; state left unchanged[/yellow]")
        return

    results = execute_plan(
        result, LoggingExecutor(), config.desired_tap_water_temperature, config.heatpump_tz
    )
    failed = [session for session, succeeded in results if not succeeded]
    if failed:
        kinds = ", ".join(s.kind.value for s in failed)
        console.print(f"[red]Heat pump did not accept: {kinds}; state left unchanged[/red]")
        ctx.exit(EXIT_FAILURE)

    save_state(confirm(result, results), config.state_key, db_path)
    record_sessions(results, reference_now, db_path)
    console.print(f"[green]Scheduled {len(results)} session(s)[/green]")


def _print_plan(result: Plan, config: PlannerConfig) -> None:
    if not result.sessions:
        console.print("[yellow]No sessions planned[/yellow]")
    else:
        table = Table(title=f"Plan ({config.local_time_zone})")
        table.add_column("Session", style="cyan")
        table.add_column("Start")
        table.add_column("End")
        table.add_column("Avg price", justify="right")

        for s in result.sessions:
            table.add_row(
                s.kind.value,
                _format_local(s.start, config),
                _format_local(s.end, config),
                f"{s.average_price:.4f}",
            )
        console.print(table)

    if result.desinfection_due and result.proposed_desinfection_completed_at is None:
        console.print("[yellow]Desinfection is due but could not be planned this run[/yellow]")
    for message in result.diagnostics:
        console.print(f"[dim]{escape(message)}[/dim]")


# Config commands
@cli.group("config")
def config_cmd():
    """Configuration commands."""
    pass


@config_cmd.command("check")
@click.pass_context
def config_check(ctx):
    """Validate the config and show its time slots."""
    config = _load_config(ctx)

    table = Table(title="Time slots")
    table.add_column("Day", style="cyan")
    table.add_column("Heating")
    table.add_column("Desinfection")

    for weekday, name in enumerate(WEEKDAYS):
        heating = ", ".join(
            f"{s.start:%H:%M}-{s.end:%H:%M}" for s in config.plannable_slots[weekday]
        )
        desinfection = ", ".join(
            f"{s.start:%H:%M}-{s.end:%H:%M}"
            + (f" < {s.if_price_below}" if s.if_price_below is not None else "")
            for s in config.desinfection_slots[weekday]
        )
        table.add_row(name, heating or "-", desinfection or "-")

    console.print(table)
    console.print(
        f"[green]Config OK[/green]: {config.planning_strategy}, "
        f"{config.session_duration_seconds // 60} min sessions, "
        f"{config.maximum_hours_to_plan_ahead}h ahead"
    )


# Price commands
@cli.group()
def prices():
    """Spot price commands."""
    pass


@prices.command("import")
@click.option("--file", "file_path", type=click.Path(exists=True), help="Path to spot price YAML")
@click.option("--url", help="URL serving the spot price YAML")
@click.pass_context
def prices_import(ctx, file_path, url):
    """Store a spot price blob for the next planning run."""
    if not file_path and not url:
        console.print("[red]Please specify --file or --url[/red]")
        return

    config = _load_config(ctx)
    try:
        text = read_spot_prices_file(Path(file_path)) if file_path else fetch_spot_prices(url)
        count = save_spot_prices(text, config.spot_price_state_key, ctx.obj["db_path"])
    except SpotPriceError as e:
        console.print(f"[red]Failed to import spot prices: {escape(e.describe())}[/red]")
        ctx.exit(EXIT_FAILURE)

    console.print(f"[green]Imported {count} spot price(s)[/green]")


@prices.command("show")
@click.pass_context
def prices_show(ctx):
    """Show the stored spot prices."""
    config = _load_config(ctx)
    text = db.get_blob(config.spot_price_state_key, ctx.obj["db_path"])
    if text is None:
        console.print("[yellow]No spot prices stored[/yellow]")
        return

    forecast = PriceForecast(parse_spot_prices(text))
    table = Table(title=f"Spot prices ({config.local_time_zone})")
    table.add_column("From", style="cyan")
    table.add_column("Minutes", justify="right")
    table.add_column("Price", justify="right")

    for sample in forecast:
        table.add_row(
            _format_local(sample.start, config),
            str(sample.duration_seconds // 60),
            f"{sample.price:.4f}",
        )
    console.print(table)


# State commands
@cli.group("state")
def state_cmd():
    """Planner state commands."""
    pass


@state_cmd.command("show")
@click.pass_context
def state_show(ctx):
    """Show the stored planner state."""
    config = _load_config(ctx)
    state = load_state(config.state_key, ctx.obj["db_path"])

    completed = state.last_desinfection_completed_at
    console.print(
        f"Last desinfection: {_format_local(completed, config) if completed else 'never'}"
    )
    if not state.last_plan:
        console.print("[yellow]No previous plan[/yellow]")
        return
    for s in state.last_plan:
        console.print(
            f"  {s.kind.value}: {_format_local(s.start, config)} → {_format_local(s.end, config)}"
        )


@state_cmd.command("reset")
@click.confirmation_option(prompt="Forget the last desinfection and plan?")
@click.pass_context
def state_reset(ctx):
    """Delete the stored planner state."""
    config = _load_config(ctx)
    if reset_state(config.state_key, ctx.obj["db_path"]):
        console.print("[green]State cleared[/green]")
    else:
        console.print("[yellow]No state stored[/yellow]")


@cli.command()
@click.option("--limit", default=20, help="Number of sessions to show")
@click.pass_context
def history(ctx, limit):
    """List sessions handed to the heat pump."""
    entries = get_history(limit, ctx.obj["db_path"])
    if not entries:
        console.print("[yellow]No sessions recorded[/yellow]")
        return

    table = Table(title="Session history")
    table.add_column("Session", style="cyan")
    table.add_column("Start")
    table.add_column("End")
    table.add_column("Avg price", justify="right")
    table.add_column("Status")

    for e in entries:
        table.add_row(
            e["kind"].value,
            e["start"].strftime("%Y-%m-%d %H:%M UTC"),
            e["end"].strftime("%H:%M UTC"),
            f"{e['average_price']:.4f}" if e["average_price"] is not None else "-",
            "[green]OK[/green]" if e["succeeded"] else "[red]Failed[/red]",
        )
    console.print(table)


# Database commands
@cli.group()
def database():
    """Database management commands."""
    pass


@database.command("init")
@click.pass_context
def db_init(ctx):
    """Initialize the database schema."""
    db.init_db(ctx.obj["db_path"])
    console.print("[green]Database initialized successfully[/green]")


@database.command("stats")
@click.pass_context
def db_stats(ctx):
    """Show database statistics."""
    stats = db.get_stats(ctx.obj["db_path"])

    table = Table(title="Database Statistics")
    table.add_column("Category", style="cyan")
    table.add_column("Count", justify="right")
    table.add_column("Updated / Range")

    for key, updated_at in stats["blobs"].items():
        table.add_row(f"Blob {key}", "1", updated_at)

    sessions = stats["session_history"]
    table.add_row(
        "Sessions",
        f"{sessions['succeeded']}/{sessions['count']}",
        f"{sessions['earliest'] or 'N/A'} → {sessions['latest'] or 'N/A'}",
    )
    console.print(table)


if __name__ == "__main__":
    cli()
