from __future__ import annotations

import json
import logging
from typing import Optional

import click

from .config import get_settings
from .db import init_db
from .errors import WheelSpinError
from .models import utcnow
from .runtime import build_services
from .schemas import spin_out, stats_out, trend_out
from .spin_report import spin_summary
from .wheel import BUDGET_RANGES, SpinRequest

logger = logging.getLogger(__name__)


def setup_logging() -> None:
    settings = get_settings()
    handlers: list = [logging.StreamHandler()]
    if settings.log_file:
        handlers.insert(0, logging.FileHandler(settings.log_file))
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        handlers=handlers,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _echo_json(payload) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


@click.group()
def cli() -> None:
    """Command line interface."""
    setup_logging()


@cli.command("init-db")
def init_db_cmd() -> None:
    """Create a fresh database with the current schema."""
    settings = get_settings()
    init_db(settings.db_path)
    click.echo(f"Initialised {settings.db_path}")


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
@click.option("--no-scheduler", is_flag=True, help="Serve the API without background jobs")
def serve(host: str, port: int, no_scheduler: bool) -> None:
    """Run the HTTP API together with the maintenance schedule."""
    import uvicorn

    from .api import create_app

    services = build_services()
    app = create_app(services, start_scheduler=not no_scheduler)
    uvicorn.run(app, host=host, port=port, log_config=None)


@cli.command("check-alerts")
def check_alerts() -> None:
    """Evaluate every active alert once."""
    services = build_services()
    triggered = services.scheduler.trigger_alert_sweep()
    click.echo(f"{triggered} alerts triggered")


@cli.command("prune-history")
@click.option("--days", type=int, help="Retention in days (default from settings)")
def prune_history(days: Optional[int]) -> None:
    """Delete old price history and expired offers."""
    services = build_services()
    deleted = services.history.prune(days)
    purged = services.offers.purge_expired()
    click.echo(f"{deleted} history entries deleted, {purged} expired offers purged")


@cli.command()
@click.argument("route")
@click.option("--price", type=float, help="Current price to rank against history")
def stats(route: str, price: Optional[float]) -> None:
    """Print price statistics for ROUTE (e.g. BRU-BCN)."""
    services = build_services()
    result = services.history.statistics(route.upper(), price)
    if result is None:
        raise click.ClickException(f"No price history for {route.upper()}")
    _echo_json(stats_out(result))


@cli.command()
@click.argument("route")
@click.option("--days", default=30, show_default=True, type=click.IntRange(1, 365))
def trend(route: str, days: int) -> None:
    """Print the daily price trend for ROUTE."""
    services = build_services()
    _echo_json(trend_out(services.history.trend(route.upper(), days)))


@cli.command()
@click.option("--airport", help="Home airport IATA code")
@click.option("--lat", type=float)
@click.option("--lng", type=float)
@click.option("--budget", type=click.Choice(sorted(BUDGET_RANGES)))
@click.option("--user", "user_id", help="User id to record the spin under")
def spin(
    airport: Optional[str],
    lat: Optional[float],
    lng: Optional[float],
    budget: Optional[str],
    user_id: Optional[str],
) -> None:
    """Spin the wheel once and print the result."""
    try:
        request = SpinRequest(
            user_id=user_id,
            lat=lat,
            lng=lng,
            home_airport_iata=airport.upper() if airport else None,
            budget=budget,
        )
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc
    services = build_services()
    try:
        result = services.wheel.spin(request)
    except WheelSpinError as exc:
        raise click.ClickException(str(exc)) from exc
    _echo_json(spin_out(result))


@cli.command("import-catalog")
@click.option("--airports", type=click.Path(exists=True, dir_okay=False))
@click.option("--destinations", type=click.Path(exists=True, dir_okay=False))
def import_catalog(airports: Optional[str], destinations: Optional[str]) -> None:
    """Load airports and destinations from CSV files."""
    services = build_services()
    n_airports, n_destinations = services.catalog.import_csv(airports, destinations)
    click.echo(f"{n_airports} airports, {n_destinations} destinations imported")


@cli.command()
@click.option("--days", default=7, show_default=True, type=int)
def report(days: int) -> None:
    """Print per-day wheel spin counts."""
    services = build_services()
    df = spin_summary(services.settings.db_path, utcnow(), days)
    if df.empty:
        click.echo("No spins recorded")
        return
    click.echo(df.to_string(index=False))


if __name__ == "__main__":
    cli()
