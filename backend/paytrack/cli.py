# Overview: Flask CLI command groups for bootstrap, maintenance and forecast inspection.

# backend/paytrack/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent). Use `flask db upgrade` for migrations.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data, audit included).
#
# Items:
# - python -m flask items refresh-overdue [--as-of 2026-03-01]
#   Re-derive item status against a date; every change is audited.
#
# Forecast:
# - python -m flask forecast show --months 6 [--hide budget,paid]
#   Print the monthly cashflow forecast.

import click
from flask.cli import with_appcontext

from .extensions import db
from .money import format_cents
from .services import forecast_service, item_service
from .services.forecast import BUCKETS, Visibility
from .time_utils import parse_iso_date


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    from . import models  # noqa: F401

    db.create_all()
    click.echo("OK  Tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the audit trail!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()
    click.echo("OK  Database reset")


@click.group('items')
def items_group():
    """Payment item maintenance commands."""


@items_group.command('refresh-overdue')
@click.option('--as-of', 'as_of', default=None, help='Business date (YYYY-MM-DD), defaults to today')
@click.option('--actor', default=None, help='Actor recorded on audit rows')
@with_appcontext
def refresh_overdue(as_of, actor):
    """Mark items overdue (or back to pending/partial) as of a date."""
    try:
        today = parse_iso_date(as_of) if as_of else None
    except ValueError:
        raise click.BadParameter("must be YYYY-MM-DD", param_hint="--as-of")

    changed = item_service.refresh_overdue(today=today, actor=actor or "cli")
    for item in changed:
        click.echo(f"  #{item.id} {item.name}: {item.status}")
    click.echo(f"OK  {len(changed)} item(s) changed")


@click.group('forecast')
def forecast_group():
    """Cashflow forecast commands."""


@forecast_group.command('show')
@click.option('--months', type=int, default=None, help='Horizon in months')
@click.option('--hide', default='', help='Comma-separated buckets excluded from totals')
@with_appcontext
def show_forecast(months, hide):
    """Print the forecast as a table of buckets per month."""
    from .validation import ValidationError

    try:
        result = forecast_service.get_forecast(
            months=months,
            visibility=Visibility.from_hidden(hide.split(",")),
            include_details=False,
        )
    except ValidationError as e:
        raise click.ClickException(str(e))

    header = ["month"] + list(BUCKETS) + ["total"]
    click.echo("  ".join(f"{h:>15}" for h in header))
    for month in result["months"]:
        cells = [month["month"]] + [format_cents(month[f"{b}_cents"]) for b in BUCKETS]
        cells.append(format_cents(month["total_cents"]))
        click.echo("  ".join(f"{c:>15}" for c in cells))

    summary = result["summary"]
    click.echo("")
    click.echo(f"Total:   {format_cents(summary['total_cents'])}")
    click.echo(f"Average: {format_cents(summary['average_cents'])}")
    click.echo(f"Peak:    {summary['peak_month']} ({format_cents(summary['peak_cents'])})")
    click.echo(f"Trough:  {summary['trough_month']} ({format_cents(summary['trough_cents'])})")
    click.echo(f"Trend:   {format_cents(summary['trend_cents'])} ({summary['trend_percent']}%)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(items_group)
    app.cli.add_command(forecast_group)
