# Overview: Flask CLI command groups for bootstrap, reporting, and inventory inspection.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Reporting:
# - python -m flask reports summary --window this-month
# - python -m flask reports summary --from 2024-03-01 --to 2024-03-31 --bucketing day
#   Print the period aggregate as JSON.
#
# Inventory inspection:
# - python -m flask inventory low-stock [--threshold 10]
#   List products at or below the threshold, out-of-stock first.

import json

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .services import reporting_service, stock_ledger_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    click.echo("BUILD  Creating missing tables...")
    db.create_all()
    click.echo("PASS Database ready.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('reports')
def reports_group():
    """Period reports."""


@reports_group.command('summary')
@click.option('--window', default=None, type=click.Choice(reporting_service.WINDOWS),
              help='Named window (default: REPORT_DEFAULT_WINDOW)')
@click.option('--from', 'date_from', default=None, help='Start date YYYY-MM-DD (inclusive)')
@click.option('--to', 'date_to', default=None, help='End date YYYY-MM-DD (inclusive)')
@click.option('--bucketing', default='day', type=click.Choice(reporting_service.BUCKETINGS))
@click.option('--include-pending', is_flag=True, help='Count Pending orders too')
@with_appcontext
def report_summary(window, date_from, date_to, bucketing, include_pending):
    """Print the period aggregate as JSON."""
    try:
        report = reporting_service.period_report(
            window=window or current_app.config["REPORT_DEFAULT_WINDOW"],
            date_from=date_from,
            date_to=date_to,
            bucketing=bucketing,
            include_pending=include_pending,
        )
    except reporting_service.ReportError as exc:
        raise click.BadParameter(str(exc))

    click.echo(json.dumps(report, indent=2))


@click.group('inventory')
def inventory_group():
    """Inventory inspection commands."""


@inventory_group.command('low-stock')
@click.option('--threshold', type=int, default=None, help='Units at or below which stock is low')
@with_appcontext
def low_stock(threshold):
    """List products that are low or out of stock."""
    if threshold is None:
        threshold = current_app.config["LOW_STOCK_THRESHOLD"]

    levels = [
        row for row in stock_ledger_service.stock_levels(threshold=threshold)
        if row["status"] != "in_stock"
    ]
    if not levels:
        click.echo(f"PASS No products at or below {threshold} units.")
        return

    levels.sort(key=lambda row: (row["status"] != "out_of_stock", row["available_quantity"], row["name"]))
    for row in levels:
        click.echo(
            f"{row['status']:<13} {row['available_quantity']:>6}  {row['sku']:<16} {row['name']}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(reports_group)
    app.cli.add_command(inventory_group)
