# Overview: Flask CLI command groups for bootstrap and reporting.

# backend/booking_ledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (idempotent; use migrations for upgrades).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Tenant management:
# - python -m flask tenants list
# - python -m flask tenants create --name "Studio Centro"
#
# Reports:
# - python -m flask reports batches --tenant-id 1 [--product-id 3] [--critical]
#   Batch consumption order with expiry status.
# - python -m flask reports inactivity --tenant-id 1 [--as-of 2025-01-31]
#   Clients grouped by days since last visit.

import click
from flask.cli import with_appcontext

from .errors import BookingLedgerError
from .extensions import db
from .models import Tenant
from .services import batch_service
from .services.classifier import INACTIVITY_TIERS, TIER_NEVER
from .services.reports_service import client_inactivity_report
from .time_utils import parse_iso_date


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


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


@click.group('tenants')
def tenants_group():
    """Tenant management commands."""


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    """List all tenants."""
    tenants = db.session.query(Tenant).order_by(Tenant.id.asc()).all()

    if not tenants:
        click.echo("No tenants found.")
        return

    click.echo(f"{'ID':<5} {'Name':<40} {'Active'}")
    for tenant in tenants:
        click.echo(f"{tenant.id:<5} {tenant.name:<40} {'Yes' if tenant.is_active else 'No'}")


@tenants_group.command('create')
@click.option('--name', required=True, help='Tenant (business) name')
@with_appcontext
def create_tenant_cli(name):
    """Create a new tenant."""
    existing = db.session.query(Tenant).filter_by(name=name).first()
    if existing:
        click.echo(f"FAIL Tenant '{name}' already exists (ID: {existing.id})")
        return

    tenant = Tenant(name=name, is_active=True)
    db.session.add(tenant)
    db.session.commit()

    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id})")


@click.group('reports')
def reports_group():
    """Read-only reports."""


@reports_group.command('batches')
@click.option('--tenant-id', type=int, required=True)
@click.option('--product-id', type=int, help='Limit to one product')
@click.option('--critical', is_flag=True, help='Only expired and critical batches')
@with_appcontext
def batches_report(tenant_id, product_id, critical):
    """Batches in consumption order (earliest expiry first)."""
    try:
        if critical:
            rows = batch_service.critical_batches(tenant_id, product_id)
        else:
            rows = batch_service.get_batch_priority(tenant_id, product_id)
    except BookingLedgerError as e:
        raise click.ClickException(e.message)

    if not rows:
        click.echo("No batches found.")
        return

    click.echo(f"{'#':<4} {'Product':<30} {'Batch':<16} {'Expiry':<12} {'Qty':<6} {'Status':<10} {'Days'}")
    for row in rows:
        days = "-" if row["days"] is None else row["days"]
        click.echo(
            f"{row['priority']:<4} {(row['product_name'] or '-'):<30} {row['batch_number']:<16} "
            f"{row['expiry_date'] or '-':<12} {row['quantity']:<6} {row['expiry_status']:<10} {days}"
        )


@reports_group.command('inactivity')
@click.option('--tenant-id', type=int, required=True)
@click.option('--as-of', help='Report date (YYYY-MM-DD), defaults to today')
@with_appcontext
def inactivity_report(tenant_id, as_of):
    """Clients grouped by days since their last visit."""
    try:
        today = parse_iso_date(as_of)
    except ValueError:
        raise click.BadParameter("must be YYYY-MM-DD", param_hint="--as-of")

    report = client_inactivity_report(tenant_id, today=today)

    click.echo(f"Client inactivity as of {report['as_of']}")
    for tier in (*reversed(INACTIVITY_TIERS), TIER_NEVER):
        click.echo(f"\n[{tier}] {report['counts'][tier]}")
        for row in report["tiers"][tier]:
            days = "-" if row["days_since_last_visit"] is None else f"{row['days_since_last_visit']}d"
            click.echo(f"  {row['full_name']:<30} {row['last_visit'] or '-':<12} {days}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(reports_group)
