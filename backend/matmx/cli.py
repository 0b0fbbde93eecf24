# Overview: Flask CLI command groups for bootstrap, user administration and inventory maintenance.

# backend/matmx/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init --email admin@matmx.local --password "Password123!"
#   Create tables (if missing) and the first super_admin. Idempotent.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --name "Jane" --email jane@matmx.local --password "Password123!" --role sales_rep
#   Create a user (prompts if options are omitted).
# - python -m flask users deactivate jane@matmx.local
#   Deactivate a user; their tokens stop working immediately.
#
# Inventory:
# - python -m flask inventory import products.csv --email admin@matmx.local
#   Import a CSV file (same rules as the upload endpoint), attributed to --email.
# - python -m flask inventory reorder
#   Print products below their reorder threshold.

import os

import click
from flask.cli import with_appcontext

from .errors import ServiceError
from .extensions import db
from .models import ROLES, User
from .models.auth import ROLE_SUPER_ADMIN
from .services import auth_service, import_service, inventory_service
from .services.concurrency import atomic


def _user_by_email(email: str) -> User:
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user:
        raise click.ClickException(f"User not found: {email}")
    return user


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--name', default='Administrator', help='Display name for the first super_admin')
@click.option('--email', default='admin@matmx.local', help='Login email for the first super_admin')
@click.option('--password', default='Password123!', help='Initial password')
@with_appcontext
def init_system(name, email, password):
    """
    Create all tables and the first super_admin account.

    Existing users are left untouched; running twice is safe.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing system...")

    db.create_all()
    click.echo("PASS Tables ready")

    existing = db.session.query(User).filter_by(role=ROLE_SUPER_ADMIN).first()
    if existing:
        click.echo(f"PASS super_admin already exists: {existing.email}")
        return

    try:
        user = auth_service.create_user(name, email, password, ROLE_SUPER_ADMIN)
    except ServiceError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created super_admin {user.email} (ID: {user.id})")


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

    click.echo("PASS Database reset. Run 'flask system init' to create the first super_admin.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their role."""
    users = auth_service.list_users()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<24} {'Email':<30} {'Role':<18} {'Active'}")
    click.echo("="*80)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.name:<24} {user.email:<30} {user.role:<18} {active_str}")

    click.echo("="*80 + "\n")


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Login email')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', prompt=True, type=click.Choice(ROLES), help='Role')
@with_appcontext
def create_user_cli(name, email, password, role):
    """Create a user."""
    try:
        user = auth_service.create_user(name, email, password, role)
    except ServiceError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created user {user.email} (ID: {user.id}, role: {user.role})")


@users_group.command('deactivate')
@click.argument('email')
@with_appcontext
def deactivate_user_cli(email):
    """Deactivate a user by email."""
    user = _user_by_email(email)
    with atomic():
        user.is_active = False
    click.echo(f"PASS Deactivated {user.email}")


@click.group('inventory')
def inventory_group():
    """Inventory maintenance commands."""


@inventory_group.command('import')
@click.argument('csv_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--email', required=True, help='User the import is attributed to')
@click.option('--note', default=None, help='Note stored on the import log')
@with_appcontext
def import_inventory_cli(csv_path, email, note):
    """Import products from a CSV file."""
    user = _user_by_email(email)

    with open(csv_path, 'rb') as fh:
        raw = fh.read()

    try:
        rows = import_service.read_csv_rows(raw)
    except ServiceError as e:
        raise click.ClickException(e.message)

    summary = import_service.import_inventory(
        rows,
        filename=os.path.basename(csv_path),
        note=note,
        actor_id=user.id,
    )

    click.echo(f"PASS Imported {summary.success_count} row(s), {summary.failure_count} failed")
    for err in summary.errors:
        click.echo(f"  row {err['row']} ({err['sku'] or '-'}): {err['error']}")


@inventory_group.command('reorder')
@with_appcontext
def reorder_cli():
    """Print products below their reorder threshold."""
    products = inventory_service.reorder_alerts()

    if not products:
        click.echo("No products below reorder threshold.")
        return

    click.echo(f"{'SKU':<16} {'Name':<32} {'Stock':>7} {'Threshold':>10}")
    for p in products:
        click.echo(f"{p.sku:<16} {p.name:<32} {p.stock:>7} {p.reorder_threshold:>10}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(inventory_group)
