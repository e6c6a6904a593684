# Overview: Flask CLI command groups for bootstrap and operator accounts.

# backend/storefront_pos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-username admin] [--admin-password "Password123!"]
#   Idempotent bootstrap: creates tables, reserved category/manufacturer rows and an admin.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Operator accounts:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --username till1 --password "Password123!" --role employee --grant accessInventory
#   Create a user (prompts if options are omitted).

import click
from flask.cli import with_appcontext

from .extensions import db
from .ids import UNCATEGORIZED_UUID, UNKNOWN_MANUFACTURER_UUID
from .models import Category, Manufacturer, User
from .models.auth import ROLE_ADMIN, ROLE_EMPLOYEE, PERM_ACCESS_INVENTORY, PERM_VIEW_FULL_SALES_HISTORY
from .services.auth_service import create_user, PasswordValidationError


def ensure_reserved_rows() -> list[str]:
    """Create the Uncategorized category and Unknown manufacturer if missing. Returns what was created."""
    created = []
    if not db.session.query(Category).filter_by(uuid=UNCATEGORIZED_UUID).first():
        db.session.add(Category(uuid=UNCATEGORIZED_UUID, name="Uncategorized"))
        created.append("Uncategorized")
    if not db.session.query(Manufacturer).filter_by(uuid=UNKNOWN_MANUFACTURER_UUID).first():
        db.session.add(Manufacturer(uuid=UNKNOWN_MANUFACTURER_UUID, name="Unknown Manufacturer"))
        created.append("Unknown Manufacturer")
    db.session.commit()
    return created


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-username', default='admin', help='Username for the initial admin')
@click.option('--admin-password', default='Password123!', help='Password for the initial admin')
@with_appcontext
def init_system(admin_username, admin_password):
    """
    Initialize the POS database.

    Creates:
    - All tables
    - Reserved rows: Uncategorized category, Unknown manufacturer
    - An admin user (default admin / Password123!)

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing storefront POS...")

    db.create_all()
    click.echo("PASS Tables ready")

    for name in ensure_reserved_rows():
        click.echo(f"PASS Created reserved row: {name}")

    if db.session.query(User).filter_by(username=admin_username).first():
        click.echo(f"WARN  User '{admin_username}' already exists, skipping...")
    else:
        try:
            create_user(admin_username, admin_password, role=ROLE_ADMIN)
            click.echo(f"PASS Created admin user: {admin_username}")
        except (PasswordValidationError, ValueError) as e:
            click.echo(f"FAIL Failed to create admin '{admin_username}': {e}")

    click.echo("DONE Storefront POS initialized")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes and not click.confirm("This deletes ALL data. Continue?"):
        click.echo("Aborted.")
        return
    db.drop_all()
    db.create_all()
    ensure_reserved_rows()
    click.echo("PASS Database reset")


@click.group('users')
def users_group():
    """Operator account commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice([ROLE_ADMIN, ROLE_EMPLOYEE]), prompt=True, help='Role')
@click.option(
    '--grant',
    multiple=True,
    type=click.Choice([PERM_ACCESS_INVENTORY, PERM_VIEW_FULL_SALES_HISTORY]),
    help='Permission flag for employees (repeatable)',
)
@with_appcontext
def create_user_cli(username, password, role, grant):
    """Create a new operator. Password must be at least 8 characters."""
    try:
        create_user(username, password, role=role, permissions={flag: True for flag in grant})
        click.echo(f"PASS Created user: {username} with role '{role}'")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e}")
    except ValueError as e:
        click.echo(f"FAIL Failed to create user: {e}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their role and permission flags."""
    users = db.session.query(User).order_by(User.id).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo(f"{'ID':<5} {'Username':<20} {'Role':<10} {'Active':<8} {'Permissions'}")
    for user in users:
        flags = ", ".join(sorted(k for k, v in (user.permissions or {}).items() if v)) or "none"
        click.echo(f"{user.id:<5} {user.username:<20} {user.role:<10} {'Yes' if user.is_active else 'No':<8} {flags}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
