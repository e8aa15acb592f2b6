# Overview: Flask CLI command groups for bootstrap, user setup, and ledger maintenance.

# backend/giftledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP (PowerShell: $env:FLASK_APP="giftledger"; bash: export FLASK_APP=giftledger).
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and seeds the gift catalog.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create --username admin --email admin@example.com --password "Password123!" --role admin
#   Create a user (prompts if options are omitted).
# - python -m flask users list
#
# Credits:
# - python -m flask credits grant alice 100 --reason "Goodwill"
#   Credit a user through the ledger (kind "purchase").
#
# Ledger:
# - python -m flask ledger reconcile [--username alice]
#   Compare balances with ledger sums; exits 1 when any drift is found.

import sys

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .models.auth import VALID_ROLES
from .services import credit_service, gift_service
from .services.auth_service import create_user
from .services.errors import LedgerError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Create missing tables and seed the default gift catalog.

    Safe to run repeatedly.
    """
    click.echo("START Initializing gift ledger...")

    db.create_all()
    click.echo("PASS Tables ready")

    created = gift_service.seed_gift_types()
    if created:
        click.echo(f"PASS Created {created} gift types")
    else:
        click.echo("WARN  Gift catalog already seeded, skipping...")

    click.echo("DONE Gift ledger initialized")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to seed the catalog.")


# =============================================================================
# USER COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(sorted(VALID_ROLES)), prompt=True, help='Role')
@click.option('--profile-name', default=None, help='Public profile name (lady/club)')
@with_appcontext
def create_user_cli(username, email, password, role, profile_name):
    """
    Create a user. Lady and club accounts also get a directory profile.

    Password must be 8+ characters with upper, lower, digit and special character.
    """
    try:
        user = create_user(username, email, password, role=role, profile_name=profile_name)
    except LedgerError as e:
        click.echo(f"FAIL {e}")
        sys.exit(1)

    click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role}'")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with role, status and balance."""
    users = db.session.query(User).order_by(User.id).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*72)
    click.echo(f"{'ID':<5} {'Username':<24} {'Role':<8} {'Active':<8} {'Credits'}")
    click.echo("="*72)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<24} {user.role:<8} {active_str:<8} {user.credits}")
    click.echo("="*72 + "\n")


# =============================================================================
# CREDIT COMMANDS
# =============================================================================

@click.group('credits')
def credits_group():
    """Operator credit adjustments (always through the ledger)."""


@credits_group.command('grant')
@click.argument('username')
@click.argument('amount', type=int)
@click.option('--reason', default='Operator grant', help='Ledger description')
@with_appcontext
def grant_credits(username, amount, reason):
    """Credit AMOUNT credits to USERNAME."""
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        click.echo(f"FAIL User '{username}' not found")
        sys.exit(1)
    if amount <= 0:
        click.echo("FAIL Amount must be positive")
        sys.exit(1)

    try:
        tx = credit_service.apply_transaction(user.id, amount, credit_service.KIND_PURCHASE, reason)
    except LedgerError as e:
        click.echo(f"FAIL {e}")
        sys.exit(1)

    click.echo(f"PASS Granted {amount} credits to {username} (transaction {tx.id}, balance {tx.balance_after})")


# =============================================================================
# LEDGER COMMANDS
# =============================================================================

@click.group('ledger')
def ledger_group():
    """Ledger inspection commands."""


@ledger_group.command('reconcile')
@click.option('--username', default=None, help='Check a single user')
@with_appcontext
def reconcile_ledger(username):
    """Report users whose balance differs from the sum of their ledger rows."""
    if username:
        user = db.session.query(User).filter_by(username=username).first()
        if not user:
            click.echo(f"FAIL User '{username}' not found")
            sys.exit(1)
        report = credit_service.reconcile_user(user.id)
        drifted = [dict(report, username=username)] if report["drift"] else []
    else:
        drifted = credit_service.find_drift()

    if not drifted:
        click.echo("PASS Ledger reconciles: no drift found")
        return

    for row in drifted:
        click.echo(
            f"FAIL {row['username']} (ID {row['user_id']}): balance {row['balance']}, "
            f"ledger sum {row['ledger_sum']}, drift {row['drift']}"
        )
    sys.exit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(credits_group)
    app.cli.add_command(ledger_group)
