# Overview: Flask CLI command groups for bootstrap, role administration, and ledger inspection.

# backend/supplychain/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init --admin 0x...
#   Create tables and give the address the ADMIN role if no admin exists yet.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Role administration (--caller defaults to SUPPLYCHAIN_ADMIN_ADDRESS):
# - python -m flask roles grant DISTRIBUTOR 0x... [--caller 0x...]
# - python -m flask roles revoke DISTRIBUTOR 0x... [--caller 0x...]
# - python -m flask roles freeze 0x... [--caller 0x...]
# - python -m flask roles unfreeze 0x... [--caller 0x...]
# - python -m flask roles show 0x...
#
# Ledger inspection:
# - python -m flask batches list [--status CREATED] [--holder 0x...]
# - python -m flask batches expired [--now 1767225600]
#   Batches past expiry that are still in the forward chain.
# - python -m flask batches show 1
# - python -m flask events tail [--limit 20] [--name BatchCreated]

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import SupplyChainError
from .extensions import db
from .services import batch_service, role_service
from .services.concurrency import commit_with_retry
from .services.event_service import list_events
from .models import LedgerEvent
from .validation import ValidationError


def _resolve_caller(caller):
    caller = caller or current_app.config.get("SUPPLYCHAIN_ADMIN_ADDRESS")
    if not caller:
        raise click.UsageError("--caller is required when SUPPLYCHAIN_ADMIN_ADDRESS is not set")
    return caller


def _fail(exc: Exception) -> None:
    db.session.rollback()
    click.echo(f"FAIL Error: {exc}")


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin', 'admin_address', help='Deployer address to receive ADMIN')
@with_appcontext
def init_system(admin_address):
    """
    Initialize the ledger: create tables and bootstrap the first ADMIN.

    Idempotent: an existing admin is left in place.
    """
    click.echo("START Initializing supply chain ledger...")

    db.create_all()
    click.echo("PASS Tables ready")

    admin_address = admin_address or current_app.config.get("SUPPLYCHAIN_ADMIN_ADDRESS")
    if not admin_address:
        click.echo("WARN  No --admin given and SUPPLYCHAIN_ADMIN_ADDRESS not set; no admin bootstrapped")
        return

    try:
        assignment = role_service.bootstrap_admin(admin_address)
        commit_with_retry()
    except (SupplyChainError, ValidationError) as e:
        _fail(e)
        return

    if assignment:
        click.echo(f"PASS Granted ADMIN to {admin_address.lower()}")
    else:
        click.echo("PASS Admin already configured")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


# =============================================================================
# ROLES
# =============================================================================

@click.group('roles')
def roles_group():
    """Role registry administration."""


@roles_group.command('grant')
@click.argument('role')
@click.argument('address')
@click.option('--caller', help='Admin address performing the grant')
@with_appcontext
def grant_role_cli(role, address, caller):
    """Grant a role to an address."""
    try:
        role_service.grant_role(_resolve_caller(caller), role, address)
        commit_with_retry()
        click.echo(f"PASS Granted {role.upper()} to {address.lower()}")
    except (SupplyChainError, ValidationError) as e:
        _fail(e)


@roles_group.command('revoke')
@click.argument('role')
@click.argument('address')
@click.option('--caller', help='Admin address performing the revoke')
@with_appcontext
def revoke_role_cli(role, address, caller):
    """Revoke a role from an address."""
    try:
        revoked = role_service.revoke_role(_resolve_caller(caller), role, address)
        commit_with_retry()
        if revoked:
            click.echo(f"PASS Revoked {role.upper()} from {address.lower()}")
        else:
            click.echo(f"WARN  {address.lower()} did not hold {role.upper()}")
    except (SupplyChainError, ValidationError) as e:
        _fail(e)


@roles_group.command('freeze')
@click.argument('address')
@click.option('--caller', help='Admin address performing the freeze')
@with_appcontext
def freeze_cli(address, caller):
    """Freeze an address and revoke its non-ADMIN roles."""
    try:
        role_service.freeze_address(_resolve_caller(caller), address)
        commit_with_retry()
        click.echo(f"PASS Frozen {address.lower()}")
    except (SupplyChainError, ValidationError) as e:
        _fail(e)


@roles_group.command('unfreeze')
@click.argument('address')
@click.option('--caller', help='Admin address performing the unfreeze')
@with_appcontext
def unfreeze_cli(address, caller):
    """Unfreeze an address (roles are not restored)."""
    try:
        role_service.unfreeze_address(_resolve_caller(caller), address)
        commit_with_retry()
        click.echo(f"PASS Unfrozen {address.lower()}")
    except (SupplyChainError, ValidationError) as e:
        _fail(e)


@roles_group.command('show')
@click.argument('address')
@with_appcontext
def show_roles_cli(address):
    """Show the roles and frozen flag of an address."""
    try:
        summary = role_service.get_participant_summary(address)
    except ValidationError as e:
        click.echo(f"FAIL Error: {e}")
        return

    roles_str = ", ".join(summary["roles"]) if summary["roles"] else "none"
    frozen_str = "Yes" if summary["is_frozen"] else "No"
    click.echo(f"Address: {summary['address']}")
    click.echo(f"Roles:   {roles_str}")
    click.echo(f"Frozen:  {frozen_str}")


# =============================================================================
# BATCHES
# =============================================================================

def _echo_batches(batches):
    if not batches:
        click.echo("No batches found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<6} {'Status':<18} {'Holder':<44} {'Price':<12} {'Expiry'}")
    click.echo("="*100)

    for batch in batches:
        click.echo(f"{batch.id:<6} {batch.status:<18} {batch.holder:<44} {batch.price:<12} {batch.expiry}")

    click.echo("="*100 + "\n")


@click.group('batches')
def batches_group():
    """Batch ledger inspection."""


@batches_group.command('list')
@click.option('--status', help='Filter by status')
@click.option('--holder', help='Filter by current holder')
@with_appcontext
def list_batches_cli(status, holder):
    """List batches."""
    try:
        _echo_batches(batch_service.list_batches(status=status, holder=holder))
    except ValidationError as e:
        click.echo(f"FAIL Error: {e}")


@batches_group.command('expired')
@click.option('--now', type=int, help='Ledger time in unix seconds (default: current time)')
@with_appcontext
def expired_batches_cli(now):
    """List batches past expiry that have not been returned."""
    _echo_batches(batch_service.find_expired_batches(now=now))


@batches_group.command('show')
@click.argument('batch_id', type=int)
@with_appcontext
def show_batch_cli(batch_id):
    """Show one batch and its event history."""
    try:
        details = batch_service.get_batch_details(batch_id)
    except SupplyChainError as e:
        click.echo(f"FAIL Error: {e}")
        return

    for key, value in details.items():
        click.echo(f"{key:<24} {value}")

    click.echo("\nHistory:")
    for ev in batch_service.get_batch_history(batch_id):
        click.echo(f"  #{ev.id:<5} {ev.event_name:<22} {ev.args}")


# =============================================================================
# EVENTS
# =============================================================================

@click.group('events')
def events_group():
    """Ledger event log inspection."""


@events_group.command('tail')
@click.option('--limit', type=int, default=20, show_default=True, help='Number of events')
@click.option('--name', help='Only events with this name')
@with_appcontext
def tail_events_cli(limit, name):
    """Show the most recent events, oldest first."""
    q = db.session.query(LedgerEvent)
    if name:
        q = q.filter(LedgerEvent.event_name == name)
    latest = q.order_by(LedgerEvent.id.desc()).limit(limit).all()

    if not latest:
        click.echo("No events found.")
        return

    first_id = latest[-1].id - 1
    for ev in list_events(event_name=name, after_id=first_id, limit=limit):
        click.echo(f"#{ev.id:<6} {ev.event_name:<22} {ev.args}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(roles_group)
    app.cli.add_command(batches_group)
    app.cli.add_command(events_group)
