# Overview: Flask CLI command groups for database reset and stock inspection.

# backend/lamagest/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "lamagest:create_app".
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Id counters:
# - python -m flask counters list
#   Show the last number issued for every counter-backed id kind.
#
# Movements:
# - python -m flask movements can-delete MOV000042
#   Show whether a movement is still inside its reversal window.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import id_service, movement_service
from .validation import LamaGestError


@click.group('system')
def system_group():
    """System maintenance commands."""


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


@click.group('counters')
def counters_group():
    """Sequential id counter inspection."""


@counters_group.command('list')
@with_appcontext
def list_counters():
    counters = id_service.peek_counters()
    if not counters:
        click.echo("No counters issued yet.")
        return
    for counter in counters:
        click.echo(f"{counter.kind:<16} {counter.count}")


@click.group('movements')
def movements_group():
    """Stock movement inspection."""


@movements_group.command('can-delete')
@click.argument('movement_id')
@with_appcontext
def can_delete(movement_id):
    """Report the reversal window state of MOVEMENT_ID."""
    try:
        info = movement_service.check_movement_deletable(movement_id)
    except LamaGestError as e:
        raise click.ClickException(e.message)

    state = "deletable" if info["can_delete"] else "expired"
    click.echo(f"{info['movement_id']}: {state}")
    click.echo(f"  age: {info['hours_difference']}h")
    click.echo(f"  remaining: {info['time_remaining_formatted']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(counters_group)
    app.cli.add_command(movements_group)
