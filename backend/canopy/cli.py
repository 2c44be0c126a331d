# Overview: Flask CLI command groups for bootstrap and inspection.

# backend/canopy/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "canopy:create_app".
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` once migrations exist).
# - python -m flask system seed-types
#   Insert the standard inventory type taxonomy (idempotent).
# - python -m flask system bootstrap --name "Green Acres" --ubi 600123456 --password "..."
#   Tables + taxonomy + first location with an admin user and a default room.
#
# Locations:
# - python -m flask locations list
# - python -m flask locations create --name "Green Acres" --ubi 600123456
#
# Users:
# - python -m flask users list [--location-id 1]
# - python -m flask users create --location-id 1 --username grower --role cultivator
# - python -m flask users deactivate --location-id 1 --user-id 3

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Location, User
from .permissions import ROLES, ROLE_ADMIN
from .services import auth_service, inventory_type_service, room_service
from .validation import DomainError


def _create_location(name: str, ubi: str, license_type: str) -> Location:
    if db.session.query(Location).filter_by(ubi=ubi).first() is not None:
        raise click.ClickException(f"Location with UBI {ubi} already exists")
    location = Location(name=name, ubi=ubi, license_type=license_type, is_active=True)
    db.session.add(location)
    db.session.commit()
    return location


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    db.create_all()
    click.echo("PASS Tables created")


@system_group.command('seed-types')
@with_appcontext
def seed_types():
    """Insert any missing standard inventory types."""
    created = inventory_type_service.seed_standard_types()
    db.session.commit()
    click.echo(f"PASS {created} inventory type(s) created")


@system_group.command('bootstrap')
@click.option('--name', 'location_name', default='Main Facility', help='Location name')
@click.option('--ubi', required=True, help='State-issued location reference')
@click.option('--license-type', default='Cultivator')
@click.option('--username', default='admin')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def bootstrap(location_name, ubi, license_type, username, password):
    """
    Initialize an empty database: tables, inventory taxonomy, one location,
    an admin user and a default room.
    """
    click.echo("START Bootstrapping...")
    db.create_all()

    created = inventory_type_service.seed_standard_types()
    db.session.commit()
    click.echo(f"PASS Inventory types: {created} created")

    location = _create_location(location_name, ubi, license_type)
    click.echo(f"PASS Created location: {location.name} (ID: {location.id}, UBI: {location.ubi})")

    try:
        user = auth_service.create_user(location.id, username, password, role=ROLE_ADMIN)
        room = room_service.create_room(location.id, "Main Room", "vegetative", user_id=user.id)
    except DomainError as e:
        db.session.rollback()
        raise click.ClickException(str(e))

    click.echo(f"PASS Created admin user: {user.username} (ID: {user.id})")
    click.echo(f"PASS Created room: {room.name} (ID: {room.id})")
    click.echo("DONE")


@click.group('locations')
def locations_group():
    """Location (tenant) management."""


@locations_group.command('list')
@with_appcontext
def list_locations():
    locations = db.session.query(Location).order_by(Location.id.asc()).all()
    if not locations:
        click.echo("No locations found")
        return
    for location in locations:
        state = "active" if location.is_active else "inactive"
        click.echo(f"{location.id:>4}  {location.ubi:<16} {location.name} [{location.license_type}, {state}]")


@locations_group.command('create')
@click.option('--name', required=True)
@click.option('--ubi', required=True)
@click.option('--license-type', default='Cultivator')
@with_appcontext
def create_location(name, ubi, license_type):
    location = _create_location(name, ubi, license_type)
    click.echo(f"PASS Created location: {location.name} (ID: {location.id})")


@click.group('users')
def users_group():
    """User inspection and creation."""


@users_group.command('list')
@click.option('--location-id', type=int, help='Filter by location ID')
@with_appcontext
def list_users(location_id):
    q = db.session.query(User)
    if location_id is not None:
        q = q.filter_by(location_id=location_id)
    users = q.order_by(User.location_id.asc(), User.username.asc()).all()
    if not users:
        click.echo("No users found")
        return
    for user in users:
        state = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>4}  loc={user.location_id:<4} {user.username:<20} {user.role:<12} {state}")


@users_group.command('create')
@click.option('--location-id', type=int, required=True)
@click.option('--username', prompt=True)
@click.option('--email', default=None)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice(ROLES), default='viewer', show_default=True)
@with_appcontext
def create_user_cli(location_id, username, email, password, role):
    try:
        user = auth_service.create_user(location_id, username, password, role=role, email=email)
    except DomainError as e:
        db.session.rollback()
        raise click.ClickException(str(e))
    click.echo(f"PASS Created user: {user.username} (ID: {user.id}, role: {user.role})")


@users_group.command('deactivate')
@click.option('--location-id', type=int, required=True)
@click.option('--user-id', type=int, required=True)
@with_appcontext
def deactivate_user_cli(location_id, user_id):
    try:
        user = auth_service.deactivate_user(location_id, user_id)
    except DomainError as e:
        db.session.rollback()
        raise click.ClickException(str(e))
    click.echo(f"PASS Deactivated user: {user.username} (ID: {user.id})")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(locations_group)
    app.cli.add_command(users_group)
