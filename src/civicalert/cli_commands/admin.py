"""CLI commands for administration: init, users, locations, sessions, serve."""

from __future__ import annotations

import json as json_mod
from pathlib import Path

import click

from civicalert.cli_common import fail, get_db, require_acting_admin
from civicalert.core import (
    CIVIC_DIR_NAME,
    DB_FILENAME,
    CivicDB,
    read_config,
    write_config,
)
from civicalert.db_base import VALID_LOCATION_TYPES, VALID_ROLES
from civicalert.db_schema import CURRENT_SCHEMA_VERSION
from civicalert.errors import CivicAlertError


@click.command()
@click.option("--prefix", default=None, help="ID prefix for records (default: civic)")
def init(prefix: str | None) -> None:
    """Initialize .civicalert/ in the current directory."""
    cwd = Path.cwd()
    civic_dir = cwd / CIVIC_DIR_NAME

    if civic_dir.exists():
        click.echo(f"{CIVIC_DIR_NAME}/ already exists in {cwd}")
        # Still ensure DB is initialized
        config = read_config(civic_dir)
        with CivicDB(civic_dir / DB_FILENAME, prefix=config.get("prefix", "civic")) as db:
            db.initialize()
        return

    prefix = prefix or "civic"
    civic_dir.mkdir()
    write_config(civic_dir, {"prefix": prefix, "version": CURRENT_SCHEMA_VERSION})

    with CivicDB(civic_dir / DB_FILENAME, prefix=prefix) as db:
        db.initialize()

    click.echo(f"Initialized {CIVIC_DIR_NAME}/ in {cwd}")
    click.echo(f"  Prefix: {prefix}")
    click.echo(f"  Database: {civic_dir / DB_FILENAME}")
    click.echo("\nNext: civicalert user add admin@example.org --role ADMIN")


@click.command()
@click.option("--port", default=None, type=int, help="Port (default: config port, 8390)")
def serve(port: int | None) -> None:
    """Run the HTTP API under uvicorn."""
    from civicalert.dashboard import main

    main(port=port)


# -- Users -------------------------------------------------------------------


@click.group()
def user() -> None:
    """Manage users."""


@user.command("add")
@click.argument("email")
@click.option("--name", "full_name", default="", help="Full name")
@click.option("--role", type=click.Choice(VALID_ROLES, case_sensitive=False), default="RESIDENT", help="Role")
@click.option("--phone", default="", help="Phone number")
@click.option("--location", "location_id", default=None, help="Home location ID")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def user_add(
    ctx: click.Context,
    email: str,
    full_name: str,
    role: str,
    phone: str,
    location_id: str | None,
    as_json: bool,
) -> None:
    """Register a user."""
    with get_db() as db:
        require_acting_admin(ctx, db, as_json=as_json)
        try:
            created = db.create_user(email, full_name=full_name, role=role, phone_number=phone, location_id=location_id)
        except CivicAlertError as e:
            fail(str(e), as_json=as_json)
        if as_json:
            click.echo(json_mod.dumps(created.to_dict(), indent=2, default=str))
        else:
            click.echo(f"Created {created.id}: {created.display_name} [{created.role}]")


@user.command("list")
@click.option("--role", type=click.Choice(VALID_ROLES, case_sensitive=False), default=None, help="Filter by role")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def user_list(role: str | None, as_json: bool) -> None:
    """List users."""
    with get_db() as db:
        users = db.list_users(role=role)
        if as_json:
            click.echo(json_mod.dumps([u.to_dict() for u in users], indent=2, default=str))
            return
        for u in users:
            click.echo(f"{u.id} {u.role:<8} {u.email:<30} {u.full_name}")
        click.echo(f"\n{len(users)} users")


# -- Locations ---------------------------------------------------------------


@click.group()
def location() -> None:
    """Manage locations."""


@location.command("add")
@click.argument("name")
@click.option("--type", "location_type", type=click.Choice(VALID_LOCATION_TYPES, case_sensitive=False), default="VILLAGE")
@click.option("--parent", "parent_id", default=None, help="Parent location ID")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def location_add(ctx: click.Context, name: str, location_type: str, parent_id: str | None, as_json: bool) -> None:
    """Register a location."""
    with get_db() as db:
        require_acting_admin(ctx, db, as_json=as_json)
        try:
            created = db.create_location(name, type=location_type, parent_id=parent_id)
        except CivicAlertError as e:
            fail(str(e), as_json=as_json)
        if as_json:
            click.echo(json_mod.dumps(created.to_dict(), indent=2, default=str))
        else:
            click.echo(f"Created {created.id}: {created.name} [{created.type}]")


@location.command("list")
@click.option("--parent", "parent_id", default=None, help="Only children of this location")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def location_list(parent_id: str | None, as_json: bool) -> None:
    """List locations."""
    with get_db() as db:
        locations = db.list_locations(parent_id=parent_id)
        if as_json:
            click.echo(json_mod.dumps([loc.to_dict() for loc in locations], indent=2, default=str))
            return
        for loc in locations:
            click.echo(f"{loc.id} {loc.type:<9} {loc.name}")
        click.echo(f"\n{len(locations)} locations")


# -- Sessions ----------------------------------------------------------------


@click.group()
def session() -> None:
    """Issue and expire API session tokens."""


@session.command("issue")
@click.argument("email")
@click.option("--ttl", "ttl_minutes", default=None, type=int, help="Lifetime in minutes (default: config)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def session_issue(ctx: click.Context, email: str, ttl_minutes: int | None, as_json: bool) -> None:
    """Issue a bearer token for the user with EMAIL."""
    with get_db() as db:
        require_acting_admin(ctx, db, as_json=as_json)
        found = db.get_user_by_email(email)
        if found is None:
            fail(f"No user with email '{email}'", as_json=as_json)
        try:
            token = db.issue_session(found.id, ttl_minutes=ttl_minutes)
        except CivicAlertError as e:
            fail(str(e), as_json=as_json)
        if as_json:
            click.echo(json_mod.dumps({"token": token, "user_id": found.id}))
        else:
            click.echo(token)


@session.command("sweep")
def session_sweep() -> None:
    """Delete expired sessions."""
    with get_db() as db:
        removed = db.sweep_expired_sessions()
        click.echo(f"Removed {removed} expired session(s)")
