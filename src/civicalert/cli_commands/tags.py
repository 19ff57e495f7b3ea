"""CLI commands for the tag catalog."""

from __future__ import annotations

import json as json_mod

import click

from civicalert.cli_common import fail, get_db, require_acting_admin
from civicalert.errors import CivicAlertError


@click.group()
def tag() -> None:
    """Manage the tag catalog."""


@tag.command("create")
@click.argument("name")
@click.option("--description", "-d", default=None, help="Description")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def tag_create(ctx: click.Context, name: str, description: str | None, as_json: bool) -> None:
    """Create a tag. Administrators only."""
    with get_db() as db:
        require_acting_admin(ctx, db, as_json=as_json)
        try:
            created = db.create_tag(name, description)
        except CivicAlertError as e:
            fail(str(e), as_json=as_json)
        if as_json:
            click.echo(json_mod.dumps(created.to_dict(), indent=2, default=str))
        else:
            click.echo(f"Created {created.id}: {created.name}")


@tag.command("list")
@click.option("--active", "filter_", flag_value="active", help="Only active tags")
@click.option("--used", "filter_", flag_value="used", help="Only tags on at least one issue")
@click.option("--unused", "filter_", flag_value="unused", help="Only tags on no issue")
@click.option("--search", "query", default=None, help="Case-insensitive name substring")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def tag_list(filter_: str | None, query: str | None, as_json: bool) -> None:
    """List tags."""
    with get_db() as db:
        if query is not None:
            tags = db.search_tags(query)
        elif filter_ == "active":
            tags = db.list_active_tags()
        elif filter_ == "used":
            tags = db.list_used_tags()
        elif filter_ == "unused":
            tags = db.list_unused_tags()
        else:
            tags = db.list_tags()
        if as_json:
            click.echo(json_mod.dumps([t.to_dict() for t in tags], indent=2, default=str))
            return
        for t in tags:
            state = "active" if t.active else "inactive"
            click.echo(f"{t.id} {state:<8} {t.usage_count:>4}  {t.name}")
        click.echo(f"\n{len(tags)} tags")


@tag.command("activate")
@click.argument("tag_id")
@click.pass_context
def tag_activate(ctx: click.Context, tag_id: str) -> None:
    """Make a tag selectable again."""
    with get_db() as db:
        require_acting_admin(ctx, db)
        try:
            t = db.activate_tag(tag_id)
        except CivicAlertError as e:
            fail(str(e))
        click.echo(f"Activated {t.id}: {t.name}")


@tag.command("deactivate")
@click.argument("tag_id")
@click.pass_context
def tag_deactivate(ctx: click.Context, tag_id: str) -> None:
    """Hide a tag from selection. Existing memberships are kept."""
    with get_db() as db:
        require_acting_admin(ctx, db)
        try:
            t = db.deactivate_tag(tag_id)
        except CivicAlertError as e:
            fail(str(e))
        click.echo(f"Deactivated {t.id}: {t.name}")


@tag.command("delete")
@click.argument("tag_id")
@click.pass_context
def tag_delete(ctx: click.Context, tag_id: str) -> None:
    """Detach a tag from every issue and delete it."""
    with get_db() as db:
        require_acting_admin(ctx, db)
        try:
            detached = db.delete_tag(tag_id)
        except CivicAlertError as e:
            fail(str(e))
        click.echo(f"Deleted {tag_id} (detached from {len(detached)} issue(s))")
