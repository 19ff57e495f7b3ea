"""CLI commands for the issue lifecycle: create, show, list, status, attach, detach, delete."""

from __future__ import annotations

import json as json_mod

import click

from civicalert.cli_common import acting_scope, acting_user, fail, get_db, require_acting_admin
from civicalert.db_base import VALID_STATUSES
from civicalert.errors import CivicAlertError
from civicalert.scope import require_editor


@click.command()
@click.argument("title")
@click.option("--description", "-d", default="", help="Description")
@click.option("--category", "-c", default="", help="Category (free text)")
@click.option("--location", "location_id", default=None, help="Location ID")
@click.option("--photo", "photo_url", default=None, help="Photo URL")
@click.option("--tag", "-t", "tag_ids", multiple=True, help="Active tag ID (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def create(
    ctx: click.Context,
    title: str,
    description: str,
    category: str,
    location_id: str | None,
    photo_url: str | None,
    tag_ids: tuple[str, ...],
    as_json: bool,
) -> None:
    """Report a new issue. The --as user is recorded as the reporter."""
    with get_db() as db:
        reporter = acting_user(ctx, db, as_json=as_json)
        try:
            issue = db.create_issue(
                title,
                description=description,
                category=category,
                location_id=location_id,
                reporter_id=reporter.id if reporter is not None else None,
                photo_url=photo_url,
                tag_ids=list(tag_ids) or None,
            )
        except CivicAlertError as e:
            fail(str(e), as_json=as_json)
        if as_json:
            click.echo(json_mod.dumps(issue.to_dict(), indent=2, default=str))
        else:
            click.echo(f"Created {issue.id}: {issue.title}")


@click.command()
@click.argument("issue_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def show(ctx: click.Context, issue_id: str, as_json: bool) -> None:
    """Show issue details."""
    with get_db() as db:
        scope = acting_scope(ctx, db, as_json=as_json)
        try:
            issue = db.get_issue(issue_id)
        except CivicAlertError as e:
            fail(str(e), as_json=as_json)
        if not scope.admits(issue.reported_by):
            fail(f"Issue {issue_id} is outside your scope", as_json=as_json)

        if as_json:
            click.echo(json_mod.dumps(issue.to_dict(), indent=2, default=str))
            return

        click.echo(f"ID:        {issue.id}")
        click.echo(f"Title:     {issue.title}")
        click.echo(f"Status:    {issue.status}")
        if issue.category:
            click.echo(f"Category:  {issue.category}")
        click.echo(f"Location:  {issue.location_name or '-'}")
        click.echo(f"Reporter:  {issue.reporter_name or '-'}")
        click.echo(f"Reported:  {issue.date_reported}")
        if issue.date_resolved:
            click.echo(f"Resolved:  {issue.date_resolved}")
        if issue.tags:
            click.echo(f"Tags:      {', '.join(t['name'] for t in issue.tags)}")
        if issue.description:
            click.echo(f"\n{issue.description}")


@click.command("list")
@click.option("--status", type=click.Choice(VALID_STATUSES, case_sensitive=False), default=None, help="Filter by status")
@click.option("--category", default=None, help="Filter by category")
@click.option("--page", default=0, type=int, help="Zero-based page (default 0)")
@click.option("--size", default=20, type=int, help="Page size (default 20)")
@click.option("--sort", default="date_reported", help="Sort key (default date_reported)")
@click.option("--direction", default="desc", type=click.Choice(["asc", "desc"]), help="Sort direction")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def list_issues(
    ctx: click.Context,
    status: str | None,
    category: str | None,
    page: int,
    size: int,
    sort: str,
    direction: str,
    as_json: bool,
) -> None:
    """List issues visible to the acting user."""
    with get_db() as db:
        scope = acting_scope(ctx, db, as_json=as_json)
        try:
            result = db.list_issues_scoped(
                scope, status=status, category=category, page=page, size=size, sort=sort, direction=direction
            )
        except CivicAlertError as e:
            fail(str(e), as_json=as_json)
        if as_json:
            click.echo(json_mod.dumps(result, indent=2, default=str))
            return
        for issue in result["results"]:
            click.echo(f"{issue['id']} {issue['status']:<12} {issue['title']}")
        click.echo(f"\n{len(result['results'])} of {result['total']} issues")


@click.command()
@click.argument("issue_id")
@click.argument("new_status", type=click.Choice(VALID_STATUSES, case_sensitive=False))
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def status(ctx: click.Context, issue_id: str, new_status: str, as_json: bool) -> None:
    """Move an issue to NEW_STATUS and notify its reporter. Administrators only."""
    with get_db() as db:
        require_acting_admin(ctx, db, as_json=as_json)
        try:
            issue = db.update_status(issue_id, new_status)
        except CivicAlertError as e:
            fail(str(e), as_json=as_json)
        if as_json:
            click.echo(json_mod.dumps(issue.to_dict(), indent=2, default=str))
        else:
            click.echo(f"Updated {issue.id}: {issue.title} [{issue.status}]")


@click.command()
@click.argument("issue_id")
@click.argument("tag_id")
@click.pass_context
def attach(ctx: click.Context, issue_id: str, tag_id: str) -> None:
    """Attach a tag to an issue. Administrators only."""
    with get_db() as db:
        require_acting_admin(ctx, db)
        try:
            issue = db.add_tag(issue_id, tag_id)
        except CivicAlertError as e:
            fail(str(e))
        click.echo(f"Tags on {issue.id}: {', '.join(t['name'] for t in issue.tags)}")


@click.command()
@click.argument("issue_id")
@click.argument("tag_id")
@click.pass_context
def detach(ctx: click.Context, issue_id: str, tag_id: str) -> None:
    """Detach a tag from an issue. Administrators only."""
    with get_db() as db:
        require_acting_admin(ctx, db)
        try:
            issue = db.remove_tag(issue_id, tag_id)
        except CivicAlertError as e:
            fail(str(e))
        names = ", ".join(t["name"] for t in issue.tags) or "(none)"
        click.echo(f"Tags on {issue.id}: {names}")


@click.command()
@click.argument("issue_id")
@click.pass_context
def delete(ctx: click.Context, issue_id: str) -> None:
    """Delete an issue. Its notifications are kept.

    With --as, only an administrator or the reporter may delete.
    """
    with get_db() as db:
        user = acting_user(ctx, db)
        try:
            if user is not None:
                msg = f"Only an administrator or the reporter may delete issue {issue_id}"
                require_editor(user, db.get_issue(issue_id).reported_by, msg)
            db.delete_issue(issue_id)
        except CivicAlertError as e:
            fail(str(e))
        click.echo(f"Deleted {issue_id}")
