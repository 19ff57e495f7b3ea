"""CLI commands for reading: notifications, stats, search."""

from __future__ import annotations

import json as json_mod

import click

from civicalert.cli_common import acting_scope, acting_user, fail, get_db
from civicalert.errors import CivicAlertError


@click.command()
@click.option("--page", default=0, type=int, help="Zero-based page (default 0)")
@click.option("--size", default=20, type=int, help="Page size (default 20)")
@click.option("--search", "query", default=None, help="Only messages containing this text")
@click.option("--mark-read", "mark_read", default=None, help="Mark this notification ID as read")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def notifications(ctx: click.Context, page: int, size: int, query: str | None, mark_read: str | None, as_json: bool) -> None:
    """List notifications visible to the acting user."""
    with get_db() as db:
        scope = acting_scope(ctx, db, as_json=as_json)
        if mark_read is not None:
            try:
                target = db.get_notification(mark_read)
                if not scope.admits(target.recipient_id):
                    fail(f"Notification {mark_read} is outside your scope", as_json=as_json)
                target = db.mark_notification_read(mark_read)
            except CivicAlertError as e:
                fail(str(e), as_json=as_json)
            if as_json:
                click.echo(json_mod.dumps(target.to_dict(), indent=2, default=str))
            else:
                click.echo(f"Marked {target.id} as read")
            return

        if query is not None:
            found = [n.to_dict() for n in db.search_notifications_scoped(query, scope)]
            total = len(found)
        else:
            try:
                result = db.list_notifications_scoped(scope, page=page, size=size)
            except CivicAlertError as e:
                fail(str(e), as_json=as_json)
            found = result["results"]
            total = result["total"]
        if as_json:
            click.echo(json_mod.dumps(found, indent=2, default=str))
            return
        for n in found:
            marker = " " if n["read"] else "*"
            click.echo(f"{marker} {n['id']} {n['sent_at'][:19]} {n['message']}")
        user = acting_user(ctx, db)
        unread = f", {db.count_unread_notifications(user.id)} unread" if user is not None else ""
        click.echo(f"\n{len(found)} of {total} notifications{unread}")


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def stats(ctx: click.Context, as_json: bool) -> None:
    """Show dashboard statistics for the acting user."""
    with get_db() as db:
        s = db.get_dashboard_stats(acting_scope(ctx, db, as_json=as_json))

        if as_json:
            click.echo(json_mod.dumps(s, indent=2, default=str))
            return

        click.echo(f"Issues: {s['total_issues']}")
        click.echo(f"  REPORTED:    {s['reported_issues']}")
        click.echo(f"  IN_PROGRESS: {s['in_progress_issues']}")
        click.echo(f"  RESOLVED:    {s['resolved_issues']}")
        if s["total_users"] or s["total_locations"]:
            click.echo(f"Users: {s['total_users']}  Locations: {s['total_locations']}")
        if s["issues_by_category"]:
            click.echo("\nCategories:")
            for c in s["issues_by_category"]:
                click.echo(f"  {c['category'] or '(none)'}: {c['count']}")
        if s["issues_by_location"]:
            click.echo("\nLocations:")
            for loc in s["issues_by_location"]:
                click.echo(f"  {loc['location']}: {loc['count']}")
        if s["recent_issues"]:
            click.echo("\nRecent:")
            for issue in s["recent_issues"]:
                click.echo(f"  {issue['id']} {issue['status']:<12} {issue['title']}")


@click.command()
@click.argument("query")
@click.option("--limit", default=100, type=int, help="Max results (default 100)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def search(ctx: click.Context, query: str, limit: int, as_json: bool) -> None:
    """Search issues by title, description and category."""
    with get_db() as db:
        issues = db.search_issues(query, acting_scope(ctx, db, as_json=as_json), limit=limit)

        if as_json:
            click.echo(json_mod.dumps([i.to_dict() for i in issues], indent=2, default=str))
            return

        for issue in issues:
            click.echo(f"{issue.id} {issue.status:<12} {issue.title}")
        click.echo(f"\n{len(issues)} results")
