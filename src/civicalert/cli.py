"""CLI for civicalert.

Convention-based: discovers .civicalert/ by walking up from cwd.

Usage:
    civicalert init                                  # Initialize .civicalert/ in cwd
    civicalert user add ana@example.org --role ADMIN # Register a user
    civicalert location add Kacyiru --type SECTOR    # Register a location
    civicalert session issue ana@example.org         # Print an API bearer token
    civicalert tag create pothole                    # Add to the tag catalog
    civicalert --as res@example.org create "Broken streetlight" -t <tag-id>
    civicalert status <id> IN_PROGRESS               # Transition and notify reporter
    civicalert attach <id> <tag-id>                  # Attach a tag
    civicalert --as res@example.org notifications    # Scoped notification feed
    civicalert stats                                 # Dashboard statistics
    civicalert search "streetlight"                  # Search issues
    civicalert serve --port 8390                     # Run the HTTP API
"""

from __future__ import annotations

import click

from civicalert import __version__
from civicalert.cli_commands import admin, issues, reports, tags


@click.group()
@click.version_option(version=__version__, prog_name="civicalert")
@click.option("--as", "as_email", default=None, help="Act as the user with this email (scopes reads)")
@click.pass_context
def cli(ctx: click.Context, as_email: str | None) -> None:
    """CivicAlert: municipal issue reporting."""
    ctx.ensure_object(dict)
    ctx.obj["as_email"] = as_email


for _command in (
    admin.init,
    admin.serve,
    admin.user,
    admin.location,
    admin.session,
    tags.tag,
    issues.create,
    issues.show,
    issues.list_issues,
    issues.status,
    issues.attach,
    issues.detach,
    issues.delete,
    reports.notifications,
    reports.stats,
    reports.search,
):
    cli.add_command(_command)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
