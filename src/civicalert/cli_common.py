"""Shared CLI helpers used by ``cli.py`` and the ``cli_commands/*.py`` modules.

Provides ``get_db()``, acting-user resolution for ``--as`` and uniform error
output, so that command modules can import them without circular imports.
"""

from __future__ import annotations

import json as json_mod
import sys
from typing import NoReturn

import click

from civicalert.core import (
    CIVIC_DIR_NAME,
    DB_FILENAME,
    CivicDB,
    find_civic_root,
    read_config,
)
from civicalert.db_directory import User
from civicalert.db_sessions import DEFAULT_SESSION_TTL_MINUTES
from civicalert.logging import setup_logging
from civicalert.errors import CivicAlertError
from civicalert.scope import UNSCOPED, Scope, require_admin, resolve_scope


def get_db() -> CivicDB:
    """Discover .civicalert/ and return an initialized CivicDB."""
    try:
        civic_dir = find_civic_root()
    except FileNotFoundError:
        click.echo(f"No {CIVIC_DIR_NAME}/ found. Run 'civicalert init' first.", err=True)
        sys.exit(1)
    setup_logging(civic_dir)
    config = read_config(civic_dir)
    db = CivicDB(
        civic_dir / DB_FILENAME,
        prefix=config.get("prefix", "civic"),
        session_ttl_minutes=config.get("session_ttl_minutes", DEFAULT_SESSION_TTL_MINUTES),
    )
    db.initialize()
    return db


def fail(message: str, *, as_json: bool = False) -> NoReturn:
    """Report an error the way every command does and exit with status 1."""
    if as_json:
        click.echo(json_mod.dumps({"error": message}))
    else:
        click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def acting_user(ctx: click.Context, db: CivicDB, *, as_json: bool = False) -> User | None:
    """The user selected with ``--as EMAIL``, or None when the operator acts directly."""
    email = ctx.obj.get("as_email") if ctx.obj else None
    if not email:
        return None
    user = db.get_user_by_email(email)
    if user is None:
        fail(f"No user with email '{email}'", as_json=as_json)
    return user


def acting_scope(ctx: click.Context, db: CivicDB, *, as_json: bool = False) -> Scope:
    """Read scope for a command: the ``--as`` user's scope, or everything for the operator."""
    user = acting_user(ctx, db, as_json=as_json)
    if user is None:
        return UNSCOPED
    return resolve_scope(user)


def require_acting_admin(ctx: click.Context, db: CivicDB, *, as_json: bool = False) -> User | None:
    """Fail unless the ``--as`` user is an administrator. The operator always passes."""
    user = acting_user(ctx, db, as_json=as_json)
    if user is None:
        return None
    try:
        return require_admin(user)
    except CivicAlertError as e:
        fail(str(e), as_json=as_json)
