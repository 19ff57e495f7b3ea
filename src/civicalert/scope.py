"""Access scope resolution: the single place the ADMIN/RESIDENT visibility rule lives.

Every list, count, top-N, group-by and search operation narrows its query
through a :class:`Scope` built by :func:`resolve_scope`. Callers must check
:attr:`Scope.is_empty` first and short-circuit to an empty or zeroed result
without touching storage.

- No caller: nothing is in scope.
- ``ADMIN``: everything is in scope.
- ``RESIDENT``: an entity is in scope iff its owner reference equals the
  caller's id (``reported_by`` for issues, ``recipient_id`` for notifications).

The ``require_*`` checks turn those rules into ``UnauthenticatedError`` and
``ForbiddenError`` for both the HTTP routes and the CLI.

Pure functions with no SQLite, FastAPI, or Click dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Protocol, TypeVar

from civicalert.errors import ForbiddenError, UnauthenticatedError

ScopeKind = Literal["none", "all", "owner"]


class Principal(Protocol):
    """Anything with an id and a role; in practice a ``civicalert.db_directory.User``."""

    @property
    def id(self) -> str: ...

    @property
    def role(self) -> str: ...


P = TypeVar("P", bound=Principal)


@dataclass(frozen=True)
class Scope:
    kind: ScopeKind
    owner_id: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.kind == "none"

    @property
    def is_admin(self) -> bool:
        return self.kind == "all"

    def admits(self, owner_id: str | None) -> bool:
        """Decide whether an entity owned by *owner_id* is visible."""
        if self.kind == "all":
            return True
        if self.kind == "owner":
            return owner_id is not None and owner_id == self.owner_id
        return False

    def where(self, column: str) -> tuple[str, list[Any]]:
        """SQL predicate restricting *column* (the owner column) to this scope.

        *column* is always a hardcoded literal at the call site (never user input).
        Returns ``("", [])`` when no restriction applies. Calling this on an
        empty scope is a programming error.
        """
        if self.kind == "all":
            return "", []
        if self.kind == "owner":
            return f"{column} = ?", [self.owner_id]
        msg = "Empty scope has no SQL predicate; short-circuit before querying"
        raise RuntimeError(msg)


NO_SCOPE = Scope("none")
UNSCOPED = Scope("all")


def resolve_scope(current_user: Principal | None) -> Scope:
    if current_user is None:
        return NO_SCOPE
    if current_user.role == "ADMIN":
        return UNSCOPED
    if current_user.role == "RESIDENT":
        return Scope("owner", current_user.id)
    # Unknown roles see nothing rather than everything
    return NO_SCOPE


def in_scope(current_user: Principal | None, owner_id: str | None) -> bool:
    return resolve_scope(current_user).admits(owner_id)


def is_admin(current_user: Principal | None) -> bool:
    return current_user is not None and current_user.role == "ADMIN"


def can_edit(current_user: Principal | None, reported_by: str | None) -> bool:
    """Administrators edit anything; residents edit the issues they reported."""
    if current_user is None:
        return False
    return is_admin(current_user) or (reported_by is not None and reported_by == current_user.id)


# ---------------------------------------------------------------------------
# Access checks
# ---------------------------------------------------------------------------


def require_user(current_user: P | None) -> P:
    if current_user is None:
        msg = "Authentication required"
        raise UnauthenticatedError(msg)
    return current_user


def require_admin(current_user: P | None) -> P:
    user = require_user(current_user)
    if not is_admin(user):
        msg = "Administrator role required"
        raise ForbiddenError(msg, details={"role": user.role})
    return user


def require_in_scope(current_user: Principal | None, owner_id: str | None, message: str) -> None:
    """Raise ``ForbiddenError`` with *message* unless *owner_id* is visible to the caller."""
    require_user(current_user)
    if not in_scope(current_user, owner_id):
        raise ForbiddenError(message)


def require_editor(current_user: Principal | None, reported_by: str | None, message: str) -> None:
    require_user(current_user)
    if not can_edit(current_user, reported_by):
        raise ForbiddenError(message)
