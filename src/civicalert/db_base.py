"""Shared utilities, types, and Protocol for DB mixins."""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Literal, Protocol, get_args

if TYPE_CHECKING:
    from contextlib import AbstractContextManager

    from civicalert.db_directory import User

Status = Literal["REPORTED", "IN_PROGRESS", "RESOLVED"]
Role = Literal["ADMIN", "RESIDENT"]
LocationType = Literal["PROVINCE", "DISTRICT", "SECTOR", "CELL", "VILLAGE"]

VALID_STATUSES: tuple[str, ...] = get_args(Status)
VALID_ROLES: tuple[str, ...] = get_args(Role)
VALID_LOCATION_TYPES: tuple[str, ...] = get_args(LocationType)

SYSTEM_CHANNEL = "SYSTEM"


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _placeholders(values: list[str] | tuple[str, ...]) -> str:
    return ",".join("?" * len(values))


class DBMixinProtocol(Protocol):
    """Shared attributes and methods that DB mixins access via self.

    Mixins inherit this Protocol so mypy can type-check self.conn,
    self._transaction(), etc. without ``type: ignore`` on every call.
    Actual implementations are provided by CivicDB at composition time.
    """

    db_path: Path
    prefix: str
    _conn: sqlite3.Connection | None

    @property
    def conn(self) -> sqlite3.Connection: ...

    def _transaction(self) -> AbstractContextManager[sqlite3.Connection]: ...

    def _generate_unique_id(self, table: str, infix: str = "") -> str: ...

    def get_user(self, user_id: str) -> User: ...


def _order_clause(sort: str, direction: str, allowed: dict[str, str]) -> str:
    """Build an ORDER BY clause from a whitelisted sort key and direction."""
    from civicalert.errors import ValidationError

    column = allowed.get(sort)
    if column is None:
        msg = f"Unknown sort key '{sort}'. Valid keys: {', '.join(allowed)}"
        raise ValidationError(msg)
    normalized = direction.strip().upper()
    if normalized not in ("ASC", "DESC"):
        msg = f"Sort direction must be 'asc' or 'desc', got '{direction}'"
        raise ValidationError(msg)
    return f"ORDER BY {column} {normalized}, id {normalized}"


def _page_bounds(page: int, size: int) -> tuple[int, int]:
    """Translate a zero-based page number and page size into (limit, offset)."""
    from civicalert.errors import ValidationError

    if page < 0:
        msg = f"page must be >= 0, got {page}"
        raise ValidationError(msg)
    if size < 1:
        msg = f"size must be >= 1, got {size}"
        raise ValidationError(msg)
    return size, page * size
