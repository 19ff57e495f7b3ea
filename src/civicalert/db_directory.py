"""DirectoryMixin: users and locations.

Users and locations are read-only context for the issue lifecycle: issues
point at a reporter and a location, notifications point at a recipient. This
mixin keeps just enough of each record for those references to resolve and
for display names to render.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Any

from civicalert.db_base import VALID_LOCATION_TYPES, VALID_ROLES, DBMixinProtocol, _now_iso
from civicalert.errors import ConflictError, NotFoundError, ValidationError
from civicalert.types.core import ISOTimestamp, LocationDict, UserDict

logger = logging.getLogger(__name__)

UNKNOWN_LOCATION = "Unknown location"


@dataclass
class User:
    id: str
    email: str
    role: str = "RESIDENT"
    full_name: str = ""
    phone_number: str = ""
    location_id: str | None = None
    created_at: str = ""

    @property
    def display_name(self) -> str:
        """Full name, or the email address when no name was recorded."""
        return self.full_name.strip() or self.email

    @property
    def is_admin(self) -> bool:
        return self.role == "ADMIN"

    def to_dict(self) -> UserDict:
        return UserDict(
            id=self.id,
            full_name=self.full_name,
            email=self.email,
            phone_number=self.phone_number,
            role=self.role,
            location_id=self.location_id,
            created_at=ISOTimestamp(self.created_at),
        )


@dataclass
class Location:
    id: str
    name: str
    type: str = "VILLAGE"
    parent_id: str | None = None

    def to_dict(self) -> LocationDict:
        return LocationDict(id=self.id, name=self.name, type=self.type, parent_id=self.parent_id)


def _user_from_row(row: sqlite3.Row) -> User:
    return User(
        id=row["id"],
        email=row["email"],
        role=row["role"],
        full_name=row["full_name"] or "",
        phone_number=row["phone_number"] or "",
        location_id=row["location_id"],
        created_at=row["created_at"],
    )


def _location_from_row(row: sqlite3.Row) -> Location:
    return Location(id=row["id"], name=row["name"], type=row["type"], parent_id=row["parent_id"])


class DirectoryMixin(DBMixinProtocol):
    """Users and locations.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes.
    Actual implementations provided by ``CivicDB`` at composition time via MRO.
    """

    # -- Locations -----------------------------------------------------------

    def create_location(self, name: str, *, type: str = "VILLAGE", parent_id: str | None = None) -> Location:
        if not name or not name.strip():
            msg = "Location name cannot be empty"
            raise ValidationError(msg)
        location_type = type.upper()
        if location_type not in VALID_LOCATION_TYPES:
            msg = f"Unknown location type '{type}'. Valid types: {', '.join(VALID_LOCATION_TYPES)}"
            raise ValidationError(msg)
        with self._transaction() as conn:
            if parent_id is not None:
                self.get_location(parent_id)
            location_id = self._generate_unique_id("locations", "loc")
            conn.execute(
                "INSERT INTO locations (id, name, type, parent_id) VALUES (?, ?, ?, ?)",
                (location_id, name.strip(), location_type, parent_id),
            )
        return self.get_location(location_id)

    def get_location(self, location_id: str) -> Location:
        row = self.conn.execute("SELECT * FROM locations WHERE id = ?", (location_id,)).fetchone()
        if row is None:
            raise NotFoundError("location", location_id)
        return _location_from_row(row)

    def list_locations(self, *, parent_id: str | None = None) -> list[Location]:
        if parent_id is None:
            rows = self.conn.execute("SELECT * FROM locations ORDER BY name").fetchall()
        else:
            rows = self.conn.execute("SELECT * FROM locations WHERE parent_id = ? ORDER BY name", (parent_id,)).fetchall()
        return [_location_from_row(r) for r in rows]

    def count_locations(self) -> int:
        result: int = self.conn.execute("SELECT COUNT(*) FROM locations").fetchone()[0]
        return result

    # -- Users ---------------------------------------------------------------

    def create_user(
        self,
        email: str,
        *,
        full_name: str = "",
        role: str = "RESIDENT",
        phone_number: str = "",
        location_id: str | None = None,
    ) -> User:
        if not email or not email.strip():
            msg = "Email cannot be empty"
            raise ValidationError(msg)
        role = role.upper()
        if role not in VALID_ROLES:
            msg = f"Unknown role '{role}'. Valid roles: {', '.join(VALID_ROLES)}"
            raise ValidationError(msg)
        email = email.strip()
        with self._transaction() as conn:
            if location_id is not None:
                self.get_location(location_id)
            if conn.execute("SELECT 1 FROM users WHERE email = ?", (email,)).fetchone() is not None:
                msg = f"User with email '{email}' already exists"
                raise ConflictError(msg)
            user_id = self._generate_unique_id("users", "usr")
            conn.execute(
                "INSERT INTO users (id, full_name, email, phone_number, role, location_id, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (user_id, full_name.strip(), email, phone_number, role, location_id, _now_iso()),
            )
        logger.info("Created %s user %s", role, user_id)
        return self.get_user(user_id)

    def get_user(self, user_id: str) -> User:
        row = self.conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            raise NotFoundError("user", user_id)
        return _user_from_row(row)

    def get_user_by_email(self, email: str) -> User | None:
        row = self.conn.execute("SELECT * FROM users WHERE email = ?", (email.strip(),)).fetchone()
        return _user_from_row(row) if row is not None else None

    def list_users(self, *, role: str | None = None) -> list[User]:
        conditions: list[str] = []
        params: list[Any] = []
        if role is not None:
            conditions.append("role = ?")
            params.append(role.upper())
        where = f" WHERE {' AND '.join(conditions)}" if conditions else ""
        rows = self.conn.execute(f"SELECT * FROM users{where} ORDER BY created_at, id", params).fetchall()
        return [_user_from_row(r) for r in rows]

    def count_users(self) -> int:
        result: int = self.conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]
        return result
