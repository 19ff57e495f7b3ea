"""TagsMixin: the tag catalog and issue/tag membership bookkeeping.

Membership lives only in the ``issue_tags`` join table. ``Tag.issue_ids`` and
``Issue.tags`` are both derived from it on read, so attaching or detaching a
tag is one row change and the two sides cannot drift apart.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Any

from civicalert.db_base import DBMixinProtocol, _now_iso, _order_clause, _page_bounds, _placeholders
from civicalert.errors import ConflictError, NotFoundError, ValidationError
from civicalert.types.core import ISOTimestamp, PaginatedResult, TagDict

logger = logging.getLogger(__name__)

TAG_SORT_KEYS: dict[str, str] = {
    "name": "name",
    "created_at": "created_at",
    "active": "active",
}


def _name_conflict(name: str) -> ConflictError:
    msg = f"Tag with name '{name}' already exists"
    return ConflictError(msg, details={"name": name})


@dataclass
class Tag:
    id: str
    name: str
    description: str | None = None
    active: bool = True
    created_at: str = ""
    # Computed from issue_tags
    issue_ids: list[str] = field(default_factory=list)

    @property
    def usage_count(self) -> int:
        return len(self.issue_ids)

    def to_dict(self) -> TagDict:
        return TagDict(
            id=self.id,
            name=self.name,
            description=self.description,
            active=self.active,
            created_at=ISOTimestamp(self.created_at),
            issue_ids=list(self.issue_ids),
            usage_count=self.usage_count,
        )


class TagsMixin(DBMixinProtocol):
    """Tag catalog and membership.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes.
    Actual implementations provided by ``CivicDB`` at composition time via MRO.
    """

    # -- Building ------------------------------------------------------------

    def _build_tags_batch(self, rows: list[sqlite3.Row]) -> list[Tag]:
        if not rows:
            return []
        ids = [r["id"] for r in rows]
        issues_by_tag: dict[str, list[str]] = {tid: [] for tid in ids}
        for r in self.conn.execute(
            f"SELECT tag_id, issue_id FROM issue_tags WHERE tag_id IN ({_placeholders(ids)}) ORDER BY issue_id",
            ids,
        ).fetchall():
            issues_by_tag[r["tag_id"]].append(r["issue_id"])
        return [
            Tag(
                id=r["id"],
                name=r["name"],
                description=r["description"],
                active=bool(r["active"]),
                created_at=r["created_at"],
                issue_ids=issues_by_tag[r["id"]],
            )
            for r in rows
        ]

    def _select_tags(self, where: str = "", params: list[Any] | None = None, order: str = "ORDER BY name") -> list[Tag]:
        rows = self.conn.execute(f"SELECT * FROM tags{where} {order}", params or []).fetchall()
        return self._build_tags_batch(rows)

    # -- CRUD ----------------------------------------------------------------

    def create_tag(self, name: str, description: str | None = None) -> Tag:
        name = self._validate_tag_name(name)
        with self._transaction() as conn:
            # Exact, case-sensitive match
            if conn.execute("SELECT 1 FROM tags WHERE name = ?", (name,)).fetchone() is not None:
                raise _name_conflict(name)
            tag_id = self._generate_unique_id("tags", "tag")
            try:
                conn.execute(
                    "INSERT INTO tags (id, name, description, active, created_at) VALUES (?, ?, ?, 1, ?)",
                    (tag_id, name, description, _now_iso()),
                )
            except sqlite3.IntegrityError as exc:
                # UNIQUE(name) backstop
                if "tags.name" not in str(exc):
                    raise
                raise _name_conflict(name) from exc
        logger.info("Created tag %s (%s)", tag_id, name)
        return self.get_tag(tag_id)

    def get_or_create_tag(self, name: str) -> Tag:
        with self._transaction():
            existing = self.get_tag_by_name(name)
            if existing is not None:
                return existing
            return self.create_tag(name)

    def get_tag(self, tag_id: str) -> Tag:
        tags = self._select_tags(" WHERE id = ?", [tag_id])
        if not tags:
            raise NotFoundError("tag", tag_id)
        return tags[0]

    def get_tag_by_name(self, name: str) -> Tag | None:
        tags = self._select_tags(" WHERE name = ?", [name])
        return tags[0] if tags else None

    def update_tag(
        self,
        tag_id: str,
        name: str,
        description: str | None = None,
        active: bool = True,
    ) -> Tag:
        """Rename a tag and set its active flag.

        ``name`` and ``active`` are always overwritten; ``description`` only
        when provided.
        """
        name = self._validate_tag_name(name)
        with self._transaction() as conn:
            existing = self.get_tag(tag_id)
            if existing.name != name:
                clash = conn.execute("SELECT id FROM tags WHERE name = ? AND id != ?", (name, tag_id)).fetchone()
                if clash is not None:
                    msg = f"Tag with name '{name}' already exists"
                    raise ConflictError(msg, details={"name": name, "conflicting_id": clash["id"]})
            new_description = description if description is not None else existing.description
            try:
                conn.execute(
                    "UPDATE tags SET name = ?, description = ?, active = ? WHERE id = ?",
                    (name, new_description, 1 if active else 0, tag_id),
                )
            except sqlite3.IntegrityError as exc:
                if "tags.name" not in str(exc):
                    raise
                raise _name_conflict(name) from exc
        return self.get_tag(tag_id)

    def _set_tag_active(self, tag_id: str, active: bool) -> Tag:
        with self._transaction() as conn:
            self.get_tag(tag_id)
            conn.execute("UPDATE tags SET active = ? WHERE id = ?", (1 if active else 0, tag_id))
        logger.info("Tag %s %s", tag_id, "activated" if active else "deactivated")
        return self.get_tag(tag_id)

    def deactivate_tag(self, tag_id: str) -> Tag:
        return self._set_tag_active(tag_id, False)

    def activate_tag(self, tag_id: str) -> Tag:
        return self._set_tag_active(tag_id, True)

    def delete_tag(self, tag_id: str) -> list[str]:
        """Detach the tag from every issue, then remove it. Returns the detached issue ids."""
        with self._transaction() as conn:
            tag = self.get_tag(tag_id)
            conn.execute("DELETE FROM issue_tags WHERE tag_id = ?", (tag_id,))
            conn.execute("DELETE FROM tags WHERE id = ?", (tag_id,))
        logger.info("Deleted tag %s (%s), detached from %d issue(s)", tag_id, tag.name, len(tag.issue_ids))
        return tag.issue_ids

    # -- Validation ----------------------------------------------------------

    @staticmethod
    def _validate_tag_name(name: str) -> str:
        if not isinstance(name, str) or not name.strip():
            msg = "Tag name cannot be empty"
            raise ValidationError(msg)
        return name.strip()

    def validate_tag_ids(self, tag_ids: list[str] | None) -> list[Tag]:
        """Resolve tag ids selected at issue creation.

        No-op on empty or absent input. Raises ``NotFoundError`` for an unknown
        id and ``ValidationError`` if any resolved tag is inactive.
        """
        if not tag_ids:
            return []
        unique_ids = list(dict.fromkeys(tag_ids))
        tags = self._select_tags(f" WHERE id IN ({_placeholders(unique_ids)})", unique_ids)
        found = {t.id for t in tags}
        missing = [tid for tid in unique_ids if tid not in found]
        if missing:
            raise NotFoundError("tag", ", ".join(missing))
        inactive = [t.name for t in tags if not t.active]
        if inactive:
            msg = f"Inactive tags cannot be selected: {', '.join(sorted(inactive))}"
            raise ValidationError(msg, details={"inactive": sorted(inactive)})
        return tags

    # -- Queries -------------------------------------------------------------

    def list_tags(self) -> list[Tag]:
        return self._select_tags()

    def list_active_tags(self) -> list[Tag]:
        return self._select_tags(" WHERE active = 1")

    def search_tags(self, query: str) -> list[Tag]:
        """Case-insensitive substring match on tag name."""
        if not query or not query.strip():
            return []
        escaped = query.strip().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        return self._select_tags(" WHERE name LIKE ? ESCAPE '\\'", [f"%{escaped}%"])

    def list_used_tags(self) -> list[Tag]:
        return self._select_tags(" WHERE EXISTS (SELECT 1 FROM issue_tags it WHERE it.tag_id = tags.id)")

    def list_unused_tags(self) -> list[Tag]:
        return self._select_tags(" WHERE NOT EXISTS (SELECT 1 FROM issue_tags it WHERE it.tag_id = tags.id)")

    def list_tags_paginated(
        self,
        *,
        active_only: bool,
        page: int = 0,
        size: int = 10,
        sort: str = "name",
        direction: str = "asc",
    ) -> PaginatedResult:
        """Paged tag listing: active tags for selection, or the full catalog for administrators."""
        limit, offset = _page_bounds(page, size)
        order = _order_clause(sort, direction, TAG_SORT_KEYS)
        where = " WHERE active = 1" if active_only else ""
        total: int = self.conn.execute(f"SELECT COUNT(*) FROM tags{where}").fetchone()[0]
        rows = self.conn.execute(f"SELECT * FROM tags{where} {order} LIMIT ? OFFSET ?", (limit, offset)).fetchall()
        tags = self._build_tags_batch(rows)
        return PaginatedResult(
            results=[dict(t.to_dict()) for t in tags],
            total=total,
            page=page,
            size=size,
            has_more=offset + len(tags) < total,
        )
