"""IssuesMixin: issue lifecycle: create, edit, status transitions, tag membership.

Notification fan-out is a best-effort side effect. It runs after the issue
mutation has committed, in its own transaction, and any failure there is
logged and discarded.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from civicalert.db_base import VALID_STATUSES, DBMixinProtocol, _now_iso, _placeholders
from civicalert.db_directory import UNKNOWN_LOCATION
from civicalert.errors import NotFoundError, ValidationError
from civicalert.types.core import ISOTimestamp, IssueDict, TagSummary

if TYPE_CHECKING:
    from civicalert.db_directory import Location, User
    from civicalert.db_notifications import Notification
    from civicalert.db_tags import Tag

logger = logging.getLogger(__name__)

ANONYMOUS_REPORTER = "Anonymous"

_STATUS_MESSAGES: dict[str, str] = {
    "IN_PROGRESS": "Your issue '{title}' is now being processed.",
    "RESOLVED": "Your issue '{title}' has been resolved.",
    "REPORTED": "The status of your issue '{title}' has been updated to Reported.",
}


@dataclass
class Issue:
    id: str
    title: str
    description: str = ""
    category: str = ""
    status: str = "REPORTED"
    location_id: str | None = None
    location_name: str | None = None
    reported_by: str | None = None
    reporter_name: str | None = None
    photo_url: str | None = None
    date_reported: str = ""
    date_resolved: str | None = None
    tags: list[TagSummary] = field(default_factory=list)

    @property
    def tag_ids(self) -> list[str]:
        return [t["id"] for t in self.tags]

    def to_dict(self) -> IssueDict:
        return IssueDict(
            id=self.id,
            title=self.title,
            description=self.description,
            category=self.category,
            status=self.status,
            location_id=self.location_id,
            location_name=self.location_name,
            reported_by=self.reported_by,
            reporter_name=self.reporter_name,
            photo_url=self.photo_url,
            date_reported=ISOTimestamp(self.date_reported),
            date_resolved=ISOTimestamp(self.date_resolved) if self.date_resolved else None,
            tags=[TagSummary(id=t["id"], name=t["name"], active=t["active"]) for t in self.tags],
        )


def new_issue_message(title: str, reporter: User | None, location: Location | None) -> str:
    """Message sent to every administrator when an issue is reported."""
    reporter_name = reporter.display_name if reporter is not None else ANONYMOUS_REPORTER
    location_name = location.name if location is not None and location.name else UNKNOWN_LOCATION
    return f"New issue reported: '{title}' by {reporter_name} at {location_name}"


def status_change_message(title: str, old_status: str, new_status: str) -> str:
    """Message sent to the reporter when their issue changes status."""
    template = _STATUS_MESSAGES.get(new_status)
    if template is not None:
        return template.format(title=title)
    return f"Your issue '{title}' status was updated from {old_status} to {new_status}."


class IssuesMixin(DBMixinProtocol):
    """Issue CRUD, status transitions and tag membership.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes.
    Actual implementations provided by ``CivicDB`` at composition time via MRO.
    """

    if TYPE_CHECKING:
        # From DirectoryMixin
        def get_location(self, location_id: str) -> Location: ...
        def list_users(self, *, role: str | None = None) -> list[User]: ...

        # From TagsMixin
        def get_tag(self, tag_id: str) -> Tag: ...
        def validate_tag_ids(self, tag_ids: list[str] | None) -> list[Tag]: ...

        # From NotificationsMixin
        def create_notification(self, recipient_id: str, message: str, *, issue_id: str | None = None) -> Notification: ...

    # -- Building ------------------------------------------------------------

    def _build_issues_batch(self, issue_ids: list[str]) -> list[Issue]:
        """Build Issues with reporter, location and tags in a fixed number of queries."""
        if not issue_ids:
            return []
        placeholders = _placeholders(issue_ids)

        rows_by_id: dict[str, sqlite3.Row] = {}
        for r in self.conn.execute(
            "SELECT i.*, u.full_name AS reporter_full_name, u.email AS reporter_email, l.name AS location_name "
            "FROM issues i "
            "LEFT JOIN users u ON u.id = i.reported_by "
            "LEFT JOIN locations l ON l.id = i.location_id "
            f"WHERE i.id IN ({placeholders})",
            issue_ids,
        ).fetchall():
            rows_by_id[r["id"]] = r

        tags_by_id: dict[str, list[TagSummary]] = {iid: [] for iid in issue_ids}
        for r in self.conn.execute(
            "SELECT it.issue_id, t.id, t.name, t.active FROM issue_tags it "
            "JOIN tags t ON t.id = it.tag_id "
            f"WHERE it.issue_id IN ({placeholders}) ORDER BY t.name",
            issue_ids,
        ).fetchall():
            tags_by_id[r["issue_id"]].append(TagSummary(id=r["id"], name=r["name"], active=bool(r["active"])))

        result: list[Issue] = []
        for iid in issue_ids:
            row = rows_by_id.get(iid)
            if row is None:
                continue
            reporter_name = None
            if row["reported_by"] is not None:
                reporter_name = (row["reporter_full_name"] or "").strip() or row["reporter_email"]
            result.append(
                Issue(
                    id=row["id"],
                    title=row["title"],
                    description=row["description"] or "",
                    category=row["category"] or "",
                    status=row["status"],
                    location_id=row["location_id"],
                    location_name=row["location_name"],
                    reported_by=row["reported_by"],
                    reporter_name=reporter_name,
                    photo_url=row["photo_url"],
                    date_reported=row["date_reported"],
                    date_resolved=row["date_resolved"],
                    tags=tags_by_id.get(iid, []),
                )
            )
        return result

    def get_issue(self, issue_id: str) -> Issue:
        issues = self._build_issues_batch([issue_id])
        if not issues:
            raise NotFoundError("issue", issue_id)
        return issues[0]

    # -- Best-effort side effects -------------------------------------------

    def _dispatch_best_effort(self, event: str, issue_id: str, action: Callable[[], Any]) -> None:
        """Run a notification side effect, logging and discarding any failure."""
        start = time.monotonic()
        try:
            with self._transaction():
                action()
        except Exception as exc:
            logger.warning(
                "Notification dispatch failed for issue %s (%s)",
                issue_id,
                event,
                exc_info=True,
                extra={"event": event, "issue_id": issue_id, "error": str(exc)},
            )
            return
        duration_ms = round((time.monotonic() - start) * 1000, 1)
        logger.debug(
            "Dispatched %s for issue %s",
            event,
            issue_id,
            extra={"event": event, "issue_id": issue_id, "duration_ms": duration_ms},
        )

    def _notify_admins_of_new_issue(self, issue_id: str, title: str, reporter: User | None, location: Location | None) -> None:
        message = new_issue_message(title, reporter, location)
        for admin in self.list_users(role="ADMIN"):
            self.create_notification(admin.id, message, issue_id=issue_id)

    # -- Mutations -----------------------------------------------------------

    def create_issue(
        self,
        title: str,
        *,
        description: str = "",
        category: str = "",
        location_id: str | None = None,
        reporter_id: str | None = None,
        photo_url: str | None = None,
        tag_ids: list[str] | None = None,
    ) -> Issue:
        """Persist a new issue in REPORTED status, then notify every administrator.

        Unresolvable location or reporter references raise ``NotFoundError``;
        unknown or inactive tags raise ``ValidationError``. Either aborts before
        any write.
        """
        if not title or not title.strip():
            msg = "Title cannot be empty"
            raise ValidationError(msg)
        with self._transaction() as conn:
            location = self.get_location(location_id) if location_id is not None else None
            reporter = self.get_user(reporter_id) if reporter_id is not None else None
            try:
                tags = self.validate_tag_ids(tag_ids)
            except NotFoundError as exc:
                # An unknown selection is bad input here, not a missing resource
                unknown = exc.ref.split(", ")
                msg = f"Unknown tags cannot be selected: {exc.ref}"
                raise ValidationError(msg, details={"unknown": unknown}) from exc
            issue_id = self._generate_unique_id("issues")
            conn.execute(
                "INSERT INTO issues (id, title, description, category, status, location_id, reported_by, "
                "photo_url, date_reported, date_resolved) VALUES (?, ?, ?, ?, 'REPORTED', ?, ?, ?, ?, NULL)",
                (issue_id, title, description or "", category or "", location_id, reporter_id, photo_url, _now_iso()),
            )
            conn.executemany(
                "INSERT OR IGNORE INTO issue_tags (issue_id, tag_id) VALUES (?, ?)",
                [(issue_id, t.id) for t in tags],
            )
        logger.info("Issue %s reported", issue_id, extra={"event": "issue_created", "issue_id": issue_id})

        self._dispatch_best_effort(
            "admin_fanout",
            issue_id,
            lambda: self._notify_admins_of_new_issue(issue_id, title, reporter, location),
        )
        return self.get_issue(issue_id)

    def update_status(self, issue_id: str, status: str) -> Issue:
        """Move an issue to *status*. Any status is reachable from any other.

        Entering RESOLVED stamps ``date_resolved``; leaving RESOLVED keeps it.
        """
        new_status = str(status).strip().upper()
        if new_status not in VALID_STATUSES:
            msg = f"Unknown status '{status}'. Valid statuses: {', '.join(VALID_STATUSES)}"
            raise ValidationError(msg)
        with self._transaction() as conn:
            current = self.get_issue(issue_id)
            if new_status == "RESOLVED":
                conn.execute(
                    "UPDATE issues SET status = ?, date_resolved = ? WHERE id = ?",
                    (new_status, _now_iso(), issue_id),
                )
            else:
                conn.execute("UPDATE issues SET status = ? WHERE id = ?", (new_status, issue_id))
        old_status = current.status
        logger.info(
            "Issue %s status %s -> %s",
            issue_id,
            old_status,
            new_status,
            extra={"event": "status_changed", "issue_id": issue_id},
        )

        reporter_id = current.reported_by
        if old_status != new_status and reporter_id is not None:
            message = status_change_message(current.title, old_status, new_status)
            self._dispatch_best_effort(
                "status_notification",
                issue_id,
                lambda: self.create_notification(reporter_id, message, issue_id=issue_id),
            )
        return self.get_issue(issue_id)

    def update_issue(
        self,
        issue_id: str,
        *,
        title: str,
        description: str = "",
        category: str = "",
        location_id: str | None = None,
    ) -> Issue:
        """Replace title, description, category and location. Status, dates, reporter and tags are untouched."""
        if not title or not title.strip():
            msg = "Title cannot be empty"
            raise ValidationError(msg)
        with self._transaction() as conn:
            self.get_issue(issue_id)
            if location_id is not None:
                self.get_location(location_id)
            conn.execute(
                "UPDATE issues SET title = ?, description = ?, category = ?, location_id = ? WHERE id = ?",
                (title, description or "", category or "", location_id, issue_id),
            )
        return self.get_issue(issue_id)

    def delete_issue(self, issue_id: str) -> None:
        """Remove an issue. Tag memberships go with it; notifications keep a null issue reference."""
        with self._transaction() as conn:
            if conn.execute("SELECT 1 FROM issues WHERE id = ?", (issue_id,)).fetchone() is None:
                raise NotFoundError("issue", issue_id)
            conn.execute("DELETE FROM issues WHERE id = ?", (issue_id,))
        logger.info("Issue %s deleted", issue_id, extra={"event": "issue_deleted", "issue_id": issue_id})

    # -- Tag membership ------------------------------------------------------

    def add_tag(self, issue_id: str, tag_id: str) -> Issue:
        """Attach *tag_id* to *issue_id*. Inactive tags may be attached here."""
        with self._transaction() as conn:
            self.get_issue(issue_id)
            self.get_tag(tag_id)
            conn.execute("INSERT OR IGNORE INTO issue_tags (issue_id, tag_id) VALUES (?, ?)", (issue_id, tag_id))
        logger.info("Tag %s attached to issue %s", tag_id, issue_id, extra={"event": "tag_attached", "issue_id": issue_id})
        return self.get_issue(issue_id)

    def remove_tag(self, issue_id: str, tag_id: str) -> Issue:
        with self._transaction() as conn:
            self.get_issue(issue_id)
            self.get_tag(tag_id)
            conn.execute("DELETE FROM issue_tags WHERE issue_id = ? AND tag_id = ?", (issue_id, tag_id))
        logger.info("Tag %s detached from issue %s", tag_id, issue_id, extra={"event": "tag_detached", "issue_id": issue_id})
        return self.get_issue(issue_id)

    def get_issue_tags(self, issue_id: str) -> list[Tag]:
        issue = self.get_issue(issue_id)
        return [self.get_tag(tid) for tid in issue.tag_ids]

    def list_issues_by_reporter(self, reporter_id: str) -> list[Issue]:
        rows = self.conn.execute(
            "SELECT id FROM issues WHERE reported_by = ? ORDER BY date_reported DESC, id DESC",
            (reporter_id,),
        ).fetchall()
        return self._build_issues_batch([r["id"] for r in rows])
