"""NotificationsMixin: create, read, and mark-read system notifications.

Notifications are pull-only. ``create_notification`` is the single creation
path and is only reached from issue lifecycle side effects; nothing here
deletes a notification.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Any

from civicalert.db_base import SYSTEM_CHANNEL, DBMixinProtocol, _now_iso, _order_clause, _page_bounds
from civicalert.errors import NotFoundError, ValidationError
from civicalert.scope import UNSCOPED, Scope
from civicalert.types.core import ISOTimestamp, NotificationDict, PaginatedResult

logger = logging.getLogger(__name__)

NOTIFICATION_SORT_KEYS: dict[str, str] = {
    "sent_at": "sent_at",
    "read": "read",
}


@dataclass
class Notification:
    id: str
    message: str
    recipient_id: str
    issue_id: str | None = None
    channel: str = SYSTEM_CHANNEL
    sent_at: str = ""
    delivered: bool = True
    read: bool = False

    def to_dict(self) -> NotificationDict:
        return NotificationDict(
            id=self.id,
            message=self.message,
            channel=self.channel,
            sent_at=ISOTimestamp(self.sent_at),
            delivered=self.delivered,
            read=self.read,
            recipient_id=self.recipient_id,
            issue_id=self.issue_id,
        )


def _notification_from_row(row: sqlite3.Row) -> Notification:
    return Notification(
        id=row["id"],
        message=row["message"],
        recipient_id=row["recipient_id"],
        issue_id=row["issue_id"],
        channel=row["channel"],
        sent_at=row["sent_at"],
        delivered=bool(row["delivered"]),
        read=bool(row["read"]),
    )


class NotificationsMixin(DBMixinProtocol):
    """Notification records.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes.
    Actual implementations provided by ``CivicDB`` at composition time via MRO.
    """

    # -- Creation ------------------------------------------------------------

    def create_notification(self, recipient_id: str, message: str, *, issue_id: str | None = None) -> Notification:
        if not message or not message.strip():
            msg = "Notification message cannot be empty"
            raise ValidationError(msg)
        with self._transaction() as conn:
            self.get_user(recipient_id)
            notification_id = self._generate_unique_id("notifications", "ntf")
            conn.execute(
                "INSERT INTO notifications (id, message, channel, sent_at, delivered, read, recipient_id, issue_id) "
                "VALUES (?, ?, ?, ?, 1, 0, ?, ?)",
                (notification_id, message, SYSTEM_CHANNEL, _now_iso(), recipient_id, issue_id),
            )
        return self.get_notification(notification_id)

    # -- Reads ---------------------------------------------------------------

    def get_notification(self, notification_id: str) -> Notification:
        row = self.conn.execute("SELECT * FROM notifications WHERE id = ?", (notification_id,)).fetchone()
        if row is None:
            raise NotFoundError("notification", notification_id)
        return _notification_from_row(row)

    def mark_notification_read(self, notification_id: str) -> Notification:
        """Flip ``read`` to true. Marking an already-read notification again is a no-op."""
        with self._transaction() as conn:
            self.get_notification(notification_id)
            conn.execute("UPDATE notifications SET read = 1 WHERE id = ? AND read = 0", (notification_id,))
        return self.get_notification(notification_id)

    def get_notifications_for_recipient(self, user_id: str) -> list[Notification]:
        rows = self.conn.execute(
            "SELECT * FROM notifications WHERE recipient_id = ? ORDER BY sent_at DESC, id DESC",
            (user_id,),
        ).fetchall()
        return [_notification_from_row(r) for r in rows]

    def get_notifications_for_issue(self, issue_id: str, scope: Scope = UNSCOPED) -> list[Notification]:
        """Notifications about one issue, restricted to recipients *scope* admits."""
        if scope.is_empty:
            return []
        conditions = ["issue_id = ?"]
        params: list[Any] = [issue_id]
        predicate, scope_params = scope.where("recipient_id")
        if predicate:
            conditions.append(predicate)
            params.extend(scope_params)
        rows = self.conn.execute(
            f"SELECT * FROM notifications WHERE {' AND '.join(conditions)} ORDER BY sent_at DESC, id DESC",
            params,
        ).fetchall()
        return [_notification_from_row(r) for r in rows]

    def count_unread_notifications(self, user_id: str) -> int:
        result: int = self.conn.execute(
            "SELECT COUNT(*) FROM notifications WHERE recipient_id = ? AND read = 0",
            (user_id,),
        ).fetchone()[0]
        return result

    # -- Scoped reads --------------------------------------------------------

    def list_notifications_scoped(
        self,
        scope: Scope,
        *,
        page: int = 0,
        size: int = 10,
        sort: str = "sent_at",
        direction: str = "desc",
    ) -> PaginatedResult:
        limit, offset = _page_bounds(page, size)
        order = _order_clause(sort, direction, NOTIFICATION_SORT_KEYS)
        if scope.is_empty:
            return PaginatedResult(results=[], total=0, page=page, size=size, has_more=False)
        predicate, params = scope.where("recipient_id")
        where = f" WHERE {predicate}" if predicate else ""
        total: int = self.conn.execute(f"SELECT COUNT(*) FROM notifications{where}", params).fetchone()[0]
        rows = self.conn.execute(
            f"SELECT * FROM notifications{where} {order} LIMIT ? OFFSET ?",
            [*params, limit, offset],
        ).fetchall()
        return PaginatedResult(
            results=[dict(_notification_from_row(r).to_dict()) for r in rows],
            total=total,
            page=page,
            size=size,
            has_more=offset + len(rows) < total,
        )

    def search_notifications_scoped(self, query: str, scope: Scope, *, limit: int = 100) -> list[Notification]:
        """Case-insensitive substring match on message text within *scope*."""
        if scope.is_empty or not query or not query.strip():
            return []
        escaped = query.strip().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        conditions = ["message LIKE ? ESCAPE '\\'"]
        params: list[Any] = [f"%{escaped}%"]
        predicate, scope_params = scope.where("recipient_id")
        if predicate:
            conditions.append(predicate)
            params.extend(scope_params)
        rows = self.conn.execute(
            f"SELECT * FROM notifications WHERE {' AND '.join(conditions)} ORDER BY sent_at DESC, id DESC LIMIT ?",
            [*params, limit],
        ).fetchall()
        return [_notification_from_row(r) for r in rows]
