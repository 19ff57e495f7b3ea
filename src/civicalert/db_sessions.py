"""SessionsMixin: bearer-token sessions with lazy expiry.

Tokens are issued administratively (``civicalert session issue``); there is
no credential check here. Expired sessions are dropped when they are next
looked up, and ``sweep_expired_sessions`` removes the rest in bulk.
"""

from __future__ import annotations

import logging
import secrets
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from civicalert.db_base import DBMixinProtocol
from civicalert.errors import ValidationError

if TYPE_CHECKING:
    from civicalert.db_directory import User

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL_MINUTES = 120


class SessionsMixin(DBMixinProtocol):
    """Inherits ``DBMixinProtocol``; composed into ``CivicDB``."""

    session_ttl_minutes: int

    def issue_session(self, user_id: str, *, ttl_minutes: int | None = None) -> str:
        ttl = self.session_ttl_minutes if ttl_minutes is None else ttl_minutes
        if ttl < 1:
            msg = f"Session TTL must be at least 1 minute, got {ttl}"
            raise ValidationError(msg)
        now = datetime.now(UTC)
        token = secrets.token_urlsafe(32)
        with self._transaction() as conn:
            self.get_user(user_id)
            conn.execute(
                "INSERT INTO sessions (token, user_id, created_at, expires_at) VALUES (?, ?, ?, ?)",
                (token, user_id, now.isoformat(), (now + timedelta(minutes=ttl)).isoformat()),
            )
        logger.info("Issued session for user %s (ttl %d min)", user_id, ttl)
        return token

    def resolve_session(self, token: str) -> User | None:
        """Return the session's user, or None if the token is unknown or expired."""
        if not token:
            return None
        row = self.conn.execute("SELECT user_id, expires_at FROM sessions WHERE token = ?", (token,)).fetchone()
        if row is None:
            return None
        if row["expires_at"] <= datetime.now(UTC).isoformat():
            with self._transaction() as conn:
                conn.execute("DELETE FROM sessions WHERE token = ?", (token,))
            return None
        return self.get_user(row["user_id"])

    def revoke_session(self, token: str) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM sessions WHERE token = ?", (token,))
        return cursor.rowcount > 0

    def sweep_expired_sessions(self) -> int:
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM sessions WHERE expires_at <= ?", (datetime.now(UTC).isoformat(),))
        if cursor.rowcount:
            logger.info("Swept %d expired session(s)", cursor.rowcount)
        return cursor.rowcount
