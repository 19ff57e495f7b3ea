"""ReportsMixin: role-scoped reads and aggregates over issues.

Every method takes a :class:`~civicalert.scope.Scope`. An empty scope returns
an empty or zeroed result without querying; ``UNSCOPED`` is the internal,
administrative variant. Counts, top-N slices and group-bys are all computed
over the scoped subset in SQL, never globally and filtered afterwards.
"""

from __future__ import annotations

import logging
import re as _re
import sqlite3
from typing import TYPE_CHECKING, Any

from civicalert.db_base import VALID_STATUSES, DBMixinProtocol, _order_clause, _page_bounds
from civicalert.db_directory import UNKNOWN_LOCATION
from civicalert.errors import ValidationError
from civicalert.scope import UNSCOPED, Scope
from civicalert.types.core import PaginatedResult
from civicalert.types.reports import CategoryCount, DashboardStats, LocationCount

if TYPE_CHECKING:
    from civicalert.db_issues import Issue

logger = logging.getLogger(__name__)

ISSUE_SORT_KEYS: dict[str, str] = {
    "date_reported": "date_reported",
    "title": "title",
    "status": "status",
    "category": "category",
    "date_resolved": "date_resolved",
}

RECENT_ISSUES_LIMIT = 5


def _scoped_where(scope: Scope, column: str, conditions: list[str] | None = None, params: list[Any] | None = None) -> tuple[str, list[Any]]:
    """Combine extra *conditions* with the scope predicate on *column* into a WHERE clause."""
    clauses = list(conditions or [])
    values = list(params or [])
    predicate, scope_params = scope.where(column)
    if predicate:
        clauses.append(predicate)
        values.extend(scope_params)
    return (f" WHERE {' AND '.join(clauses)}" if clauses else ""), values


class ReportsMixin(DBMixinProtocol):
    """Scoped listing, counting, grouping and search of issues.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes.
    Actual implementations provided by ``CivicDB`` at composition time via MRO.
    """

    if TYPE_CHECKING:
        # From IssuesMixin
        def _build_issues_batch(self, issue_ids: list[str]) -> list[Issue]: ...

        # From DirectoryMixin
        def count_users(self) -> int: ...
        def count_locations(self) -> int: ...

    # -- Counts --------------------------------------------------------------

    def count_issues(self, scope: Scope = UNSCOPED) -> int:
        if scope.is_empty:
            return 0
        where, params = _scoped_where(scope, "reported_by")
        result: int = self.conn.execute(f"SELECT COUNT(*) FROM issues{where}", params).fetchone()[0]
        return result

    def count_issues_by_status(self, status: str, scope: Scope = UNSCOPED) -> int:
        if status not in VALID_STATUSES:
            msg = f"Unknown status '{status}'. Valid statuses: {', '.join(VALID_STATUSES)}"
            raise ValidationError(msg)
        if scope.is_empty:
            return 0
        where, params = _scoped_where(scope, "reported_by", ["status = ?"], [status])
        result: int = self.conn.execute(f"SELECT COUNT(*) FROM issues{where}", params).fetchone()[0]
        return result

    def count_issues_by_category(self, scope: Scope = UNSCOPED) -> list[CategoryCount]:
        if scope.is_empty:
            return []
        where, params = _scoped_where(scope, "reported_by")
        rows = self.conn.execute(
            f"SELECT COALESCE(category, '') AS category, COUNT(*) AS cnt FROM issues{where} "
            "GROUP BY COALESCE(category, '') ORDER BY cnt DESC, category",
            params,
        ).fetchall()
        return [CategoryCount(category=r["category"], count=r["cnt"]) for r in rows]

    def count_issues_by_location(self, scope: Scope = UNSCOPED) -> list[LocationCount]:
        if scope.is_empty:
            return []
        where, params = _scoped_where(scope, "i.reported_by")
        rows = self.conn.execute(
            "SELECT i.location_id, l.name AS location_name, COUNT(*) AS cnt FROM issues i "
            f"LEFT JOIN locations l ON l.id = i.location_id{where} "
            "GROUP BY i.location_id ORDER BY cnt DESC, l.name",
            params,
        ).fetchall()
        return [
            LocationCount(location_id=r["location_id"], location=r["location_name"] or UNKNOWN_LOCATION, count=r["cnt"])
            for r in rows
        ]

    # -- Listings ------------------------------------------------------------

    def top_recent_issues(self, n: int = RECENT_ISSUES_LIMIT, scope: Scope = UNSCOPED) -> list[Issue]:
        """The *n* most recently reported issues within *scope*."""
        if n < 1 or scope.is_empty:
            return []
        where, params = _scoped_where(scope, "reported_by")
        rows = self.conn.execute(
            f"SELECT id FROM issues{where} ORDER BY date_reported DESC, id DESC LIMIT ?",
            [*params, n],
        ).fetchall()
        return self._build_issues_batch([r["id"] for r in rows])

    def list_issues_scoped(
        self,
        scope: Scope = UNSCOPED,
        *,
        status: str | None = None,
        category: str | None = None,
        page: int = 0,
        size: int = 10,
        sort: str = "date_reported",
        direction: str = "desc",
    ) -> PaginatedResult:
        limit, offset = _page_bounds(page, size)
        order = _order_clause(sort, direction, ISSUE_SORT_KEYS)
        if status is not None and status not in VALID_STATUSES:
            msg = f"Unknown status '{status}'. Valid statuses: {', '.join(VALID_STATUSES)}"
            raise ValidationError(msg)
        if scope.is_empty:
            return PaginatedResult(results=[], total=0, page=page, size=size, has_more=False)

        conditions: list[str] = []
        params: list[Any] = []
        if status is not None:
            conditions.append("status = ?")
            params.append(status)
        if category is not None:
            conditions.append("category = ?")
            params.append(category)
        where, params = _scoped_where(scope, "reported_by", conditions, params)

        total: int = self.conn.execute(f"SELECT COUNT(*) FROM issues{where}", params).fetchone()[0]
        rows = self.conn.execute(
            f"SELECT id FROM issues{where} {order} LIMIT ? OFFSET ?",
            [*params, limit, offset],
        ).fetchall()
        issues = self._build_issues_batch([r["id"] for r in rows])
        return PaginatedResult(
            results=[dict(i.to_dict()) for i in issues],
            total=total,
            page=page,
            size=size,
            has_more=offset + len(issues) < total,
        )

    # -- Search --------------------------------------------------------------

    def search_issues(self, query: str, scope: Scope = UNSCOPED, *, limit: int = 100) -> list[Issue]:
        """Full-text search over title, description and category within *scope*."""
        if scope.is_empty or not query or not query.strip():
            return []
        # Operators and punctuation are stripped before either path runs
        tokens = _re.sub(r'[^\w\s]', " ", query).split()
        if not tokens:
            return []
        # Try FTS5 first, fall back to LIKE if FTS table doesn't exist
        try:
            # Each token becomes a quoted prefix match
            fts_query = " AND ".join(f'"{t}"*' for t in tokens)
            where, params = _scoped_where(scope, "i.reported_by", ["issues_fts MATCH ?"], [fts_query])
            rows = self.conn.execute(
                "SELECT i.id FROM issues i "
                f"JOIN issues_fts ON issues_fts.rowid = i.rowid{where} "
                "ORDER BY issues_fts.rank LIMIT ?",
                [*params, limit],
            ).fetchall()
        except sqlite3.OperationalError as exc:
            if "no such table" not in str(exc) and "no such module" not in str(exc):
                raise
            logger.warning("FTS5 search unavailable (%s); falling back to LIKE", exc)
            conditions: list[str] = []
            like_params: list[Any] = []
            for token in tokens:
                escaped = token.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
                pattern = f"%{escaped}%"
                conditions.append(
                    "(title LIKE ? ESCAPE '\\' OR description LIKE ? ESCAPE '\\' OR category LIKE ? ESCAPE '\\')"
                )
                like_params.extend([pattern, pattern, pattern])
            where, params = _scoped_where(scope, "reported_by", conditions, like_params)
            rows = self.conn.execute(
                f"SELECT id FROM issues{where} ORDER BY date_reported DESC LIMIT ?",
                [*params, limit],
            ).fetchall()
        return self._build_issues_batch([r["id"] for r in rows])

    # -- Dashboard -----------------------------------------------------------

    def get_dashboard_stats(self, scope: Scope) -> DashboardStats:
        """Dashboard numbers for *scope*. Directory totals are reported to administrators only."""
        if scope.is_empty:
            return DashboardStats(
                total_issues=0,
                reported_issues=0,
                in_progress_issues=0,
                resolved_issues=0,
                total_users=0,
                total_locations=0,
                recent_issues=[],
                issues_by_category=[],
                issues_by_location=[],
            )
        return DashboardStats(
            total_issues=self.count_issues(scope),
            reported_issues=self.count_issues_by_status("REPORTED", scope),
            in_progress_issues=self.count_issues_by_status("IN_PROGRESS", scope),
            resolved_issues=self.count_issues_by_status("RESOLVED", scope),
            total_users=self.count_users() if scope.is_admin else 0,
            total_locations=self.count_locations() if scope.is_admin else 0,
            recent_issues=[i.to_dict() for i in self.top_recent_issues(RECENT_ISSUES_LIMIT, scope)],
            issues_by_category=self.count_issues_by_category(scope),
            issues_by_location=self.count_issues_by_location(scope),
        )
