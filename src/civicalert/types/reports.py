"""TypedDicts for db_reports.py aggregate results."""

from __future__ import annotations

from typing import TypedDict

from civicalert.types.core import IssueDict


class CategoryCount(TypedDict):
    category: str
    count: int


class LocationCount(TypedDict):
    location_id: str | None
    location: str
    count: int


class DashboardStats(TypedDict):
    """Role-scoped dashboard numbers returned by ``get_dashboard_stats()``."""

    total_issues: int
    reported_issues: int
    in_progress_issues: int
    resolved_issues: int
    total_users: int
    total_locations: int
    recent_issues: list[IssueDict]
    issues_by_category: list[CategoryCount]
    issues_by_location: list[LocationCount]
