# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.
# NEVER import from core.py, db_base.py, or any mixin; this prevents circular imports.
"""Typed return-value contracts for civicalert core and API layers."""

from __future__ import annotations

from civicalert.types.core import (
    ISOTimestamp,
    IssueDict,
    LocationDict,
    NotificationDict,
    PaginatedResult,
    ProjectConfig,
    TagDict,
    TagSummary,
    UserDict,
)
from civicalert.types.reports import CategoryCount, DashboardStats, LocationCount

__all__ = [
    "CategoryCount",
    "DashboardStats",
    "ISOTimestamp",
    "IssueDict",
    "LocationCount",
    "LocationDict",
    "NotificationDict",
    "PaginatedResult",
    "ProjectConfig",
    "TagDict",
    "TagSummary",
    "UserDict",
]
