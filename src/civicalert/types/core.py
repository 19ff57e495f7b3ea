"""Foundational TypedDicts for dataclass to_dict() returns."""

from __future__ import annotations

from typing import Any, NewType, TypedDict

ISOTimestamp = NewType("ISOTimestamp", str)


class ProjectConfig(TypedDict, total=False):
    """Shape of .civicalert/config.json."""

    prefix: str
    version: int
    session_ttl_minutes: int
    port: int


class PaginatedResult(TypedDict):
    """Envelope returned by paginated query methods."""

    results: list[dict[str, Any]]
    total: int
    page: int
    size: int
    has_more: bool


class TagSummary(TypedDict):
    """Slim tag shape embedded in an issue."""

    id: str
    name: str
    active: bool


class IssueDict(TypedDict):
    id: str
    title: str
    description: str
    category: str
    status: str
    location_id: str | None
    location_name: str | None
    reported_by: str | None
    reporter_name: str | None
    photo_url: str | None
    date_reported: ISOTimestamp
    date_resolved: ISOTimestamp | None
    tags: list[TagSummary]


class TagDict(TypedDict):
    id: str
    name: str
    description: str | None
    active: bool
    created_at: ISOTimestamp
    issue_ids: list[str]
    usage_count: int


class NotificationDict(TypedDict):
    id: str
    message: str
    channel: str
    sent_at: ISOTimestamp
    delivered: bool
    read: bool
    recipient_id: str
    issue_id: str | None


class UserDict(TypedDict):
    id: str
    full_name: str
    email: str
    phone_number: str
    role: str
    location_id: str | None
    created_at: ISOTimestamp


class LocationDict(TypedDict):
    id: str
    name: str
    type: str
    parent_id: str | None
