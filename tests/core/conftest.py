"""Fixtures for core DB tests."""

from __future__ import annotations

import pytest

from civicalert.core import Issue, Tag
from tests.conftest import Directory


@pytest.fixture
def tags(directory: Directory) -> dict[str, Tag]:
    """Two active tags and one inactive tag."""
    db = directory.db
    pothole = db.create_tag("pothole", "Road surface damage")
    lighting = db.create_tag("lighting")
    retired = db.create_tag("retired")
    db.deactivate_tag(retired.id)
    return {"pothole": pothole, "lighting": lighting, "retired": db.get_tag(retired.id)}


@pytest.fixture
def reported_issue(directory: Directory, tags: dict[str, Tag]) -> Issue:
    """An issue reported by ``directory.resident`` at the village, tagged pothole."""
    return directory.db.create_issue(
        "Pothole on main road",
        description="Deep hole near the market",
        category="Roads",
        location_id=directory.village.id,
        reporter_id=directory.resident.id,
        tag_ids=[tags["pothole"].id],
    )
