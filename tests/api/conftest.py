"""Fixtures for HTTP API tests (FastAPI)."""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass

import pytest
from httpx import ASGITransport, AsyncClient

import civicalert.dashboard as dash_module
from civicalert.core import Issue, Tag
from civicalert.dashboard import create_app
from tests.conftest import Directory


@dataclass
class Api:
    """An HTTP client plus bearer headers for each directory user."""

    client: AsyncClient
    directory: Directory
    admin: dict[str, str]
    resident: dict[str, str]
    other_resident: dict[str, str]


@pytest.fixture
def api_directory(directory: Directory) -> Directory:
    """The shared directory, reconnected with check_same_thread=False for the ASGI app."""
    directory.db.reconnect(check_same_thread=False)
    return directory


@pytest.fixture
async def api(api_directory: Directory) -> AsyncIterator[Api]:
    db = api_directory.db

    def bearer(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {db.issue_session(user_id)}"}

    dash_module._db = db
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield Api(
            client=c,
            directory=api_directory,
            admin=bearer(api_directory.admin.id),
            resident=bearer(api_directory.resident.id),
            other_resident=bearer(api_directory.other_resident.id),
        )
    dash_module._db = None


@pytest.fixture
def api_tags(api_directory: Directory) -> dict[str, Tag]:
    db = api_directory.db
    pothole = db.create_tag("pothole")
    retired = db.create_tag("retired")
    db.deactivate_tag(retired.id)
    return {"pothole": pothole, "retired": db.get_tag(retired.id)}


@pytest.fixture
def rita_issue(api_directory: Directory, api_tags: dict[str, Tag]) -> Issue:
    """An issue reported by the resident, tagged pothole."""
    return api_directory.db.create_issue(
        "Pothole on main road",
        category="Roads",
        location_id=api_directory.village.id,
        reporter_id=api_directory.resident.id,
        tag_ids=[api_tags["pothole"].id],
    )
