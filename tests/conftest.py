"""Shared pytest fixtures for civicalert tests."""

from __future__ import annotations

from collections.abc import Generator
from dataclasses import dataclass
from pathlib import Path

import pytest
from click.testing import CliRunner

from civicalert.core import (
    CIVIC_DIR_NAME,
    DB_FILENAME,
    CivicDB,
    Location,
    User,
    write_config,
)
from tests._db_factory import make_db


@pytest.fixture
def db(tmp_path: Path) -> Generator[CivicDB, None, None]:
    """Fresh CivicDB for each test."""
    d = make_db(tmp_path)
    yield d
    d.close()


@dataclass
class Directory:
    """Users and locations created by the ``directory`` fixture."""

    db: CivicDB
    admin: User
    second_admin: User
    resident: User
    other_resident: User
    nameless_resident: User
    district: Location
    village: Location


@pytest.fixture
def directory(db: CivicDB) -> Directory:
    """CivicDB with two administrators, three residents and a small location tree.

    ``nameless_resident`` has no full name so display names fall back to the email.
    """
    district = db.create_location("Gasabo", type="DISTRICT")
    village = db.create_location("Kibagabaga", type="VILLAGE", parent_id=district.id)
    return Directory(
        db=db,
        admin=db.create_user("ana@city.example", full_name="Ana Admin", role="ADMIN"),
        second_admin=db.create_user("ben@city.example", full_name="Ben Admin", role="ADMIN"),
        resident=db.create_user("rita@home.example", full_name="Rita Resident", location_id=village.id),
        other_resident=db.create_user("omar@home.example", full_name="Omar Other"),
        nameless_resident=db.create_user("noname@home.example"),
        district=district,
        village=village,
    )


@pytest.fixture
def civic_project(tmp_path: Path) -> Path:
    """A tmp directory set up as a civicalert project (.civicalert/ with config + db).

    Returns the project root (parent of .civicalert/).
    """
    civic_dir = tmp_path / CIVIC_DIR_NAME
    civic_dir.mkdir()
    write_config(civic_dir, {"prefix": "proj", "version": 1})

    d = CivicDB(civic_dir / DB_FILENAME, prefix="proj")
    d.initialize()
    d.close()
    return tmp_path


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click CLI test runner."""
    return CliRunner()
