"""Concurrent mutations on one shared CivicDB, and on one database file shared by two."""

from __future__ import annotations

import sqlite3
from collections.abc import Generator
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from civicalert.core import CivicDB
from civicalert.errors import ConflictError
from tests._db_factory import make_db


class TestSerializedWrites:
    def test_concurrent_status_changes_each_notify(self, tmp_path: Path) -> None:
        db: CivicDB = make_db(tmp_path, check_same_thread=False)
        try:
            reporter = db.create_user("rita@home.example", full_name="Rita")
            issues = [db.create_issue(f"Issue {n}", reporter_id=reporter.id) for n in range(8)]

            with ThreadPoolExecutor(max_workers=4) as pool:
                results = list(pool.map(lambda i: db.update_status(i.id, "RESOLVED"), issues))

            assert all(r.status == "RESOLVED" for r in results)
            assert len(db.get_notifications_for_recipient(reporter.id)) == 8
        finally:
            db.close()

    def test_attach_racing_tag_delete_leaves_no_dangling_membership(self, tmp_path: Path) -> None:
        db: CivicDB = make_db(tmp_path, check_same_thread=False)
        try:
            tag = db.create_tag("pothole")
            issues = [db.create_issue(f"Issue {n}") for n in range(6)]

            def attach(issue_id: str) -> None:
                try:
                    db.add_tag(issue_id, tag.id)
                except KeyError:
                    pass

            with ThreadPoolExecutor(max_workers=4) as pool:
                futures = [pool.submit(attach, i.id) for i in issues]
                futures.append(pool.submit(db.delete_tag, tag.id))
                for f in futures:
                    f.result()

            dangling = db.conn.execute("SELECT COUNT(*) FROM issue_tags WHERE tag_id = ?", (tag.id,)).fetchone()[0]
            assert dangling == 0
        finally:
            db.close()

    def test_concurrent_tag_creation_conflicts_once(self, tmp_path: Path) -> None:
        db: CivicDB = make_db(tmp_path, check_same_thread=False)
        try:
            with ThreadPoolExecutor(max_workers=4) as pool:
                outcomes = list(pool.map(lambda _: _try_create(db), range(4)))
            assert outcomes.count("created") == 1
            assert outcomes.count("conflict") == 3
        finally:
            db.close()


def _try_create(db: CivicDB) -> str:
    try:
        db.create_tag("lighting")
    except ConflictError:
        return "conflict"
    return "created"


class TestSharedDatabaseFile:
    """Two CivicDB instances on one file, as with ``civicalert serve`` plus the CLI."""

    @pytest.fixture
    def peers(self, tmp_path: Path) -> Generator[tuple[CivicDB, CivicDB], None, None]:
        first = make_db(tmp_path)
        second = CivicDB(first.db_path, prefix="peer")
        second.initialize()
        yield first, second
        second.close()
        first.close()

    def test_name_taken_by_peer_is_a_conflict(self, peers: tuple[CivicDB, CivicDB]) -> None:
        first, second = peers
        second.create_tag("pothole")
        with pytest.raises(ConflictError):
            first.create_tag("pothole")

    def test_unique_violation_on_insert_becomes_conflict(
        self, peers: tuple[CivicDB, CivicDB], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        first, _ = peers
        original = first._generate_unique_id

        def land_duplicate_first(table: str, infix: str = "") -> str:
            # Same name lands after the existence check, before our INSERT
            first.conn.execute(
                "INSERT INTO tags (id, name, active, created_at) VALUES ('peer-tag-1', 'pothole', 1, '2026-01-01')"
            )
            return original(table, infix)

        monkeypatch.setattr(first, "_generate_unique_id", land_duplicate_first)
        with pytest.raises(ConflictError) as exc_info:
            first.create_tag("pothole")
        assert exc_info.value.details == {"name": "pothole"}
        assert isinstance(exc_info.value.__cause__, sqlite3.IntegrityError)
        monkeypatch.undo()
        assert first.get_tag_by_name("pothole") is None

    def test_rename_onto_peer_name_is_a_conflict(self, peers: tuple[CivicDB, CivicDB]) -> None:
        first, second = peers
        tag = first.create_tag("lighting")
        second.create_tag("streetlight")
        with pytest.raises(ConflictError):
            first.update_tag(tag.id, "streetlight")

    def test_write_lock_is_taken_before_the_first_read(self, peers: tuple[CivicDB, CivicDB]) -> None:
        first, second = peers
        second.conn.execute("PRAGMA busy_timeout=0")
        with first._transaction() as conn:
            conn.execute("SELECT COUNT(*) FROM tags").fetchone()
            with pytest.raises(sqlite3.OperationalError, match="locked"):
                second.create_tag("pothole")
        assert second.create_tag("pothole").name == "pothole"
