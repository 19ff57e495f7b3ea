"""Tests for structured logging."""

from __future__ import annotations

import json
import logging
import logging.handlers
import os
import threading
from collections.abc import Generator
from pathlib import Path

import pytest

from civicalert.core import CivicDB
from civicalert.logging import setup_logging


@pytest.fixture(autouse=True)
def _detach_file_handlers() -> Generator[None, None, None]:
    yield
    logger = logging.getLogger("civicalert")
    for h in logger.handlers[:]:
        if isinstance(h, logging.handlers.RotatingFileHandler):
            logger.removeHandler(h)
            h.close()


def _records(logger: logging.Logger, path: Path) -> list[dict[str, object]]:
    for handler in logger.handlers:
        handler.flush()
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]


class TestSetupLogging:
    def test_creates_log_file(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        logger.info("test_message", extra={"event": "heartbeat", "issue_id": "civic-1"})
        record = _records(logger, tmp_path / "civicalert.log")[-1]
        assert record["msg"] == "test_message"
        assert record["level"] == "INFO"
        assert record["logger"] == "civicalert"
        assert record["event"] == "heartbeat"
        assert record["issue_id"] == "civic-1"

    def test_duration_and_exception(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        try:
            raise ValueError("boom")
        except ValueError:
            logger.warning("failed", exc_info=True, extra={"duration_ms": 42.5})
        record = _records(logger, tmp_path / "civicalert.log")[-1]
        assert record["duration_ms"] == 42.5
        assert record["exception"] == "boom"

    def test_idempotent_setup(self, tmp_path: Path) -> None:
        logger1 = setup_logging(tmp_path)
        logger2 = setup_logging(tmp_path)
        assert logger1 is logger2
        file_handlers = [h for h in logger1.handlers if isinstance(h, logging.handlers.RotatingFileHandler)]
        assert len(file_handlers) == 1

    def test_no_duplicate_handlers_via_symlink(self, tmp_path: Path) -> None:
        real_dir = tmp_path / "real"
        real_dir.mkdir()
        link_dir = tmp_path / "link"
        os.symlink(str(real_dir), str(link_dir))
        logger = setup_logging(link_dir)
        setup_logging(link_dir)
        assert len([h for h in logger.handlers if isinstance(h, logging.handlers.RotatingFileHandler)]) == 1

    def test_switching_directory_replaces_handler(self, tmp_path: Path) -> None:
        first = tmp_path / "one"
        second = tmp_path / "two"
        first.mkdir()
        second.mkdir()
        setup_logging(first)
        logger = setup_logging(second)
        handlers = [h for h in logger.handlers if isinstance(h, logging.handlers.RotatingFileHandler)]
        assert len(handlers) == 1
        assert handlers[0].baseFilename == os.path.abspath(str(second / "civicalert.log"))

    def test_no_duplicate_handlers_under_concurrency(self, tmp_path: Path) -> None:
        barrier = threading.Barrier(8)

        def worker() -> None:
            barrier.wait()
            setup_logging(tmp_path)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        logger = logging.getLogger("civicalert")
        assert len([h for h in logger.handlers if isinstance(h, logging.handlers.RotatingFileHandler)]) == 1


class TestLifecycleEvents:
    def test_issue_events_are_structured(self, tmp_path: Path, db: CivicDB) -> None:
        logger = setup_logging(tmp_path)
        issue = db.create_issue("Broken bench")
        db.update_status(issue.id, "RESOLVED")
        events = [(r.get("event"), r.get("issue_id")) for r in _records(logger, tmp_path / "civicalert.log")]
        assert ("issue_created", issue.id) in events
        assert ("status_changed", issue.id) in events

    def test_dispatch_failure_is_logged_as_warning(self, tmp_path: Path, db: CivicDB, monkeypatch: pytest.MonkeyPatch) -> None:
        logger = setup_logging(tmp_path)
        db.create_user("ana@city.example", role="ADMIN")

        def boom(*args: object, **kwargs: object) -> None:
            raise RuntimeError("relay down")

        monkeypatch.setattr(db, "create_notification", boom)
        issue = db.create_issue("Loose cable")
        failures = [r for r in _records(logger, tmp_path / "civicalert.log") if r["level"] == "WARNING"]
        assert len(failures) == 1
        assert failures[0]["event"] == "admin_fanout"
        assert failures[0]["issue_id"] == issue.id
        assert failures[0]["error"] == "relay down"
        assert failures[0]["exception"] == "relay down"
