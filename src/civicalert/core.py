"""Core database class for civicalert.

Single source of truth for all SQLite operations. The CLI and the HTTP
dashboard both import from this module.

Convention-based discovery: each deployment has a `.civicalert/` directory
containing `civicalert.db` (SQLite) and `config.json` (id prefix, session
TTL, dashboard port).
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from civicalert.db_directory import DirectoryMixin, Location, User
from civicalert.db_issues import Issue, IssuesMixin
from civicalert.db_notifications import Notification, NotificationsMixin
from civicalert.db_reports import ReportsMixin
from civicalert.db_schema import CURRENT_SCHEMA_VERSION, SCHEMA_SQL
from civicalert.db_sessions import DEFAULT_SESSION_TTL_MINUTES, SessionsMixin
from civicalert.db_tags import Tag, TagsMixin
from civicalert.types.core import ProjectConfig

logger = logging.getLogger(__name__)

__all__ = [
    "CONFIG_FILENAME",
    "CIVIC_DIR_NAME",
    "DB_FILENAME",
    "CivicDB",
    "Issue",
    "Location",
    "Notification",
    "Tag",
    "User",
    "find_civic_root",
    "read_config",
    "write_config",
]

# ---------------------------------------------------------------------------
# Convention-based discovery
# ---------------------------------------------------------------------------

CIVIC_DIR_NAME = ".civicalert"
DB_FILENAME = "civicalert.db"
CONFIG_FILENAME = "config.json"

DEFAULT_PREFIX = "civic"
DEFAULT_PORT = 8390

_ENV_OVERRIDES: dict[str, str] = {
    "session_ttl_minutes": "CIVICALERT_SESSION_TTL_MINUTES",
    "port": "CIVICALERT_PORT",
}


def find_civic_root(start: Path | None = None) -> Path:
    """Walk up from start (default cwd) looking for .civicalert/ directory.

    Returns the .civicalert/ directory path (not the project root).
    """
    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        candidate = parent / CIVIC_DIR_NAME
        if candidate.is_dir():
            return candidate
    msg = f"No {CIVIC_DIR_NAME}/ directory found in {current} or any parent"
    raise FileNotFoundError(msg)


def _default_config() -> ProjectConfig:
    return ProjectConfig(
        prefix=DEFAULT_PREFIX,
        version=CURRENT_SCHEMA_VERSION,
        session_ttl_minutes=DEFAULT_SESSION_TTL_MINUTES,
        port=DEFAULT_PORT,
    )


def read_config(civic_dir: Path) -> ProjectConfig:
    """Read .civicalert/config.json over the defaults, then apply environment overrides.

    A missing or corrupt file yields the defaults. Non-integer environment
    values are ignored with a warning.
    """
    config = _default_config()
    config_path = civic_dir / CONFIG_FILENAME
    if config_path.exists():
        try:
            loaded = json.loads(config_path.read_text())
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Failed to read %s, using defaults: %s", config_path, exc)
        else:
            if isinstance(loaded, dict):
                config.update(loaded)  # type: ignore[typeddict-item]
            else:
                logger.warning("Ignoring %s: expected a JSON object", config_path)

    for key, env_name in _ENV_OVERRIDES.items():
        raw = os.environ.get(env_name)
        if raw is None or raw == "":
            continue
        try:
            config[key] = int(raw)  # type: ignore[literal-required]
        except ValueError:
            logger.warning("Ignoring %s=%r: not an integer", env_name, raw)
    return config


def write_config(civic_dir: Path, config: dict[str, Any] | ProjectConfig) -> None:
    """Write .civicalert/config.json."""
    config_path = civic_dir / CONFIG_FILENAME
    config_path.write_text(json.dumps(config, indent=2) + "\n")


# ---------------------------------------------------------------------------
# CivicDB
# ---------------------------------------------------------------------------


class CivicDB(DirectoryMixin, TagsMixin, NotificationsMixin, IssuesMixin, ReportsMixin, SessionsMixin):
    """Direct SQLite operations. Importable by the CLI and the dashboard.

    All writes go through :meth:`_transaction`, which serializes them on a
    re-entrant lock and opens the SQLite write transaction up front, so a
    read-modify-write cannot interleave with another thread or another
    process writing the same file.
    """

    def __init__(
        self,
        db_path: str | Path,
        *,
        prefix: str = DEFAULT_PREFIX,
        session_ttl_minutes: int = DEFAULT_SESSION_TTL_MINUTES,
        check_same_thread: bool = True,
    ) -> None:
        self.db_path = Path(db_path)
        self.prefix = prefix
        self.session_ttl_minutes = session_ttl_minutes
        self._conn: sqlite3.Connection | None = None
        self._check_same_thread = check_same_thread
        self._write_lock = threading.RLock()
        self._tx_depth = 0

    @classmethod
    def from_project(cls, project_path: Path | None = None, *, check_same_thread: bool = True) -> CivicDB:
        """Create a CivicDB by discovering .civicalert/ from project_path (or cwd)."""
        civic_dir = find_civic_root(project_path)
        config = read_config(civic_dir)
        db = cls(
            civic_dir / DB_FILENAME,
            prefix=config.get("prefix", DEFAULT_PREFIX),
            session_ttl_minutes=config.get("session_ttl_minutes", DEFAULT_SESSION_TTL_MINUTES),
            check_same_thread=check_same_thread,
        )
        db.initialize()
        return db

    def __enter__(self) -> CivicDB:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                isolation_level="DEFERRED",
                check_same_thread=self._check_same_thread,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.execute("PRAGMA busy_timeout=5000")
        return self._conn

    def initialize(self) -> None:
        """Create tables on a fresh database and stamp the schema version."""
        current_version = self.get_schema_version()
        if current_version == 0:
            self.conn.executescript(SCHEMA_SQL)
            self.conn.execute(f"PRAGMA user_version = {CURRENT_SCHEMA_VERSION}")
        elif current_version > CURRENT_SCHEMA_VERSION:
            msg = f"Database schema v{current_version} is newer than this civicalert (v{CURRENT_SCHEMA_VERSION})"
            raise RuntimeError(msg)
        self.conn.commit()

    def get_schema_version(self) -> int:
        """Return the current schema version from PRAGMA user_version."""
        result: int = self.conn.execute("PRAGMA user_version").fetchone()[0]
        return result

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def reconnect(self, *, check_same_thread: bool | None = None) -> None:
        """Drop the current connection so the next access reopens it."""
        with self._write_lock:
            self.close()
            if check_same_thread is not None:
                self._check_same_thread = check_same_thread

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Hold the write lock for a read-modify-write; commit on success, roll back on error.

        The outermost call issues ``BEGIN IMMEDIATE`` so the database write
        lock is held from the first read. Nested calls join it.
        """
        with self._write_lock:
            if self._tx_depth:
                self._tx_depth += 1
                try:
                    yield self.conn
                finally:
                    self._tx_depth -= 1
                return
            self._tx_depth = 1
            try:
                conn = self.conn
                if not conn.in_transaction:
                    conn.execute("BEGIN IMMEDIATE")
                yield conn
                conn.commit()
            except BaseException:
                self.conn.rollback()
                raise
            finally:
                self._tx_depth = 0

    def _generate_unique_id(self, table: str, infix: str = "") -> str:
        """Generate a unique ID using O(1) EXISTS checks against the PK index.

        *table* is always a hardcoded literal at the call site (never user input).
        """
        sep = f"-{infix}-" if infix else "-"
        for _ in range(10):
            candidate = f"{self.prefix}{sep}{uuid.uuid4().hex[:10]}"
            if self.conn.execute(f"SELECT 1 FROM {table} WHERE id = ?", (candidate,)).fetchone() is None:
                return candidate
        return f"{self.prefix}{sep}{uuid.uuid4().hex[:16]}"
