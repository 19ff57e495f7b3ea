"""Database schema definitions for civicalert.

Contains the canonical SQL schema and the current schema version constant.
"""

from __future__ import annotations

SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS locations (
    id          TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    type        TEXT NOT NULL DEFAULT 'VILLAGE',
    parent_id   TEXT REFERENCES locations(id) ON DELETE SET NULL,
    CHECK (type IN ('PROVINCE', 'DISTRICT', 'SECTOR', 'CELL', 'VILLAGE'))
);

CREATE INDEX IF NOT EXISTS idx_locations_parent ON locations(parent_id);

CREATE TABLE IF NOT EXISTS users (
    id           TEXT PRIMARY KEY,
    full_name    TEXT DEFAULT '',
    email        TEXT NOT NULL UNIQUE,
    phone_number TEXT DEFAULT '',
    role         TEXT NOT NULL DEFAULT 'RESIDENT',
    location_id  TEXT REFERENCES locations(id) ON DELETE SET NULL,
    created_at   TEXT NOT NULL,
    CHECK (role IN ('ADMIN', 'RESIDENT'))
);

CREATE INDEX IF NOT EXISTS idx_users_role ON users(role);

CREATE TABLE IF NOT EXISTS issues (
    id             TEXT PRIMARY KEY,
    title          TEXT NOT NULL,
    description    TEXT DEFAULT '',
    category       TEXT DEFAULT '',
    status         TEXT NOT NULL DEFAULT 'REPORTED',
    location_id    TEXT REFERENCES locations(id) ON DELETE SET NULL,
    reported_by    TEXT REFERENCES users(id) ON DELETE SET NULL,
    photo_url      TEXT,
    date_reported  TEXT NOT NULL,
    date_resolved  TEXT,
    CHECK (status IN ('REPORTED', 'IN_PROGRESS', 'RESOLVED'))
);

CREATE INDEX IF NOT EXISTS idx_issues_status ON issues(status);
CREATE INDEX IF NOT EXISTS idx_issues_reported_by ON issues(reported_by);
CREATE INDEX IF NOT EXISTS idx_issues_category ON issues(category);
CREATE INDEX IF NOT EXISTS idx_issues_location ON issues(location_id);
CREATE INDEX IF NOT EXISTS idx_issues_reported_at ON issues(date_reported DESC);

CREATE TABLE IF NOT EXISTS tags (
    id          TEXT PRIMARY KEY,
    name        TEXT NOT NULL UNIQUE,
    description TEXT,
    active      BOOLEAN NOT NULL DEFAULT 1,
    created_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS issue_tags (
    issue_id TEXT NOT NULL REFERENCES issues(id) ON DELETE CASCADE,
    tag_id   TEXT NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
    PRIMARY KEY (issue_id, tag_id)
);

CREATE INDEX IF NOT EXISTS idx_issue_tags_tag ON issue_tags(tag_id);

CREATE TABLE IF NOT EXISTS notifications (
    id           TEXT PRIMARY KEY,
    message      TEXT NOT NULL,
    channel      TEXT NOT NULL DEFAULT 'SYSTEM',
    sent_at      TEXT NOT NULL,
    delivered    BOOLEAN NOT NULL DEFAULT 1,
    read         BOOLEAN NOT NULL DEFAULT 0,
    recipient_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    issue_id     TEXT REFERENCES issues(id) ON DELETE SET NULL
);

CREATE INDEX IF NOT EXISTS idx_notifications_recipient ON notifications(recipient_id, sent_at DESC);
CREATE INDEX IF NOT EXISTS idx_notifications_issue ON notifications(issue_id);

CREATE TABLE IF NOT EXISTS sessions (
    token       TEXT PRIMARY KEY,
    user_id     TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    created_at  TEXT NOT NULL,
    expires_at  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_sessions_expiry ON sessions(expires_at);

-- FTS5 full-text search with sync triggers
CREATE VIRTUAL TABLE IF NOT EXISTS issues_fts USING fts5(
    title, description, category, content='issues', content_rowid='rowid'
);

CREATE TRIGGER IF NOT EXISTS issues_fts_insert AFTER INSERT ON issues BEGIN
    INSERT INTO issues_fts(rowid, title, description, category)
        VALUES (new.rowid, new.title, new.description, new.category);
END;
CREATE TRIGGER IF NOT EXISTS issues_fts_update AFTER UPDATE OF title, description, category ON issues BEGIN
    INSERT INTO issues_fts(issues_fts, rowid, title, description, category)
        VALUES('delete', old.rowid, old.title, old.description, old.category);
    INSERT INTO issues_fts(rowid, title, description, category)
        VALUES (new.rowid, new.title, new.description, new.category);
END;
CREATE TRIGGER IF NOT EXISTS issues_fts_delete AFTER DELETE ON issues BEGIN
    INSERT INTO issues_fts(issues_fts, rowid, title, description, category)
        VALUES('delete', old.rowid, old.title, old.description, old.category);
END;
"""

CURRENT_SCHEMA_VERSION = 1
