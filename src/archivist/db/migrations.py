"""Forward-only migration runner for the archive database schema.

Vec tables (vec_chunks_*) are NOT migration-managed — use ensure_vec_table().
"""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS mailboxes (
    id              TEXT PRIMARY KEY,
    message_count   INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS messages (
    id              TEXT PRIMARY KEY,
    mailbox_id      TEXT NOT NULL REFERENCES mailboxes(id),
    subject         TEXT NOT NULL DEFAULT '',
    from_email      TEXT NOT NULL DEFAULT '',
    ts              DATETIME,
    body_text       TEXT,
    embedded_at     DATETIME
);

CREATE INDEX IF NOT EXISTS idx_messages_pending
    ON messages (mailbox_id, embedded_at);

CREATE INDEX IF NOT EXISTS idx_messages_ts ON messages (ts);
"""

# Vector entry metadata. vec_rowid is the rowid inside the per-model vec0 table.
_V2_SQL = """
CREATE TABLE IF NOT EXISTS vector_entries (
    key             TEXT NOT NULL,
    vec_table       TEXT NOT NULL,
    vec_rowid       INTEGER NOT NULL,
    message_id      TEXT NOT NULL,
    mailbox_id      TEXT NOT NULL,
    chunk_index     INTEGER NOT NULL,
    subject         TEXT NOT NULL DEFAULT '',
    from_email      TEXT NOT NULL DEFAULT '',
    ts              TEXT NOT NULL DEFAULT '',
    embedding_model TEXT NOT NULL,
    updated_at      DATETIME NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (vec_table, key),
    UNIQUE (vec_table, vec_rowid)
);

CREATE INDEX IF NOT EXISTS idx_vector_entries_mailbox
    ON vector_entries (vec_table, mailbox_id);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
    (2, _V2_SQL),
]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    Vec tables are NOT managed here — use ensure_vec_table() instead.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()

    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    current = row[0] if row[0] is not None else 0

    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            conn.commit()
