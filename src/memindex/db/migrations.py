"""Forward-only migration runner for the memindex schema."""

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
CREATE TABLE IF NOT EXISTS chunks (
    collection_key  TEXT NOT NULL,
    item_path       TEXT NOT NULL,
    chunk_index     INTEGER NOT NULL,
    text            TEXT NOT NULL,
    start_line      INTEGER NOT NULL,
    end_line        INTEGER NOT NULL,
    language        TEXT,
    content_hash    TEXT NOT NULL,
    embedding       BLOB NOT NULL,
    created_at      DATETIME NOT NULL DEFAULT (datetime('now')),
    UNIQUE (collection_key, item_path, chunk_index)
);

CREATE INDEX IF NOT EXISTS idx_chunks_item ON chunks(collection_key, item_path);

CREATE TABLE IF NOT EXISTS index_status (
    collection_key  TEXT PRIMARY KEY,
    status          TEXT NOT NULL DEFAULT 'idle'
                    CHECK (status IN ('idle', 'indexing', 'complete', 'error')),
    files_indexed   INTEGER NOT NULL DEFAULT 0,
    chunks_created  INTEGER NOT NULL DEFAULT 0,
    last_indexed_at DATETIME,
    error_message   TEXT,
    updated_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS memories (
    id              TEXT PRIMARY KEY,
    collection_key  TEXT NOT NULL,
    memory_type     TEXT NOT NULL CHECK (memory_type IN (
        'decision', 'pattern', 'convention', 'lesson',
        'architecture', 'warning', 'preference'
    )),
    title           TEXT NOT NULL,
    content         TEXT NOT NULL,
    is_global       INTEGER NOT NULL DEFAULT 0,
    source_item_id  TEXT,
    created_by      TEXT,
    relevance_score REAL NOT NULL DEFAULT 1.0,
    is_active       INTEGER NOT NULL DEFAULT 1,
    embedding       BLOB NOT NULL,
    created_at      DATETIME NOT NULL DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now')),
    updated_at      DATETIME NOT NULL DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now'))
);

CREATE INDEX IF NOT EXISTS idx_memories_collection ON memories(collection_key, is_active);

CREATE TABLE IF NOT EXISTS index_meta (
    key             TEXT PRIMARY KEY,
    value           TEXT NOT NULL
);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
]

CURRENT_VERSION = MIGRATIONS[-1][0]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
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


def initialize(conn: sqlite3.Connection) -> None:
    """Initialize the database schema via the migration runner (idempotent)."""
    run_migrations(conn)
