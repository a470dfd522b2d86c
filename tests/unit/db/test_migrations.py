"""Tests for the forward-only migration runner."""

from __future__ import annotations

import sqlite3

import pytest

from memindex.db.connection import Database
from memindex.db.migrations import MIGRATIONS, initialize, run_migrations


def _fresh_conn(tmp_path):
    """Open a new connection without running migrations."""
    db = Database(tmp_path / "test.db")
    return db.connect()


def _table_exists(conn, name: str) -> bool:
    return conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?", (name,)
    ).fetchone() is not None


# --- Bootstrap ---

def test_run_migrations_creates_schema_version(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert _table_exists(conn, "schema_version")
    conn.close()


def test_run_migrations_records_version(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    version = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()[0]
    assert version == MIGRATIONS[-1][0]
    conn.close()


# --- Idempotency ---

def test_run_migrations_idempotent(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    run_migrations(conn)
    count = conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
    assert count == len(MIGRATIONS)
    conn.close()


# --- Tables created ---

@pytest.mark.parametrize("table", ["chunks", "index_status", "memories", "index_meta"])
def test_run_migrations_creates_tables(tmp_path, table):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert _table_exists(conn, table)
    conn.close()


# --- Constraints ---

def test_chunk_key_is_unique(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    sql = (
        "INSERT INTO chunks (collection_key, item_path, chunk_index, text, start_line, "
        "end_line, content_hash, embedding) VALUES ('p', 'a.ts', 0, 't', 1, 1, 'h', x'00000000')"
    )
    conn.execute(sql)
    with pytest.raises(sqlite3.IntegrityError):
        conn.execute(sql)
    conn.close()


def test_status_check_constraint(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    with pytest.raises(sqlite3.IntegrityError):
        conn.execute("INSERT INTO index_status (collection_key, status) VALUES ('p', 'bogus')")
    conn.close()


def test_memory_type_check_constraint(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    with pytest.raises(sqlite3.IntegrityError):
        conn.execute(
            "INSERT INTO memories (id, collection_key, memory_type, title, content, embedding) "
            "VALUES ('m1', 'p', 'gossip', 't', 'c', x'00000000')"
        )
    conn.close()


# --- Incremental application ---

def test_run_migrations_applies_only_pending(tmp_path):
    """Simulate a DB already at version 1; a hypothetical v2 migration applies."""
    conn = _fresh_conn(tmp_path)
    conn.execute(
        "CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL, "
        "applied_at DATETIME NOT NULL DEFAULT (datetime('now')))"
    )
    conn.execute("INSERT INTO schema_version (version) VALUES (1)")
    conn.commit()

    import memindex.db.migrations as mod
    original = mod.MIGRATIONS
    mod.MIGRATIONS = [(1, "SELECT 1;"), (2, "CREATE TABLE IF NOT EXISTS v2_marker (x INTEGER);")]
    try:
        run_migrations(conn)
        assert _table_exists(conn, "v2_marker")
        # v1 was not re-applied, so its tables do not exist
        assert not _table_exists(conn, "chunks")
        versions = [
            r[0] for r in conn.execute("SELECT version FROM schema_version ORDER BY version")
        ]
        assert versions == [1, 2]
    finally:
        mod.MIGRATIONS = original
    conn.close()


def test_initialize_delegates_to_run_migrations(tmp_path):
    conn = _fresh_conn(tmp_path)
    initialize(conn)
    version = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()[0]
    assert version == MIGRATIONS[-1][0]
    conn.close()
