"""Tests for memindex status."""

from __future__ import annotations

import asyncio
from pathlib import Path

from typer.testing import CliRunner

from memindex.cli.main import app
from memindex.db.connection import Database
from memindex.db.migrations import initialize
from memindex.db.repository import Repository
from memindex.db.store import IndexStore

runner = CliRunner()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _index(root: Path, db_path: Path, collection: str = "proj") -> None:
    (root / "a.ts").write_text("export const a = 1;\n", encoding="utf-8")
    result = runner.invoke(
        app, ["index", "--root", str(root), "--db", str(db_path), "--collection", collection]
    )
    assert result.exit_code == 0, result.output


def _mark_error(db_path: Path, collection: str, message: str) -> None:
    with Database(db_path) as conn:
        initialize(conn)
        store = IndexStore(Repository(conn))
        asyncio.run(store.mark_error(collection, message))


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


def test_status_without_database(cli_repo, tmp_path):
    result = runner.invoke(app, ["status", "--db", str(tmp_path / "missing.db")])

    assert result.exit_code == 0
    assert "No index database" in result.output
    assert not (tmp_path / "missing.db").exists()


def test_status_empty_database(cli_repo, tmp_path):
    db_path = tmp_path / "index.db"
    with Database(db_path) as conn:
        initialize(conn)

    result = runner.invoke(app, ["status", "--db", str(db_path)])

    assert result.exit_code == 0, result.output
    assert "Nothing embedded yet." in result.output
    assert "No indexing runs recorded." in result.output


def test_status_shows_collections(cli_repo, tmp_path):
    db_path = tmp_path / "index.db"
    _index(cli_repo, db_path, "proj")
    _index(cli_repo, db_path, "web")

    result = runner.invoke(app, ["status", "--db", str(db_path)])

    assert result.exit_code == 0, result.output
    assert "Collections" in result.output
    assert "proj" in result.output
    assert "web" in result.output
    assert "complete" in result.output
    assert "openai/text-embedding-3-small (8 dims)" in result.output


def test_status_filters_collection(cli_repo, tmp_path):
    db_path = tmp_path / "index.db"
    _index(cli_repo, db_path, "proj")
    _index(cli_repo, db_path, "web")

    result = runner.invoke(app, ["status", "--db", str(db_path), "--collection", "web"])

    assert result.exit_code == 0, result.output
    assert "web" in result.output
    assert "proj" not in result.output


def test_status_shows_error_message(cli_repo, tmp_path):
    db_path = tmp_path / "index.db"
    _mark_error(db_path, "proj", "provider unreachable")

    result = runner.invoke(app, ["status", "--db", str(db_path)])

    assert result.exit_code == 0, result.output
    assert "error" in result.output
    assert "provider unreachable" in result.output


def test_status_warns_on_model_change(cli_repo, tmp_path):
    db_path = tmp_path / "index.db"
    _index(cli_repo, db_path)
    (cli_repo / "memindex.yaml").write_text(
        "embedding:\n  model: openai/text-embedding-3-large\n", encoding="utf-8"
    )

    result = runner.invoke(app, ["status", "--db", str(db_path)])

    assert result.exit_code == 0, result.output
    assert "Config uses openai/text-embedding-3-large" in result.output


def test_status_with_broken_config(cli_repo, tmp_path):
    (cli_repo / "memindex.yaml").write_text("retrieval:\n  limit: 0\n", encoding="utf-8")

    result = runner.invoke(app, ["status", "--db", str(tmp_path / "missing.db")])

    assert result.exit_code == 0
    assert "No index database" in result.output
