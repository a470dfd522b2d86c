"""Tests for memindex recall."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from memindex.cli.main import app
from memindex.db.store import IndexStore
from memindex.errors import StoreError

runner = CliRunner()

ITEMS_YAML = """\
workitems:
  - id: WI_1
    project_id: proj
    title: Fix login redirect
    description: Users loop between login and home
    status: in_progress
    type: bug
    created_at: 2026-03-01T10:00:00Z
  - id: WI_2
    project_id: proj
    title: Login redirect tests
    status: done
    type: task
    created_at: 2026-02-20T10:00:00Z
  - id: WI_3
    project_id: proj
    title: Draft login notes
    status: todo
  - id: WI_4
    project_id: other
    title: Login redirect elsewhere
    status: done
"""


@pytest.fixture
def indexed(cli_repo, tmp_path) -> Path:
    """Index one file, add one memory and write workitems.yaml; return the DB path."""
    (cli_repo / "workitems.yaml").write_text(ITEMS_YAML, encoding="utf-8")
    (cli_repo / "login.ts").write_text(
        "export function redirect() {\n  return '/home';\n}\n", encoding="utf-8"
    )
    db_path = tmp_path / "index.db"
    result = runner.invoke(app, ["index", "--root", str(cli_repo), "--db", str(db_path)])
    assert result.exit_code == 0, result.output
    result = runner.invoke(
        app,
        [
            "memory", "add",
            "--title", "Redirect loops",
            "--content", "Check the session cookie path first.",
            "--db", str(db_path),
        ],
    )
    assert result.exit_code == 0, result.output
    return db_path


def _recall(db_path: Path, *args: str):
    return runner.invoke(app, ["recall", *args, "--db", str(db_path)])


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


def test_recall_shows_related_items(indexed):
    result = _recall(indexed, "WI_1")

    assert result.exit_code == 0, result.output
    assert "Fix login redirect" in result.output
    assert "WI_2" in result.output
    assert "WI_3" not in result.output
    assert "WI_4" not in result.output


def test_recall_markdown(indexed):
    result = _recall(indexed, "WI_1", "--markdown")

    assert result.exit_code == 0, result.output
    assert "Context for work item:" in result.output
    assert "- [task] Login redirect tests (done)" in result.output


def test_recall_zero_limits_prints_no_context(indexed):
    result = _recall(
        indexed,
        "WI_1",
        "--markdown",
        "--code-limit", "0",
        "--memory-limit", "0",
        "--related-limit", "0",
    )

    assert result.exit_code == 0, result.output
    assert "No context found." in result.output


def test_recall_explicit_workitems_file(indexed, cli_repo, tmp_path):
    items = tmp_path / "elsewhere.yaml"
    (cli_repo / "workitems.yaml").rename(items)

    result = _recall(indexed, "WI_1", "--workitems", str(items))

    assert result.exit_code == 0, result.output
    assert "WI_2" in result.output


def test_recall_skips_failing_branch(indexed):
    with patch.object(
        IndexStore, "query_memories", side_effect=StoreError("query memories", "disk I/O error")
    ):
        result = _recall(indexed, "WI_1")

    assert result.exit_code == 0, result.output
    assert "Skipped" in result.output
    assert "memories" in result.output
    assert "WI_2" in result.output


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


def test_recall_unknown_work_item(indexed):
    result = _recall(indexed, "WI_999")
    assert result.exit_code == 1
    assert "Work item not found" in result.output


def test_recall_missing_workitems_file(indexed, cli_repo):
    (cli_repo / "workitems.yaml").unlink()
    result = _recall(indexed, "WI_1")
    assert result.exit_code == 1
    assert "Cannot read work items" in result.output


def test_recall_malformed_workitems_file(indexed, cli_repo):
    (cli_repo / "workitems.yaml").write_text("workitems: 5\n", encoding="utf-8")
    result = _recall(indexed, "WI_1")
    assert result.exit_code == 1
    assert "Cannot read work items" in result.output


def test_recall_without_database(cli_repo, tmp_path):
    (cli_repo / "workitems.yaml").write_text(ITEMS_YAML, encoding="utf-8")
    result = _recall(tmp_path / "missing.db", "WI_1")
    assert result.exit_code == 1
    assert "No index database" in result.output
