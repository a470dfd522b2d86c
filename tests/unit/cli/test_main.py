"""Tests for the memindex CLI entry point."""

from __future__ import annotations

import logging

from typer.testing import CliRunner

from memindex.cli.main import app

runner = CliRunner()


def test_version_flag():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert result.output.startswith("memindex ")


def test_help_lists_commands():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("init", "index", "update", "search", "recall", "status", "memory"):
        assert command in result.output


def test_memory_help_lists_subcommands():
    result = runner.invoke(app, ["memory", "--help"])
    assert result.exit_code == 0
    for command in ("add", "search", "list", "remove"):
        assert command in result.output


def test_verbose_sets_debug_level(cli_repo, tmp_path):
    result = runner.invoke(app, ["--verbose", "status", "--db", str(tmp_path / "none.db")])
    assert result.exit_code == 0
    assert logging.getLogger("memindex").level == logging.DEBUG


def test_default_level_is_warning(cli_repo, tmp_path):
    result = runner.invoke(app, ["status", "--db", str(tmp_path / "none.db")])
    assert result.exit_code == 0
    assert logging.getLogger("memindex").level == logging.WARNING
