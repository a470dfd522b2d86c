"""memindex CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from memindex.cli.index import index_cmd, update_cmd
from memindex.cli.init import init_cmd
from memindex.cli.memory import memory_app
from memindex.cli.recall import recall_cmd
from memindex.cli.search import search_cmd
from memindex.cli.status import status_cmd
from memindex.logging_config import configure_logging


def _version_callback(value: bool) -> None:
    if value:
        try:
            ver = importlib.metadata.version("memindex")
        except importlib.metadata.PackageNotFoundError:
            ver = "dev"
        typer.echo(f"memindex {ver}")
        raise typer.Exit()


app = typer.Typer(
    name="memindex",
    help=(
        "memindex: semantic index over code and project memories.\n\n"
        "  memindex index   Embed a repository (unchanged files are skipped).\n"
        "  memindex search  Find code by meaning.\n"
        "  memindex recall  Gather code, memories and related work for a work item."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log debug output to stderr."),
    ] = False,
) -> None:
    """memindex: semantic index over code and project memories."""
    configure_logging(verbose)


app.command("init")(init_cmd)
app.command("index")(index_cmd)
app.command("update")(update_cmd)
app.command("search")(search_cmd)
app.command("recall")(recall_cmd)
app.command("status")(status_cmd)
app.add_typer(memory_app, name="memory")


if __name__ == "__main__":
    app()
