"""memindex index / update: full and incremental indexing runs.

  memindex index  --root PATH [--collection KEY] [--pattern GLOB]... [--exclude GLOB]...
  memindex update --root PATH [--collection KEY] [--file PATH]... [--deleted PATH]...
"""

from __future__ import annotations

import asyncio
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated, Iterator

import typer
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TaskProgressColumn,
    TextColumn,
)
from rich.table import Table

from memindex.cli.common import (
    build_embedder,
    build_store,
    check_model,
    cli_errors,
    console,
    load_cfg,
    open_db,
    resolve_collection,
    resolve_db,
)
from memindex.cli.errors import err_index_root
from memindex.config import MemindexConfig
from memindex.db.models import STATUS_ERROR
from memindex.db.store import IndexStore
from memindex.ingest.embedding_client import EmbeddingClient
from memindex.ingest.indexer import Indexer, IndexRunResult

# Failed files listed in the summary before truncating.
_MAX_ERRORS_SHOWN = 10


def index_cmd(
    root: Annotated[
        Path,
        typer.Option("--root", "-r", help="Repository root to index."),
    ] = Path("."),
    collection: Annotated[
        str | None,
        typer.Option("--collection", "-c", help="Collection key (default: .memindex.json)."),
    ] = None,
    pattern: Annotated[
        list[str] | None,
        typer.Option("--pattern", "-p", help="Include glob (repeatable). Default from config."),
    ] = None,
    exclude: Annotated[
        list[str] | None,
        typer.Option("--exclude", help="Glob pattern to exclude (repeatable)."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to .memindex.db (created if missing)."),
    ] = None,
) -> None:
    """Index every matching file under --root; unchanged files are skipped."""
    if not root.is_dir():
        console.print(err_index_root(str(root)))
        raise typer.Exit(1)

    cfg = load_cfg(root)
    key = resolve_collection(collection, root)
    embedder = build_embedder(cfg)
    conn = open_db(resolve_db(db, cfg, root))
    try:
        store = build_store(conn, cfg)
        check_model(store, cfg)
        indexer = _build_indexer(embedder, store, cfg)
        patterns = pattern or cfg.indexing.patterns
        excludes = list(cfg.indexing.exclude) + list(exclude or [])

        console.print(f"\n[bold]→ Indexing {root}[/]  [dim](collection {key})[/]")
        with cli_errors(), _progress() as (prog, task):
            result = asyncio.run(
                indexer.index_project(
                    key,
                    root,
                    patterns=patterns,
                    excludes=excludes,
                    on_progress=lambda done, total: prog.update(
                        task, completed=done, total=total
                    ),
                )
            )
    finally:
        conn.close()

    _print_result(result)


def update_cmd(
    root: Annotated[
        Path,
        typer.Option("--root", "-r", help="Repository root the paths are relative to."),
    ] = Path("."),
    collection: Annotated[
        str | None,
        typer.Option("--collection", "-c", help="Collection key (default: .memindex.json)."),
    ] = None,
    file: Annotated[
        list[str] | None,
        typer.Option("--file", "-f", help="Changed file to re-index (repeatable)."),
    ] = None,
    deleted: Annotated[
        list[str] | None,
        typer.Option("--deleted", "-d", help="Deleted file to drop from the index (repeatable)."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to .memindex.db (created if missing)."),
    ] = None,
) -> None:
    """Re-index only the given changed files and drop the given deleted ones."""
    changed = file or []
    removed = deleted or []
    if not changed and not removed:
        console.print("[red]Error:[/] Nothing to update. Use --file PATH and/or --deleted PATH.")
        raise typer.Exit(1)
    if not root.is_dir():
        console.print(err_index_root(str(root)))
        raise typer.Exit(1)

    cfg = load_cfg(root)
    key = resolve_collection(collection, root)
    embedder = build_embedder(cfg)
    conn = open_db(resolve_db(db, cfg, root))
    try:
        store = build_store(conn, cfg)
        check_model(store, cfg)
        indexer = _build_indexer(embedder, store, cfg)

        console.print(
            f"\n[bold]→ Updating {key}[/]  "
            f"[dim]({len(changed)} changed, {len(removed)} deleted)[/]"
        )
        with cli_errors(), _progress() as (prog, task):
            result = asyncio.run(
                indexer.update_index(
                    key,
                    root,
                    changed=changed,
                    deleted=removed,
                    on_progress=lambda done, total: prog.update(
                        task, completed=done, total=total
                    ),
                )
            )
    finally:
        conn.close()

    _print_result(result)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _build_indexer(embedder: EmbeddingClient, store: IndexStore, cfg: MemindexConfig) -> Indexer:
    return Indexer(
        embedder,
        store,
        min_chunk_chars=cfg.chunking.min_chunk_chars,
        max_chunk_chars=cfg.chunking.max_chunk_chars,
        batch_size=cfg.indexing.batch_size,
        abort_after_consecutive_failures=cfg.indexing.abort_after_consecutive_failures,
    )


@contextmanager
def _progress() -> Iterator[tuple[Progress, TaskID]]:
    """Transient rich progress bar yielding ``(progress, task_id)``."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        transient=True,
        console=console,
    ) as prog:
        yield prog, prog.add_task("Indexing…", total=None)


def _print_result(result: IndexRunResult) -> None:
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Files processed", str(result.files_processed))
    table.add_row("Unchanged (skipped)", str(result.files_skipped_unchanged))
    table.add_row("Unsupported (skipped)", str(result.files_unsupported))
    table.add_row("Failed", str(result.files_failed))
    table.add_row("Deleted", str(result.files_deleted))
    table.add_row("Chunks created", str(result.chunks_created))
    table.add_row("Duration", f"{result.duration_ms / 1000:.1f}s")
    console.print(table)

    if result.errors:
        console.print(f"\n[yellow]{len(result.errors)} file(s) failed:[/]")
        for path, message in list(result.errors.items())[:_MAX_ERRORS_SHOWN]:
            console.print(f"  [red]✗[/] {path}: {message}")
        if len(result.errors) > _MAX_ERRORS_SHOWN:
            console.print(f"  [dim]… and {len(result.errors) - _MAX_ERRORS_SHOWN} more[/]")

    if result.status == STATUS_ERROR:
        console.print(f"\n[red]✗ Index run stopped:[/] {result.error}")
        raise typer.Exit(1)
    console.print("\n[green]✓[/] Index complete")
