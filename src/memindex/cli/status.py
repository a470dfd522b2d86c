"""memindex status command.

Shows the index database, its embedding model, and one row of run status per
collection (last run's counters, not cumulative totals).
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table

from memindex.cli.common import build_store, cli_errors, console, open_db, resolve_db
from memindex.config import MemindexConfig, load_config
from memindex.db.models import STATUS_COMPLETE, STATUS_ERROR, STATUS_INDEXING, IndexStatus
from memindex.db.store import IndexStore

_STATUS_STYLE = {
    STATUS_COMPLETE: "[green]✓ complete[/]",
    STATUS_ERROR: "[red]✗ error[/]",
    STATUS_INDEXING: "[yellow]⏳ indexing[/]",
}


def status_cmd(
    collection: Annotated[
        str | None,
        typer.Option("--collection", "-c", help="Only show this collection."),
    ] = None,
    db: Annotated[Path | None, typer.Option("--db", help="Path to .memindex.db.")] = None,
) -> None:
    """Show index status: database, embedding model, and per-collection runs."""
    # Status works even with a broken memindex.yaml
    try:
        cfg = load_config()
    except ValueError:
        cfg = MemindexConfig()

    db_path = resolve_db(db, cfg)
    if not db_path.exists():
        console.print(
            Panel(
                f"[yellow]No index database at '{db_path}'.[/]\n"
                "  Run:  memindex index --root .",
                title="[bold]Index[/]",
                expand=False,
            )
        )
        raise typer.Exit(0)

    conn = open_db(db_path)
    try:
        store = build_store(conn, cfg)
        with cli_errors():
            _show_index_panel(db_path, store, cfg)
            statuses = asyncio.run(store.list_statuses())
            if collection:
                statuses = [s for s in statuses if s.collection_key == collection]
            _show_collections(statuses, store)
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_index_panel(db_path: Path, store: IndexStore, cfg: MemindexConfig) -> None:
    size_mb = db_path.stat().st_size / (1024 * 1024)
    model, dims = store.embedding_info()
    total_chunks = asyncio.run(store.count_chunks())
    total_memories = asyncio.run(store.count_memories())

    lines = [
        f"Database:  {db_path} ({size_mb:.1f} MB)",
        f"Chunks: [bold]{total_chunks:,}[/]  |  Memories: [bold]{total_memories:,}[/]",
    ]
    if model or dims:
        lines.append(f"Embedding: {model or '?'} ({dims or '?'} dims)")
        if model and model != cfg.embedding.model:
            lines.append(f"[yellow]⚠ Config uses {cfg.embedding.model}[/]")
    else:
        lines.append("[dim]Nothing embedded yet.[/]")
    console.print(Panel("\n".join(lines), title="[bold]Index[/]", expand=False))


def _show_collections(statuses: list[IndexStatus], store: IndexStore) -> None:
    if not statuses:
        console.print("[dim]No indexing runs recorded.[/]")
        return

    table = Table(title="Collections", show_header=True, header_style="bold")
    table.add_column("Collection", style="bold")
    table.add_column("Status")
    table.add_column("Files (last run)", justify="right")
    table.add_column("Chunks (last run)", justify="right")
    table.add_column("Chunks (total)", justify="right")
    table.add_column("Last indexed", style="dim")

    errors: list[tuple[str, str]] = []
    for s in statuses:
        table.add_row(
            s.collection_key,
            _STATUS_STYLE.get(s.status, s.status),
            str(s.files_indexed),
            str(s.chunks_created),
            f"{asyncio.run(store.count_chunks(s.collection_key)):,}",
            (s.last_indexed_at or "never")[:16],
        )
        if s.status == STATUS_ERROR and s.error_message:
            errors.append((s.collection_key, s.error_message))
    console.print(table)

    for key, message in errors:
        console.print(f"[red]✗ {key}:[/] {message}")
