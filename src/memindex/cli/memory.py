"""memindex memory CLI commands.

Commands:
  memindex memory add      embed and store a new memory
  memindex memory search   semantic search over memories
  memindex memory list     list memories of a collection
  memindex memory remove   soft-delete a memory
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
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
from memindex.db.models import MEMORY_TYPES
from memindex.memory import MemoryService

memory_app = typer.Typer(
    name="memory",
    help="Record and search project memories (decisions, patterns, lessons, ...).",
    add_completion=False,
)

_TYPES_HELP = ", ".join(MEMORY_TYPES)


@memory_app.command("add")
def memory_add_cmd(
    title: Annotated[str, typer.Option("--title", help="Short title.")],
    content: Annotated[
        str | None,
        typer.Option("--content", help="Memory text (or use --content-file)."),
    ] = None,
    content_file: Annotated[
        Path | None,
        typer.Option("--content-file", help="Read the memory text from a file."),
    ] = None,
    memory_type: Annotated[
        str,
        typer.Option("--type", help=f"One of: {_TYPES_HELP}."),
    ] = "lesson",
    is_global: Annotated[
        bool,
        typer.Option("--global", help="Visible from every collection."),
    ] = False,
    source_item: Annotated[
        str | None,
        typer.Option("--source-item", help="Work item this memory came from."),
    ] = None,
    author: Annotated[
        str | None,
        typer.Option("--author", help="Who recorded it."),
    ] = None,
    relevance: Annotated[
        float,
        typer.Option("--relevance", help="Author-assigned weight."),
    ] = 1.0,
    collection: Annotated[
        str | None,
        typer.Option("--collection", "-c", help="Collection key (default: .memindex.json)."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to .memindex.db (created if missing)."),
    ] = None,
) -> None:
    """Embed and store a new memory."""
    if content_file is not None:
        content = content_file.read_text(encoding="utf-8")
    if not content:
        console.print("[red]Error:[/] Provide the memory text with --content or --content-file.")
        raise typer.Exit(1)

    cfg = load_cfg()
    key = resolve_collection(collection, Path("."))
    embedder = build_embedder(cfg)
    conn = open_db(resolve_db(db, cfg))
    try:
        store = build_store(conn, cfg)
        check_model(store, cfg)
        with cli_errors():
            record = asyncio.run(
                MemoryService(embedder, store).add(
                    key,
                    memory_type,
                    title,
                    content,
                    is_global=is_global,
                    source_item_id=source_item,
                    created_by=author,
                    relevance_score=relevance,
                )
            )
    finally:
        conn.close()

    console.print(f"[green]✓[/] Stored {record.memory_type} memory [bold]{record.id}[/]")


@memory_app.command("search")
def memory_search_cmd(
    query: Annotated[str, typer.Argument(help="Natural-language search query.")],
    memory_type: Annotated[
        list[str] | None,
        typer.Option("--type", help="Only this memory type (repeatable)."),
    ] = None,
    no_global: Annotated[
        bool,
        typer.Option("--no-global", help="Exclude global memories."),
    ] = False,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Max results.")] = 10,
    threshold: Annotated[
        float,
        typer.Option("--threshold", "-t", help="Minimum cosine similarity (0-1)."),
    ] = 0.5,
    collection: Annotated[
        str | None,
        typer.Option("--collection", "-c", help="Collection key (default: .memindex.json)."),
    ] = None,
    db: Annotated[Path | None, typer.Option("--db", help="Path to .memindex.db.")] = None,
) -> None:
    """Find the memories most similar to QUERY."""
    cfg = load_cfg()
    key = resolve_collection(collection, Path("."))
    embedder = build_embedder(cfg)
    conn = open_db(resolve_db(db, cfg), must_exist=True)
    try:
        store = build_store(conn, cfg)
        check_model(store, cfg)
        with cli_errors():
            results = asyncio.run(
                MemoryService(embedder, store).search(
                    key,
                    query,
                    memory_types=memory_type or None,
                    include_global=not no_global,
                    limit=limit,
                    threshold=threshold,
                )
            )
    finally:
        conn.close()

    if not results:
        console.print("No memories found.")
        return
    for r in results:
        scope = " [dim](global)[/]" if r.extra.get("is_global") else ""
        console.print(
            f"[bold][{r.extra.get('memory_type')}] {r.extra.get('title')}[/]"
            f"  {r.similarity:.0%} match{scope}  [dim]{r.ref_id}[/]"
        )
        preview = r.text if len(r.text) <= 300 else r.text[:300] + "..."
        console.print(f"  {preview}\n", markup=False, highlight=False)


@memory_app.command("list")
def memory_list_cmd(
    include_inactive: Annotated[
        bool,
        typer.Option("--all", help="Include removed (inactive) memories."),
    ] = False,
    collection: Annotated[
        str | None,
        typer.Option("--collection", "-c", help="Collection key (default: .memindex.json)."),
    ] = None,
    db: Annotated[Path | None, typer.Option("--db", help="Path to .memindex.db.")] = None,
) -> None:
    """List the memories of a collection, newest first."""
    cfg = load_cfg()
    key = resolve_collection(collection, Path("."))
    conn = open_db(resolve_db(db, cfg), must_exist=True)
    try:
        store = build_store(conn, cfg)
        with cli_errors():
            records = asyncio.run(store.list_memories(key, include_inactive))
    finally:
        conn.close()

    if not records:
        console.print(f"[yellow]No memories in collection '{key}'.[/]")
        return

    table = Table(title=f"Memories: {key}", show_header=True, header_style="bold")
    table.add_column("ID", style="dim")
    table.add_column("Type")
    table.add_column("Title", style="bold")
    table.add_column("Scope")
    table.add_column("Created")
    for m in records:
        scope = "global" if m.is_global else "project"
        if not m.is_active:
            scope += " [red](removed)[/]"
        table.add_row(m.id, m.memory_type, m.title, scope, (m.created_at or "")[:16])
    console.print(table)


@memory_app.command("remove")
def memory_remove_cmd(
    memory_id: Annotated[str, typer.Argument(help="Memory id (see memindex memory list).")],
    db: Annotated[Path | None, typer.Option("--db", help="Path to .memindex.db.")] = None,
) -> None:
    """Soft-delete a memory; it no longer appears in search or recall."""
    cfg = load_cfg()
    conn = open_db(resolve_db(db, cfg), must_exist=True)
    try:
        store = build_store(conn, cfg)
        with cli_errors():
            asyncio.run(store.deactivate_memory(memory_id))
    finally:
        conn.close()
    console.print(f"[green]✓[/] Removed memory {memory_id}")
