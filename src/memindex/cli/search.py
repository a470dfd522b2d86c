"""memindex search: semantic code search over one collection."""

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
from memindex.db.models import SearchResult
from memindex.rag.retriever import MAX_LIMIT, Retriever, SearchFilters

# Characters of chunk text shown per result with --show-text.
_PREVIEW_CHARS = 400


def search_cmd(
    query: Annotated[str, typer.Argument(help="Natural-language search query.")],
    collection: Annotated[
        str | None,
        typer.Option("--collection", "-c", help="Collection key (default: .memindex.json)."),
    ] = None,
    limit: Annotated[
        int | None,
        typer.Option("--limit", "-n", help=f"Max results (capped at {MAX_LIMIT})."),
    ] = None,
    threshold: Annotated[
        float | None,
        typer.Option("--threshold", "-t", help="Minimum cosine similarity (0-1)."),
    ] = None,
    language: Annotated[
        list[str] | None,
        typer.Option("--language", "-l", help="Only this language (repeatable)."),
    ] = None,
    ext: Annotated[
        list[str] | None,
        typer.Option("--ext", help="Only this file extension, e.g. ts (repeatable)."),
    ] = None,
    directory: Annotated[
        list[str] | None,
        typer.Option("--dir", help="Only files under this directory (repeatable)."),
    ] = None,
    show_text: Annotated[
        bool,
        typer.Option("--show-text", help="Print the matching chunk text."),
    ] = False,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to .memindex.db."),
    ] = None,
) -> None:
    """Find the code chunks most similar to QUERY."""
    cfg = load_cfg()
    key = resolve_collection(collection, Path("."))
    embedder = build_embedder(cfg)
    conn = open_db(resolve_db(db, cfg), must_exist=True)
    try:
        store = build_store(conn, cfg)
        check_model(store, cfg)
        filters = SearchFilters(
            languages=language or [],
            extensions=ext or [],
            path_prefixes=directory or [],
        )
        with cli_errors():
            results = asyncio.run(
                Retriever(embedder, store).search(
                    key,
                    query,
                    limit=limit if limit is not None else cfg.retrieval.limit,
                    threshold=threshold if threshold is not None else cfg.retrieval.threshold,
                    filters=filters,
                )
            )
    finally:
        conn.close()

    _print_results(results, show_text)


def _print_results(results: list[SearchResult], show_text: bool) -> None:
    if not results:
        console.print("[yellow]No matches above the similarity threshold.[/]")
        return

    table = Table(title=f"{len(results)} match(es)", show_header=True, header_style="bold")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Location", style="bold")
    table.add_column("Similarity", justify="right")
    table.add_column("Language", style="dim")
    for i, r in enumerate(results, start=1):
        table.add_row(str(i), r.location, f"{r.similarity:.0%}", r.language or "")
    console.print(table)

    if show_text:
        for r in results:
            console.print(f"\n[bold]{r.location}[/]")
            text = r.text if len(r.text) <= _PREVIEW_CHARS else r.text[:_PREVIEW_CHARS] + "…"
            console.print(text, markup=False, highlight=False)
