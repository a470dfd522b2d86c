"""memindex recall: code, memories and related work items for one work item."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
import yaml
from rich.panel import Panel
from rich.table import Table

from memindex.cli.common import (
    build_embedder,
    build_store,
    check_model,
    cli_errors,
    console,
    load_cfg,
    open_db,
    resolve_db,
)
from memindex.cli.errors import err_workitems_file
from memindex.rag.aggregator import (
    BRANCH_CODE,
    BRANCH_MEMORIES,
    BRANCH_RELATED,
    ContextAggregator,
    RecallBundle,
    RecallConfig,
    render_markdown,
    summarize_errors,
)
from memindex.workitems import YamlWorkItemSource


def recall_cmd(
    work_item_id: Annotated[str, typer.Argument(help="Work item id, e.g. WI_0042.")],
    workitems: Annotated[
        Path | None,
        typer.Option("--workitems", "-w", help="Work-item YAML file (default from config)."),
    ] = None,
    code_limit: Annotated[
        int | None, typer.Option("--code-limit", help="Max code snippets.")
    ] = None,
    memory_limit: Annotated[
        int | None, typer.Option("--memory-limit", help="Max memories.")
    ] = None,
    related_limit: Annotated[
        int | None, typer.Option("--related-limit", help="Max related work items.")
    ] = None,
    markdown: Annotated[
        bool,
        typer.Option("--markdown", help="Print plain Markdown (for pasting into a prompt)."),
    ] = False,
    db: Annotated[Path | None, typer.Option("--db", help="Path to .memindex.db.")] = None,
) -> None:
    """Gather context for WORK_ITEM_ID from every source; a failing source is skipped."""
    cfg = load_cfg()
    items_path = workitems if workitems is not None else Path(cfg.workitems.path)
    try:
        source = YamlWorkItemSource(items_path)
    except FileNotFoundError:
        console.print(err_workitems_file(str(items_path), "file not found"))
        raise typer.Exit(1)
    except (ValueError, yaml.YAMLError) as exc:
        console.print(err_workitems_file(str(items_path), str(exc)))
        raise typer.Exit(1)

    embedder = build_embedder(cfg)
    conn = open_db(resolve_db(db, cfg), must_exist=True)
    try:
        store = build_store(conn, cfg)
        check_model(store, cfg)
        aggregator = ContextAggregator(
            embedder,
            store,
            source,
            RecallConfig(
                code_limit=cfg.recall.code_limit,
                memory_limit=cfg.recall.memory_limit,
                related_limit=cfg.recall.related_limit,
                code_threshold=cfg.retrieval.threshold,
                memory_threshold=cfg.retrieval.threshold,
                include_global=cfg.recall.include_global,
            ),
        )
        with cli_errors():
            bundle = asyncio.run(
                aggregator.recall(
                    work_item_id,
                    code_limit=code_limit,
                    memory_limit=memory_limit,
                    related_limit=related_limit,
                )
            )
    finally:
        conn.close()

    if markdown:
        typer.echo(render_markdown(bundle))
    else:
        _print_bundle(bundle)


def _print_bundle(bundle: RecallBundle) -> None:
    console.print(Panel(bundle.query_used, title="[bold]Query[/]", expand=False))

    code = Table(title="Code Snippets", show_header=True, header_style="bold")
    code.add_column("Location", style="bold")
    code.add_column("Similarity", justify="right")
    for c in bundle.code_snippets:
        code.add_row(c.location, f"{c.similarity:.0%}")
    console.print(code if bundle.code_snippets else "[dim]No code snippets.[/]")

    mem = Table(title="Memories", show_header=True, header_style="bold")
    mem.add_column("Type")
    mem.add_column("Title", style="bold")
    mem.add_column("Similarity", justify="right")
    for m in bundle.memories:
        mem.add_row(
            str(m.extra.get("memory_type", "")),
            str(m.extra.get("title", m.ref_id)),
            f"{m.similarity:.0%}",
        )
    console.print(mem if bundle.memories else "[dim]No memories.[/]")

    rel = Table(title="Related Work Items", show_header=True, header_style="bold")
    rel.add_column("ID", style="dim")
    rel.add_column("Title", style="bold")
    rel.add_column("Status")
    rel.add_column("Score", justify="right")
    for r in bundle.related_items:
        rel.add_row(r.id, r.title, r.status or "", f"{r.score:.2f}")
    console.print(rel if bundle.related_items else "[dim]No related work items.[/]")

    for line in summarize_errors(bundle.errors, (BRANCH_CODE, BRANCH_MEMORIES, BRANCH_RELATED)):
        console.print(f"[yellow]⚠ Skipped[/] {line}")
