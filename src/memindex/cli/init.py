"""memindex init: scaffold a repository for indexing.

Creates:
  .memindex.json           collection key used by index/update/search
  memindex.yaml            project config template (skipped if present)
  .memindex.db             empty index with schema
  ~/.memindex/config.yaml  global model config (created once, mode 0o600)

An existing .gitignore gets the database entries appended.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer

from memindex.cli.common import PROJECT_FILE, console, open_db
from memindex.config import DEFAULT_DB, ensure_global_config

_GITIGNORE_ENTRIES = (".memindex.db", ".memindex.db-wal", ".memindex.db-shm")


def init_cmd(
    root: Annotated[
        Path,
        typer.Argument(help="Repository root. Defaults to current directory."),
    ] = Path("."),
    collection: Annotated[
        str | None,
        typer.Option("--collection", "-c", help="Collection key (prompted if omitted)."),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", help="Overwrite an existing .memindex.json."),
    ] = False,
) -> None:
    """Write .memindex.json, a memindex.yaml template and an empty index."""
    root = root.resolve()
    if not root.is_dir():
        console.print(f"[red]Error:[/] Not a directory: '{root}'")
        raise typer.Exit(1)

    project_file = root / PROJECT_FILE
    if project_file.exists() and not force:
        console.print(f"[yellow]⚠[/]  {project_file} already exists. Use --force to overwrite.")
        raise typer.Exit(1)

    key = collection or typer.prompt("Collection key", default=root.name).strip()
    if not key:
        console.print("[red]Error:[/] Collection key must not be empty.")
        raise typer.Exit(1)

    console.print(f"\n[bold]Initializing memindex in {root} …[/]\n")

    project_file.write_text(json.dumps({"collection": key}, indent=2) + "\n", encoding="utf-8")
    console.print(f"  [green]✓[/] {PROJECT_FILE} (collection: {key})")

    _create_memindex_yaml(root)

    open_db(root / DEFAULT_DB).close()
    console.print(f"  [green]✓[/] {DEFAULT_DB}")

    _update_gitignore(root)

    cfg_path = ensure_global_config()
    console.print(f"  [green]✓[/] {cfg_path} (global config)")

    console.print(f"\n[bold green]✓ Collection '{key}' ready.[/]")
    console.print("\nNext steps:")
    console.print("  1. export OPENAI_API_KEY=sk-...   (or the key for your provider)")
    console.print("  2. memindex index --root .        (embed the repository)")
    console.print('  3. memindex search "…"            (find code by meaning)')


def _create_memindex_yaml(root: Path) -> None:
    target = root / "memindex.yaml"
    if target.exists():
        console.print("  [dim]- memindex.yaml (kept existing)[/]")
        return
    content = (
        "# memindex project configuration\n"
        "# embedding:\n"
        "#   model: openai/text-embedding-3-small\n"
        "#   dimensions: 1536\n"
        "\n"
        "indexing:\n"
        "  patterns:\n"
        '    - "**/*.ts"\n'
        '    - "**/*.tsx"\n'
        '    - "**/*.js"\n'
        '    - "**/*.jsx"\n'
        '    - "**/*.py"\n'
        '    - "**/*.md"\n'
        "  exclude: []\n"
        "\n"
        "retrieval:\n"
        "  limit: 10\n"
        "  threshold: 0.5\n"
        "\n"
        "# workitems:\n"
        "#   path: workitems.yaml\n"
    )
    target.write_text(content, encoding="utf-8")
    console.print("  [green]✓[/] memindex.yaml")


def _update_gitignore(root: Path) -> None:
    """Add the index database to .gitignore if it already exists."""
    gitignore = root / ".gitignore"
    if not gitignore.exists():
        return
    existing = gitignore.read_text(encoding="utf-8").splitlines()
    to_add = [e for e in _GITIGNORE_ENTRIES if e not in existing]
    if to_add:
        with gitignore.open("a", encoding="utf-8") as f:
            f.write("\n# memindex\n")
            for entry in to_add:
                f.write(f"{entry}\n")
        console.print("  [green]✓[/] .gitignore (updated with memindex entries)")
