"""Shared plumbing for memindex CLI commands: config, DB, embedder, errors."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import typer
from rich.console import Console

from memindex.cli.errors import (
    err_config,
    err_embedding_model_mismatch,
    err_index_root,
    err_no_api_key,
    err_no_collection,
    err_no_db,
    err_not_found,
    err_provider,
    err_store,
)
from memindex.config import ConfigError, MemindexConfig, load_config
from memindex.db.connection import Database
from memindex.db.migrations import initialize
from memindex.db.repository import Repository
from memindex.db.store import IndexStore
from memindex.errors import (
    EmbeddingModelMismatch,
    EmbeddingProviderError,
    IndexRootError,
    NotFound,
    StoreError,
)
from memindex.ingest.embedding_client import EmbeddingClient, EmbeddingConfig, validate_api_key

console = Console()

PROJECT_FILE = ".memindex.json"


def load_cfg(project_dir: Path | None = None) -> MemindexConfig:
    """load_config() or print the problem and exit 1."""
    try:
        return load_config(project_dir)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)


def resolve_collection(explicit: str | None, root: Path) -> str:
    """Return *explicit*, else ``collection`` from ``root/.memindex.json``; exit 1 if neither."""
    if explicit:
        return explicit
    project_file = root / PROJECT_FILE
    if project_file.is_file():
        try:
            data = json.loads(project_file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            console.print(f"[yellow]Warning:[/] Could not read {project_file}: {exc}")
        else:
            key = data.get("collection") if isinstance(data, dict) else None
            if key:
                return str(key)
    console.print(err_no_collection(str(root)))
    raise typer.Exit(1)


def resolve_db(db: Path | None, cfg: MemindexConfig, root: Path | None = None) -> Path:
    """Return *db*, else the configured path; a relative one is taken under *root*."""
    if db is not None:
        return db
    path = Path(cfg.database.path)
    if root is not None and not path.is_absolute():
        return root / path
    return path


def open_db(db_path: Path, must_exist: bool = False) -> sqlite3.Connection:
    """Open (or create) the index database and run migrations."""
    if must_exist and not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)
    conn = Database(db_path).connect()
    initialize(conn)
    return conn


def build_store(conn: sqlite3.Connection, cfg: MemindexConfig) -> IndexStore:
    return IndexStore(Repository(conn), embedding_model=cfg.embedding.model)


def build_embedder(cfg: MemindexConfig) -> EmbeddingClient:
    """Embedding client from config; exits 1 if the provider's API key is missing."""
    try:
        validate_api_key(cfg.embedding.model)
    except EnvironmentError:
        provider = cfg.embedding.model.split("/")[0] if "/" in cfg.embedding.model else "openai"
        console.print(err_no_api_key(provider))
        raise typer.Exit(1)
    return EmbeddingClient(
        EmbeddingConfig(
            model=cfg.embedding.model,
            dimensions=cfg.embedding.dimensions,
            max_batch_size=cfg.embedding.max_batch_size,
            max_input_chars=cfg.embedding.max_input_chars,
        )
    )


def check_model(store: IndexStore, cfg: MemindexConfig) -> None:
    """Exit 1 if the index was built with a different embedding model."""
    model, _dims = store.embedding_info()
    if model is not None and model != cfg.embedding.model:
        console.print(err_embedding_model_mismatch(model, cfg.embedding.model))
        raise typer.Exit(1)


@contextmanager
def cli_errors() -> Iterator[None]:
    """Turn memindex boundary errors into rich messages and exit code 1."""
    try:
        yield
    except EmbeddingModelMismatch as exc:
        console.print(err_embedding_model_mismatch(exc.stored, exc.incoming))
        raise typer.Exit(1)
    except EmbeddingProviderError as exc:
        console.print(err_provider(exc.message))
        raise typer.Exit(1)
    except StoreError as exc:
        console.print(err_store(str(exc)))
        raise typer.Exit(1)
    except NotFound as exc:
        console.print(err_not_found(exc.kind, exc.key))
        raise typer.Exit(1)
    except IndexRootError as exc:
        console.print(err_index_root(exc.root))
        raise typer.Exit(1)
    except ValueError as exc:
        console.print(f"[red]Error:[/] {exc}")
        raise typer.Exit(1)
