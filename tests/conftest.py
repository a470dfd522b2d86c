"""Shared pytest fixtures."""

from __future__ import annotations

import hashlib
import logging
from unittest.mock import AsyncMock, patch

import pytest

from memindex.db.connection import Database
from memindex.db.migrations import initialize
from memindex.db.repository import Repository
from memindex.db.store import IndexStore
from memindex.ingest.embedding_client import EmbeddingClient, EmbeddingConfig

FAKE_DIMS = 8
FAKE_MODEL = "openai/text-embedding-3-small"


def _fake_vector(text: str) -> list[float]:
    """Deterministic, non-zero 8-dim vector derived from *text*."""
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return [0.1 + b / 255.0 for b in digest[:FAKE_DIMS]]


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".memindex.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)


@pytest.fixture
def store(repo):
    return IndexStore(repo, embedding_model=FAKE_MODEL)


@pytest.fixture
def fake_aembedding():
    """Patch litellm.aembedding with a deterministic fake provider.

    Every input text maps to a fixed 8-dim vector; the mock records calls.
    """

    async def _fake(model, input, **kwargs):
        return {
            "data": [
                {"object": "embedding", "index": i, "embedding": _fake_vector(t)}
                for i, t in enumerate(input)
            ]
        }

    with patch(
        "memindex.ingest.embedding_client.litellm.aembedding",
        new=AsyncMock(side_effect=_fake),
    ) as mock:
        yield mock


@pytest.fixture
def embedder(fake_aembedding):
    """EmbeddingClient wired to the fake provider (8 dims)."""
    return EmbeddingClient(EmbeddingConfig(model=FAKE_MODEL, dimensions=FAKE_DIMS))


@pytest.fixture
def cli_repo(tmp_path, monkeypatch, fake_aembedding):
    """Repository dir for CLI tests, used as CWD.

    Holds ``.memindex.json`` (collection ``proj``) and a ``memindex.yaml``
    matching the fake provider's dimensions. The global config is redirected
    into tmp_path. Rich output is 200 columns wide so table cells do not wrap.
    """
    repo_dir = tmp_path / "repo"
    repo_dir.mkdir()
    (repo_dir / ".memindex.json").write_text('{"collection": "proj"}', encoding="utf-8")
    (repo_dir / "memindex.yaml").write_text(
        f"embedding:\n  model: {FAKE_MODEL}\n  dimensions: {FAKE_DIMS}\n", encoding="utf-8"
    )
    monkeypatch.chdir(repo_dir)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("COLUMNS", "200")
    monkeypatch.delenv("MEMINDEX_EMBEDDING_MODEL", raising=False)
    monkeypatch.delenv("MEMINDEX_DB", raising=False)
    monkeypatch.setattr(
        "memindex.config._GLOBAL_CONFIG_PATH", tmp_path / "home" / ".memindex" / "config.yaml"
    )
    return repo_dir


@pytest.fixture(autouse=True)
def _reset_cli_logging():
    """Drop the CLI log handler, which binds to CliRunner's temporary stderr."""
    yield
    cli_logger = logging.getLogger("memindex")
    for handler in [h for h in cli_logger.handlers if h.get_name() == "memindex-cli"]:
        cli_logger.removeHandler(handler)
    cli_logger.setLevel(logging.NOTSET)
