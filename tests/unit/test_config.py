"""Tests for the memindex config loader."""

from __future__ import annotations

import stat
import warnings
from pathlib import Path

import pytest
import yaml

from memindex.config import (
    DEFAULT_PATTERNS,
    ConfigError,
    MemindexConfig,
    ensure_global_config,
    load_config,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_yaml(path: Path, data: dict) -> None:
    path.write_text(yaml.dump(data), encoding="utf-8")


def _load(tmp_path: Path) -> MemindexConfig:
    return load_config(project_dir=tmp_path, global_config_path=tmp_path / "global.yaml")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MEMINDEX_EMBEDDING_MODEL", raising=False)
    monkeypatch.delenv("MEMINDEX_DB", raising=False)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


def test_load_config_defaults_no_files(tmp_path: Path) -> None:
    cfg = _load(tmp_path)

    assert cfg.embedding.model == "openai/text-embedding-3-small"
    assert cfg.embedding.dimensions == 1536
    assert cfg.indexing.patterns == list(DEFAULT_PATTERNS)
    assert cfg.indexing.batch_size == 20
    assert cfg.indexing.abort_after_consecutive_failures == 3
    assert cfg.chunking.min_chunk_chars == 200
    assert cfg.chunking.max_chunk_chars == 4_000
    assert cfg.retrieval.limit == 10
    assert cfg.retrieval.threshold == 0.5
    assert cfg.recall.include_global is True
    assert cfg.workitems.path == "workitems.yaml"
    assert cfg.database.path == ".memindex.db"


# ---------------------------------------------------------------------------
# Layering
# ---------------------------------------------------------------------------


def test_global_overrides_defaults(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "global.yaml", {"embedding": {"model": "cohere/embed-english-v3.0", "dimensions": 1024}})
    cfg = _load(tmp_path)
    assert cfg.embedding.model == "cohere/embed-english-v3.0"
    assert cfg.embedding.dimensions == 1024


def test_empty_global_file(tmp_path: Path) -> None:
    (tmp_path / "global.yaml").write_text("", encoding="utf-8")
    assert _load(tmp_path).embedding.model == "openai/text-embedding-3-small"


def test_project_overrides_global_and_keeps_siblings(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "global.yaml", {"embedding": {"model": "cohere/embed-english-v3.0", "dimensions": 1024}})
    _write_yaml(tmp_path / "memindex.yaml", {"embedding": {"model": "openai/text-embedding-3-large"}})
    cfg = _load(tmp_path)
    assert cfg.embedding.model == "openai/text-embedding-3-large"
    assert cfg.embedding.dimensions == 1024


def test_project_sections(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "memindex.yaml", {
        "indexing": {"patterns": "**/*.py", "exclude": ["migrations/**"], "batch_size": 5},
        "chunking": {"min_chunk_chars": 100, "max_chunk_chars": 2000},
        "retrieval": {"limit": 20, "threshold": 0.7},
        "recall": {"code_limit": 3, "include_global": False},
        "workitems": {"path": "exports/items.yaml"},
        "database": {"path": "idx.db"},
    })
    cfg = _load(tmp_path)
    assert cfg.indexing.patterns == ["**/*.py"]
    assert cfg.indexing.exclude == ["migrations/**"]
    assert cfg.indexing.batch_size == 5
    assert (cfg.chunking.min_chunk_chars, cfg.chunking.max_chunk_chars) == (100, 2000)
    assert cfg.retrieval.threshold == 0.7
    assert cfg.recall.code_limit == 3
    assert cfg.recall.memory_limit == 5
    assert cfg.recall.include_global is False
    assert cfg.workitems.path == "exports/items.yaml"
    assert cfg.database.path == "idx.db"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("bad_key", ["api_key", "openai_api_key", "token", "auth_token", "password"])
def test_global_config_rejects_api_key_fields(tmp_path: Path, bad_key: str) -> None:
    _write_yaml(tmp_path / "global.yaml", {"embedding": {bad_key: "sk-123"}})
    with pytest.raises(ConfigError, match="forbidden key"):
        _load(tmp_path)


def test_max_batch_size_is_not_a_secret(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "global.yaml", {"embedding": {"max_batch_size": 50}})
    assert _load(tmp_path).embedding.max_batch_size == 50


@pytest.mark.parametrize("data,match", [
    ({"retrieval": {"threshold": 1.5}}, "threshold"),
    ({"retrieval": {"limit": 0}}, "limit"),
    ({"chunking": {"min_chunk_chars": 500, "max_chunk_chars": 400}}, "min_chunk_chars"),
    ({"indexing": {"batch_size": 0}}, "batch_size"),
    ({"embedding": {"dimensions": "many"}}, "Invalid config value"),
])
def test_invalid_values_raise(tmp_path: Path, data: dict, match: str) -> None:
    _write_yaml(tmp_path / "memindex.yaml", data)
    with pytest.raises(ConfigError, match=match):
        _load(tmp_path)


def test_config_error_is_value_error() -> None:
    assert issubclass(ConfigError, ValueError)


def test_unknown_top_level_key_warns(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "memindex.yaml", {"retreival": {"limit": 3}})
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        _load(tmp_path)
    assert any("retreival" in str(w.message) for w in caught)


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------


def test_env_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write_yaml(tmp_path / "memindex.yaml", {"embedding": {"model": "cohere/embed-english-v3.0"}})
    monkeypatch.setenv("MEMINDEX_EMBEDDING_MODEL", "openai/text-embedding-3-large")
    monkeypatch.setenv("MEMINDEX_DB", "/tmp/other.db")
    cfg = _load(tmp_path)
    assert cfg.embedding.model == "openai/text-embedding-3-large"
    assert cfg.database.path == "/tmp/other.db"


# ---------------------------------------------------------------------------
# ensure_global_config
# ---------------------------------------------------------------------------


def test_ensure_global_config_creates_file(tmp_path: Path) -> None:
    target = tmp_path / "home" / ".memindex" / "config.yaml"
    path = ensure_global_config(target)
    assert path == target
    assert stat.S_IMODE(target.stat().st_mode) == 0o600
    data = yaml.safe_load(target.read_text(encoding="utf-8"))
    assert data["embedding"]["model"] == "openai/text-embedding-3-small"


def test_ensure_global_config_keeps_existing(tmp_path: Path) -> None:
    target = tmp_path / "config.yaml"
    target.write_text("embedding:\n  model: custom/model\n", encoding="utf-8")
    ensure_global_config(target)
    assert "custom/model" in target.read_text(encoding="utf-8")
