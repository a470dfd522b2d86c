"""memindex configuration loader.

Priority (high → low):
  1. CLI flags           (handled at the call site, not here)
  2. Environment variables  (MEMINDEX_EMBEDDING_MODEL, MEMINDEX_DB)
  3. Per-project memindex.yaml  (repository root)
  4. Global ~/.memindex/config.yaml  (model defaults only, no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".memindex"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "memindex.yaml"

DEFAULT_DB: str = ".memindex.db"

# Matches api_key, apikey, api-key, api_secret, *_token, token, *_secret,
# secret, password, passwd, credential(s). Leaves max_batch_size etc. alone.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["embedding", "indexing", "chunking", "retrieval", "recall", "workitems", "database"]
)

DEFAULT_PATTERNS: tuple[str, ...] = (
    "**/*.ts",
    "**/*.tsx",
    "**/*.js",
    "**/*.jsx",
    "**/*.py",
    "**/*.md",
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Embedding provider configuration (memindex.yaml: embedding:)."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int | None = 1536
    max_batch_size: int = 100
    max_input_chars: int = 8_191 * 4


@dataclass
class IndexingCfg:
    """Indexer configuration (memindex.yaml: indexing:)."""

    patterns: list[str] = field(default_factory=lambda: list(DEFAULT_PATTERNS))
    exclude: list[str] = field(default_factory=list)
    batch_size: int = 20
    abort_after_consecutive_failures: int = 3


@dataclass
class ChunkingCfg:
    """Chunk size bounds in characters (memindex.yaml: chunking:)."""

    min_chunk_chars: int = 200
    max_chunk_chars: int = 4_000


@dataclass
class RetrievalCfg:
    """Search defaults (memindex.yaml: retrieval:)."""

    limit: int = 10
    threshold: float = 0.5


@dataclass
class RecallCfg:
    """Context aggregation defaults (memindex.yaml: recall:)."""

    code_limit: int = 5
    memory_limit: int = 5
    related_limit: int = 5
    include_global: bool = True


@dataclass
class WorkItemsCfg:
    """Location of the work-item export read by ``memindex recall``."""

    path: str = "workitems.yaml"


@dataclass
class DatabaseCfg:
    path: str = DEFAULT_DB


@dataclass
class MemindexConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    indexing: IndexingCfg = field(default_factory=IndexingCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    recall: RecallCfg = field(default_factory=RecallCfg)
    workitems: WorkItemsCfg = field(default_factory=WorkItemsCfg)
    database: DatabaseCfg = field(default_factory=DatabaseCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}'; ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: MemindexConfig) -> None:
    """Raise ConfigError for out-of-range values."""
    if cfg.embedding.max_batch_size < 1:
        raise ConfigError("embedding.max_batch_size must be >= 1")
    if cfg.embedding.dimensions is not None and cfg.embedding.dimensions < 1:
        raise ConfigError("embedding.dimensions must be >= 1")
    if cfg.indexing.batch_size < 1:
        raise ConfigError("indexing.batch_size must be >= 1")
    if cfg.indexing.abort_after_consecutive_failures < 1:
        raise ConfigError("indexing.abort_after_consecutive_failures must be >= 1")
    if not 0 < cfg.chunking.min_chunk_chars < cfg.chunking.max_chunk_chars:
        raise ConfigError(
            "chunking.min_chunk_chars must be > 0 and smaller than chunking.max_chunk_chars"
        )
    if not 0.0 <= cfg.retrieval.threshold <= 1.0:
        raise ConfigError(
            f"retrieval.threshold must be in [0, 1], got {cfg.retrieval.threshold}"
        )
    if cfg.retrieval.limit < 1:
        raise ConfigError("retrieval.limit must be >= 1")


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _str_list(raw: Any, default: list[str]) -> list[str]:
    if raw is None:
        return list(default)
    if isinstance(raw, str):
        return [raw]
    return [str(x) for x in raw]


def _cfg_from_dict(data: dict[str, Any]) -> MemindexConfig:
    """Build a *MemindexConfig* from a merged raw YAML dict."""
    cfg = MemindexConfig()

    if "embedding" in data:
        e = data["embedding"] or {}
        dims = e.get("dimensions", cfg.embedding.dimensions)
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=int(dims) if dims is not None else None,
            max_batch_size=int(e.get("max_batch_size", cfg.embedding.max_batch_size)),
            max_input_chars=int(e.get("max_input_chars", cfg.embedding.max_input_chars)),
        )

    if "indexing" in data:
        i = data["indexing"] or {}
        cfg.indexing = IndexingCfg(
            patterns=_str_list(i.get("patterns"), cfg.indexing.patterns),
            exclude=_str_list(i.get("exclude"), cfg.indexing.exclude),
            batch_size=int(i.get("batch_size", cfg.indexing.batch_size)),
            abort_after_consecutive_failures=int(
                i.get(
                    "abort_after_consecutive_failures",
                    cfg.indexing.abort_after_consecutive_failures,
                )
            ),
        )

    if "chunking" in data:
        c = data["chunking"] or {}
        cfg.chunking = ChunkingCfg(
            min_chunk_chars=int(c.get("min_chunk_chars", cfg.chunking.min_chunk_chars)),
            max_chunk_chars=int(c.get("max_chunk_chars", cfg.chunking.max_chunk_chars)),
        )

    if "retrieval" in data:
        r = data["retrieval"] or {}
        cfg.retrieval = RetrievalCfg(
            limit=int(r.get("limit", cfg.retrieval.limit)),
            threshold=float(r.get("threshold", cfg.retrieval.threshold)),
        )

    if "recall" in data:
        rc = data["recall"] or {}
        cfg.recall = RecallCfg(
            code_limit=int(rc.get("code_limit", cfg.recall.code_limit)),
            memory_limit=int(rc.get("memory_limit", cfg.recall.memory_limit)),
            related_limit=int(rc.get("related_limit", cfg.recall.related_limit)),
            include_global=bool(rc.get("include_global", cfg.recall.include_global)),
        )

    if "workitems" in data:
        w = data["workitems"] or {}
        cfg.workitems = WorkItemsCfg(path=str(w.get("path", cfg.workitems.path)))

    if "database" in data:
        d = data["database"] or {}
        cfg.database = DatabaseCfg(path=str(d.get("path", cfg.database.path)))

    return cfg


def _apply_env_overrides(cfg: MemindexConfig) -> MemindexConfig:
    """Apply MEMINDEX_* environment variable overrides."""
    if model := os.environ.get("MEMINDEX_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if db := os.environ.get("MEMINDEX_DB"):
        cfg.database.path = db
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> MemindexConfig:
    """Load and return a merged *MemindexConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *memindex.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields, or a value
            is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    try:
        cfg = _cfg_from_dict(merged)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    cfg = _apply_env_overrides(cfg)
    _validate(cfg)
    return cfg


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Create ``~/.memindex/config.yaml`` with defaults if it does not exist.

    Creates parent directory with mode 0o700 and the config file with
    mode 0o600 (owner-readable only).
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# memindex global configuration: model defaults only.\n"
            "# NEVER store API keys here. Use environment variables:\n"
            "#   export OPENAI_API_KEY=sk-...\n"
            "\n"
            "embedding:\n"
            "  model: openai/text-embedding-3-small\n"
            "  dimensions: 1536\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target
