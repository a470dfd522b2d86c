"""Domain models for the memindex storage layer."""

from __future__ import annotations

from dataclasses import dataclass, field

# IndexStatus.status values
STATUS_IDLE = "idle"
STATUS_INDEXING = "indexing"
STATUS_COMPLETE = "complete"
STATUS_ERROR = "error"
INDEX_STATES: tuple[str, ...] = (STATUS_IDLE, STATUS_INDEXING, STATUS_COMPLETE, STATUS_ERROR)

MEMORY_TYPES: tuple[str, ...] = (
    "decision",
    "pattern",
    "convention",
    "lesson",
    "architecture",
    "warning",
    "preference",
)

# SearchResult.kind values
KIND_CODE = "code"
KIND_MEMORY = "memory"


@dataclass
class ChunkSpan:
    """One chunker output unit, before it is stamped with collection and hash."""

    text: str
    start_line: int
    end_line: int
    language: str | None = None


@dataclass
class SourceUnit:
    """One embedded chunk of a file or memory.

    All units sharing ``item_path`` within a collection share ``content_hash``.
    """

    collection_key: str
    item_path: str
    chunk_index: int
    text: str
    start_line: int
    end_line: int
    content_hash: str
    language: str | None = None
    embedding: list[float] | None = None
    created_at: str | None = None


@dataclass
class IndexStatus:
    collection_key: str
    status: str = STATUS_IDLE  # idle | indexing | complete | error
    files_indexed: int = 0
    chunks_created: int = 0
    last_indexed_at: str | None = None
    error_message: str | None = None
    updated_at: str | None = None


@dataclass
class MemoryRecord:
    """A free-text note embedded from ``title + content``."""

    id: str
    collection_key: str
    memory_type: str
    title: str
    content: str
    is_global: bool = False
    source_item_id: str | None = None
    created_by: str | None = None
    relevance_score: float = 1.0
    is_active: bool = True
    embedding: list[float] | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def embed_text(self) -> str:
        return f"{self.title}\n\n{self.content}"


@dataclass
class SearchResult:
    """Read-only projection returned by searches; never persisted."""

    ref_id: str
    text: str
    location: str
    similarity: float
    kind: str  # code | memory
    item_path: str | None = None
    chunk_index: int | None = None
    start_line: int | None = None
    end_line: int | None = None
    language: str | None = None
    extra: dict = field(default_factory=dict)
