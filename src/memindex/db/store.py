"""Index Store Adapter: the async persistence boundary used by the core.

Wraps the synchronous :class:`~memindex.db.repository.Repository`. Every
``sqlite3.Error`` is re-raised as :class:`~memindex.errors.StoreError` naming
the operation. The SQLite statements run inline on the event loop thread;
methods are coroutines so that the indexer, retriever and aggregator are
written against a store that may suspend.

The first write that carries vectors records the embedding model and its
dimensionality in ``index_meta``; later writes with a different model or
vector length raise :class:`~memindex.errors.EmbeddingModelMismatch`.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Sequence

from memindex.db.models import (
    KIND_CODE,
    KIND_MEMORY,
    STATUS_COMPLETE,
    STATUS_ERROR,
    STATUS_INDEXING,
    IndexStatus,
    MemoryRecord,
    SearchResult,
    SourceUnit,
)
from memindex.db.repository import Repository
from memindex.errors import EmbeddingModelMismatch, NotFound, StoreError
from memindex.ingest.files import path_has_prefix

logger = logging.getLogger(__name__)

_META_MODEL = "embedding_model"
_META_DIMS = "embedding_dimensions"

# Similarity scores are reported with this many decimals.
_SIMILARITY_DIGITS = 4


@contextmanager
def _wrap(operation: str) -> Iterator[None]:
    try:
        yield
    except sqlite3.Error as exc:
        raise StoreError(operation, str(exc)) from exc


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def chunk_location(unit: SourceUnit) -> str:
    """``path:start-end`` display location for a code chunk."""
    return f"{unit.item_path}:{unit.start_line}-{unit.end_line}"


def chunk_to_result(unit: SourceUnit, similarity: float) -> SearchResult:
    return SearchResult(
        ref_id=f"{unit.item_path}#{unit.chunk_index}",
        text=unit.text,
        location=chunk_location(unit),
        similarity=round(similarity, _SIMILARITY_DIGITS),
        kind=KIND_CODE,
        item_path=unit.item_path,
        chunk_index=unit.chunk_index,
        start_line=unit.start_line,
        end_line=unit.end_line,
        language=unit.language,
    )


def memory_to_result(memory: MemoryRecord, similarity: float) -> SearchResult:
    return SearchResult(
        ref_id=memory.id,
        text=memory.content,
        location=memory.id,
        similarity=round(similarity, _SIMILARITY_DIGITS),
        kind=KIND_MEMORY,
        extra={
            "title": memory.title,
            "memory_type": memory.memory_type,
            "is_global": memory.is_global,
            "relevance_score": memory.relevance_score,
            "source_item_id": memory.source_item_id,
            "collection_key": memory.collection_key,
            "created_at": memory.created_at,
        },
    )


class IndexStore:
    """Async adapter over the SQLite repository.

    Args:
        repo: Repository bound to an initialised connection.
        embedding_model: Provider/model string written to ``index_meta`` on
            first vector write. ``None`` disables the model-name check (the
            dimensionality check still applies).
    """

    def __init__(self, repo: Repository, embedding_model: str | None = None) -> None:
        self._repo = repo
        self._embedding_model = embedding_model

    @property
    def repo(self) -> Repository:
        return self._repo

    # ------------------------------------------------------------------
    # Model guard
    # ------------------------------------------------------------------

    def _check_vectors(self, vectors: Sequence[Sequence[float] | None]) -> None:
        dims = {len(v) for v in vectors if v}
        if not dims:
            return
        if len(dims) > 1:
            raise StoreError("write", f"mixed vector lengths in one write: {sorted(dims)}")
        incoming_dims = dims.pop()

        with _wrap("read metadata"):
            stored_model = self._repo.get_meta(_META_MODEL)
            stored_dims = self._repo.get_meta(_META_DIMS)

        if stored_dims is not None and int(stored_dims) != incoming_dims:
            raise EmbeddingModelMismatch(
                f"{stored_model or 'unknown model'} ({stored_dims} dims)",
                f"{self._embedding_model or 'unknown model'} ({incoming_dims} dims)",
            )
        if (
            stored_model is not None
            and self._embedding_model is not None
            and stored_model != self._embedding_model
        ):
            raise EmbeddingModelMismatch(stored_model, self._embedding_model)

        with _wrap("write metadata"):
            if stored_dims is None:
                self._repo.set_meta(_META_DIMS, str(incoming_dims))
            if stored_model is None and self._embedding_model is not None:
                self._repo.set_meta(_META_MODEL, self._embedding_model)

    def embedding_info(self) -> tuple[str | None, int | None]:
        """Return the ``(model, dimensions)`` the index was built with, if known."""
        with _wrap("read metadata"):
            model = self._repo.get_meta(_META_MODEL)
            dims = self._repo.get_meta(_META_DIMS)
        return model, int(dims) if dims is not None else None

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    async def upsert_chunks(self, units: Sequence[SourceUnit]) -> int:
        """Bulk write; a duplicate ``(collection, item, chunk)`` key overwrites in place."""
        if not units:
            return 0
        if any(not u.embedding for u in units):
            raise StoreError("upsert", "every chunk needs an embedding")
        self._check_vectors([u.embedding for u in units])
        with _wrap("upsert"):
            return self._repo.upsert_chunks(units)

    async def delete_item(self, collection_key: str, item_path: str) -> int:
        """Remove every chunk of one item. Idempotent."""
        with _wrap("delete"):
            return self._repo.delete_item(collection_key, item_path)

    async def delete_collection(self, collection_key: str) -> int:
        with _wrap("delete collection"):
            return self._repo.delete_collection(collection_key)

    async def get_item_hash(self, collection_key: str, item_path: str) -> str | None:
        with _wrap("read hash"):
            return self._repo.get_item_hash(collection_key, item_path)

    async def list_item_paths(self, collection_key: str) -> list[str]:
        with _wrap("list items"):
            return self._repo.list_item_paths(collection_key)

    async def list_chunks(self, collection_key: str, item_path: str) -> list[SourceUnit]:
        with _wrap("list chunks"):
            return self._repo.list_chunks(collection_key, item_path)

    async def count_chunks(self, collection_key: str | None = None) -> int:
        with _wrap("count chunks"):
            return self._repo.count_chunks(collection_key)

    async def query(
        self,
        collection_key: str,
        vector: Sequence[float],
        *,
        limit: int,
        threshold: float,
        languages: Sequence[str] | None = None,
        path_prefixes: Sequence[str] | None = None,
    ) -> list[SearchResult]:
        """Return up to *limit* chunks with ``similarity >= threshold``, best first.

        Ranking covers every chunk in the collection; the language and
        path-prefix filters are applied to the ranked stream afterwards, so
        they only ever remove non-matching rows.
        """
        if limit < 1:
            return []
        langs = {lang.lower() for lang in languages} if languages else None
        prefixes = list(path_prefixes) if path_prefixes else None

        results: list[SearchResult] = []
        with _wrap("query"):
            for unit, similarity in self._repo.iter_ranked_chunks(
                collection_key, vector, threshold
            ):
                if langs is not None and (unit.language or "").lower() not in langs:
                    continue
                if prefixes is not None and not any(
                    path_has_prefix(unit.item_path, p) for p in prefixes
                ):
                    continue
                results.append(chunk_to_result(unit, similarity))
                if len(results) >= limit:
                    break
        return results

    # ------------------------------------------------------------------
    # Index status
    # ------------------------------------------------------------------

    async def get_status(self, collection_key: str) -> IndexStatus | None:
        with _wrap("read status"):
            return self._repo.get_status(collection_key)

    async def list_statuses(self) -> list[IndexStatus]:
        with _wrap("list status"):
            return self._repo.list_statuses()

    async def mark_indexing(self, collection_key: str) -> None:
        """Enter the ``indexing`` state, keeping the previous run's timestamp."""
        with _wrap("write status"):
            previous = self._repo.get_status(collection_key)
            self._repo.upsert_status(
                IndexStatus(
                    collection_key=collection_key,
                    status=STATUS_INDEXING,
                    last_indexed_at=previous.last_indexed_at if previous else None,
                )
            )

    async def mark_complete(
        self, collection_key: str, files_indexed: int, chunks_created: int
    ) -> None:
        with _wrap("write status"):
            self._repo.upsert_status(
                IndexStatus(
                    collection_key=collection_key,
                    status=STATUS_COMPLETE,
                    files_indexed=files_indexed,
                    chunks_created=chunks_created,
                    last_indexed_at=_now(),
                )
            )

    async def mark_error(
        self,
        collection_key: str,
        message: str,
        files_indexed: int = 0,
        chunks_created: int = 0,
    ) -> None:
        with _wrap("write status"):
            previous = self._repo.get_status(collection_key)
            self._repo.upsert_status(
                IndexStatus(
                    collection_key=collection_key,
                    status=STATUS_ERROR,
                    files_indexed=files_indexed,
                    chunks_created=chunks_created,
                    last_indexed_at=previous.last_indexed_at if previous else None,
                    error_message=message,
                )
            )

    # ------------------------------------------------------------------
    # Memories
    # ------------------------------------------------------------------

    async def add_memory(self, memory: MemoryRecord) -> MemoryRecord:
        self._check_vectors([memory.embedding])
        with _wrap("add memory"):
            self._repo.add_memory(memory)
            stored = self._repo.get_memory(memory.id)
        if stored is None:
            raise StoreError("add memory", "row missing after insert")
        return stored

    async def update_memory(self, memory: MemoryRecord) -> MemoryRecord:
        self._check_vectors([memory.embedding])
        with _wrap("update memory"):
            if self._repo.get_memory(memory.id) is None:
                raise NotFound("memory", memory.id)
            self._repo.update_memory(memory)
            stored = self._repo.get_memory(memory.id)
        if stored is None:
            raise StoreError("update memory", "row missing after update")
        return stored

    async def get_memory(self, memory_id: str) -> MemoryRecord | None:
        with _wrap("read memory"):
            return self._repo.get_memory(memory_id)

    async def list_memories(
        self, collection_key: str, include_inactive: bool = False
    ) -> list[MemoryRecord]:
        with _wrap("list memories"):
            return self._repo.list_memories(collection_key, include_inactive)

    async def deactivate_memory(self, memory_id: str) -> None:
        with _wrap("deactivate memory"):
            if self._repo.set_memory_active(memory_id, False) == 0:
                raise NotFound("memory", memory_id)

    async def count_memories(self, collection_key: str | None = None) -> int:
        with _wrap("count memories"):
            return self._repo.count_memories(collection_key)

    async def query_memories(
        self,
        collection_key: str,
        vector: Sequence[float],
        *,
        limit: int,
        threshold: float,
        include_global: bool = True,
        memory_types: Sequence[str] | None = None,
    ) -> list[SearchResult]:
        """Active memories of *collection_key* (plus global ones) ranked by similarity."""
        if limit < 1:
            return []
        results: list[SearchResult] = []
        with _wrap("query memories"):
            for memory, similarity in self._repo.iter_ranked_memories(
                collection_key,
                vector,
                threshold,
                include_global=include_global,
                memory_types=memory_types,
            ):
                results.append(memory_to_result(memory, similarity))
                if len(results) >= limit:
                    break
        return results
