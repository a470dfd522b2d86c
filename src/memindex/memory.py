"""Memory records: free-text project knowledge searchable by meaning.

A memory is embedded from ``title + content`` before it is written. An edit
to title or content re-embeds first, so a stored record never carries an
embedding of older text. Removal is a soft delete (``is_active = 0``).
"""

from __future__ import annotations

import logging
import uuid
from typing import Sequence

from memindex.db.models import MEMORY_TYPES, MemoryRecord, SearchResult
from memindex.db.store import IndexStore
from memindex.errors import NotFound
from memindex.ingest.embedding_client import EmbeddingClient
from memindex.rag.retriever import DEFAULT_LIMIT, DEFAULT_THRESHOLD, check_threshold, clamp_limit

logger = logging.getLogger(__name__)


def validate_memory_type(memory_type: str) -> str:
    if memory_type not in MEMORY_TYPES:
        raise ValueError(
            f"Invalid memory type '{memory_type}'. Allowed: {', '.join(MEMORY_TYPES)}"
        )
    return memory_type


def _require_text(name: str, value: str) -> str:
    if not value or not value.strip():
        raise ValueError(f"{name} must not be empty")
    return value.strip()


class MemoryService:
    """Create, edit, retire and search memories for a collection.

    Args:
        embedder: Client used to embed ``title + content`` and queries.
        store: Index store adapter persisting the records.
    """

    def __init__(self, embedder: EmbeddingClient, store: IndexStore) -> None:
        self._embedder = embedder
        self._store = store

    async def add(
        self,
        collection_key: str,
        memory_type: str,
        title: str,
        content: str,
        *,
        is_global: bool = False,
        source_item_id: str | None = None,
        created_by: str | None = None,
        relevance_score: float = 1.0,
    ) -> MemoryRecord:
        """Embed and persist a new memory. Nothing is written if embedding fails.

        Raises:
            ValueError: Unknown memory type or empty title/content.
            EmbeddingProviderError: If the embedding call fails.
        """
        record = MemoryRecord(
            id=str(uuid.uuid4()),
            collection_key=collection_key,
            memory_type=validate_memory_type(memory_type),
            title=_require_text("title", title),
            content=_require_text("content", content),
            is_global=is_global,
            source_item_id=source_item_id,
            created_by=created_by,
            relevance_score=relevance_score,
        )
        record.embedding = await self._embedder.embed(record.embed_text)
        stored = await self._store.add_memory(record)
        logger.info("Added %s memory %s to %s", memory_type, stored.id, collection_key)
        return stored

    async def update(
        self,
        memory_id: str,
        *,
        title: str | None = None,
        content: str | None = None,
        memory_type: str | None = None,
        is_global: bool | None = None,
        relevance_score: float | None = None,
    ) -> MemoryRecord:
        """Apply the given changes; re-embed before writing if text changed.

        Raises:
            NotFound: No memory with *memory_id*.
        """
        record = await self._store.get_memory(memory_id)
        if record is None:
            raise NotFound("memory", memory_id)

        text_changed = False
        if title is not None and title.strip() != record.title:
            record.title = _require_text("title", title)
            text_changed = True
        if content is not None and content.strip() != record.content:
            record.content = _require_text("content", content)
            text_changed = True
        if memory_type is not None:
            record.memory_type = validate_memory_type(memory_type)
        if is_global is not None:
            record.is_global = is_global
        if relevance_score is not None:
            record.relevance_score = relevance_score

        if text_changed:
            record.embedding = await self._embedder.embed(record.embed_text)
        return await self._store.update_memory(record)

    async def deactivate(self, memory_id: str) -> None:
        """Soft-delete a memory. Raises NotFound if it does not exist."""
        await self._store.deactivate_memory(memory_id)
        logger.info("Deactivated memory %s", memory_id)

    async def get(self, memory_id: str) -> MemoryRecord:
        record = await self._store.get_memory(memory_id)
        if record is None:
            raise NotFound("memory", memory_id)
        return record

    async def list(
        self, collection_key: str, include_inactive: bool = False
    ) -> list[MemoryRecord]:
        return await self._store.list_memories(collection_key, include_inactive)

    async def search(
        self,
        collection_key: str,
        query: str,
        *,
        memory_types: Sequence[str] | None = None,
        include_global: bool = True,
        limit: int | None = DEFAULT_LIMIT,
        threshold: float = DEFAULT_THRESHOLD,
    ) -> list[SearchResult]:
        """Embed *query* and return matching active memories, best first."""
        if not query or not query.strip():
            raise ValueError("query must not be empty")
        check_threshold(threshold)
        vector = await self._embedder.embed(query)
        return await self.search_with_vector(
            collection_key,
            vector,
            memory_types=memory_types,
            include_global=include_global,
            limit=limit,
            threshold=threshold,
        )

    async def search_with_vector(
        self,
        collection_key: str,
        vector: Sequence[float],
        *,
        memory_types: Sequence[str] | None = None,
        include_global: bool = True,
        limit: int | None = DEFAULT_LIMIT,
        threshold: float = DEFAULT_THRESHOLD,
    ) -> list[SearchResult]:
        for t in memory_types or ():
            validate_memory_type(t)
        return await self._store.query_memories(
            collection_key,
            vector,
            limit=clamp_limit(limit),
            threshold=check_threshold(threshold),
            include_global=include_global,
            memory_types=list(memory_types) if memory_types else None,
        )
