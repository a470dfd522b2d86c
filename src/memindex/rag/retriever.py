"""Semantic code search over one collection.

search(query) = embed(query) → store.query(limit * 2, store-native filters)
→ extension filter → truncate to limit.

The store ranks the whole collection before its own language/path filters
are applied; the factor-2 over-fetch absorbs attrition from the filters the
store does not support natively (file extension).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from memindex.db.models import SearchResult
from memindex.db.store import IndexStore
from memindex.ingest.embedding_client import EmbeddingClient
from memindex.ingest.files import path_extension

logger = logging.getLogger(__name__)

MAX_LIMIT = 50
DEFAULT_LIMIT = 10
DEFAULT_THRESHOLD = 0.5
OVERFETCH_FACTOR = 2


@dataclass
class SearchFilters:
    """Optional narrowing of search results.

    Attributes:
        languages: Keep chunks whose detected language is in this set.
        extensions: Keep chunks whose file extension (no dot, any case) is in
            this set.
        path_prefixes: Keep chunks under one of these directories. ``\\`` and
            ``/`` are equivalent; matching is on whole path segments.
    """

    languages: list[str] = field(default_factory=list)
    extensions: list[str] = field(default_factory=list)
    path_prefixes: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.languages or self.extensions or self.path_prefixes)


def clamp_limit(limit: int | None) -> int:
    """Return *limit* clamped to ``[1, MAX_LIMIT]`` (None → default)."""
    if limit is None:
        return DEFAULT_LIMIT
    return max(1, min(MAX_LIMIT, int(limit)))


def check_threshold(threshold: float) -> float:
    if not 0.0 <= threshold <= 1.0:
        raise ValueError(f"threshold must be in [0, 1], got {threshold}")
    return float(threshold)


def _normalize_extensions(extensions: Sequence[str]) -> set[str]:
    return {e.lower().lstrip(".") for e in extensions if e.strip(".")}


class Retriever:
    """Embeds a query and runs a filtered similarity search.

    Args:
        embedder: Embedding client used for query text.
        store: Index store adapter holding the chunks.
    """

    def __init__(self, embedder: EmbeddingClient, store: IndexStore) -> None:
        self._embedder = embedder
        self._store = store

    async def search(
        self,
        collection_key: str,
        query: str,
        *,
        limit: int | None = DEFAULT_LIMIT,
        threshold: float = DEFAULT_THRESHOLD,
        filters: SearchFilters | None = None,
    ) -> list[SearchResult]:
        """Return up to *limit* chunks with ``similarity >= threshold``, best first.

        Raises:
            ValueError: Empty query or threshold outside ``[0, 1]``.
            EmbeddingProviderError: If the query cannot be embedded.
            StoreError: If the store query fails.
        """
        if not query or not query.strip():
            raise ValueError("query must not be empty")
        check_threshold(threshold)
        vector = await self._embedder.embed(query)
        return await self.search_with_vector(
            collection_key, vector, limit=limit, threshold=threshold, filters=filters
        )

    async def search_with_vector(
        self,
        collection_key: str,
        vector: Sequence[float],
        *,
        limit: int | None = DEFAULT_LIMIT,
        threshold: float = DEFAULT_THRESHOLD,
        filters: SearchFilters | None = None,
    ) -> list[SearchResult]:
        """Same as :meth:`search` with a precomputed query vector."""
        limit = clamp_limit(limit)
        threshold = check_threshold(threshold)
        filters = filters or SearchFilters()

        raw = await self._store.query(
            collection_key,
            vector,
            limit=limit * OVERFETCH_FACTOR,
            threshold=threshold,
            languages=filters.languages or None,
            path_prefixes=filters.path_prefixes or None,
        )

        extensions = _normalize_extensions(filters.extensions)
        results = [
            r
            for r in raw
            if not extensions or path_extension(r.item_path or "") in extensions
        ]
        logger.debug(
            "Search in %s: %d raw, %d after filters, limit %d",
            collection_key,
            len(raw),
            len(results),
            limit,
        )
        return results[:limit]
