"""Context aggregator: everything relevant to one work item, in one bundle.

Pipeline:
  1. Resolve the work item (NotFound propagates before anything else runs).
  2. Build the query ``title + "\\n" + description`` (first 1000 chars) and
     embed it once.
  3. Run three branches concurrently with ``asyncio.gather``:
     code search, memory search (both reuse the single query vector) and
     related work-item ranking.
  4. Each branch is guarded: a failure becomes ``[]`` for that branch and an
     entry in ``RecallBundle.errors``. ``recall`` itself never fails because
     one source is down.

Related-item score:
  score = 2 * |keywords(subject) ∩ keywords(candidate)| + max(0, 1 - age_days / 30)
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, Sequence

from memindex.db.models import SearchResult
from memindex.db.store import IndexStore
from memindex.errors import NotFound
from memindex.ingest.embedding_client import EmbeddingClient
from memindex.memory import MemoryService
from memindex.rag.retriever import Retriever
from memindex.workitems import WorkItem, WorkItemSource

logger = logging.getLogger(__name__)

MAX_QUERY_CHARS = 1_000
RELATED_STATUSES: tuple[str, ...] = ("done", "review", "in_progress")
RECENCY_WINDOW_DAYS = 30.0
KEYWORD_WEIGHT = 2.0

_TOKEN_RE = re.compile(r"[a-z0-9]+")

# Branch names used as RecallBundle.errors keys
BRANCH_CODE = "code"
BRANCH_MEMORIES = "memories"
BRANCH_RELATED = "related"


@dataclass
class RecallConfig:
    code_limit: int = 5
    memory_limit: int = 5
    related_limit: int = 5
    code_threshold: float = 0.5
    memory_threshold: float = 0.5
    include_global: bool = True


@dataclass
class RelatedItem:
    id: str
    title: str
    status: str | None
    type: str | None
    created_at: datetime | None
    score: float
    keyword_overlap: int


@dataclass
class RecallBundle:
    """Structurally complete recall result; any list may be empty."""

    query_used: str
    code_snippets: list[SearchResult] = field(default_factory=list)
    memories: list[SearchResult] = field(default_factory=list)
    related_items: list[RelatedItem] = field(default_factory=list)
    # branch name → error message for branches that degraded to []
    errors: dict[str, str] = field(default_factory=dict)


# ------------------------------------------------------------------
# Related-item ranking
# ------------------------------------------------------------------


def build_query(item: WorkItem) -> str:
    return f"{item.title}\n{item.description or ''}"[:MAX_QUERY_CHARS]


def extract_keywords(text: str) -> set[str]:
    """Lower-case alphanumeric tokens longer than 3 characters."""
    return {t for t in _TOKEN_RE.findall(text.lower()) if len(t) > 3}


def recency_score(created_at: datetime | None, now: datetime) -> float:
    """Linear decay from 1.0 (now) to 0.0 at ``RECENCY_WINDOW_DAYS``."""
    if created_at is None:
        return 0.0
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    age_days = (now - created_at).total_seconds() / 86_400
    return max(0.0, 1.0 - age_days / RECENCY_WINDOW_DAYS)


def rank_related_items(
    subject: WorkItem,
    candidates: Iterable[WorkItem],
    now: datetime,
    limit: int,
) -> list[RelatedItem]:
    """Score *candidates* against *subject*, best first, at most *limit* items.

    Ties are broken by the more recent ``created_at``.
    """
    keywords = extract_keywords(f"{subject.title} {subject.description or ''}")
    ranked: list[RelatedItem] = []
    for item in candidates:
        if item.id == subject.id:
            continue
        overlap = len(keywords & extract_keywords(f"{item.title} {item.description or ''}"))
        ranked.append(
            RelatedItem(
                id=item.id,
                title=item.title,
                status=item.status,
                type=item.type,
                created_at=item.created_at,
                score=KEYWORD_WEIGHT * overlap + recency_score(item.created_at, now),
                keyword_overlap=overlap,
            )
        )

    def _key(r: RelatedItem) -> tuple[float, float]:
        ts = r.created_at.timestamp() if r.created_at else float("-inf")
        return (-r.score, -ts)

    ranked.sort(key=_key)
    return ranked[: max(0, limit)]


# ------------------------------------------------------------------
# Aggregator
# ------------------------------------------------------------------


class ContextAggregator:
    """Fan-out recall over code, memories and related work items.

    Args:
        embedder: Embedding client (called at most once per recall).
        store: Index store adapter holding code chunks and memories.
        work_items: Read-only work-item source.
        config: Per-branch limits and thresholds.
        now: Clock returning an aware UTC datetime (injectable for tests).
    """

    def __init__(
        self,
        embedder: EmbeddingClient,
        store: IndexStore,
        work_items: WorkItemSource,
        config: RecallConfig | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._embedder = embedder
        self._work_items = work_items
        self._config = config or RecallConfig()
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._retriever = Retriever(embedder, store)
        self._memories = MemoryService(embedder, store)

    async def recall(
        self,
        work_item_id: str,
        *,
        code_limit: int | None = None,
        memory_limit: int | None = None,
        related_limit: int | None = None,
    ) -> RecallBundle:
        """Gather context for *work_item_id*.

        Raises:
            NotFound: If the work item does not exist.
        """
        cfg = self._config
        code_limit = cfg.code_limit if code_limit is None else code_limit
        memory_limit = cfg.memory_limit if memory_limit is None else memory_limit
        related_limit = cfg.related_limit if related_limit is None else related_limit

        item = await self._work_items.get_work_item(work_item_id)
        if item is None:
            raise NotFound("work item", work_item_id)

        bundle = RecallBundle(query_used=build_query(item))
        collection_key = item.project_id

        vector: list[float] | None = None
        if bundle.query_used.strip() and (code_limit > 0 or memory_limit > 0):
            try:
                vector = await self._embedder.embed(bundle.query_used)
            except Exception as exc:
                logger.warning("Recall query embedding failed for %s: %s", work_item_id, exc)
                bundle.errors[BRANCH_CODE] = f"query embedding failed: {exc}"
                bundle.errors[BRANCH_MEMORIES] = f"query embedding failed: {exc}"

        async def _code() -> list[SearchResult]:
            if vector is None or code_limit <= 0:
                return []
            return await self._retriever.search_with_vector(
                collection_key, vector, limit=code_limit, threshold=cfg.code_threshold
            )

        async def _memories() -> list[SearchResult]:
            if vector is None or memory_limit <= 0:
                return []
            return await self._memories.search_with_vector(
                collection_key,
                vector,
                include_global=cfg.include_global,
                limit=memory_limit,
                threshold=cfg.memory_threshold,
            )

        async def _related() -> list[RelatedItem]:
            if related_limit <= 0:
                return []
            candidates = await self._work_items.list_recent_items(
                item.project_id,
                item.id,
                RELATED_STATUSES,
                max(related_limit * 4, 20),
            )
            return rank_related_items(item, candidates, self._now(), related_limit)

        code, memories, related = await asyncio.gather(
            self._guard(BRANCH_CODE, _code, bundle.errors),
            self._guard(BRANCH_MEMORIES, _memories, bundle.errors),
            self._guard(BRANCH_RELATED, _related, bundle.errors),
        )
        bundle.code_snippets = code
        bundle.memories = memories
        bundle.related_items = related
        return bundle

    @staticmethod
    async def _guard(
        name: str, branch: Callable[[], Awaitable[list]], errors: dict[str, str]
    ) -> list:
        try:
            return await branch()
        except Exception as exc:
            # A failing source degrades to [] for its branch only.
            logger.warning("Recall branch '%s' failed: %s", name, exc)
            errors[name] = str(exc) or type(exc).__name__
            return []


# ------------------------------------------------------------------
# Rendering
# ------------------------------------------------------------------


def render_markdown(bundle: RecallBundle) -> str:
    """Plain Markdown rendering of a bundle, suitable for pasting into a prompt."""
    parts: list[str] = []
    if bundle.code_snippets:
        lines = [f"## Code Snippets ({len(bundle.code_snippets)})"]
        lines += [f"- {c.location} ({c.similarity:.0%})" for c in bundle.code_snippets]
        parts.append("\n".join(lines))
    if bundle.memories:
        lines = [f"## Memories ({len(bundle.memories)})"]
        lines += [
            f"- [{m.extra.get('memory_type', '?')}] {m.extra.get('title', m.ref_id)}"
            for m in bundle.memories
        ]
        parts.append("\n".join(lines))
    if bundle.related_items:
        lines = [f"## Related Work Items ({len(bundle.related_items)})"]
        lines += [
            f"- [{r.type or '?'}] {r.title} ({r.status or '?'})" for r in bundle.related_items
        ]
        parts.append("\n".join(lines))
    if not parts:
        return "No context found."
    return "Context for work item:\n\n" + "\n\n".join(parts)


def summarize_errors(errors: dict[str, str], branches: Sequence[str] = ()) -> list[str]:
    """``"branch: message"`` lines, in *branches* order first, then the rest."""
    ordered = [b for b in branches if b in errors] + [b for b in errors if b not in branches]
    return [f"{b}: {errors[b]}" for b in ordered]
