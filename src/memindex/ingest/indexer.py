"""Indexer: full and incremental indexing runs for one collection.

Per file: read → fingerprint → (skip if unchanged) → chunk → delete old
chunks → embed → upsert. Files are processed in batches of
``batch_size``; the files of one batch run concurrently and each batch is
awaited before the next starts. A failing file never aborts the run. A run
stops early only on a run-level error: unreachable root, an embedding model
mismatch, or ``abort_after_consecutive_failures`` provider errors in a row.

Status lifecycle per collection: ``indexing`` at start, then ``complete`` or
``error``. Counters written to the status row describe this run only.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Sequence

from memindex.config import DEFAULT_PATTERNS
from memindex.db.models import STATUS_COMPLETE, STATUS_ERROR, SourceUnit
from memindex.db.store import IndexStore
from memindex.errors import (
    EmbeddingModelMismatch,
    EmbeddingProviderError,
    FingerprintUnchanged,
    IndexRootError,
    StoreError,
    UnsupportedContent,
)
from memindex.ingest.chunking import chunk_file
from memindex.ingest.embedding_client import EmbeddingClient
from memindex.ingest.files import list_files, normalize_path, read_file
from memindex.ingest.fingerprint import fingerprint

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

# Per-file outcome kinds
_PROCESSED = "processed"
_UNCHANGED = "unchanged"
_UNSUPPORTED = "unsupported"
_FAILED = "failed"


@dataclass
class IndexRunResult:
    """Summary of one indexing run."""

    collection_key: str
    files_processed: int = 0
    files_skipped_unchanged: int = 0
    files_unsupported: int = 0
    files_failed: int = 0
    files_deleted: int = 0
    chunks_created: int = 0
    duration_ms: int = 0
    status: str = STATUS_COMPLETE  # complete | error
    error: str | None = None
    # item path → error message, for files that failed
    errors: dict[str, str] = field(default_factory=dict)


@dataclass
class _FileOutcome:
    path: str
    kind: str
    chunks: int = 0
    error: str | None = None
    provider_error: bool = False


class Indexer:
    """Orchestrates indexing runs against one embedding client and store.

    Args:
        embedder: Client used to embed chunk texts.
        store: Index store adapter that receives chunks and status.
        min_chunk_chars: Chunker lower size bound.
        max_chunk_chars: Chunker upper size bound.
        batch_size: Files processed concurrently per batch.
        abort_after_consecutive_failures: Consecutive provider failures that
            turn into a run-level error.
    """

    def __init__(
        self,
        embedder: EmbeddingClient,
        store: IndexStore,
        *,
        min_chunk_chars: int = 200,
        max_chunk_chars: int = 4_000,
        batch_size: int = 20,
        abort_after_consecutive_failures: int = 3,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._embedder = embedder
        self._store = store
        self._min_chars = min_chunk_chars
        self._max_chars = max_chunk_chars
        self._batch_size = batch_size
        self._abort_after = max(1, abort_after_consecutive_failures)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def index_project(
        self,
        collection_key: str,
        root: Path | str,
        patterns: Sequence[str] | None = None,
        excludes: Sequence[str] | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> IndexRunResult:
        """Full run: index every matching file under *root*.

        Items stored for this collection that no longer match on disk are
        purged and counted in ``files_deleted``.

        Raises:
            IndexRootError: If *root* is not an existing directory (the
                status row is set to ``error`` first).
        """
        root = Path(root)
        include = list(patterns) if patterns else list(DEFAULT_PATTERNS)
        started = time.monotonic()
        await self._store.mark_indexing(collection_key)
        await self._require_root(collection_key, root)

        try:
            files = list_files(root, include, list(excludes or ()))
        except OSError as exc:
            await self._store.mark_error(collection_key, f"File enumeration failed: {exc}")
            raise

        present = set(files)
        stale = [p for p in await self._store.list_item_paths(collection_key) if p not in present]
        logger.info(
            "Full index of %s: %d candidate file(s), %d stale item(s)",
            collection_key,
            len(files),
            len(stale),
        )
        return await self._run(collection_key, root, files, stale, started, on_progress)

    async def update_index(
        self,
        collection_key: str,
        root: Path | str,
        changed: Sequence[str] = (),
        deleted: Sequence[str] = (),
        on_progress: ProgressCallback | None = None,
    ) -> IndexRunResult:
        """Incremental run over caller-supplied changed and deleted paths.

        Deleted paths are removed unconditionally and are not checked against
        the file system. Paths may be absolute (under *root*) or relative.

        Raises:
            IndexRootError: If *root* is not an existing directory.
        """
        root = Path(root)
        started = time.monotonic()
        await self._store.mark_indexing(collection_key)
        await self._require_root(collection_key, root)

        files = _dedupe(_relative_path(root, p) for p in changed)
        removed = _dedupe(_relative_path(root, p) for p in deleted)
        logger.info(
            "Incremental index of %s: %d changed, %d deleted",
            collection_key,
            len(files),
            len(removed),
        )
        return await self._run(collection_key, root, files, removed, started, on_progress)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def _require_root(self, collection_key: str, root: Path) -> None:
        if not root.is_dir():
            error = IndexRootError(str(root))
            await self._store.mark_error(collection_key, str(error))
            raise error

    async def _run(
        self,
        collection_key: str,
        root: Path,
        files: list[str],
        deleted: list[str],
        started: float,
        on_progress: ProgressCallback | None,
    ) -> IndexRunResult:
        result = IndexRunResult(collection_key=collection_key)

        for path in deleted:
            try:
                if await self._store.delete_item(collection_key, path):
                    result.files_deleted += 1
            except StoreError as exc:
                logger.warning("Could not delete %s: %s", path, exc)
                result.errors[path] = str(exc)

        total = len(files)
        done = 0
        consecutive_provider_failures = 0
        last_provider_error = ""
        abort_message: str | None = None

        for start in range(0, total, self._batch_size):
            batch = files[start : start + self._batch_size]
            outcomes = await asyncio.gather(
                *(self._index_file(collection_key, root, path) for path in batch),
                return_exceptions=True,
            )

            for path, outcome in zip(batch, outcomes):
                if isinstance(outcome, EmbeddingModelMismatch):
                    abort_message = str(outcome)
                    result.files_failed += 1
                    result.errors[path] = abort_message
                    continue
                if isinstance(outcome, BaseException):
                    # Unexpected failure: record the status, then propagate.
                    await self._finish(result, started, f"Unexpected error on {path}: {outcome}")
                    raise outcome

                if outcome.kind == _PROCESSED:
                    result.files_processed += 1
                    result.chunks_created += outcome.chunks
                    consecutive_provider_failures = 0
                elif outcome.kind == _UNCHANGED:
                    result.files_skipped_unchanged += 1
                elif outcome.kind == _UNSUPPORTED:
                    result.files_unsupported += 1
                else:
                    result.files_failed += 1
                    result.errors[path] = outcome.error or "unknown error"
                    if outcome.provider_error:
                        consecutive_provider_failures += 1
                        last_provider_error = outcome.error or ""

            done += len(batch)
            if on_progress is not None:
                on_progress(done, total)

            if abort_message is None and consecutive_provider_failures >= self._abort_after:
                abort_message = (
                    f"Embedding provider failed for {consecutive_provider_failures} "
                    f"consecutive files: {last_provider_error}"
                )
            if abort_message is not None:
                logger.error("Aborting index run for %s: %s", collection_key, abort_message)
                break

        await self._finish(result, started, abort_message)
        return result

    async def _finish(
        self, result: IndexRunResult, started: float, error: str | None
    ) -> None:
        result.duration_ms = int((time.monotonic() - started) * 1000)
        if error is None:
            result.status = STATUS_COMPLETE
            await self._store.mark_complete(
                result.collection_key, result.files_processed, result.chunks_created
            )
        else:
            result.status = STATUS_ERROR
            result.error = error
            await self._store.mark_error(
                result.collection_key,
                error,
                files_indexed=result.files_processed,
                chunks_created=result.chunks_created,
            )
        logger.info(
            "Index run for %s %s: %d processed, %d unchanged, %d unsupported, "
            "%d failed, %d deleted, %d chunks in %d ms",
            result.collection_key,
            result.status,
            result.files_processed,
            result.files_skipped_unchanged,
            result.files_unsupported,
            result.files_failed,
            result.files_deleted,
            result.chunks_created,
            result.duration_ms,
        )

    # ------------------------------------------------------------------
    # Per file
    # ------------------------------------------------------------------

    async def _index_file(self, collection_key: str, root: Path, path: str) -> _FileOutcome:
        """Index one file. Per-file errors become a ``failed`` outcome."""
        try:
            return await self._index_file_unguarded(collection_key, root, path)
        except FingerprintUnchanged:
            return _FileOutcome(path, _UNCHANGED)
        except UnsupportedContent as exc:
            logger.debug("Skipping %s", exc)
            return _FileOutcome(path, _UNSUPPORTED)
        except EmbeddingModelMismatch:
            raise
        except EmbeddingProviderError as exc:
            logger.warning("Embedding failed for %s: %s", path, exc.message)
            return _FileOutcome(path, _FAILED, error=exc.message, provider_error=True)
        except (StoreError, OSError, ValueError) as exc:
            logger.warning("Indexing failed for %s: %s", path, exc)
            return _FileOutcome(path, _FAILED, error=str(exc))

    async def _index_file_unguarded(
        self, collection_key: str, root: Path, path: str
    ) -> _FileOutcome:
        text = read_file(root, path)
        if text is None:
            raise UnsupportedContent(path, "binary or non-UTF-8 content")

        digest = fingerprint(text)
        if await self._store.get_item_hash(collection_key, path) == digest:
            raise FingerprintUnchanged(path)

        spans = chunk_file(path, text, self._min_chars, self._max_chars)
        if spans is None:
            raise UnsupportedContent(path)

        # Invalidate every chunk of the old version before writing the new one.
        await self._store.delete_item(collection_key, path)
        if not spans:
            raise UnsupportedContent(path, "no content to index")

        vectors = await self._embedder.embed_batch([s.text for s in spans])
        units = [
            SourceUnit(
                collection_key=collection_key,
                item_path=path,
                chunk_index=i,
                text=span.text,
                start_line=span.start_line,
                end_line=span.end_line,
                content_hash=digest,
                language=span.language,
                embedding=vector,
            )
            for i, (span, vector) in enumerate(zip(spans, vectors))
        ]
        await self._store.upsert_chunks(units)
        logger.debug("Indexed %s: %d chunk(s)", path, len(units))
        return _FileOutcome(path, _PROCESSED, chunks=len(units))


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _relative_path(root: Path, path: str) -> str:
    """Normalise *path* to a POSIX path relative to *root*."""
    candidate = Path(path)
    if candidate.is_absolute():
        try:
            candidate = candidate.resolve().relative_to(root.resolve())
        except ValueError:
            return normalize_path(path)
        return candidate.as_posix()
    return normalize_path(path)


def _dedupe(paths) -> list[str]:
    seen: dict[str, None] = {}
    for p in paths:
        if p:
            seen.setdefault(p, None)
    return list(seen)
