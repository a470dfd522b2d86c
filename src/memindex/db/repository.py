"""Repository pattern for all memindex database operations.

Single interface for: chunk rows, index status, memories, index metadata.
Rows are mapped to the typed models in ``memindex.db.models`` by one
``_row_to_*`` function per entity; callers never see ``sqlite3.Row``.
"""

from __future__ import annotations

import sqlite3
from typing import Iterator, Sequence

from memindex.db.models import IndexStatus, MemoryRecord, SourceUnit
from memindex.db.vectors import Vector, clamp_similarity

_CHUNK_COLUMNS = (
    "collection_key, item_path, chunk_index, text, start_line, end_line, "
    "language, content_hash, embedding, created_at"
)

_MEMORY_COLUMNS = (
    "id, collection_key, memory_type, title, content, is_global, source_item_id, "
    "created_by, relevance_score, is_active, embedding, created_at, updated_at"
)


class Repository:
    """Data access layer for all memindex database entities.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see memindex.db.migrations.initialize).
        """
        self._conn = conn

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def upsert_chunks(self, units: Sequence[SourceUnit]) -> int:
        """Insert *units*; an existing (collection, item, chunk index) row is overwritten.

        All rows are written in one transaction. Returns the number of rows written.
        """
        rows = [
            (
                u.collection_key,
                u.item_path,
                u.chunk_index,
                u.text,
                u.start_line,
                u.end_line,
                u.language,
                u.content_hash,
                Vector.of(u.embedding or []).to_blob(),
            )
            for u in units
        ]
        with self._conn:
            self._conn.executemany(
                """
                INSERT INTO chunks (
                    collection_key, item_path, chunk_index, text, start_line,
                    end_line, language, content_hash, embedding
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(collection_key, item_path, chunk_index) DO UPDATE SET
                    text = excluded.text,
                    start_line = excluded.start_line,
                    end_line = excluded.end_line,
                    language = excluded.language,
                    content_hash = excluded.content_hash,
                    embedding = excluded.embedding,
                    created_at = datetime('now')
                """,
                rows,
            )
        return len(rows)

    def delete_item(self, collection_key: str, item_path: str) -> int:
        """Delete every chunk of one item. Returns the number of rows removed."""
        with self._conn:
            cur = self._conn.execute(
                "DELETE FROM chunks WHERE collection_key = ? AND item_path = ?",
                (collection_key, item_path),
            )
        return cur.rowcount

    def delete_collection(self, collection_key: str) -> int:
        """Delete every chunk in a collection. Returns the number of rows removed."""
        with self._conn:
            cur = self._conn.execute(
                "DELETE FROM chunks WHERE collection_key = ?", (collection_key,)
            )
        return cur.rowcount

    def get_item_hash(self, collection_key: str, item_path: str) -> str | None:
        """Return the content hash stored for an item, or None if it has no chunks."""
        row = self._conn.execute(
            "SELECT content_hash FROM chunks WHERE collection_key = ? AND item_path = ? LIMIT 1",
            (collection_key, item_path),
        ).fetchone()
        return row["content_hash"] if row else None

    def list_item_paths(self, collection_key: str) -> list[str]:
        """Return the distinct item paths stored in a collection, sorted."""
        rows = self._conn.execute(
            "SELECT DISTINCT item_path FROM chunks WHERE collection_key = ? ORDER BY item_path",
            (collection_key,),
        ).fetchall()
        return [r["item_path"] for r in rows]

    def list_chunks(self, collection_key: str, item_path: str) -> list[SourceUnit]:
        """Return one item's chunks in chunk-index order."""
        rows = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks "
            "WHERE collection_key = ? AND item_path = ? ORDER BY chunk_index",
            (collection_key, item_path),
        ).fetchall()
        return [_row_to_source_unit(r) for r in rows]

    def count_chunks(self, collection_key: str | None = None) -> int:
        if collection_key is None:
            return self._conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0]
        return self._conn.execute(
            "SELECT COUNT(*) FROM chunks WHERE collection_key = ?", (collection_key,)
        ).fetchone()[0]

    def iter_ranked_chunks(
        self, collection_key: str, embedding: Sequence[float], threshold: float
    ) -> Iterator[tuple[SourceUnit, float]]:
        """Yield ``(unit, similarity)`` best-first over the whole collection.

        Exact cosine scan via sqlite-vec's ``vec_distance_cosine``. Ties are
        broken by lower chunk index, then item path. The cursor is consumed
        lazily so callers can stop once they have enough post-filtered hits.
        """
        cur = self._conn.execute(
            f"""
            SELECT * FROM (
                SELECT {_CHUNK_COLUMNS},
                       1.0 - vec_distance_cosine(embedding, ?) AS similarity
                FROM chunks
                WHERE collection_key = ?
            )
            WHERE similarity >= ?
            ORDER BY similarity DESC, chunk_index ASC, item_path ASC
            """,
            (Vector.of(embedding).to_blob(), collection_key, threshold),
        )
        for row in cur:
            yield _row_to_source_unit(row), clamp_similarity(row["similarity"])

    # ------------------------------------------------------------------
    # Index status
    # ------------------------------------------------------------------

    def get_status(self, collection_key: str) -> IndexStatus | None:
        row = self._conn.execute(
            """
            SELECT collection_key, status, files_indexed, chunks_created,
                   last_indexed_at, error_message, updated_at
            FROM index_status WHERE collection_key = ?
            """,
            (collection_key,),
        ).fetchone()
        return _row_to_status(row) if row else None

    def list_statuses(self) -> list[IndexStatus]:
        rows = self._conn.execute(
            """
            SELECT collection_key, status, files_indexed, chunks_created,
                   last_indexed_at, error_message, updated_at
            FROM index_status ORDER BY collection_key
            """
        ).fetchall()
        return [_row_to_status(r) for r in rows]

    def upsert_status(self, status: IndexStatus) -> None:
        """Insert or replace the status row for ``status.collection_key``."""
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO index_status (
                    collection_key, status, files_indexed, chunks_created,
                    last_indexed_at, error_message
                )
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(collection_key) DO UPDATE SET
                    status = excluded.status,
                    files_indexed = excluded.files_indexed,
                    chunks_created = excluded.chunks_created,
                    last_indexed_at = excluded.last_indexed_at,
                    error_message = excluded.error_message,
                    updated_at = datetime('now')
                """,
                (
                    status.collection_key,
                    status.status,
                    status.files_indexed,
                    status.chunks_created,
                    status.last_indexed_at,
                    status.error_message,
                ),
            )

    # ------------------------------------------------------------------
    # Memories
    # ------------------------------------------------------------------

    def add_memory(self, memory: MemoryRecord) -> None:
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO memories (
                    id, collection_key, memory_type, title, content, is_global,
                    source_item_id, created_by, relevance_score, is_active, embedding
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    memory.id,
                    memory.collection_key,
                    memory.memory_type,
                    memory.title,
                    memory.content,
                    int(memory.is_global),
                    memory.source_item_id,
                    memory.created_by,
                    memory.relevance_score,
                    int(memory.is_active),
                    Vector.of(memory.embedding or []).to_blob(),
                ),
            )

    def update_memory(self, memory: MemoryRecord) -> None:
        """Overwrite every mutable column of an existing memory, embedding included."""
        with self._conn:
            self._conn.execute(
                """
                UPDATE memories SET
                    memory_type = ?, title = ?, content = ?, is_global = ?,
                    source_item_id = ?, relevance_score = ?, is_active = ?,
                    embedding = ?,
                    updated_at = strftime('%Y-%m-%d %H:%M:%f', 'now')
                WHERE id = ?
                """,
                (
                    memory.memory_type,
                    memory.title,
                    memory.content,
                    int(memory.is_global),
                    memory.source_item_id,
                    memory.relevance_score,
                    int(memory.is_active),
                    Vector.of(memory.embedding or []).to_blob(),
                    memory.id,
                ),
            )

    def get_memory(self, memory_id: str) -> MemoryRecord | None:
        row = self._conn.execute(
            f"SELECT {_MEMORY_COLUMNS} FROM memories WHERE id = ?", (memory_id,)
        ).fetchone()
        return _row_to_memory(row) if row else None

    def list_memories(
        self, collection_key: str, include_inactive: bool = False
    ) -> list[MemoryRecord]:
        sql = f"SELECT {_MEMORY_COLUMNS} FROM memories WHERE collection_key = ?"
        if not include_inactive:
            sql += " AND is_active = 1"
        sql += " ORDER BY created_at DESC, id"
        rows = self._conn.execute(sql, (collection_key,)).fetchall()
        return [_row_to_memory(r) for r in rows]

    def set_memory_active(self, memory_id: str, active: bool) -> int:
        with self._conn:
            cur = self._conn.execute(
                """
                UPDATE memories SET is_active = ?,
                    updated_at = strftime('%Y-%m-%d %H:%M:%f', 'now')
                WHERE id = ?
                """,
                (int(active), memory_id),
            )
        return cur.rowcount

    def iter_ranked_memories(
        self,
        collection_key: str,
        embedding: Sequence[float],
        threshold: float,
        include_global: bool = True,
        memory_types: Sequence[str] | None = None,
    ) -> Iterator[tuple[MemoryRecord, float]]:
        """Yield active ``(memory, similarity)`` pairs best-first."""
        params: list[object] = [
            Vector.of(embedding).to_blob(),
            collection_key,
            int(include_global),
        ]
        type_clause = ""
        if memory_types:
            type_clause = f" AND memory_type IN ({','.join('?' * len(memory_types))})"
            params.extend(memory_types)
        params.append(threshold)
        cur = self._conn.execute(
            f"""
            SELECT * FROM (
                SELECT {_MEMORY_COLUMNS},
                       1.0 - vec_distance_cosine(embedding, ?) AS similarity
                FROM memories
                WHERE is_active = 1
                  AND (collection_key = ? OR (? = 1 AND is_global = 1))
                  {type_clause}
            )
            WHERE similarity >= ?
            ORDER BY similarity DESC, created_at DESC, id ASC
            """,
            params,
        )
        for row in cur:
            yield _row_to_memory(row), clamp_similarity(row["similarity"])

    def count_memories(self, collection_key: str | None = None) -> int:
        if collection_key is None:
            return self._conn.execute(
                "SELECT COUNT(*) FROM memories WHERE is_active = 1"
            ).fetchone()[0]
        return self._conn.execute(
            "SELECT COUNT(*) FROM memories WHERE is_active = 1 AND collection_key = ?",
            (collection_key,),
        ).fetchone()[0]

    # ------------------------------------------------------------------
    # Index metadata
    # ------------------------------------------------------------------

    def get_meta(self, key: str) -> str | None:
        row = self._conn.execute(
            "SELECT value FROM index_meta WHERE key = ?", (key,)
        ).fetchone()
        return row["value"] if row else None

    def set_meta(self, key: str, value: str) -> None:
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO index_meta (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, value),
            )


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_source_unit(row: sqlite3.Row) -> SourceUnit:
    return SourceUnit(
        collection_key=row["collection_key"],
        item_path=row["item_path"],
        chunk_index=row["chunk_index"],
        text=row["text"],
        start_line=row["start_line"],
        end_line=row["end_line"],
        language=row["language"],
        content_hash=row["content_hash"],
        embedding=Vector.from_blob(row["embedding"]).to_list(),
        created_at=row["created_at"],
    )


def _row_to_status(row: sqlite3.Row) -> IndexStatus:
    return IndexStatus(
        collection_key=row["collection_key"],
        status=row["status"],
        files_indexed=row["files_indexed"],
        chunks_created=row["chunks_created"],
        last_indexed_at=row["last_indexed_at"],
        error_message=row["error_message"],
        updated_at=row["updated_at"],
    )


def _row_to_memory(row: sqlite3.Row) -> MemoryRecord:
    return MemoryRecord(
        id=row["id"],
        collection_key=row["collection_key"],
        memory_type=row["memory_type"],
        title=row["title"],
        content=row["content"],
        is_global=bool(row["is_global"]),
        source_item_id=row["source_item_id"],
        created_by=row["created_by"],
        relevance_score=row["relevance_score"],
        is_active=bool(row["is_active"]),
        embedding=Vector.from_blob(row["embedding"]).to_list(),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
