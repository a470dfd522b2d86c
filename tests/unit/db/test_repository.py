"""Tests for the Repository data access layer."""

from __future__ import annotations

import math

import pytest

from memindex.db.models import STATUS_COMPLETE, STATUS_ERROR, IndexStatus, MemoryRecord, SourceUnit


def _vec(s: float) -> list[float]:
    """2-dim unit vector whose cosine with [1, 0] is exactly *s*."""
    return [s, math.sqrt(1.0 - s * s)]


def _unit(path="src/a.ts", index=0, hash="h1", sim=0.9, key="proj", language="typescript"):
    return SourceUnit(
        collection_key=key,
        item_path=path,
        chunk_index=index,
        text=f"chunk {index} of {path}",
        start_line=index * 10 + 1,
        end_line=index * 10 + 10,
        content_hash=hash,
        language=language,
        embedding=_vec(sim),
    )


def _memory(id="m1", key="proj", sim=0.9, is_global=False, memory_type="lesson"):
    return MemoryRecord(
        id=id,
        collection_key=key,
        memory_type=memory_type,
        title=f"title {id}",
        content=f"content {id}",
        is_global=is_global,
        embedding=_vec(sim),
    )


# ------------------------------------------------------------------
# Chunks
# ------------------------------------------------------------------

def test_upsert_and_list_chunks(repo):
    assert repo.upsert_chunks([_unit(index=1), _unit(index=0)]) == 2
    chunks = repo.list_chunks("proj", "src/a.ts")
    assert [c.chunk_index for c in chunks] == [0, 1]
    assert chunks[0].start_line == 1
    assert chunks[0].language == "typescript"
    assert chunks[0].embedding == pytest.approx(_vec(0.9), rel=1e-6)
    assert chunks[0].created_at is not None


def test_upsert_overwrites_same_key(repo):
    repo.upsert_chunks([_unit(hash="h1")])
    repo.upsert_chunks([_unit(hash="h2")])
    chunks = repo.list_chunks("proj", "src/a.ts")
    assert len(chunks) == 1
    assert chunks[0].content_hash == "h2"


def test_get_item_hash(repo):
    assert repo.get_item_hash("proj", "src/a.ts") is None
    repo.upsert_chunks([_unit(hash="abc")])
    assert repo.get_item_hash("proj", "src/a.ts") == "abc"
    assert repo.get_item_hash("other", "src/a.ts") is None


def test_delete_item_counts_rows(repo):
    repo.upsert_chunks([_unit(index=0), _unit(index=1), _unit(path="src/b.ts")])
    assert repo.delete_item("proj", "src/a.ts") == 2
    assert repo.delete_item("proj", "src/a.ts") == 0
    assert repo.list_item_paths("proj") == ["src/b.ts"]


def test_delete_collection_leaves_other_collections(repo):
    repo.upsert_chunks([_unit(key="proj"), _unit(key="other")])
    assert repo.delete_collection("proj") == 1
    assert repo.count_chunks("proj") == 0
    assert repo.count_chunks("other") == 1


def test_count_chunks(repo):
    repo.upsert_chunks([_unit(index=0), _unit(index=1), _unit(key="other")])
    assert repo.count_chunks() == 3
    assert repo.count_chunks("proj") == 2


def test_list_item_paths_sorted_distinct(repo):
    repo.upsert_chunks([_unit(path="z.ts"), _unit(path="a.ts", index=0), _unit(path="a.ts", index=1)])
    assert repo.list_item_paths("proj") == ["a.ts", "z.ts"]


# ------------------------------------------------------------------
# Ranked chunk scan
# ------------------------------------------------------------------

def test_iter_ranked_chunks_orders_best_first(repo):
    repo.upsert_chunks([
        _unit(path="low.ts", sim=0.6),
        _unit(path="high.ts", sim=0.95),
        _unit(path="mid.ts", sim=0.8),
    ])
    ranked = list(repo.iter_ranked_chunks("proj", [1.0, 0.0], 0.0))
    assert [u.item_path for u, _ in ranked] == ["high.ts", "mid.ts", "low.ts"]
    assert ranked[0][1] == pytest.approx(0.95, abs=1e-5)


def test_iter_ranked_chunks_applies_threshold(repo):
    repo.upsert_chunks([_unit(path="a.ts", sim=0.9), _unit(path="b.ts", sim=0.3)])
    ranked = list(repo.iter_ranked_chunks("proj", [1.0, 0.0], 0.5))
    assert [u.item_path for u, _ in ranked] == ["a.ts"]


def test_iter_ranked_chunks_tie_breaks_by_chunk_index(repo):
    repo.upsert_chunks([
        _unit(path="b.ts", index=1, sim=0.7),
        _unit(path="b.ts", index=0, sim=0.7),
        _unit(path="a.ts", index=1, sim=0.7),
    ])
    ranked = list(repo.iter_ranked_chunks("proj", [1.0, 0.0], 0.0))
    assert [(u.item_path, u.chunk_index) for u, _ in ranked] == [
        ("b.ts", 0), ("a.ts", 1), ("b.ts", 1),
    ]


def test_iter_ranked_chunks_scoped_to_collection(repo):
    repo.upsert_chunks([_unit(key="proj"), _unit(key="other", sim=0.99)])
    ranked = list(repo.iter_ranked_chunks("proj", [1.0, 0.0], 0.0))
    assert len(ranked) == 1
    assert ranked[0][0].collection_key == "proj"


# ------------------------------------------------------------------
# Index status
# ------------------------------------------------------------------

def test_status_absent(repo):
    assert repo.get_status("proj") is None
    assert repo.list_statuses() == []


def test_upsert_status_insert_then_update(repo):
    repo.upsert_status(IndexStatus("proj", status=STATUS_COMPLETE, files_indexed=3, chunks_created=7))
    repo.upsert_status(IndexStatus("proj", status=STATUS_ERROR, error_message="boom"))
    status = repo.get_status("proj")
    assert status.status == STATUS_ERROR
    assert status.files_indexed == 0
    assert status.error_message == "boom"
    assert status.updated_at is not None
    assert len(repo.list_statuses()) == 1


def test_list_statuses_sorted(repo):
    repo.upsert_status(IndexStatus("zeta"))
    repo.upsert_status(IndexStatus("alpha"))
    assert [s.collection_key for s in repo.list_statuses()] == ["alpha", "zeta"]


# ------------------------------------------------------------------
# Memories
# ------------------------------------------------------------------

def test_add_and_get_memory(repo):
    repo.add_memory(_memory(is_global=True))
    m = repo.get_memory("m1")
    assert m is not None
    assert m.title == "title m1"
    assert m.is_global is True
    assert m.is_active is True
    assert m.relevance_score == 1.0


def test_get_memory_not_found(repo):
    assert repo.get_memory("missing") is None


def test_update_memory_overwrites_fields(repo):
    repo.add_memory(_memory())
    updated = _memory(memory_type="decision")
    updated.title = "new title"
    repo.update_memory(updated)
    m = repo.get_memory("m1")
    assert m.title == "new title"
    assert m.memory_type == "decision"


def test_set_memory_active_hides_from_list(repo):
    repo.add_memory(_memory(id="m1"))
    repo.add_memory(_memory(id="m2"))
    assert repo.set_memory_active("m1", False) == 1
    assert [m.id for m in repo.list_memories("proj")] == ["m2"]
    assert {m.id for m in repo.list_memories("proj", include_inactive=True)} == {"m1", "m2"}
    assert repo.count_memories("proj") == 1


def test_set_memory_active_missing_returns_zero(repo):
    assert repo.set_memory_active("missing", False) == 0


def test_iter_ranked_memories_includes_global(repo):
    repo.add_memory(_memory(id="local", sim=0.8))
    repo.add_memory(_memory(id="global", key="elsewhere", sim=0.9, is_global=True))
    repo.add_memory(_memory(id="foreign", key="elsewhere", sim=0.99))
    ranked = list(repo.iter_ranked_memories("proj", [1.0, 0.0], 0.0))
    assert [m.id for m, _ in ranked] == ["global", "local"]


def test_iter_ranked_memories_excludes_global_when_asked(repo):
    repo.add_memory(_memory(id="local", sim=0.8))
    repo.add_memory(_memory(id="global", key="elsewhere", is_global=True))
    ranked = list(repo.iter_ranked_memories("proj", [1.0, 0.0], 0.0, include_global=False))
    assert [m.id for m, _ in ranked] == ["local"]


def test_iter_ranked_memories_type_filter_and_inactive(repo):
    repo.add_memory(_memory(id="a", memory_type="decision"))
    repo.add_memory(_memory(id="b", memory_type="warning"))
    repo.add_memory(_memory(id="c", memory_type="decision"))
    repo.set_memory_active("c", False)
    ranked = list(repo.iter_ranked_memories("proj", [1.0, 0.0], 0.0, memory_types=["decision"]))
    assert [m.id for m, _ in ranked] == ["a"]


# ------------------------------------------------------------------
# Metadata
# ------------------------------------------------------------------

def test_meta_get_set(repo):
    assert repo.get_meta("embedding_model") is None
    repo.set_meta("embedding_model", "a")
    repo.set_meta("embedding_model", "b")
    assert repo.get_meta("embedding_model") == "b"
