"""Tests for vector search scoping and ranking."""

from __future__ import annotations

from conftest import insert_memory, insert_source
from context_atlas.retrieval.vector_search import cosine_similarity


def _store(vector_search, source_id: str, text: str, index: int, scope: str, workspace_id=None, space_id=None) -> str:
    chunk_id = vector_search.store_knowledge_chunk(
        source_id=source_id,
        content=text,
        embedding=vector_search.embed_text(text),
        chunk_index=index,
        scope=scope,
        metadata={"headings": []},
        workspace_id=workspace_id,
        space_id=space_id,
    )
    vector_search.db.commit()
    return chunk_id


def test_cosine_similarity_basics() -> None:
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == 1.0
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0
    assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0


def test_search_knowledge_respects_scope(db, vector_search) -> None:
    insert_source(db, "ks-sys", "system docs", scope="system", workspace_id=None)
    insert_source(db, "ks-a", "workspace a", workspace_id="ws-a")
    insert_source(db, "ks-b", "workspace b", workspace_id="ws-b")
    insert_source(db, "ks-space", "space docs", scope="space", workspace_id="ws-a", space_id="sp-a")
    text = "crystal structure refinement notes"
    system_id = _store(vector_search, "ks-sys", text, 0, "system")
    a_id = _store(vector_search, "ks-a", text, 0, "workspace", workspace_id="ws-a")
    _store(vector_search, "ks-b", text, 0, "workspace", workspace_id="ws-b")
    space_id = _store(vector_search, "ks-space", text, 0, "space", workspace_id="ws-a", space_id="sp-a")

    query = vector_search.embed_text(text)
    in_workspace = {hit.chunk_id for hit in vector_search.search_knowledge(query, "ws-a", limit=10)}
    in_space = {hit.chunk_id for hit in vector_search.search_knowledge(query, "ws-a", space_id="sp-a", limit=10)}
    other = {hit.chunk_id for hit in vector_search.search_knowledge(query, "ws-c", limit=10)}

    assert in_workspace == {system_id, a_id}
    assert in_space == {system_id, a_id, space_id}
    assert other == {system_id}


def test_search_knowledge_orders_by_similarity(db, vector_search) -> None:
    insert_source(db, "ks-a", "workspace a", workspace_id="ws-a")
    texts = [
        "protein folding kinetics",
        "protein folding kinetics under heat stress",
        "quarterly budget spreadsheet",
        "folding",
    ]
    for index, text in enumerate(texts):
        _store(vector_search, "ks-a", text, index, "workspace", workspace_id="ws-a")

    hits = vector_search.search_knowledge(vector_search.embed_text("protein folding kinetics"), "ws-a", limit=3)

    assert len(hits) == 3
    assert hits[0].content == "protein folding kinetics"
    assert hits[0].source_name == "workspace a"
    assert hits[0].metadata == {"headings": []}
    similarities = [hit.similarity for hit in hits]
    assert similarities == sorted(similarities, reverse=True)


def test_search_memories_applies_floor_and_scope(db, vector_search) -> None:
    for memory_id, content, workspace in [
        ("mem-1", "user prefers concise summaries", "ws-1"),
        ("mem-2", "lab meeting moved to thursday", "ws-1"),
        ("mem-3", "user prefers concise summaries", "ws-2"),
    ]:
        insert_memory(db, memory_id, content, workspace_id=workspace)
        vector_search.store_memory_embedding(memory_id, vector_search.embed_text(content))

    query = vector_search.embed_text("user prefers concise summaries")
    hits = vector_search.search_memories(query, "ws-1", min_similarity=0.5)

    assert [hit.id for hit in hits] == ["mem-1"]
    assert hits[0].similarity > 0.99


def test_memory_embedding_upsert_and_delete(db, vector_search) -> None:
    insert_memory(db, "mem-1", "first")
    vector_search.store_memory_embedding("mem-1", vector_search.embed_text("alpha"))
    vector_search.store_memory_embedding("mem-1", vector_search.embed_text("beta"))

    hits = vector_search.search_memories(vector_search.embed_text("beta"), "ws-1", min_similarity=0.9)
    assert [hit.id for hit in hits] == ["mem-1"]

    vector_search.delete_memory_embedding("mem-1")
    assert vector_search.search_memories(vector_search.embed_text("beta"), "ws-1", min_similarity=0.0) == []


def test_delete_knowledge_chunks(db, vector_search) -> None:
    insert_source(db, "ks-a", "workspace a", workspace_id="ws-a")
    _store(vector_search, "ks-a", "one", 0, "workspace", workspace_id="ws-a")
    _store(vector_search, "ks-a", "two", 1, "workspace", workspace_id="ws-a")
    assert vector_search.count_knowledge_chunks() == 2
    assert vector_search.delete_knowledge_chunks("ks-a") == 2
    assert vector_search.count_knowledge_chunks() == 0
