"""Tests for knowledge source ingestion."""

from __future__ import annotations

import pytest

from conftest import insert_page, insert_source
from context_atlas.core.errors import InvalidInputError, NotFoundError, UpstreamError
from context_atlas.ingest.embeddings import HashedEmbeddingModel
from context_atlas.ingest.processor import KnowledgeProcessor
from context_atlas.ingest.sources import SourceRepository
from context_atlas.retrieval.vector_search import VectorSearchService


class FlakyEmbeddingModel(HashedEmbeddingModel):
    """Fails on the n-th call to ``embed``."""

    def __init__(self, fail_on_call: int, dim: int = 64) -> None:
        super().__init__(dim=dim)
        self.fail_on_call = fail_on_call
        self.calls = 0

    def embed(self, text: str) -> list[float]:
        self.calls += 1
        if self.calls == self.fail_on_call:
            raise UpstreamError("embedding provider unavailable")
        return super().embed(text)


def _chunk_rows(db, source_id: str) -> list:
    return db.query(
        "SELECT id, chunk_index, scope, workspace_id, token_count, metadata FROM knowledge_chunks "
        "WHERE source_id = ? ORDER BY chunk_index",
        [source_id],
    )


def test_markdown_source_becomes_ready(db, settings, vector_search, long_markdown) -> None:
    insert_source(db, "ks-md", "notes")
    processor = KnowledgeProcessor(db, settings, vector_search)

    outcome = processor.process_source("ks-md", long_markdown)

    source = SourceRepository(db).get("ks-md")
    assert source.status == "ready"
    assert source.chunk_count == outcome.chunk_count > 0
    assert source.error_message is None
    assert source.last_synced_at is not None
    rows = _chunk_rows(db, "ks-md")
    assert [row["chunk_index"] for row in rows] == list(range(len(rows)))
    assert all(row["scope"] == "workspace" and row["workspace_id"] == "ws-1" for row in rows)
    assert all(row["token_count"] > 0 for row in rows)


def test_refresh_replaces_chunk_set(db, settings, vector_search, long_markdown) -> None:
    insert_source(db, "ks-md", "notes")
    processor = KnowledgeProcessor(db, settings, vector_search)

    first = processor.process_source("ks-md", long_markdown)
    second = processor.process_source("ks-md", long_markdown)

    assert set(first.chunk_ids).isdisjoint(second.chunk_ids)
    assert {row["id"] for row in _chunk_rows(db, "ks-md")} == set(second.chunk_ids)


def test_page_source_uses_page_content(db, settings, vector_search) -> None:
    insert_page(db, "page-1", "Assay design", "We measure fluorescence at three wavelengths. " * 4)
    insert_source(db, "ks-page", "assay", type="page", page_id="page-1")

    outcome = KnowledgeProcessor(db, settings, vector_search).process_source("ks-page")

    assert outcome.chunk_count == 1
    chunk = SourceRepository(db).chunks("ks-page")[0]
    assert chunk.content.startswith("Assay design\n\n")
    assert chunk.metadata == {"headings": ["Assay design"]}


def test_file_source_ends_in_error(db, settings, vector_search) -> None:
    insert_source(db, "ks-file", "upload", type="file")

    with pytest.raises(InvalidInputError):
        KnowledgeProcessor(db, settings, vector_search).process_source("ks-file")

    source = SourceRepository(db).get("ks-file")
    assert source.status == "error"
    assert source.error_message == "File content extraction not yet implemented"


def test_blank_content_is_rejected(db, settings, vector_search) -> None:
    insert_source(db, "ks-md", "blank")
    with pytest.raises(InvalidInputError):
        KnowledgeProcessor(db, settings, vector_search).process_source("ks-md", "   \n ")
    assert SourceRepository(db).get("ks-md").error_message == "No content extracted from source"


def test_missing_source(db, settings, vector_search) -> None:
    with pytest.raises(NotFoundError):
        KnowledgeProcessor(db, settings, vector_search).process_source("ks-nope")


def test_failure_in_later_batch_keeps_earlier_batches(db, settings, long_markdown) -> None:
    insert_source(db, "ks-md", "notes")
    settings.embed_batch_size = 2
    model = FlakyEmbeddingModel(fail_on_call=3, dim=settings.embedding_dim)
    processor = KnowledgeProcessor(db, settings, VectorSearchService(db, model))

    with pytest.raises(UpstreamError):
        processor.process_source("ks-md", long_markdown)

    rows = _chunk_rows(db, "ks-md")
    assert [row["chunk_index"] for row in rows] == [0, 1]
    source = SourceRepository(db).get("ks-md")
    assert source.status == "error"
    assert source.error_message == "embedding provider unavailable"
