"""Knowledge source ingestion: load, chunk, embed, persist."""

from __future__ import annotations

import time

from context_atlas.core.config import Settings
from context_atlas.core.errors import InvalidInputError, NotFoundError
from context_atlas.core.logging import get_logger
from context_atlas.core.metrics import INDEX_SIZE, INGEST_DURATION, INGEST_OUTCOMES
from context_atlas.db.sqlite import SQLiteDatabase
from context_atlas.ingest.chunker import chunk_content, estimate_tokens
from context_atlas.ingest.loaders import LoaderRegistry
from context_atlas.ingest.sources import SourceRepository
from context_atlas.ingest.types import ContentChunk, IngestOutcome
from context_atlas.models.entities import KnowledgeSource
from context_atlas.retrieval.vector_search import VectorSearchService

logger = get_logger(__name__)


class KnowledgeProcessor:
    """Turn one knowledge source into stored, embedded chunks.

    Re-ingestion replaces the chunk set: existing chunks are deleted first,
    then new chunks are embedded and inserted batch by batch. Each batch is
    committed on its own, so a failure part-way leaves the earlier batches in
    place and the source in ``error``.
    """

    def __init__(
        self,
        db: SQLiteDatabase,
        settings: Settings,
        vector_search: VectorSearchService,
        loaders: LoaderRegistry | None = None,
    ) -> None:
        self.db = db
        self.settings = settings
        self.vector_search = vector_search
        self.sources = SourceRepository(db)
        self.loaders = loaders or LoaderRegistry(db, settings)

    def process_source(self, source_id: str, content: str | None = None) -> IngestOutcome:
        source = self.sources.get(source_id)
        if source is None:
            raise NotFoundError(f"Source {source_id} not found")

        started = time.perf_counter()
        log_extra = {"ctx_source_id": source.id, "ctx_source_type": source.type}
        logger.info("Processing knowledge source %s", source.name, extra=log_extra)
        self.sources.mark_processing(source.id)
        try:
            chunk_ids = self._ingest(source, content)
        except Exception as exc:
            message = getattr(exc, "message", None) or str(exc) or exc.__class__.__name__
            self.sources.mark_error(source.id, message)
            INGEST_OUTCOMES.labels(status="error").inc()
            logger.warning("Knowledge source %s failed: %s", source.id, message, extra=log_extra)
            raise
        finally:
            INGEST_DURATION.labels(source_type=source.type).observe(time.perf_counter() - started)
            INDEX_SIZE.set(self.vector_search.count_knowledge_chunks())

        self.sources.mark_ready(source.id, len(chunk_ids))
        INGEST_OUTCOMES.labels(status="ready").inc()
        outcome = IngestOutcome(
            source_id=source.id,
            chunk_count=len(chunk_ids),
            chunk_ids=chunk_ids,
            duration_s=time.perf_counter() - started,
        )
        logger.info(
            "Knowledge source %s ready with %s chunks",
            source.id,
            outcome.chunk_count,
            extra={**log_extra, "ctx_chunk_count": outcome.chunk_count},
        )
        return outcome

    # Internal helpers -------------------------------------------------

    def _ingest(self, source: KnowledgeSource, content: str | None) -> list[str]:
        loaded = self.loaders.load(source, content)
        if not loaded.text or not loaded.text.strip():
            raise InvalidInputError("No content extracted from source")

        chunks = chunk_content(
            loaded.text,
            max_chars=self.settings.chunk_max_chars,
            min_chars=self.settings.chunk_min_chars,
        )
        removed = self.vector_search.delete_knowledge_chunks(source.id)
        if removed:
            logger.debug("Removed %s previous chunks for %s", removed, source.id)

        chunk_ids: list[str] = []
        batch_size = self.settings.embed_batch_size
        for start in range(0, len(chunks), batch_size):
            batch = chunks[start : start + batch_size]
            chunk_ids.extend(self._store_batch(source, batch, first_index=start))
        return chunk_ids

    def _store_batch(self, source: KnowledgeSource, batch: list[ContentChunk], first_index: int) -> list[str]:
        embeddings = [self.vector_search.embed_text(chunk.text) for chunk in batch]
        stored: list[str] = []
        for offset, (chunk, embedding) in enumerate(zip(batch, embeddings)):
            stored.append(
                self.vector_search.store_knowledge_chunk(
                    source_id=source.id,
                    content=chunk.text,
                    embedding=embedding,
                    chunk_index=first_index + offset,
                    scope=source.scope,
                    metadata=chunk.metadata,
                    token_count=estimate_tokens(chunk.text),
                    workspace_id=source.workspace_id,
                    space_id=source.space_id,
                )
            )
        self.db.commit()
        return stored


__all__ = ["KnowledgeProcessor"]
