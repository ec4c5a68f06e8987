"""Knowledge source lifecycle and knowledge search."""

from __future__ import annotations

from typing import Sequence

from context_atlas.core.config import Settings
from context_atlas.core.errors import IngestInProgressError, InvalidInputError, NotFoundError
from context_atlas.core.logging import get_logger
from context_atlas.db.sqlite import SQLiteDatabase
from context_atlas.ingest.jobs import IngestJobRunner, Scheduler
from context_atlas.ingest.sources import SourceRepository
from context_atlas.models.dto import SourceCreateRequest
from context_atlas.models.entities import KnowledgeChunk, KnowledgeSearchResult, KnowledgeSource
from context_atlas.retrieval.vector_search import VectorSearchService

logger = get_logger(__name__)

_REQUIRED_REFERENCE = {
    "url": "source_url",
    "page": "page_id",
    "file": "file_id",
    "markdown": "content",
}


class KnowledgeService:
    """Create, list, refresh and delete knowledge sources; search their chunks.

    Ingestion never runs on the caller's stack: ``create_source`` and
    ``refresh_source`` return as soon as the job is handed to ``schedule``.
    """

    def __init__(
        self,
        db: SQLiteDatabase,
        settings: Settings,
        vector_search: VectorSearchService,
        jobs: IngestJobRunner,
    ) -> None:
        self.db = db
        self.settings = settings
        self.vector_search = vector_search
        self.jobs = jobs
        self.sources = SourceRepository(db)

    def create_source(
        self,
        request: SourceCreateRequest,
        schedule: Scheduler | None = None,
    ) -> KnowledgeSource:
        _validate_create(request)
        source = self.sources.insert(
            name=request.name,
            type=request.type,
            scope=request.scope,
            source_url=request.source_url,
            file_id=request.file_id,
            page_id=request.page_id,
            workspace_id=request.workspace_id,
            space_id=request.space_id,
            sync_schedule=request.sync_schedule,
        )
        logger.info(
            "Created knowledge source %s",
            source.name,
            extra={"ctx_source_id": source.id, "ctx_source_type": source.type},
        )
        self.jobs.submit(source.id, request.content, schedule)
        return source

    def list_sources(
        self,
        workspace_id: str | None,
        space_id: str | None = None,
        include_system: bool = True,
    ) -> list[KnowledgeSource]:
        return self.sources.list_for_scope(workspace_id, space_id, include_system)

    def get_source(self, source_id: str) -> KnowledgeSource:
        source = self.sources.get(source_id)
        if source is None:
            raise NotFoundError(f"Source {source_id} not found")
        return source

    def get_source_chunks(self, source_id: str, limit: int = 50, offset: int = 0) -> list[KnowledgeChunk]:
        self.get_source(source_id)
        return self.sources.chunks(source_id, limit=limit, offset=offset)

    def delete_source(self, source_id: str) -> None:
        if not self.sources.delete(source_id):
            raise NotFoundError(f"Source {source_id} not found")
        logger.info("Deleted knowledge source", extra={"ctx_source_id": source_id})

    def refresh_source(
        self,
        source_id: str,
        content: str | None = None,
        schedule: Scheduler | None = None,
    ) -> None:
        """Re-ingest a source. Raises ``IngestInProgressError`` while a run is in flight."""
        self.get_source(source_id)
        self.jobs.claim(source_id)
        try:
            self.sources.mark_pending(source_id)
        except Exception:
            self.jobs.release(source_id)
            raise
        self.jobs.dispatch(source_id, content, schedule)

    def refresh_all_sources(self, schedule: Scheduler | None = None) -> dict[str, int]:
        refreshed = 0
        for source in self.sources.list_all():
            if source.status == "processing" or self.jobs.is_running(source.id):
                continue
            try:
                self.refresh_source(source.id, schedule=schedule)
            except IngestInProgressError:
                logger.info("Skipping source claimed by another job", extra={"ctx_source_id": source.id})
                continue
            refreshed += 1
        logger.info("Queued %s knowledge sources for refresh", refreshed)
        return {"refreshed": refreshed}

    def search_knowledge(
        self,
        query: str,
        workspace_id: str,
        space_id: str | None = None,
        limit: int | None = None,
    ) -> list[KnowledgeSearchResult]:
        embedding = self.vector_search.embed_text(query)
        return self.vector_search.search_knowledge(
            embedding,
            workspace_id,
            space_id=space_id,
            limit=limit or self.settings.knowledge_search_limit,
        )

    def page_ids_for_sources(self, source_ids: Sequence[str], workspace_id: str) -> dict[str, str]:
        return self.sources.page_ids(list(dict.fromkeys(source_ids)), workspace_id)


def _validate_create(request: SourceCreateRequest) -> None:
    field = _REQUIRED_REFERENCE[request.type]
    if not getattr(request, field):
        raise InvalidInputError(f"{request.type} sources require {field}")
    if request.scope == "workspace" and not request.workspace_id:
        raise InvalidInputError("workspace scope requires workspace_id")
    if request.scope == "space" and not request.space_id:
        raise InvalidInputError("space scope requires space_id")


__all__ = ["KnowledgeService"]
