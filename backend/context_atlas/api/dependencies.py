"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from context_atlas.core.config import Settings, get_settings
from context_atlas.db.sqlite import SQLiteDatabase
from context_atlas.ingest import embeddings
from context_atlas.ingest.embeddings import EmbeddingModel
from context_atlas.ingest.jobs import IngestJobRunner
from context_atlas.ingest.processor import KnowledgeProcessor
from context_atlas.ingest.service import KnowledgeService
from context_atlas.retrieval.context import ContextAssemblyService
from context_atlas.retrieval.graph import SQLiteResearchGraph
from context_atlas.retrieval.pages import PageStore, TaskStore
from context_atlas.retrieval.vector_search import VectorSearchService

_DB: SQLiteDatabase | None = None
_VECTOR_SEARCH: VectorSearchService | None = None
_JOB_RUNNER: IngestJobRunner | None = None
_KNOWLEDGE_SERVICE: KnowledgeService | None = None
_CONTEXT_SERVICE: ContextAssemblyService | None = None


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def get_database() -> SQLiteDatabase:
    global _DB
    if _DB is None:
        settings = get_app_settings()
        db = SQLiteDatabase(settings.db_path)
        db.ensure_schema()
        _DB = db
    return _DB


def get_embedding_model() -> EmbeddingModel:
    return embeddings.get_embedding_model(get_app_settings())


def get_vector_search() -> VectorSearchService:
    global _VECTOR_SEARCH
    if _VECTOR_SEARCH is None:
        _VECTOR_SEARCH = VectorSearchService(get_database(), get_embedding_model())
    return _VECTOR_SEARCH


def get_job_runner() -> IngestJobRunner:
    global _JOB_RUNNER
    if _JOB_RUNNER is None:
        processor = KnowledgeProcessor(
            db=get_database(),
            settings=get_app_settings(),
            vector_search=get_vector_search(),
        )
        _JOB_RUNNER = IngestJobRunner(processor)
    return _JOB_RUNNER


def get_knowledge_service() -> KnowledgeService:
    global _KNOWLEDGE_SERVICE
    if _KNOWLEDGE_SERVICE is None:
        _KNOWLEDGE_SERVICE = KnowledgeService(
            db=get_database(),
            settings=get_app_settings(),
            vector_search=get_vector_search(),
            jobs=get_job_runner(),
        )
    return _KNOWLEDGE_SERVICE


def get_context_service() -> ContextAssemblyService:
    global _CONTEXT_SERVICE
    if _CONTEXT_SERVICE is None:
        db = get_database()
        _CONTEXT_SERVICE = ContextAssemblyService(
            settings=get_app_settings(),
            pages=PageStore(db),
            tasks=TaskStore(db),
            knowledge=get_knowledge_service(),
            graph=SQLiteResearchGraph(db),
        )
    return _CONTEXT_SERVICE


def reset_dependencies() -> None:
    """Drop cached singletons so the next request rebuilds them from settings."""
    global _DB, _VECTOR_SEARCH, _JOB_RUNNER, _KNOWLEDGE_SERVICE, _CONTEXT_SERVICE
    if _DB is not None:
        _DB.close()
    _DB = None
    _VECTOR_SEARCH = None
    _JOB_RUNNER = None
    _KNOWLEDGE_SERVICE = None
    _CONTEXT_SERVICE = None
    get_app_settings.cache_clear()
    get_settings.cache_clear()
    embeddings.reset_embedding_models()


__all__ = [
    "get_app_settings",
    "get_database",
    "get_embedding_model",
    "get_vector_search",
    "get_job_runner",
    "get_knowledge_service",
    "get_context_service",
    "reset_dependencies",
]
