"""Context assembly and memory search routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from context_atlas.api.dependencies import get_app_settings, get_context_service, get_vector_search
from context_atlas.core.config import Settings
from context_atlas.models.dto import (
    ContextRequest,
    ContextResponse,
    ContradictionResponse,
    HypothesisStateResponse,
    MemorySearchHit,
    MemorySearchRequest,
    OpenQuestionResponse,
    PageSummary,
    TimelineEntryResponse,
)
from context_atlas.models.entities import ContextBundle, TypedPage
from context_atlas.retrieval.context import ContextAssemblyService
from context_atlas.retrieval.vector_search import VectorSearchService

router = APIRouter()


@router.post("/context", response_model=ContextResponse, summary="Assemble what is known about a query")
def assemble_context(
    request: ContextRequest,
    service: ContextAssemblyService = Depends(get_context_service),
) -> ContextResponse:
    bundle = service.assemble_context(request.query, request.workspace_id, request.space_id)
    return _bundle_to_response(bundle)


@router.post("/memories/search", response_model=list[MemorySearchHit], summary="Similarity search over agent memories")
def search_memories(
    request: MemorySearchRequest,
    vector_search: VectorSearchService = Depends(get_vector_search),
    settings: Settings = Depends(get_app_settings),
) -> list[MemorySearchHit]:
    embedding = vector_search.embed_text(request.query)
    min_similarity = request.min_similarity
    if min_similarity is None:
        min_similarity = settings.memory_min_similarity
    hits = vector_search.search_memories(
        embedding,
        request.workspace_id,
        space_id=request.space_id,
        limit=request.limit,
        min_similarity=min_similarity,
    )
    return [MemorySearchHit(id=hit.id, similarity=hit.similarity) for hit in hits]


def _page(page: TypedPage) -> PageSummary:
    return PageSummary.model_validate(page, from_attributes=True)


def _bundle_to_response(bundle: ContextBundle) -> ContextResponse:
    state = bundle.current_state
    return ContextResponse(
        query=bundle.query,
        direct_hits=[_page(page) for page in bundle.direct_hits],
        related_work=[_page(page) for page in bundle.related_work],
        timeline=[
            TimelineEntryResponse(
                id=entry.id,
                title=entry.title,
                page_type=entry.page_type,
                date=entry.date,
                status=entry.metadata_status,
            )
            for entry in bundle.timeline
        ],
        current_state=HypothesisStateResponse(
            validated=[_page(page) for page in state.validated],
            refuted=[_page(page) for page in state.refuted],
            testing=[_page(page) for page in state.testing],
            open=[_page(page) for page in state.open],
        ),
        open_questions=[
            OpenQuestionResponse(
                id=question.id,
                title=question.title,
                status=question.status,
                priority=question.priority,
                labels=list(question.labels),
            )
            for question in bundle.open_questions
        ],
        contradictions=[
            ContradictionResponse(from_id=item.from_id, to_id=item.to_id, type=item.type)
            for item in bundle.contradictions
        ],
        experiments=[_page(page) for page in bundle.experiments],
        papers=[_page(page) for page in bundle.papers],
        degraded=dict(bundle.degraded),
    )


__all__ = ["router"]
