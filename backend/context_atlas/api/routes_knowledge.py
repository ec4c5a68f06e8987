"""Knowledge source and knowledge search routes."""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Query

from context_atlas.api.dependencies import get_knowledge_service
from context_atlas.ingest.service import KnowledgeService
from context_atlas.models.dto import (
    ChunkResponse,
    KnowledgeSearchHit,
    KnowledgeSearchRequest,
    RefreshAllResponse,
    SourceCreateRequest,
    SourceRefreshRequest,
    SourceResponse,
    SuccessResponse,
)

router = APIRouter()


@router.post("/sources", response_model=SourceResponse, summary="Register a knowledge source and start ingestion")
def create_source(
    request: SourceCreateRequest,
    background_tasks: BackgroundTasks,
    service: KnowledgeService = Depends(get_knowledge_service),
) -> SourceResponse:
    source = service.create_source(request, schedule=background_tasks.add_task)
    return SourceResponse.model_validate(source, from_attributes=True)


@router.get("/sources", response_model=list[SourceResponse], summary="List sources visible to a workspace")
def list_sources(
    workspace_id: str = Query(...),
    space_id: str | None = Query(default=None),
    include_system: bool = Query(default=True),
    service: KnowledgeService = Depends(get_knowledge_service),
) -> list[SourceResponse]:
    sources = service.list_sources(workspace_id, space_id, include_system)
    return [SourceResponse.model_validate(source, from_attributes=True) for source in sources]


@router.post("/sources/refresh-all", response_model=RefreshAllResponse, summary="Re-ingest every idle source")
def refresh_all_sources(
    background_tasks: BackgroundTasks,
    service: KnowledgeService = Depends(get_knowledge_service),
) -> RefreshAllResponse:
    return RefreshAllResponse(**service.refresh_all_sources(schedule=background_tasks.add_task))


@router.get("/sources/{source_id}", response_model=SourceResponse, summary="Fetch one source")
def get_source(source_id: str, service: KnowledgeService = Depends(get_knowledge_service)) -> SourceResponse:
    return SourceResponse.model_validate(service.get_source(source_id), from_attributes=True)


@router.get("/sources/{source_id}/chunks", response_model=list[ChunkResponse], summary="List a source's chunks")
def get_source_chunks(
    source_id: str,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    service: KnowledgeService = Depends(get_knowledge_service),
) -> list[ChunkResponse]:
    chunks = service.get_source_chunks(source_id, limit=limit, offset=offset)
    return [ChunkResponse.model_validate(chunk, from_attributes=True) for chunk in chunks]


@router.delete("/sources/{source_id}", response_model=SuccessResponse, summary="Delete a source and its chunks")
def delete_source(source_id: str, service: KnowledgeService = Depends(get_knowledge_service)) -> SuccessResponse:
    service.delete_source(source_id)
    return SuccessResponse()


@router.post("/sources/{source_id}/refresh", response_model=SuccessResponse, summary="Re-ingest one source")
def refresh_source(
    source_id: str,
    background_tasks: BackgroundTasks,
    request: SourceRefreshRequest | None = None,
    service: KnowledgeService = Depends(get_knowledge_service),
) -> SuccessResponse:
    content = request.content if request else None
    service.refresh_source(source_id, content=content, schedule=background_tasks.add_task)
    return SuccessResponse()


@router.post("/search", response_model=list[KnowledgeSearchHit], summary="Similarity search over knowledge chunks")
def search_knowledge(
    request: KnowledgeSearchRequest,
    service: KnowledgeService = Depends(get_knowledge_service),
) -> list[KnowledgeSearchHit]:
    hits = service.search_knowledge(
        request.query,
        request.workspace_id,
        space_id=request.space_id,
        limit=request.limit,
    )
    return [KnowledgeSearchHit.model_validate(hit, from_attributes=True) for hit in hits]


__all__ = ["router"]
