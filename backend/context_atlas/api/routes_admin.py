"""Administrative routes for Context Atlas."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from context_atlas.api.dependencies import get_vector_search
from context_atlas.core.metrics import INDEX_SIZE, metrics_response
from context_atlas.retrieval.vector_search import VectorSearchService

router = APIRouter()


@router.get("/metrics", summary="Prometheus metrics")
def get_metrics(vector_search: VectorSearchService = Depends(get_vector_search)):
    INDEX_SIZE.set(vector_search.count_knowledge_chunks())
    return metrics_response()


__all__ = ["router"]
