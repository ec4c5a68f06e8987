"""FastAPI application setup for Context Atlas."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from context_atlas.api.dependencies import (
    get_app_settings,
    get_context_service,
    get_database,
    get_embedding_model,
    get_knowledge_service,
)
from context_atlas.api.routes_admin import router as admin_router
from context_atlas.api.routes_knowledge import router as knowledge_router
from context_atlas.api.routes_query import router as query_router
from context_atlas.core.errors import KnowledgeError
from context_atlas.core.logging import configure_logging, get_logger

configure_logging()
logger = get_logger(__name__)

app = FastAPI(
    title="Context Atlas",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.include_router(knowledge_router, prefix="/knowledge", tags=["knowledge"])
app.include_router(query_router, prefix="", tags=["query"])
app.include_router(admin_router, prefix="", tags=["admin"])


@app.exception_handler(KnowledgeError)
async def knowledge_error_handler(request: Request, exc: KnowledgeError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.on_event("startup")
async def startup() -> None:
    """Warm up core singletons on startup."""
    get_app_settings()
    get_database()
    get_embedding_model()
    get_knowledge_service()
    get_context_service()


@app.get("/health", tags=["admin"])
def health() -> dict[str, bool]:
    """Simple liveness check."""
    return {"ok": True}
