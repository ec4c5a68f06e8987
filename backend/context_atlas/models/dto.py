"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class SourceCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    type: Literal["url", "file", "page", "markdown"]
    scope: Literal["system", "workspace", "space"]
    source_url: str | None = None
    file_id: str | None = None
    page_id: str | None = None
    content: str | None = Field(default=None, description="Markdown body for markdown sources")
    workspace_id: str | None = None
    space_id: str | None = None
    sync_schedule: str | None = None


class SourceRefreshRequest(BaseModel):
    content: str | None = Field(default=None, description="Markdown body; required for markdown sources")


class SourceResponse(BaseModel):
    id: str
    name: str
    type: str
    scope: str
    status: str
    source_url: str | None = None
    file_id: str | None = None
    page_id: str | None = None
    workspace_id: str | None = None
    space_id: str | None = None
    error_message: str | None = None
    chunk_count: int = 0
    last_synced_at: datetime | None = None
    sync_schedule: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ChunkResponse(BaseModel):
    id: str
    source_id: str
    content: str
    chunk_index: int
    metadata: dict[str, Any] | None = None
    token_count: int | None = None
    created_at: datetime | None = None


class SuccessResponse(BaseModel):
    success: bool = True


class RefreshAllResponse(BaseModel):
    refreshed: int


class KnowledgeSearchRequest(BaseModel):
    query: str = Field(min_length=1)
    workspace_id: str
    space_id: str | None = None
    limit: int = Field(default=5, ge=1, le=50)


class KnowledgeSearchHit(BaseModel):
    chunk_id: str
    source_id: str
    source_name: str
    content: str
    similarity: float
    metadata: dict[str, Any] | None = None


class MemorySearchRequest(BaseModel):
    query: str = Field(min_length=1)
    workspace_id: str
    space_id: str | None = None
    limit: int = Field(default=10, ge=1, le=100)
    min_similarity: float | None = Field(default=None, ge=-1.0, le=1.0)


class MemorySearchHit(BaseModel):
    id: str
    similarity: float


class ContextRequest(BaseModel):
    query: str = Field(min_length=1)
    workspace_id: str
    space_id: str | None = None


class PageSummary(BaseModel):
    id: str
    title: str | None = None
    page_type: str | None = None
    status: Any = None
    space_id: str | None = None
    created_at: datetime
    updated_at: datetime


class TimelineEntryResponse(BaseModel):
    id: str
    title: str | None = None
    page_type: str | None = None
    date: datetime
    status: Any = None


class HypothesisStateResponse(BaseModel):
    validated: list[PageSummary] = Field(default_factory=list)
    refuted: list[PageSummary] = Field(default_factory=list)
    testing: list[PageSummary] = Field(default_factory=list)
    open: list[PageSummary] = Field(default_factory=list)


class OpenQuestionResponse(BaseModel):
    id: str
    title: str
    status: str
    priority: str | None = None
    labels: list[str] = Field(default_factory=list)


class ContradictionResponse(BaseModel):
    from_id: str
    to_id: str
    type: str


class ContextResponse(BaseModel):
    query: str
    direct_hits: list[PageSummary]
    related_work: list[PageSummary]
    timeline: list[TimelineEntryResponse]
    current_state: HypothesisStateResponse
    open_questions: list[OpenQuestionResponse]
    contradictions: list[ContradictionResponse]
    experiments: list[PageSummary]
    papers: list[PageSummary]
    degraded: dict[str, str] = Field(default_factory=dict)


__all__ = [
    "SourceCreateRequest",
    "SourceRefreshRequest",
    "SourceResponse",
    "ChunkResponse",
    "SuccessResponse",
    "RefreshAllResponse",
    "KnowledgeSearchRequest",
    "KnowledgeSearchHit",
    "MemorySearchRequest",
    "MemorySearchHit",
    "ContextRequest",
    "PageSummary",
    "TimelineEntryResponse",
    "HypothesisStateResponse",
    "OpenQuestionResponse",
    "ContradictionResponse",
    "ContextResponse",
]
