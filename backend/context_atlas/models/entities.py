"""Internal dataclasses representing persisted entities and query results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

SourceType = Literal["url", "file", "page", "markdown"]
Scope = Literal["system", "workspace", "space"]
SourceStatus = Literal["pending", "processing", "ready", "error"]


@dataclass(slots=True)
class KnowledgeSource:
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


@dataclass(slots=True)
class KnowledgeChunk:
    id: str
    source_id: str
    content: str
    chunk_index: int
    metadata: dict[str, Any] | None
    token_count: int | None
    created_at: datetime | None


@dataclass(slots=True)
class KnowledgeSearchResult:
    chunk_id: str
    source_id: str
    source_name: str
    content: str
    similarity: float
    metadata: dict[str, Any] | None


@dataclass(slots=True)
class VectorSearchResult:
    id: str
    similarity: float


@dataclass(slots=True)
class TypedPage:
    id: str
    title: str | None
    page_type: str | None
    metadata: Any
    workspace_id: str
    space_id: str | None
    created_at: datetime
    updated_at: datetime
    slug_id: str | None = None

    @property
    def status(self) -> Any:
        """``metadata.status``; page metadata is free-form JSON and may not be an object."""
        if not isinstance(self.metadata, dict):
            return None
        return self.metadata.get("status")


@dataclass(slots=True)
class GraphNode:
    id: str
    page_type: str | None
    title: str | None
    workspace_id: str
    space_id: str | None


@dataclass(slots=True)
class GraphEdge:
    from_id: str
    to_id: str
    type: str
    created_at: datetime | None = None
    created_by: str | None = None
    metadata: dict[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class TimelineEntry:
    id: str
    title: str | None
    page_type: str | None
    date: datetime
    metadata_status: Any = None


@dataclass(frozen=True, slots=True)
class OpenQuestion:
    id: str
    title: str
    status: str
    priority: str | None
    labels: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Contradiction:
    from_id: str
    to_id: str
    type: str


@dataclass(frozen=True, slots=True)
class HypothesisState:
    validated: tuple[TypedPage, ...] = ()
    refuted: tuple[TypedPage, ...] = ()
    testing: tuple[TypedPage, ...] = ()
    open: tuple[TypedPage, ...] = ()


@dataclass(frozen=True, slots=True)
class ContextBundle:
    """Merged answer to one query. Built per request, never stored."""

    query: str
    direct_hits: tuple[TypedPage, ...]
    related_work: tuple[TypedPage, ...]
    timeline: tuple[TimelineEntry, ...]
    current_state: HypothesisState
    open_questions: tuple[OpenQuestion, ...]
    contradictions: tuple[Contradiction, ...]
    experiments: tuple[TypedPage, ...]
    papers: tuple[TypedPage, ...]
    degraded: dict[str, str] = field(default_factory=dict)


__all__ = [
    "SourceType",
    "Scope",
    "SourceStatus",
    "KnowledgeSource",
    "KnowledgeChunk",
    "KnowledgeSearchResult",
    "VectorSearchResult",
    "TypedPage",
    "GraphNode",
    "GraphEdge",
    "TimelineEntry",
    "OpenQuestion",
    "Contradiction",
    "HypothesisState",
    "ContextBundle",
]
