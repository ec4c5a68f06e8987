"""Common ingestion data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class ContentChunk:
    """Chunk produced by the chunker prior to embedding and persistence."""

    text: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class LoadedContent:
    """Text extracted from a source, plus where it came from."""

    text: str
    mime: str = "text/plain"
    origin: str | None = None


@dataclass(slots=True)
class IngestOutcome:
    """Result of one completed ``process_source`` run."""

    source_id: str
    chunk_count: int
    chunk_ids: list[str] = field(default_factory=list)
    duration_s: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_id": self.source_id,
            "chunk_count": self.chunk_count,
            "duration_s": round(self.duration_s, 3),
        }


__all__ = ["ContentChunk", "LoadedContent", "IngestOutcome"]
