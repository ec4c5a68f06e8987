"""Error taxonomy shared by ingestion, retrieval and the HTTP layer."""

from __future__ import annotations


class KnowledgeError(Exception):
    """Base class; ``status_code`` is what the API answers with."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(KnowledgeError):
    """A source, page or chunk set does not exist."""

    status_code = 404


class InvalidInputError(KnowledgeError):
    """Request or extracted content cannot be processed."""

    status_code = 400


class UpstreamError(KnowledgeError):
    """Embedding provider or remote URL failed."""

    status_code = 502


class IngestInProgressError(KnowledgeError):
    """An ingestion job for the same source is already running."""

    status_code = 409


__all__ = [
    "KnowledgeError",
    "NotFoundError",
    "InvalidInputError",
    "UpstreamError",
    "IngestInProgressError",
]
