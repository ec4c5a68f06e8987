"""Detached ingestion jobs with a per-source in-flight guard."""

from __future__ import annotations

import threading
from typing import Callable

from context_atlas.core.errors import IngestInProgressError
from context_atlas.core.logging import get_logger
from context_atlas.ingest.processor import KnowledgeProcessor

logger = get_logger(__name__)

Scheduler = Callable[..., None]


def thread_scheduler(func: Callable[..., None], *args: object) -> None:
    """Run ``func`` on a daemon thread; used when no request-scoped runner exists."""
    thread = threading.Thread(target=func, args=args, name="ctxa-ingest", daemon=True)
    thread.start()


class IngestJobRunner:
    """Submit ``process_source`` runs so that a source never ingests twice at once."""

    def __init__(self, processor: KnowledgeProcessor) -> None:
        self.processor = processor
        self._in_flight: set[str] = set()
        self._lock = threading.Lock()

    def is_running(self, source_id: str) -> bool:
        with self._lock:
            return source_id in self._in_flight

    def claim(self, source_id: str) -> None:
        with self._lock:
            if source_id in self._in_flight:
                raise IngestInProgressError(f"Ingestion already running for source {source_id}")
            self._in_flight.add(source_id)

    def release(self, source_id: str) -> None:
        with self._lock:
            self._in_flight.discard(source_id)

    def submit(
        self,
        source_id: str,
        content: str | None = None,
        schedule: Scheduler | None = None,
    ) -> None:
        """Claim the source, then hand the run to ``schedule`` (a daemon thread by default)."""
        self.claim(source_id)
        self.dispatch(source_id, content, schedule)

    def dispatch(
        self,
        source_id: str,
        content: str | None = None,
        schedule: Scheduler | None = None,
    ) -> None:
        """Schedule a run for a source the caller has already claimed."""
        try:
            (schedule or thread_scheduler)(self.run, source_id, content)
        except Exception:
            self.release(source_id)
            raise

    def run(self, source_id: str, content: str | None = None) -> None:
        """Job body. Failures are already recorded on the source; they are only logged here."""
        try:
            self.processor.process_source(source_id, content)
        except Exception:
            logger.exception("Ingestion job failed", extra={"ctx_source_id": source_id})
        finally:
            self.release(source_id)


__all__ = ["IngestJobRunner", "Scheduler", "thread_scheduler"]
