"""Assemble a "what do we know about X?" bundle from pages, knowledge and the graph."""

from __future__ import annotations

import time
from typing import Iterable, Sequence

from context_atlas.core.config import Settings
from context_atlas.core.logging import get_logger
from context_atlas.core.metrics import CONTEXT_LATENCY
from context_atlas.ingest.service import KnowledgeService
from context_atlas.models.entities import (
    ContextBundle,
    Contradiction,
    HypothesisState,
    TimelineEntry,
    TypedPage,
)
from context_atlas.retrieval.graph import ResearchGraph
from context_atlas.retrieval.pages import PageStore, TaskStore
from context_atlas.retrieval.stages import StageResult, describe_failure, record_degraded, run_stage

logger = get_logger(__name__)

OPEN_HYPOTHESIS_STATUSES = ("proposed", "inconclusive")


class ContextAssemblyService:
    """Run the retrieval stages for one query and merge them into a ``ContextBundle``.

    Every stage that touches storage runs through ``run_stage``: a failure is
    logged, counted and listed in ``bundle.degraded`` while the stage
    contributes its empty default. The call itself only fails on programming
    errors outside the stages.
    """

    def __init__(
        self,
        settings: Settings,
        pages: PageStore,
        tasks: TaskStore,
        knowledge: KnowledgeService,
        graph: ResearchGraph,
    ) -> None:
        self.settings = settings
        self.pages = pages
        self.tasks = tasks
        self.knowledge = knowledge
        self.graph = graph

    def assemble_context(self, query: str, workspace_id: str, space_id: str | None = None) -> ContextBundle:
        started = time.perf_counter()
        degraded: dict[str, str] = {}

        direct = self._collect(
            degraded,
            run_stage(
                "direct_hits",
                lambda: self.pages.search(query, workspace_id, space_id, limit=self.settings.page_search_limit),
                [],
            ),
        )
        knowledge_pages = self._collect(
            degraded,
            run_stage("knowledge", lambda: self._knowledge_pages(query, workspace_id, space_id), []),
        )
        direct_hits = merge_pages(direct, knowledge_pages)
        related_work = self._related_work(direct_hits, workspace_id, degraded)

        collected = [*direct_hits, *related_work]
        collected_ids = {page.id for page in collected}

        open_questions = self._collect(
            degraded,
            run_stage(
                "open_questions",
                lambda: self.tasks.find_open_questions(
                    query, workspace_id, space_id, limit=self.settings.open_question_limit
                ),
                [],
            ),
        )
        contradictions = self._collect(
            degraded,
            run_stage("contradictions", lambda: self._contradictions(workspace_id, collected_ids), []),
        )

        bundle = ContextBundle(
            query=query,
            direct_hits=tuple(direct_hits),
            related_work=tuple(related_work),
            timeline=build_timeline(collected),
            current_state=categorize_hypotheses(collected),
            open_questions=tuple(open_questions),
            contradictions=tuple(contradictions),
            experiments=tuple(page for page in collected if page.page_type == "experiment"),
            papers=tuple(page for page in collected if page.page_type == "paper"),
            degraded=degraded,
        )
        elapsed = time.perf_counter() - started
        CONTEXT_LATENCY.observe(elapsed)
        logger.info(
            "Assembled context",
            extra={
                "ctx_workspace_id": workspace_id,
                "ctx_direct_hits": len(bundle.direct_hits),
                "ctx_related": len(bundle.related_work),
                "ctx_degraded": sorted(degraded),
                "ctx_elapsed_ms": round(elapsed * 1000, 2),
            },
        )
        return bundle

    # Stage helpers ----------------------------------------------------

    @staticmethod
    def _collect(degraded: dict[str, str], result: StageResult) -> list:
        if result.is_degraded:
            degraded[result.stage] = result.reason
        return list(result.value)

    def _knowledge_pages(self, query: str, workspace_id: str, space_id: str | None) -> list[TypedPage]:
        hits = self.knowledge.search_knowledge(
            query,
            workspace_id,
            space_id=space_id,
            limit=self.settings.knowledge_search_limit,
        )
        if not hits:
            return []
        page_by_source = self.knowledge.page_ids_for_sources([hit.source_id for hit in hits], workspace_id)
        page_ids = [page_by_source[hit.source_id] for hit in hits if hit.source_id in page_by_source]
        return self.pages.get_pages(page_ids)

    def _related_work(
        self,
        seeds: Sequence[TypedPage],
        workspace_id: str,
        degraded: dict[str, str],
    ) -> list[TypedPage]:
        excluded = {page.id for page in seeds}
        related_ids: list[str] = []
        failures: list[str] = []
        for seed in seeds[: self.settings.context_seed_limit]:
            try:
                nodes = self.graph.get_related_pages(
                    seed.id,
                    max_depth=self.settings.graph_max_depth,
                    workspace_id=workspace_id,
                )
            except Exception as exc:
                failures.append(f"{seed.id}: {describe_failure(exc)}")
                continue
            for node in nodes:
                if node.id not in excluded:
                    excluded.add(node.id)
                    related_ids.append(node.id)

        result = run_stage("related_work", lambda: self.pages.get_pages(related_ids), [])
        reasons = [*failures, *([result.reason] if result.is_degraded else [])]
        if failures:
            record_degraded("related_work", "; ".join(failures))
        if reasons:
            degraded["related_work"] = "; ".join(reasons)
        return list(result.value)

    def _contradictions(self, workspace_id: str, page_ids: set[str]) -> list[Contradiction]:
        return [
            Contradiction(from_id=edge.from_id, to_id=edge.to_id, type=edge.type)
            for edge in self.graph.find_contradictions(workspace_id)
            if edge.from_id in page_ids or edge.to_id in page_ids
        ]


def merge_pages(primary: Iterable[TypedPage], secondary: Iterable[TypedPage]) -> list[TypedPage]:
    """Concatenate, keeping the first occurrence of each page id."""
    merged: list[TypedPage] = []
    seen: set[str] = set()
    for page in (*primary, *secondary):
        if page.id not in seen:
            seen.add(page.id)
            merged.append(page)
    return merged


def build_timeline(pages: Iterable[TypedPage]) -> tuple[TimelineEntry, ...]:
    entries = [
        TimelineEntry(
            id=page.id,
            title=page.title,
            page_type=page.page_type,
            date=page.updated_at,
            metadata_status=page.status,
        )
        for page in pages
    ]
    entries.sort(key=lambda entry: entry.date, reverse=True)
    return tuple(entries)


def categorize_hypotheses(pages: Iterable[TypedPage]) -> HypothesisState:
    hypotheses = [page for page in pages if page.page_type == "hypothesis"]
    return HypothesisState(
        validated=tuple(page for page in hypotheses if page.status == "validated"),
        refuted=tuple(page for page in hypotheses if page.status == "refuted"),
        testing=tuple(page for page in hypotheses if page.status == "testing"),
        open=tuple(page for page in hypotheses if page.status in OPEN_HYPOTHESIS_STATUSES),
    )


__all__ = [
    "ContextAssemblyService",
    "OPEN_HYPOTHESIS_STATUSES",
    "build_timeline",
    "categorize_hypotheses",
    "merge_pages",
]
