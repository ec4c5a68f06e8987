"""Tests for context assembly."""

from __future__ import annotations

import pytest

from conftest import insert_page, insert_source, insert_task
from context_atlas.core.errors import NotFoundError
from context_atlas.ingest.jobs import IngestJobRunner
from context_atlas.ingest.processor import KnowledgeProcessor
from context_atlas.ingest.service import KnowledgeService
from context_atlas.models.entities import GraphNode
from context_atlas.retrieval.context import ContextAssemblyService, build_timeline, merge_pages
from context_atlas.retrieval.graph import SQLiteResearchGraph
from context_atlas.retrieval.pages import PageStore, TaskStore
from context_atlas.retrieval.stages import StageResult, run_stage


class FailingGraph:
    """Graph whose traversal fails for selected seeds."""

    def __init__(self, inner: SQLiteResearchGraph, failing: set[str]) -> None:
        self.inner = inner
        self.failing = failing

    def get_related_pages(self, page_id, max_depth=2, workspace_id=None, edge_types=None) -> list[GraphNode]:
        if page_id in self.failing:
            raise NotFoundError(f"Page {page_id} is not in the graph")
        return self.inner.get_related_pages(page_id, max_depth, workspace_id, edge_types)

    def find_contradictions(self, workspace_id):
        raise RuntimeError("graph offline")


def _service(db, settings, vector_search, graph=None) -> ContextAssemblyService:
    processor = KnowledgeProcessor(db, settings, vector_search)
    knowledge = KnowledgeService(db, settings, vector_search, IngestJobRunner(processor))
    return ContextAssemblyService(
        settings=settings,
        pages=PageStore(db),
        tasks=TaskStore(db),
        knowledge=knowledge,
        graph=graph or SQLiteResearchGraph(db),
    )


@pytest.fixture
def research(db):
    insert_page(db, "h1", "Folding hypothesis", "folding is cooperative", page_type="hypothesis",
                metadata={"status": "validated"}, updated_at=1_000)
    insert_page(db, "h2", "Folding rate hypothesis", "folding rate doubles", page_type="hypothesis",
                metadata={"status": "proposed"}, updated_at=3_000)
    insert_page(db, "e1", "Folding experiment", "stopped flow folding run", page_type="experiment",
                updated_at=2_000)
    insert_page(db, "paper1", "Review article", "a survey", page_type="paper", updated_at=5_000)
    insert_page(db, "h3", "Misfolding hypothesis", "aggregation", page_type="hypothesis",
                metadata={"status": "refuted"}, updated_at=4_000)
    graph = SQLiteResearchGraph(db)
    graph.create_relationship("e1", "paper1", "CITES")
    graph.create_relationship("h3", "h1", "CONTRADICTS")
    insert_task(db, "q1", "What limits folding speed?", labels=("open-question",))
    return graph


def test_assemble_context_full_bundle(db, settings, vector_search, research) -> None:
    bundle = _service(db, settings, vector_search, research).assemble_context("folding", "ws-1")

    direct_ids = [page.id for page in bundle.direct_hits]
    related_ids = [page.id for page in bundle.related_work]
    assert set(direct_ids) == {"h1", "h2", "e1"}
    assert set(related_ids) == {"paper1", "h3"}
    assert not set(direct_ids) & set(related_ids)

    assert [entry.id for entry in bundle.timeline] == ["paper1", "h3", "h2", "e1", "h1"]
    assert [page.id for page in bundle.current_state.validated] == ["h1"]
    assert [page.id for page in bundle.current_state.refuted] == ["h3"]
    assert [page.id for page in bundle.current_state.open] == ["h2"]
    assert bundle.current_state.testing == ()
    assert [page.id for page in bundle.experiments] == ["e1"]
    assert [page.id for page in bundle.papers] == ["paper1"]
    assert [question.id for question in bundle.open_questions] == ["q1"]
    assert [(c.from_id, c.to_id) for c in bundle.contradictions] == [("h3", "h1")]
    assert bundle.degraded == {}


def test_knowledge_hits_merge_after_direct_hits(db, settings, vector_search, research) -> None:
    insert_source(db, "ks-review", "review digest", page_id="paper1")
    insert_source(db, "ks-h1", "hypothesis digest", page_id="h1")
    processor = KnowledgeProcessor(db, settings, vector_search)
    processor.process_source("ks-review", "folding review summary " * 8)
    processor.process_source("ks-h1", "folding cooperativity digest " * 8)

    bundle = _service(db, settings, vector_search, research).assemble_context("folding", "ws-1")

    ids = [page.id for page in bundle.direct_hits]
    assert len(ids) == len(set(ids))
    assert set(ids[:3]) == {"h1", "h2", "e1"}
    assert ids[3:] == ["paper1"]
    assert [page.id for page in bundle.related_work] == ["h3"]


def test_failing_seed_only_drops_its_neighbours(db, settings, vector_search, research) -> None:
    graph = FailingGraph(research, failing={"h1"})
    bundle = _service(db, settings, vector_search, graph).assemble_context("folding", "ws-1")

    related_ids = {page.id for page in bundle.related_work}
    assert "paper1" in related_ids
    assert "h3" not in related_ids
    assert "related_work" in bundle.degraded
    assert "h1" in bundle.degraded["related_work"]
    assert "contradictions" in bundle.degraded
    assert bundle.contradictions == ()


def test_degraded_stage_does_not_fail_call(db, settings, vector_search, research) -> None:
    service = _service(db, settings, vector_search, research)

    def broken(*args, **kwargs):
        raise RuntimeError("fts unavailable")

    service.tasks.find_open_questions = broken
    bundle = service.assemble_context("folding", "ws-1")

    assert bundle.open_questions == ()
    assert bundle.degraded["open_questions"] == "RuntimeError: fts unavailable"
    assert bundle.direct_hits


def test_run_stage_tags_outcomes() -> None:
    ok = run_stage("demo", lambda: [1, 2], [])
    assert ok == StageResult(stage="demo", value=[1, 2])
    assert not ok.is_degraded

    def boom() -> list:
        raise ValueError("bad")

    failed = run_stage("demo", boom, [])
    assert failed.is_degraded
    assert failed.value == []
    assert failed.reason == "ValueError: bad"


def test_merge_and_timeline_helpers(db) -> None:
    insert_page(db, "p1", "One", updated_at=10)
    insert_page(db, "p2", "Two", updated_at=30)
    insert_page(db, "p3", "Three", updated_at=20)
    p1, p2, p3 = PageStore(db).get_pages(["p1", "p2", "p3"])

    assert [page.id for page in merge_pages([p1, p2], [p2, p3, p1])] == ["p1", "p2", "p3"]
    assert [entry.id for entry in build_timeline([p1, p2, p3])] == ["p2", "p3", "p1"]


def test_space_scope_limits_direct_hits(db, settings, vector_search) -> None:
    insert_page(db, "s1", "Folding in space one", "folding", space_id="sp-1")
    insert_page(db, "s2", "Folding in space two", "folding", space_id="sp-2")
    service = _service(db, settings, vector_search)
    bundle = service.assemble_context("folding", "ws-1", space_id="sp-1")
    assert [page.id for page in bundle.direct_hits] == ["s1"]


@pytest.mark.parametrize("metadata", [["tag-a", "tag-b"], "draft", 7])
def test_non_object_metadata_has_no_status(db, settings, vector_search, metadata) -> None:
    insert_page(db, "h9", "Folding side note", "folding", page_type="hypothesis", metadata=metadata)

    bundle = _service(db, settings, vector_search).assemble_context("folding", "ws-1")

    assert [page.id for page in bundle.direct_hits] == ["h9"]
    assert bundle.direct_hits[0].status is None
    assert bundle.timeline[0].metadata_status is None
    assert bundle.current_state.open == ()
    assert bundle.degraded == {}
