"""Test fixtures for Context Atlas."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import orjson
import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from context_atlas.core.config import Settings  # noqa: E402
from context_atlas.db.sqlite import SQLiteDatabase  # noqa: E402
from context_atlas.ingest.embeddings import HashedEmbeddingModel  # noqa: E402
from context_atlas.retrieval.vector_search import VectorSearchService  # noqa: E402
from context_atlas.utils.time import now_ms  # noqa: E402


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset global singletons and environment between tests."""
    monkeypatch.setenv("CTXA_DB_PATH", str(tmp_path / "atlas.db"))
    monkeypatch.setenv("CTXA_EMBEDDING_PROVIDER", "hashed")
    monkeypatch.delenv("CTXA_CONFIG", raising=False)

    from context_atlas.api import dependencies as deps

    deps.reset_dependencies()
    yield
    deps.reset_dependencies()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(db_path=tmp_path / "unit.db", embedding_dim=64)


@pytest.fixture
def db(settings: Settings) -> SQLiteDatabase:
    database = SQLiteDatabase(settings.db_path)
    database.ensure_schema()
    yield database
    database.close()


@pytest.fixture
def vector_search(db: SQLiteDatabase, settings: Settings) -> VectorSearchService:
    return VectorSearchService(db, HashedEmbeddingModel(dim=settings.embedding_dim))


def insert_page(
    db: SQLiteDatabase,
    page_id: str,
    title: str,
    text: str = "",
    workspace_id: str = "ws-1",
    space_id: str | None = None,
    page_type: str | None = None,
    metadata: Any = None,
    updated_at: int | None = None,
    deleted: bool = False,
) -> str:
    stamp = updated_at if updated_at is not None else now_ms()
    db.execute(
        """
        INSERT INTO pages (
          id, slug_id, title, text_content, page_type, metadata, workspace_id,
          space_id, created_at, updated_at, deleted_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        [
            page_id,
            page_id,
            title,
            text,
            page_type,
            orjson.dumps(metadata).decode("utf-8") if metadata is not None else None,
            workspace_id,
            space_id,
            stamp,
            stamp,
            stamp if deleted else None,
        ],
    )
    db.commit()
    return page_id


def insert_task(
    db: SQLiteDatabase,
    task_id: str,
    title: str,
    description: str = "",
    status: str = "todo",
    labels: tuple[str, ...] = (),
    workspace_id: str = "ws-1",
    space_id: str | None = None,
    deleted: bool = False,
) -> str:
    stamp = now_ms()
    db.execute(
        """
        INSERT INTO tasks (
          id, title, description, status, priority, workspace_id, space_id,
          created_at, updated_at, deleted_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        [task_id, title, description, status, "medium", workspace_id, space_id, stamp, stamp, stamp if deleted else None],
    )
    for name in labels:
        label_id = f"label-{name}"
        db.execute(
            "INSERT OR IGNORE INTO task_labels (id, name, workspace_id) VALUES (?, ?, ?)",
            [label_id, name, workspace_id],
        )
        db.execute(
            "INSERT INTO task_label_assignments (task_id, label_id) VALUES (?, ?)",
            [task_id, label_id],
        )
    db.commit()
    return task_id


def insert_memory(
    db: SQLiteDatabase,
    memory_id: str,
    content: str,
    workspace_id: str = "ws-1",
    space_id: str | None = None,
) -> str:
    db.execute(
        "INSERT INTO agent_memories (id, workspace_id, space_id, content, created_at) VALUES (?, ?, ?, ?, ?)",
        [memory_id, workspace_id, space_id, content, now_ms()],
    )
    db.commit()
    return memory_id


def insert_source(
    db: SQLiteDatabase,
    source_id: str,
    name: str,
    type: str = "markdown",
    scope: str = "workspace",
    workspace_id: str | None = "ws-1",
    space_id: str | None = None,
    page_id: str | None = None,
    source_url: str | None = None,
    status: str = "pending",
) -> str:
    stamp = now_ms()
    db.execute(
        """
        INSERT INTO knowledge_sources (
          id, name, type, source_url, page_id, scope, workspace_id, space_id,
          status, chunk_count, created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?)
        """,
        [source_id, name, type, source_url, page_id, scope, workspace_id, space_id, status, stamp, stamp],
    )
    db.commit()
    return source_id


def inline_scheduler(func, *args) -> None:
    """Run a job immediately on the calling thread."""
    func(*args)


@pytest.fixture(scope="session")
def long_markdown() -> str:
    sections = []
    for idx in range(1, 4):
        paragraphs = "\n\n".join(
            f"Paragraph {idx}.{p} discusses protein folding results and measurement noise in detail. " * 3
            for p in range(1, 7)
        )
        sections.append(f"## Section {idx}\n\n{paragraphs}")
    return "# Research notes\n\n" + "\n\n".join(sections)
