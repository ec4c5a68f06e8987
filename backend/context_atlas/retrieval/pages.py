"""Read-side access to pages and tasks."""

from __future__ import annotations

import re
from typing import Any, Sequence

import orjson

from context_atlas.db.sqlite import SQLiteDatabase
from context_atlas.models.entities import OpenQuestion, TypedPage
from context_atlas.utils.time import ms_to_datetime

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)
OPEN_QUESTION_LABELS = ("open-question", "open question")

STOPWORDS = frozenset(
    {
        "a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "by", "from", "is", "it", "as", "was", "are", "be",
        "this", "that", "these", "those", "which", "has", "have", "had", "not",
        "no", "do", "does", "did", "will", "would", "could", "should", "may",
        "might", "can", "i", "you", "he", "she", "we", "they", "me", "my",
        "your", "its", "our", "their", "what", "who", "whom", "how", "when",
        "where", "why", "so", "if", "then", "than", "just", "about", "into",
        "also", "more", "been", "being", "some", "any", "all", "each", "very",
        "there", "here", "us", "know", "known", "tell", "anything", "something",
    }
)

_PAGE_COLUMNS = """
  p.id, p.slug_id, p.title, p.page_type, p.metadata, p.workspace_id, p.space_id,
  p.created_at, p.updated_at
"""


def build_match_query(text: str) -> str | None:
    """Quote each content word so FTS5 treats it as a plain term; all terms must match.

    English stopwords and question framing ("what do we know about") are
    dropped first, so natural-language questions match on their subject.
    """
    tokens = [token for token in _TOKEN_RE.findall(text) if token.lower() not in STOPWORDS]
    if not tokens:
        return None
    return " ".join(f'"{token}"' for token in tokens)


class PageStore:
    def __init__(self, db: SQLiteDatabase) -> None:
        self.db = db

    def search(
        self,
        query: str,
        workspace_id: str,
        space_id: str | None = None,
        limit: int = 10,
    ) -> list[TypedPage]:
        """Full-text search ranked by bm25, best match first."""
        match = build_match_query(query)
        if match is None:
            return []
        rows = self.db.query(
            f"""
            SELECT {_PAGE_COLUMNS}
            FROM pages_fts
            JOIN pages p ON p.id = pages_fts.page_id
            WHERE pages_fts MATCH ?
              AND p.workspace_id = ?
              AND p.deleted_at IS NULL
              AND (? IS NULL OR p.space_id = ?)
            ORDER BY bm25(pages_fts), p.id
            LIMIT ?
            """,
            [match, workspace_id, space_id, space_id, limit],
        )
        return [page_from_row(row) for row in rows]

    def get_pages(self, page_ids: Sequence[str]) -> list[TypedPage]:
        """Fetch non-deleted pages, returned in the order of ``page_ids``."""
        ids = list(dict.fromkeys(page_ids))
        if not ids:
            return []
        placeholders = ",".join("?" for _ in ids)
        rows = self.db.query(
            f"SELECT {_PAGE_COLUMNS} FROM pages p WHERE p.id IN ({placeholders}) AND p.deleted_at IS NULL",
            ids,
        )
        by_id = {row["id"]: page_from_row(row) for row in rows}
        return [by_id[page_id] for page_id in ids if page_id in by_id]

    def get_page_content(self, page_id: str) -> dict[str, Any] | None:
        row = self.db.query_one(
            """
            SELECT id, title, text_content, page_type, metadata, workspace_id, space_id, updated_at
            FROM pages WHERE id = ? AND deleted_at IS NULL
            """,
            [page_id],
        )
        if row is None:
            return None
        return {
            "id": row["id"],
            "title": row["title"],
            "text": row["text_content"] or "",
            "page_type": row["page_type"],
            "metadata": _load_json(row["metadata"]),
            "workspace_id": row["workspace_id"],
            "space_id": row["space_id"],
            "updated_at": ms_to_datetime(row["updated_at"]),
        }


class TaskStore:
    def __init__(self, db: SQLiteDatabase) -> None:
        self.db = db

    def find_open_questions(
        self,
        query: str,
        workspace_id: str,
        space_id: str | None = None,
        limit: int = 10,
    ) -> list[OpenQuestion]:
        """Non-done tasks labelled as open questions or matching ``query``."""
        conditions = [
            """EXISTS (
                SELECT 1 FROM task_label_assignments tla
                JOIN task_labels tl ON tl.id = tla.label_id
                WHERE tla.task_id = t.id AND lower(tl.name) IN (?, ?)
            )"""
        ]
        params: list[Any] = [workspace_id, space_id, space_id, *OPEN_QUESTION_LABELS]
        match = build_match_query(query)
        if match is not None:
            conditions.append("t.id IN (SELECT task_id FROM tasks_fts WHERE tasks_fts MATCH ?)")
            params.append(match)
        params.append(limit)
        rows = self.db.query(
            f"""
            SELECT t.id, t.title, t.status, t.priority
            FROM tasks t
            WHERE t.workspace_id = ?
              AND t.deleted_at IS NULL
              AND t.status != 'done'
              AND (? IS NULL OR t.space_id = ?)
              AND ({' OR '.join(conditions)})
            ORDER BY t.updated_at DESC, t.id
            LIMIT ?
            """,
            params,
        )
        labels = self._labels_for([row["id"] for row in rows])
        return [
            OpenQuestion(
                id=row["id"],
                title=row["title"],
                status=row["status"],
                priority=row["priority"],
                labels=tuple(labels.get(row["id"], ())),
            )
            for row in rows
        ]

    def _labels_for(self, task_ids: Sequence[str]) -> dict[str, list[str]]:
        if not task_ids:
            return {}
        placeholders = ",".join("?" for _ in task_ids)
        rows = self.db.query(
            f"""
            SELECT tla.task_id, tl.name
            FROM task_label_assignments tla
            JOIN task_labels tl ON tl.id = tla.label_id
            WHERE tla.task_id IN ({placeholders})
            ORDER BY tl.name
            """,
            list(task_ids),
        )
        labels: dict[str, list[str]] = {}
        for row in rows:
            labels.setdefault(row["task_id"], []).append(row["name"])
        return labels


def page_from_row(row: Any) -> TypedPage:
    return TypedPage(
        id=row["id"],
        slug_id=row["slug_id"],
        title=row["title"],
        page_type=row["page_type"],
        metadata=_load_json(row["metadata"]),
        workspace_id=row["workspace_id"],
        space_id=row["space_id"],
        created_at=ms_to_datetime(row["created_at"]),
        updated_at=ms_to_datetime(row["updated_at"]),
    )


def _load_json(value: str | None) -> Any:
    return orjson.loads(value) if value else None


__all__ = ["PageStore", "TaskStore", "OPEN_QUESTION_LABELS", "build_match_query", "page_from_row"]
