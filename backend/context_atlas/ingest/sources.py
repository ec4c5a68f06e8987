"""Persistence for knowledge source records."""

from __future__ import annotations

from typing import Any, Sequence

import orjson

from context_atlas.db.sqlite import SQLiteDatabase
from context_atlas.models.entities import KnowledgeChunk, KnowledgeSource
from context_atlas.utils.ids import new_id
from context_atlas.utils.time import ms_to_datetime, now_ms

_SOURCE_COLUMNS = """
  id, name, type, source_url, file_id, page_id, scope, workspace_id, space_id,
  status, error_message, last_synced_at, sync_schedule, chunk_count,
  created_at, updated_at
"""


class SourceRepository:
    def __init__(self, db: SQLiteDatabase) -> None:
        self.db = db

    def insert(
        self,
        name: str,
        type: str,
        scope: str,
        source_url: str | None = None,
        file_id: str | None = None,
        page_id: str | None = None,
        workspace_id: str | None = None,
        space_id: str | None = None,
        sync_schedule: str | None = None,
    ) -> KnowledgeSource:
        source_id = new_id("ks")
        now = now_ms()
        self.db.execute(
            """
            INSERT INTO knowledge_sources (
              id, name, type, source_url, file_id, page_id, scope, workspace_id,
              space_id, status, sync_schedule, chunk_count, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 'pending', ?, 0, ?, ?)
            """,
            [
                source_id,
                name,
                type,
                source_url,
                file_id,
                page_id,
                scope,
                workspace_id,
                space_id,
                sync_schedule,
                now,
                now,
            ],
        )
        self.db.commit()
        source = self.get(source_id)
        assert source is not None
        return source

    def get(self, source_id: str) -> KnowledgeSource | None:
        row = self.db.query_one(f"SELECT {_SOURCE_COLUMNS} FROM knowledge_sources WHERE id = ?", [source_id])
        return source_from_row(row) if row else None

    def list_for_scope(
        self,
        workspace_id: str | None,
        space_id: str | None = None,
        include_system: bool = True,
    ) -> list[KnowledgeSource]:
        clauses = ["(scope = 'workspace' AND workspace_id = ?)"]
        params: list[Any] = [workspace_id]
        if include_system:
            clauses.append("scope = 'system'")
        if space_id:
            clauses.append("(scope = 'space' AND space_id = ?)")
            params.append(space_id)
        rows = self.db.query(
            f"SELECT {_SOURCE_COLUMNS} FROM knowledge_sources WHERE {' OR '.join(clauses)} "
            "ORDER BY created_at DESC, id DESC",
            params,
        )
        return [source_from_row(row) for row in rows]

    def list_all(self) -> list[KnowledgeSource]:
        rows = self.db.query(f"SELECT {_SOURCE_COLUMNS} FROM knowledge_sources ORDER BY created_at", [])
        return [source_from_row(row) for row in rows]

    def delete(self, source_id: str) -> bool:
        cursor = self.db.execute("DELETE FROM knowledge_sources WHERE id = ?", [source_id])
        self.db.commit()
        return cursor.rowcount > 0

    def mark_pending(self, source_id: str) -> None:
        self._update(source_id, status="pending")

    def mark_processing(self, source_id: str) -> None:
        self._update(source_id, status="processing")

    def mark_ready(self, source_id: str, chunk_count: int) -> None:
        self._update(
            source_id,
            status="ready",
            chunk_count=chunk_count,
            last_synced_at=now_ms(),
            error_message=None,
        )

    def mark_error(self, source_id: str, message: str) -> None:
        self._update(source_id, status="error", error_message=message)

    def chunks(self, source_id: str, limit: int = 50, offset: int = 0) -> list[KnowledgeChunk]:
        rows = self.db.query(
            """
            SELECT id, source_id, content, chunk_index, metadata, token_count, created_at
            FROM knowledge_chunks
            WHERE source_id = ?
            ORDER BY chunk_index
            LIMIT ? OFFSET ?
            """,
            [source_id, limit, offset],
        )
        return [
            KnowledgeChunk(
                id=row["id"],
                source_id=row["source_id"],
                content=row["content"],
                chunk_index=row["chunk_index"],
                metadata=orjson.loads(row["metadata"]) if row["metadata"] else None,
                token_count=row["token_count"],
                created_at=ms_to_datetime(row["created_at"]),
            )
            for row in rows
        ]

    def page_ids(self, source_ids: Sequence[str], workspace_id: str) -> dict[str, str]:
        """Map source ids to the page they were ingested from, within a workspace."""
        if not source_ids:
            return {}
        placeholders = ",".join("?" for _ in source_ids)
        rows = self.db.query(
            f"""
            SELECT id, page_id FROM knowledge_sources
            WHERE id IN ({placeholders}) AND page_id IS NOT NULL AND workspace_id = ?
            """,
            [*source_ids, workspace_id],
        )
        return {row["id"]: row["page_id"] for row in rows}

    def _update(self, source_id: str, **fields: Any) -> None:
        fields["updated_at"] = now_ms()
        assignments = ", ".join(f"{column} = ?" for column in fields)
        self.db.execute(
            f"UPDATE knowledge_sources SET {assignments} WHERE id = ?",
            [*fields.values(), source_id],
        )
        self.db.commit()


def source_from_row(row: Any) -> KnowledgeSource:
    return KnowledgeSource(
        id=row["id"],
        name=row["name"],
        type=row["type"],
        scope=row["scope"],
        status=row["status"],
        source_url=row["source_url"],
        file_id=row["file_id"],
        page_id=row["page_id"],
        workspace_id=row["workspace_id"],
        space_id=row["space_id"],
        error_message=row["error_message"],
        chunk_count=row["chunk_count"],
        last_synced_at=ms_to_datetime(row["last_synced_at"]),
        sync_schedule=row["sync_schedule"],
        created_at=ms_to_datetime(row["created_at"]),
        updated_at=ms_to_datetime(row["updated_at"]),
    )


__all__ = ["SourceRepository", "source_from_row"]
