"""Typed relationships between pages.

``ResearchGraph`` is the narrow interface context assembly depends on. The
SQLite rendition stores edges in ``page_relationships`` and walks them
breadth-first, ignoring direction.
"""

from __future__ import annotations

from typing import Any, Protocol, Sequence

import orjson

from context_atlas.core.errors import InvalidInputError, NotFoundError
from context_atlas.db.sqlite import SQLiteDatabase
from context_atlas.models.entities import GraphEdge, GraphNode
from context_atlas.utils.ids import new_id
from context_atlas.utils.time import ms_to_datetime, now_ms

EDGE_TYPES = (
    "VALIDATES",
    "CONTRADICTS",
    "EXTENDS",
    "INSPIRED_BY",
    "USES_DATA_FROM",
    "FORMALIZES",
    "TESTS_HYPOTHESIS",
    "SPAWNED_FROM",
    "SUPERSEDES",
    "CITES",
    "REPLICATES",
)


class ResearchGraph(Protocol):
    def get_related_pages(
        self,
        page_id: str,
        max_depth: int = 2,
        workspace_id: str | None = None,
        edge_types: Sequence[str] | None = None,
    ) -> list[GraphNode]: ...

    def find_contradictions(self, workspace_id: str) -> list[GraphEdge]: ...


class SQLiteResearchGraph:
    def __init__(self, db: SQLiteDatabase) -> None:
        self.db = db

    def create_relationship(
        self,
        from_page_id: str,
        to_page_id: str,
        type: str,
        created_by: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> GraphEdge:
        if type not in EDGE_TYPES:
            raise InvalidInputError(f"Invalid edge type: {type}")
        missing = {from_page_id, to_page_id} - self._existing_pages([from_page_id, to_page_id])
        if missing:
            raise NotFoundError(f"Page {sorted(missing)[0]} not found")
        created_at = now_ms()
        self.db.execute(
            """
            INSERT INTO page_relationships (id, from_page_id, to_page_id, type, created_by, metadata, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            [
                new_id("rel"),
                from_page_id,
                to_page_id,
                type,
                created_by,
                orjson.dumps(metadata or {}).decode("utf-8"),
                created_at,
            ],
        )
        self.db.commit()
        return GraphEdge(
            from_id=from_page_id,
            to_id=to_page_id,
            type=type,
            created_at=ms_to_datetime(created_at),
            created_by=created_by,
            metadata=metadata or {},
        )

    def remove_relationship(self, from_page_id: str, to_page_id: str, type: str) -> int:
        cursor = self.db.execute(
            "DELETE FROM page_relationships WHERE from_page_id = ? AND to_page_id = ? AND type = ?",
            [from_page_id, to_page_id, type],
        )
        self.db.commit()
        return cursor.rowcount

    def get_related_pages(
        self,
        page_id: str,
        max_depth: int = 2,
        workspace_id: str | None = None,
        edge_types: Sequence[str] | None = None,
    ) -> list[GraphNode]:
        """Pages reachable within ``max_depth`` hops in either direction.

        The start page is never part of the result. ``workspace_id`` filters the
        returned pages, not the walk.
        """
        if not self._existing_pages([page_id]):
            raise NotFoundError(f"Page {page_id} is not in the graph")
        seen = {page_id}
        frontier = [page_id]
        reached: list[str] = []
        for _ in range(max(max_depth, 1)):
            neighbours = [node for node in self._neighbours(frontier, edge_types) if node not in seen]
            if not neighbours:
                break
            seen.update(neighbours)
            reached.extend(neighbours)
            frontier = neighbours
        return self._nodes(reached, workspace_id)

    def find_contradictions(self, workspace_id: str) -> list[GraphEdge]:
        rows = self.db.query(
            """
            SELECT r.from_page_id, r.to_page_id, r.type, r.created_by, r.metadata, r.created_at
            FROM page_relationships r
            JOIN pages a ON a.id = r.from_page_id
            WHERE r.type = 'CONTRADICTS' AND a.workspace_id = ?
            ORDER BY r.created_at, r.id
            """,
            [workspace_id],
        )
        return [
            GraphEdge(
                from_id=row["from_page_id"],
                to_id=row["to_page_id"],
                type=row["type"],
                created_at=ms_to_datetime(row["created_at"]),
                created_by=row["created_by"],
                metadata=orjson.loads(row["metadata"]) if row["metadata"] else None,
            )
            for row in rows
        ]

    def _neighbours(self, frontier: Sequence[str], edge_types: Sequence[str] | None) -> list[str]:
        placeholders = ",".join("?" for _ in frontier)
        type_clause = ""
        params: list[Any] = [*frontier, *frontier, *frontier]
        if edge_types:
            type_clause = f"AND type IN ({','.join('?' for _ in edge_types)})"
            params.extend(edge_types)
        rows = self.db.query(
            f"""
            SELECT CASE WHEN from_page_id IN ({placeholders}) THEN to_page_id ELSE from_page_id END AS other
            FROM page_relationships
            WHERE (from_page_id IN ({placeholders}) OR to_page_id IN ({placeholders}))
            {type_clause}
            """,
            params,
        )
        return list(dict.fromkeys(row["other"] for row in rows))

    def _existing_pages(self, page_ids: Sequence[str]) -> set[str]:
        placeholders = ",".join("?" for _ in page_ids)
        rows = self.db.query(
            f"SELECT id FROM pages WHERE id IN ({placeholders}) AND deleted_at IS NULL",
            list(page_ids),
        )
        return {row["id"] for row in rows}

    def _nodes(self, page_ids: Sequence[str], workspace_id: str | None) -> list[GraphNode]:
        if not page_ids:
            return []
        placeholders = ",".join("?" for _ in page_ids)
        rows = self.db.query(
            f"""
            SELECT id, page_type, title, workspace_id, space_id
            FROM pages
            WHERE id IN ({placeholders}) AND deleted_at IS NULL
              AND (? IS NULL OR workspace_id = ?)
            """,
            [*page_ids, workspace_id, workspace_id],
        )
        by_id = {
            row["id"]: GraphNode(
                id=row["id"],
                page_type=row["page_type"],
                title=row["title"],
                workspace_id=row["workspace_id"],
                space_id=row["space_id"],
            )
            for row in rows
        }
        return [by_id[page_id] for page_id in page_ids if page_id in by_id]


__all__ = ["EDGE_TYPES", "ResearchGraph", "SQLiteResearchGraph"]
