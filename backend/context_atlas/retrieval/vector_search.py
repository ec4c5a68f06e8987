"""Cosine-similarity search over stored knowledge and memory embeddings."""

from __future__ import annotations

import logging
import math
from typing import Any, Sequence

import orjson

from context_atlas.db.sqlite import SQLiteDatabase
from context_atlas.ingest.embeddings import EmbeddingModel, bytes_to_vector, vector_to_bytes
from context_atlas.models.entities import KnowledgeSearchResult, VectorSearchResult
from context_atlas.utils.ids import new_id
from context_atlas.utils.time import now_ms

logger = logging.getLogger(__name__)


class VectorSearchService:
    """Embeds text and ranks stored vectors by ``1 - cosine_distance``.

    Scope filtering happens in SQL; similarity is computed in process over the
    visible rows, so a row is searchable as soon as its insert commits.
    """

    def __init__(self, db: SQLiteDatabase, embedding_model: EmbeddingModel) -> None:
        self.db = db
        self.embedding_model = embedding_model

    def embed_text(self, text: str) -> list[float]:
        return self.embedding_model.embed(text)

    # Knowledge chunks -------------------------------------------------

    def search_knowledge(
        self,
        query_embedding: Sequence[float],
        workspace_id: str,
        space_id: str | None = None,
        limit: int = 5,
    ) -> list[KnowledgeSearchResult]:
        rows = self.db.query(
            """
            SELECT
              kc.id AS chunk_id,
              kc.source_id,
              kc.content,
              kc.embedding,
              kc.metadata,
              ks.name AS source_name
            FROM knowledge_chunks kc
            JOIN knowledge_sources ks ON ks.id = kc.source_id
            WHERE (
              kc.scope = 'system'
              OR (kc.scope = 'workspace' AND kc.workspace_id = ?)
              OR (kc.scope = 'space' AND kc.space_id = ?)
            )
            AND kc.embedding IS NOT NULL
            """,
            [workspace_id, space_id],
        )
        scored = _rank(query_embedding, rows, key="chunk_id")
        return [
            KnowledgeSearchResult(
                chunk_id=row["chunk_id"],
                source_id=row["source_id"],
                source_name=row["source_name"],
                content=row["content"],
                similarity=similarity,
                metadata=orjson.loads(row["metadata"]) if row["metadata"] else None,
            )
            for row, similarity in scored[:limit]
        ]

    def store_knowledge_chunk(
        self,
        source_id: str,
        content: str,
        embedding: Sequence[float] | None,
        chunk_index: int,
        scope: str,
        metadata: dict[str, Any] | None = None,
        token_count: int | None = None,
        workspace_id: str | None = None,
        space_id: str | None = None,
    ) -> str:
        chunk_id = new_id("kc")
        self.db.execute(
            """
            INSERT INTO knowledge_chunks (
              id, source_id, content, embedding, chunk_index, metadata,
              token_count, scope, workspace_id, space_id, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                chunk_id,
                source_id,
                content,
                vector_to_bytes(embedding) if embedding is not None else None,
                chunk_index,
                orjson.dumps(metadata).decode("utf-8") if metadata is not None else None,
                token_count,
                scope,
                workspace_id,
                space_id,
                now_ms(),
            ],
        )
        return chunk_id

    def delete_knowledge_chunks(self, source_id: str) -> int:
        cursor = self.db.execute("DELETE FROM knowledge_chunks WHERE source_id = ?", [source_id])
        self.db.commit()
        return cursor.rowcount

    def count_knowledge_chunks(self) -> int:
        row = self.db.query_one("SELECT COUNT(*) AS count FROM knowledge_chunks")
        return int(row["count"]) if row else 0

    # Agent memories ---------------------------------------------------

    def search_memories(
        self,
        query_embedding: Sequence[float],
        workspace_id: str,
        space_id: str | None = None,
        limit: int = 10,
        min_similarity: float = 0.5,
    ) -> list[VectorSearchResult]:
        rows = self.db.query(
            """
            SELECT me.memory_id, me.embedding
            FROM memory_embeddings me
            JOIN agent_memories am ON am.id = me.memory_id
            WHERE am.workspace_id = ?
              AND (? IS NULL OR am.space_id = ?)
            """,
            [workspace_id, space_id, space_id],
        )
        scored = _rank(query_embedding, rows, key="memory_id")
        return [
            VectorSearchResult(id=row["memory_id"], similarity=similarity)
            for row, similarity in scored
            if similarity >= min_similarity
        ][:limit]

    def store_memory_embedding(
        self,
        memory_id: str,
        embedding: Sequence[float],
        model: str | None = None,
    ) -> None:
        self.db.execute(
            """
            INSERT INTO memory_embeddings (memory_id, embedding, model, created_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT (memory_id) DO UPDATE SET
              embedding = excluded.embedding,
              model = excluded.model
            """,
            [memory_id, vector_to_bytes(embedding), model or self.embedding_model.model_name, now_ms()],
        )
        self.db.commit()

    def delete_memory_embedding(self, memory_id: str) -> None:
        self.db.execute("DELETE FROM memory_embeddings WHERE memory_id = ?", [memory_id])
        self.db.commit()


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """``1 - cosine_distance``; zero vectors have similarity 0."""
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def _rank(query_embedding: Sequence[float], rows: Sequence[Any], key: str) -> list[tuple[Any, float]]:
    scored: list[tuple[Any, float]] = []
    skipped = 0
    for row in rows:
        vector = bytes_to_vector(row["embedding"])
        if len(vector) != len(query_embedding):
            skipped += 1
            continue
        scored.append((row, cosine_similarity(query_embedding, vector)))
    if skipped:
        logger.warning("Skipped %s stored vectors with mismatched dimensions", skipped)
    # Ties broken by id so repeated queries return the same order.
    scored.sort(key=lambda item: (-item[1], item[0][key]))
    return scored


__all__ = ["VectorSearchService", "cosine_similarity"]
