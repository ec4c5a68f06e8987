"""Tests for the SQLite wrapper."""

from __future__ import annotations

import threading

from context_atlas.db.sqlite import SQLiteDatabase


def test_ensure_schema_is_idempotent_and_enables_wal(tmp_path) -> None:
    db = SQLiteDatabase(tmp_path / "nested" / "atlas.db")
    db.ensure_schema()
    db.ensure_schema()

    assert (tmp_path / "nested" / "atlas.db").exists()
    assert db.query_one("PRAGMA journal_mode")[0] == "wal"
    tables = {row["name"] for row in db.query("SELECT name FROM sqlite_master WHERE type = 'table'")}
    assert {"knowledge_sources", "knowledge_chunks", "pages", "tasks", "pages_fts"} <= tables
    db.close()


def test_connection_is_shared_across_threads(db) -> None:
    errors: list[Exception] = []

    def write(idx: int) -> None:
        try:
            db.execute(
                "INSERT INTO agent_memories (id, workspace_id, content, created_at) VALUES (?, ?, ?, ?)",
                [f"mem-{idx}", "ws-1", "note", idx],
            )
            db.commit()
        except Exception as exc:  # pragma: no cover - surfaced by the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=write, args=(idx,)) for idx in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert db.query_one("SELECT count(*) FROM agent_memories")[0] == 8
