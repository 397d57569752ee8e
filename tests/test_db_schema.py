from __future__ import annotations

import sqlite3
from pathlib import Path

from obsmem import db
from obsmem.store import MemoryStore

LEGACY_TABLE = """
CREATE TABLE observations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    type TEXT NOT NULL,
    narrative TEXT NOT NULL,
    facts TEXT,
    confidence REAL DEFAULT 1.0,
    files_read TEXT,
    files_modified TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
)
"""


def _columns(conn: sqlite3.Connection) -> set[str]:
    return {row[1] for row in conn.execute("PRAGMA table_info(observations)").fetchall()}


def test_initialize_schema_sets_user_version(tmp_path: Path) -> None:
    conn = db.connect(tmp_path / "memory.db")
    try:
        db.initialize_schema(conn)
        version = db.schema_version(conn)
        triggers = {
            row[0]
            for row in conn.execute(
                "SELECT name FROM sqlite_master WHERE type = 'trigger'"
            ).fetchall()
        }
        fts = conn.execute(
            "SELECT name FROM sqlite_master WHERE name = 'observations_fts'"
        ).fetchone()
    finally:
        conn.close()

    assert version == db.SCHEMA_VERSION
    assert fts is not None
    assert {"observations_ai", "observations_au", "observations_ad"} <= triggers


def test_initialize_schema_is_idempotent(tmp_path: Path) -> None:
    path = tmp_path / "memory.db"
    with MemoryStore(path) as store:
        store.create("learning", "first open")
    with MemoryStore(path) as store:
        assert store.count() == 1
        assert db.pending_migrations(store.conn) == []


def test_store_creates_missing_parent_directory(tmp_path: Path) -> None:
    path = tmp_path / ".opencode" / "memory" / "memory.db"
    with MemoryStore(path) as store:
        store.create("progress", "created directories")
    assert path.exists()


def test_apply_migrations_upgrades_legacy_table(tmp_path: Path) -> None:
    path = tmp_path / "memory.db"
    conn = db.connect(path)
    try:
        conn.execute(LEGACY_TABLE)
        conn.execute(
            """
            INSERT INTO observations(type, narrative, facts, files_read, files_modified, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            ("decision", "Adopt WAL journaling", '["readers never block"]', None, None,
             "2024-01-02 03:04:05"),
        )
        conn.commit()

        assert db.pending_migrations(conn) == [1]
        applied = db.apply_migrations(conn)

        assert applied == [1]
        assert db.schema_version(conn) == db.SCHEMA_VERSION
        assert {"concepts", "bead_id", "expires_at"} <= _columns(conn)
    finally:
        conn.close()

    with MemoryStore(path) as store:
        obs = store.get(1)
        assert obs is not None
        assert obs.created_at == "2024-01-02T03:04:05+00:00"
        assert obs.facts == ["readers never block"]
        assert obs.files_read == []
        assert obs.concepts == []
        assert [hit.id for hit in store.search("journaling")] == [1]


def test_opening_legacy_store_migrates_automatically(tmp_path: Path) -> None:
    path = tmp_path / "memory.db"
    raw = sqlite3.connect(path)
    try:
        raw.execute(LEGACY_TABLE)
        raw.execute(
            "INSERT INTO observations(type, narrative, facts) VALUES ('blocker', 'CI flaky', '[]')"
        )
        raw.commit()
    finally:
        raw.close()

    with MemoryStore(path) as store:
        assert db.schema_version(store.conn) == db.SCHEMA_VERSION
        assert [hit.id for hit in store.search("flaky")] == [1]
        new_id = store.create("learning", "after migration")
        assert new_id == 2


def test_decode_list_tolerates_bad_json() -> None:
    assert db.decode_list(None) == []
    assert db.decode_list("not json") == []
    assert db.decode_list('{"a": 1}') == []
    assert db.decode_list('["a", null, 2]') == ["a", "2"]
