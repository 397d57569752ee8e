from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

from .errors import StorageUnavailable

logger = logging.getLogger(__name__)

DEFAULT_BUSY_TIMEOUT_MS = 5000

SCHEMA_VERSION = 1

_OBSERVATIONS_TABLE = """
CREATE TABLE IF NOT EXISTS observations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    type TEXT NOT NULL,
    narrative TEXT NOT NULL,
    facts TEXT DEFAULT '[]',
    confidence REAL DEFAULT 1.0,
    files_read TEXT DEFAULT '[]',
    files_modified TEXT DEFAULT '[]',
    concepts TEXT DEFAULT '[]',
    bead_id TEXT,
    created_at TEXT NOT NULL,
    expires_at TEXT
)
"""

_OBSERVATION_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_observations_type ON observations(type)",
    "CREATE INDEX IF NOT EXISTS idx_observations_bead_id ON observations(bead_id)",
    "CREATE INDEX IF NOT EXISTS idx_observations_created_at ON observations(created_at)",
)

# Older stores shipped a search table with an extra id column and triggers of the
# same names, so both are replaced rather than created-if-missing.
_SEARCH_INDEX = (
    "DROP TRIGGER IF EXISTS observations_ai",
    "DROP TRIGGER IF EXISTS observations_au",
    "DROP TRIGGER IF EXISTS observations_ad",
    "DROP TABLE IF EXISTS observations_fts",
    """
    CREATE VIRTUAL TABLE observations_fts USING fts5(
        type, narrative, facts,
        content='observations',
        content_rowid='id'
    )
    """,
    """
    CREATE TRIGGER observations_ai AFTER INSERT ON observations BEGIN
        INSERT INTO observations_fts(rowid, type, narrative, facts)
        VALUES (new.id, new.type, new.narrative, new.facts);
    END
    """,
    """
    CREATE TRIGGER observations_au AFTER UPDATE ON observations BEGIN
        INSERT INTO observations_fts(observations_fts, rowid, type, narrative, facts)
        VALUES ('delete', old.id, old.type, old.narrative, old.facts);
        INSERT INTO observations_fts(rowid, type, narrative, facts)
        VALUES (new.id, new.type, new.narrative, new.facts);
    END
    """,
    """
    CREATE TRIGGER observations_ad AFTER DELETE ON observations BEGIN
        INSERT INTO observations_fts(observations_fts, rowid, type, narrative, facts)
        VALUES ('delete', old.id, old.type, old.narrative, old.facts);
    END
    """,
)


def connect(
    db_path: Path | str, *, busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS
) -> sqlite3.Connection:
    path = Path(db_path).expanduser()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise StorageUnavailable(f"cannot create memory directory {path.parent}: {exc}") from exc
    try:
        conn = sqlite3.connect(path, timeout=max(0, busy_timeout_ms) / 1000)
    except sqlite3.Error as exc:
        raise StorageUnavailable(f"cannot open memory store {path}: {exc}") from exc
    try:
        conn.row_factory = sqlite3.Row
        conn.execute(f"PRAGMA busy_timeout = {int(max(0, busy_timeout_ms))}")
        try:
            conn.execute("PRAGMA journal_mode = WAL")
        except sqlite3.OperationalError:
            conn.execute("PRAGMA journal_mode = DELETE")
        conn.execute("PRAGMA synchronous = NORMAL")
    except sqlite3.Error as exc:
        conn.close()
        raise StorageUnavailable(f"cannot open memory store {path}: {exc}") from exc
    return conn


def schema_version(conn: sqlite3.Connection) -> int:
    row = conn.execute("PRAGMA user_version").fetchone()
    return int(row[0]) if row else 0


def pending_migrations(conn: sqlite3.Connection) -> list[int]:
    current = schema_version(conn)
    return [version for version in sorted(MIGRATIONS) if version > current]


def initialize_schema(conn: sqlite3.Connection) -> None:
    """Create or upgrade the observation schema; a no-op at the current version."""

    if schema_version(conn) >= SCHEMA_VERSION:
        return
    apply_migrations(conn)


def apply_migrations(conn: sqlite3.Connection) -> list[int]:
    applied: list[int] = []
    for version in pending_migrations(conn):
        logger.info("applying memory schema migration v%s", version)
        conn.execute("BEGIN IMMEDIATE")
        try:
            MIGRATIONS[version](conn)
            conn.execute(f"PRAGMA user_version = {int(version)}")
        except BaseException:
            conn.rollback()
            raise
        conn.commit()
        applied.append(version)
    return applied


def _migrate_v1(conn: sqlite3.Connection) -> None:
    conn.execute(_OBSERVATIONS_TABLE)
    _ensure_column(conn, "observations", "concepts", "TEXT DEFAULT '[]'")
    _ensure_column(conn, "observations", "bead_id", "TEXT")
    _ensure_column(conn, "observations", "expires_at", "TEXT")
    for statement in _OBSERVATION_INDEXES:
        conn.execute(statement)
    for statement in _SEARCH_INDEX:
        conn.execute(statement)
    # Rows written with CURRENT_TIMESTAMP lack the ISO separator and offset.
    conn.execute(
        """
        UPDATE observations
        SET created_at = replace(created_at, ' ', 'T') || '+00:00'
        WHERE created_at LIKE '____-__-__ __:__:__'
        """
    )
    conn.execute("INSERT INTO observations_fts(observations_fts) VALUES('rebuild')")


MIGRATIONS: dict[int, Callable[[sqlite3.Connection], None]] = {
    1: _migrate_v1,
}


def _ensure_column(conn: sqlite3.Connection, table: str, column: str, column_type: str) -> None:
    existing = {row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()}
    if column in existing:
        return
    conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {column_type}")


def encode_list(values: Iterable[Any] | None) -> str:
    return json.dumps([str(value) for value in (values or [])], ensure_ascii=False)


def decode_list(text: str | None) -> list[str]:
    if not text:
        return []
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return []
    if not isinstance(parsed, list):
        return []
    return [str(item) for item in parsed if item is not None]