from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING, Any

from ..errors import QuerySyntaxError, StorageUnavailable
from ..observation_types import validate_observation_type
from . import utils as store_utils
from .types import SearchResult

if TYPE_CHECKING:
    from ._store import MemoryStore

logger = logging.getLogger(__name__)

_STORAGE_ERROR_CODES = frozenset(
    {
        sqlite3.SQLITE_BUSY,
        sqlite3.SQLITE_LOCKED,
        sqlite3.SQLITE_CANTOPEN,
        sqlite3.SQLITE_IOERR,
        sqlite3.SQLITE_FULL,
    }
)


def search(
    store: MemoryStore,
    query: str,
    type: str | None = None,
    limit: int = 10,
) -> list[SearchResult]:
    """Full-text search over type, narrative and facts of live observations.

    The query goes to FTS5 unchanged, so operators (AND/OR/NOT, prefix*, "phrases",
    column filters) work and malformed input raises QuerySyntaxError.
    Results are ordered by confidence, then recency.
    """

    if not query or not query.strip():
        return []
    params: list[Any] = [query]
    where_clauses = ["observations_fts MATCH ?"]
    if type:
        where_clauses.append("observations.type = ?")
        params.append(validate_observation_type(type))
    where = " AND ".join(where_clauses)
    sql = f"""
        SELECT observations.id, observations.type, observations.narrative,
            observations.confidence, observations.created_at
        FROM observations_fts
        JOIN observations ON observations.id = observations_fts.rowid
        WHERE {where}
        ORDER BY observations.confidence DESC, observations.created_at DESC, observations.id DESC
        LIMIT ?
    """
    params.append(store_utils.parse_count(limit, name="limit"))
    try:
        rows = store.conn.execute(sql, params).fetchall()
    except sqlite3.OperationalError as exc:
        message = str(exc)
        # Extended result codes keep the primary code in the low byte.
        if ((exc.sqlite_errorcode or 0) & 0xFF) in _STORAGE_ERROR_CODES:
            raise StorageUnavailable(message) from exc
        logger.debug("rejected search query %r: %s", query, message)
        raise QuerySyntaxError(message) from exc
    return [
        SearchResult(
            id=int(row["id"]),
            type=row["type"],
            narrative=row["narrative"],
            confidence=float(row["confidence"]),
            created_at=row["created_at"],
        )
        for row in rows
    ]


def rebuild_index(store: MemoryStore) -> None:
    with store.transaction() as conn:
        conn.execute("INSERT INTO observations_fts(observations_fts) VALUES('rebuild')")


def optimize_index(store: MemoryStore) -> None:
    with store.transaction() as conn:
        conn.execute("INSERT INTO observations_fts(observations_fts) VALUES('optimize')")
