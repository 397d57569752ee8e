from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from .. import db
from ..errors import StorageUnavailable, ValidationError
from ..observation_types import validate_observation_type
from . import maintenance as store_maintenance
from . import search as store_search
from . import timeline as store_timeline
from . import utils as store_utils
from .types import AdminResult, Observation, SearchResult

logger = logging.getLogger(__name__)


class MemoryStore:
    DEFAULT_CONFIDENCE = 1.0

    def __init__(
        self,
        db_path: Path | str,
        *,
        busy_timeout_ms: int = db.DEFAULT_BUSY_TIMEOUT_MS,
        checkpoint_dir: Path | str | None = None,
    ):
        self.db_path = Path(db_path).expanduser()
        self.checkpoint_dir = (
            Path(checkpoint_dir).expanduser() if checkpoint_dir else self.db_path.parent
        )
        self.conn = db.connect(self.db_path, busy_timeout_ms=busy_timeout_ms)
        try:
            db.initialize_schema(self.conn)
        except sqlite3.Error as exc:
            self.conn.close()
            raise StorageUnavailable(
                f"cannot initialize memory store {self.db_path}: {exc}"
            ) from exc

    @property
    def memory_dir(self) -> Path:
        return self.db_path.parent

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> MemoryStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run statements under one write lock; table and search index commit together."""

        self.conn.execute("BEGIN IMMEDIATE")
        try:
            yield self.conn
        except BaseException:
            self.conn.rollback()
            raise
        self.conn.commit()

    @staticmethod
    def _now_iso() -> str:
        return store_utils.now_iso()

    def create(
        self,
        type: str,
        narrative: str,
        facts: Iterable[str] | None = None,
        confidence: float | None = None,
        files_read: Iterable[str] | None = None,
        files_modified: Iterable[str] | None = None,
        concepts: Iterable[str] | None = None,
        bead_id: str | None = None,
        expires_at: str | None = None,
    ) -> int:
        obs_type = validate_observation_type(type)
        try:
            confidence_value = (
                self.DEFAULT_CONFIDENCE if confidence is None else float(confidence)
            )
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"invalid confidence: {confidence!r}") from exc
        with self.transaction() as conn:
            # Taken under the write lock so created_at order follows id order.
            created_at = self._now_iso()
            cur = conn.execute(
                """
                INSERT INTO observations(
                    type,
                    narrative,
                    facts,
                    confidence,
                    files_read,
                    files_modified,
                    concepts,
                    bead_id,
                    created_at,
                    expires_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    obs_type,
                    "" if narrative is None else str(narrative),
                    db.encode_list(store_utils.coerce_str_list(facts)),
                    confidence_value,
                    db.encode_list(store_utils.coerce_str_list(files_read)),
                    db.encode_list(store_utils.coerce_str_list(files_modified)),
                    db.encode_list(_dedupe(store_utils.coerce_str_list(concepts))),
                    bead_id or None,
                    created_at,
                    expires_at or None,
                ),
            )
        lastrowid = cur.lastrowid
        if lastrowid is None:
            raise RuntimeError("Failed to create observation")
        return int(lastrowid)

    def get(self, observation_id: int) -> Observation | None:
        row = self.conn.execute(
            "SELECT * FROM observations WHERE id = ?",
            (store_utils.parse_id(observation_id),),
        ).fetchone()
        if row is None:
            return None
        return store_utils.row_to_observation(row)

    def get_many(self, ids: str | Iterable[Any]) -> list[Observation]:
        id_list = store_utils.parse_ids(ids)
        placeholders = ",".join("?" for _ in id_list)
        rows = self.conn.execute(
            f"SELECT * FROM observations WHERE id IN ({placeholders}) ORDER BY id ASC",
            id_list,
        ).fetchall()
        return [store_utils.row_to_observation(row) for row in rows]

    def by_type(self, type: str, limit: int = 10) -> list[Observation]:
        obs_type = validate_observation_type(type)
        rows = self.conn.execute(
            """
            SELECT * FROM observations
            WHERE type = ?
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (obs_type, store_utils.parse_count(limit, name="limit")),
        ).fetchall()
        return [store_utils.row_to_observation(row) for row in rows]

    def by_bead(self, bead_id: str) -> list[Observation]:
        rows = self.conn.execute(
            "SELECT * FROM observations WHERE bead_id = ? ORDER BY created_at DESC, id DESC",
            (bead_id,),
        ).fetchall()
        return [store_utils.row_to_observation(row) for row in rows]

    def link_concept(self, observation_id: int, concept: str) -> bool:
        """Append a concept tag; returns False when the id is unknown or already tagged."""

        concept = (concept or "").strip()
        if not concept:
            raise ValidationError("concept must not be empty")
        observation_id = store_utils.parse_id(observation_id)
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT concepts FROM observations WHERE id = ?", (observation_id,)
            ).fetchone()
            if row is None:
                return False
            concepts = db.decode_list(row["concepts"])
            if concept in concepts:
                return False
            concepts.append(concept)
            conn.execute(
                "UPDATE observations SET concepts = ? WHERE id = ?",
                (db.encode_list(concepts), observation_id),
            )
        return True

    def link_bead(self, observation_id: int, bead_id: str) -> int:
        bead_id = (bead_id or "").strip()
        if not bead_id:
            raise ValidationError("bead id must not be empty")
        observation_id = store_utils.parse_id(observation_id)
        with self.transaction() as conn:
            cur = conn.execute(
                "UPDATE observations SET bead_id = ? WHERE id = ?",
                (bead_id, observation_id),
            )
        return int(cur.rowcount or 0)

    def count(self) -> int:
        row = self.conn.execute("SELECT COUNT(*) AS total FROM observations").fetchone()
        return int(row["total"]) if row else 0

    def count_by_type(self) -> dict[str, int]:
        rows = self.conn.execute(
            "SELECT type, COUNT(*) AS total FROM observations GROUP BY type ORDER BY type"
        ).fetchall()
        return {row["type"]: int(row["total"]) for row in rows}

    def read_memory_file(self, relative_path: str) -> str | None:
        base = self.memory_dir.resolve()
        target = (base / relative_path).resolve()
        if not target.is_relative_to(base):
            raise ValidationError(f"path escapes the memory directory: {relative_path}")
        if not target.is_file():
            return None
        try:
            return target.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise ValidationError(f"not a UTF-8 text file: {relative_path}") from exc

    def search(
        self, query: str, type: str | None = None, limit: int = 10
    ) -> list[SearchResult]:
        return store_search.search(self, query, type=type, limit=limit)

    def rebuild_search_index(self) -> None:
        store_search.rebuild_index(self)

    def timeline(self, observation_id: int, before: int = 3, after: int = 3) -> list[Observation]:
        return store_timeline.timeline(self, observation_id, before=before, after=after)

    def status(self) -> AdminResult:
        return store_maintenance.status(self)

    def archive(self, older_than_days: float = 90, dry_run: bool = False) -> AdminResult:
        return store_maintenance.archive(self, older_than_days=older_than_days, dry_run=dry_run)

    def checkpoint(self) -> AdminResult:
        return store_maintenance.checkpoint(self)

    def vacuum(self) -> AdminResult:
        return store_maintenance.vacuum(self)

    def migrate(self) -> AdminResult:
        return store_maintenance.migrate(self)

    def storage_size(self) -> int:
        return store_maintenance.storage_size(self)


def _dedupe(values: list[str]) -> list[str]:
    seen: set[str] = set()
    deduped: list[str] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        deduped.append(value)
    return deduped
