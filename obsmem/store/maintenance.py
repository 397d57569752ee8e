from __future__ import annotations

import datetime as dt
import logging
import math
import os
import sqlite3
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

from .. import db
from ..errors import ValidationError
from . import search as store_search
from .types import AdminResult

if TYPE_CHECKING:
    from ._store import MemoryStore

logger = logging.getLogger(__name__)


def storage_size(store: MemoryStore) -> int:
    total = 0
    for path in (store.db_path, store.db_path.with_name(store.db_path.name + "-wal")):
        try:
            total += path.stat().st_size
        except FileNotFoundError:
            continue
    return total


def _wal_checkpoint(store: MemoryStore) -> None:
    store.conn.execute("PRAGMA wal_checkpoint(TRUNCATE)").fetchone()


def status(store: MemoryStore) -> AdminResult:
    return {
        "operation": "status",
        "success": True,
        "details": {
            "total_observations": store.count(),
            "by_type": store.count_by_type(),
            "db_path": str(store.db_path),
            "db_size_bytes": storage_size(store),
            "schema_version": db.schema_version(store.conn),
        },
    }


def archive_cutoff(older_than_days: float, *, now: dt.datetime | None = None) -> str:
    current = now or dt.datetime.now(dt.UTC)
    try:
        cutoff = current - dt.timedelta(days=older_than_days)
    except OverflowError:
        # Older than any representable date: nothing qualifies.
        cutoff = dt.datetime.min.replace(tzinfo=dt.UTC)
    return cutoff.isoformat(timespec="microseconds")


def archive(
    store: MemoryStore, *, older_than_days: float = 90, dry_run: bool = False
) -> AdminResult:
    """Delete observations created before now - older_than_days, all or nothing."""

    try:
        days = float(older_than_days)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"invalid older_than_days: {older_than_days!r}") from exc
    if not math.isfinite(days):
        raise ValidationError(f"older_than_days must be finite: {older_than_days!r}")
    if days < 0:
        raise ValidationError("older_than_days must not be negative")
    cutoff = archive_cutoff(days)
    if dry_run:
        row = store.conn.execute(
            "SELECT COUNT(*) AS total FROM observations WHERE created_at < ?",
            (cutoff,),
        ).fetchone()
        return {
            "operation": "archive",
            "success": True,
            "details": {
                "would_archive": int(row["total"]) if row else 0,
                "cutoff_date": cutoff,
                "dry_run": True,
            },
        }
    with store.transaction() as conn:
        cur = conn.execute("DELETE FROM observations WHERE created_at < ?", (cutoff,))
    archived = int(cur.rowcount or 0)
    logger.info("archived %s observations created before %s", archived, cutoff)
    return {
        "operation": "archive",
        "success": True,
        "details": {"archived": archived, "cutoff_date": cutoff, "dry_run": False},
    }


def _unique_path(path: Path) -> Path:
    candidate = path
    counter = 1
    while candidate.exists():
        candidate = path.with_name(f"{path.stem}-{counter}{path.suffix}")
        counter += 1
    return candidate


def checkpoint(store: MemoryStore) -> AdminResult:
    """Snapshot the live database into a new file next to it (or in checkpoint_dir).

    The online backup API gives a consistent copy even with concurrent writers;
    the copy is built under a temporary name and renamed into place.
    """

    target_dir = store.checkpoint_dir
    target_dir.mkdir(parents=True, exist_ok=True)
    stamp = dt.datetime.now(dt.UTC).strftime("%Y%m%dT%H%M%S%fZ")
    final_path = _unique_path(target_dir / f"checkpoint-{stamp}.db")
    fd, tmp_name = tempfile.mkstemp(prefix=".checkpoint-", suffix=".tmp", dir=target_dir)
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        snapshot = sqlite3.connect(tmp_path)
        try:
            store.conn.backup(snapshot)
            snapshot.execute("PRAGMA journal_mode = DELETE")
        finally:
            snapshot.close()
        os.replace(tmp_path, final_path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    size = final_path.stat().st_size
    logger.info("wrote memory checkpoint %s (%s bytes)", final_path, size)
    return {
        "operation": "checkpoint",
        "success": True,
        "details": {"checkpoint_path": str(final_path), "size_bytes": size},
    }


def vacuum(store: MemoryStore) -> AdminResult:
    observations_before = store.count()
    _wal_checkpoint(store)
    size_before = storage_size(store)
    store_search.optimize_index(store)
    store.conn.execute("VACUUM")
    _wal_checkpoint(store)
    size_after = storage_size(store)
    observations_after = store.count()
    logger.info("vacuumed memory store: %s -> %s bytes", size_before, size_after)
    return {
        "operation": "vacuum",
        "success": True,
        "details": {
            "db_size_bytes": size_after,
            "size_before_bytes": size_before,
            "observations_before": observations_before,
            "observations_after": observations_after,
        },
    }


def migrate(store: MemoryStore) -> AdminResult:
    current = db.schema_version(store.conn)
    if not db.pending_migrations(store.conn):
        return {
            "operation": "migrate",
            "success": True,
            "details": {
                "schema_version": current,
                "pending": False,
                "applied": [],
                "message": "Schema is up to date",
            },
        }
    applied = db.apply_migrations(store.conn)
    return {
        "operation": "migrate",
        "success": True,
        "details": {
            "schema_version": db.schema_version(store.conn),
            "previous_version": current,
            "pending": False,
            "applied": applied,
            "message": f"Applied {len(applied)} migration(s)",
        },
    }
