from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from . import db
from .context import MemoryContext
from .errors import StorageUnavailable, ValidationError
from .store import MemoryStore
from .store.types import SyncResult
from .store.utils import parse_id

logger = logging.getLogger(__name__)

SYNC_OPERATIONS: Final[tuple[str, ...]] = (
    "sync_to_memory",
    "sync_from_memory",
    "link",
    "status",
)
SYNC_CONCEPT = "beads-sync"
CLOSED_STATUS = "closed"
LINKED_TYPES: Final[tuple[str, ...]] = ("blocker", "decision")
# Task title column, newest tracker schema first.
TITLE_COLUMNS: Final[tuple[str, ...]] = ("title", "t", "description", "desc")


@dataclass
class BeadsTask:
    id: str
    status: str
    title: str


@contextmanager
def open_beads(path: Path, *, busy_timeout_ms: int = 5000) -> Iterator[sqlite3.Connection | None]:
    """Open the task tracker read-only; yields None when it does not exist yet."""

    if not path.is_file():
        yield None
        return
    conn = sqlite3.connect(
        f"{path.resolve().as_uri()}?mode=ro",
        uri=True,
        timeout=max(0, busy_timeout_ms) / 1000,
    )
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


def _issue_columns(conn: sqlite3.Connection) -> set[str]:
    return {row[1] for row in conn.execute("PRAGMA table_info(issues)").fetchall()}


def completed_tasks(conn: sqlite3.Connection, statuses: Iterable[str]) -> list[BeadsTask]:
    columns = _issue_columns(conn)
    wanted = [status for status in statuses if status]
    if not columns or "id" not in columns or "status" not in columns or not wanted:
        return []
    title_column = next((name for name in TITLE_COLUMNS if name in columns), None)
    title_expr = f'"{title_column}"' if title_column else "NULL"
    placeholders = ",".join("?" for _ in wanted)
    rows = conn.execute(
        f"""
        SELECT id, status, {title_expr} AS title
        FROM issues
        WHERE status IN ({placeholders})
        ORDER BY id
        """,
        wanted,
    ).fetchall()
    tasks: list[BeadsTask] = []
    seen: set[str] = set()
    for row in rows:
        task_id = str(row["id"])
        if task_id in seen:
            continue
        seen.add(task_id)
        title = str(row["title"] or "").strip() or f"Completed task {task_id}"
        tasks.append(BeadsTask(id=task_id, status=str(row["status"]), title=title))
    return tasks


def task_exists(conn: sqlite3.Connection, task_id: str) -> bool:
    row = conn.execute("SELECT 1 FROM issues WHERE id = ? LIMIT 1", (task_id,)).fetchone()
    return row is not None


def active_task_count(conn: sqlite3.Connection) -> int:
    columns = _issue_columns(conn)
    if "status" not in columns:
        return 0
    row = conn.execute(
        "SELECT COUNT(*) AS total FROM issues WHERE status IS NULL OR status != ?",
        (CLOSED_STATUS,),
    ).fetchone()
    return int(row["total"]) if row else 0


def record_completed_tasks(store: MemoryStore, tasks: Iterable[BeadsTask]) -> int:
    """Insert one progress observation per task not yet recorded; returns the new count.

    A task counts as recorded when any progress observation carries its id in bead_id.
    """

    synced = 0
    with store.transaction() as conn:
        for task in tasks:
            cur = conn.execute(
                """
                INSERT INTO observations(
                    type, narrative, facts, confidence, files_read, files_modified,
                    concepts, bead_id, created_at
                )
                SELECT 'progress', ?, '[]', 1.0, '[]', '[]', ?, ?, ?
                WHERE NOT EXISTS (
                    SELECT 1 FROM observations WHERE bead_id = ? AND type = 'progress'
                )
                """,
                (
                    task.title,
                    db.encode_list([SYNC_CONCEPT]),
                    task.id,
                    store._now_iso(),
                    task.id,
                ),
            )
            synced += int(cur.rowcount or 0)
    return synced


def sync_to_memory(ctx: MemoryContext) -> SyncResult:
    with open_beads(ctx.paths.beads_db, busy_timeout_ms=ctx.config.busy_timeout_ms) as beads:
        tasks = (
            completed_tasks(beads, ctx.config.beads_completed_statuses) if beads is not None else []
        )
    with ctx.open_store() as store:
        synced = record_completed_tasks(store, tasks) if tasks else 0
    logger.info("synced %s of %s completed tasks into memory", synced, len(tasks))
    return {
        "success": True,
        "operation": "sync_to_memory",
        "details": {
            "tasks_synced": synced,
            "tasks_seen": len(tasks),
            "beads_available": beads is not None,
        },
    }


def sync_from_memory(ctx: MemoryContext) -> SyncResult:
    with ctx.open_store() as store:
        rows = store.conn.execute(
            f"""
            SELECT id, bead_id FROM observations
            WHERE bead_id IS NOT NULL AND type IN ({",".join("?" for _ in LINKED_TYPES)})
            ORDER BY id
            """,
            LINKED_TYPES,
        ).fetchall()
    bead_ids = [str(row["bead_id"]) for row in rows]
    linked = 0
    with open_beads(ctx.paths.beads_db, busy_timeout_ms=ctx.config.busy_timeout_ms) as beads:
        available = beads is not None
        if beads is not None and _issue_columns(beads):
            linked = sum(1 for bead_id in bead_ids if task_exists(beads, bead_id))
    return {
        "success": True,
        "operation": "sync_from_memory",
        "details": {
            "observations_linked": linked,
            "observations_checked": len(bead_ids),
            "beads_available": available,
        },
    }


def link(ctx: MemoryContext, observation_id: int | None, bead_id: str | None) -> SyncResult:
    if not observation_id or not bead_id:
        raise ValidationError("link requires both an observation id and a bead id")
    target_id = parse_id(observation_id)
    with ctx.open_store() as store:
        linked = store.link_bead(target_id, str(bead_id))
    return {
        "success": True,
        "operation": "link",
        "details": {"observations_linked": linked},
    }


def status(ctx: MemoryContext) -> SyncResult:
    with ctx.open_store() as store:
        memory_count = store.count()
    active = 0
    with open_beads(ctx.paths.beads_db, busy_timeout_ms=ctx.config.busy_timeout_ms) as beads:
        available = beads is not None
        if beads is not None:
            active = active_task_count(beads)
    return {
        "success": True,
        "operation": "status",
        "details": {
            "memory_count": memory_count,
            "active_tasks": active,
            "beads_available": available,
        },
    }


def beads_memory_sync(
    ctx: MemoryContext,
    operation: str,
    bead_id: str | None = None,
    observation_id: int | None = None,
) -> SyncResult:
    """Reconcile the memory store with the beads task tracker.

    Every call opens and closes its own handles. Failures in either store are
    logged and reported as success=False with empty details.
    """

    try:
        if operation == "sync_to_memory":
            return sync_to_memory(ctx)
        if operation == "sync_from_memory":
            return sync_from_memory(ctx)
        if operation == "link":
            return link(ctx, observation_id, bead_id)
        if operation == "status":
            return status(ctx)
        raise ValidationError(
            f"Unknown operation '{operation}'. Allowed: {', '.join(SYNC_OPERATIONS)}"
        )
    except (ValidationError, StorageUnavailable) as exc:
        logger.warning("beads sync %s failed: %s", operation, exc)
    except (OSError, sqlite3.Error) as exc:
        logger.warning("beads sync %s failed", operation, exc_info=exc)
    return {"success": False, "operation": operation, "details": {}}
