from __future__ import annotations

import logging
import sqlite3
from typing import Final

from .context import MemoryContext
from .errors import StorageUnavailable, ValidationError
from .store.types import AdminResult

logger = logging.getLogger(__name__)

ADMIN_OPERATIONS: Final[tuple[str, ...]] = (
    "status",
    "archive",
    "checkpoint",
    "vacuum",
    "migrate",
)


def _failure(operation: str, error: str) -> AdminResult:
    return {"operation": operation, "success": False, "details": {"error": error}}


def memory_admin(
    ctx: MemoryContext,
    operation: str,
    older_than_days: float | None = None,
    dry_run: bool = False,
) -> AdminResult:
    """Run one maintenance operation; failures come back as success=False."""

    if operation not in ADMIN_OPERATIONS:
        return _failure(
            operation,
            f"Unknown operation '{operation}'. Allowed: {', '.join(ADMIN_OPERATIONS)}",
        )
    days = ctx.config.archive_older_than_days if older_than_days is None else older_than_days
    try:
        with ctx.open_store() as store:
            if operation == "status":
                return store.status()
            if operation == "archive":
                return store.archive(older_than_days=days, dry_run=bool(dry_run))
            if operation == "checkpoint":
                return store.checkpoint()
            if operation == "vacuum":
                return store.vacuum()
            return store.migrate()
    except (ValidationError, StorageUnavailable) as exc:
        logger.warning("memory admin %s failed: %s", operation, exc)
        return _failure(operation, str(exc))
    except (OSError, sqlite3.Error) as exc:
        logger.warning("memory admin %s failed", operation, exc_info=exc)
        return _failure(operation, str(exc))
