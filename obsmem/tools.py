"""Dict-in/dict-out entry points shared by the CLI and the MCP server.

Validation and storage failures come back as ``{"error": {...}}`` payloads;
QuerySyntaxError is left to the caller.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from . import admin, beads
from .context import MemoryContext
from .errors import ObsmemError, QuerySyntaxError
from .store import MemoryStore


def _error(exc: ObsmemError) -> dict[str, Any]:
    return {"error": {"type": type(exc).__name__, "message": str(exc)}}


def _with_store(
    ctx: MemoryContext, handler: Callable[[MemoryStore], dict[str, Any]]
) -> dict[str, Any]:
    try:
        with ctx.open_store() as store:
            return handler(store)
    except QuerySyntaxError:
        raise
    except ObsmemError as exc:
        return _error(exc)


def memory_search(
    ctx: MemoryContext, query: str, type: str | None = None, limit: int | None = None
) -> dict[str, Any]:
    resolved_limit = ctx.config.search_limit if limit is None else limit

    def handler(store: MemoryStore) -> dict[str, Any]:
        results = store.search(query, type=type, limit=resolved_limit)
        return {"items": [item.to_dict() for item in results]}

    return _with_store(ctx, handler)


def memory_get(ctx: MemoryContext, ids: Any) -> dict[str, Any]:
    def handler(store: MemoryStore) -> dict[str, Any]:
        return {"items": [item.to_dict() for item in store.get_many(ids)]}

    return _with_store(ctx, handler)


def memory_timeline(
    ctx: MemoryContext, id: int, before: int | None = None, after: int | None = None
) -> dict[str, Any]:
    depth_before = ctx.config.timeline_before if before is None else before
    depth_after = ctx.config.timeline_after if after is None else after

    def handler(store: MemoryStore) -> dict[str, Any]:
        items = store.timeline(id, before=depth_before, after=depth_after)
        return {"items": [item.to_dict() for item in items]}

    return _with_store(ctx, handler)


def memory_update(
    ctx: MemoryContext,
    type: str,
    narrative: str,
    facts: list[str] | None = None,
    confidence: float | None = None,
    files_read: list[str] | None = None,
    files_modified: list[str] | None = None,
    expires_at: str | None = None,
) -> dict[str, Any]:
    def handler(store: MemoryStore) -> dict[str, Any]:
        observation_id = store.create(
            type,
            narrative,
            facts=facts,
            confidence=confidence,
            files_read=files_read,
            files_modified=files_modified,
            expires_at=expires_at,
        )
        return {"id": observation_id}

    return _with_store(ctx, handler)


def observation(
    ctx: MemoryContext,
    type: str,
    narrative: str,
    facts: list[str] | None = None,
    confidence: float | None = None,
    files_read: list[str] | None = None,
    files_modified: list[str] | None = None,
    concepts: list[str] | None = None,
    bead_id: str | None = None,
    expires_at: str | None = None,
) -> dict[str, Any]:
    def handler(store: MemoryStore) -> dict[str, Any]:
        observation_id = store.create(
            type,
            narrative,
            facts=facts,
            confidence=confidence,
            files_read=files_read,
            files_modified=files_modified,
            concepts=concepts,
            bead_id=bead_id,
            expires_at=expires_at,
        )
        created = store.get(observation_id)
        return created.to_dict() if created else {"id": observation_id}

    return _with_store(ctx, handler)


def observations_by_type(ctx: MemoryContext, type: str, limit: int = 10) -> dict[str, Any]:
    def handler(store: MemoryStore) -> dict[str, Any]:
        return {"items": [item.to_dict() for item in store.by_type(type, limit=limit)]}

    return _with_store(ctx, handler)


def observations_by_bead(ctx: MemoryContext, bead_id: str) -> dict[str, Any]:
    def handler(store: MemoryStore) -> dict[str, Any]:
        return {"items": [item.to_dict() for item in store.by_bead(bead_id)]}

    return _with_store(ctx, handler)


def link_concept(ctx: MemoryContext, observation_id: int, concept: str) -> dict[str, Any]:
    def handler(store: MemoryStore) -> dict[str, Any]:
        return {"added": store.link_concept(observation_id, concept)}

    return _with_store(ctx, handler)


def memory_read(ctx: MemoryContext, path: str) -> dict[str, Any]:
    def handler(store: MemoryStore) -> dict[str, Any]:
        return {"content": store.read_memory_file(path)}

    return _with_store(ctx, handler)


def memory_admin(
    ctx: MemoryContext,
    operation: str,
    older_than_days: float | None = None,
    dry_run: bool = False,
) -> dict[str, Any]:
    return dict(
        admin.memory_admin(ctx, operation, older_than_days=older_than_days, dry_run=dry_run)
    )


def beads_memory_sync(
    ctx: MemoryContext,
    operation: str,
    beadId: str | None = None,
    observationId: int | None = None,
) -> dict[str, Any]:
    return dict(
        beads.beads_memory_sync(ctx, operation, bead_id=beadId, observation_id=observationId)
    )
