from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from . import tools
from .admin import ADMIN_OPERATIONS
from .beads import SYNC_OPERATIONS
from .context import MemoryContext
from .logs import configure_logging
from .observation_types import ALLOWED_OBSERVATION_TYPES


def build_context() -> MemoryContext:
    project_root = os.environ.get("OBSMEM_PROJECT_ROOT") or os.getcwd()
    return MemoryContext.for_project(project_root)


def build_server(ctx: MemoryContext | None = None) -> FastMCP:
    mcp = FastMCP("obsmem")
    context = ctx or build_context()

    @mcp.tool()
    def memory_search(
        query: str, type: Optional[str] = None, limit: Optional[int] = None
    ) -> Dict[str, Any]:
        """Full-text search; ranked by confidence then recency."""
        return tools.memory_search(context, query, type=type, limit=limit)

    @mcp.tool()
    def memory_get(ids: str) -> Dict[str, Any]:
        """Fetch observations by comma-separated ids."""
        return tools.memory_get(context, ids)

    @mcp.tool()
    def memory_timeline(
        id: int, before: Optional[int] = None, after: Optional[int] = None
    ) -> Dict[str, Any]:
        """Observations recorded just before and after an id."""
        return tools.memory_timeline(context, id, before=before, after=after)

    @mcp.tool()
    def memory_update(
        type: str,
        narrative: str,
        facts: Optional[List[str]] = None,
        confidence: Optional[float] = None,
        files_read: Optional[List[str]] = None,
        files_modified: Optional[List[str]] = None,
        expires_at: Optional[str] = None,
    ) -> Dict[str, Any]:
        return tools.memory_update(
            context,
            type,
            narrative,
            facts=facts,
            confidence=confidence,
            files_read=files_read,
            files_modified=files_modified,
            expires_at=expires_at,
        )

    @mcp.tool()
    def observation(
        type: str,
        narrative: str,
        facts: Optional[List[str]] = None,
        confidence: Optional[float] = None,
        files_read: Optional[List[str]] = None,
        files_modified: Optional[List[str]] = None,
        concepts: Optional[List[str]] = None,
        bead_id: Optional[str] = None,
        expires_at: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Record an observation and return it."""
        return tools.observation(
            context,
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

    @mcp.tool()
    def link_concept(observation_id: int, concept: str) -> Dict[str, Any]:
        return tools.link_concept(context, observation_id, concept)

    @mcp.tool()
    def memory_read(path: str) -> Dict[str, Any]:
        """Read a text file stored under the memory directory."""
        return tools.memory_read(context, path)

    @mcp.tool()
    def memory_admin(
        operation: str, older_than_days: Optional[float] = None, dry_run: bool = False
    ) -> Dict[str, Any]:
        return tools.memory_admin(
            context, operation, older_than_days=older_than_days, dry_run=dry_run
        )

    @mcp.tool()
    def beads_memory_sync(
        operation: str, beadId: Optional[str] = None, observationId: Optional[int] = None
    ) -> Dict[str, Any]:
        return tools.beads_memory_sync(
            context, operation, beadId=beadId, observationId=observationId
        )

    @mcp.tool()
    def memory_schema() -> Dict[str, Any]:
        return {
            "types": list(ALLOWED_OBSERVATION_TYPES),
            "admin_operations": list(ADMIN_OPERATIONS),
            "sync_operations": list(SYNC_OPERATIONS),
        }

    return mcp


def run() -> None:
    ctx = build_context()
    configure_logging(ctx.config.log_level, ctx.config.log_file)
    server = build_server(ctx)
    server.run()
