from __future__ import annotations

import typer

from .. import tools
from ..context import MemoryContext
from .common import print_payload


def sync_cmd(
    *,
    ctx: MemoryContext,
    operation: str,
    bead_id: str | None = None,
    observation_id: int | None = None,
) -> None:
    """Reconcile memory with the beads tracker and print the outcome."""

    result = tools.beads_memory_sync(
        ctx, operation, beadId=bead_id, observationId=observation_id
    )
    print_payload(result)
    if not result["success"]:
        raise typer.Exit(code=1)
