from __future__ import annotations

import typer

from .. import tools
from ..context import MemoryContext
from .common import print_payload


def admin_cmd(
    *,
    ctx: MemoryContext,
    operation: str,
    older_than_days: float | None = None,
    dry_run: bool = False,
) -> None:
    """Run a maintenance operation and print its result."""

    result = tools.memory_admin(ctx, operation, older_than_days=older_than_days, dry_run=dry_run)
    print_payload(result)
    if not result["success"]:
        raise typer.Exit(code=1)
