from __future__ import annotations

import json
from typing import Any

import typer
from rich import print
from rich.markup import escape

from ..context import MemoryContext


def context_or_exit(ctx: typer.Context) -> MemoryContext:
    memory_ctx = ctx.obj
    if not isinstance(memory_ctx, MemoryContext):
        print("[red]obsmem context was not initialized[/red]")
        raise typer.Exit(code=1)
    return memory_ctx


def print_payload(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


def exit_on_error(payload: dict[str, Any]) -> dict[str, Any]:
    error = payload.get("error")
    if error:
        print(f"[red]{escape(str(error.get('message', error)))}[/red]")
        raise typer.Exit(code=1)
    return payload


def format_observation(item: dict[str, Any]) -> str:
    header = f"[{item['id']}] ({item['type']}) {item['created_at']}"
    lines = [escape(header), escape(str(item.get("narrative") or ""))]
    for fact in item.get("facts") or []:
        lines.append(escape(f"  - {fact}"))
    if item.get("bead_id"):
        lines.append(escape(f"  bead: {item['bead_id']}"))
    return "\n".join(lines)
