from __future__ import annotations

import typer
from rich import print
from rich.markup import escape

from .. import tools
from ..context import MemoryContext
from ..errors import QuerySyntaxError
from .common import exit_on_error, format_observation, print_payload


def search_cmd(
    *, ctx: MemoryContext, query: str, type: str | None, limit: int | None, as_json: bool
) -> None:
    """Full-text search over observations."""

    try:
        payload = exit_on_error(tools.memory_search(ctx, query, type=type, limit=limit))
    except QuerySyntaxError as exc:
        print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from exc
    if as_json:
        print_payload(payload)
        return
    if not payload["items"]:
        print("[dim]No matches[/dim]")
        return
    for item in payload["items"]:
        print(
            escape(f"[{item['id']}] ({item['type']}) {item['narrative']}")
            + f"\nconfidence={item['confidence']:.2f} {escape(item['created_at'])}\n"
        )


def get_cmd(*, ctx: MemoryContext, ids: str) -> None:
    """Print observations as JSON."""

    payload = exit_on_error(tools.memory_get(ctx, ids))
    print_payload(payload["items"])


def timeline_cmd(
    *, ctx: MemoryContext, observation_id: int, before: int | None, after: int | None, as_json: bool
) -> None:
    """Show observations recorded around an id."""

    payload = exit_on_error(tools.memory_timeline(ctx, observation_id, before=before, after=after))
    if as_json:
        print_payload(payload["items"])
        return
    for item in payload["items"]:
        marker = "[bold]>[/bold] " if item["id"] == observation_id else "  "
        print(marker + format_observation(item) + "\n")


def create_cmd(
    *,
    ctx: MemoryContext,
    type: str,
    narrative: str,
    facts: list[str] | None,
    confidence: float | None,
    files_read: list[str] | None,
    files_modified: list[str] | None,
    concepts: list[str] | None,
    bead_id: str | None,
    expires_at: str | None,
) -> None:
    """Record a new observation."""

    payload = exit_on_error(
        tools.observation(
            ctx,
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
    )
    print(f"Stored observation {payload['id']}")


def list_cmd(
    *, ctx: MemoryContext, type: str | None, bead_id: str | None, limit: int
) -> None:
    """List observations of one type or attached to one task."""

    if bool(type) == bool(bead_id):
        print("[red]Pass exactly one of --type or --bead-id[/red]")
        raise typer.Exit(code=1)
    if bead_id:
        payload = exit_on_error(tools.observations_by_bead(ctx, bead_id))
    else:
        payload = exit_on_error(tools.observations_by_type(ctx, str(type), limit=limit))
    for item in payload["items"]:
        print(format_observation(item) + "\n")


def link_concept_cmd(*, ctx: MemoryContext, observation_id: int, concept: str) -> None:
    """Tag an observation with a concept."""

    payload = exit_on_error(tools.link_concept(ctx, observation_id, concept))
    if payload["added"]:
        print(f"Linked concept {escape(concept)} to observation {observation_id}")
    else:
        print(f"[yellow]Observation {observation_id} unchanged[/yellow]")


def read_cmd(*, ctx: MemoryContext, path: str) -> None:
    """Print a text file stored under the memory directory."""

    payload = exit_on_error(tools.memory_read(ctx, path))
    content = payload["content"]
    if content is None:
        print(f"[red]{escape(path)} not found in memory directory[/red]")
        raise typer.Exit(code=1)
    typer.echo(content, nl=False)
