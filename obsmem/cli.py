from __future__ import annotations

import os
from pathlib import Path

import typer
from rich import print

from . import __version__
from .commands.admin_cmds import admin_cmd
from .commands.common import context_or_exit
from .commands.memory_cmds import (
    create_cmd,
    get_cmd,
    link_concept_cmd,
    list_cmd,
    read_cmd,
    search_cmd,
    timeline_cmd,
)
from .commands.sync_cmds import sync_cmd
from .config import load_config
from .context import MemoryContext
from .logs import configure_logging

app = typer.Typer(
    help="obsmem: persistent observation memory for coding agents", no_args_is_help=True
)
admin_app = typer.Typer(help="Memory store maintenance", no_args_is_help=True)
sync_app = typer.Typer(help="Reconcile memory with the beads task tracker", no_args_is_help=True)
app.add_typer(admin_app, name="admin")
app.add_typer(sync_app, name="sync")


@app.callback()
def main_callback(
    ctx: typer.Context,
    project_root: str = typer.Option(
        None, help="Project root holding the memory store (defaults to cwd)"
    ),
    config_path: str = typer.Option(None, help="Path to config JSON (overrides OBSMEM_CONFIG)"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
    log_level: str = typer.Option(None, help="Log level (defaults to config)"),
) -> None:
    cfg = load_config(Path(config_path) if config_path else None)
    if db_path:
        resolved = Path(db_path).expanduser().resolve()
        cfg.memory_dir = str(resolved.parent)
        cfg.memory_db_name = resolved.name
    configure_logging(log_level or cfg.log_level, cfg.log_file)
    ctx.obj = MemoryContext.for_project(project_root or os.getcwd(), cfg)


@app.command()
def version() -> None:
    """Print the obsmem version."""
    print(__version__)


@app.command()
def search(
    ctx: typer.Context,
    query: str,
    type: str = typer.Option(None, "--type", help="Filter by observation type"),
    limit: int = typer.Option(None, help="Max results (defaults to config)"),
    json_output: bool = typer.Option(False, "--json", help="Print results as JSON"),
) -> None:
    """Full-text search over observations."""
    search_cmd(
        ctx=context_or_exit(ctx), query=query, type=type, limit=limit, as_json=json_output
    )


@app.command()
def get(ctx: typer.Context, ids: str = typer.Argument(..., help="Comma-separated ids")) -> None:
    """Print observations as JSON."""
    get_cmd(ctx=context_or_exit(ctx), ids=ids)


@app.command()
def timeline(
    ctx: typer.Context,
    observation_id: int,
    before: int = typer.Option(None, help="Earlier observations to include"),
    after: int = typer.Option(None, help="Later observations to include"),
    json_output: bool = typer.Option(False, "--json", help="Print results as JSON"),
) -> None:
    """Show observations recorded around an id."""
    timeline_cmd(
        ctx=context_or_exit(ctx),
        observation_id=observation_id,
        before=before,
        after=after,
        as_json=json_output,
    )


@app.command()
def create(
    ctx: typer.Context,
    type: str,
    narrative: str,
    fact: list[str] = typer.Option(None, help="Repeat for multiple facts"),
    confidence: float = typer.Option(None, help="Confidence (defaults to 1.0)"),
    file_read: list[str] = typer.Option(None, help="Repeat for multiple files"),
    file_modified: list[str] = typer.Option(None, help="Repeat for multiple files"),
    concept: list[str] = typer.Option(None, help="Repeat for multiple concepts"),
    bead_id: str = typer.Option(None, help="Related beads task id"),
    expires_at: str = typer.Option(None, help="ISO-8601 expiry hint"),
) -> None:
    """Record a new observation."""
    create_cmd(
        ctx=context_or_exit(ctx),
        type=type,
        narrative=narrative,
        facts=fact,
        confidence=confidence,
        files_read=file_read,
        files_modified=file_modified,
        concepts=concept,
        bead_id=bead_id,
        expires_at=expires_at,
    )


@app.command("list")
def list_observations(
    ctx: typer.Context,
    type: str = typer.Option(None, "--type", help="Observation type"),
    bead_id: str = typer.Option(None, help="Beads task id"),
    limit: int = typer.Option(10, help="Max results for --type"),
) -> None:
    """List observations of one type (newest first) or attached to one task."""
    list_cmd(ctx=context_or_exit(ctx), type=type, bead_id=bead_id, limit=limit)


@app.command("link-concept")
def link_concept(ctx: typer.Context, observation_id: int, concept: str) -> None:
    """Tag an observation with a concept."""
    link_concept_cmd(ctx=context_or_exit(ctx), observation_id=observation_id, concept=concept)


@app.command()
def read(ctx: typer.Context, path: str) -> None:
    """Print a text file stored under the memory directory."""
    read_cmd(ctx=context_or_exit(ctx), path=path)


@app.command()
def mcp(ctx: typer.Context) -> None:
    """Run the MCP server over stdio."""
    from .mcp_server import build_server

    build_server(context_or_exit(ctx)).run()


@admin_app.command("status")
def admin_status(ctx: typer.Context) -> None:
    """Show observation counts and storage size."""
    admin_cmd(ctx=context_or_exit(ctx), operation="status")


@admin_app.command("archive")
def admin_archive(
    ctx: typer.Context,
    older_than_days: float = typer.Option(None, help="Age cutoff in days (defaults to config)"),
    dry_run: bool = typer.Option(False, help="Only count what would be archived"),
) -> None:
    """Delete observations older than the cutoff."""
    admin_cmd(
        ctx=context_or_exit(ctx),
        operation="archive",
        older_than_days=older_than_days,
        dry_run=dry_run,
    )


@admin_app.command("checkpoint")
def admin_checkpoint(ctx: typer.Context) -> None:
    """Write a consistent snapshot of the memory database."""
    admin_cmd(ctx=context_or_exit(ctx), operation="checkpoint")


@admin_app.command("vacuum")
def admin_vacuum(ctx: typer.Context) -> None:
    """Optimize the search index and reclaim free pages."""
    admin_cmd(ctx=context_or_exit(ctx), operation="vacuum")


@admin_app.command("migrate")
def admin_migrate(ctx: typer.Context) -> None:
    """Apply pending schema migrations."""
    admin_cmd(ctx=context_or_exit(ctx), operation="migrate")


@sync_app.command("to-memory")
def sync_to_memory(ctx: typer.Context) -> None:
    """Record completed beads tasks as progress observations."""
    sync_cmd(ctx=context_or_exit(ctx), operation="sync_to_memory")


@sync_app.command("from-memory")
def sync_from_memory(ctx: typer.Context) -> None:
    """Count blocker/decision observations whose task exists."""
    sync_cmd(ctx=context_or_exit(ctx), operation="sync_from_memory")


@sync_app.command("link")
def sync_link(ctx: typer.Context, observation_id: int, bead_id: str) -> None:
    """Attach an observation to a beads task."""
    sync_cmd(
        ctx=context_or_exit(ctx), operation="link", bead_id=bead_id, observation_id=observation_id
    )


@sync_app.command("status")
def sync_status(ctx: typer.Context) -> None:
    """Show memory count and open beads tasks."""
    sync_cmd(ctx=context_or_exit(ctx), operation="status")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
