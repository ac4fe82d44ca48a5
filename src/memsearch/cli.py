"""CLI entry points for memsearch.

Commands:
    memsearch search QUERY   — Search agent memory
    memsearch read PATH      — Print a memory file (or a line window of it)
    memsearch status         — Show which provider serves an agent
    memsearch sync           — Re-index / flush the active provider
    memsearch use BACKEND    — Select the memory backend and save it to config.toml
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import typer
from rich.console import Console
from rich.table import Table

import memsearch
from memsearch.config import ConfigManager, MemsearchConfig
from memsearch.manager import MemorySearchManager
from memsearch.providers.base import MemorySearchProvider

T = TypeVar("T")

console = Console()
app = typer.Typer(
    name="memsearch",
    help="Search agent memory through builtin or external providers.",
    no_args_is_help=True,
)

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool = False, level_name: str = "warning") -> None:
    """Configure root logging for CLI output.

    ``--verbose`` wins; otherwise the config's ``log_level`` applies.
    """
    level = logging.DEBUG if verbose else logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )


@app.callback()
def main(
    ctx: typer.Context,
    config_dir: Path | None = typer.Option(
        None, "--config-dir", help="Directory holding config.toml"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """memsearch command line."""
    config = ConfigManager(config_dir=config_dir).load()
    _setup_logging(verbose, config.log_level)
    ctx.obj = {"config_dir": config_dir, "config": config}


def _config_manager(ctx: typer.Context) -> ConfigManager:
    return ConfigManager(config_dir=(ctx.obj or {}).get("config_dir"))


def _load_config(ctx: typer.Context) -> MemsearchConfig:
    config = (ctx.obj or {}).get("config")
    if config is not None:
        return config
    return _config_manager(ctx).load()


def _with_provider(
    ctx: typer.Context,
    agent: str | None,
    action: Callable[[MemorySearchProvider], Awaitable[T]],
) -> T:
    """Open the agent's provider, run *action* on it, and always clean up."""

    async def _main() -> T:
        manager = MemorySearchManager(_load_config(ctx))
        try:
            selection = await manager.get(agent)
            if selection.provider is None:
                console.print(f"[red]No memory provider available:[/red] {selection.error}")
                raise typer.Exit(code=1)
            return await action(selection.provider)
        finally:
            await manager.close()

    return asyncio.run(_main())


# ------------------------------------------------------------------
# memsearch search
# ------------------------------------------------------------------


@app.command()
def search(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Search text"),
    agent: str | None = typer.Option(None, "--agent", "-a", help="Agent id"),
    max_results: int | None = typer.Option(None, "--max-results", "-n", min=1),
    min_score: float | None = typer.Option(None, "--min-score"),
    session: str | None = typer.Option(None, "--session", help="Session key to scope the search"),
    as_json: bool = typer.Option(False, "--json", help="Print results as JSON"),
) -> None:
    """Search agent memory."""

    async def _search(provider: MemorySearchProvider) -> list[Any]:
        return await provider.search(
            query, max_results=max_results, min_score=min_score, session_key=session
        )

    results = _with_provider(ctx, agent, _search)

    if as_json:
        typer.echo(json.dumps([dataclasses.asdict(r) for r in results], indent=2))
        return
    if not results:
        console.print("[dim]No results.[/dim]")
        return

    table = Table(title=f"Memory search: {query}")
    table.add_column("Score", justify="right")
    table.add_column("Path")
    table.add_column("Lines")
    table.add_column("Snippet")
    for result in results:
        table.add_row(
            f"{result.score:.3f}",
            result.path,
            f"{result.start_line}-{result.end_line}",
            result.snippet.strip().replace("\n", " ")[:120],
        )
    console.print(table)


# ------------------------------------------------------------------
# memsearch read
# ------------------------------------------------------------------


@app.command()
def read(
    ctx: typer.Context,
    rel_path: str = typer.Argument(..., help="Path relative to the agent workspace"),
    agent: str | None = typer.Option(None, "--agent", "-a", help="Agent id"),
    from_line: int | None = typer.Option(None, "--from", min=1, help="First line (1-based)"),
    lines: int | None = typer.Option(None, "--lines", min=1, help="Number of lines"),
) -> None:
    """Print a memory file."""

    async def _read(provider: MemorySearchProvider) -> Any:
        return await provider.read_file(rel_path, from_line=from_line, lines=lines)

    result = _with_provider(ctx, agent, _read)
    typer.echo(result.text)


# ------------------------------------------------------------------
# memsearch status
# ------------------------------------------------------------------


@app.command()
def status(
    ctx: typer.Context,
    agent: str | None = typer.Option(None, "--agent", "-a", help="Agent id"),
) -> None:
    """Show which provider serves an agent and how healthy it is."""

    async def _status(provider: MemorySearchProvider) -> Any:
        return provider.status()

    report = _with_provider(ctx, agent, _status)

    table = Table(title=f"memsearch {memsearch.__version__}")
    table.add_column("Field", style="bold")
    table.add_column("Value")
    for key, value in dataclasses.asdict(report).items():
        if value is None or value == {} or value == []:
            continue
        rendered = json.dumps(value) if isinstance(value, (dict, list)) else str(value)
        table.add_row(key, rendered)
    console.print(table)


# ------------------------------------------------------------------
# memsearch sync
# ------------------------------------------------------------------


@app.command()
def sync(
    ctx: typer.Context,
    agent: str | None = typer.Option(None, "--agent", "-a", help="Agent id"),
    force: bool = typer.Option(False, "--force", help="Re-index everything"),
) -> None:
    """Re-index (builtin) or flush (external) the agent's memory provider."""

    async def _sync(provider: MemorySearchProvider) -> bool:
        sync_fn = getattr(provider, "sync", None)
        if sync_fn is None:
            return False
        await sync_fn(reason="cli", force=force)
        return True

    if _with_provider(ctx, agent, _sync):
        console.print("[green]Memory synced.[/green]")
    else:
        console.print("[yellow]Provider does not support sync.[/yellow]")


# ------------------------------------------------------------------
# memsearch use
# ------------------------------------------------------------------


@app.command()
def use(
    ctx: typer.Context,
    backend: str = typer.Argument(..., help="builtin, engram or qmd"),
    command: str | None = typer.Option(None, "--command", help="Adapter executable"),
    timeout: float | None = typer.Option(
        None, "--timeout", min=0.1, help="Adapter timeout in seconds"
    ),
) -> None:
    """Select the memory backend and save it to config.toml."""
    try:
        _config_manager(ctx).set_backend(backend, command=command, timeout_seconds=timeout)
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1) from None
    console.print(f"[green]Memory backend set to {backend}.[/green]")
