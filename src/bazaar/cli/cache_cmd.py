"""CLI commands for cache administration.

Usage:
    bazaar cache stats
    bazaar cache clear
    bazaar cache clear --category Writing
    bazaar cache clear --agent 42
"""

from __future__ import annotations

import asyncio
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from bazaar.cache.invalidation import InvalidationCoordinator, InvalidationResult
from bazaar.cache.redis import RedisCacheStore

app = typer.Typer(help="Inspect and clear the catalog cache", no_args_is_help=True)
console = Console()


async def _connect() -> RedisCacheStore:
    store = RedisCacheStore()
    if not await store.connect():
        await store.close()
        console.print(f"[red]Cache unreachable at {store.safe_url()}[/red]")
        raise typer.Exit(code=1)
    return store


async def _stats() -> dict[str, Any]:
    store = await _connect()
    try:
        return {"url": store.safe_url(), "healthy": await store.health_check(), **store.stats()}
    finally:
        await store.close()


async def _clear(agent_id: str | None, category: str | None) -> InvalidationResult:
    store = await _connect()
    try:
        coordinator = InvalidationCoordinator(store)
        if agent_id:
            return await coordinator.invalidate_agent(agent_id)
        if category:
            return await coordinator.invalidate_category(category)
        return await coordinator.invalidate_all()
    finally:
        await store.close()


@app.command("stats")
def stats() -> None:
    """Show cache connectivity."""
    table = Table(title="Cache")
    table.add_column("Field")
    table.add_column("Value")
    for key, value in asyncio.run(_stats()).items():
        table.add_row(key, str(value))
    console.print(table)


@app.command("clear")
def clear(
    agent_id: str | None = typer.Option(None, "--agent", "-a", help="Clear one record's entries"),
    category: str | None = typer.Option(
        None, "--category", "-c", help="Clear one category's listings"
    ),
) -> None:
    """Clear catalog cache entries (everything when no option is given)."""
    if agent_id and category:
        console.print("[red]Pass --agent or --category, not both[/red]")
        raise typer.Exit(code=2)

    result = asyncio.run(_clear(agent_id, category))
    target = f" {result.target}" if result.target else ""
    console.print(
        f"[green]Invalidated {result.scope.value}{target}:[/green] "
        f"{result.keys_deleted} keys deleted"
    )
