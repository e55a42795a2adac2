"""CLI commands: ally cache clear|stats|prune."""

from __future__ import annotations

import asyncio
import json
import sys
from datetime import datetime

import click
from rich.console import Console
from rich.markup import escape

from allyscan.config import AllyConfig
from allyscan.errors import ConfigError
from allyscan.storage.cache import ResultCache, SqliteCacheStore
from allyscan.storage.db import get_db

console = Console(stderr=True)


def _load_config() -> AllyConfig:
    try:
        return AllyConfig.load()
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(2)


async def _with_cache(config: AllyConfig, action: str):
    db = await get_db(config.db_path)
    try:
        cache = ResultCache(SqliteCacheStore(db))
        if action == "clear":
            return await cache.clear()
        if action == "prune":
            return await cache.prune()
        return await cache.stats()
    finally:
        await db.close()


@click.group()
def cache() -> None:
    """Manage cached scan results."""


@cache.command()
def clear() -> None:
    """Remove every cached result."""
    config = _load_config()
    removed = asyncio.run(_with_cache(config, "clear"))
    console.print(f"[green]Removed {removed} cached result(s).[/green]")


@cache.command()
def prune() -> None:
    """Remove cached results for files that no longer exist."""
    config = _load_config()
    removed = asyncio.run(_with_cache(config, "prune"))
    console.print(f"[green]Pruned {removed} stale cache entr{'y' if removed == 1 else 'ies'}.[/green]")


@cache.command()
@click.option("--json", "as_json", is_flag=True, help="Print stats as JSON to stdout.")
def stats(as_json: bool) -> None:
    """Show cache size and age."""
    config = _load_config()
    result = asyncio.run(_with_cache(config, "stats"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    console.print(f"Database: [cyan]{config.db_path}[/cyan]")
    console.print(f"Entries:  {result.entries} ({result.targets} file(s))")
    for standard, count in sorted(result.standards.items()):
        console.print(f"  {standard}: {count}")
    if result.oldest is not None:
        console.print(f"Oldest:   {_fmt_time(result.oldest)}")
        console.print(f"Newest:   {_fmt_time(result.newest)}")


def _fmt_time(ts: float) -> str:
    return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M")
