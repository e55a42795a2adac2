"""CLI command: ally history — score trend across previous scans."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from allyscan import history as trends
from allyscan.config import AllyConfig
from allyscan.errors import ConfigError
from allyscan.storage.db import get_db
from allyscan.storage.repos import HistoryEntry, HistoryRepo

console = Console(stderr=True)

_TREND_STYLES = {
    "improving": "[green]↑ improving[/green]",
    "declining": "[red]↓ declining[/red]",
    "stable": "[dim]→ stable[/dim]",
}


def _load_config() -> AllyConfig:
    try:
        return AllyConfig.load()
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(2)


@click.command()
@click.option("--limit", "-n", type=click.IntRange(min=1), default=10, show_default=True)
@click.option(
    "--all-projects",
    is_flag=True,
    help="Include scans of every directory, not just the current one.",
)
@click.option("--json", "as_json", is_flag=True, help="Print entries as JSON to stdout.")
def history(limit: int, all_projects: bool, as_json: bool) -> None:
    """Show recent scan scores and the overall trend."""
    config = _load_config()
    root = None if all_projects else str(Path.cwd().resolve())

    async def _load() -> list[HistoryEntry]:
        db = await get_db(config.db_path)
        try:
            return await HistoryRepo(db).list_recent(limit=limit, root=root)
        finally:
            await db.close()

    entries = asyncio.run(_load())

    if as_json:
        payload = {
            "entries": [e.to_dict() for e in entries],
            "stats": trends.stats(entries),
        }
        click.echo(json.dumps(payload, indent=2))
        return

    if not entries:
        console.print("[dim]No scan history yet. Run [bold]ally scan[/bold] first.[/dim]")
        return

    table = Table(title="Scan history", show_lines=False)
    table.add_column("When", style="dim")
    table.add_column("Score", justify="right", style="bold")
    table.add_column("Violations", justify="right")
    table.add_column("Critical", justify="right")
    table.add_column("Files", justify="right")
    table.add_column("Branch")

    for entry in entries:
        branch = entry.branch or ""
        if entry.commit:
            branch = f"{branch}@{entry.commit}"
        table.add_row(
            entry.timestamp[:16].replace("T", " "),
            str(entry.score),
            str(entry.total_violations),
            str(entry.critical),
            str(entry.files_scanned),
            branch,
        )

    console.print(table)

    stats = trends.stats(entries)
    change = stats["change"]
    change_text = "" if change is None else f" ({change:+d} since previous scan)"
    console.print(
        f"\nLatest {stats['latest']}{change_text}, best {stats['best']}, "
        f"average {stats['average']}"
    )
    console.print(f"Trend: {_TREND_STYLES[stats['trend']]}")
