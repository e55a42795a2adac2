"""CLI command: ally doctor — check engines, configuration and data directory."""

from __future__ import annotations

import sys

import click
from rich.console import Console
from rich.table import Table

from allyscan.browser import EngineType, engine_available
from allyscan.browser.factory import install_command
from allyscan.config import AllyConfig
from allyscan.errors import ConfigError
from allyscan.scanner.axe import AXE_VERSION

console = Console(stderr=True)


@click.command()
def doctor() -> None:
    """Report which engines are installed and where ally keeps its data."""
    problems = 0

    try:
        config = AllyConfig.load()
    except ConfigError as e:
        console.print(f"[red]✗[/red] Configuration: {e}")
        config = AllyConfig()
        problems += 1
    else:
        source = config.config_file or "defaults"
        console.print(f"[green]✓[/green] Configuration: {source}")

    table = Table(title="Engines", show_lines=False)
    table.add_column("Engine", style="bold")
    table.add_column("Status")
    table.add_column("Install")

    for engine in EngineType:
        available = engine_available(engine)
        selected = " (selected)" if engine is config.engine else ""
        if available:
            table.add_row(engine.value + selected, "[green]installed[/green]", "")
        else:
            if engine is config.engine:
                problems += 1
            table.add_row(
                engine.value + selected,
                "[yellow]missing[/yellow]",
                install_command(engine),
            )
    console.print(table)

    console.print(f"Data directory: [cyan]{config.data_dir}[/cyan]")
    axe_cached = config.data_dir / f"axe-{AXE_VERSION}.min.js"
    if config.axe_script is not None:
        status = "[green]found[/green]" if config.axe_script.is_file() else "[red]missing[/red]"
        if not config.axe_script.is_file():
            problems += 1
        console.print(f"axe-core script: {config.axe_script} {status}")
    elif axe_cached.is_file():
        console.print(f"axe-core {AXE_VERSION}: [green]downloaded[/green]")
    else:
        console.print(f"axe-core {AXE_VERSION}: [dim]will be downloaded on first scan[/dim]")

    console.print(
        f"Standard: {config.standard.value}, batch size {config.batch_size}, "
        f"timeout {config.timeout:g}s, cache {'on' if config.cache else 'off'}"
    )

    if problems:
        console.print(f"\n[red]{problems} problem(s) found.[/red]")
        sys.exit(1)
    console.print("\n[green]All checks passed.[/green]")
