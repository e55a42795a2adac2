"""CLI command: ally server — serve scan history, cache stats and reports over HTTP."""

from __future__ import annotations

import asyncio
import sys

import click
from rich.console import Console
from rich.markup import escape

from allyscan.config import AllyConfig
from allyscan.errors import ConfigError

console = Console(stderr=True)

ROUTES = (
    ("GET", "/api/history", "recent scan scores (?root=, ?limit=)"),
    ("GET", "/api/history/stats", "latest, best and average score with trend"),
    ("GET", "/api/cache", "cached result counts"),
    ("DELETE", "/api/cache", "drop every cached result"),
    ("GET", "/api/reports/latest", "last scan.json in the report directory"),
)


@click.command()
@click.option(
    "--port",
    type=int,
    default=None,
    help="Port to listen on (default: 8471, or web_port from config).",
)
@click.pass_context
def server(ctx: click.Context, port: int | None) -> None:
    """Serve the scan database as a JSON API on 127.0.0.1.

    \b
    Routes:
      GET    /api/history          recent scan scores
      GET    /api/history/stats    score trend summary
      GET    /api/cache            cache statistics
      DELETE /api/cache            clear the result cache
      GET    /api/reports/latest   most recent JSON report
    Interactive docs are served at /api/docs.
    """
    try:
        import uvicorn
    except ImportError:
        console.print(
            "[red]The API server needs the web extra.[/red]\n"
            "Install with: pip install 'allyscan[web]'"
        )
        sys.exit(1)

    try:
        config = AllyConfig.load()
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(2)
    if port is not None:
        config.web_port = port

    base = f"http://{config.web_host}:{config.web_port}"
    console.print(f"[bold]ally[/bold] API for [cyan]{config.db_path}[/cyan]")
    for method, path, summary in ROUTES:
        console.print(f"  {method:<6} [cyan]{base}{path}[/cyan]  [dim]{summary}[/dim]")
    console.print(f"  Docs   [cyan]{base}/api/docs[/cyan]\n")

    from allyscan.web.app import create_app

    async def _serve() -> None:
        app = await create_app(config)
        await uvicorn.Server(
            uvicorn.Config(
                app,
                host=config.web_host,
                port=config.web_port,
                log_level="debug" if ctx.obj.get("verbose") else "info",
            )
        ).serve()

    asyncio.run(_serve())
