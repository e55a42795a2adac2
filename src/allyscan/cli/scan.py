"""CLI command: ally scan [PATH] — accessibility scan of HTML files or URLs."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import sys
from pathlib import Path

import aiosqlite
import click
from rich.console import Console
from rich.markup import escape
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
)
from rich.table import Table

from allyscan.browser import BrowserName, EngineType, create_backend
from allyscan.config import REPORT_FORMATS, AllyConfig
from allyscan.errors import (
    AllyError,
    BackendLaunchError,
    BackendNotInstalledError,
    ConfigError,
    NoTargetsError,
    diagnose_browser_error,
)
from allyscan.history import git_info
from allyscan.report.formats import save_report, to_json
from allyscan.scanner.axe import AxeRunner, load_axe_source
from allyscan.scanner.engine import ColorBlindness, ScanEngine
from allyscan.scanner.models import AllyReport, ProgressEvent, Severity
from allyscan.scanner.pipeline import PipelineResult, ScanPipeline
from allyscan.scanner.retry import RetryPolicy
from allyscan.scanner.standards import Standard, choices
from allyscan.scanner.targets import (
    Target,
    count_component_files,
    discover_targets,
    load_ignore_file,
)
from allyscan.storage.cache import ResultCache, SqliteCacheStore
from allyscan.storage.db import get_db
from allyscan.storage.repos import HistoryEntry, HistoryRepo

logger = logging.getLogger(__name__)

console = Console(stderr=True)

_SEVERITY_COLORS = {
    Severity.CRITICAL: "red",
    Severity.SERIOUS: "orange1",
    Severity.MODERATE: "yellow",
    Severity.MINOR: "blue",
}


@click.command()
@click.argument("path", required=False, type=click.Path(exists=True))
@click.option("--url", "-u", "urls", multiple=True, help="Scan a live URL (repeatable).")
@click.option(
    "--standard",
    "-s",
    help=f"WCAG standard: {', '.join(choices())} (or A, AA, AAA).",
)
@click.option("--timeout", type=float, help="Page load timeout in seconds.")
@click.option("--no-cache", is_flag=True, help="Rescan every file, ignoring cached results.")
@click.option(
    "--engine",
    type=click.Choice([e.value for e in EngineType]),
    help="Browser automation engine.",
)
@click.option(
    "--browser",
    type=click.Choice([b.value for b in BrowserName]),
    help="Browser to drive.",
)
@click.option("--batch-size", type=click.IntRange(min=1), help="Pages scanned in parallel.")
@click.option(
    "--format",
    "fmt",
    type=click.Choice(REPORT_FORMATS),
    help="Extra report file to write next to scan.json.",
)
@click.option("--output", "-o", type=click.Path(), help="Report directory (default: .ally).")
@click.option("--json", "as_json", is_flag=True, help="Print the JSON report to stdout.")
@click.option("--ci", is_flag=True, help="Plain output without progress bars.")
@click.option(
    "--simulate",
    type=click.Choice([c.value for c in ColorBlindness]),
    help="Screenshot a URL as seen with a colour-vision deficiency.",
)
@click.option("--verbose", "-v", is_flag=True, help="Show per-file detail.")
@click.pass_context
def scan(
    ctx: click.Context,
    path: str | None,
    urls: tuple[str, ...],
    standard: str | None,
    timeout: float | None,
    no_cache: bool,
    engine: str | None,
    browser: str | None,
    batch_size: int | None,
    fmt: str | None,
    output: str | None,
    as_json: bool,
    ci: bool,
    simulate: str | None,
    verbose: bool,
) -> None:
    """Scan HTML files (default: current directory) or URLs for WCAG violations."""
    verbose = verbose or ctx.obj.get("verbose", False)
    if verbose:
        logging.getLogger("allyscan").setLevel(logging.DEBUG)
    config = _load_config(
        standard=standard,
        timeout=timeout,
        no_cache=no_cache,
        engine=engine,
        browser=browser,
        batch_size=batch_size,
        fmt=fmt,
        output=output,
    )

    if path and urls:
        _fail("Pass either a PATH or --url, not both.", code=2)

    try:
        axe_source = load_axe_source(config.axe_script, config.data_dir)
        backend = create_backend(config.engine, config.browser)
    except (AllyError, ValueError) as e:
        _fail(str(e))

    scan_engine = ScanEngine(backend, AxeRunner(axe_source), timeout=config.timeout)

    if simulate:
        if len(urls) != 1:
            _fail("--simulate needs exactly one --url.", code=2)
        _simulate(scan_engine, urls[0], ColorBlindness(simulate), Path(config.report_output))
        return

    root = Path(path or ".").resolve()
    targets = _collect_targets(root, urls, config)

    quiet = ci or as_json
    if not quiet:
        what = f"{len(targets)} URL(s)" if urls else f"[cyan]{root}[/cyan]"
        console.print(
            f"[bold]ally[/bold] scanning {what} against "
            f"[cyan]{config.standard.value}[/cyan] "
            f"via {config.engine.value}/{config.browser.value}\n"
        )

    try:
        result = asyncio.run(
            _run_pipeline(scan_engine, targets, config, root, quiet, _command_line())
        )
    except KeyboardInterrupt:
        console.print("\n[yellow]Scan cancelled.[/yellow]")
        sys.exit(130)
    except NoTargetsError as e:
        components = 0 if urls else count_component_files(root, config.ignore)
        message = f"{e} under {root}."
        if components:
            message += (
                f"\nFound {components} component source file(s) "
                "(.jsx/.tsx/.vue/.svelte). Build the app and scan the output, "
                "or scan the dev server with --url."
            )
        _fail(message)
    except (BackendNotInstalledError, BackendLaunchError) as e:
        _fail(str(e))
    except Exception as e:
        diagnosis = diagnose_browser_error(e)
        if diagnosis is None:
            raise
        _fail(f"{diagnosis.message}: {e}\n{diagnosis.suggestion}")

    # Completion order within a batch is arbitrary; sort for stable output
    report = dataclasses.replace(
        result.report,
        results=tuple(sorted(result.report.results, key=lambda r: r.identity)),
    )
    save_report(report, config.report_output, config.report_format, root=root)

    if as_json:
        click.echo(to_json(report))
        return

    if ci:
        _print_ci_summary(report)
    else:
        if verbose:
            _print_results(report, root)
        _print_summary(report, result)
    _print_failures(report)


def _load_config(**flags) -> AllyConfig:
    try:
        config = AllyConfig.load()
    except ConfigError as e:
        _fail(str(e), code=2)

    try:
        if flags["standard"]:
            config.standard = Standard.parse(flags["standard"])
    except ValueError as e:
        _fail(str(e), code=2)
    if flags["timeout"] is not None:
        config.timeout = flags["timeout"]
    if flags["no_cache"]:
        config.cache = False
    if flags["engine"]:
        config.engine = EngineType(flags["engine"])
    if flags["browser"]:
        config.browser = BrowserName(flags["browser"])
    if flags["batch_size"] is not None:
        config.batch_size = flags["batch_size"]
    if flags["fmt"]:
        config.report_format = flags["fmt"]
    if flags["output"]:
        config.report_output = Path(flags["output"])
    return config


def _collect_targets(root: Path, urls: tuple[str, ...], config: AllyConfig) -> list[Target]:
    if urls:
        try:
            return [Target.from_url(u) for u in urls]
        except ValueError as e:
            _fail(str(e), code=2)

    ignore_dir = root if root.is_dir() else root.parent
    ignore = config.ignore + load_ignore_file(ignore_dir)
    return discover_targets(root, ignore)


async def _run_pipeline(
    engine: ScanEngine,
    targets: list[Target],
    config: AllyConfig,
    root: Path,
    quiet: bool,
    command: str,
) -> PipelineResult:
    db = await _open_db(config)
    try:
        cache = ResultCache(SqliteCacheStore(db)) if db is not None and config.cache else None
        pipeline = ScanPipeline(
            engine,
            cache=cache,
            batch_size=config.batch_size,
            retry=RetryPolicy(max_retries=config.retries),
            on_retry=None if quiet else _print_retry,
            root=root if root.is_dir() else root.parent,
        )

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            console=console,
            transient=True,
            disable=quiet,
        ) as progress:
            task = progress.add_task("Scanning", total=len(targets))

            def on_progress(event: ProgressEvent) -> None:
                progress.update(task, completed=event.completed, description=escape(event.label))
                if not event.ok:
                    progress.console.print(
                        f"[red]✗[/red] {escape(event.label)}: {escape(event.error)}"
                    )

            result = await pipeline.run(targets, config.standard, on_progress)

        if db is not None:
            await _record_history(db, result.report, root, command)
        return result
    finally:
        if db is not None:
            await db.close()


async def _open_db(config: AllyConfig) -> aiosqlite.Connection | None:
    try:
        return await get_db(config.db_path)
    except (OSError, aiosqlite.Error) as e:
        logger.warning("Cache and history disabled, cannot open %s: %s", config.db_path, e)
        return None


async def _record_history(
    db: aiosqlite.Connection, report: AllyReport, root: Path, command: str
) -> None:
    branch, commit = git_info(root if root.is_dir() else root.parent)
    entry = HistoryEntry.from_report(
        report,
        root=str(root),
        command=command,
        branch=branch,
        commit=commit,
    )
    try:
        await HistoryRepo(db).append(entry)
    except aiosqlite.Error as e:
        logger.warning("Could not record scan history: %s", e)


def _simulate(engine: ScanEngine, url: str, kind: ColorBlindness, output_dir: Path) -> None:
    try:
        target = Target.from_url(url)
    except ValueError as e:
        _fail(str(e), code=2)
    output_path = output_dir / f"simulate-{kind.value}.png"

    async def _run() -> Path:
        async with engine:
            return await engine.simulate_color_blindness(target.url, kind, output_path)

    try:
        saved = asyncio.run(_run())
    except (BackendNotInstalledError, BackendLaunchError) as e:
        _fail(str(e))
    except Exception as e:
        diagnosis = diagnose_browser_error(e)
        if diagnosis is None:
            raise
        _fail(f"{diagnosis.message}: {e}\n{diagnosis.suggestion}")
    console.print(f"[green]Saved {kind.value} simulation to {saved}[/green]")


def _print_retry(attempt: int, error: BaseException, delay: float) -> None:
    console.print(f"[dim]  retry {attempt} in {delay:.0f}s: {error}[/dim]")


def _print_results(report: AllyReport, root: Path) -> None:
    table = Table(title="Results", show_lines=False)
    table.add_column("Target", style="cyan")
    table.add_column("Violations", justify="right")
    table.add_column("Critical", justify="right")
    table.add_column("Serious", justify="right")
    table.add_column("Passes", justify="right")

    for result in report.results:
        counts = {s: 0 for s in Severity}
        for violation in result.violations:
            counts[violation.impact] += 1
        table.add_row(
            _shorten_path(result.identity, root),
            str(len(result.violations)),
            str(counts[Severity.CRITICAL]),
            str(counts[Severity.SERIOUS]),
            str(result.passes),
        )
    console.print(table)


def _print_summary(report: AllyReport, result: PipelineResult) -> None:
    summary = report.summary
    color = "green" if summary.score >= 90 else "yellow" if summary.score >= 50 else "red"
    console.print(f"\nAccessibility score: [bold {color}]{summary.score}/100[/bold {color}]")

    parts = []
    for severity in Severity:
        count = summary.by_severity[severity]
        sev_color = _SEVERITY_COLORS[severity]
        parts.append(f"[{sev_color}]{count} {severity.value}[/{sev_color}]")
    console.print(f"Violations: {summary.total_violations} (" + ", ".join(parts) + ")")

    outcome = result.outcome
    console.print(
        f"Scanned {outcome.scanned} target(s), "
        f"{outcome.cache_hits} from cache, "
        f"{len(outcome.failures)} failed"
    )

    if summary.top_issues:
        table = Table(title="Top issues", show_lines=False)
        table.add_column("Rule", style="bold")
        table.add_column("Severity", width=10)
        table.add_column("Count", justify="right")
        table.add_column("Description", max_width=60)
        for issue in summary.top_issues:
            sev_color = _SEVERITY_COLORS[issue.severity]
            table.add_row(
                issue.id,
                f"[{sev_color}]{issue.severity.value}[/{sev_color}]",
                str(issue.count),
                issue.description,
            )
        console.print()
        console.print(table)


def _print_ci_summary(report: AllyReport) -> None:
    summary = report.summary
    console.print(f"score={summary.score}")
    console.print(f"files={report.total_files}")
    console.print(f"violations={summary.total_violations}")
    console.print(f"errors={summary.errors}")
    console.print(f"warnings={summary.warnings}")
    console.print(f"failed={len(report.errors)}")


def _print_failures(report: AllyReport) -> None:
    if not report.errors:
        return
    console.print(f"\n[red]{len(report.errors)} target(s) could not be scanned:[/red]")
    for failure in report.errors:
        console.print(f"  [red]✗[/red] {escape(failure.target)}: {escape(failure.error)}")
        diagnosis = diagnose_browser_error(RuntimeError(failure.error))
        if diagnosis is not None:
            console.print(f"    [dim]{diagnosis.message}. {diagnosis.suggestion}[/dim]")


def _shorten_path(file_path: str, base_dir: Path) -> str:
    """Shorten file path relative to scan directory."""
    base = str(base_dir)
    if file_path.startswith(base):
        return file_path[len(base) :].lstrip("/") or Path(file_path).name
    return file_path


def _command_line() -> str:
    return " ".join(["ally", *sys.argv[1:]])


def _fail(message: str, code: int = 1) -> None:
    console.print(f"[red]Error:[/red] {escape(message)}")
    sys.exit(code)
