"""CLI entry point — Click group with global options."""

from __future__ import annotations

import logging

import click

from allyscan import __version__


@click.group()
@click.version_option(version=__version__, prog_name="ally")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """ally — accessibility (WCAG) scanning for HTML files and live URLs."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _register_commands() -> None:
    from allyscan.cli.cache import cache  # noqa: F811
    from allyscan.cli.doctor import doctor  # noqa: F811
    from allyscan.cli.history import history  # noqa: F811
    from allyscan.cli.scan import scan  # noqa: F811
    from allyscan.cli.server import server  # noqa: F811

    main.add_command(scan)
    main.add_command(history)
    main.add_command(cache)
    main.add_command(doctor)
    main.add_command(server)


_register_commands()
