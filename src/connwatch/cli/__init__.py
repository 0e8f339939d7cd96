"""CLI entry point: Click group with global options."""

from __future__ import annotations

import click

from connwatch import __version__


@click.group()
@click.version_option(version=__version__, prog_name="connwatch")
def main() -> None:
    """connwatch: watch and police the network connections of a command."""


def _register_commands() -> None:
    from connwatch.cli.run import run  # noqa: F811

    main.add_command(run)


_register_commands()
