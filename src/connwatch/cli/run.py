"""CLI command: connwatch run <cmd>, launch a process under monitoring."""

from __future__ import annotations

import logging
import signal
import sys
from contextlib import nullcontext
from datetime import datetime

import click
from rich.console import Console
from rich.table import Table

from connwatch import __version__
from connwatch.capture import BACKENDS
from connwatch.config import ConnWatchConfig
from connwatch.policy.models import ExecutionMode, PolicyAction
from connwatch.session.models import ConnectionEvent, MonitorOutcome, MonitorState
from connwatch.session.monitor import ConnectionMonitor, SpawnError
from connwatch.stats import StatsSnapshot

console = Console(stderr=True)

_RULE = "━" * 50


@click.command(
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False}
)
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.option(
    "--exit-first", "-e", is_flag=True, help="Kill the command on its first connection."
)
@click.option(
    "--block", "-b", is_flag=True, help="Report every connection as blocked but keep running."
)
@click.option(
    "--timeout",
    "-t",
    "dns_timeout_ms",
    type=click.IntRange(min=0),
    default=None,
    help="Reverse DNS timeout in milliseconds (default 1000).",
)
@click.option(
    "--backend",
    type=click.Choice(BACKENDS),
    default=None,
    help="Connection enumeration backend.",
)
@click.option(
    "--no-children", is_flag=True, help="Ignore connections of the command's child processes."
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug output.")
@click.option("--quiet", "-q", is_flag=True, help="Only show essential information.")
def run(
    command: tuple[str, ...],
    exit_first: bool,
    block: bool,
    dns_timeout_ms: int | None,
    backend: str | None,
    no_children: bool,
    verbose: bool,
    quiet: bool,
) -> None:
    """Launch COMMAND and monitor its network connections."""
    try:
        config = ConnWatchConfig.load(
            exit_first=exit_first,
            block=block,
            dns_timeout_ms=dns_timeout_ms,
            backend=backend,
            include_children=not no_children,
            verbose=verbose,
            quiet=quiet,
        )
        config.validate()
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc

    level = logging.DEBUG if verbose else logging.ERROR if quiet else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    name = " ".join(command)
    # Live activity line; connection lines print above it
    status = None if config.quiet else console.status(_activity(0), spinner="dots")

    def on_event(event: ConnectionEvent) -> None:
        _print_event(event, config)
        if status is not None:
            status.update(_activity(monitor.stats.total))

    def on_state(state: MonitorState) -> None:
        if state is MonitorState.DRAINING and not config.quiet:
            console.print(f"{_stamp()} [bright_blue]FINISHED[/bright_blue] [yellow]{name}[/yellow]")

    monitor = ConnectionMonitor(config, on_event=on_event, on_state=on_state)
    _print_banner(name, config, monitor.enumerator.name)

    try:
        child = monitor.spawn(command)
    except SpawnError as exc:
        raise click.ClickException(str(exc)) from exc

    if not config.quiet:
        console.print(f"{_stamp()} [bright_blue]STARTED[/bright_blue] [yellow]{name}[/yellow]")

    def _signal_handler(signum: int, frame: object) -> None:
        monitor.terminate_child()

    previous = {
        signum: signal.signal(signum, _signal_handler)
        for signum in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        with status if status is not None else nullcontext():
            outcome = monitor.monitor(child)
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)

    if outcome.killed:
        console.print("Process terminated due to network activity")
    elif config.mode is ExecutionMode.BLOCK_AND_CONTINUE and not config.quiet:
        console.print(
            f"\n[bright_red]Blocked Connections:[/bright_red] "
            f"[yellow]{outcome.stats.blocked}[/yellow]"
        )

    _print_summary(outcome, config)
    sys.exit(outcome.exit_code)


def _stamp() -> str:
    return f"[dim]\\[{datetime.now():%H:%M:%S}][/dim]"


def _activity(total: int) -> str:
    noun = "connection" if total == 1 else "connections"
    return f"[bright_blue]Monitoring[/bright_blue] [yellow]{total}[/yellow] {noun} so far"


def _print_banner(command: str, config: ConnWatchConfig, backend: str) -> None:
    if config.quiet:
        return
    mode_color = "bright_green" if config.mode is ExecutionMode.NORMAL else "bright_red"
    console.print(f"\n[bright_blue]{_RULE}[/bright_blue]")
    console.print(f"[bold]connwatch[/bold] v{__version__}")
    console.print("   Monitor and control network connections of processes")
    console.print(f"[bright_blue]{_RULE}[/bright_blue]")

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="dim")
    table.add_column()
    table.add_row("Command", f"[yellow]{command}[/yellow]")
    table.add_row("Mode", f"[{mode_color}]{config.mode.label}[/{mode_color}]")
    table.add_row("Backend", backend)
    table.add_row("DNS Timeout", f"{config.dns_timeout_ms} ms")
    table.add_row("Verbose", "Yes" if config.verbose else "No")
    console.print(table)
    console.print()


def _print_event(event: ConnectionEvent, config: ConnWatchConfig) -> None:
    if event.action is PolicyAction.ALLOWED:
        label = "[bright_green]CONNECTION[/bright_green]"
    else:
        label = "[bright_red]BLOCKED[/bright_red]"

    # Policy kills are always reported, even in quiet mode
    if config.quiet and event.action is not PolicyAction.KILLED:
        return

    target = f"[yellow]{event.endpoint}[/yellow]"
    if event.domain:
        target += f" [bright_blue]→[/bright_blue] [bright_cyan]{event.domain}[/bright_cyan]"
    stamp = f"[dim]\\[{datetime.fromtimestamp(event.timestamp):%H:%M:%S}][/dim]"
    console.print(f"{stamp} {label} {target}")


def _print_summary(outcome: MonitorOutcome, config: ConnWatchConfig) -> None:
    stats = outcome.stats
    if config.quiet:
        if stats.total > 0:
            console.print(
                f"\nTotal connections: [yellow]{stats.total}[/yellow] "
                f"[dim]({stats.elapsed:.1f}s)[/dim]"
            )
        return

    console.print(f"\n[bright_blue]{_RULE}[/bright_blue]")
    console.print("[bold]           Network Activity Report           [/bold]")
    console.print(f"[bright_blue]{_RULE}[/bright_blue]\n")

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="dim")
    table.add_column()
    table.add_row("Monitoring Duration", f"{stats.elapsed:.1f} seconds")
    table.add_row("Total Connections", f"[yellow]{stats.total}[/yellow]")
    table.add_row("Unique IPs", f"[yellow]{stats.unique_ips}[/yellow]")
    table.add_row("Unique Domains", f"[yellow]{stats.unique_domains}[/yellow]")
    table.add_row("Exit Code", str(outcome.exit_code))
    console.print(table)

    _print_top_domains(stats, config.top_domains)


def _print_top_domains(stats: StatsSnapshot, limit: int) -> None:
    if not stats.domains:
        return

    console.print("\n[bright_blue]Top Domains[/bright_blue]:")
    ranking, remainder = stats.top_domains(limit)
    for domain, count in ranking:
        percentage = count / stats.total * 100.0
        console.print(
            f"   [yellow]{count}[/yellow] {percentage:>5.1f}% → [bright_cyan]{domain}[/bright_cyan]"
        )
    if remainder:
        console.print(f"   ... and {remainder} more")
