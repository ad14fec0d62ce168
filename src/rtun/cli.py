"""Command line interface for rtun."""

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from . import __version__
from .api import run_tunnels
from .common.exceptions import ConfigurationError, SignalDeliveryError
from .common.logging import setup_logging
from .common.utils import MAX_PORT, MIN_PORT
from .config import DEFAULT_DEADLINE, DEFAULT_GRACE_PERIOD, SupervisorConfig
from .supervisor import TunnelSupervisor
from .tunnels.models import (
    DEFAULT_HOST,
    DEFAULT_USER,
    ShutdownResult,
    TunnelOutcome,
    make_specs,
)

EXIT_USAGE = 2
EXIT_SIGNALS = 3

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

OUTCOME_STYLES = {
    TunnelOutcome.STOPPED: "green",
    TunnelOutcome.KILLED: "yellow",
    TunnelOutcome.STOP_TIMEOUT: "bold red",
    TunnelOutcome.LAUNCH_FAILED: "red",
    TunnelOutcome.CRASHED: "red",
    TunnelOutcome.EXITED_EARLY: "yellow",
}

app = typer.Typer(
    help="A simple CLI for creating SSH tunnels.",
    add_completion=False,
)

console = Console()
err_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    if value:
        typer.echo(f"rtun {__version__}")
        raise typer.Exit()


def validate_log_level(value: str) -> str:
    if value.upper() not in LOG_LEVELS:
        raise typer.BadParameter(f"must be one of {', '.join(LOG_LEVELS)}")
    return value.upper()


def print_started(supervisor: TunnelSupervisor) -> None:
    for process in supervisor.running():
        console.print(f"PORTS >>>> [bold]{process.spec}[/bold] (pid {process.pid})")
    console.print("[dim]Press Ctrl-C to stop all tunnels[/dim]")


def print_summary(result: ShutdownResult) -> None:
    table = Table(title="Rtun - SSH Tunnel Manager")
    table.add_column("Port", justify="right")
    table.add_column("Destination")
    table.add_column("Outcome")
    table.add_column("Detail", overflow="fold")

    for report in result.reports:
        style = OUTCOME_STYLES.get(report.outcome, "")
        table.add_row(
            str(report.spec.port),
            report.spec.destination,
            f"[{style}]{report.outcome.value}[/{style}]",
            report.detail,
        )
    console.print(table)


@app.command()
def main(
    ports: list[int] = typer.Argument(
        ...,
        min=MIN_PORT,
        max=MAX_PORT,
        help="List of ports to tunnel",
        show_default=False,
    ),
    user: str = typer.Option(DEFAULT_USER, "--user", "-u", envvar="RTUN_USER", help="SSH user"),
    host: str = typer.Option(DEFAULT_HOST, "--host", "-H", envvar="RTUN_HOST", help="Host"),
    deadline: float = typer.Option(
        DEFAULT_DEADLINE, "--deadline", help="Seconds to wait for tunnels to stop"
    ),
    grace_period: float = typer.Option(
        DEFAULT_GRACE_PERIOD, "--grace-period", help="Seconds to wait after a forceful kill"
    ),
    ssh_binary: str = typer.Option(
        "ssh", "--ssh-binary", envvar="RTUN_SSH_BINARY", help="ssh executable"
    ),
    bind_address: str | None = typer.Option(
        None, "--bind-address", help="Local address to bind forwarded ports to"
    ),
    ssh_option: list[str] = typer.Option(
        [], "--ssh-option", "-o", help="Extra ssh option as Key=Value (repeatable)"
    ),
    log_level: str = typer.Option(
        "WARNING", "--log-level", callback=validate_log_level, help="Log level"
    ),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit logs as JSON"),
    log_file: str | None = typer.Option(None, "--log-file", help="Also write logs to this file"),
    version: bool = typer.Option(
        False, "--version", callback=version_callback, is_eager=True, help="Show version"
    ),
) -> None:
    """Forward each PORT on this machine to the same port on HOST over ssh."""
    setup_logging(level=log_level, json_format=json_logs, log_file=log_file)

    try:
        specs = make_specs(ports, user=user, host=host)
        config = SupervisorConfig(
            ssh_binary=ssh_binary,
            bind_address=bind_address,
            ssh_options=ssh_option,
            deadline=deadline,
            grace_period=grace_period,
        )
    except (ConfigurationError, ValidationError) as e:
        err_console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=EXIT_USAGE) from e

    try:
        result = run_tunnels(specs, config, on_started=print_started)
    except SignalDeliveryError as e:
        err_console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=EXIT_SIGNALS) from e

    print_summary(result)
    raise typer.Exit(code=result.exit_code)


if __name__ == "__main__":
    app()
