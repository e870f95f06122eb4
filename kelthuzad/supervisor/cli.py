"""CLI entry point for the Kelthuzad supervisor."""

from __future__ import annotations

import asyncio
import signal
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console

from kelthuzad import __version__
from kelthuzad.config import DEFAULT_DELAY

app = typer.Typer(help="Kelthuzad: kill a sick process, respawn a healthy one", no_args_is_help=True)
console = Console()


@app.command()
def run(
    command: str = typer.Option(..., "--command", "-c", help="Command to spawn and respawn"),
    regex: str = typer.Option(..., "--regex", "-r", help="Regex pattern that marks a failure line"),
    path: str = typer.Option("", "--path", "-p", help="Log file to tail (default: the command's stdout)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Also print lines that are not failures"),
    delay: float = typer.Option(DEFAULT_DELAY, "--delay", "-d", help="Seconds to wait before respawning"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override KELTHUZAD_LOG_LEVEL"),
) -> None:
    """Run COMMAND and respawn it whenever a line matches REGEX."""
    from kelthuzad.config import WatchConfig
    from kelthuzad.logging_config import setup_logging
    from kelthuzad.supervisor.detector import FailureDetector
    from kelthuzad.supervisor.errors import PatternError, SupervisorError
    from kelthuzad.supervisor.monitor import Supervisor
    from kelthuzad.supervisor.notifier import SupervisorNotifier

    try:
        setup_logging(log_level)
    except ValueError as exc:
        console.print(f"[bold red]Invalid configuration:[/bold red] {exc}")
        raise typer.Exit(1)

    try:
        config = WatchConfig(command=command, log_path=path, regex=regex, verbose=verbose, delay=delay)
    except ValidationError as exc:
        console.print(f"[bold red]Invalid configuration:[/bold red] {exc}")
        raise typer.Exit(1)

    try:
        detector = FailureDetector(config.regex)
    except PatternError as exc:
        console.print(f"[bold red]Fatal:[/bold red] {exc}")
        raise typer.Exit(1)

    supervisor = Supervisor(config, detector, SupervisorNotifier())

    # Handle Ctrl+C / SIGTERM: the first one stops the supervisor, later ones are ignored
    def signal_handler(sig, frame):
        if supervisor.shutdown_requested:
            return
        console.print("\n[yellow]received an interrupt, stopping...[/yellow]")
        supervisor.shutdown()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    console.print(f"[bold cyan]Kelthuzad v{__version__}[/bold cyan]")
    console.print(f"  Command: [green]{config.command}[/green]")
    console.print(f"  Watch:   [green]{config.log_path or 'stdout'}[/green]")
    console.print(f"  Regex:   [green]{config.regex}[/green]")
    console.print(f"  Delay:   [green]{config.delay:g}s[/green]")

    try:
        asyncio.run(supervisor.run())
    except SupervisorError as exc:
        console.print(f"[bold red]Fatal:[/bold red] {exc}")
        raise typer.Exit(1)


@app.command()
def version() -> None:
    """Print the Kelthuzad version."""
    console.print(__version__)


if __name__ == "__main__":
    app()
