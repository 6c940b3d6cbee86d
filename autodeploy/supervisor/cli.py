"""
CLI: ``autodeploy-supervisor``, run and inspect the supervised webhook service.

Usage::

    autodeploy-supervisor start                 # Supervise autodeploy/main.py
    autodeploy-supervisor start --max-restarts 3
    autodeploy-supervisor status                # PID record and liveness
    autodeploy-supervisor cleanup               # Kill a stale process, drop the PID file
"""

import asyncio
import json

import typer
from rich.console import Console
from rich.table import Table

from autodeploy.config import settings
from autodeploy.core.exceptions import SupervisorError
from autodeploy.supervisor.pidfile import PidFile
from autodeploy.supervisor.process import ProcessSupervisor
from autodeploy.utils.logging import configure_logging

app = typer.Typer(no_args_is_help=True, help="Supervise the autodeploy webhook service.")
console = Console()
err_console = Console(stderr=True)


@app.command()
def start(
    target: str | None = typer.Option(None, "--target", "-t", help="Service script to run."),
    max_restarts: int | None = typer.Option(
        None, "--max-restarts", help="Crash restarts before giving up."
    ),
    restart_delay: float | None = typer.Option(
        None, "--restart-delay", help="Seconds to wait before each restart."
    ),
    pid_file: str | None = typer.Option(None, "--pid-file", help="PID file path."),
) -> None:
    """Start the service under supervision.

    Any stale process recorded in the PID file is killed first. Exits with
    the service's exit code, or 1 once the restart budget is exhausted.
    """
    configure_logging(log_file=settings.supervisor_log_file)

    pidfile = PidFile(pid_file)
    stale = pidfile.cleanup()
    if stale:
        console.print(f"[yellow]Cleaned up stale PID record[/] ({stale})")
    pidfile.write()

    supervisor = ProcessSupervisor(
        target=target,
        max_restarts=max_restarts,
        restart_delay=restart_delay,
    )
    console.print(f"[bold]autodeploy supervisor[/] target: {supervisor.target}")

    try:
        exit_code = asyncio.run(supervisor.run())
    except SupervisorError as e:
        err_console.print(f"[red]Supervisor failed:[/] {e.message}")
        exit_code = 1
    finally:
        pidfile.remove()

    raise typer.Exit(code=exit_code)


@app.command()
def status(
    pid_file: str | None = typer.Option(None, "--pid-file", help="PID file path."),
    json_out: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """Show the recorded PID and whether it is alive."""
    pidfile = PidFile(pid_file)
    pid = pidfile.read()
    running = pidfile.is_process_running(pid)

    if json_out:
        typer.echo(json.dumps({"pid": pid, "running": running, "pid_file": str(pidfile.path)}))
    elif pid is None:
        console.print("[red]No PID file found[/]")
    else:
        table = Table(title="autodeploy supervisor")
        table.add_column("PID", style="bold")
        table.add_column("Running")
        table.add_column("PID file", style="dim")
        table.add_row(str(pid), "[green]yes[/]" if running else "[red]no[/]", str(pidfile.path))
        console.print(table)

    if not running:
        raise typer.Exit(code=1)


@app.command()
def cleanup(
    pid_file: str | None = typer.Option(None, "--pid-file", help="PID file path."),
) -> None:
    """Force cleanup of a stale PID record."""
    pid = PidFile(pid_file).cleanup()
    if pid is None:
        console.print("[green]No PID file found, cleanup not needed[/]")
    else:
        console.print(f"[green]Cleaned up PID record[/] ({pid})")


if __name__ == "__main__":
    app()
