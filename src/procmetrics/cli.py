"""procmetrics CLI - process memory and time summaries."""

import json
import logging

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from procmetrics.capture import Capturer
from procmetrics.config import Settings
from procmetrics.display import format_size, usage_bar
from procmetrics.exceptions import ProcMetricsError
from procmetrics.host import capture_host_memory
from procmetrics.models import GeneralInfo

app = typer.Typer(
    name="procmetrics",
    help="Per-process memory, processor time and page fault metrics.",
    add_completion=False,
)

console = Console()
logger = logging.getLogger(__name__)

LABEL_WIDTH = 20


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load() -> tuple[Settings, Capturer]:
    try:
        settings = Settings.from_env()
        return settings, Capturer.default(settings)
    except ProcMetricsError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e


def _key(label: str) -> str:
    return f"[cyan]{label.rjust(LABEL_WIDTH)}[/cyan]"


def _memory_line(label: str, value: int, scale: int) -> str:
    fraction = value / (scale * 1024 * 1024)
    return f"{_key(label)}{(format_size(value) + ' ').rjust(12)}{usage_bar(fraction)}"


def render_summary(processes: dict[int, GeneralInfo], memory_scale: int) -> None:
    """Print each process with processor and memory bars, then the total."""
    memory_usage = 0
    proportional = True

    for pid, process in processes.items():
        console.print(f"[blue]{pid}[/blue] [bold]{escape(process.command)}[/bold]")

        utilization = process.processor_utilization
        formatted = f"{utilization:5.1f}% ".rjust(12)
        console.print(f"{_key('Processor Usage: ')}{formatted}{usage_bar(utilization / 100.0)}")

        if memory := process.memory:
            memory_usage += memory.proportional_size
            console.print(_memory_line("Memory (PSS): ", memory.proportional_size, memory_scale))
            console.print(_memory_line("Private (USS): ", memory.unique_size, memory_scale))
        else:
            memory_usage += process.resident_size
            proportional = False
            console.print(_memory_line("Memory (RSS): ", process.resident_size, memory_scale))

    console.print("Summary")
    label = "Memory (PSS): " if proportional else "Memory (RSS): "
    console.print(_memory_line(label, memory_usage, memory_scale))


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Collect memory usage statistics."""
    configure_logging(verbose)


@app.command()
def summary(
    pid: list[int] | None = typer.Option(None, "--pid", help="Report on this process id (repeatable)"),
    ppid: list[int] | None = typer.Option(
        None, "--ppid", "-p", help="Report on this process and all of its children (repeatable)"
    ),
    memory: bool = typer.Option(True, "--memory/--no-memory", help="Capture detailed memory where supported"),
    memory_scale: int | None = typer.Option(
        None, "--memory-scale", help="Memory usage shown as a full bar, in MiB"
    ),
    json_output: bool = typer.Option(False, "--json", help="Print the snapshot as JSON"),
) -> None:
    """Display a summary of memory usage statistics."""
    settings, capturer = _load()

    try:
        processes = capturer.capture(pid=pid or None, ppid=ppid or None, memory=None if memory else False)
    except ProcMetricsError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e

    processes = dict(sorted(processes.items()))

    if json_output:
        host = capture_host_memory()
        document = {
            "host": host.as_dict() if host else None,
            "processes": {str(key): process.as_dict() for key, process in processes.items()},
        }
        typer.echo(json.dumps(document, indent=2))
        return

    render_summary(processes, memory_scale or settings.memory_scale)


@app.command()
def top(
    pid: list[int] | None = typer.Option(None, "--pid", help="Watch this process id (repeatable)"),
    ppid: list[int] | None = typer.Option(
        None, "--ppid", "-p", help="Watch this process and all of its children (repeatable)"
    ),
    interval: float | None = typer.Option(None, "--interval", "-n", help="Seconds between captures"),
) -> None:
    """Interactive view that re-captures on an interval."""
    from procmetrics.app import TopApp

    settings, capturer = _load()
    TopApp(
        capturer,
        pid=pid or None,
        ppid=ppid or None,
        interval=interval or settings.refresh_interval,
    ).run()


if __name__ == "__main__":
    app()
