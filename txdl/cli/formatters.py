"""
Rich renderables for errors, the effective configuration and the end-of-run
summary.
"""

from typing import Any

from rich import box
from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from txdl.exceptions import (
    ConfigurationError,
    DependencyError,
    DownloadError,
    InputError,
    ResumeError,
    StorageError,
)
from txdl.models.stats import DownloadStats
from txdl.utils.formatting import format_duration, format_size

# Checked in order, so subclasses come before their bases
SUGGESTIONS: list[tuple[type[Exception], list[str]]] = [
    (
        InputError,
        [
            "Pass exactly one of -l, -t or -r.",
            "-l accepts http(s):// URLs, magnet: links or an existing .torrent file.",
            "Run `txdl -h` for usage examples.",
        ],
    ),
    (
        ConfigurationError,
        [
            "Check the ARIA2_* environment variables and the config file.",
            "Run `txdl --show-config` to see the effective settings.",
        ],
    ),
    (
        DependencyError,
        [
            "Install aria2: `pkg install aria2` (Termux) or `apt install aria2`.",
            "Or use the built-in engine for HTTP(S): `txdl -e native -l <URL>`.",
        ],
    ),
    (
        StorageError,
        [
            "Pick a writable directory with -d.",
            "On Android, run `termux-setup-storage` to access shared storage.",
            "Free some space on the target device.",
        ],
    ),
    (
        ResumeError,
        [
            "The remote file may have changed since the download started.",
            "Start over with -l <URL>.",
        ],
    ),
    (
        DownloadError,
        [
            "Check your internet connection and the URL.",
            "Raise ARIA2_MAX_TRIES or ARIA2_TIMEOUT for flaky servers.",
            "Run the command with -vv for detailed logs.",
        ],
    ),
]
DEFAULT_SUGGESTIONS = ["Run the command with -vv for detailed logs."]


def suggestions_for(error: Exception) -> list[str]:
    for error_class, suggestions in SUGGESTIONS:
        if isinstance(error, error_class):
            return suggestions
    return DEFAULT_SUGGESTIONS


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Builds a red panel with the error message and what to try next."""
    headline = Text.assemble(
        (f"{type(error).__name__}: ", "bold red"), str(error)
    )
    hints = Text("\n".join(f"• {hint}" for hint in suggestions_for(error)))

    parts = [headline, Text(), Text("Suggestions", style="bold yellow"), hints]
    if context:
        parts += [Text(), Text(f"Context: {context}", style="dim")]

    return Panel(
        Group(*parts),
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_data: dict[str, Any], console: Console | None = None):
    """Displays the effective configuration."""
    console = console or Console()
    config_file = config_data.pop("config_file", None)
    content = "\n".join(f"{key} = {value}" for key, value in config_data.items())
    title = "Configuration"
    if config_file:
        title += f" ([dim]{config_file}[/dim])"
    console.print(Panel(content, title=title, border_style="cyan"))


def print_summary_panel(stats: DownloadStats, console: Console | None = None):
    """Displays a summary of a finished native-engine transfer."""
    console = console or Console()
    duration_s = stats.elapsed

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column(style="bold cyan", justify="right", width=16)
    stats_table.add_column(style="white", justify="left")

    if stats.output_path:
        stats_table.add_row("Saved To:", f"[green]{stats.output_path}[/green]")
    stats_table.add_row("Total Size:", f"[cyan]{format_size(stats.total_size)}[/cyan]")
    if stats.resumed_bytes > 0:
        stats_table.add_row(
            "Resumed From:", f"[yellow]{format_size(stats.resumed_bytes)}[/yellow]"
        )
    stats_table.add_row("Segments:", str(stats.segments_total))
    stats_table.add_row(
        "Avg. Speed:",
        f"[magenta]{format_size(int(stats.average_speed_bps))}/s[/magenta]",
    )
    if stats.peak_speed_bps > 0:
        stats_table.add_row(
            "Peak Speed:",
            f"[magenta]{format_size(int(stats.peak_speed_bps))}/s[/magenta]",
        )
    stats_table.add_row("Time Elapsed:", f"[blue]{format_duration(duration_s)}[/blue]")

    console.print()
    console.print(
        Panel(
            stats_table,
            title="[bold]Download Complete![/bold]",
            border_style="green",
            box=box.DOUBLE,
            expand=False,
            padding=(1, 2),
        )
    )
