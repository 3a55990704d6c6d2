"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import signal
import time
from contextlib import suppress
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from txdl import __version__
from txdl.core.download_manager import DownloadManager
from txdl.core.sources import DownloadRequest, RequestMode
from txdl.exceptions import DownloadInterrupted, TxdlError
from txdl.models.config import DownloadConfig
from txdl.storage.config_manager import ConfigManager

from .formatters import format_error_with_suggestions, print_config, print_summary_panel
from .progress_manager import ProgressManager

console = Console()
err_console = Console(stderr=True)

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("txdl")

EPILOG = (
    "[bold]Examples:[/bold]\n\n"
    "  txdl -l https://example.com/file.zip\n\n"
    '  txdl -l "magnet:?xt=urn:btih:..."\n\n'
    "  txdl -l /path/to/file.torrent\n\n"
    "  txdl -t\n\n"
    "  txdl -r incomplete_file.zip\n\n"
    "  txdl -l https://example.com/file.zip -d /sdcard/MyDownloads\n\n"
    "[bold]Environment:[/bold] ARIA2_MAX_CONNECTIONS (16), ARIA2_MIN_SPLIT_SIZE (1M),"
    " ARIA2_MAX_CONCURRENT_DOWNLOADS (3), ARIA2_TIMEOUT (60), ARIA2_RETRY_WAIT (3),"
    " ARIA2_MAX_TRIES (5), TXDL_ENGINE (aria2), TXDL_DOWNLOAD_DIR (~/Downloads)."
)

app = typer.Typer(
    name="txdl",
    help=(
        "Download accelerator for HTTP/HTTPS URLs, magnet links and torrent files."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _fail(ctx: typer.Context, message: str) -> None:
    err_console.print(f"[red]\\[ERROR][/red] {message}")
    console.print(ctx.get_help())
    raise typer.Exit(code=1)


def _build_request(
    ctx: typer.Context, link: str | None, torrent: bool, resume: str | None
) -> DownloadRequest:
    given = {"-l": link is not None, "-t": torrent, "-r": resume is not None}
    selected = [option for option, present in given.items() if present]
    if not selected:
        _fail(ctx, "No download option specified. Use -l, -t, or -r")
    if len(selected) > 1:
        _fail(
            ctx,
            "Only one download option (-l, -t, or -r) can be used at a time "
            f"(got {', '.join(selected)})",
        )

    if link is not None:
        return DownloadRequest(RequestMode.LINK, link)
    if torrent:
        return DownloadRequest(RequestMode.TORRENT, "")
    return DownloadRequest(RequestMode.RESUME, resume)


async def _run_with_signals(manager: DownloadManager, request: DownloadRequest):
    """
    Runs the manager with SIGINT/SIGTERM cancelling the current task, so engines
    get to stop child processes and flush control files before exiting.
    """
    loop = asyncio.get_running_loop()
    task = asyncio.current_task()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        with suppress(NotImplementedError, RuntimeError, ValueError):
            loop.add_signal_handler(sig, task.cancel)
            installed.append(sig)

    try:
        async with ProgressManager(
            console=console, enabled=manager.config.engine == "native"
        ) as progress_manager:
            manager.progress_manager = progress_manager
            return await manager.run(request)
    except asyncio.CancelledError:
        raise DownloadInterrupted("Download interrupted by user") from None
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


@app.command(epilog=EPILOG)
def main(
    ctx: typer.Context,
    link: str | None = typer.Option(
        None,
        "-l",
        "--link",
        metavar="URL|MAGNET|TORRENT",
        help="HTTP/HTTPS URL, magnet link, or .torrent file path.",
        show_default=False,
    ),
    torrent: bool = typer.Option(
        False,
        "-t",
        "--torrent",
        help="Use the most recent .torrent file in the download directory.",
    ),
    resume: str | None = typer.Option(
        None,
        "-r",
        "--resume",
        metavar="FILE",
        help="Resume an interrupted download (name of the incomplete file).",
        show_default=False,
    ),
    directory: str | None = typer.Option(
        None,
        "-d",
        "--dir",
        metavar="DIRECTORY",
        help="Download directory (default: ~/Downloads).",
        show_default=False,
    ),
    engine: str | None = typer.Option(
        None,
        "-e",
        "--engine",
        help=(
            "Download engine: 'aria2' (external aria2c) or 'native' "
            "(built-in, HTTP/HTTPS only)."
        ),
        show_default=False,
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the effective configuration and exit."
    ),
):
    """Download files with multiple connections per server, resuming when interrupted."""
    if version:
        console.print(f"[bold]txdl[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 2:
        log_level = "DEBUG"
    log.setLevel(log_level)

    cli_options = {"download_dir": directory, "engine": engine}
    config_manager = ConfigManager()
    try:
        if show_config:
            config = config_manager.load_config(cli_options)
            print_config(config_manager.describe(config), console)
            raise typer.Exit()

        request = _build_request(ctx, link, torrent, resume)
        config = config_manager.load_config(cli_options)
        _execute(config, request)
    except TxdlError as e:
        if isinstance(e, DownloadInterrupted):
            err_console.print("[yellow]\\[WARNING][/yellow] Download interrupted by user")
        else:
            err_console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=e.exit_code) from e


def _execute(config: DownloadConfig, request: DownloadRequest) -> None:
    manager = DownloadManager(config)
    start_time = time.monotonic()
    saved: Path | None = asyncio.run(_run_with_signals(manager, request))

    if saved is not None:
        print_summary_panel(manager.stats, console)
    else:
        log.debug(f"aria2c finished after {time.monotonic() - start_time:.1f}s")
    console.print("[green]\\[SUCCESS][/green] Operation completed successfully!")
