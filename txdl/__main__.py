"""
Main entry point for txdl.
This module handles top-level setup, exception handling, and CLI invocation.
"""

import asyncio
import logging
import os
import sys

import click
from rich.console import Console

from txdl.cli.app import app
from txdl.cli.formatters import format_error_with_suggestions
from txdl.exceptions import DownloadInterrupted, TxdlError


def main(argv: list[str] | None = None) -> None:
    """Main entry point function."""
    if os.name == "nt":
        try:
            sys.stdout.reconfigure(encoding="utf-8")
            sys.stderr.reconfigure(encoding="utf-8")
        except (TypeError, AttributeError):
            pass

    log = logging.getLogger("txdl")
    err_console = Console(stderr=True)

    try:
        rv = app(args=argv, prog_name="txdl", standalone_mode=False)
    except click.exceptions.UsageError as e:
        # Unknown options and missing option values exit 1, not click's 2
        e.show()
        sys.exit(1)
    except (click.exceptions.Abort, KeyboardInterrupt, asyncio.CancelledError):
        err_console.print("\n[yellow]\\[WARNING][/yellow] Download interrupted by user")
        sys.exit(DownloadInterrupted.exit_code)
    except TxdlError as e:
        err_console.print()
        err_console.print(format_error_with_suggestions(e))
        sys.exit(e.exit_code)
    except Exception as e:
        err_console.print()
        err_console.print(format_error_with_suggestions(e, {"type": "Unexpected"}))
        log.debug("Full traceback:", exc_info=True)
        sys.exit(1)

    sys.exit(rv if isinstance(rv, int) else 0)


if __name__ == "__main__":
    main()
