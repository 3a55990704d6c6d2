"""
Runs the aria2c binary as a child process and stops it cleanly when the
invocation is interrupted.
"""

import asyncio
import logging
import shutil
from contextlib import suppress
from pathlib import Path

from txdl.exceptions import DependencyError

log = logging.getLogger(__name__)


class Aria2Runner:
    """Locates and runs aria2c; the child's output goes straight to the terminal."""

    TERMINATE_GRACE_SECONDS = 10.0

    def __init__(self, binary: str = "aria2c"):
        self.binary = binary

    def locate(self) -> str:
        """
        Resolves the aria2c executable.

        Raises:
            DependencyError: If the binary is not installed or not on PATH.
        """
        path = shutil.which(self.binary)
        if not path:
            raise DependencyError(
                f"'{self.binary}' not found. Install it first "
                "(Termux: pkg install aria2, Debian/Ubuntu: apt install aria2)."
            )
        return path

    async def run(self, argv: list[str], cwd: Path | None = None) -> int:
        """
        Runs aria2c with `argv` (argv[0] is replaced by the resolved binary) and
        returns its exit status.

        If the awaiting task is cancelled the child is terminated first, then
        killed if it does not exit within the grace period, and the
        cancellation is re-raised.
        """
        executable = self.locate()
        log.debug(f"Executing: {executable} {' '.join(argv[1:])}")
        process = await asyncio.create_subprocess_exec(
            executable, *argv[1:], cwd=str(cwd) if cwd else None
        )
        try:
            return await process.wait()
        except asyncio.CancelledError:
            await self._stop(process)
            raise

    async def _stop(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        log.debug(f"Terminating aria2c (pid {process.pid}).")
        with suppress(ProcessLookupError):
            process.terminate()
        try:
            await asyncio.wait_for(process.wait(), self.TERMINATE_GRACE_SECONDS)
        except asyncio.TimeoutError:
            log.warning("aria2c did not exit after SIGTERM, killing it.")
            with suppress(ProcessLookupError):
                process.kill()
            await process.wait()
