"""
The main orchestrator: validates the download directory, picks the engine and
runs the requested link, torrent or resume operation.
"""

import logging
from pathlib import Path

from rich.markup import escape

from txdl.aria2.command import (
    ARIA2_INTERRUPTED,
    build_aria2_command,
    build_resume_command,
    describe_exit_code,
    session_file_for,
)
from txdl.aria2.runner import Aria2Runner
from txdl.cli.progress_manager import ProgressManager
from txdl.engine.downloader import SegmentedDownloader
from txdl.exceptions import (
    DownloadError,
    DownloadInterrupted,
    InputError,
    ResumeError,
)
from txdl.models.config import DownloadConfig
from txdl.models.stats import DownloadStats
from txdl.storage.control_file import CONTROL_SUFFIX

from .preflight import check_disk_space, cleanup_control_files, ensure_writable_dir
from .sources import (
    ARIA2_CONTROL_SUFFIX,
    DownloadRequest,
    RequestMode,
    SourceKind,
    classify_source,
    control_file_for,
    find_recent_torrent,
)

log = logging.getLogger(__name__)


class DownloadManager:
    """Orchestrates a single txdl invocation."""

    def __init__(
        self,
        config: DownloadConfig,
        progress_manager: ProgressManager | None = None,
        runner: Aria2Runner | None = None,
    ):
        self.config = config
        self.progress_manager = progress_manager
        self.runner = runner or Aria2Runner(config.aria2c_path)
        self.stats = DownloadStats(engine=config.engine)

    @property
    def download_dir(self) -> Path:
        return self.config.download_dir

    def preflight(self) -> None:
        """
        Checks the aria2c binary (aria2 engine only), directory permissions and
        free space. Raises DependencyError or StorageError on failure.
        """
        if self.config.engine == "aria2":
            # Fail on a missing binary before touching the filesystem
            self.runner.locate()
        ensure_writable_dir(self.download_dir)
        check_disk_space(self.download_dir, self.config.required_space_mb)

    def resolve(self, request: DownloadRequest) -> DownloadRequest:
        """
        Turns a torrent-discovery request into a concrete one and classifies the
        source of link requests.
        """
        if request.mode is RequestMode.TORRENT:
            torrent = find_recent_torrent(self.download_dir)
            log.info(f"Using torrent file: {escape(str(torrent))}")
            return DownloadRequest(RequestMode.LINK, str(torrent), SourceKind.TORRENT)
        if request.mode is RequestMode.LINK and request.kind is None:
            return DownloadRequest(
                RequestMode.LINK, request.source, classify_source(request.source)
            )
        return request

    async def run(self, request: DownloadRequest) -> Path | None:
        """
        Executes the request end to end.

        Returns:
            The saved file for native downloads; None for aria2, which picks
            file names itself.
        """
        self.preflight()
        request = self.resolve(request)

        if request.mode is RequestMode.RESUME:
            return await self.resume(request.source)
        return await self.download(request)

    async def download(self, request: DownloadRequest) -> Path | None:
        log.info("Starting download...")
        log.info(f"Input: {escape(request.source)}")
        log.info(f"Download directory: {escape(str(self.download_dir))}")

        if self.config.engine == "native":
            if request.kind is not SourceKind.HTTP:
                raise InputError(
                    "The native engine only handles HTTP/HTTPS URLs. Use "
                    "--engine aria2 for magnet links and torrent files."
                )
            return await self._guard(self._native().download(request.source))

        argv = build_aria2_command(request.source, self.config)
        log.info("Executing: aria2c with optimized settings")
        await self._guard(self._run_aria2(argv))
        return None

    async def resume(self, filename: str) -> Path | None:
        """
        Continues an interrupted download of `filename` (relative to the
        download directory).

        Raises:
            InputError: If no control file exists for the file.
            ResumeError: If the transfer cannot be continued.
        """
        target = self.download_dir / filename
        control_path = control_file_for(target, self.config.engine)
        if not control_path.is_file():
            raise InputError(
                f"Control file not found: {control_path}. Cannot resume download "
                "without control file."
            )

        log.info(f"Resuming download: {escape(filename)}")
        if self.config.engine == "native":
            return await self._native().resume(control_path)

        session_file = session_file_for(self.download_dir)
        if not session_file.is_file():
            raise ResumeError(
                f"No saved aria2 session in {self.download_dir}; the original "
                "URL is unknown. Restart it with -l <URL> and aria2 will continue "
                "from the control file."
            )
        log.info("Attempting to resume with existing control file")
        argv = build_resume_command(self.config, session_file)
        try:
            await self._run_aria2(argv, cwd=self.download_dir)
        except DownloadError as e:
            raise ResumeError(
                f"Failed to resume download: {e} Control file may be corrupted "
                "or incompatible."
            ) from e
        return None

    def _native(self) -> SegmentedDownloader:
        return SegmentedDownloader(self.config, self.stats, self.progress_manager)

    async def _run_aria2(self, argv: list[str], cwd: Path | None = None) -> None:
        code = await self.runner.run(argv, cwd=cwd)
        if code == ARIA2_INTERRUPTED:
            raise DownloadInterrupted("Download interrupted by user")
        if code != 0:
            raise DownloadError(
                f"Download failed with exit code {code}: {describe_exit_code(code)}"
            )

    async def _guard(self, operation):
        """Awaits a transfer and removes stale control files if it fails."""
        try:
            return await operation
        except DownloadError:
            if self.config.cleanup_on_failure:
                suffix = (
                    ARIA2_CONTROL_SUFFIX
                    if self.config.engine == "aria2"
                    else CONTROL_SUFFIX
                )
                cleanup_control_files(self.download_dir, f"*{suffix}")
            raise
