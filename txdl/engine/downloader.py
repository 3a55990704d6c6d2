"""
Multi-connection segmented HTTP(S) downloader with resume support.

The remote file is probed for its size and range support, split into byte
ranges, and each range is streamed over its own connection straight into its
place in a preallocated file. Progress is recorded in a JSON control file next
to the target so an interrupted transfer can be continued.
"""

import asyncio
import logging
import re
import time
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path

import aiofiles
import aiohttp

from txdl import __version__
from txdl.cli.progress_manager import ProgressManager
from txdl.exceptions import DownloadError, ResumeError
from txdl.models.config import DownloadConfig
from txdl.models.segment import Segment
from txdl.models.stats import DownloadStats
from txdl.storage.control_file import ControlFile
from txdl.utils.circuit_breaker import CircuitBreaker, CircuitBreakerError
from txdl.utils.path import derive_filename, next_available_path

from .segments import plan_segments

log = logging.getLogger(__name__)

RETRYABLE_STATUS = {408, 425, 429, 500, 502, 503, 504}
CHUNK_SIZE = 131072  # 128 KB
PERSIST_INTERVAL_SECONDS = 1.0

_CONTENT_RANGE = re.compile(r"bytes\s+(\d+)-(\d+)/(\d+|\*)", re.IGNORECASE)


class RetryableError(Exception):
    """A transient failure; the segment is retried after the retry wait."""


@dataclass
class RemoteFile:
    """What the probe learned about the resource behind a URL."""

    url: str
    total_size: int | None
    accepts_ranges: bool
    etag: str | None = None
    last_modified: str | None = None
    content_disposition: str | None = None

    @property
    def segmentable(self) -> bool:
        return self.accepts_ranges and bool(self.total_size)


def _parse_length(value: str | None) -> int | None:
    if value is None or not value.strip().isdigit():
        return None
    return int(value)


def _parse_content_range(value: str | None) -> tuple[int, int, int | None] | None:
    """Returns (first byte, last byte, total) of a Content-Range header."""
    if not value:
        return None
    match = _CONTENT_RANGE.match(value.strip())
    if not match:
        return None
    first, last, total = match.groups()
    return int(first), int(last), None if total == "*" else int(total)


def _parse_content_range_total(value: str | None) -> int | None:
    parsed = _parse_content_range(value)
    return parsed[2] if parsed else None


class SegmentedDownloader:
    """Downloads one HTTP(S) resource over several concurrent range requests."""

    def __init__(
        self,
        config: DownloadConfig,
        stats: DownloadStats | None = None,
        progress_manager: ProgressManager | None = None,
    ):
        self.config = config
        self.stats = stats or DownloadStats(engine="native")
        self.progress_manager = progress_manager
        self._task_id = None
        self._persist_lock = asyncio.Lock()
        self._last_persist = 0.0
        self._persist_future: asyncio.Future | None = None
        self._breaker = CircuitBreaker(
            failure_threshold=max(3, config.connection_count),
            recovery_timeout=max(1, config.retry_wait) * 2,
        )

    def _open_session(self) -> aiohttp.ClientSession:
        connections = self.config.connection_count
        connector = aiohttp.TCPConnector(
            limit=connections,
            limit_per_host=connections,
            ttl_dns_cache=600,
            ssl=None if self.config.check_certificate else False,
        )
        timeout = aiohttp.ClientTimeout(
            total=None,
            sock_connect=self.config.timeout,
            sock_read=self.config.timeout,
        )
        return aiohttp.ClientSession(
            connector=connector,
            timeout=timeout,
            auto_decompress=False,
            headers={
                "User-Agent": f"txdl/{__version__}",
                # Byte ranges refer to the stored representation
                "Accept-Encoding": "identity",
            },
        )

    # ------------------------------------------------------------------ probe

    async def probe(self, session: aiohttp.ClientSession, url: str) -> RemoteFile:
        """
        Finds out the size, range support and validators of `url`, retrying
        transient failures like any other request.

        Raises:
            DownloadError: If the server keeps failing or answers with an error.
        """
        return await self._with_retries(
            lambda: self._probe_once(session, url), f"probing {url}"
        )

    async def _probe_once(self, session: aiohttp.ClientSession, url: str) -> RemoteFile:
        remote = RemoteFile(url=url, total_size=None, accepts_ranges=False)

        async with session.head(url, allow_redirects=True) as response:
            if response.status < 400:
                remote.url = str(response.url)
                remote.total_size = _parse_length(
                    response.headers.get("Content-Length")
                )
                remote.accepts_ranges = (
                    response.headers.get("Accept-Ranges", "").lower() == "bytes"
                )
                self._read_validators(remote, response)
            else:
                log.debug(f"HEAD {url} returned {response.status}, trying GET.")

        if remote.total_size is not None and remote.accepts_ranges:
            return remote

        async with session.get(
            url, headers={"Range": "bytes=0-0"}, allow_redirects=True
        ) as response:
            self._raise_for_status(response, url)
            remote.url = str(response.url)
            self._read_validators(remote, response)
            if response.status == 206:
                remote.accepts_ranges = True
                total = _parse_content_range_total(
                    response.headers.get("Content-Range")
                )
                if total is not None:
                    remote.total_size = total
            else:
                remote.accepts_ranges = False
                length = _parse_length(response.headers.get("Content-Length"))
                if length is not None:
                    remote.total_size = length
        return remote

    @staticmethod
    def _read_validators(remote: RemoteFile, response: aiohttp.ClientResponse) -> None:
        remote.etag = response.headers.get("ETag", remote.etag)
        remote.last_modified = response.headers.get(
            "Last-Modified", remote.last_modified
        )
        remote.content_disposition = response.headers.get(
            "Content-Disposition", remote.content_disposition
        )

    @staticmethod
    def _raise_for_status(response: aiohttp.ClientResponse, url: str) -> None:
        if response.status in RETRYABLE_STATUS:
            raise RetryableError(f"HTTP {response.status} from {url}")
        if response.status >= 400:
            raise DownloadError(f"HTTP {response.status} {response.reason} for {url}")

    async def _with_retries(self, operation, what: str):
        last_exception: Exception | None = None
        for attempt in range(1, self.config.max_tries + 1):
            try:
                return await operation()
            except (aiohttp.ClientError, asyncio.TimeoutError, RetryableError) as e:
                last_exception = e
                log.debug(
                    f"Attempt {attempt}/{self.config.max_tries} {what} failed: "
                    f"{e!r}. Retrying..."
                )
                if attempt < self.config.max_tries:
                    await asyncio.sleep(self.config.retry_wait)
        raise DownloadError(
            f"Giving up {what} after {self.config.max_tries} attempts: "
            f"{last_exception}"
        ) from last_exception

    # ------------------------------------------------------------- public API

    async def download(self, url: str) -> Path:
        """
        Downloads `url` into the configured directory and returns the saved path.

        If a partial download of the same URL (file plus control file) is found
        under the derived name, it is continued instead of starting over.
        """
        async with self._open_session() as session:
            remote = await self.probe(session, url)
            name = derive_filename(remote.url, remote.content_disposition)
            target = self.config.download_dir / name

            control_path = ControlFile.path_for(target)
            if target.is_file() and control_path.is_file():
                control = ControlFile.load(control_path)
                if control.url == url:
                    log.info(f"Found partial download of {name}, resuming.")
                    return await self._resume_transfer(session, control, remote)

            target = next_available_path(target)
            if target.name != name:
                log.info(f"{name} already exists, saving as {target.name}")

            if not remote.segmentable:
                log.info(
                    "Server does not support byte ranges or did not report a size; "
                    "using a single connection (not resumable)."
                )
                return await self._stream(session, remote, target)

            segments = plan_segments(
                remote.total_size, self.config.split, self.config.min_split_size
            )
            control = ControlFile(
                path=ControlFile.path_for(target),
                url=url,
                total_size=remote.total_size,
                segments=segments,
                etag=remote.etag,
                last_modified=remote.last_modified,
                split=self.config.split,
                min_split_size=self.config.min_split_size,
            )
            async with aiofiles.open(target, "wb") as f:
                await f.truncate(remote.total_size)
            await asyncio.to_thread(control.save)
            return await self._transfer(session, remote, control)

    async def resume(self, control_path: Path) -> Path:
        """
        Continues the transfer recorded in `control_path`. The URL and segment
        layout come from the control file itself.

        Raises:
            ResumeError: If the control file is unusable, the partial file is
            missing, or the remote file changed.
        """
        control = ControlFile.load(control_path)
        async with self._open_session() as session:
            remote = await self.probe(session, control.url)
            return await self._resume_transfer(session, control, remote)

    # --------------------------------------------------------------- transfer

    async def _resume_transfer(
        self,
        session: aiohttp.ClientSession,
        control: ControlFile,
        remote: RemoteFile,
    ) -> Path:
        self._validate_resume(control, remote)
        self.stats.resumed_bytes = control.completed_bytes
        log.info(
            f"Resuming {control.target.name}: "
            f"{control.completed_bytes}/{control.total_size} bytes already on disk."
        )
        return await self._transfer(session, remote, control)

    @staticmethod
    def _validate_resume(control: ControlFile, remote: RemoteFile) -> None:
        target = control.target
        if not target.is_file():
            raise ResumeError(f"Partial file {target} is missing.")
        if target.stat().st_size != control.total_size:
            raise ResumeError(
                f"Partial file {target} has an unexpected size; it was modified "
                "outside txdl."
            )
        if not remote.accepts_ranges:
            raise ResumeError("Server no longer supports byte ranges.")
        if remote.total_size != control.total_size:
            raise ResumeError(
                f"Remote file size changed ({control.total_size} -> "
                f"{remote.total_size} bytes)."
            )
        if control.etag and remote.etag and control.etag != remote.etag:
            raise ResumeError("Remote file changed (ETag differs).")
        if (
            control.last_modified
            and remote.last_modified
            and control.last_modified != remote.last_modified
        ):
            raise ResumeError("Remote file changed (Last-Modified differs).")

    async def _transfer(
        self,
        session: aiohttp.ClientSession,
        remote: RemoteFile,
        control: ControlFile,
    ) -> Path:
        target = control.target
        pending = [segment for segment in control.segments if not segment.done]
        self.stats.total_size = control.total_size
        self.stats.segments_total = len(control.segments)
        self.stats.output_path = str(target)

        if self.progress_manager:
            self._task_id = self.progress_manager.add_task(
                target.name, total=control.total_size, completed=control.completed_bytes
            )

        workers = min(self.config.connection_count, len(pending))
        log.debug(
            f"{len(pending)}/{len(control.segments)} segment(s) pending, "
            f"{workers} connection(s)."
        )

        try:
            if pending:
                await self._run_workers(session, remote, control, pending, workers)
        except BaseException:
            # Cancellation included: keep whatever made it to disk resumable
            await self._flush(control)
            if self.progress_manager:
                self.progress_manager.finish_task(self._task_id, success=False)
            raise

        if not control.complete:
            await self._flush(control)
            raise DownloadError(f"Transfer of {target.name} ended incomplete.")

        control.remove()
        if self.progress_manager:
            self.progress_manager.finish_task(self._task_id)
        return target

    async def _run_workers(
        self,
        session: aiohttp.ClientSession,
        remote: RemoteFile,
        control: ControlFile,
        pending: list[Segment],
        workers: int,
    ) -> None:
        queue: asyncio.Queue[Segment] = asyncio.Queue()
        for segment in pending:
            queue.put_nowait(segment)

        async def worker() -> None:
            async with aiofiles.open(control.target, "r+b") as fh:
                while True:
                    try:
                        segment = queue.get_nowait()
                    except asyncio.QueueEmpty:
                        return
                    await self._run_segment(session, remote, control, segment, fh)

        tasks = [asyncio.create_task(worker()) for _ in range(workers)]
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
            for task in done:
                if task.exception() is not None:
                    raise task.exception()
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run_segment(
        self,
        session: aiohttp.ClientSession,
        remote: RemoteFile,
        control: ControlFile,
        segment: Segment,
        fh,
    ) -> None:
        attempt = 0
        while not segment.done:
            try:
                async with self._breaker:
                    await self._fetch_segment(session, remote, control, segment, fh)
            except CircuitBreakerError as e:
                await asyncio.sleep(max(e.retry_after, 0.1))
            except (aiohttp.ClientError, asyncio.TimeoutError, RetryableError) as e:
                attempt += 1
                if attempt >= self.config.max_tries:
                    raise DownloadError(
                        f"Segment {segment.index} (bytes {segment.start}-"
                        f"{segment.end}) failed after {attempt} attempts: {e!r}"
                    ) from e
                log.debug(
                    f"Segment {segment.index} attempt {attempt}/"
                    f"{self.config.max_tries} failed: {e!r}. Retrying..."
                )
                await asyncio.sleep(self.config.retry_wait)

    async def _fetch_segment(
        self,
        session: aiohttp.ClientSession,
        remote: RemoteFile,
        control: ControlFile,
        segment: Segment,
        fh,
    ) -> None:
        headers = {"Range": segment.range_header()}
        if remote.etag and not remote.etag.startswith("W/"):
            headers["If-Range"] = remote.etag

        async with session.get(remote.url, headers=headers) as response:
            if response.status == 200:
                raise DownloadError(
                    "Server ignored the range request or the remote file changed "
                    "during the transfer."
                )
            if response.status != 206:
                self._raise_for_status(response, remote.url)
                raise DownloadError(
                    f"Unexpected HTTP {response.status} for a range request."
                )

            content_range = _parse_content_range(response.headers.get("Content-Range"))
            if content_range is None or content_range[0] != segment.offset:
                raise RetryableError(
                    f"Server sent range {response.headers.get('Content-Range')!r} "
                    f"for segment {segment.index} starting at byte {segment.offset}."
                )

            await fh.seek(segment.offset)
            async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                chunk = chunk[: segment.remaining]
                if not chunk:
                    break
                await fh.write(chunk)
                segment.downloaded += len(chunk)
                await self.stats.add_bytes(len(chunk))
                if self.progress_manager:
                    self.progress_manager.advance(self._task_id, len(chunk))
                await self._maybe_persist(control)
                if segment.done:
                    break

        if not segment.done:
            raise RetryableError(
                f"Connection closed with {segment.remaining} byte(s) of segment "
                f"{segment.index} outstanding."
            )

    async def _maybe_persist(self, control: ControlFile) -> None:
        if time.monotonic() - self._last_persist < PERSIST_INTERVAL_SECONDS:
            return
        async with self._persist_lock:
            if time.monotonic() - self._last_persist < PERSIST_INTERVAL_SECONDS:
                return
            snapshot = control.to_dict()
            self._persist_future = asyncio.ensure_future(
                asyncio.to_thread(control.write, snapshot)
            )
            # The write outlives a cancelled worker; _flush waits for it
            await asyncio.shield(self._persist_future)
            self._last_persist = time.monotonic()

    async def _flush(self, control: ControlFile) -> None:
        """Saves the control file once any periodic write has finished."""
        if self._persist_future is not None:
            with suppress(Exception):
                await asyncio.shield(self._persist_future)
        control.save()

    # ---------------------------------------------------------------- stream

    async def _stream(
        self, session: aiohttp.ClientSession, remote: RemoteFile, target: Path
    ) -> Path:
        """Single-connection download for servers without range support."""
        self.stats.total_size = remote.total_size or 0
        self.stats.segments_total = 1
        self.stats.output_path = str(target)
        if self.progress_manager:
            self._task_id = self.progress_manager.add_task(
                target.name, total=remote.total_size
            )

        async def attempt() -> None:
            written = 0
            try:
                async with session.get(remote.url) as response:
                    self._raise_for_status(response, remote.url)
                    if self.progress_manager:
                        self.progress_manager.reset_task(self._task_id)
                    async with aiofiles.open(target, "wb") as f:
                        async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                            await f.write(chunk)
                            written += len(chunk)
                            await self.stats.add_bytes(len(chunk))
                            if self.progress_manager:
                                self.progress_manager.advance(
                                    self._task_id, len(chunk)
                                )
                if remote.total_size is not None and written != remote.total_size:
                    raise RetryableError(
                        f"Received {written} of {remote.total_size} bytes."
                    )
            except BaseException:
                # The next attempt starts the file over
                self.stats.bytes_downloaded -= written
                raise

        try:
            await self._with_retries(attempt, f"downloading {remote.url}")
        except BaseException:
            if self.progress_manager:
                self.progress_manager.finish_task(self._task_id, success=False)
            raise
        if self.progress_manager:
            self.progress_manager.finish_task(self._task_id)
        return target
