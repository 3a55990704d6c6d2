import asyncio
import random
from collections import namedtuple
from pathlib import Path

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from txdl.models.config import DownloadConfig
from txdl.utils.formatting import MIB

DiskUsage = namedtuple("DiskUsage", "total used free")

ENV_NAMES = (
    "ARIA2_MAX_CONNECTIONS",
    "ARIA2_MIN_SPLIT_SIZE",
    "ARIA2_MAX_CONCURRENT_DOWNLOADS",
    "ARIA2_TIMEOUT",
    "ARIA2_RETRY_WAIT",
    "ARIA2_MAX_TRIES",
    "TXDL_ENGINE",
    "TXDL_DOWNLOAD_DIR",
)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keeps the user's config file and ARIA2_* settings out of every test."""
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("TXDL_CONFIG", str(tmp_path / "no-such-config.ini"))


@pytest.fixture(autouse=True)
def plenty_of_disk_space(monkeypatch):
    monkeypatch.setattr(
        "txdl.core.preflight.shutil.disk_usage",
        lambda path: DiskUsage(1000 * 1024 * MIB, 0, 1000 * 1024 * MIB),
    )


@pytest.fixture
def aria2c_installed(monkeypatch):
    monkeypatch.setattr(
        "txdl.aria2.runner.shutil.which", lambda name: f"/usr/bin/{name}"
    )


@pytest.fixture
def aria2c_missing(monkeypatch):
    monkeypatch.setattr("txdl.aria2.runner.shutil.which", lambda name: None)


@pytest.fixture
def download_dir(tmp_path) -> Path:
    path = tmp_path / "downloads"
    path.mkdir()
    return path


@pytest.fixture
def native_config(download_dir) -> DownloadConfig:
    return DownloadConfig(
        download_dir=download_dir,
        engine="native",
        split=4,
        max_connections=4,
        min_split_size="1M",
        timeout=10,
        retry_wait=0,
        max_tries=3,
    )


class RangeServer:
    """
    Serves one payload at /files/<name>, honouring byte ranges unless told not
    to. Tests mutate the attributes to simulate a changing remote file.
    """

    def __init__(self, payload: bytes):
        self.payload = payload
        self.etag = '"v1"'
        self.last_modified = "Wed, 14 Oct 2026 10:00:00 GMT"
        self.accept_ranges = True
        self.fail_next = 0
        self.misalign_next = 0
        self.truncate_next = 0
        self.ignore_ranges = False
        self.throttle = 0.0
        self.status = 200
        self.range_requests: list[str] = []
        self.server: TestServer | None = None

    def url(self, name: str = "data.bin") -> str:
        return str(self.server.make_url(f"/files/{name}"))

    async def handle(self, request: web.Request) -> web.StreamResponse:
        headers = {"ETag": self.etag, "Last-Modified": self.last_modified}
        if self.status != 200:
            return web.Response(status=self.status)

        range_header = request.headers.get("Range")
        is_get = request.method == "GET"
        if self.accept_ranges:
            headers["Accept-Ranges"] = "bytes"
        if not self.accept_ranges or range_header is None:
            body = self.payload
            if is_get and range_header is None and self.truncate_next > 0:
                self.truncate_next -= 1
                body = body[: len(body) // 2]
            return web.Response(body=body, headers=headers)

        if is_get:
            self.range_requests.append(range_header)
            if self.fail_next > 0:
                self.fail_next -= 1
                return web.Response(status=503)
            if self.ignore_ranges:
                return web.Response(body=self.payload, headers=headers)

        rng = request.http_range
        start = rng.start or 0
        stop = len(self.payload) if rng.stop is None else rng.stop
        if is_get and self.misalign_next > 0:
            self.misalign_next -= 1
            start = start + 1 if start + 1 < stop else start - 1
        headers["Content-Range"] = f"bytes {start}-{stop - 1}/{len(self.payload)}"
        if not self.throttle:
            return web.Response(
                status=206, body=self.payload[start:stop], headers=headers
            )

        response = web.StreamResponse(status=206, headers=headers)
        response.content_length = stop - start
        await response.prepare(request)
        for offset in range(start, stop, 65536):
            await response.write(self.payload[offset : min(offset + 65536, stop)])
            await asyncio.sleep(self.throttle)
        await response.write_eof()
        return response


@pytest.fixture
def payload() -> bytes:
    return random.Random(1234).randbytes(3 * MIB + 4321)


@pytest.fixture
async def range_server(payload):
    server_state = RangeServer(payload)
    app = web.Application()
    app.router.add_get("/files/{name}", server_state.handle)
    server = TestServer(app)
    await server.start_server()
    server_state.server = server
    yield server_state
    await server.close()
