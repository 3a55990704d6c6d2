import asyncio
import sys

import pytest

from txdl.aria2.command import (
    BITTORRENT_OPTIONS,
    build_aria2_command,
    build_resume_command,
    describe_exit_code,
    session_file_for,
)
from txdl.aria2.runner import Aria2Runner
from txdl.exceptions import DependencyError
from txdl.models.config import DownloadConfig


@pytest.fixture
def config(tmp_path):
    return DownloadConfig(download_dir=tmp_path)


def test_http_command_uses_defaults(config, tmp_path):
    cmd = build_aria2_command("https://example.com/a.zip", config)

    assert cmd[0] == "aria2c"
    assert cmd[-1] == "https://example.com/a.zip"
    for option in (
        f"--dir={tmp_path}",
        "--max-connection-per-server=16",
        "--min-split-size=1M",
        "--max-concurrent-downloads=3",
        "--timeout=60",
        "--retry-wait=3",
        "--max-tries=5",
        "--continue=true",
        "--auto-file-renaming=true",
        "--split=16",
        "--file-allocation=falloc",
        "--check-certificate=false",
        f"--save-session={tmp_path / '.txdl.session'}",
    ):
        assert option in cmd
    assert not set(BITTORRENT_OPTIONS) & set(cmd)
    assert "--allow-overwrite=false" not in cmd


@pytest.mark.parametrize(
    "source", ["magnet:?xt=urn:btih:abcdef", "/downloads/linux.iso.torrent"]
)
def test_bittorrent_sources_get_bittorrent_options(config, source):
    cmd = build_aria2_command(source, config)
    assert set(BITTORRENT_OPTIONS) <= set(cmd)
    assert cmd[-1] == source


def test_resume_mode_refuses_overwrite(config):
    cmd = build_aria2_command("https://example.com/a.zip", config, resume=True)
    assert "--allow-overwrite=false" in cmd
    assert "--auto-file-renaming=true" not in cmd


def test_tuning_comes_from_config(tmp_path):
    config = DownloadConfig(
        download_dir=tmp_path,
        max_connections=4,
        min_split_size="2M",
        timeout=30,
        retry_wait=1,
        max_tries=9,
    )
    cmd = build_aria2_command("https://example.com/a.zip", config)
    assert "--max-connection-per-server=4" in cmd
    assert "--min-split-size=2M" in cmd
    assert "--timeout=30" in cmd
    assert "--retry-wait=1" in cmd
    assert "--max-tries=9" in cmd


def test_resume_command_reads_session(config, tmp_path):
    session = session_file_for(tmp_path)
    cmd = build_resume_command(config, session)

    assert f"--input-file={session}" in cmd
    assert f"--save-session={session}" in cmd
    assert "--continue=true" in cmd
    assert "--allow-overwrite=false" in cmd
    assert "--auto-file-renaming=false" in cmd


def test_describe_exit_code():
    assert "network problem" in describe_exit_code(6)
    assert "unexpected exit status 99" in describe_exit_code(99)


def test_runner_reports_missing_binary(monkeypatch):
    monkeypatch.setattr("txdl.aria2.runner.shutil.which", lambda name: None)
    with pytest.raises(DependencyError, match="not found"):
        Aria2Runner("aria2c").locate()


async def test_runner_returns_exit_status(tmp_path):
    runner = Aria2Runner(sys.executable)
    code = await runner.run(
        [sys.executable, "-c", "import sys; sys.exit(3)"], cwd=tmp_path
    )
    assert code == 3


async def test_runner_stops_child_on_cancel():
    runner = Aria2Runner(sys.executable)
    task = asyncio.create_task(
        runner.run([sys.executable, "-c", "import time; time.sleep(30)"])
    )
    await asyncio.sleep(0.5)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await asyncio.wait_for(task, timeout=15)
