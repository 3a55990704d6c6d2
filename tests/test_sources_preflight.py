import os
from collections import namedtuple
from pathlib import Path

import pytest

from txdl.core.preflight import (
    check_disk_space,
    cleanup_control_files,
    ensure_writable_dir,
)
from txdl.core.sources import (
    SourceKind,
    classify_source,
    control_file_for,
    find_recent_torrent,
    is_bittorrent_source,
)
from txdl.exceptions import InputError, StorageError
from txdl.utils.formatting import MIB
from txdl.utils.path import derive_filename, next_available_path

DiskUsage = namedtuple("DiskUsage", "total used free")


def test_classify_urls_and_magnets():
    assert classify_source("https://example.com/file.zip") is SourceKind.HTTP
    assert classify_source("HTTP://example.com/file.zip") is SourceKind.HTTP
    assert classify_source("magnet:?xt=urn:btih:abcdef") is SourceKind.MAGNET


def test_classify_existing_torrent_file(tmp_path):
    torrent = tmp_path / "linux.iso.torrent"
    torrent.write_bytes(b"d4:infode")
    assert classify_source(str(torrent)) is SourceKind.TORRENT


@pytest.mark.parametrize(
    "value", ["ftp://example.com/x", "example.com/file.zip", "/nope/missing.torrent"]
)
def test_classify_rejects_other_input(value):
    with pytest.raises(InputError, match="Invalid URL or file"):
        classify_source(value)


def test_bittorrent_detection():
    assert is_bittorrent_source("magnet:?xt=urn:btih:abc")
    assert is_bittorrent_source("/tmp/file.torrent")
    assert not is_bittorrent_source("https://example.com/file.zip")


def test_find_recent_torrent_picks_newest(tmp_path):
    old = tmp_path / "old.torrent"
    new = tmp_path / "nested" / "new.torrent"
    new.parent.mkdir()
    old.write_bytes(b"x")
    new.write_bytes(b"x")
    os.utime(old, (1_000_000, 1_000_000))
    os.utime(new, (2_000_000, 2_000_000))

    assert find_recent_torrent(tmp_path) == new


def test_find_recent_torrent_without_candidates(tmp_path):
    (tmp_path / "notes.txt").write_text("x")
    with pytest.raises(InputError, match="No .torrent files found"):
        find_recent_torrent(tmp_path)


def test_control_file_suffix_follows_engine(tmp_path):
    target = tmp_path / "file.zip"
    assert control_file_for(target, "aria2") == tmp_path / "file.zip.aria2"
    assert control_file_for(target, "native") == tmp_path / "file.zip.txdl"


def test_ensure_writable_dir_creates_missing(tmp_path):
    target = tmp_path / "a" / "b"
    ensure_writable_dir(target)
    assert target.is_dir()


def test_ensure_writable_dir_rejects_file_parent(tmp_path):
    blocker = tmp_path / "plain-file"
    blocker.write_text("x")
    with pytest.raises(StorageError):
        ensure_writable_dir(blocker / "sub")
    with pytest.raises(StorageError, match="Not a directory"):
        ensure_writable_dir(blocker)


def test_ensure_writable_dir_rejects_read_only(tmp_path, monkeypatch):
    monkeypatch.setattr("txdl.core.preflight.os.access", lambda path, mode: False)
    with pytest.raises(StorageError, match="No write permission"):
        ensure_writable_dir(tmp_path)


def test_check_disk_space_passes(tmp_path):
    assert check_disk_space(tmp_path, 100) >= 100


def test_check_disk_space_insufficient(tmp_path, monkeypatch):
    monkeypatch.setattr(
        "txdl.core.preflight.shutil.disk_usage",
        lambda path: DiskUsage(100 * MIB, 90 * MIB, 10 * MIB),
    )
    with pytest.raises(StorageError, match="Insufficient disk space"):
        check_disk_space(tmp_path, 100)


def test_cleanup_control_files_only_matches_pattern(tmp_path):
    (tmp_path / "sub").mkdir()
    stale = [tmp_path / "a.zip.aria2", tmp_path / "sub" / "b.iso.aria2"]
    for path in stale:
        path.write_bytes(b"state")
    keep = tmp_path / "a.zip"
    keep.write_bytes(b"data")

    removed = cleanup_control_files(tmp_path, "*.aria2")

    assert sorted(removed) == sorted(stale)
    assert keep.exists()
    assert not any(path.exists() for path in stale)


@pytest.mark.parametrize(
    "url, disposition, expected",
    [
        ("https://example.com/dl/file%20name.zip?x=1", None, "file name.zip"),
        ("https://example.com/", None, "index.html"),
        ("https://example.com/get", 'attachment; filename="report.pdf"', "report.pdf"),
        (
            "https://example.com/get",
            "attachment; filename*=UTF-8''r%C3%A9sum%C3%A9.txt",
            "résumé.txt",
        ),
    ],
)
def test_derive_filename(url, disposition, expected):
    assert derive_filename(url, disposition) == expected


def test_next_available_path_renames_like_aria2(tmp_path):
    first = tmp_path / "file.zip"
    assert next_available_path(first) == first
    first.write_bytes(b"x")
    (tmp_path / "file.1.zip").write_bytes(b"x")
    assert next_available_path(first) == Path(tmp_path / "file.2.zip")
