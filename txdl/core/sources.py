"""
Classifies user input into download sources and locates torrent files.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from txdl.exceptions import InputError
from txdl.storage.control_file import CONTROL_SUFFIX

log = logging.getLogger(__name__)

ARIA2_CONTROL_SUFFIX = ".aria2"


class SourceKind(Enum):
    HTTP = "http"
    MAGNET = "magnet"
    TORRENT = "torrent"


class RequestMode(Enum):
    LINK = "link"
    TORRENT = "torrent"
    RESUME = "resume"


@dataclass(frozen=True)
class DownloadRequest:
    """What the user asked for: a link, the newest torrent, or a resume."""

    mode: RequestMode
    source: str
    kind: SourceKind | None = None


def classify_source(value: str) -> SourceKind:
    """
    Determines what kind of input the user supplied.

    Raises:
        InputError: If the value is neither an HTTP(S) URL, a magnet link, nor an
        existing .torrent file.
    """
    lowered = value.lower()
    if lowered.startswith(("http://", "https://")):
        return SourceKind.HTTP
    if lowered.startswith("magnet:"):
        return SourceKind.MAGNET
    if value.endswith(".torrent") and Path(value).expanduser().is_file():
        return SourceKind.TORRENT
    raise InputError(f"Invalid URL or file: {value}")


def is_bittorrent_source(value: str) -> bool:
    """True for magnet links and anything named like a torrent file."""
    return value.lower().startswith("magnet:") or value.endswith(".torrent")


def find_recent_torrent(directory: Path) -> Path:
    """
    Returns the most recently modified .torrent file under `directory`.

    Raises:
        InputError: If no torrent file exists there.
    """
    candidates = [p for p in directory.rglob("*.torrent") if p.is_file()]
    if not candidates:
        raise InputError(f"No .torrent files found in {directory}")
    newest = max(candidates, key=lambda p: p.stat().st_mtime)
    log.debug(f"Picked {newest} out of {len(candidates)} torrent file(s).")
    return newest


def control_file_for(path: Path, engine: str) -> Path:
    """The sidecar file that records progress of `path` for the given engine."""
    suffix = ARIA2_CONTROL_SUFFIX if engine == "aria2" else CONTROL_SUFFIX
    return path.with_name(path.name + suffix)
