"""
Utilities for handling download paths and deriving file names from URLs.
"""

import re
from pathlib import Path
from urllib.parse import unquote, urlparse

from pathvalidate import sanitize_filename

DEFAULT_FILENAME = "index.html"

_CD_FILENAME_STAR = re.compile(r"filename\*\s*=\s*[^']*'[^']*'([^;]+)", re.IGNORECASE)
_CD_FILENAME = re.compile(r'filename\s*=\s*"?([^";]+)"?', re.IGNORECASE)


def create_dir(directory_path: Path) -> None:
    """Creates a directory if it does not already exist."""
    directory_path.mkdir(parents=True, exist_ok=True)


def filename_from_content_disposition(header: str | None) -> str | None:
    """Extracts the file name from a Content-Disposition header, if present."""
    if not header:
        return None
    if match := _CD_FILENAME_STAR.search(header):
        return unquote(match.group(1).strip())
    if match := _CD_FILENAME.search(header):
        return match.group(1).strip()
    return None


def derive_filename(url: str, content_disposition: str | None = None) -> str:
    """
    Picks the name a download is saved under: the Content-Disposition file name
    if the server sent one, else the last component of the URL path. The result
    is always safe to use as a single path component.
    """
    name = filename_from_content_disposition(content_disposition)
    if not name:
        name = unquote(Path(urlparse(url).path).name)
    name = sanitize_filename(name or "", platform="auto")
    return name or DEFAULT_FILENAME


def next_available_path(path: Path) -> Path:
    """
    Returns `path` if it is free, otherwise the first free 'name.N.ext'
    variant, matching aria2's automatic file renaming.
    """
    if not path.exists():
        return path
    stem, suffix = path.stem, path.suffix
    counter = 1
    while True:
        candidate = path.with_name(f"{stem}.{counter}{suffix}")
        if not candidate.exists():
            return candidate
        counter += 1
