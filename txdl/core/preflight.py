"""
Checks that run before any transfer starts: the download directory must be
writable and have enough free space. Also removes stale control files after a
failed transfer.
"""

import logging
import os
import shutil
from pathlib import Path

from txdl.exceptions import StorageError
from txdl.utils.formatting import MIB
from txdl.utils.path import create_dir

log = logging.getLogger(__name__)


def ensure_writable_dir(directory: Path) -> None:
    """
    Creates `directory` if needed and verifies the process can write to it.

    Raises:
        StorageError: If the directory cannot be created or is not writable.
    """
    if not directory.is_dir():
        if directory.exists():
            raise StorageError(f"Not a directory: {directory}")
        try:
            create_dir(directory)
        except OSError as e:
            raise StorageError(f"Cannot create directory: {directory} ({e})") from e
        log.info(f"[blue]Created directory: {directory}[/blue]")

    if not os.access(directory, os.W_OK | os.X_OK):
        raise StorageError(f"No write permission for directory: {directory}")


def check_disk_space(directory: Path, required_mb: int) -> int:
    """
    Verifies at least `required_mb` MiB are free in `directory`.

    Returns:
        The available space in MiB.

    Raises:
        StorageError: If the free space cannot be determined or is insufficient.
    """
    try:
        available_mb = shutil.disk_usage(directory).free // MIB
    except OSError as e:
        raise StorageError(f"Cannot determine free space in {directory}: {e}") from e

    if available_mb < required_mb:
        raise StorageError(
            f"Insufficient disk space. At least {required_mb}MB required in "
            f"{directory} ({available_mb}MB available)"
        )

    log.info(f"Available disk space: {available_mb}MB")
    return available_mb


def cleanup_control_files(directory: Path, pattern: str) -> list[Path]:
    """
    Deletes regular files below `directory` whose name matches `pattern`.

    Returns:
        The paths that were removed.
    """
    log.info(f"Cleaning up temporary files matching: {pattern}")
    removed = []
    for path in directory.rglob(pattern):
        if not path.is_file():
            continue
        try:
            path.unlink()
            removed.append(path)
        except OSError as e:
            log.warning(f"Could not remove {path}: {e}")
    return removed
