"""
Reads and writes the JSON control file that records a partial native-engine
download, so an interrupted transfer can be continued later.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from txdl.exceptions import ResumeError
from txdl.models.segment import Segment

log = logging.getLogger(__name__)

CONTROL_SUFFIX = ".txdl"
CONTROL_VERSION = 1


@dataclass
class ControlFile:
    """
    Sidecar state for `<target><CONTROL_SUFFIX>`.

    Besides segment progress it stores the URL and the split options that
    produced the segment layout, so a resume does not depend on the caller
    passing the same flags again.
    """

    path: Path
    url: str
    total_size: int
    segments: list[Segment] = field(default_factory=list)
    etag: str | None = None
    last_modified: str | None = None
    split: int = 1
    min_split_size: int = 0

    @staticmethod
    def path_for(target: Path) -> Path:
        return target.with_name(target.name + CONTROL_SUFFIX)

    @property
    def target(self) -> Path:
        return self.path.with_name(self.path.name[: -len(CONTROL_SUFFIX)])

    @property
    def completed_bytes(self) -> int:
        return sum(segment.downloaded for segment in self.segments)

    @property
    def complete(self) -> bool:
        return bool(self.segments) and all(segment.done for segment in self.segments)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": CONTROL_VERSION,
            "url": self.url,
            "total_size": self.total_size,
            "etag": self.etag,
            "last_modified": self.last_modified,
            "split": self.split,
            "min_split_size": self.min_split_size,
            "segments": [segment.to_dict() for segment in self.segments],
        }

    @classmethod
    def load(cls, path: Path) -> "ControlFile":
        """
        Loads and validates a control file.

        Raises:
            ResumeError: If the file is unreadable, from another version, or its
            segments do not tile the recorded file size.
        """
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ResumeError(f"Cannot read control file '{path}': {e}") from e

        if data.get("version") != CONTROL_VERSION:
            raise ResumeError(
                f"Control file '{path}' has unsupported version {data.get('version')!r}."
            )

        try:
            control = cls(
                path=path,
                url=str(data["url"]),
                total_size=int(data["total_size"]),
                segments=[Segment.from_dict(s) for s in data["segments"]],
                etag=data.get("etag"),
                last_modified=data.get("last_modified"),
                split=int(data.get("split", 1)),
                min_split_size=int(data.get("min_split_size", 0)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ResumeError(f"Control file '{path}' is corrupted: {e}") from e

        control._check_layout()
        return control

    def _check_layout(self) -> None:
        expected_start = 0
        for segment in sorted(self.segments, key=lambda s: s.start):
            if segment.start != expected_start:
                raise ResumeError(
                    f"Control file '{self.path}' has a gap or overlap at byte "
                    f"{segment.start}."
                )
            expected_start = segment.end + 1
        if not self.segments or expected_start != self.total_size:
            raise ResumeError(
                f"Control file '{self.path}' does not cover {self.total_size} bytes."
            )

    def save(self) -> None:
        self.write(self.to_dict())

    def write(self, data: dict[str, Any]) -> None:
        """
        Writes a snapshot taken with `to_dict` atomically (temp file, then
        rename). Split from `save` so the snapshot can be taken on the event
        loop and the disk write done in a worker thread.

        Every call uses its own temp file, so overlapping writes never
        rename each other's data away.
        """
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=self.path.parent,
            prefix=f".{self.path.name}.",
            suffix=".tmp",
            delete=False,
        ) as f:
            tmp_path = Path(f.name)
            try:
                json.dump(data, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            except BaseException:
                f.close()
                tmp_path.unlink(missing_ok=True)
                raise
        try:
            os.replace(tmp_path, self.path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise

    def remove(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            log.warning(f"Could not remove control file '{self.path}': {e}")
