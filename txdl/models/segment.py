"""
Dataclass describing one byte range of a segmented download.
"""

from dataclasses import asdict, dataclass
from typing import Any


@dataclass
class Segment:
    """An inclusive byte range [start, end] and how much of it is on disk."""

    index: int
    start: int
    end: int
    downloaded: int = 0

    @property
    def size(self) -> int:
        return self.end - self.start + 1

    @property
    def offset(self) -> int:
        """Absolute file position where the next byte of this segment goes."""
        return self.start + self.downloaded

    @property
    def remaining(self) -> int:
        return self.size - self.downloaded

    @property
    def done(self) -> bool:
        return self.downloaded >= self.size

    def range_header(self) -> str:
        return f"bytes={self.offset}-{self.end}"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Segment":
        segment = cls(
            index=int(data["index"]),
            start=int(data["start"]),
            end=int(data["end"]),
            downloaded=int(data.get("downloaded", 0)),
        )
        if segment.start < 0 or segment.end < segment.start:
            raise ValueError(f"Invalid segment bounds: {data}")
        if not 0 <= segment.downloaded <= segment.size:
            raise ValueError(f"Invalid downloaded count for segment: {data}")
        return segment
