"""
Dataclass for tracking download session statistics.
"""

import asyncio
import time
from dataclasses import dataclass, field


@dataclass
class DownloadStats:
    """Tracks statistics for a single transfer, including real-time speed."""

    bytes_downloaded: int = 0
    resumed_bytes: int = 0
    total_size: int = 0
    segments_total: int = 0
    engine: str = "aria2"
    output_path: str | None = None

    # Real-time speed calculation fields
    current_speed_bps: float = 0.0
    peak_speed_bps: float = 0.0
    started_at: float = field(default_factory=time.monotonic)
    _speed_samples: list[float] = field(default_factory=list, repr=False)
    _last_progress_time: float = field(default=0.0, repr=False)
    _last_progress_bytes: int = field(default=0, repr=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def __post_init__(self):
        self._last_progress_time = time.monotonic()

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started_at

    @property
    def average_speed_bps(self) -> float:
        """Average speed of bytes fetched in this run (resumed bytes excluded)."""
        elapsed = self.elapsed
        return self.bytes_downloaded / elapsed if elapsed > 0 else 0.0

    async def add_bytes(self, count: int) -> None:
        """
        Records freshly received bytes and refreshes the speed estimate. Safe to
        call from concurrent segment workers.

        Args:
            count: Number of bytes just written to disk.
        """
        async with self._lock:
            self.bytes_downloaded += count
            now = time.monotonic()
            elapsed = now - self._last_progress_time

            # Update speed roughly twice per second
            if elapsed > 0.5:
                bytes_diff = self.bytes_downloaded - self._last_progress_bytes
                if bytes_diff > 0:
                    self._speed_samples.append(bytes_diff / elapsed)
                    # Keep a sliding window of the last 10 speed samples
                    if len(self._speed_samples) > 10:
                        self._speed_samples.pop(0)
                    self.current_speed_bps = sum(self._speed_samples) / len(
                        self._speed_samples
                    )
                    self.peak_speed_bps = max(
                        self.peak_speed_bps, self.current_speed_bps
                    )

                self._last_progress_time = now
                self._last_progress_bytes = self.bytes_downloaded
