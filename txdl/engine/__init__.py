"""
Native Download Engine.

This package implements a self-contained multi-connection segmented HTTP(S)
downloader with resume support, used instead of aria2c when the native engine
is selected.
"""

from .downloader import SegmentedDownloader
from .segments import plan_segments

__all__ = ["SegmentedDownloader", "plan_segments"]
