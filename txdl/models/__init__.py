"""
Data Models Layer.

This package contains the models that define the core data structures used
throughout the application, such as configuration, segments and statistics.
"""

from .config import DownloadConfig
from .segment import Segment
from .stats import DownloadStats

__all__ = ["DownloadConfig", "DownloadStats", "Segment"]
