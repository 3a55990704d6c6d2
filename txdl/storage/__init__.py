"""
Storage Layer.

This package handles all data persistence: the INI configuration file and the
control files that let the native engine resume interrupted transfers.
"""

from .config_manager import ConfigManager
from .control_file import ControlFile

__all__ = ["ConfigManager", "ControlFile"]
