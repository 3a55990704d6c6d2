"""
aria2c Integration.

This package builds aria2c command lines and runs the binary as a subprocess.
"""

from .command import ARIA2_EXIT_CODES, build_aria2_command, build_resume_command
from .runner import Aria2Runner

__all__ = [
    "ARIA2_EXIT_CODES",
    "Aria2Runner",
    "build_aria2_command",
    "build_resume_command",
]
