"""
Helper functions for converting sizes and durations to and from
human-readable strings.
"""

import re

KIB = 1024
MIB = 1024 * 1024

_SIZE_PATTERN = re.compile(r"^\s*(\d+)\s*([kKmM]?)\s*$")


def format_size(bytes_size: int) -> str:
    """Formats bytes into a human-readable size string (e.g., '145.3 MB')."""
    if bytes_size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    while bytes_size >= 1024 and i < len(units) - 1:
        bytes_size /= 1024
        i += 1
    return f"{bytes_size:.1f} {units[i]}"


def format_duration(seconds: float) -> str:
    """
    Formats a duration in seconds into a human-readable string (e.g., '2h 34m 12s').
    """
    s = int(seconds)
    hours, remainder = divmod(s, 3600)
    minutes, secs = divmod(remainder, 60)
    parts = []
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)


def parse_size(value: str | int) -> int:
    """
    Parses an aria2-style size ('1M', '512K', '1048576') into bytes.

    Raises:
        ValueError: If the value is not a non-negative integer with an optional
        K or M suffix.
    """
    if isinstance(value, int):
        return value
    match = _SIZE_PATTERN.match(value)
    if not match:
        raise ValueError(f"Invalid size '{value}'. Use a number with optional K or M.")
    number, unit = int(match.group(1)), match.group(2).upper()
    if unit == "K":
        return number * KIB
    if unit == "M":
        return number * MIB
    return number


def to_aria2_size(bytes_size: int) -> str:
    """Renders a byte count the way aria2c options expect it ('1M', '512K')."""
    if bytes_size and bytes_size % MIB == 0:
        return f"{bytes_size // MIB}M"
    if bytes_size and bytes_size % KIB == 0:
        return f"{bytes_size // KIB}K"
    return str(bytes_size)
