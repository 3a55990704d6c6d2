"""
Splits a file into byte ranges that are fetched over separate connections.
"""

from txdl.models.segment import Segment


def segment_count(total_size: int, split: int, min_split_size: int) -> int:
    """
    Number of segments for a file: never more than `split`, and never so many
    that a segment would be smaller than `min_split_size`.
    """
    if total_size <= 0:
        return 0
    by_size = max(1, total_size // min_split_size)
    return max(1, min(split, by_size))


def plan_segments(total_size: int, split: int, min_split_size: int) -> list[Segment]:
    """
    Divides `total_size` bytes into contiguous, non-overlapping segments whose
    sizes differ by at most one byte.

    Returns an empty list for an unknown or empty file; those are fetched with
    a single plain request instead.
    """
    count = segment_count(total_size, split, min_split_size)
    if count == 0:
        return []

    base, extra = divmod(total_size, count)
    segments = []
    start = 0
    for index in range(count):
        length = base + (1 if index < extra else 0)
        segments.append(Segment(index=index, start=start, end=start + length - 1))
        start += length
    return segments
