"""
Interval Set Operations

Merging, clipping, union and complement of half-open time intervals. These
are the building blocks for turning many participants' busy calendars into
the common free time a meeting can be placed in.
"""

import logging
from typing import Iterable, List, Sequence
from datetime import datetime

from .models import Interval
from ..utils.helpers import ensure_utc

logger = logging.getLogger(__name__)

def overlaps(first: Interval, second: Interval) -> bool:
    """Check if two half-open intervals share any time"""
    return first.start < second.end and second.start < first.end

def merge(intervals: Iterable[Interval]) -> List[Interval]:
    """
    Fold overlapping or touching intervals into a sorted, disjoint list

    Sorting is stable on start time, so equal starts keep their input order.
    """
    ordered = sorted(intervals, key=lambda interval: interval.start)
    if not ordered:
        return []

    merged: List[Interval] = []
    current_start, current_end = ordered[0].start, ordered[0].end

    for interval in ordered[1:]:
        if interval.start <= current_end:
            if interval.end > current_end:
                current_end = interval.end
        else:
            merged.append(Interval(current_start, current_end))
            current_start, current_end = interval.start, interval.end

    merged.append(Interval(current_start, current_end))
    return merged

def clip(intervals: Iterable[Interval], window_start: datetime, window_end: datetime) -> List[Interval]:
    """Truncate intervals to [window_start, window_end), dropping those outside it"""
    window_start = ensure_utc(window_start)
    window_end = ensure_utc(window_end)

    clipped = []
    for interval in intervals:
        if interval.end <= window_start or interval.start >= window_end:
            continue
        clipped.append(Interval(
            max(interval.start, window_start),
            min(interval.end, window_end)
        ))
    return clipped

def union(busy_lists: Iterable[Sequence[Interval]]) -> List[Interval]:
    """Merged busy time of everyone; no input means nobody is busy"""
    flattened = [interval for busy in busy_lists for interval in busy]
    return merge(flattened)

def complement(merged: Sequence[Interval], window_start: datetime, window_end: datetime) -> List[Interval]:
    """
    Free gaps inside [window_start, window_end) around merged busy intervals

    Args:
        merged: Sorted, disjoint busy intervals (output of merge)
        window_start: Window lower bound (inclusive)
        window_end: Window upper bound (exclusive)

    Returns:
        Sorted, disjoint free intervals
    """
    window_start = ensure_utc(window_start)
    window_end = ensure_utc(window_end)
    if window_start >= window_end:
        return []

    free: List[Interval] = []
    cursor = window_start

    for busy in merged:
        if busy.end <= cursor:
            continue
        if busy.start >= window_end:
            break
        if cursor < busy.start:
            free.append(Interval(cursor, busy.start))
        cursor = max(cursor, busy.end)

    if cursor < window_end:
        free.append(Interval(cursor, window_end))

    return free

def total_minutes(intervals: Iterable[Interval]) -> float:
    """Sum of interval lengths in minutes"""
    return sum(interval.duration_minutes for interval in intervals)

__all__ = [
    'overlaps',
    'merge',
    'clip',
    'union',
    'complement',
    'total_minutes'
]
