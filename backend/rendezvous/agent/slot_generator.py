"""
Slot Generator - Candidate Meeting Slots from Free Time

Walks free intervals on a fixed grid and emits fixed-length candidate slots,
optionally restricted to a daily time-of-day window in the display timezone.
"""

import logging
from typing import Dict, List, Optional, Sequence
from datetime import timedelta
from dataclasses import dataclass

from .models import CandidateSlot, Interval
from ..utils.helpers import format_slot_label, to_local

logger = logging.getLogger(__name__)

DEFAULT_GRID_STEP = timedelta(minutes=30)
DEFAULT_MAX_RESULTS = 8

@dataclass(frozen=True)
class DayTimeWindow:
    """Allowed local start hours [start_hour, end_hour)"""
    start_hour: int
    end_hour: int

    def __post_init__(self):
        if not (0 <= self.start_hour < self.end_hour <= 24):
            raise ValueError(
                f"Invalid day window {self.start_hour}-{self.end_hour}: need 0 <= start < end <= 24"
            )

    def contains_hour(self, hour: int) -> bool:
        return self.start_hour <= hour < self.end_hour

TIME_WINDOW_PRESETS: Dict[str, DayTimeWindow] = {
    'morning': DayTimeWindow(9, 12),
    'afternoon': DayTimeWindow(14, 18),
    'evening': DayTimeWindow(18, 21),
    'business': DayTimeWindow(9, 18),
}

def time_window_from_prefer(prefer: Optional[str]) -> Optional[DayTimeWindow]:
    """Resolve a prefer filter name to its window; unknown names mean no filter"""
    if not prefer:
        return None
    window = TIME_WINDOW_PRESETS.get(prefer.lower())
    if window is None:
        logger.warning(f"Unknown prefer filter '{prefer}', generating slots without a time window")
    return window

def generate_slots(
    free_intervals: Sequence[Interval],
    meeting_length: timedelta,
    grid_step: timedelta = DEFAULT_GRID_STEP,
    day_window: Optional[DayTimeWindow] = None,
    max_results: int = DEFAULT_MAX_RESULTS,
    timezone_str: str = "UTC"
) -> List[CandidateSlot]:
    """
    Emit grid-aligned candidate slots inside the given free intervals

    Intervals are scanned in chronological order and generation stops as
    soon as max_results slots exist, so a capped result always holds the
    earliest valid candidates.

    Args:
        free_intervals: Disjoint free intervals
        meeting_length: Duration of every candidate
        grid_step: Cursor step inside each free interval
        day_window: Optional local start-hour filter
        max_results: Global cap on emitted candidates
        timezone_str: Display timezone for labels and the day window

    Returns:
        Candidate slots, ordered by start time
    """
    if meeting_length <= timedelta(0):
        raise ValueError("meeting_length must be positive")
    if grid_step <= timedelta(0):
        raise ValueError("grid_step must be positive")
    if max_results < 0:
        raise ValueError("max_results must not be negative")

    slots: List[CandidateSlot] = []

    for free in sorted(free_intervals, key=lambda interval: interval.start):
        if len(slots) >= max_results:
            break

        cursor = free.start
        while cursor + meeting_length <= free.end and len(slots) < max_results:
            if day_window and not day_window.contains_hour(to_local(cursor, timezone_str).hour):
                cursor += grid_step
                continue

            slot_end = cursor + meeting_length
            slots.append(CandidateSlot(
                start=cursor,
                end=slot_end,
                label=format_slot_label(cursor, slot_end, timezone_str)
            ))
            cursor += grid_step

    logger.debug(f"Generated {len(slots)} candidate slots from {len(free_intervals)} free intervals")
    return slots

__all__ = [
    'DayTimeWindow',
    'TIME_WINDOW_PRESETS',
    'DEFAULT_GRID_STEP',
    'DEFAULT_MAX_RESULTS',
    'time_window_from_prefer',
    'generate_slots'
]
