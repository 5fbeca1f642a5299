"""
Calendar Busy-Time Provider

Interface the scheduling engine uses to read participants' busy time, plus
an in-memory provider backed by a static map. Real calendar integrations
implement the same get_busy() signature.
"""

import logging
from typing import Dict, Iterable, List, Optional, Protocol, Set, runtime_checkable
from datetime import datetime

from ..agent.models import BusyInterval
from ..agent.intervals import overlaps
from ..utils.helpers import ensure_utc, parse_iso_datetime

logger = logging.getLogger(__name__)

class CalendarUnavailableError(Exception):
    """Raised when a linked calendar cannot be read right now"""

@runtime_checkable
class CalendarProvider(Protocol):
    def get_busy(self, participant_id: str, time_min: datetime, time_max: datetime) -> Optional[List[BusyInterval]]:
        """
        Busy intervals of a participant overlapping [time_min, time_max)

        Returns None when the participant has no linked calendar.
        Raises CalendarUnavailableError when the calendar cannot be read.
        """
        ...

class StaticCalendarProvider:
    """
    Calendar provider serving busy time from memory

    Participants missing from the map are treated as unlinked; participants
    marked as failing raise CalendarUnavailableError.
    """

    def __init__(self, busy: Optional[Dict[str, Iterable[BusyInterval]]] = None,
                 failing: Optional[Iterable[str]] = None):
        self._busy: Dict[str, List[BusyInterval]] = {
            participant_id: list(intervals) for participant_id, intervals in (busy or {}).items()
        }
        self._failing: Set[str] = set(failing or [])

    def link(self, participant_id: str, intervals: Iterable[BusyInterval] = ()):
        """Register a participant's calendar (an empty one means always free)"""
        self._busy[participant_id] = list(intervals)

    def add_busy(self, participant_id: str, start, end):
        """Append one busy block; accepts datetimes or ISO strings"""
        interval = BusyInterval(parse_iso_datetime(start), parse_iso_datetime(end))
        self._busy.setdefault(participant_id, []).append(interval)

    def mark_failing(self, participant_id: str):
        self._failing.add(participant_id)

    def get_busy(self, participant_id: str, time_min: datetime, time_max: datetime) -> Optional[List[BusyInterval]]:
        if participant_id in self._failing:
            raise CalendarUnavailableError(f"Calendar for {participant_id} is unavailable")

        intervals = self._busy.get(participant_id)
        if intervals is None:
            return None

        window = BusyInterval(ensure_utc(time_min), ensure_utc(time_max))
        busy = [interval for interval in intervals if overlaps(interval, window)]
        logger.debug(f"Found {len(busy)} busy intervals for {participant_id}")
        return busy

__all__ = [
    'CalendarUnavailableError',
    'CalendarProvider',
    'StaticCalendarProvider'
]
