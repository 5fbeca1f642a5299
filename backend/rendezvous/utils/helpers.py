"""
Shared Utility Functions for the Rendezvous scheduling engine

Provides timezone-aware datetime handling, display formatting for slots,
error response shaping and execution timing used across the engine, the
collaborator services and the API layer.
"""

import logging
from typing import Dict, Optional, Any, Union
from datetime import datetime, timezone
from dateutil import parser as date_parser
import pytz
from functools import wraps

# Configure module logger
logger = logging.getLogger(__name__)

# Weekday codes indexed by datetime.weekday() (0=Monday)
DAY_CODES = ('mon', 'tue', 'wed', 'thu', 'fri', 'sat', 'sun')
DAY_NAMES = ('Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat', 'Sun')

# =============================================================================
# Date and Time Utilities
# =============================================================================

def ensure_utc(dt: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken to be UTC"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)

def parse_iso_datetime(value: Union[str, datetime]) -> datetime:
    """
    Parse an ISO 8601 string (or pass through a datetime) into aware UTC

    Raises:
        ValueError: if the string is not a valid ISO 8601 timestamp
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    try:
        return ensure_utc(date_parser.isoparse(value))
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid ISO datetime: {value!r}") from exc

def to_iso(dt: datetime) -> str:
    """Serialize a datetime as RFC 3339 UTC with a trailing Z"""
    formatted = ensure_utc(dt).isoformat()
    if formatted.endswith('+00:00'):
        return formatted[:-6] + 'Z'
    return formatted

def get_timezone(timezone_str: str):
    """Resolve an IANA timezone name through pytz"""
    return pytz.timezone(timezone_str)

def to_local(dt: datetime, timezone_str: str) -> datetime:
    """Convert an aware datetime into the given display timezone"""
    return ensure_utc(dt).astimezone(get_timezone(timezone_str))

def format_slot_label(start: datetime, end: datetime, timezone_str: str) -> str:
    """Human readable slot label, e.g. 'Fri 1/24 14:00-15:00'"""
    local_start = to_local(start, timezone_str)
    local_end = to_local(end, timezone_str)
    day = DAY_NAMES[local_start.weekday()]
    label = f"{day} {local_start.month}/{local_start.day} {local_start:%H:%M}-{local_end:%H:%M}"
    if local_end.date() != local_start.date():
        label += f" (+{(local_end.date() - local_start.date()).days}d)"
    return label

def minutes_of_day(dt: datetime) -> int:
    """Minutes elapsed since local midnight"""
    return dt.hour * 60 + dt.minute

def parse_clock(value: str) -> int:
    """Parse an 'HH:MM' clock string into minutes since midnight"""
    hours, minutes = value.split(':')
    return int(hours) * 60 + int(minutes)

# =============================================================================
# Error Handling and Logging
# =============================================================================

def create_error_response(
    error_message: str,
    error_code: str = "GENERAL_ERROR",
    details: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Create standardized error response"""
    return {
        "success": False,
        "error": {
            "message": error_message,
            "code": error_code,
            "details": details or {},
            "timestamp": datetime.now(timezone.utc).isoformat()
        }
    }

def measure_execution_time(func):
    """Decorator to measure function execution time"""
    @wraps(func)
    def wrapper(*args, **kwargs):
        start_time = datetime.now()
        try:
            result = func(*args, **kwargs)
            execution_time = (datetime.now() - start_time).total_seconds()
            logger.debug(f"{func.__name__} executed in {execution_time:.3f} seconds")
            return result
        except Exception as e:
            execution_time = (datetime.now() - start_time).total_seconds()
            logger.error(f"{func.__name__} failed after {execution_time:.3f} seconds: {str(e)}")
            raise

    return wrapper

__all__ = [
    'DAY_CODES',
    'DAY_NAMES',
    'ensure_utc',
    'parse_iso_datetime',
    'to_iso',
    'get_timezone',
    'to_local',
    'format_slot_label',
    'minutes_of_day',
    'parse_clock',
    'create_error_response',
    'measure_execution_time'
]
