"""
Participant Scheduling Preferences

Validated, versioned preference documents. A document lists preferred and
avoided time-of-day windows, optionally per weekday, with a weight each.
Parsing fails closed: anything that does not validate is treated as "no
preferences" so scoring never breaks on bad input.
"""

import json
import logging
from typing import Any, List, Literal, Optional
from datetime import datetime

import pytz
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ..utils.helpers import DAY_CODES, minutes_of_day, parse_clock

logger = logging.getLogger(__name__)

PREFERENCES_VERSION = 2

DayCode = Literal['mon', 'tue', 'wed', 'thu', 'fri', 'sat', 'sun']

CLOCK_PATTERN = r'^\d{2}:\d{2}$'

class PreferenceRule(BaseModel):
    """A weighted time-of-day window, optionally limited to some weekdays"""
    model_config = ConfigDict(frozen=True, extra='ignore')

    label: Optional[str] = None
    days_of_week: Optional[List[DayCode]] = None
    start_time: str = Field(..., pattern=CLOCK_PATTERN, description="Local start, HH:MM")
    end_time: str = Field(..., pattern=CLOCK_PATTERN, description="Local end (exclusive), HH:MM")
    weight: float = Field(..., allow_inf_nan=False)

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_clock(cls, value: str) -> str:
        minutes = parse_clock(value)
        if int(value[3:]) > 59 or minutes > 24 * 60:
            raise ValueError(f"'{value}' is not a valid clock time")
        return value

    @model_validator(mode='after')
    def validate_range(self):
        if parse_clock(self.start_time) >= parse_clock(self.end_time):
            raise ValueError(f"start_time {self.start_time} must be before end_time {self.end_time}")
        return self

    def matches(self, local_start: datetime) -> bool:
        """Check a slot start, already converted to local time, against this rule"""
        if self.days_of_week and DAY_CODES[local_start.weekday()] not in self.days_of_week:
            return False
        slot_minutes = minutes_of_day(local_start)
        return parse_clock(self.start_time) <= slot_minutes < parse_clock(self.end_time)

    def display_label(self) -> str:
        if self.label and self.label.strip():
            return self.label.strip()
        window = f"{self.start_time}-{self.end_time}"
        if self.days_of_week and len(self.days_of_week) < 7:
            return f"{','.join(self.days_of_week)} {window}"
        return window

class SchedulePreferences(BaseModel):
    """One participant's preference document"""
    model_config = ConfigDict(frozen=True, extra='ignore')

    version: Literal[2] = PREFERENCES_VERSION
    timezone: Optional[str] = None
    preferred: List[PreferenceRule] = Field(default_factory=list)
    avoid: List[PreferenceRule] = Field(default_factory=list)

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        try:
            pytz.timezone(value)
        except pytz.UnknownTimeZoneError:
            raise ValueError(f"Unknown timezone '{value}'")
        return value

    @property
    def is_empty(self) -> bool:
        return not self.preferred and not self.avoid

def _upgrade_v1_rule(rule: Any) -> Any:
    if not isinstance(rule, dict):
        return rule
    return {
        'label': rule.get('label'),
        'days_of_week': rule.get('days'),
        'start_time': rule.get('start'),
        'end_time': rule.get('end'),
        'weight': rule.get('weight'),
    }

def _upgrade_v1(document: dict) -> dict:
    """Map the version 1 time_windows / avoid_windows shape onto the current one"""
    upgraded = {
        'version': PREFERENCES_VERSION,
        'timezone': document.get('timezone'),
    }
    for source_key, target_key in (('time_windows', 'preferred'), ('avoid_windows', 'avoid')):
        rules = document.get(source_key)
        if rules is None:
            continue
        if not isinstance(rules, list):
            upgraded[target_key] = rules
        else:
            upgraded[target_key] = [_upgrade_v1_rule(rule) for rule in rules]
    return upgraded

def parse_preferences(document: Any, source: str = "unknown") -> Optional[SchedulePreferences]:
    """
    Parse a stored preference document into a validated model

    Args:
        document: dict, JSON string, SchedulePreferences or None
        source: Participant id used in log messages

    Returns:
        SchedulePreferences, or None when absent or malformed
    """
    if document is None:
        return None
    if isinstance(document, SchedulePreferences):
        return document

    if isinstance(document, (str, bytes)):
        if not document.strip():
            return None
        try:
            document = json.loads(document)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring preferences for {source}: invalid JSON ({e})")
            return None

    if not isinstance(document, dict):
        logger.warning(f"Ignoring preferences for {source}: expected an object, got {type(document).__name__}")
        return None

    version = document.get('version')
    if version is None:
        version = 1 if ('time_windows' in document or 'avoid_windows' in document) else PREFERENCES_VERSION
    if version == 1:
        document = _upgrade_v1(document)
    elif version != PREFERENCES_VERSION:
        logger.warning(f"Ignoring preferences for {source}: unsupported version {version!r}")
        return None

    try:
        return SchedulePreferences.model_validate(document)
    except ValidationError as e:
        logger.warning(f"Ignoring preferences for {source}: {e.error_count()} validation error(s)")
        logger.debug(f"Preference validation details for {source}: {e}")
        return None

__all__ = [
    'PREFERENCES_VERSION',
    'PreferenceRule',
    'SchedulePreferences',
    'parse_preferences'
]
