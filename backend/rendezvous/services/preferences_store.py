"""
Preferences Store

Supplies participants' scheduling preferences to the engine. Documents are
kept in their stored form and validated on every read, so a malformed
document simply reads back as "no preferences".
"""

import logging
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from ..agent.preferences import SchedulePreferences, parse_preferences

logger = logging.getLogger(__name__)

@runtime_checkable
class PreferencesStore(Protocol):
    def get_preferences(self, participant_id: str) -> Optional[SchedulePreferences]:
        """Validated preferences of a participant, or None when unset or malformed"""
        ...

class InMemoryPreferencesStore:
    """Preferences store holding raw documents in a dict"""

    def __init__(self, documents: Optional[Dict[str, Any]] = None):
        self._documents: Dict[str, Any] = dict(documents or {})

    def set_preferences(self, participant_id: str, document: Any):
        self._documents[participant_id] = document

    def clear_preferences(self, participant_id: str):
        self._documents.pop(participant_id, None)

    def get_preferences(self, participant_id: str) -> Optional[SchedulePreferences]:
        document = self._documents.get(participant_id)
        if document is None:
            return None
        return parse_preferences(document, source=participant_id)

__all__ = [
    'PreferencesStore',
    'InMemoryPreferencesStore'
]
