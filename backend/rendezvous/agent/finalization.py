"""
Finalization Coordinator

Commits the decision of a scheduling thread exactly once. The commit goes
through the store's insert-if-absent primitive, so when two requests race
only one record is written and the loser gets the winner's record back.

After a first commit, internal participants are confirmed and registered
listeners are notified. Both steps are best effort: a failure is logged and
never undoes the commit.
"""

import logging
from typing import Callable, List, Optional, Sequence
from datetime import datetime, timezone

from .models import CandidateSlot, FinalizePolicy, FinalizeRecord, Selection
from .rules import AttendanceRule
from .attendance_engine import evaluate, group_selections

logger = logging.getLogger(__name__)

# Participant keys of internal users carry this prefix
INTERNAL_KEY_PREFIX = "u:"

FinalizeListener = Callable[[FinalizeRecord], None]

class UnknownSlotError(ValueError):
    """Raised when a slot id is not one of the thread's candidate slots"""

def internal_user_ids(participant_keys: Sequence[str]) -> List[str]:
    """User ids behind internal participant keys, in order"""
    return [
        key[len(INTERNAL_KEY_PREFIX):]
        for key in participant_keys
        if key.startswith(INTERNAL_KEY_PREFIX) and len(key) > len(INTERNAL_KEY_PREFIX)
    ]

class FinalizationCoordinator:
    """Write-once finalize on top of a thread store"""

    def __init__(self, store, listeners: Optional[List[FinalizeListener]] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.listeners: List[FinalizeListener] = list(listeners or [])
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def add_listener(self, listener: FinalizeListener):
        self.listeners.append(listener)

    def finalize(
        self,
        thread_id: str,
        rule: AttendanceRule,
        selections: Sequence[Selection],
        slots: Sequence[CandidateSlot],
        actor: Optional[str] = None
    ) -> Optional[FinalizeRecord]:
        """
        Finalize a thread when its attendance rule is satisfied

        Returns:
            The thread's FinalizeRecord (new or existing), or None when the
            rule is not satisfied yet
        """
        existing = self.store.get_finalize(thread_id)
        if existing:
            logger.info(f"Thread {thread_id} already finalized on {existing.final_slot_id}")
            return existing

        result = evaluate(rule, selections, slots)
        if not result.finalized:
            logger.info(f"Thread {thread_id} not ready to finalize: {result.reason}")
            return None

        record = FinalizeRecord(
            thread_id=thread_id,
            final_slot_id=result.slot_id,
            participants=list(result.participants),
            decided_by=actor,
            reason=result.reason,
            policy=FinalizePolicy.EARLIEST_VALID,
            finalized_at=self._clock()
        )
        return self._commit(record)

    def finalize_manual(
        self,
        thread_id: str,
        slot_id: str,
        selections: Sequence[Selection],
        slots: Sequence[CandidateSlot],
        actor: Optional[str] = None,
        reason: Optional[str] = None
    ) -> FinalizeRecord:
        """
        Finalize a thread on a slot chosen by the organizer

        Participants are whoever selected that slot. Idempotent like
        finalize(): an already finalized thread returns its record.

        Raises:
            UnknownSlotError: if slot_id is not a candidate slot of the thread
        """
        existing = self.store.get_finalize(thread_id)
        if existing:
            logger.info(f"Thread {thread_id} already finalized on {existing.final_slot_id}")
            return existing

        if slot_id not in {slot.slot_id for slot in slots}:
            raise UnknownSlotError(f"Slot {slot_id} is not a candidate of thread {thread_id}")

        participants = group_selections(selections).get(slot_id, [])
        record = FinalizeRecord(
            thread_id=thread_id,
            final_slot_id=slot_id,
            participants=list(participants),
            decided_by=actor,
            reason=reason or f"Chosen by host with {len(participants)} participant(s) available",
            policy=FinalizePolicy.HOST_CHOICE,
            finalized_at=self._clock()
        )
        return self._commit(record)

    def _commit(self, record: FinalizeRecord) -> FinalizeRecord:
        stored, created = self.store.insert_finalize_if_absent(record)
        if not created:
            logger.info(f"Thread {record.thread_id} was finalized concurrently on {stored.final_slot_id}")
            return stored

        logger.info(f"Finalized thread {stored.thread_id} on {stored.final_slot_id} "
                    f"({stored.policy.value}, {len(stored.participants)} participants)")
        self._reconcile(stored)
        self._notify(stored)
        return stored

    def _reconcile(self, record: FinalizeRecord):
        user_ids = internal_user_ids(record.participants)
        if not user_ids:
            return
        try:
            self.store.confirm_participants(record.thread_id, user_ids)
        except Exception:
            logger.exception(f"Failed to confirm participants of thread {record.thread_id}; left for repair")

    def _notify(self, record: FinalizeRecord):
        for listener in self.listeners:
            try:
                listener(record)
            except Exception:
                logger.exception(f"Finalize listener {getattr(listener, '__name__', listener)!r} failed "
                                 f"for thread {record.thread_id}")

__all__ = [
    'INTERNAL_KEY_PREFIX',
    'FinalizeListener',
    'UnknownSlotError',
    'internal_user_ids',
    'FinalizationCoordinator'
]
