"""
Thread Progress Summary

Read-only overview of where a scheduling thread stands: who answered,
who is still pending, and what the organizer should do next.
"""

import logging
from typing import List, Optional, Sequence
from dataclasses import dataclass, field
from enum import Enum

from .models import EvaluationResult, FinalizeRecord, Selection, SelectionStatus

logger = logging.getLogger(__name__)

class NextAction(Enum):
    """Recommended next step for the organizer"""
    FINALIZE = "finalize"
    WAIT = "wait"
    REMIND = "remind"
    PROPOSE_MORE = "propose_more"
    NONE = "none"

@dataclass
class ThreadProgress:
    thread_id: str
    total: int
    pending: int
    selected: int
    declined: int
    expired: int
    stale: int
    total_slots: int
    proposal_version: int
    finalized: bool
    next_action: NextAction
    reason: str
    final_slot_id: Optional[str] = None
    notes: List[str] = field(default_factory=list)

def _next_action(total, pending, stale, declined, expired, total_slots, finalized, evaluation):
    if finalized:
        return NextAction.NONE, "Meeting time is already finalized"
    if total == 0:
        return NextAction.WAIT, "No participants have been invited yet"
    if total_slots == 0:
        return NextAction.PROPOSE_MORE, "No candidate slots have been proposed yet"
    if declined + expired == total:
        return NextAction.PROPOSE_MORE, "Every participant declined or let the proposal expire"
    if evaluation is not None and evaluation.finalized:
        return NextAction.FINALIZE, evaluation.reason
    if stale:
        return NextAction.REMIND, f"{stale} participant(s) answered an older proposal and need to respond again"
    if pending:
        return NextAction.REMIND, f"{pending} participant(s) have not responded yet"
    if evaluation is None:
        return NextAction.FINALIZE, "Everyone has responded"
    return NextAction.PROPOSE_MORE, f"Everyone has responded but no slot works yet: {evaluation.reason}"

def summarize_progress(
    thread_id: str,
    selections: Sequence[Selection],
    total_slots: int,
    finalize_record: Optional[FinalizeRecord] = None,
    evaluation: Optional[EvaluationResult] = None,
    invitees: Optional[Sequence[str]] = None,
    proposal_version: Optional[int] = None
) -> ThreadProgress:
    """
    Summarize a thread's progress

    Args:
        thread_id: Thread being summarized
        selections: Current selection rows
        total_slots: Number of candidate slots offered
        finalize_record: The thread's finalize record, if any
        evaluation: Current attendance rule evaluation, if known
        invitees: Invited participant keys; those without a row count as pending
        proposal_version: Current proposal round; answers from older rounds are stale

    Returns:
        ThreadProgress with counts and the recommended next action
    """
    by_key = {selection.participant_key: selection for selection in selections}
    keys = list(dict.fromkeys(list(invitees or []) + list(by_key)))

    if proposal_version is None:
        proposal_version = max((s.proposal_version for s in selections), default=1)

    pending = selected = declined = expired = stale = 0
    for key in keys:
        selection = by_key.get(key)
        if selection is None or selection.status is SelectionStatus.PENDING:
            pending += 1
            continue
        if selection.status is SelectionStatus.DECLINED:
            declined += 1
        elif selection.status is SelectionStatus.EXPIRED:
            expired += 1
        else:
            selected += 1
            if selection.proposal_version < proposal_version:
                stale += 1

    finalized = finalize_record is not None
    action, reason = _next_action(
        len(keys), pending, stale, declined, expired, total_slots, finalized, evaluation
    )

    notes = []
    if keys and pending == len(keys):
        notes.append("Nobody has responded yet")
    if stale:
        notes.append(f"{stale} answer(s) belong to an older proposal round")

    logger.debug(f"Progress for thread {thread_id}: {action.value} ({reason})")

    return ThreadProgress(
        thread_id=thread_id,
        total=len(keys),
        pending=pending,
        selected=selected,
        declined=declined,
        expired=expired,
        stale=stale,
        total_slots=total_slots,
        proposal_version=proposal_version,
        finalized=finalized,
        final_slot_id=finalize_record.final_slot_id if finalize_record else None,
        next_action=action,
        reason=reason,
        notes=notes
    )

__all__ = [
    'NextAction',
    'ThreadProgress',
    'summarize_progress'
]
