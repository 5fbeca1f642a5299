"""
Attendance Rule Engine

Decides whether a scheduling thread can be finalized, and on which slot,
from the selections recorded so far. Evaluation is recomputed from scratch
on every call and never mutates anything.

Only `selected` rows pointing at a known slot count. Every rule variant
scans the candidate slots chronologically (start time, then slot id), so
the earliest qualifying slot always wins.
"""

import logging
from typing import Dict, List, Sequence, Tuple

from .models import CandidateSlot, EvaluationResult, Selection
from .rules import (
    AllRule,
    AnyRule,
    AttendanceRule,
    GroupAnyRule,
    KOfNRule,
    RequiredPlusKRule,
)

logger = logging.getLogger(__name__)

def group_selections(selections: Sequence[Selection]) -> Dict[str, List[str]]:
    """
    Participant keys per selected slot

    Keys keep the order they were first seen in and appear once per slot.
    """
    groups: Dict[str, List[str]] = {}
    for selection in selections:
        if not selection.counts:
            continue
        members = groups.setdefault(selection.slot_id, [])
        if selection.participant_key not in members:
            members.append(selection.participant_key)
    return groups

def _chronological(slots: Sequence[CandidateSlot], groups: Dict[str, List[str]]) -> List[Tuple[CandidateSlot, List[str]]]:
    ordered = sorted(slots, key=lambda slot: slot.sort_key)
    seen = set()
    result = []
    for slot in ordered:
        if slot.slot_id in seen:
            continue
        seen.add(slot.slot_id)
        result.append((slot, groups.get(slot.slot_id, [])))
    return result

def _names(keys: Sequence[str]) -> str:
    return ", ".join(keys)

def _evaluate_any(rule: AnyRule, slots) -> EvaluationResult:
    for slot, members in slots:
        if members:
            return EvaluationResult(
                finalized=True,
                slot_id=slot.slot_id,
                participants=list(members),
                reason=f"ANY rule satisfied: {len(members)} participant(s) selected",
                rule_type=rule.type
            )
    return EvaluationResult(
        finalized=False,
        reason="No participants have selected any slot",
        rule_type=rule.type
    )

def _evaluate_all(rule: AllRule, slots) -> EvaluationResult:
    required = list(dict.fromkeys(rule.participants))
    required_set = set(required)

    best_present: List[str] = []
    best_extra: List[str] = []
    for slot, members in slots:
        if not members:
            continue
        member_set = set(members)
        if member_set == required_set:
            return EvaluationResult(
                finalized=True,
                slot_id=slot.slot_id,
                participants=list(members),
                reason=f"ALL rule satisfied: {len(members)}/{len(required)} participants",
                rule_type=rule.type
            )
        present = [key for key in required if key in member_set]
        if len(present) > len(best_present):
            best_present = present
            best_extra = [key for key in members if key not in required_set]

    missing = [key for key in required if key not in best_present]
    reason = f"Waiting for all {len(required)} participants"
    if missing:
        reason += f" (missing: {_names(missing)})"
    elif best_extra:
        reason += f" (unexpected: {_names(best_extra)})"
    return EvaluationResult(finalized=False, reason=reason, rule_type=rule.type)

def _evaluate_k_of_n(rule: KOfNRule, slots) -> EvaluationResult:
    pool = set(rule.participants)
    pool_size = len(pool)

    best = 0
    for slot, members in slots:
        eligible = [key for key in members if key in pool]
        if len(eligible) >= rule.k:
            return EvaluationResult(
                finalized=True,
                slot_id=slot.slot_id,
                participants=eligible,
                reason=f"K_OF_N rule satisfied: {len(eligible)} of {pool_size} participants (needed {rule.k})",
                rule_type=rule.type
            )
        best = max(best, len(eligible))

    return EvaluationResult(
        finalized=False,
        reason=f"Waiting for {rule.k} of {pool_size} participants to agree on one slot (best so far: {best})",
        rule_type=rule.type
    )

def _evaluate_required_plus_k(rule: RequiredPlusKRule, slots) -> EvaluationResult:
    required = list(dict.fromkeys(rule.required))
    optional = set(rule.optional)

    best_missing = required
    best_optional = 0
    for slot, members in slots:
        if not members:
            continue
        member_set = set(members)
        missing = [key for key in required if key not in member_set]
        optional_count = len(optional & member_set)

        if not missing and optional_count >= rule.quorum:
            return EvaluationResult(
                finalized=True,
                slot_id=slot.slot_id,
                participants=list(members),
                reason=(f"REQUIRED_PLUS_K rule satisfied: {len(required)} required + "
                        f"{optional_count}/{rule.quorum} optional"),
                rule_type=rule.type
            )

        if (len(missing), -optional_count) < (len(best_missing), -best_optional):
            best_missing = missing
            best_optional = optional_count

    reason = f"Waiting for {len(required)} required + {rule.quorum} optional participant(s)"
    details = []
    if best_missing:
        details.append(f"missing required: {_names(best_missing)}")
    if best_optional < rule.quorum:
        details.append(f"optional so far: {best_optional}")
    if details:
        reason += f" ({'; '.join(details)})"
    return EvaluationResult(finalized=False, reason=reason, rule_type=rule.type)

def _evaluate_group_any(rule: GroupAnyRule, slots) -> EvaluationResult:
    if not rule.groups:
        return EvaluationResult(
            finalized=False,
            reason="GROUP_ANY rule defines no groups",
            rule_type=rule.type
        )

    for slot, members in slots:
        if not members:
            continue
        member_set = set(members)
        for group in rule.groups:
            if member_set.intersection(group.members):
                return EvaluationResult(
                    finalized=True,
                    slot_id=slot.slot_id,
                    participants=list(members),
                    reason=f"GROUP_ANY rule satisfied: participant from group '{group.id}'",
                    rule_type=rule.type
                )

    return EvaluationResult(
        finalized=False,
        reason="No participants from any group have selected a slot",
        rule_type=rule.type
    )

_EVALUATORS = {
    'ANY': _evaluate_any,
    'ALL': _evaluate_all,
    'K_OF_N': _evaluate_k_of_n,
    'REQUIRED_PLUS_K': _evaluate_required_plus_k,
    'GROUP_ANY': _evaluate_group_any,
}

def evaluate(
    rule: AttendanceRule,
    selections: Sequence[Selection],
    slots: Sequence[CandidateSlot]
) -> EvaluationResult:
    """
    Evaluate an attendance rule against the current selections

    Args:
        rule: Attendance rule variant
        selections: Current selection rows of the thread
        slots: Candidate slots offered in the thread

    Returns:
        EvaluationResult; when not finalized it always carries a reason
    """
    groups = group_selections(selections)

    known = {slot.slot_id for slot in slots}
    unknown = [slot_id for slot_id in groups if slot_id not in known]
    if unknown:
        logger.debug(f"Ignoring selections for {len(unknown)} slot(s) not offered in this thread")

    result = _EVALUATORS[rule.type](rule, _chronological(slots, groups))
    logger.debug(f"{rule.type} evaluation: finalized={result.finalized} slot={result.slot_id} ({result.reason})")
    return result

__all__ = [
    'group_selections',
    'evaluate'
]
