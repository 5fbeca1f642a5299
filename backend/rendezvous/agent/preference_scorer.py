"""
Preference Scorer - Ranking Candidate Slots

Scores candidate slots against every participant's preferred and avoided
windows, adds a small proximity tie-break so sooner slots win among equals,
and keeps every contribution as an explainable reason.
"""

import logging
from typing import Dict, List, Optional, Sequence
from datetime import datetime, timezone
from dataclasses import dataclass, field

from .models import CandidateSlot, ReasonKind, ScoreReason, ScoredSlot, PROXIMITY_SOURCE
from .preferences import SchedulePreferences
from ..utils.helpers import ensure_utc, to_local

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 8
PROXIMITY_SCORE_FACTOR = -0.001
PAST_SLOT_PENALTY = -1000.0
MIN_REASON_DELTA = 0.01

@dataclass
class ParticipantPreferences:
    """Preferences of one participant as seen by the scorer"""
    participant_id: str
    display_name: Optional[str] = None
    preferences: Optional[SchedulePreferences] = None

@dataclass
class ScoringResult:
    """Ranked slots plus context about the scoring run"""
    scored_slots: List[ScoredSlot] = field(default_factory=list)
    total_slots: int = 0
    has_preferences: bool = False

def _score_for_participant(slot_start: datetime, participant: ParticipantPreferences, timezone_str: str):
    prefs = participant.preferences
    if prefs is None:
        return 0.0, []

    local_start = to_local(slot_start, prefs.timezone or timezone_str)
    score = 0.0
    reasons: List[ScoreReason] = []

    for rule in prefs.preferred:
        if rule.matches(local_start):
            score += rule.weight
            reasons.append(ScoreReason(
                source=participant.participant_id,
                label=rule.display_label(),
                delta=rule.weight,
                kind=ReasonKind.PREFER
            ))

    for rule in prefs.avoid:
        if rule.matches(local_start):
            delta = -abs(rule.weight)
            score += delta
            reasons.append(ScoreReason(
                source=participant.participant_id,
                label=f"avoid: {rule.display_label()}",
                delta=delta,
                kind=ReasonKind.AVOID
            ))

    return score, reasons

def _proximity(slot_start: datetime, now: datetime):
    hours_from_now = (slot_start - now).total_seconds() / 3600

    if hours_from_now < 0:
        return PAST_SLOT_PENALTY, ScoreReason(
            source=PROXIMITY_SOURCE,
            label="in the past",
            delta=PAST_SLOT_PENALTY,
            kind=ReasonKind.TIEBREAK
        )

    score = PROXIMITY_SCORE_FACTOR * hours_from_now
    if abs(score) < MIN_REASON_DELTA:
        return score, None

    return score, ScoreReason(
        source=PROXIMITY_SOURCE,
        label="sooner",
        delta=round(score, 3),
        kind=ReasonKind.TIEBREAK
    )

def score_slots(
    slots: Sequence[CandidateSlot],
    participant_prefs: Sequence[ParticipantPreferences],
    max_results: int = DEFAULT_MAX_RESULTS,
    timezone_str: str = "UTC",
    now: Optional[datetime] = None
) -> ScoringResult:
    """
    Score and rank candidate slots

    Participants without preferences contribute nothing. Slots already in
    the past are kept but receive a large fixed penalty.

    Args:
        slots: Candidate slots to rank
        participant_prefs: Preferences per participant, in a stable order
        max_results: Number of slots to keep after sorting
        timezone_str: Timezone for rules whose document sets none
        now: Reference time for the tie-break (defaults to the current time)

    Returns:
        ScoringResult with slots sorted by score desc, then start asc
    """
    if max_results < 0:
        raise ValueError("max_results must not be negative")

    now = ensure_utc(now) if now is not None else datetime.now(timezone.utc)
    has_preferences = any(p.preferences is not None for p in participant_prefs)

    scored: List[ScoredSlot] = []
    for slot in slots:
        total = 0.0
        reasons: List[ScoreReason] = []

        for participant in participant_prefs:
            delta, participant_reasons = _score_for_participant(slot.start, participant, timezone_str)
            total += delta
            reasons.extend(participant_reasons)

        proximity_score, proximity_reason = _proximity(slot.start, now)
        total += proximity_score
        if proximity_reason:
            reasons.append(proximity_reason)

        scored.append(ScoredSlot(slot=slot, score=round(total, 3), reasons=reasons))

    scored.sort(key=lambda s: (-s.score, s.slot.start, s.slot.slot_id))

    logger.debug(f"Scored {len(scored)} slots for {len(participant_prefs)} participants "
                 f"(preferences present: {has_preferences})")

    return ScoringResult(
        scored_slots=scored[:max_results],
        total_slots=len(scored),
        has_preferences=has_preferences
    )

def summarize_reasons(
    reasons: Sequence[ScoreReason],
    display_names: Optional[Dict[str, str]] = None,
    max_reasons: int = 3
) -> str:
    """
    One-line explanation of a score, largest contributions first

    Example: "+2 alice: mornings, -1 bob: avoid: lunch"
    """
    if not reasons:
        return ""

    display_names = display_names or {}
    top = sorted(reasons, key=lambda r: abs(r.delta), reverse=True)[:max_reasons]

    parts = []
    for reason in top:
        sign = "+" if reason.delta >= 0 else ""
        delta = f"{reason.delta:g}"
        if reason.source == PROXIMITY_SOURCE:
            parts.append(f"{sign}{delta} {reason.label}")
        else:
            name = display_names.get(reason.source, reason.source)
            parts.append(f"{sign}{delta} {name}: {reason.label}")
    return ", ".join(parts)

__all__ = [
    'DEFAULT_MAX_RESULTS',
    'PROXIMITY_SCORE_FACTOR',
    'PAST_SLOT_PENALTY',
    'ParticipantPreferences',
    'ScoringResult',
    'score_slots',
    'summarize_reasons'
]
