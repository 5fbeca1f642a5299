"""
Scheduling Engine - Availability and Agreement

Entry point the rest of the system talks to. Aggregates participants' busy
time into common free slots and ranks them by preference, evaluates
attendance rules against recorded selections, and finalizes threads exactly
once through the FinalizationCoordinator.

Participants whose calendar cannot be read are excluded and reported, never
allowed to fail the whole computation.
"""

import logging
from typing import Dict, List, Optional, Sequence, Union
from datetime import datetime, timedelta
from dataclasses import dataclass, field

from .models import (
    AvailabilityStatus,
    CandidateSlot,
    EvaluationResult,
    FinalizeRecord,
    Interval,
    Participant,
    ParticipantAvailability,
    ScoredSlot,
    Selection,
)
from .intervals import clip, complement, total_minutes, union
from .slot_generator import DEFAULT_GRID_STEP, DEFAULT_MAX_RESULTS, generate_slots, time_window_from_prefer
from .preference_scorer import ParticipantPreferences, score_slots
from .rules import DEFAULT_RULE, AttendanceRule
from .attendance_engine import evaluate as evaluate_rule
from .finalization import FinalizationCoordinator, FinalizeListener
from .progress import ThreadProgress, summarize_progress
from ..services.calendar_provider import CalendarUnavailableError
from ..utils.helpers import ensure_utc, measure_execution_time

logger = logging.getLogger(__name__)

# Warning codes attached to availability results
WARNING_ALL_EXCLUDED = "all_excluded"
WARNING_PARTIAL_EXCLUSION = "partial_exclusion"
WARNING_NO_CANDIDATES = "no_candidates"

@dataclass
class AvailabilityWarning:
    code: str
    message: str

@dataclass
class CoverageStats:
    """What the availability computation covered"""
    time_min: datetime
    time_max: datetime
    total_free_minutes: int
    slot_count: int
    excluded_count: int
    linked_count: int

@dataclass
class AvailabilityResult:
    """Ranked slots plus everything needed to explain them"""
    scored_slots: List[ScoredSlot]
    candidate_slots: List[CandidateSlot]
    busy_union: List[Interval]
    per_participant: List[ParticipantAvailability]
    coverage: CoverageStats
    warnings: List[AvailabilityWarning] = field(default_factory=list)
    has_preferences: bool = False
    prefer: Optional[str] = None

    @property
    def warning_codes(self) -> List[str]:
        return [warning.code for warning in self.warnings]

def _as_timedelta(value: Union[timedelta, int, float]) -> timedelta:
    return value if isinstance(value, timedelta) else timedelta(minutes=value)

class SchedulingEngine:
    """
    Availability-and-agreement engine

    Computations are synchronous and stateless; the only shared state lives
    in the thread store.
    """

    def __init__(
        self,
        calendar_provider,
        preferences_store=None,
        store=None,
        listeners: Optional[List[FinalizeListener]] = None,
        default_timezone: str = "UTC",
        grid_step: timedelta = DEFAULT_GRID_STEP,
        meeting_length: timedelta = timedelta(minutes=60),
        max_results: int = DEFAULT_MAX_RESULTS
    ):
        self.calendar_provider = calendar_provider
        self.preferences_store = preferences_store
        self.store = store
        self.coordinator = FinalizationCoordinator(store, listeners) if store is not None else None
        self.default_timezone = default_timezone
        self.grid_step = grid_step
        self.meeting_length = meeting_length
        self.max_results = max_results

    @classmethod
    def from_config(cls, scheduling_config, calendar_provider, preferences_store=None, store=None,
                    listeners: Optional[List[FinalizeListener]] = None) -> 'SchedulingEngine':
        return cls(
            calendar_provider,
            preferences_store=preferences_store,
            store=store,
            listeners=listeners,
            default_timezone=scheduling_config.default_timezone,
            grid_step=timedelta(minutes=scheduling_config.grid_step_minutes),
            meeting_length=timedelta(minutes=scheduling_config.meeting_length_minutes),
            max_results=scheduling_config.max_candidates
        )

    # =========================================================================
    # Availability
    # =========================================================================

    def _resolve_participant(self, participant: Participant, time_min: datetime, time_max: datetime) -> ParticipantAvailability:
        if participant.external:
            logger.info(f"Excluding external participant {participant.participant_id} from availability")
            return ParticipantAvailability(participant, [], AvailabilityStatus.EXCLUDED)

        try:
            busy = self.calendar_provider.get_busy(participant.participant_id, time_min, time_max)
        except CalendarUnavailableError as e:
            logger.warning(f"Calendar unavailable for {participant.participant_id}: {e}")
            return ParticipantAvailability(participant, [], AvailabilityStatus.ERROR, error=str(e))
        except Exception as e:
            logger.warning(f"Calendar fetch failed for {participant.participant_id}: {e}", exc_info=True)
            return ParticipantAvailability(participant, [], AvailabilityStatus.ERROR, error=str(e))

        if busy is None:
            logger.warning(f"No linked calendar for {participant.participant_id}")
            return ParticipantAvailability(participant, [], AvailabilityStatus.UNLINKED)

        return ParticipantAvailability(participant, list(busy), AvailabilityStatus.RESOLVED)

    def _participant_preferences(self, resolved: Sequence[ParticipantAvailability]) -> List[ParticipantPreferences]:
        prefs = []
        for availability in resolved:
            participant = availability.participant
            document = None
            if self.preferences_store is not None:
                try:
                    document = self.preferences_store.get_preferences(participant.participant_id)
                except Exception as e:
                    logger.warning(f"Could not load preferences for {participant.participant_id}: {e}")
            prefs.append(ParticipantPreferences(
                participant_id=participant.participant_id,
                display_name=participant.label,
                preferences=document
            ))
        return prefs

    @measure_execution_time
    def compute_available_slots(
        self,
        participants: Sequence[Participant],
        time_min: datetime,
        time_max: datetime,
        meeting_length: Union[timedelta, int, None] = None,
        prefer: Optional[str] = None,
        grid_step: Union[timedelta, int, None] = None,
        max_results: Optional[int] = None,
        timezone_str: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> AvailabilityResult:
        """
        Common free slots of all participants, ranked by preference

        Args:
            participants: Everyone whose busy time counts
            time_min: Window start (inclusive)
            time_max: Window end (exclusive)
            meeting_length: Duration, as timedelta or minutes
            prefer: Optional time-of-day filter (morning, afternoon, evening, business)
            grid_step: Grid step, as timedelta or minutes
            max_results: Cap on generated and returned slots
            timezone_str: Display timezone for labels and the day filter
            now: Reference time for the proximity tie-break

        Returns:
            AvailabilityResult

        Raises:
            ValueError: if the window is empty or reversed, or parameters are invalid
        """
        time_min = ensure_utc(time_min)
        time_max = ensure_utc(time_max)
        if time_min >= time_max:
            raise ValueError("time_min must be before time_max")

        meeting_length = _as_timedelta(meeting_length) if meeting_length is not None else self.meeting_length
        grid_step = _as_timedelta(grid_step) if grid_step is not None else self.grid_step
        max_results = self.max_results if max_results is None else max_results
        timezone_str = timezone_str or self.default_timezone

        per_participant = [self._resolve_participant(p, time_min, time_max) for p in participants]
        resolved = [availability for availability in per_participant if availability.is_resolved]
        linked_count = len(resolved)
        excluded_count = len(per_participant) - linked_count

        busy_union = union(clip(a.busy, time_min, time_max) for a in resolved)
        free = complement(busy_union, time_min, time_max)

        day_window = time_window_from_prefer(prefer)
        candidates = generate_slots(
            free,
            meeting_length,
            grid_step=grid_step,
            day_window=day_window,
            max_results=max_results,
            timezone_str=timezone_str
        )

        scoring = score_slots(
            candidates,
            self._participant_preferences(resolved),
            max_results=max_results,
            timezone_str=timezone_str,
            now=now
        )

        warnings = []
        if excluded_count and not linked_count:
            warnings.append(AvailabilityWarning(
                WARNING_ALL_EXCLUDED,
                "No participant calendar could be read; slots reflect the whole window"
            ))
        elif excluded_count:
            warnings.append(AvailabilityWarning(
                WARNING_PARTIAL_EXCLUSION,
                f"{excluded_count} participant(s) were excluded from the common free time"
            ))
        if not candidates:
            warnings.append(AvailabilityWarning(
                WARNING_NO_CANDIDATES,
                "No candidate slots fit in the requested window"
            ))

        coverage = CoverageStats(
            time_min=time_min,
            time_max=time_max,
            total_free_minutes=round(total_minutes(free)),
            slot_count=len(candidates),
            excluded_count=excluded_count,
            linked_count=linked_count
        )

        logger.info(f"Computed {len(candidates)} candidate slots for {len(participants)} participants "
                    f"({excluded_count} excluded, {coverage.total_free_minutes} free minutes)")

        return AvailabilityResult(
            scored_slots=scoring.scored_slots,
            candidate_slots=candidates,
            busy_union=busy_union,
            per_participant=per_participant,
            coverage=coverage,
            warnings=warnings,
            has_preferences=scoring.has_preferences,
            prefer=prefer
        )

    # =========================================================================
    # Agreement
    # =========================================================================

    def evaluate(self, rule: AttendanceRule, selections: Sequence[Selection],
                 slots: Sequence[CandidateSlot]) -> EvaluationResult:
        return evaluate_rule(rule, selections, slots)

    def finalize(self, thread_id: str, rule: AttendanceRule, selections: Sequence[Selection],
                 slots: Sequence[CandidateSlot], actor: Optional[str] = None) -> Optional[FinalizeRecord]:
        return self._require_coordinator().finalize(thread_id, rule, selections, slots, actor)

    # =========================================================================
    # Thread helpers
    # =========================================================================

    def _require_store(self):
        if self.store is None:
            raise RuntimeError("SchedulingEngine was created without a thread store")
        return self.store

    def _require_coordinator(self) -> FinalizationCoordinator:
        self._require_store()
        return self.coordinator

    def thread_rule(self, thread_id: str) -> AttendanceRule:
        """Stored rule of a thread, ANY when none was set"""
        return self._require_store().get_rule(thread_id) or DEFAULT_RULE

    def evaluate_thread(self, thread_id: str) -> EvaluationResult:
        store = self._require_store()
        return evaluate_rule(self.thread_rule(thread_id), store.get_selections(thread_id), store.get_slots(thread_id))

    def record_selection(self, thread_id: str, selection: Selection, actor: Optional[str] = None) -> Optional[FinalizeRecord]:
        """
        Store a selection, then re-evaluate and finalize when the rule allows

        Returns:
            The thread's FinalizeRecord when it is (or already was) finalized
        """
        store = self._require_store()
        # an unreadable rule rejects the selection before it is written
        rule = self.thread_rule(thread_id)
        store.upsert_selection(thread_id, selection)
        logger.debug(f"Recorded {selection.status.value} selection of {selection.participant_key} in thread {thread_id}")
        return self._require_coordinator().finalize(
            thread_id, rule, store.get_selections(thread_id), store.get_slots(thread_id), actor
        )

    def finalize_thread(self, thread_id: str, actor: Optional[str] = None,
                        selected_slot_id: Optional[str] = None,
                        reason: Optional[str] = None) -> Optional[FinalizeRecord]:
        """
        Finalize a thread from its stored state

        With selected_slot_id the organizer's choice wins; otherwise the
        stored attendance rule decides.
        """
        store = self._require_store()
        coordinator = self._require_coordinator()
        selections = store.get_selections(thread_id)
        slots = store.get_slots(thread_id)

        if selected_slot_id:
            return coordinator.finalize_manual(thread_id, selected_slot_id, selections, slots, actor, reason)
        return coordinator.finalize(thread_id, self.thread_rule(thread_id), selections, slots, actor)

    def thread_progress(self, thread_id: str, invitees: Optional[Sequence[str]] = None,
                        proposal_version: Optional[int] = None) -> ThreadProgress:
        store = self._require_store()
        selections = store.get_selections(thread_id)
        slots = store.get_slots(thread_id)
        record = store.get_finalize(thread_id)
        evaluation = None if record else evaluate_rule(self.thread_rule(thread_id), selections, slots)
        return summarize_progress(
            thread_id,
            selections,
            total_slots=len(slots),
            finalize_record=record,
            evaluation=evaluation,
            invitees=invitees,
            proposal_version=proposal_version
        )

__all__ = [
    'WARNING_ALL_EXCLUDED',
    'WARNING_PARTIAL_EXCLUSION',
    'WARNING_NO_CANDIDATES',
    'AvailabilityWarning',
    'CoverageStats',
    'AvailabilityResult',
    'SchedulingEngine'
]
