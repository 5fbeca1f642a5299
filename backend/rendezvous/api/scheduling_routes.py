"""
Scheduling Routes - HTTP access to the availability and agreement engine
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

import pytz
from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from ..agent.models import (
    CandidateSlot,
    EvaluationResult,
    FinalizeRecord,
    Participant,
    Selection,
    SelectionStatus,
)
from ..agent.rules import dump_rule, parse_rule
from ..agent.finalization import UnknownSlotError
from ..agent.preference_scorer import summarize_reasons
from ..agent.scheduling_engine import SchedulingEngine
from ..utils.helpers import create_error_response, get_timezone

logger = logging.getLogger(__name__)

scheduling_router = APIRouter(prefix="/api", tags=["Scheduling"])

def get_engine(request: Request) -> SchedulingEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Scheduling engine not initialized")
    return engine

# =============================================================================
# Payloads
# =============================================================================

class ParticipantPayload(BaseModel):
    participant_id: str = Field(..., min_length=1)
    display_name: Optional[str] = None
    external: bool = False

class AvailabilityRequest(BaseModel):
    participants: List[ParticipantPayload]
    time_min: datetime
    time_max: datetime
    meeting_length_minutes: Optional[int] = Field(None, gt=0)
    grid_step_minutes: Optional[int] = Field(None, gt=0)
    prefer: Optional[str] = None
    max_results: Optional[int] = Field(None, ge=0)
    timezone: Optional[str] = None

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            try:
                get_timezone(value)
            except pytz.UnknownTimeZoneError:
                raise ValueError(f"Unknown timezone '{value}'")
        return value

class IntervalPayload(BaseModel):
    start: datetime
    end: datetime

class ReasonPayload(BaseModel):
    source: str
    label: str
    delta: float
    kind: str

class ScoredSlotPayload(BaseModel):
    slot_id: str
    start: datetime
    end: datetime
    label: str
    score: float
    reasons: List[ReasonPayload]
    why: str

class ParticipantStatusPayload(BaseModel):
    participant_id: str
    display_name: Optional[str] = None
    status: str
    busy_count: int
    error: Optional[str] = None

class CoveragePayload(BaseModel):
    time_min: datetime
    time_max: datetime
    total_free_minutes: int
    slot_count: int
    excluded_count: int
    linked_count: int

class WarningPayload(BaseModel):
    code: str
    message: str

class AvailabilityResponse(BaseModel):
    scored_slots: List[ScoredSlotPayload]
    busy_union: List[IntervalPayload]
    per_participant: List[ParticipantStatusPayload]
    coverage: CoveragePayload
    warnings: List[WarningPayload]
    has_preferences: bool
    prefer: Optional[str] = None

class SlotPayload(BaseModel):
    slot_id: Optional[str] = None
    start: datetime
    end: datetime
    label: str = ""

class SlotsRequest(BaseModel):
    slots: List[SlotPayload]

class SlotsResponse(BaseModel):
    thread_id: str
    slots: List[SlotPayload]

class SelectionRequest(BaseModel):
    status: Literal['pending', 'selected', 'declined', 'expired'] = 'selected'
    slot_id: Optional[str] = None
    proposal_version: int = Field(1, ge=1)
    actor: Optional[str] = None

class SelectionPayload(BaseModel):
    participant_key: str
    status: str
    slot_id: Optional[str] = None
    proposal_version: int
    responded_at: Optional[datetime] = None

class EvaluationPayload(BaseModel):
    finalized: bool
    slot_id: Optional[str] = None
    participants: List[str]
    reason: str
    rule_type: str

class FinalizePayload(BaseModel):
    thread_id: str
    final_slot_id: str
    participants: List[str]
    decided_by: Optional[str] = None
    reason: str
    policy: str
    finalized_at: datetime

class SelectionResponse(BaseModel):
    thread_id: str
    selection: SelectionPayload
    evaluation: EvaluationPayload
    finalize: Optional[FinalizePayload] = None

class EvaluationResponse(BaseModel):
    thread_id: str
    evaluation: EvaluationPayload
    finalize: Optional[FinalizePayload] = None

class FinalizeRequest(BaseModel):
    selected_slot_id: Optional[str] = None
    actor: Optional[str] = None
    reason: Optional[str] = None

class ProgressResponse(BaseModel):
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
    final_slot_id: Optional[str] = None
    next_action: str
    reason: str
    notes: List[str]

def _evaluation_payload(result: EvaluationResult) -> EvaluationPayload:
    return EvaluationPayload(
        finalized=result.finalized,
        slot_id=result.slot_id,
        participants=list(result.participants),
        reason=result.reason,
        rule_type=result.rule_type
    )

def _finalize_payload(record: Optional[FinalizeRecord]) -> Optional[FinalizePayload]:
    if record is None:
        return None
    return FinalizePayload(
        thread_id=record.thread_id,
        final_slot_id=record.final_slot_id,
        participants=list(record.participants),
        decided_by=record.decided_by,
        reason=record.reason,
        policy=record.policy.value,
        finalized_at=record.finalized_at
    )

def _slot_payload(slot: CandidateSlot) -> SlotPayload:
    return SlotPayload(slot_id=slot.slot_id, start=slot.start, end=slot.end, label=slot.label)

# =============================================================================
# Availability
# =============================================================================

@scheduling_router.post("/scheduling/availability", response_model=AvailabilityResponse)
async def compute_availability(
    request: AvailabilityRequest,
    engine: SchedulingEngine = Depends(get_engine)
) -> AvailabilityResponse:
    participants = [
        Participant(p.participant_id, display_name=p.display_name, external=p.external)
        for p in request.participants
    ]
    result = engine.compute_available_slots(
        participants,
        request.time_min,
        request.time_max,
        meeting_length=request.meeting_length_minutes,
        prefer=request.prefer,
        grid_step=request.grid_step_minutes,
        max_results=request.max_results,
        timezone_str=request.timezone
    )

    display_names = {p.participant_id: p.label for p in participants}

    return AvailabilityResponse(
        scored_slots=[
            ScoredSlotPayload(
                slot_id=scored.slot.slot_id,
                start=scored.slot.start,
                end=scored.slot.end,
                label=scored.slot.label,
                score=scored.score,
                reasons=[
                    ReasonPayload(source=r.source, label=r.label, delta=r.delta, kind=r.kind.value)
                    for r in scored.reasons
                ],
                why=summarize_reasons(scored.reasons, display_names)
            )
            for scored in result.scored_slots
        ],
        busy_union=[IntervalPayload(start=i.start, end=i.end) for i in result.busy_union],
        per_participant=[
            ParticipantStatusPayload(
                participant_id=a.participant.participant_id,
                display_name=a.participant.display_name,
                status=a.status.value,
                busy_count=len(a.busy),
                error=a.error
            )
            for a in result.per_participant
        ],
        coverage=CoveragePayload(**vars(result.coverage)),
        warnings=[WarningPayload(code=w.code, message=w.message) for w in result.warnings],
        has_preferences=result.has_preferences,
        prefer=result.prefer
    )

# =============================================================================
# Threads
# =============================================================================

@scheduling_router.get("/threads/{thread_id}/rule")
async def get_rule(thread_id: str, engine: SchedulingEngine = Depends(get_engine)) -> Dict[str, Any]:
    return {"thread_id": thread_id, "rule": dump_rule(engine.thread_rule(thread_id))}

@scheduling_router.put("/threads/{thread_id}/rule")
async def put_rule(
    thread_id: str,
    document: Dict[str, Any] = Body(...),
    engine: SchedulingEngine = Depends(get_engine)
) -> Dict[str, Any]:
    rule = parse_rule(document)
    engine.store.save_rule(thread_id, rule)
    logger.info(f"Stored {rule.type} rule for thread {thread_id}")
    return {"thread_id": thread_id, "rule": dump_rule(rule)}

@scheduling_router.put("/threads/{thread_id}/slots", response_model=SlotsResponse)
async def put_slots(
    thread_id: str,
    request: SlotsRequest,
    engine: SchedulingEngine = Depends(get_engine)
) -> SlotsResponse:
    slots = [
        CandidateSlot(start=s.start, end=s.end, label=s.label, slot_id=s.slot_id or "")
        for s in request.slots
    ]
    if len({slot.slot_id for slot in slots}) != len(slots):
        raise ValueError("Slot ids must be unique within a thread")

    engine.store.save_slots(thread_id, slots)
    return SlotsResponse(thread_id=thread_id, slots=[_slot_payload(s) for s in engine.store.get_slots(thread_id)])

@scheduling_router.put("/threads/{thread_id}/selections/{participant_key}", response_model=SelectionResponse)
async def put_selection(
    thread_id: str,
    participant_key: str,
    request: SelectionRequest,
    engine: SchedulingEngine = Depends(get_engine)
) -> SelectionResponse:
    status = SelectionStatus(request.status)
    if status is SelectionStatus.SELECTED:
        known = {slot.slot_id for slot in engine.store.get_slots(thread_id)}
        if request.slot_id not in known:
            raise UnknownSlotError(f"Slot {request.slot_id} is not a candidate of thread {thread_id}")

    selection = Selection(
        participant_key=participant_key,
        status=status,
        slot_id=request.slot_id,
        proposal_version=request.proposal_version,
        responded_at=None if status is SelectionStatus.PENDING else datetime.now(timezone.utc)
    )
    record = engine.record_selection(thread_id, selection, actor=request.actor)

    return SelectionResponse(
        thread_id=thread_id,
        selection=SelectionPayload(
            participant_key=selection.participant_key,
            status=selection.status.value,
            slot_id=selection.slot_id,
            proposal_version=selection.proposal_version,
            responded_at=selection.responded_at
        ),
        evaluation=_evaluation_payload(engine.evaluate_thread(thread_id)),
        finalize=_finalize_payload(record)
    )

@scheduling_router.get("/threads/{thread_id}/evaluation", response_model=EvaluationResponse)
async def get_evaluation(thread_id: str, engine: SchedulingEngine = Depends(get_engine)) -> EvaluationResponse:
    return EvaluationResponse(
        thread_id=thread_id,
        evaluation=_evaluation_payload(engine.evaluate_thread(thread_id)),
        finalize=_finalize_payload(engine.store.get_finalize(thread_id))
    )

@scheduling_router.post("/threads/{thread_id}/finalize", response_model=FinalizePayload)
async def finalize_thread(
    thread_id: str,
    request: Optional[FinalizeRequest] = None,
    engine: SchedulingEngine = Depends(get_engine)
):
    request = request or FinalizeRequest()
    record = engine.finalize_thread(
        thread_id,
        actor=request.actor,
        selected_slot_id=request.selected_slot_id,
        reason=request.reason
    )

    if record is None:
        evaluation = engine.evaluate_thread(thread_id)
        return JSONResponse(
            status_code=409,
            content=create_error_response(
                evaluation.reason,
                error_code="FINALIZE_NOT_READY",
                details={"rule_type": evaluation.rule_type}
            )
        )

    return _finalize_payload(record)

@scheduling_router.get("/threads/{thread_id}/progress", response_model=ProgressResponse)
async def get_progress(
    thread_id: str,
    invitees: Optional[List[str]] = Query(None, description="Invited participant keys"),
    proposal_version: Optional[int] = Query(None, ge=1),
    engine: SchedulingEngine = Depends(get_engine)
) -> ProgressResponse:
    progress = engine.thread_progress(thread_id, invitees=invitees, proposal_version=proposal_version)
    return ProgressResponse(
        thread_id=progress.thread_id,
        total=progress.total,
        pending=progress.pending,
        selected=progress.selected,
        declined=progress.declined,
        expired=progress.expired,
        stale=progress.stale,
        total_slots=progress.total_slots,
        proposal_version=progress.proposal_version,
        finalized=progress.finalized,
        final_slot_id=progress.final_slot_id,
        next_action=progress.next_action.value,
        reason=progress.reason,
        notes=progress.notes
    )

__all__ = [
    'scheduling_router',
    'get_engine'
]
