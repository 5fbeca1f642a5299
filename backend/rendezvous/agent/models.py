"""
Scheduling Domain Models

Value types shared by the availability engine, the attendance rule
evaluator and the collaborator services: busy intervals, participants and
their resolved availability, candidate and scored slots, selections and the
write-once finalize record.
"""

from typing import List, Optional
from datetime import datetime
from dataclasses import dataclass, field
from enum import Enum

from ..utils.helpers import ensure_utc, to_iso

class AvailabilityStatus(Enum):
    """Outcome of fetching one participant's busy time"""
    RESOLVED = "resolved"
    UNLINKED = "unlinked"
    ERROR = "error"
    EXCLUDED = "excluded"

class SelectionStatus(Enum):
    """Response state of one participant in a proposal round"""
    PENDING = "pending"
    SELECTED = "selected"
    DECLINED = "declined"
    EXPIRED = "expired"

class FinalizePolicy(Enum):
    """How the final slot of a thread was decided"""
    EARLIEST_VALID = "EARLIEST_VALID"
    HOST_CHOICE = "HOST_CHOICE"

class ReasonKind(Enum):
    """Category of a score reason"""
    PREFER = "prefer"
    AVOID = "avoid"
    TIEBREAK = "tiebreak"

# Reason source used for the recency tie-break
PROXIMITY_SOURCE = "proximity"

@dataclass(frozen=True)
class Interval:
    """Half-open time range [start, end)"""
    start: datetime
    end: datetime

    def __post_init__(self):
        object.__setattr__(self, 'start', ensure_utc(self.start))
        object.__setattr__(self, 'end', ensure_utc(self.end))
        if not self.start < self.end:
            raise ValueError(f"Interval start must precede end: {self.start} >= {self.end}")

    @property
    def duration_minutes(self) -> float:
        return (self.end - self.start).total_seconds() / 60

class BusyInterval(Interval):
    """Busy time reported by the calendar collaborator"""

@dataclass(frozen=True)
class Participant:
    """Someone whose availability is aggregated"""
    participant_id: str
    display_name: Optional[str] = None
    external: bool = False

    @property
    def label(self) -> str:
        return self.display_name or self.participant_id

@dataclass
class ParticipantAvailability:
    """Busy data resolved for one participant over the queried window"""
    participant: Participant
    busy: List[BusyInterval]
    status: AvailabilityStatus
    error: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        return self.status is AvailabilityStatus.RESOLVED

@dataclass(frozen=True)
class CandidateSlot:
    """A fixed-length meeting window that fits inside common free time"""
    start: datetime
    end: datetime
    label: str = ""
    slot_id: str = ""

    def __post_init__(self):
        object.__setattr__(self, 'start', ensure_utc(self.start))
        object.__setattr__(self, 'end', ensure_utc(self.end))
        if not self.start < self.end:
            raise ValueError(f"Slot start must precede end: {self.start} >= {self.end}")
        if not self.slot_id:
            object.__setattr__(self, 'slot_id', f"{to_iso(self.start)}/{to_iso(self.end)}")

    @property
    def sort_key(self):
        return (self.start, self.slot_id)

@dataclass(frozen=True)
class ScoreReason:
    """One explainable contribution to a slot's score"""
    source: str
    label: str
    delta: float
    kind: ReasonKind

@dataclass
class ScoredSlot:
    """Candidate slot with its total score and the reasons behind it"""
    slot: CandidateSlot
    score: float
    reasons: List[ScoreReason] = field(default_factory=list)

    @property
    def start(self) -> datetime:
        return self.slot.start

@dataclass(frozen=True)
class Selection:
    """One participant's response in the current proposal round"""
    participant_key: str
    status: SelectionStatus = SelectionStatus.PENDING
    slot_id: Optional[str] = None
    proposal_version: int = 1
    responded_at: Optional[datetime] = None

    def __post_init__(self):
        if self.status is SelectionStatus.SELECTED and not self.slot_id:
            raise ValueError(f"Selection for {self.participant_key} is 'selected' without a slot")
        if self.status is not SelectionStatus.SELECTED and self.slot_id:
            raise ValueError(f"Selection for {self.participant_key} carries a slot but is '{self.status.value}'")

    @property
    def counts(self) -> bool:
        return self.status is SelectionStatus.SELECTED and bool(self.slot_id)

@dataclass(frozen=True)
class EvaluationResult:
    """Decision of the attendance rule engine"""
    finalized: bool
    reason: str
    rule_type: str
    slot_id: Optional[str] = None
    participants: List[str] = field(default_factory=list)

@dataclass(frozen=True)
class FinalizeRecord:
    """The single, terminal decision for a scheduling thread"""
    thread_id: str
    final_slot_id: str
    participants: List[str]
    decided_by: Optional[str]
    reason: str
    policy: FinalizePolicy
    finalized_at: datetime

__all__ = [
    'AvailabilityStatus',
    'SelectionStatus',
    'FinalizePolicy',
    'ReasonKind',
    'PROXIMITY_SOURCE',
    'Interval',
    'BusyInterval',
    'Participant',
    'ParticipantAvailability',
    'CandidateSlot',
    'ScoreReason',
    'ScoredSlot',
    'Selection',
    'EvaluationResult',
    'FinalizeRecord'
]
