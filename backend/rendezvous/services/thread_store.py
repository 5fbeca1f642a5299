"""
Thread Store - Rules, Slots, Selections and Finalize Records

Persistence for scheduling threads. Two implementations share one interface:

- InMemoryThreadStore: dicts behind a lock, for tests and single-process use
- SqlThreadStore: SQLAlchemy tables, for anything that must survive restarts

Finalize records are write-once. insert_finalize_if_absent() is the only
way to create one and reports whether this call created it, so concurrent
finalize attempts agree on a single winner.
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Tuple
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text, create_engine, select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from ..agent.models import (
    CandidateSlot,
    FinalizePolicy,
    FinalizeRecord,
    Selection,
    SelectionStatus,
)
from ..agent.rules import AttendanceRule, dump_rule, parse_rule
from ..utils.config import StorageConfig
from ..utils.helpers import ensure_utc

logger = logging.getLogger(__name__)

class ThreadStore(ABC):
    """Storage interface the scheduling engine works against"""

    @abstractmethod
    def get_rule(self, thread_id: str) -> Optional[AttendanceRule]:
        """Stored attendance rule, or None when the thread has none"""

    @abstractmethod
    def save_rule(self, thread_id: str, rule: AttendanceRule):
        """Store a rule as a versioned document, replacing any previous one"""

    @abstractmethod
    def get_slots(self, thread_id: str) -> List[CandidateSlot]:
        """Candidate slots of a thread ordered by start"""

    @abstractmethod
    def save_slots(self, thread_id: str, slots: Sequence[CandidateSlot]):
        """Replace the candidate slots of a thread"""

    @abstractmethod
    def get_selections(self, thread_id: str) -> List[Selection]:
        """Current selection rows of a thread"""

    @abstractmethod
    def upsert_selection(self, thread_id: str, selection: Selection):
        """Write a participant's selection, overwriting their previous row"""

    @abstractmethod
    def get_finalize(self, thread_id: str) -> Optional[FinalizeRecord]:
        """Finalize record of a thread, if any"""

    @abstractmethod
    def insert_finalize_if_absent(self, record: FinalizeRecord) -> Tuple[FinalizeRecord, bool]:
        """
        Create the finalize record unless one exists

        Returns:
            (stored record, created) where stored is the winner's record
        """

    @abstractmethod
    def confirm_participants(self, thread_id: str, user_ids: Sequence[str]):
        """Mark internal users as confirmed participants of a thread"""

    @abstractmethod
    def get_confirmed_participants(self, thread_id: str) -> List[str]:
        """User ids confirmed for a thread"""

# =============================================================================
# In-memory store
# =============================================================================

class InMemoryThreadStore(ThreadStore):
    """Thread store keeping everything in process memory"""

    def __init__(self):
        self._lock = threading.Lock()
        self._rules: Dict[str, dict] = {}
        self._slots: Dict[str, List[CandidateSlot]] = {}
        self._selections: Dict[str, Dict[str, Selection]] = {}
        self._finalized: Dict[str, FinalizeRecord] = {}
        self._confirmed: Dict[str, List[str]] = {}

    def get_rule(self, thread_id: str) -> Optional[AttendanceRule]:
        with self._lock:
            document = self._rules.get(thread_id)
        return parse_rule(document) if document is not None else None

    def save_rule(self, thread_id: str, rule: AttendanceRule):
        document = dump_rule(rule)
        with self._lock:
            self._rules[thread_id] = document

    def get_slots(self, thread_id: str) -> List[CandidateSlot]:
        with self._lock:
            slots = list(self._slots.get(thread_id, []))
        return sorted(slots, key=lambda slot: slot.sort_key)

    def save_slots(self, thread_id: str, slots: Sequence[CandidateSlot]):
        with self._lock:
            self._slots[thread_id] = list(slots)

    def get_selections(self, thread_id: str) -> List[Selection]:
        with self._lock:
            return list(self._selections.get(thread_id, {}).values())

    def upsert_selection(self, thread_id: str, selection: Selection):
        with self._lock:
            self._selections.setdefault(thread_id, {})[selection.participant_key] = selection

    def get_finalize(self, thread_id: str) -> Optional[FinalizeRecord]:
        with self._lock:
            return self._finalized.get(thread_id)

    def insert_finalize_if_absent(self, record: FinalizeRecord) -> Tuple[FinalizeRecord, bool]:
        with self._lock:
            existing = self._finalized.get(record.thread_id)
            if existing is not None:
                return existing, False
            self._finalized[record.thread_id] = record
            return record, True

    def confirm_participants(self, thread_id: str, user_ids: Sequence[str]):
        with self._lock:
            confirmed = self._confirmed.setdefault(thread_id, [])
            for user_id in user_ids:
                if user_id not in confirmed:
                    confirmed.append(user_id)

    def get_confirmed_participants(self, thread_id: str) -> List[str]:
        with self._lock:
            return list(self._confirmed.get(thread_id, []))

# =============================================================================
# SQL store
# =============================================================================

Base = declarative_base()

class AttendanceRuleRow(Base):
    __tablename__ = "thread_attendance_rules"

    thread_id = Column(String(64), primary_key=True)
    version = Column(Integer, nullable=False)
    rule_json = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

class SlotRow(Base):
    __tablename__ = "scheduling_slots"

    thread_id = Column(String(64), primary_key=True)
    slot_id = Column(String(128), primary_key=True)
    start_at = Column(DateTime(timezone=True), nullable=False)
    end_at = Column(DateTime(timezone=True), nullable=False)
    label = Column(String(128), nullable=False, default="")

class SelectionRow(Base):
    __tablename__ = "thread_selections"

    thread_id = Column(String(64), primary_key=True)
    participant_key = Column(String(255), primary_key=True)
    status = Column(String(16), nullable=False)  # pending | selected | declined | expired
    slot_id = Column(String(128), nullable=True)
    proposal_version = Column(Integer, nullable=False, default=1)
    responded_at = Column(DateTime(timezone=True), nullable=True)

class FinalizeRow(Base):
    __tablename__ = "thread_finalize"

    thread_id = Column(String(64), primary_key=True)
    final_slot_id = Column(String(128), nullable=False)
    final_participants_json = Column(Text, nullable=False)
    finalized_by = Column(String(255), nullable=True)
    reason = Column(Text, nullable=False)
    finalize_policy = Column(String(32), nullable=False)
    finalized_at = Column(DateTime(timezone=True), nullable=False)

class ThreadParticipantRow(Base):
    __tablename__ = "thread_participants"

    thread_id = Column(String(64), primary_key=True)
    user_id = Column(String(255), primary_key=True)
    role = Column(String(32), nullable=False, default="participant")
    confirmed_at = Column(DateTime(timezone=True), nullable=False)

def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything is stored in UTC
    return ensure_utc(value) if value is not None else None

def _to_record(row: FinalizeRow) -> FinalizeRecord:
    return FinalizeRecord(
        thread_id=row.thread_id,
        final_slot_id=row.final_slot_id,
        participants=json.loads(row.final_participants_json),
        decided_by=row.finalized_by,
        reason=row.reason,
        policy=FinalizePolicy(row.finalize_policy),
        finalized_at=_aware(row.finalized_at)
    )

class SqlThreadStore(ThreadStore):
    """Thread store backed by a SQL database through SQLAlchemy"""

    def __init__(self, database_url: str, echo: bool = False):
        engine_options = {'echo': echo}
        if database_url.startswith('sqlite'):
            engine_options['connect_args'] = {'check_same_thread': False}
            if database_url in ('sqlite://', 'sqlite:///:memory:'):
                engine_options['poolclass'] = StaticPool

        self.engine = create_engine(database_url, **engine_options)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        Base.metadata.create_all(self.engine)
        logger.info(f"SQL thread store ready ({self.engine.url.get_backend_name()})")

    def get_rule(self, thread_id: str) -> Optional[AttendanceRule]:
        with self._session_factory() as session:
            row = session.get(AttendanceRuleRow, thread_id)
            if row is None:
                return None
            return parse_rule(row.rule_json)

    def save_rule(self, thread_id: str, rule: AttendanceRule):
        document = dump_rule(rule)
        with self._session_factory() as session:
            session.merge(AttendanceRuleRow(
                thread_id=thread_id,
                version=document['version'],
                rule_json=json.dumps(document),
                updated_at=datetime.now(timezone.utc)
            ))
            session.commit()

    def get_slots(self, thread_id: str) -> List[CandidateSlot]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(SlotRow).where(SlotRow.thread_id == thread_id).order_by(SlotRow.start_at, SlotRow.slot_id)
            ).all()
            return [
                CandidateSlot(start=_aware(row.start_at), end=_aware(row.end_at), label=row.label, slot_id=row.slot_id)
                for row in rows
            ]

    def save_slots(self, thread_id: str, slots: Sequence[CandidateSlot]):
        with self._session_factory() as session:
            session.execute(delete(SlotRow).where(SlotRow.thread_id == thread_id))
            for slot in slots:
                session.add(SlotRow(
                    thread_id=thread_id,
                    slot_id=slot.slot_id,
                    start_at=slot.start,
                    end_at=slot.end,
                    label=slot.label
                ))
            session.commit()

    def get_selections(self, thread_id: str) -> List[Selection]:
        with self._session_factory() as session:
            rows = session.scalars(select(SelectionRow).where(SelectionRow.thread_id == thread_id)).all()
            return [
                Selection(
                    participant_key=row.participant_key,
                    status=SelectionStatus(row.status),
                    slot_id=row.slot_id,
                    proposal_version=row.proposal_version,
                    responded_at=_aware(row.responded_at)
                )
                for row in rows
            ]

    def upsert_selection(self, thread_id: str, selection: Selection):
        with self._session_factory() as session:
            session.merge(SelectionRow(
                thread_id=thread_id,
                participant_key=selection.participant_key,
                status=selection.status.value,
                slot_id=selection.slot_id,
                proposal_version=selection.proposal_version,
                responded_at=selection.responded_at
            ))
            session.commit()

    def get_finalize(self, thread_id: str) -> Optional[FinalizeRecord]:
        with self._session_factory() as session:
            row = session.get(FinalizeRow, thread_id)
            return _to_record(row) if row is not None else None

    def insert_finalize_if_absent(self, record: FinalizeRecord) -> Tuple[FinalizeRecord, bool]:
        with self._session_factory() as session:
            session.add(FinalizeRow(
                thread_id=record.thread_id,
                final_slot_id=record.final_slot_id,
                final_participants_json=json.dumps(record.participants),
                finalized_by=record.decided_by,
                reason=record.reason,
                finalize_policy=record.policy.value,
                finalized_at=record.finalized_at
            ))
            try:
                session.commit()
                return record, True
            except IntegrityError:
                session.rollback()
                logger.debug(f"Finalize record for thread {record.thread_id} already exists")

        winner = self.get_finalize(record.thread_id)
        return winner, False

    def confirm_participants(self, thread_id: str, user_ids: Sequence[str]):
        now = datetime.now(timezone.utc)
        with self._session_factory() as session:
            for user_id in user_ids:
                if session.get(ThreadParticipantRow, (thread_id, user_id)) is None:
                    session.add(ThreadParticipantRow(thread_id=thread_id, user_id=user_id, confirmed_at=now))
            session.commit()

    def get_confirmed_participants(self, thread_id: str) -> List[str]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(ThreadParticipantRow)
                .where(ThreadParticipantRow.thread_id == thread_id)
                .order_by(ThreadParticipantRow.confirmed_at, ThreadParticipantRow.user_id)
            ).all()
            return [row.user_id for row in rows]

def create_thread_store(storage: StorageConfig) -> ThreadStore:
    """Build the thread store selected by configuration"""
    if storage.backend == 'sql':
        return SqlThreadStore(storage.database_url, echo=storage.echo_sql)
    return InMemoryThreadStore()

__all__ = [
    'ThreadStore',
    'InMemoryThreadStore',
    'SqlThreadStore',
    'create_thread_store'
]
