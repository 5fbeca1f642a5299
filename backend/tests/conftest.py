from datetime import datetime, timedelta, timezone

import pytest

from rendezvous.agent.models import CandidateSlot, Selection, SelectionStatus

# Monday
BASE_DAY = datetime(2025, 1, 20, tzinfo=timezone.utc)

def at(hour, minute=0, day=0):
    return BASE_DAY + timedelta(days=day, hours=hour, minutes=minute)

@pytest.fixture
def clock():
    return at

@pytest.fixture
def make_slot():
    def _make(slot_id, hour, day=0, length=60):
        start = at(hour, day=day)
        return CandidateSlot(start=start, end=start + timedelta(minutes=length), slot_id=slot_id)
    return _make

@pytest.fixture
def select():
    def _select(participant_key, slot_id=None, status=None, proposal_version=1):
        if status is None:
            status = SelectionStatus.SELECTED if slot_id else SelectionStatus.PENDING
        return Selection(participant_key, status, slot_id, proposal_version=proposal_version)
    return _select
