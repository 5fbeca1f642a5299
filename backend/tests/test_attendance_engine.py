from datetime import timedelta

import pytest

from rendezvous.agent.attendance_engine import evaluate, group_selections
from rendezvous.agent.models import CandidateSlot, SelectionStatus
from rendezvous.agent.rules import (
    AllRule,
    AnyRule,
    AttendanceGroup,
    GroupAnyRule,
    KOfNRule,
    RequiredPlusKRule,
)

from conftest import at

@pytest.fixture
def slots(make_slot):
    # deliberately out of chronological order
    return [make_slot("slotY", 14), make_slot("slotX", 10), make_slot("slotZ", 9, day=1)]

def test_k_of_n_worked_example(slots, select):
    rule = KOfNRule(participants=["A", "B", "C"], k=2)
    selections = [select("A", "slotX"), select("B", "slotX"), select("C", "slotY")]

    result = evaluate(rule, selections, slots)

    assert result.finalized
    assert result.slot_id == "slotX"
    assert result.participants == ["A", "B"]
    assert result.rule_type == "K_OF_N"

def test_all_worked_example(slots, select):
    rule = AllRule(participants=["A", "B"])

    result = evaluate(rule, [select("A", "slotX")], slots)

    assert not result.finalized
    assert result.slot_id is None
    assert "B" in result.reason
    assert result.reason == "Waiting for all 2 participants (missing: B)"

def test_any_picks_the_earliest_slot_not_the_first_selection(slots, select):
    selections = [select("A", "slotY"), select("B", "slotX")]

    result = evaluate(AnyRule(), selections, slots)

    assert result.finalized
    assert result.slot_id == "slotX"
    assert result.participants == ["B"]

def test_any_without_selections(slots, select):
    result = evaluate(AnyRule(), [select("A")], slots)
    assert not result.finalized
    assert result.reason == "No participants have selected any slot"

def test_all_requires_exact_set(slots, select):
    rule = AllRule(participants=["A", "B"])
    selections = [select("A", "slotX"), select("B", "slotX"), select("C", "slotX")]

    result = evaluate(rule, selections, slots)

    assert not result.finalized
    assert "unexpected: C" in result.reason

def test_all_prefers_the_earliest_matching_slot(slots, select, make_slot):
    rule = AllRule(participants=["A"])
    result = evaluate(rule, [select("A", "slotZ")], slots)
    assert result.finalized
    assert result.slot_id == "slotZ"

def test_k_of_n_ignores_selectors_outside_the_pool(slots, select):
    rule = KOfNRule(participants=["A", "B", "C"], k=2)
    selections = [select("A", "slotX"), select("outsider", "slotX"), select("B", "slotY")]

    result = evaluate(rule, selections, slots)

    assert not result.finalized
    assert result.reason == "Waiting for 2 of 3 participants to agree on one slot (best so far: 1)"

def test_k_of_n_first_chronological_slot_wins(slots, select):
    rule = KOfNRule(participants=["A", "B", "C", "D"], k=2)
    selections = [select("A", "slotY"), select("B", "slotY"), select("C", "slotX"), select("D", "slotX")]

    result = evaluate(rule, selections, slots)

    assert result.slot_id == "slotX"
    assert result.participants == ["C", "D"]

def test_required_plus_k(slots, select):
    rule = RequiredPlusKRule(required=["host"], optional=["a", "b", "c"], quorum=2)

    waiting = evaluate(rule, [select("host", "slotX"), select("a", "slotX")], slots)
    assert not waiting.finalized
    assert "optional so far: 1" in waiting.reason

    done = evaluate(rule, [select("host", "slotX"), select("a", "slotX"), select("c", "slotX")], slots)
    assert done.finalized
    assert done.participants == ["host", "a", "c"]

def test_required_plus_k_names_missing_required(slots, select):
    rule = RequiredPlusKRule(required=["host", "cohost"], optional=["a"], quorum=1)

    result = evaluate(rule, [select("host", "slotX"), select("a", "slotX")], slots)

    assert not result.finalized
    assert "missing required: cohost" in result.reason

def test_required_plus_k_with_zero_quorum(slots, select):
    rule = RequiredPlusKRule(required=["host"], quorum=0)
    assert evaluate(rule, [select("host", "slotY")], slots).slot_id == "slotY"

def test_group_any_first_chronological_slot_then_first_group(slots, select):
    rule = GroupAnyRule(groups=[
        AttendanceGroup(id="sales", members=["s1", "s2"]),
        AttendanceGroup(id="eng", members=["e1"]),
    ])
    selections = [select("s1", "slotY"), select("e1", "slotX"), select("s2", "slotX")]

    result = evaluate(rule, selections, slots)

    assert result.slot_id == "slotX"
    assert result.participants == ["e1", "s2"]
    assert "'sales'" in result.reason

def test_group_any_without_groups(slots, select):
    result = evaluate(GroupAnyRule(), [select("a", "slotX")], slots)
    assert not result.finalized
    assert "no groups" in result.reason

def test_only_selected_rows_count(slots, select):
    selections = [
        select("A", status=SelectionStatus.DECLINED),
        select("B", status=SelectionStatus.EXPIRED),
        select("C"),
    ]
    assert not evaluate(AnyRule(), selections, slots).finalized

def test_selections_on_unknown_slots_never_count(slots, select):
    result = evaluate(AnyRule(), [select("A", "slot-from-an-old-round")], slots)
    assert not result.finalized

def test_participant_in_several_categories_is_allowed(slots, select):
    rule = RequiredPlusKRule(required=["A"], optional=["A", "B"], quorum=1)
    result = evaluate(rule, [select("A", "slotX")], slots)
    assert result.finalized

def test_equal_starts_break_ties_on_slot_id(select):
    start = at(10)
    slots = [
        CandidateSlot(start, start + timedelta(hours=1), slot_id="b"),
        CandidateSlot(start, start + timedelta(minutes=30), slot_id="a"),
    ]
    result = evaluate(AnyRule(), [select("A", "b"), select("B", "a")], slots)
    assert result.slot_id == "a"

def test_evaluation_is_deterministic(slots, select):
    rule = KOfNRule(participants=["A", "B", "C"], k=2)
    selections = [select("A", "slotX"), select("C", "slotY"), select("B", "slotX")]

    assert evaluate(rule, selections, slots) == evaluate(rule, selections, slots)

def test_group_selections_dedupes_in_first_seen_order(select):
    groups = group_selections([select("A", "x"), select("B", "x"), select("A", "x"), select("C", "y"), select("D")])
    assert groups == {"x": ["A", "B"], "y": ["C"]}

def test_empty_pools_are_never_satisfied(slots, select):
    selections = [select("A", "slotX"), select("B", "slotX")]

    all_result = evaluate(AllRule(participants=[]), selections, slots)
    k_result = evaluate(KOfNRule(participants=[], k=1), selections, slots)

    assert not all_result.finalized
    assert all_result.reason == "Waiting for all 0 participants"
    assert not k_result.finalized
    assert k_result.reason == "Waiting for 1 of 0 participants to agree on one slot (best so far: 0)"
