from rendezvous.agent.models import EvaluationResult, FinalizePolicy, FinalizeRecord, SelectionStatus
from rendezvous.agent.progress import NextAction, summarize_progress

from conftest import at

SATISFIED = EvaluationResult(finalized=True, reason="ANY rule satisfied: 1 participant(s) selected",
                             rule_type="ANY", slot_id="s1", participants=["a"])
WAITING = EvaluationResult(finalized=False, reason="Waiting for all 2 participants (missing: b)", rule_type="ALL")

def test_counts_by_status(select):
    selections = [
        select("a", "s1"),
        select("b", status=SelectionStatus.DECLINED),
        select("c", status=SelectionStatus.EXPIRED),
        select("d"),
    ]

    progress = summarize_progress("t1", selections, total_slots=3, invitees=["a", "b", "c", "d", "e"])

    assert (progress.total, progress.pending, progress.selected, progress.declined, progress.expired) == (5, 2, 1, 1, 1)
    assert progress.next_action is NextAction.REMIND
    assert progress.reason == "2 participant(s) have not responded yet"

def test_finalized_thread_needs_nothing(select):
    record = FinalizeRecord("t1", "s1", ["a"], None, "done", FinalizePolicy.EARLIEST_VALID, at(8))

    progress = summarize_progress("t1", [select("a", "s1")], total_slots=2, finalize_record=record)

    assert progress.next_action is NextAction.NONE
    assert progress.finalized
    assert progress.final_slot_id == "s1"

def test_satisfied_rule_recommends_finalize(select):
    progress = summarize_progress("t1", [select("a", "s1"), select("b")], total_slots=2, evaluation=SATISFIED)
    assert progress.next_action is NextAction.FINALIZE
    assert progress.reason == SATISFIED.reason

def test_everyone_answered_but_rule_unsatisfied_asks_for_more_slots(select):
    progress = summarize_progress("t1", [select("a", "s1"), select("b", "s2")], total_slots=2, evaluation=WAITING)
    assert progress.next_action is NextAction.PROPOSE_MORE
    assert WAITING.reason in progress.reason

def test_answers_from_older_rounds_are_stale(select):
    selections = [select("a", "s1", proposal_version=1), select("b", "s2", proposal_version=2)]

    progress = summarize_progress("t1", selections, total_slots=2, evaluation=WAITING)

    assert progress.proposal_version == 2
    assert progress.stale == 1
    assert progress.next_action is NextAction.REMIND
    assert any("older proposal" in note for note in progress.notes)

def test_no_slots_or_all_declined_recommends_proposing(select):
    assert summarize_progress("t1", [select("a")], total_slots=0).next_action is NextAction.PROPOSE_MORE

    declined = [select("a", status=SelectionStatus.DECLINED), select("b", status=SelectionStatus.EXPIRED)]
    assert summarize_progress("t1", declined, total_slots=2).next_action is NextAction.PROPOSE_MORE

def test_empty_thread_waits():
    progress = summarize_progress("t1", [], total_slots=2)
    assert progress.next_action is NextAction.WAIT
    assert progress.total == 0

def test_nobody_responded_note(select):
    progress = summarize_progress("t1", [select("a"), select("b")], total_slots=1)
    assert "Nobody has responded yet" in progress.notes
