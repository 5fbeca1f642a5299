from datetime import timedelta

import pytest

from rendezvous.agent.intervals import complement, merge
from rendezvous.agent.models import Interval
from rendezvous.agent.slot_generator import (
    DayTimeWindow,
    generate_slots,
    time_window_from_prefer,
)

from conftest import at

HOUR = timedelta(hours=1)

def test_single_busy_hour_leaves_one_slot():
    busy = merge([Interval(at(9), at(10))])
    free = complement(busy, at(9), at(11))

    slots = generate_slots(free, HOUR, grid_step=timedelta(minutes=30))

    assert [(s.start, s.end) for s in slots] == [(at(10), at(11))]

def test_slots_step_on_the_grid_and_have_exact_length():
    slots = generate_slots([Interval(at(9), at(11))], HOUR, max_results=10)

    assert [s.start for s in slots] == [at(9), at(9, 30), at(10)]
    assert all(s.end - s.start == HOUR for s in slots)

def test_day_window_skips_but_keeps_stepping():
    slots = generate_slots([Interval(at(8), at(13))], HOUR, day_window=DayTimeWindow(9, 12), max_results=20)

    assert [s.start for s in slots] == [at(9), at(9, 30), at(10), at(10, 30), at(11), at(11, 30)]

def test_day_window_uses_the_display_timezone():
    # 00:00-03:00 UTC is 09:00-12:00 in Tokyo
    slots = generate_slots(
        [Interval(at(0), at(6))],
        HOUR,
        day_window=DayTimeWindow(9, 12),
        max_results=20,
        timezone_str="Asia/Tokyo"
    )
    assert slots[0].start == at(0)
    assert slots[-1].start == at(2, 30)

def test_cap_keeps_the_earliest_candidates_across_intervals():
    free = [Interval(at(14), at(17)), Interval(at(9), at(11))]

    slots = generate_slots(free, HOUR, max_results=4)

    assert [s.start for s in slots] == [at(9), at(9, 30), at(10), at(14)]

def test_meeting_longer_than_any_free_interval_is_empty_not_an_error():
    assert generate_slots([Interval(at(9), at(9, 45))], HOUR) == []

def test_no_slot_overlaps_busy_time():
    busy = merge([Interval(at(10), at(10, 45)), Interval(at(13), at(14))])
    free = complement(busy, at(9), at(17))

    slots = generate_slots(free, timedelta(minutes=45), grid_step=timedelta(minutes=15), max_results=100)

    assert slots
    for slot in slots:
        for block in busy:
            assert slot.end <= block.start or slot.start >= block.end

def test_labels_are_rendered_in_the_display_timezone():
    slots = generate_slots([Interval(at(10), at(11))], HOUR, timezone_str="Asia/Tokyo")
    assert slots[0].label == "Mon 1/20 19:00-20:00"

def test_slot_ids_are_deterministic():
    first = generate_slots([Interval(at(10), at(11))], HOUR)
    second = generate_slots([Interval(at(10), at(11))], HOUR)
    assert first[0].slot_id == second[0].slot_id == "2025-01-20T10:00:00Z/2025-01-20T11:00:00Z"

@pytest.mark.parametrize("kwargs", [
    {"meeting_length": timedelta(0)},
    {"meeting_length": HOUR, "grid_step": timedelta(0)},
    {"meeting_length": HOUR, "max_results": -1},
])
def test_invalid_parameters_raise(kwargs):
    with pytest.raises(ValueError):
        generate_slots([Interval(at(9), at(17))], **kwargs)

def test_day_window_validates_hours():
    with pytest.raises(ValueError):
        DayTimeWindow(12, 9)
    with pytest.raises(ValueError):
        DayTimeWindow(0, 25)

def test_prefer_presets():
    assert time_window_from_prefer("morning") == DayTimeWindow(9, 12)
    assert time_window_from_prefer("Business") == DayTimeWindow(9, 18)
    assert time_window_from_prefer(None) is None

def test_unknown_prefer_means_no_filter(caplog):
    assert time_window_from_prefer("brunch") is None
    assert "brunch" in caplog.text
