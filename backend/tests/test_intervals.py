import random
from datetime import timedelta

import pytest

from rendezvous.agent.intervals import clip, complement, merge, overlaps, total_minutes, union
from rendezvous.agent.models import Interval

from conftest import at

def iv(start_hour, end_hour):
    return Interval(at(0) + timedelta(hours=start_hour), at(0) + timedelta(hours=end_hour))

def test_interval_rejects_empty_or_reversed_range():
    with pytest.raises(ValueError):
        Interval(at(10), at(10))
    with pytest.raises(ValueError):
        Interval(at(11), at(10))

def test_merge_folds_overlapping_and_touching_intervals():
    merged = merge([iv(13, 14), iv(9, 10), iv(9.5, 11), iv(11, 12)])
    assert merged == [iv(9, 12), iv(13, 14)]

def test_merge_keeps_the_later_end_for_contained_intervals():
    assert merge([iv(9, 17), iv(10, 11)]) == [iv(9, 17)]

def test_merge_of_nothing_is_nothing():
    assert merge([]) == []

def test_union_of_no_busy_lists_means_everyone_free():
    assert union([]) == []
    assert union([[], []]) == []

def test_union_flattens_participants():
    assert union([[iv(9, 10)], [iv(9.5, 10.5), iv(15, 16)], []]) == [iv(9, 10.5), iv(15, 16)]

def test_complement_emits_gaps_before_between_and_after():
    free = complement([iv(10, 11), iv(13, 14)], at(9), at(17))
    assert free == [iv(9, 10), iv(11, 13), iv(14, 17)]

def test_complement_without_busy_time_is_the_whole_window():
    assert complement([], at(9), at(17)) == [iv(9, 17)]

def test_complement_of_zero_width_window_is_empty():
    assert complement([iv(10, 11)], at(9), at(9)) == []

def test_complement_ignores_busy_time_outside_window():
    assert complement([iv(6, 7), iv(18, 19)], at(9), at(17)) == [iv(9, 17)]

def test_clip_drops_touching_and_truncates_partial_overlaps():
    clipped = clip([iv(7, 9), iv(8, 10), iv(16, 18), iv(17, 18)], at(9), at(17))
    assert clipped == [iv(9, 10), iv(16, 17)]

def test_overlaps_is_half_open():
    assert overlaps(iv(9, 10), iv(9.5, 11))
    assert not overlaps(iv(9, 10), iv(10, 11))

def test_total_minutes():
    assert total_minutes([iv(9, 10), iv(11, 11.5)]) == 90

@pytest.mark.parametrize("seed", range(20))
def test_merge_output_is_sorted_disjoint_and_covers_the_input(seed):
    rng = random.Random(seed)
    intervals = []
    for _ in range(rng.randint(0, 12)):
        start = rng.randint(0, 40) * 15
        intervals.append(Interval(at(0) + timedelta(minutes=start),
                                  at(0) + timedelta(minutes=start + rng.randint(1, 8) * 15)))

    merged = merge(intervals)

    for first, second in zip(merged, merged[1:]):
        assert first.end < second.start
    # every quarter hour is covered by the output exactly when it is covered by the input
    for quarter in range(0, 60 * 12, 15):
        point = at(0) + timedelta(minutes=quarter)
        in_input = any(i.start <= point < i.end for i in intervals)
        in_output = any(i.start <= point < i.end for i in merged)
        assert in_input == in_output

@pytest.mark.parametrize("seed", range(20))
def test_free_and_busy_tile_the_window(seed):
    rng = random.Random(seed)
    busy = []
    for _ in range(rng.randint(0, 10)):
        start = rng.randint(0, 48) * 15
        busy.append(Interval(at(0) + timedelta(minutes=start),
                             at(0) + timedelta(minutes=start + rng.randint(1, 12) * 15)))
    window_start, window_end = at(2), at(10)

    merged = merge(clip(busy, window_start, window_end))
    free = complement(merge(busy), window_start, window_end)
    pieces = sorted(merged + free, key=lambda i: i.start)

    assert pieces[0].start == window_start
    assert pieces[-1].end == window_end
    for first, second in zip(pieces, pieces[1:]):
        assert first.end == second.start
