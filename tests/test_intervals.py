# tests/test_intervals.py
import random
from datetime import datetime, timedelta

import pytest

from app.services.intervals import (
    Interval,
    first_overlap,
    intersect_interval_sets,
    merge_intervals,
    to_naive_utc,
    total_duration,
)

BASE = datetime(2025, 3, 3, 0, 0)


def _iv(start_min: int, end_min: int) -> Interval:
    return Interval(BASE + timedelta(minutes=start_min), BASE + timedelta(minutes=end_min))


def _covered_minutes(intervals):
    minutes = set()
    for i in intervals:
        start = int((i.start - BASE).total_seconds() // 60)
        end = int((i.end - BASE).total_seconds() // 60)
        minutes.update(range(start, end))
    return minutes


def test_interval_rejects_empty_or_inverted():
    with pytest.raises(ValueError):
        _iv(10, 10)
    with pytest.raises(ValueError):
        _iv(20, 10)


def test_touching_intervals_do_not_overlap_but_merge():
    a, b = _iv(0, 60), _iv(60, 90)
    assert not a.overlaps(b)
    assert merge_intervals([b, a]) == [_iv(0, 90)]


def test_merge_random_sets_sorted_disjoint_same_coverage():
    rng = random.Random(1234)

    for _ in range(200):
        raw = []
        for _ in range(rng.randint(0, 25)):
            start = rng.randint(0, 24 * 60)
            raw.append(_iv(start, start + rng.randint(1, 180)))

        merged = merge_intervals(raw)

        for prev, nxt in zip(merged, merged[1:]):
            assert prev.start < nxt.start
            # neither overlapping nor touching
            assert prev.end < nxt.start

        assert _covered_minutes(merged) == _covered_minutes(raw)
        assert total_duration(merged) == timedelta(minutes=len(_covered_minutes(raw)))


def test_first_overlap_finds_blocking_interval():
    busy = merge_intervals([_iv(60, 120), _iv(200, 260), _iv(400, 430)])

    assert first_overlap(busy, _iv(120, 200)) is None
    assert first_overlap(busy, _iv(119, 121)) == _iv(60, 120)
    assert first_overlap(busy, _iv(250, 500)) == _iv(200, 260)
    assert first_overlap([], _iv(0, 10)) is None


def test_first_overlap_matches_linear_scan():
    rng = random.Random(99)
    for _ in range(100):
        busy = merge_intervals(
            _iv(s, s + rng.randint(5, 90))
            for s in (rng.randint(0, 1000) for _ in range(rng.randint(0, 15)))
        )
        start = rng.randint(0, 1100)
        candidate = _iv(start, start + rng.randint(1, 120))

        expected = next((b for b in busy if b.overlaps(candidate)), None)
        assert first_overlap(busy, candidate) == expected


def test_intersect_interval_sets():
    a = [_iv(0, 100), _iv(200, 300)]
    b = [_iv(50, 250)]
    assert intersect_interval_sets(a, b) == [_iv(50, 100), _iv(200, 250)]
    assert intersect_interval_sets(a, []) == []


def test_to_naive_utc_converts_aware_datetimes():
    from datetime import timezone

    aware = datetime(2025, 7, 1, 12, 0, tzinfo=timezone(timedelta(hours=-4)))
    assert to_naive_utc(aware) == datetime(2025, 7, 1, 16, 0)
    assert to_naive_utc(datetime(2025, 7, 1, 12, 0)) == datetime(2025, 7, 1, 12, 0)
