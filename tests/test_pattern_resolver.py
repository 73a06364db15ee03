# tests/test_pattern_resolver.py
from datetime import date, datetime

import pytest

from app.services.intervals import Interval
from app.services.pattern_resolver import (
    PatternSpec,
    day_of_week,
    flatten_windows,
    parse_hhmm,
    resolve_windows,
    validate_patterns,
)

MONDAY_9_TO_5 = PatternSpec(day_of_week=1, start_time="09:00", end_time="17:00")


def test_day_of_week_starts_on_sunday():
    assert day_of_week(date(2025, 3, 2)) == 0  # Sunday
    assert day_of_week(date(2025, 3, 3)) == 1  # Monday
    assert day_of_week(date(2025, 3, 8)) == 6  # Saturday


def test_monday_window_shifts_one_hour_across_dst():
    # Mon 2025-03-03 is EST (UTC-5), Mon 2025-03-10 is EDT (UTC-4)
    windows = resolve_windows(
        [MONDAY_9_TO_5],
        datetime(2025, 3, 2, 12, 0),
        datetime(2025, 3, 12, 0, 0),
        "America/New_York",
    )

    standard = windows[date(2025, 3, 3)]
    daylight = windows[date(2025, 3, 10)]

    assert standard == [Interval(datetime(2025, 3, 3, 14, 0), datetime(2025, 3, 3, 22, 0))]
    assert daylight == [Interval(datetime(2025, 3, 10, 13, 0), datetime(2025, 3, 10, 21, 0))]

    assert (standard[0].start - daylight[0].start.replace(day=3)).total_seconds() == 3600
    assert standard[0].duration == daylight[0].duration


def test_days_without_patterns_are_empty():
    windows = resolve_windows(
        [MONDAY_9_TO_5],
        datetime(2025, 3, 4, 12, 0),
        datetime(2025, 3, 7, 12, 0),
        "America/New_York",
    )
    assert windows
    assert all(v == [] for v in windows.values())
    assert flatten_windows(windows) == []


def test_windows_are_clipped_to_range():
    windows = resolve_windows(
        [MONDAY_9_TO_5],
        datetime(2025, 3, 3, 16, 0),
        datetime(2025, 3, 3, 18, 0),
        "America/New_York",
    )
    assert flatten_windows(windows) == [
        Interval(datetime(2025, 3, 3, 16, 0), datetime(2025, 3, 3, 18, 0))
    ]


def test_pattern_timezone_overrides_default():
    pattern = PatternSpec(day_of_week=1, start_time="09:00", end_time="10:00", timezone="Europe/London")
    windows = resolve_windows(
        [pattern],
        datetime(2025, 1, 6, 0, 0),
        datetime(2025, 1, 7, 0, 0),
        "America/New_York",
    )
    assert flatten_windows(windows) == [
        Interval(datetime(2025, 1, 6, 9, 0), datetime(2025, 1, 6, 10, 0))
    ]


def test_end_of_day_pattern():
    pattern = PatternSpec(day_of_week=1, start_time="22:00", end_time="24:00", timezone="UTC")
    windows = resolve_windows(
        [pattern],
        datetime(2025, 1, 6, 0, 0),
        datetime(2025, 1, 8, 0, 0),
        "UTC",
    )
    assert windows[date(2025, 1, 6)] == [
        Interval(datetime(2025, 1, 6, 22, 0), datetime(2025, 1, 7, 0, 0))
    ]


def test_parse_hhmm():
    assert parse_hhmm("09:30") == (9, 30)
    assert parse_hhmm("17:00:00") == (17, 0)
    for bad in ("9", "25:00", "12:60", "ab:cd"):
        with pytest.raises(ValueError):
            parse_hhmm(bad)


def test_validate_patterns_rejects_overlap_and_bad_input():
    validate_patterns([
        PatternSpec(1, "09:00", "12:00"),
        PatternSpec(1, "12:00", "17:00"),
    ])

    with pytest.raises(ValueError, match="overlapping"):
        validate_patterns([
            PatternSpec(2, "09:00", "12:00"),
            PatternSpec(2, "11:00", "13:00"),
        ])
    with pytest.raises(ValueError):
        validate_patterns([PatternSpec(1, "12:00", "09:00")])
    with pytest.raises(ValueError):
        validate_patterns([PatternSpec(7, "09:00", "10:00")])
    with pytest.raises(ValueError):
        validate_patterns([PatternSpec(1, "09:00", "10:00", timezone="Mars/Base")])
