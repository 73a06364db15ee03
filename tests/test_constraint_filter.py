# tests/test_constraint_filter.py
from datetime import datetime, timedelta

from app.models.event import MeetingType
from app.services.constraint_filter import (
    EventPolicy,
    RejectReason,
    check_candidate,
    constraint_summary,
)
from app.services.intervals import Interval, merge_intervals

NOW = datetime(2025, 6, 2, 12, 0)
DAY = datetime(2025, 6, 20)


def _at(hhmm: str) -> datetime:
    hour, minute = (int(p) for p in hhmm.split(":"))
    return DAY.replace(hour=hour, minute=minute)


def _iv(start: str, end: str) -> Interval:
    return Interval(_at(start), _at(end))


def _policy(**kwargs) -> EventPolicy:
    defaults = {"min_notice_hours": 24, "booking_window_days": 60}
    defaults.update(kwargs)
    return EventPolicy(**defaults)


def test_buffer_after_boundary_admits_exact_touch():
    busy = merge_intervals([_iv("14:00", "14:30")])
    policy = _policy(buffer_after=10)

    # buffered candidate ends exactly at 14:00: half-open, so admitted
    assert check_candidate(_iv("13:30", "13:50"), busy, policy, NOW).admitted

    result = check_candidate(_iv("13:31", "13:51"), busy, policy, NOW)
    assert not result.admitted
    assert result.reason == RejectReason.CONFLICT
    assert result.conflict == _iv("14:00", "14:30")


def test_buffer_before_boundary():
    busy = merge_intervals([_iv("10:00", "11:00")])
    policy = _policy(buffer_before=15)

    assert check_candidate(_iv("11:15", "11:45"), busy, policy, NOW).admitted
    assert not check_candidate(_iv("11:14", "11:44"), busy, policy, NOW).admitted
    assert not check_candidate(_iv("10:45", "11:15"), busy, policy, NOW).admitted


def test_rejects_iff_buffered_candidate_overlaps_busy():
    busy = merge_intervals([_iv("09:00", "09:30"), _iv("12:00", "13:00"), _iv("16:00", "16:05")])
    policy = _policy(buffer_before=20, buffer_after=5)

    start = _at("07:00")
    while start < _at("18:00"):
        candidate = Interval(start, start + timedelta(minutes=30))
        buffered = candidate.expand(timedelta(minutes=20), timedelta(minutes=5))
        expected_conflict = any(b.overlaps(buffered) for b in busy)

        result = check_candidate(candidate, busy, policy, NOW)
        assert result.admitted is not expected_conflict, candidate
        start += timedelta(minutes=1)


def test_notice_and_window_scenario():
    policy = _policy()
    busy = []

    def at(delta: timedelta):
        return Interval(NOW + delta, NOW + delta + timedelta(minutes=30))

    too_soon = check_candidate(at(timedelta(hours=23)), busy, policy, NOW)
    assert too_soon.reason == RejectReason.TOO_SOON
    assert "24 hours notice" in too_soon.message

    assert check_candidate(at(timedelta(hours=25)), busy, policy, NOW).admitted

    too_far = check_candidate(at(timedelta(days=61)), busy, policy, NOW)
    assert too_far.reason == RejectReason.OUTSIDE_WINDOW


def test_notice_checked_before_conflict():
    candidate = Interval(NOW + timedelta(hours=1), NOW + timedelta(hours=2))
    busy = [candidate]
    result = check_candidate(candidate, busy, _policy(), NOW)
    assert result.reason == RejectReason.TOO_SOON


def test_host_side_check_skips_booking_policy():
    candidate = Interval(NOW + timedelta(hours=1), NOW + timedelta(hours=2))
    assert check_candidate(candidate, [], _policy(), NOW, enforce_booking_policy=False).admitted


def test_webinar_is_exempt_from_notice():
    candidate = Interval(NOW + timedelta(hours=2), NOW + timedelta(hours=3))
    policy = _policy(meeting_type=MeetingType.WEBINAR)
    assert check_candidate(candidate, [], policy, NOW).admitted


def test_constraint_summary():
    lines = constraint_summary(_policy(min_notice_hours=48, buffer_before=10, buffer_after=5))
    assert lines == [
        "Book at least 2 days in advance",
        "Book up to 60 days ahead",
        "10 min buffer before, 5 min after",
    ]
    assert constraint_summary(_policy(min_notice_hours=4, booking_window_days=365)) == [
        "Book at least 4 hours in advance",
    ]
