# app/services/constraint_filter.py
"""
Admit/reject a single candidate interval for one host.

This is a pure predicate: it receives the host's already merged busy set
and the event policy, and never touches the database. Callers scan many
candidates with it, so it stays O(log n) in the busy-set size.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional, Sequence

from app.config import get_settings
from app.models.event import Event, MeetingType
from app.services.intervals import Interval, first_overlap


class RejectReason(str, Enum):
    TOO_SOON = "TOO_SOON"
    OUTSIDE_WINDOW = "OUTSIDE_WINDOW"
    CONFLICT = "CONFLICT"
    HOST_UNAVAILABLE = "HOST_UNAVAILABLE"
    HOLIDAY = "HOLIDAY"
    OUTSIDE_HOURS = "OUTSIDE_HOURS"
    DAILY_LIMIT = "DAILY_LIMIT"
    WEEKLY_LIMIT = "WEEKLY_LIMIT"


# Meeting types that skip the minimum-notice check
NOTICE_EXEMPT_TYPES = frozenset({MeetingType.WEBINAR})


@dataclass(frozen=True)
class EventPolicy:
    min_notice_hours: int
    booking_window_days: int
    buffer_before: int = 0  # minutes
    buffer_after: int = 0  # minutes
    meeting_type: MeetingType = MeetingType.GROUP

    @classmethod
    def from_event(cls, event: Event) -> "EventPolicy":
        settings = get_settings()
        return cls(
            min_notice_hours=(
                event.min_notice_hours
                if event.min_notice_hours is not None
                else settings.DEFAULT_MIN_NOTICE_HOURS
            ),
            booking_window_days=(
                event.booking_window_days
                if event.booking_window_days is not None
                else settings.DEFAULT_BOOKING_WINDOW_DAYS
            ),
            buffer_before=event.buffer_before or 0,
            buffer_after=event.buffer_after or 0,
            meeting_type=MeetingType(event.meeting_type or MeetingType.GROUP.value),
        )

    @property
    def notice_exempt(self) -> bool:
        return self.meeting_type in NOTICE_EXEMPT_TYPES

    def earliest_start(self, now: datetime) -> datetime:
        if self.notice_exempt:
            return now
        return now + timedelta(hours=self.min_notice_hours)

    def latest_start(self, now: datetime) -> datetime:
        return now + timedelta(days=self.booking_window_days)

    def buffered(self, candidate: Interval) -> Interval:
        return candidate.expand(
            timedelta(minutes=self.buffer_before),
            timedelta(minutes=self.buffer_after),
        )


@dataclass(frozen=True)
class ConstraintResult:
    admitted: bool
    reason: Optional[RejectReason] = None
    message: Optional[str] = None
    conflict: Optional[Interval] = None

    def __bool__(self) -> bool:
        return self.admitted


ADMIT = ConstraintResult(admitted=True)


def check_notice(candidate: Interval, policy: EventPolicy, now: datetime) -> ConstraintResult:
    if policy.notice_exempt:
        return ADMIT
    if candidate.start < policy.earliest_start(now):
        hours_away = int((candidate.start - now).total_seconds() // 3600)
        return ConstraintResult(
            admitted=False,
            reason=RejectReason.TOO_SOON,
            message=(
                f"This slot requires {policy.min_notice_hours} hours notice. "
                f"The slot is only {hours_away} hours away."
            ),
        )
    return ADMIT


def check_window(candidate: Interval, policy: EventPolicy, now: datetime) -> ConstraintResult:
    if candidate.start > policy.latest_start(now):
        return ConstraintResult(
            admitted=False,
            reason=RejectReason.OUTSIDE_WINDOW,
            message=(
                f"Bookings can only be made up to {policy.booking_window_days} "
                f"days in advance."
            ),
        )
    return ADMIT


def check_conflict(
    candidate: Interval,
    busy: Sequence[Interval],
    policy: EventPolicy,
) -> ConstraintResult:
    blocking = first_overlap(busy, policy.buffered(candidate))
    if blocking is not None:
        return ConstraintResult(
            admitted=False,
            reason=RejectReason.CONFLICT,
            message=(
                "Conflicts with an existing commitment. "
                f"Buffer: {policy.buffer_before}m before, {policy.buffer_after}m after."
            ),
            conflict=blocking,
        )
    return ADMIT


def check_candidate(
    candidate: Interval,
    busy: Sequence[Interval],
    policy: EventPolicy,
    now: datetime,
    *,
    enforce_booking_policy: bool = True,
) -> ConstraintResult:
    """
    Notice, then booking window, then buffered conflict; first failure wins.

    `busy` must be a merged set (see `merge_intervals`). Host-side slot
    creation passes `enforce_booking_policy=False` to run only the
    conflict check.
    """
    if enforce_booking_policy:
        result = check_notice(candidate, policy, now)
        if not result:
            return result

        result = check_window(candidate, policy, now)
        if not result:
            return result

    return check_conflict(candidate, busy, policy)


def constraint_summary(policy: EventPolicy) -> List[str]:
    """Short human-readable lines describing the policy, for booking pages."""
    summary: List[str] = []

    if policy.min_notice_hours > 0 and not policy.notice_exempt:
        if policy.min_notice_hours >= 24:
            days = policy.min_notice_hours // 24
            summary.append(f"Book at least {days} day{'s' if days > 1 else ''} in advance")
        else:
            summary.append(f"Book at least {policy.min_notice_hours} hours in advance")

    if policy.booking_window_days < 365:
        summary.append(f"Book up to {policy.booking_window_days} days ahead")

    if policy.buffer_before or policy.buffer_after:
        summary.append(
            f"{policy.buffer_before} min buffer before, {policy.buffer_after} min after"
        )

    return summary
