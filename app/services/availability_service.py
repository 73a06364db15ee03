# app/services/availability_service.py
"""
Single-host availability check against stored data.

Wraps the pure constraint filter with the checks that need the database:
company holidays, the host's weekly hours, and the host's busy set.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Optional, Sequence

from sqlalchemy.orm import Session

from app.core.errors import NotFoundError
from app.models.company_holiday import CompanyHoliday
from app.models.host import Host
from app.services.busy_service import collect_busy_intervals
from app.services.constraint_filter import (
    ConstraintResult,
    EventPolicy,
    RejectReason,
    check_conflict,
    check_notice,
    check_window,
)
from app.services.intervals import Interval, merge_intervals
from app.services.pattern_resolver import (
    get_active_patterns,
    host_timezone,
    load_zone,
    resolve_windows,
)

logger = logging.getLogger(__name__)


def get_holidays(db: Session, start: date, end: date) -> Dict[date, str]:
    """Company holidays in `[start, end]` keyed by date."""
    rows = (
        db.query(CompanyHoliday)
        .filter(CompanyHoliday.date >= start, CompanyHoliday.date <= end)
        .order_by(CompanyHoliday.date.asc())
        .all()
    )
    return {row.date: row.name for row in rows}


def local_date(instant: datetime, tz_name: str) -> date:
    return instant.replace(tzinfo=timezone.utc).astimezone(load_zone(tz_name)).date()


def check_holiday(
    db: Session,
    candidate: Interval,
    tz_name: str,
) -> ConstraintResult:
    day = local_date(candidate.start, tz_name)
    holidays = get_holidays(db, day, day)
    if day in holidays:
        return ConstraintResult(
            admitted=False,
            reason=RejectReason.HOLIDAY,
            message=f"Company holiday: {holidays[day]}",
        )
    return ConstraintResult(admitted=True)


def check_within_hours(db: Session, host: Host, candidate: Interval) -> ConstraintResult:
    """
    If the host has patterns for the candidate's local day, the candidate
    must sit inside one of them. Days without patterns are not restricted.
    """
    tz_name = host_timezone(host)
    patterns = get_active_patterns(db, host.id)
    if not patterns:
        return ConstraintResult(admitted=True)

    day = local_date(candidate.start, tz_name)
    day_start = datetime.combine(day, datetime.min.time(), tzinfo=load_zone(tz_name))
    day_start_utc = day_start.astimezone(timezone.utc).replace(tzinfo=None)
    windows = merge_intervals(
        resolve_windows(
            patterns,
            day_start_utc,
            day_start_utc + timedelta(days=1),
            tz_name,
        ).get(day, [])
    )

    if not windows:
        return ConstraintResult(admitted=True)

    if any(w.contains(candidate) for w in windows):
        return ConstraintResult(admitted=True)

    return ConstraintResult(
        admitted=False,
        reason=RejectReason.OUTSIDE_HOURS,
        message="Outside of set availability hours",
    )


def check_host_availability(
    db: Session,
    host_id: int,
    candidate: Interval,
    policy: EventPolicy,
    now: datetime,
    *,
    enforce_booking_policy: bool = True,
    busy: Optional[Sequence[Interval]] = None,
    exclude_slot_ids: Sequence[int] = (),
) -> ConstraintResult:
    """
    Full availability check for one host.

    Order: notice, booking window, holiday, weekly hours, busy conflict.
    Pass `busy` to reuse a set already loaded (e.g. live calendar data merged
    by the caller); otherwise the cached busy set is loaded here.
    """
    host = db.get(Host, host_id)
    if host is None:
        raise NotFoundError("Host not found")

    if enforce_booking_policy:
        for check in (check_notice, check_window):
            result = check(candidate, policy, now)
            if not result:
                return result

    tz_name = host_timezone(host)

    result = check_holiday(db, candidate, tz_name)
    if not result:
        return result

    result = check_within_hours(db, host, candidate)
    if not result:
        return result

    if busy is None:
        buffered = policy.buffered(candidate)
        busy = collect_busy_intervals(
            db,
            host_id,
            buffered.start,
            buffered.end,
            exclude_slot_ids=exclude_slot_ids,
        )

    result = check_conflict(candidate, busy, policy)
    if not result:
        logger.debug(
            "Host %s busy for %s-%s: %s",
            host_id, candidate.start, candidate.end, result.conflict,
        )
    return result
