# app/services/pattern_resolver.py
"""
Expand weekly availability patterns into concrete UTC windows.

A pattern says "Mondays 09:00–17:00 in America/New_York". For a given
calendar date the local bounds are converted with the UTC offset in force
on that date, so windows move by an hour across DST changes while the
wall-clock bounds stay put.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from app.config import get_settings
from app.core.errors import NotFoundError
from app.models.availability_pattern import AvailabilityPattern
from app.models.host import Host
from app.services.intervals import Interval, to_naive_utc

logger = logging.getLogger(__name__)

# 0=Sunday .. 6=Saturday
DAY_NAMES = ["SUN", "MON", "TUE", "WED", "THU", "FRI", "SAT"]


class PatternLike(Protocol):
    day_of_week: int
    start_time: str
    end_time: str
    timezone: Optional[str]


@dataclass(frozen=True)
class PatternSpec:
    day_of_week: int
    start_time: str
    end_time: str
    timezone: Optional[str] = None


def day_of_week(d: date) -> int:
    """Python's Monday=0 weekday shifted to Sunday=0."""
    return (d.weekday() + 1) % 7


def parse_hhmm(value: str) -> Tuple[int, int]:
    """
    "09:30" -> (9, 30). Accepts "HH:MM:SS" as stored by some clients,
    and "24:00" as end of day.
    """
    parts = value.strip().split(":")
    if len(parts) < 2:
        raise ValueError(f"invalid time of day: {value!r}")
    try:
        hour, minute = int(parts[0]), int(parts[1])
    except ValueError as e:
        raise ValueError(f"invalid time of day: {value!r}") from e

    if (hour, minute) == (24, 0):
        return hour, minute
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"invalid time of day: {value!r}")
    return hour, minute


def minutes_of_day(value: str) -> int:
    hour, minute = parse_hhmm(value)
    return hour * 60 + minute


def load_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"unknown timezone: {name!r}") from e


def local_to_utc(day: date, hhmm: str, tz: ZoneInfo) -> datetime:
    hour, minute = parse_hhmm(hhmm)
    if hour == 24:
        local = datetime.combine(day + timedelta(days=1), time(0, 0), tzinfo=tz)
    else:
        local = datetime.combine(day, time(hour, minute), tzinfo=tz)
    return local.astimezone(timezone.utc).replace(tzinfo=None)


def local_dates_in_range(
    range_start: datetime,
    range_end: datetime,
    tz: ZoneInfo,
) -> List[date]:
    """Local calendar dates touched by the UTC range `[range_start, range_end)`."""
    start_local = range_start.replace(tzinfo=timezone.utc).astimezone(tz).date()
    last_instant = range_end - timedelta(microseconds=1)
    end_local = last_instant.replace(tzinfo=timezone.utc).astimezone(tz).date()

    days: List[date] = []
    current = start_local
    while current <= end_local:
        days.append(current)
        current += timedelta(days=1)
    return days


def resolve_windows(
    patterns: Iterable[PatternLike],
    range_start: datetime,
    range_end: datetime,
    default_timezone: str,
) -> Dict[date, List[Interval]]:
    """
    Map each local calendar day in the range to the UTC windows its
    patterns produce (clipped to the range). Days without a matching
    pattern map to an empty list.
    """
    range_start = to_naive_utc(range_start)
    range_end = to_naive_utc(range_end)
    if range_end <= range_start:
        raise ValueError("range_end must be after range_start")

    default_tz = load_zone(default_timezone)
    bounds = Interval(range_start, range_end)

    result: Dict[date, List[Interval]] = {
        d: [] for d in local_dates_in_range(range_start, range_end, default_tz)
    }

    by_zone: Dict[str, List[PatternLike]] = {}
    for p in patterns:
        by_zone.setdefault(p.timezone or default_timezone, []).append(p)

    for zone_name, zone_patterns in by_zone.items():
        tz = load_zone(zone_name)
        for day in local_dates_in_range(range_start, range_end, tz):
            dow = day_of_week(day)
            for p in zone_patterns:
                if p.day_of_week != dow:
                    continue
                start = local_to_utc(day, p.start_time, tz)
                end = local_to_utc(day, p.end_time, tz)
                if end <= start:
                    logger.warning(
                        "Skipping pattern with end before start: day=%s %s-%s",
                        p.day_of_week, p.start_time, p.end_time,
                    )
                    continue
                clipped = Interval(start, end).intersection(bounds)
                if clipped is not None:
                    result.setdefault(day, []).append(clipped)

    for day in result:
        result[day].sort()

    return result


def flatten_windows(windows_by_day: Dict[date, List[Interval]]) -> List[Interval]:
    out: List[Interval] = []
    for day in sorted(windows_by_day):
        out.extend(windows_by_day[day])
    return out


def host_timezone(host: Optional[Host]) -> str:
    if host is not None and host.timezone:
        return host.timezone
    return get_settings().DEFAULT_HOST_TIMEZONE


def get_active_patterns(db: Session, host_id: int) -> List[AvailabilityPattern]:
    return (
        db.query(AvailabilityPattern)
        .filter(
            AvailabilityPattern.host_id == host_id,
            AvailabilityPattern.is_active.is_(True),
        )
        .order_by(AvailabilityPattern.day_of_week.asc(), AvailabilityPattern.start_time.asc())
        .all()
    )


def get_host_windows(
    db: Session,
    host_id: int,
    range_start: datetime,
    range_end: datetime,
) -> Dict[date, List[Interval]]:
    host = db.get(Host, host_id)
    if host is None:
        raise NotFoundError("Host not found")

    patterns = get_active_patterns(db, host_id)
    return resolve_windows(patterns, range_start, range_end, host_timezone(host))


def validate_patterns(patterns: Sequence[PatternLike]) -> None:
    """
    Reject malformed patterns and same-day overlaps.

    Raises ValueError describing the first problem found.
    """
    per_day: Dict[int, List[Tuple[int, int]]] = {}
    for p in patterns:
        if not 0 <= p.day_of_week <= 6:
            raise ValueError("day_of_week must be between 0 (Sunday) and 6 (Saturday)")
        start = minutes_of_day(p.start_time)
        end = minutes_of_day(p.end_time)
        if end <= start:
            raise ValueError("end_time must be after start_time")
        if p.timezone:
            load_zone(p.timezone)
        per_day.setdefault(p.day_of_week, []).append((start, end))

    for dow, ranges in per_day.items():
        ranges.sort()
        for (_, prev_end), (next_start, _) in zip(ranges, ranges[1:]):
            if next_start < prev_end:
                raise ValueError(f"overlapping availability on {DAY_NAMES[dow]}")


def replace_patterns(
    db: Session,
    host_id: int,
    patterns: Sequence[PatternLike],
) -> List[AvailabilityPattern]:
    """
    Replace the host's active patterns with `patterns`.

    All patterns take the host's timezone when they don't carry one, so a
    host's set stays on a single zone.
    """
    host = db.get(Host, host_id)
    if host is None:
        raise NotFoundError("Host not found")

    validate_patterns(patterns)

    db.query(AvailabilityPattern).filter(
        AvailabilityPattern.host_id == host_id,
    ).delete()

    created: List[AvailabilityPattern] = []
    for p in patterns:
        row = AvailabilityPattern(
            host_id=host_id,
            day_of_week=p.day_of_week,
            start_time=p.start_time[:5],
            end_time=p.end_time[:5],
            timezone=p.timezone or host.timezone,
            is_active=True,
        )
        db.add(row)
        created.append(row)

    db.commit()
    for row in created:
        db.refresh(row)

    logger.info("Replaced availability for host %s: %d patterns", host_id, len(created))
    return created
