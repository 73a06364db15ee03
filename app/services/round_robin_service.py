# app/services/round_robin_service.py
"""
Pick which pool host takes a round-robin slot.

Strategies:
- cycle: next host after the last one assigned, in pool order
- least_bookings: fewest assignments for this event in the current period
- availability_weighted: most free time (windows minus busy) in the
  candidate's week

Every strategy only considers hosts that are free for the candidate and
under their personal daily/weekly meeting caps.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from app.models.event import Event, RoundRobinPeriod, RoundRobinStrategy
from app.models.host import Host
from app.models.round_robin_state import RoundRobinState
from app.models.slot import Slot
from app.services.availability_service import check_host_availability, local_date
from app.services.busy_service import collect_busy_intervals, host_slots_query
from app.services.collective_service import participating_host_ids
from app.services.constraint_filter import EventPolicy
from app.services.intervals import Interval, merge_intervals, total_duration
from app.services.pattern_resolver import (
    day_of_week,
    flatten_windows,
    get_host_windows,
    host_timezone,
    load_zone,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HostAssignment:
    host_id: int
    reason: str


def period_start(period: str, now: datetime) -> Optional[datetime]:
    """Start of the counting period containing `now` (UTC), or None for all time."""
    today = datetime.combine(now.date(), time(0, 0))
    period = RoundRobinPeriod(period or RoundRobinPeriod.WEEK.value)

    if period == RoundRobinPeriod.DAY:
        return today
    if period == RoundRobinPeriod.WEEK:
        return today - timedelta(days=day_of_week(now.date()))
    if period == RoundRobinPeriod.MONTH:
        return today.replace(day=1)
    return None


def _local_bounds(start_day: date, days: int, tz_name: str) -> Tuple[datetime, datetime]:
    tz = load_zone(tz_name)
    start = datetime.combine(start_day, time(0, 0), tzinfo=tz)
    end = datetime.combine(start_day + timedelta(days=days), time(0, 0), tzinfo=tz)
    return (
        start.astimezone(timezone.utc).replace(tzinfo=None),
        end.astimezone(timezone.utc).replace(tzinfo=None),
    )


def local_day_bounds(instant: datetime, tz_name: str) -> Tuple[datetime, datetime]:
    """UTC bounds of the host-local calendar day containing `instant`."""
    return _local_bounds(local_date(instant, tz_name), 1, tz_name)


def local_week_bounds(instant: datetime, tz_name: str) -> Tuple[datetime, datetime]:
    """UTC bounds of the host-local Sunday-to-Saturday week containing `instant`."""
    day = local_date(instant, tz_name)
    return _local_bounds(day - timedelta(days=day_of_week(day)), 7, tz_name)


def count_host_meetings(db: Session, host_id: int, start: datetime, end: datetime) -> int:
    return (
        host_slots_query(db, host_id)
        .filter(Slot.start_time >= start, Slot.start_time < end)
        .count()
    )


def within_meeting_caps(db: Session, host: Host, candidate: Interval) -> bool:
    tz_name = host_timezone(host)

    day_start, day_end = local_day_bounds(candidate.start, tz_name)
    if count_host_meetings(db, host.id, day_start, day_end) >= host.max_meetings_per_day:
        return False

    week_start, week_end = local_week_bounds(candidate.start, tz_name)
    if count_host_meetings(db, host.id, week_start, week_end) >= host.max_meetings_per_week:
        return False

    return True


def pool_host_ids(db: Session, event: Event) -> List[int]:
    host_ids = participating_host_ids(db, event.id)
    if not host_ids and event.host_id:
        host_ids = [event.host_id]
    return host_ids


def eligible_host_ids(
    db: Session,
    event: Event,
    candidate: Interval,
    now: datetime,
    host_ids: Optional[Sequence[int]] = None,
) -> List[int]:
    policy = EventPolicy.from_event(event)
    eligible: List[int] = []

    for host_id in host_ids if host_ids is not None else pool_host_ids(db, event):
        host = db.get(Host, host_id)
        if host is None:
            continue
        if not within_meeting_caps(db, host, candidate):
            logger.debug("Host %s at meeting cap for %s", host_id, candidate.start)
            continue
        result = check_host_availability(
            db,
            host_id,
            candidate,
            policy,
            now,
            enforce_booking_policy=False,
        )
        if result:
            eligible.append(host_id)

    return eligible


def assignments_in_period(
    db: Session,
    event_id: int,
    host_ids: Sequence[int],
    since: Optional[datetime],
) -> Dict[int, int]:
    counts = {host_id: 0 for host_id in host_ids}
    query = db.query(Slot.assigned_host_id).filter(
        Slot.event_id == event_id,
        Slot.is_cancelled.is_(False),
        Slot.assigned_host_id.in_(list(host_ids)),
    )
    if since is not None:
        query = query.filter(Slot.created_at >= since)

    for (host_id,) in query.all():
        counts[host_id] += 1
    return counts


def free_time(db: Session, host_id: int, candidate: Interval) -> timedelta:
    """Free time in the host's local week around `candidate`."""
    host = db.get(Host, host_id)
    week_start, week_end = local_week_bounds(candidate.start, host_timezone(host))

    windows = merge_intervals(flatten_windows(get_host_windows(db, host_id, week_start, week_end)))
    busy = collect_busy_intervals(db, host_id, week_start, week_end)

    free = timedelta(0)
    for window in windows:
        taken = [b.intersection(window) for b in busy]
        free += window.duration - total_duration(t for t in taken if t is not None)
    return free


def get_state(db: Session, event_id: int) -> Optional[RoundRobinState]:
    return db.query(RoundRobinState).filter(RoundRobinState.event_id == event_id).first()


def _pick_cycle(pool: Sequence[int], eligible: Sequence[int], last: Optional[int]) -> int:
    if last in pool:
        start = pool.index(last) + 1
        ordered = list(pool[start:]) + list(pool[:start])
    else:
        ordered = list(pool)
    return next(h for h in ordered if h in eligible)


def select_host(
    db: Session,
    event: Event,
    candidate: Interval,
    now: datetime,
) -> Optional[HostAssignment]:
    """
    Choose a host for `candidate` without recording the choice.
    Returns None when no pool host can take it.
    """
    pool = pool_host_ids(db, event)
    eligible = eligible_host_ids(db, event, candidate, now, pool)
    if not eligible:
        logger.info("No round-robin host available for event %s at %s", event.id, candidate.start)
        return None

    strategy = RoundRobinStrategy(event.round_robin_strategy or RoundRobinStrategy.CYCLE.value)

    if strategy == RoundRobinStrategy.LEAST_BOOKINGS:
        since = period_start(event.round_robin_period, now)
        counts = assignments_in_period(db, event.id, eligible, since)
        chosen = min(eligible, key=lambda h: (counts[h], pool.index(h)))
        return HostAssignment(
            chosen,
            f"Fewest assignments this {event.round_robin_period or 'week'} ({counts[chosen]})",
        )

    if strategy == RoundRobinStrategy.AVAILABILITY_WEIGHTED:
        free = {h: free_time(db, h, candidate) for h in eligible}
        chosen = max(eligible, key=lambda h: (free[h], -pool.index(h)))
        hours = free[chosen].total_seconds() / 3600
        return HostAssignment(chosen, f"Most free time this week ({hours:.1f}h)")

    state = get_state(db, event.id)
    chosen = _pick_cycle(pool, eligible, state.last_assigned_host_id if state else None)
    return HostAssignment(chosen, "Next in rotation")


def record_assignment(db: Session, event_id: int, host_id: int, now: datetime) -> RoundRobinState:
    """Update the event's rotation state. Does not commit."""
    state = get_state(db, event_id)
    if state is None:
        state = RoundRobinState(event_id=event_id, assignment_count=0)
        db.add(state)

    state.last_assigned_host_id = host_id
    state.last_assigned_at = now
    state.assignment_count = (state.assignment_count or 0) + 1
    return state
