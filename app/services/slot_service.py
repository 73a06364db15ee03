# app/services/slot_service.py
"""
Slot creation, listing and enumeration of bookable times.

Creation flow:
1. collective / webinar events: every participating host must be free
2. pick the owning host (explicit > round robin > event host)
3. check that host against live calendar data when available
4. insert the slot while holding the host row lock
5. create the calendar event (best effort)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from app.config import get_settings
from app.core.errors import CalendarError, NotFoundError, SchedulingError, SlotUnavailableError
from app.models.event import Event, MeetingType
from app.models.host import Host
from app.models.slot import Slot
from app.services.availability_service import check_host_availability, get_holidays, local_date
from app.services.busy_service import collect_busy_intervals
from app.services.collective_service import (
    check_hosts_available,
    participating_host_ids,
    requires_collective_check,
    unavailable_message,
)
from app.services.constraint_filter import (
    EventPolicy,
    RejectReason,
    check_candidate,
    check_notice,
    check_window,
)
from app.services.intervals import (
    Interval,
    intersect_interval_sets,
    merge_intervals,
    to_naive_utc,
)
from app.services.pattern_resolver import flatten_windows, get_host_windows, host_timezone
from app.services.round_robin_service import pool_host_ids, record_assignment, select_host
from app.services.waitlist_service import confirmed_count, waitlist_count

logger = logging.getLogger(__name__)


def get_event(db: Session, event_id: int) -> Event:
    event = db.get(Event, event_id)
    if event is None:
        raise NotFoundError("Event not found")
    return event


def lock_host(db: Session, host_id: int) -> Host:
    host = db.query(Host).filter(Host.id == host_id).with_for_update().first()
    if host is None:
        raise NotFoundError("Host not found")
    return host


def live_busy_intervals(
    db: Session,
    host: Host,
    range_start: datetime,
    range_end: datetime,
    calendar_client=None,
) -> List[Interval]:
    """
    Busy set using live free/busy from the calendar in place of the cached
    blocks. Falls back to the cache if the host has no calendar or the
    call fails.
    """
    if calendar_client is not None and host.has_calendar:
        try:
            live = calendar_client.free_busy(host, range_start, range_end)
        except CalendarError as e:
            logger.warning(
                "Live free/busy failed for host %s, using cached busy blocks: %s",
                host.id, e,
            )
        else:
            return collect_busy_intervals(
                db,
                host.id,
                range_start,
                range_end,
                include_busy_blocks=False,
                extra=live,
            )

    return collect_busy_intervals(db, host.id, range_start, range_end)


def _create_calendar_event(db: Session, slot: Slot, event: Event, host: Host, calendar_client) -> None:
    if calendar_client is None or not host.has_calendar:
        return

    co_host_emails = [
        h.email
        for h in db.query(Host).filter(Host.id.in_(participating_host_ids(db, event.id))).all()
        if h.id != host.id
    ]
    try:
        slot.calendar_event_id = calendar_client.create_event(
            host,
            summary=event.name,
            description=event.description or "",
            start=slot.start_time,
            end=slot.end_time,
            attendee_emails=co_host_emails,
        )
    except CalendarError as e:
        logger.warning("Calendar event for slot %s not created: %s", slot.id, e)
        return

    db.commit()


def create_slot(
    db: Session,
    *,
    event_id: int,
    start_time: datetime,
    end_time: datetime,
    assigned_host_id: Optional[int] = None,
    now: Optional[datetime] = None,
    calendar_client=None,
) -> Slot:
    """
    Create a slot for an event after checking every host it occupies.

    Notice and booking-window rules are for attendees and are not applied
    here; holidays, weekly hours and the buffered busy check are.
    """
    now = to_naive_utc(now) if now else datetime.utcnow()
    event = get_event(db, event_id)

    start_time, end_time = to_naive_utc(start_time), to_naive_utc(end_time)
    if end_time <= start_time:
        raise SchedulingError("end_time must be after start_time")
    candidate = Interval(start_time, end_time)
    policy = EventPolicy.from_event(event)

    host_ids = participating_host_ids(db, event.id)
    if requires_collective_check(event, host_ids):
        collective = check_hosts_available(
            db,
            host_ids,
            candidate,
            policy,
            now,
            enforce_booking_policy=False,
        )
        if not collective.admitted:
            raise SlotUnavailableError(
                unavailable_message(db, collective.unavailable_host_ids),
                reason=RejectReason.HOST_UNAVAILABLE.value,
                host_ids=collective.unavailable_host_ids,
            )

    assignment = None
    if assigned_host_id is not None:
        owner_id = assigned_host_id
    elif MeetingType(event.meeting_type) == MeetingType.ROUND_ROBIN:
        assignment = select_host(db, event, candidate, now)
        if assignment is None:
            raise SlotUnavailableError(
                "No host in the rotation is available at this time",
                reason=RejectReason.HOST_UNAVAILABLE.value,
                host_ids=pool_host_ids(db, event),
            )
        owner_id = assignment.host_id
    else:
        owner_id = event.host_id

    host = None
    if owner_id is not None:
        host = lock_host(db, owner_id)
        buffered = policy.buffered(candidate)
        busy = live_busy_intervals(db, host, buffered.start, buffered.end, calendar_client)
        result = check_host_availability(
            db,
            host.id,
            candidate,
            policy,
            now,
            enforce_booking_policy=False,
            busy=busy,
        )
        if not result:
            db.rollback()
            raise SlotUnavailableError(
                result.message or "Host is not available",
                reason=result.reason.value if result.reason else None,
                host_ids=[host.id],
            )

    slot = Slot(
        event_id=event.id,
        start_time=start_time,
        end_time=end_time,
        assigned_host_id=owner_id if (assigned_host_id is not None or assignment) else None,
        is_cancelled=False,
    )
    db.add(slot)
    if assignment is not None:
        record_assignment(db, event.id, assignment.host_id, now)

    db.commit()
    db.refresh(slot)

    logger.info(
        "Created slot %s for event %s at %s (host %s%s)",
        slot.id, event.id, slot.start_time, owner_id,
        f", {assignment.reason}" if assignment else "",
    )

    if host is not None:
        _create_calendar_event(db, slot, event, host, calendar_client)

    return slot


@dataclass
class SlotSummary:
    slot: Slot
    confirmed: int
    waitlisted: int
    capacity: int

    @property
    def is_full(self) -> bool:
        return self.confirmed >= self.capacity

    @property
    def spots_left(self) -> int:
        return max(self.capacity - self.confirmed, 0)


def list_slots(
    db: Session,
    event_id: int,
    now: Optional[datetime] = None,
    include_all: bool = False,
) -> List[SlotSummary]:
    """
    Upcoming non-cancelled slots of an event with their seat counts.

    Unless `include_all`, slots an attendee could not book right now
    (too soon or beyond the booking window) are left out.
    """
    now = to_naive_utc(now) if now else datetime.utcnow()
    event = get_event(db, event_id)
    policy = EventPolicy.from_event(event)

    slots = (
        db.query(Slot)
        .filter(
            Slot.event_id == event_id,
            Slot.is_cancelled.is_(False),
            Slot.start_time > now,
        )
        .order_by(Slot.start_time.asc())
        .all()
    )

    out: List[SlotSummary] = []
    for slot in slots:
        if not include_all:
            interval = Interval(slot.start_time, slot.end_time)
            if not check_notice(interval, policy, now) or not check_window(interval, policy, now):
                continue
        out.append(
            SlotSummary(
                slot=slot,
                confirmed=confirmed_count(db, slot.id),
                waitlisted=waitlist_count(db, slot.id),
                capacity=event.max_attendees or 0,
            )
        )
    return out


@dataclass
class _HostSchedule:
    host_id: int
    tz_name: str
    windows: List[Interval]
    busy: List[Interval]

    def admits(self, candidate: Interval, policy: EventPolicy, now: datetime, holidays: Dict) -> bool:
        if local_date(candidate.start, self.tz_name) in holidays:
            return False
        if not any(w.contains(candidate) for w in self.windows):
            return False
        return bool(check_candidate(candidate, self.busy, policy, now))


def _load_schedule(
    db: Session,
    host_id: int,
    range_start: datetime,
    range_end: datetime,
    policy: EventPolicy,
) -> _HostSchedule:
    host = db.get(Host, host_id)
    windows = merge_intervals(flatten_windows(get_host_windows(db, host_id, range_start, range_end)))
    padding = timedelta(minutes=max(policy.buffer_before, policy.buffer_after))
    busy = collect_busy_intervals(db, host_id, range_start - padding, range_end + padding)
    return _HostSchedule(host_id, host_timezone(host), windows, busy)


def _candidates(windows: Sequence[Interval], duration: timedelta, step: timedelta) -> List[Interval]:
    out: List[Interval] = []
    for window in windows:
        start = window.start
        while start + duration <= window.end:
            out.append(Interval(start, start + duration))
            start += step
    return out


def enumerate_available_slots(
    db: Session,
    event_id: int,
    range_start: datetime,
    range_end: datetime,
    now: Optional[datetime] = None,
) -> List[Interval]:
    """
    Bookable start times for an event in `[range_start, range_end)`.

    Candidates are laid out every `start_time_increment` minutes from the
    start of each availability window. Collective and webinar events need
    every participating host free; round-robin events need any pool host.
    """
    settings = get_settings()
    now = to_naive_utc(now) if now else datetime.utcnow()
    range_start, range_end = to_naive_utc(range_start), to_naive_utc(range_end)
    if range_end <= range_start:
        raise SchedulingError("end must be after start")
    if range_end - range_start > timedelta(days=settings.MAX_ENUMERATION_DAYS):
        raise SchedulingError(
            f"Range may span at most {settings.MAX_ENUMERATION_DAYS} days"
        )

    event = get_event(db, event_id)
    policy = EventPolicy.from_event(event)
    meeting_type = MeetingType(event.meeting_type)

    participants = participating_host_ids(db, event.id)
    require_all = requires_collective_check(event, participants)
    if require_all:
        host_ids = participants
    elif meeting_type == MeetingType.ROUND_ROBIN:
        host_ids = pool_host_ids(db, event)
    else:
        host_ids = [event.host_id] if event.host_id else []

    if not host_ids:
        return []

    schedules = [_load_schedule(db, h, range_start, range_end, policy) for h in host_ids]
    holidays = get_holidays(
        db,
        (range_start - timedelta(days=1)).date(),
        (range_end + timedelta(days=1)).date(),
    )

    if require_all:
        windows = schedules[0].windows
        for schedule in schedules[1:]:
            windows = intersect_interval_sets(windows, schedule.windows)
    else:
        windows = merge_intervals(w for s in schedules for w in s.windows)

    duration = timedelta(minutes=event.duration_minutes)
    step = timedelta(
        minutes=event.start_time_increment or settings.DEFAULT_SLOT_INCREMENT_MINUTES
    )

    admitted: List[Interval] = []
    for candidate in _candidates(windows, duration, step):
        if candidate.start < now:
            continue
        verdicts = (s.admits(candidate, policy, now, holidays) for s in schedules)
        if all(verdicts) if require_all else any(verdicts):
            admitted.append(candidate)

    return admitted
