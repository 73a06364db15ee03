# app/routers/availability.py
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.config import get_settings
from app.core.clock import get_now
from app.core.errors import NotFoundError, SchedulingError, to_http_exception
from app.db.session import get_db
from app.models.event import Event
from app.models.host import Host
from app.schemas.scheduling import AvailabilityCheckRequest, PatternsReplace, interval_out
from app.services.collective_service import check_hosts_available, participating_host_ids
from app.services.constraint_filter import EventPolicy, constraint_summary
from app.services.intervals import Interval, to_naive_utc
from app.services.pattern_resolver import get_host_windows, host_timezone, replace_patterns


router = APIRouter(prefix="/api/availability", tags=["availability"])


@router.get("/windows")
def get_windows(
        host_id: int,
        start: datetime,
        end: datetime,
        db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """
    Concrete UTC availability windows for a host, per host-local date.
    """
    try:
        windows = get_host_windows(db, host_id, start, end)
    except (NotFoundError, ValueError) as e:
        raise to_http_exception(e)

    return {
        "host_id": host_id,
        "timezone": host_timezone(db.get(Host, host_id)),
        "days": [
            {
                "date": day.isoformat(),
                "windows": [interval_out(w) for w in windows[day]],
            }
            for day in sorted(windows)
        ],
    }


@router.put("/patterns/{host_id}")
def put_patterns(
        host_id: int,
        payload: PatternsReplace,
        db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """Replace the host's weekly availability."""
    try:
        rows = replace_patterns(db, host_id, payload.patterns)
    except (NotFoundError, ValueError) as e:
        raise to_http_exception(e)

    return {
        "host_id": host_id,
        "patterns": [
            {
                "id": p.id,
                "day_of_week": p.day_of_week,
                "start_time": p.start_time,
                "end_time": p.end_time,
                "timezone": p.timezone,
            }
            for p in rows
        ],
    }


@router.post("/check")
def check_availability(
        payload: AvailabilityCheckRequest,
        db: Session = Depends(get_db),
        now: datetime = Depends(get_now),
) -> Dict[str, Any]:
    """
    Check one candidate time against one or more hosts.

    With an event, its policy (notice, window, buffers) applies and the
    hosts default to its participants. Without one, only the busy check runs.
    """
    candidate = Interval(to_naive_utc(payload.start_time), to_naive_utc(payload.end_time))

    host_ids = payload.host_ids
    if payload.event_id is not None:
        event = db.get(Event, payload.event_id)
        if event is None:
            raise to_http_exception(NotFoundError("Event not found"))
        policy = EventPolicy.from_event(event)
        if not host_ids:
            host_ids = participating_host_ids(db, event.id) or (
                [event.host_id] if event.host_id else []
            )
        if not host_ids:
            raise to_http_exception(SchedulingError("This event has no hosts to check"))
        enforce = payload.enforce_booking_policy
    else:
        settings = get_settings()
        policy = EventPolicy(
            min_notice_hours=settings.DEFAULT_MIN_NOTICE_HOURS,
            booking_window_days=settings.DEFAULT_BOOKING_WINDOW_DAYS,
        )
        enforce = False

    try:
        result = check_hosts_available(
            db,
            host_ids,
            candidate,
            policy,
            now,
            enforce_booking_policy=enforce,
        )
    except (NotFoundError, ValueError) as e:
        raise to_http_exception(e)

    return {
        "admitted": result.admitted,
        "reason": result.reason.value if result.reason else None,
        "unavailable_host_ids": result.unavailable_host_ids,
        "hosts": {
            str(host_id): {
                "reason": r.reason.value if r.reason else None,
                "message": r.message,
            }
            for host_id, r in result.reasons.items()
        },
        "constraints": constraint_summary(policy),
    }
