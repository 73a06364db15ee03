# app/routers/slots.py
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.clock import get_now
from app.core.errors import NotFoundError, to_http_exception
from app.db.session import get_db
from app.schemas.scheduling import SlotCreate, interval_out, slot_out
from app.services.calendar_client import get_calendar_client
from app.services.constraint_filter import EventPolicy, constraint_summary
from app.services.slot_service import (
    create_slot,
    enumerate_available_slots,
    get_event,
    list_slots,
)

router = APIRouter(prefix="/api/slots", tags=["slots"])


@router.get("")
def get_slots(
        event_id: int,
        include_all: bool = False,
        db: Session = Depends(get_db),
        now: datetime = Depends(get_now),
) -> Dict[str, Any]:
    """Upcoming slots of an event with confirmed / waitlist counts."""
    try:
        summaries = list_slots(db, event_id, now=now, include_all=include_all)
    except NotFoundError as e:
        raise to_http_exception(e)

    return {
        "event_id": event_id,
        "slots": [
            {
                **slot_out(s.slot),
                "confirmed": s.confirmed,
                "waitlisted": s.waitlisted,
                "spots_left": s.spots_left,
                "is_full": s.is_full,
            }
            for s in summaries
        ],
    }


@router.get("/available")
def get_available_slots(
        event_id: int,
        start: datetime,
        end: datetime,
        db: Session = Depends(get_db),
        now: datetime = Depends(get_now),
) -> Dict[str, Any]:
    """
    Bookable times for an event in [start, end).

    Times honour host availability, busy time plus buffers, holidays,
    minimum notice and the booking window.
    """
    try:
        event = get_event(db, event_id)
        candidates = enumerate_available_slots(db, event_id, start, end, now=now)
    except (NotFoundError, ValueError) as e:
        raise to_http_exception(e)

    return {
        "event_id": event_id,
        "duration_minutes": event.duration_minutes,
        "slots": [interval_out(c) for c in candidates],
        "constraints": constraint_summary(EventPolicy.from_event(event)),
    }


@router.post("", status_code=201)
def post_slot(
        payload: SlotCreate,
        db: Session = Depends(get_db),
        now: datetime = Depends(get_now),
        calendar_client=Depends(get_calendar_client),
) -> Dict[str, Any]:
    """
    Create a slot for an event.

    Rejected with 400 when a host is busy (buffers included), off-hours,
    on a company holiday, or when a collective host is unavailable.
    """
    try:
        slot = create_slot(
            db,
            event_id=payload.event_id,
            start_time=payload.start_time,
            end_time=payload.end_time,
            assigned_host_id=payload.assigned_host_id,
            now=now,
            calendar_client=calendar_client,
        )
    except (NotFoundError, ValueError) as e:
        raise to_http_exception(e)

    return {"slot": slot_out(slot)}
