# app/routers/manage.py
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from app.core.clock import get_now
from app.core.errors import NotFoundError, to_http_exception
from app.db.session import get_db
from app.routers.bookings import Notifiers
from app.schemas.scheduling import (
    BookingCancel,
    BookingReschedule,
    booking_out,
    event_out,
    slot_out,
)
from app.services.booking_service import cancel_booking, get_by_token, reschedule_booking

router = APIRouter(prefix="/api/manage", tags=["manage"])


@router.get("/{token}")
def get_managed_booking(
        token: str,
        db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """Booking, slot and event details for the attendee's manage link."""
    try:
        booking = get_by_token(db, token)
    except NotFoundError as e:
        raise to_http_exception(e)

    return {
        "booking": booking_out(booking),
        "slot": slot_out(booking.slot),
        "event": event_out(booking.slot.event),
    }


@router.put("/{token}")
def reschedule(
        token: str,
        payload: BookingReschedule,
        db: Session = Depends(get_db),
        now: datetime = Depends(get_now),
        notifiers: Notifiers = Depends(),
) -> Dict[str, Any]:
    """Move the booking to another slot of the same event."""
    try:
        result = reschedule_booking(db, token, payload.slot_id, now=now)
    except (NotFoundError, ValueError) as e:
        raise to_http_exception(e)

    notifiers.flush(db, result.message_ids)

    return {
        "booking": booking_out(result.booking),
        "slot": slot_out(result.booking.slot),
        "promoted_booking_id": result.promoted.id if result.promoted else None,
    }


@router.delete("/{token}")
def cancel(
        token: str,
        payload: Optional[BookingCancel] = Body(default=None),
        db: Session = Depends(get_db),
        now: datetime = Depends(get_now),
        notifiers: Notifiers = Depends(),
) -> Dict[str, Any]:
    """
    Cancel the booking. A freed seat goes to the first person on the
    waitlist, who is notified.
    """
    payload = payload or BookingCancel()
    try:
        result = cancel_booking(db, token, reason=payload.reason, now=now)
    except (NotFoundError, ValueError) as e:
        raise to_http_exception(e)

    notifiers.flush(db, result.message_ids)

    return {
        "booking": booking_out(result.booking),
        "promoted_booking_id": result.promoted.id if result.promoted else None,
    }
