# app/routers/bookings.py
import logging
from datetime import datetime
from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.clock import get_now
from app.core.errors import NotFoundError, to_http_exception
from app.db.session import get_db
from app.schemas.scheduling import BookingCreate, booking_out
from app.services.booking_service import create_booking
from app.services.calendar_client import get_calendar_client
from app.services.outbox_service import dispatch, optional_email_client, optional_sms_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bookings", tags=["bookings"])


class Notifiers:
    """Provider clients used to push a request's outbox messages right away."""

    def __init__(
        self,
        calendar_client=Depends(get_calendar_client),
        email_client=Depends(optional_email_client),
        sms_client=Depends(optional_sms_client),
    ):
        self.calendar_client = calendar_client
        self.email_client = email_client
        self.sms_client = sms_client

    def flush(self, db: Session, message_ids: List[int]) -> int:
        """One best-effort delivery pass; leftovers go to the outbox worker."""
        if not message_ids:
            return 0
        delivered = dispatch(
            db,
            message_ids,
            calendar_client=self.calendar_client,
            email_client=self.email_client,
            sms_client=self.sms_client,
        )
        if delivered < len(message_ids):
            logger.info(
                "Delivered %s/%s notifications, rest left for the outbox worker",
                delivered, len(message_ids),
            )
        return delivered


@router.post("", status_code=201)
def post_booking(
        payload: BookingCreate,
        db: Session = Depends(get_db),
        now: datetime = Depends(get_now),
        notifiers: Notifiers = Depends(),
) -> Dict[str, Any]:
    """
    Book a seat on a slot.

    Returns the booking with its manage token. When the slot is full and
    the event has a waitlist, the booking is waitlisted with its position.
    """
    try:
        result = create_booking(
            db,
            slot_id=payload.slot_id,
            first_name=payload.first_name,
            last_name=payload.last_name,
            email=payload.email,
            phone=payload.phone,
            now=now,
        )
    except (NotFoundError, ValueError) as e:
        raise to_http_exception(e)

    notifiers.flush(db, result.message_ids)

    return {
        "booking": booking_out(result.booking),
        "manage_token": result.booking.manage_token,
    }
