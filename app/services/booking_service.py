# app/services/booking_service.py
"""
Attendee bookings: create, cancel, reschedule.

Each public function commits exactly once. Side effects (calendar invite,
emails, SMS) are written to the outbox in that same commit; the caller
dispatches them afterwards using the returned message ids.
"""
from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.errors import CapacityError, NotFoundError, SchedulingError, SlotUnavailableError
from app.models.booking import Booking
from app.models.event import Event
from app.models.outbox_message import OutboxMessage
from app.models.slot import Slot
from app.services.constraint_filter import (
    ConstraintResult,
    EventPolicy,
    RejectReason,
    check_notice,
    check_window,
)
from app.services.intervals import Interval, to_naive_utc
from app.services.notification_service import (
    enqueue_calendar_invite,
    enqueue_cancellation_effects,
    enqueue_promotion_effects,
)
from app.services.pattern_resolver import host_timezone
from app.services.round_robin_service import local_day_bounds, local_week_bounds
from app.services.waitlist_service import (
    confirmed_count,
    lock_slot,
    on_booking_cancelled,
    release_seat,
    waitlist_count,
)

logger = logging.getLogger(__name__)


@dataclass
class BookingResult:
    booking: Booking
    promoted: Optional[Booking] = None
    outbox: List[OutboxMessage] = field(default_factory=list)

    @property
    def message_ids(self) -> List[int]:
        return [m.id for m in self.outbox]


def generate_manage_token() -> str:
    return secrets.token_urlsafe(32)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def get_by_token(db: Session, token: str) -> Booking:
    booking = db.query(Booking).filter(Booking.manage_token == token).first()
    if booking is None:
        raise NotFoundError("Booking not found")
    return booking


def _count_event_bookings(
    db: Session,
    event_id: int,
    start: datetime,
    end: datetime,
    exclude_booking_id: Optional[int],
) -> int:
    query = (
        db.query(Booking)
        .join(Slot, Slot.id == Booking.slot_id)
        .filter(
            Slot.event_id == event_id,
            Slot.start_time >= start,
            Slot.start_time < end,
            Booking.is_waitlisted.is_(False),
            Booking.cancelled_at.is_(None),
        )
    )
    if exclude_booking_id is not None:
        query = query.filter(Booking.id != exclude_booking_id)
    return query.count()


def check_event_limits(
    db: Session,
    event: Event,
    slot: Slot,
    exclude_booking_id: Optional[int] = None,
) -> ConstraintResult:
    """Per-event caps on confirmed bookings per host-local day and week."""
    if not (event.max_daily_bookings or event.max_weekly_bookings):
        return ConstraintResult(admitted=True)

    tz_name = host_timezone(event.host)

    if event.max_daily_bookings:
        start, end = local_day_bounds(slot.start_time, tz_name)
        if _count_event_bookings(db, event.id, start, end, exclude_booking_id) >= event.max_daily_bookings:
            return ConstraintResult(
                admitted=False,
                reason=RejectReason.DAILY_LIMIT,
                message=f"Daily booking limit of {event.max_daily_bookings} reached",
            )

    if event.max_weekly_bookings:
        start, end = local_week_bounds(slot.start_time, tz_name)
        if _count_event_bookings(db, event.id, start, end, exclude_booking_id) >= event.max_weekly_bookings:
            return ConstraintResult(
                admitted=False,
                reason=RejectReason.WEEKLY_LIMIT,
                message=f"Weekly booking limit of {event.max_weekly_bookings} reached",
            )

    return ConstraintResult(admitted=True)


def _reject(result: ConstraintResult) -> SlotUnavailableError:
    return SlotUnavailableError(
        result.message or "This time cannot be booked",
        reason=result.reason.value if result.reason else None,
    )


def _place(
    db: Session,
    slot: Slot,
    event: Event,
    email: str,
    now: datetime,
    exclude_booking_id: Optional[int] = None,
) -> Tuple[bool, Optional[int]]:
    """
    Validate a seat request on a locked slot.
    Returns (is_waitlisted, waitlist_position).
    """
    if slot.is_cancelled:
        raise SchedulingError("This slot has been cancelled")
    if slot.start_time <= now:
        raise SchedulingError("This slot has already started", reason=RejectReason.TOO_SOON.value)

    duplicate = db.query(Booking).filter(
        Booking.slot_id == slot.id,
        Booking.email == email,
        Booking.cancelled_at.is_(None),
    )
    if exclude_booking_id is not None:
        duplicate = duplicate.filter(Booking.id != exclude_booking_id)
    if duplicate.first() is not None:
        raise SchedulingError("You already have a booking for this slot")

    policy = EventPolicy.from_event(event)
    candidate = Interval(slot.start_time, slot.end_time)
    for check in (check_notice, check_window):
        result = check(candidate, policy, now)
        if not result:
            raise _reject(result)

    capacity = event.max_attendees or 0
    if confirmed_count(db, slot.id) < capacity:
        result = check_event_limits(db, event, slot, exclude_booking_id)
        if not result:
            raise _reject(result)
        return False, None

    if not event.waitlist_enabled:
        raise CapacityError("This slot is full")

    waiting = waitlist_count(db, slot.id)
    if event.waitlist_limit is not None and waiting >= event.waitlist_limit:
        raise CapacityError("This slot and its waitlist are full")

    return True, waiting + 1


def create_booking(
    db: Session,
    *,
    slot_id: int,
    first_name: str,
    last_name: str,
    email: str,
    phone: Optional[str] = None,
    now: Optional[datetime] = None,
) -> BookingResult:
    """
    Book a seat on a slot, or a waitlist place when the slot is full and
    the event keeps a waitlist.
    """
    now = to_naive_utc(now) if now else datetime.utcnow()
    email = normalize_email(email)

    slot = lock_slot(db, slot_id)
    if slot is None:
        raise NotFoundError("Slot not found")
    event = slot.event

    try:
        is_waitlisted, position = _place(db, slot, event, email, now)
    except (SchedulingError, NotFoundError):
        db.rollback()
        raise

    booking = Booking(
        slot_id=slot.id,
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        email=email,
        phone=phone,
        manage_token=generate_manage_token(),
        assigned_host_id=slot.assigned_host_id or event.host_id,
        is_waitlisted=is_waitlisted,
        waitlist_position=position,
    )
    db.add(booking)
    db.flush()

    outbox: List[OutboxMessage] = []
    if not is_waitlisted:
        invite = enqueue_calendar_invite(db, booking, slot, event)
        if invite is not None:
            outbox.append(invite)

    db.commit()
    db.refresh(booking)

    if is_waitlisted:
        logger.info("Booking %s waitlisted at position %s on slot %s", booking.id, position, slot.id)
    else:
        logger.info("Booking %s confirmed on slot %s", booking.id, slot.id)

    return BookingResult(booking=booking, outbox=outbox)


def _reload_locked(db: Session, booking: Booking, slot_id: int) -> None:
    """
    Re-read the booking once its slot is locked. A cancel or move that
    committed in the meantime is seen here, not on the copy loaded earlier.
    """
    db.refresh(booking, with_for_update=True)
    if booking.cancelled_at is not None:
        db.rollback()
        raise SchedulingError("This booking is already cancelled")
    if booking.slot_id != slot_id:
        db.rollback()
        raise SchedulingError("This booking was just moved to another slot, please reload it")


def cancel_booking(
    db: Session,
    token: str,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> BookingResult:
    """
    Cancel a booking and, if that frees a confirmed seat, promote the next
    waitlisted booking. Cancellation, promotion, renumbering and the outbox
    rows commit together.
    """
    now = to_naive_utc(now) if now else datetime.utcnow()
    booking = get_by_token(db, token)
    slot = lock_slot(db, booking.slot_id)
    _reload_locked(db, booking, slot.id)
    event = slot.event

    booking.cancelled_at = now
    booking.cancellation_reason = reason
    db.flush()

    promoted = on_booking_cancelled(db, booking, event, now)

    outbox = enqueue_cancellation_effects(db, booking, slot, event)
    if promoted is not None:
        outbox.extend(enqueue_promotion_effects(db, promoted, slot, event))

    db.commit()
    db.refresh(booking)

    logger.info(
        "Cancelled booking %s on slot %s%s",
        booking.id, slot.id,
        f", promoted booking {promoted.id}" if promoted else "",
    )
    return BookingResult(booking=booking, promoted=promoted, outbox=outbox)


def reschedule_booking(
    db: Session,
    token: str,
    new_slot_id: int,
    now: Optional[datetime] = None,
) -> BookingResult:
    """
    Move a booking to another slot of the same event.

    The new slot's capacity rules apply as for a fresh booking (it may land
    on the waitlist). The seat left behind is released as if cancelled.
    """
    now = to_naive_utc(now) if now else datetime.utcnow()
    booking = get_by_token(db, token)
    if booking.slot_id == new_slot_id:
        raise SchedulingError("Booking is already on this slot")

    # Lock in id order so two opposite moves cannot deadlock
    old_slot_id = booking.slot_id
    locked = {}
    for slot_id in sorted((old_slot_id, new_slot_id)):
        locked[slot_id] = lock_slot(db, slot_id)

    old_slot, new_slot = locked[old_slot_id], locked[new_slot_id]
    _reload_locked(db, booking, old_slot_id)
    if new_slot is None:
        db.rollback()
        raise NotFoundError("Slot not found")
    if new_slot.event_id != old_slot.event_id:
        db.rollback()
        raise SchedulingError("Bookings can only move between slots of the same event")

    event = new_slot.event
    try:
        is_waitlisted, position = _place(
            db, new_slot, event, booking.email, now, exclude_booking_id=booking.id
        )
    except (SchedulingError, NotFoundError):
        db.rollback()
        raise

    was_waitlisted = booking.is_waitlisted

    booking.slot_id = new_slot.id
    booking.is_waitlisted = is_waitlisted
    booking.waitlist_position = position
    booking.assigned_host_id = new_slot.assigned_host_id or event.host_id
    booking.calendar_invite_sent_at = None
    db.flush()

    promoted = release_seat(
        db,
        old_slot.id,
        event,
        now,
        was_waitlisted=was_waitlisted,
        booking_id=booking.id,
    )

    outbox: List[OutboxMessage] = []
    if not is_waitlisted:
        invite = enqueue_calendar_invite(db, booking, new_slot, event)
        if invite is not None:
            outbox.append(invite)
    if promoted is not None:
        outbox.extend(enqueue_promotion_effects(db, promoted, old_slot, event))

    db.commit()
    db.refresh(booking)

    logger.info("Moved booking %s from slot %s to slot %s", booking.id, old_slot.id, new_slot.id)
    return BookingResult(booking=booking, promoted=promoted, outbox=outbox)
