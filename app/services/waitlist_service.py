# app/services/waitlist_service.py
"""
Waitlist bookkeeping for a slot.

Invariant: among non-cancelled waitlisted bookings of a slot, positions are
exactly 1..M in arrival order.

None of these functions commit. The caller runs cancel + promote + renumber
as one transaction; the slot row and its waitlisted bookings are locked
(`SELECT ... FOR UPDATE`) so concurrent cancellations on the same slot
serialise instead of both promoting the same booking.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.booking import Booking
from app.models.event import Event
from app.models.slot import Slot

logger = logging.getLogger(__name__)


def lock_slot(db: Session, slot_id: int) -> Optional[Slot]:
    return db.query(Slot).filter(Slot.id == slot_id).with_for_update().first()


def waitlisted_bookings(
    db: Session,
    slot_id: int,
    exclude_ids: Iterable[int] = (),
    *,
    for_update: bool = False,
) -> List[Booking]:
    """Active waitlisted bookings of the slot, lowest position first."""
    query = db.query(Booking).filter(
        Booking.slot_id == slot_id,
        Booking.is_waitlisted.is_(True),
        Booking.cancelled_at.is_(None),
    )
    exclude = list(exclude_ids)
    if exclude:
        query = query.filter(Booking.id.notin_(exclude))
    query = query.order_by(
        Booking.waitlist_position.is_(None),
        Booking.waitlist_position.asc(),
        Booking.created_at.asc(),
        Booking.id.asc(),
    )
    if for_update:
        query = query.with_for_update()
    return query.all()


def confirmed_count(db: Session, slot_id: int) -> int:
    return (
        db.query(Booking)
        .filter(
            Booking.slot_id == slot_id,
            Booking.is_waitlisted.is_(False),
            Booking.cancelled_at.is_(None),
        )
        .count()
    )


def waitlist_count(db: Session, slot_id: int) -> int:
    return (
        db.query(Booking)
        .filter(
            Booking.slot_id == slot_id,
            Booking.is_waitlisted.is_(True),
            Booking.cancelled_at.is_(None),
        )
        .count()
    )


def renumber_waitlist(
    db: Session,
    slot_id: int,
    exclude_ids: Iterable[int] = (),
) -> List[Booking]:
    """
    Reassign positions 1..M over the remaining waitlist, touching only rows
    whose position changes. A row that fails to update is logged and left
    as is; the others are still renumbered.

    Returns the remaining waitlist in order.
    """
    remaining = waitlisted_bookings(db, slot_id, exclude_ids, for_update=True)

    for expected, booking in enumerate(remaining, start=1):
        if booking.waitlist_position == expected:
            continue
        previous = booking.waitlist_position
        try:
            with db.begin_nested():
                booking.waitlist_position = expected
                db.flush()
        except SQLAlchemyError as e:
            logger.warning(
                "Failed to renumber waitlisted booking %s (%s -> %s): %s",
                booking.id, previous, expected, e,
            )

    return remaining


def promote_next(db: Session, slot_id: int, now: datetime) -> Optional[Booking]:
    """
    Confirm the lowest-position waitlisted booking and close the gap it
    leaves. Returns the promoted booking, or None if nobody is waiting.
    """
    queue = waitlisted_bookings(db, slot_id, for_update=True)
    if not queue:
        return None

    promotee = queue[0]
    promotee.is_waitlisted = False
    promotee.waitlist_position = None
    promotee.promoted_from_waitlist_at = now
    db.flush()

    renumber_waitlist(db, slot_id, exclude_ids=[promotee.id])

    logger.info("Promoted booking %s from waitlist on slot %s", promotee.id, slot_id)
    return promotee


def release_seat(
    db: Session,
    slot_id: int,
    event: Event,
    now: datetime,
    *,
    was_waitlisted: bool,
    booking_id: int,
) -> Optional[Booking]:
    """
    Waitlist follow-up after booking `booking_id` left `slot_id`, either
    by cancellation or by moving to another slot.

    A freed confirmed seat promotes the next in line when the event has a
    waitlist; a vacated waitlist place only closes its gap.
    """
    lock_slot(db, slot_id)

    if was_waitlisted:
        renumber_waitlist(db, slot_id, exclude_ids=[booking_id])
        return None

    if not event.waitlist_enabled:
        return None

    slot = db.get(Slot, slot_id)
    if slot is None or slot.is_cancelled:
        return None

    capacity = event.max_attendees or 0
    if confirmed_count(db, slot_id) >= capacity:
        return None

    return promote_next(db, slot_id, now)


def on_booking_cancelled(
    db: Session,
    booking: Booking,
    event: Event,
    now: datetime,
) -> Optional[Booking]:
    """Run after `booking.cancelled_at` is set and flushed."""
    return release_seat(
        db,
        booking.slot_id,
        event,
        now,
        was_waitlisted=booking.is_waitlisted,
        booking_id=booking.id,
    )
