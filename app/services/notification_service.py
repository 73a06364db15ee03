# app/services/notification_service.py
"""
Message rendering for attendee notifications, and the outbox entries
that carry them (plus the calendar attendee update) to the providers.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import timezone
from html import escape
from typing import List, Optional

from sqlalchemy.orm import Session

from app.models.booking import Booking
from app.models.event import Event
from app.models.host import Host
from app.models.outbox_message import OutboxKind, OutboxMessage
from app.models.slot import Slot
from app.services.outbox_service import enqueue
from app.services.pattern_resolver import host_timezone, load_zone


@dataclass
class RenderedMessage:
    subject: str
    text: str
    html: str


def format_slot_time(slot: Slot, tz_name: str) -> str:
    """e.g. "Monday, March 3, 2025 at 9:00 AM (America/New_York)" """
    local = slot.start_time.replace(tzinfo=timezone.utc).astimezone(load_zone(tz_name))
    hour = local.strftime("%I").lstrip("0") or "12"
    return (
        f"{local.strftime('%A, %B')} {local.day}, {local.year} at "
        f"{hour}:{local.strftime('%M %p')} ({tz_name})"
    )


def _html(paragraphs: List[str]) -> str:
    return "".join(f"<p>{escape(p)}</p>" for p in paragraphs)


def render_promotion(booking: Booking, slot: Slot, event: Event, tz_name: str) -> RenderedMessage:
    when = format_slot_time(slot, tz_name)
    lines = [
        f"Hi {booking.first_name},",
        f"Good news! A spot opened up and you're now confirmed for {event.name} on {when}.",
        "You can view or cancel your booking from your confirmation email.",
    ]
    return RenderedMessage(
        subject=f"You're in: {event.name}",
        text="\n\n".join(lines),
        html=_html(lines),
    )


def render_cancellation(booking: Booking, slot: Slot, event: Event, tz_name: str) -> RenderedMessage:
    when = format_slot_time(slot, tz_name)
    lines = [
        f"Hi {booking.first_name},",
        f"Your booking for {event.name} on {when} has been cancelled.",
    ]
    if booking.cancellation_reason:
        lines.append(f"Reason: {booking.cancellation_reason}")
    return RenderedMessage(
        subject=f"Cancelled: {event.name}",
        text="\n\n".join(lines),
        html=_html(lines),
    )


def _slot_host(db: Session, slot: Slot, event: Event) -> Optional[Host]:
    host_id = slot.assigned_host_id or event.host_id
    return db.get(Host, host_id) if host_id else None


def enqueue_calendar_invite(
    db: Session,
    booking: Booking,
    slot: Slot,
    event: Event,
) -> Optional[OutboxMessage]:
    """Add the attendee to the slot's calendar event, if it has one."""
    host = _slot_host(db, slot, event)
    if host is None or not slot.calendar_event_id:
        return None
    return enqueue(
        db,
        OutboxKind.CALENDAR_ADD_ATTENDEE,
        {
            "host_id": host.id,
            "calendar_event_id": slot.calendar_event_id,
            "email": booking.email,
            "booking_id": booking.id,
        },
    )


def enqueue_promotion_effects(
    db: Session,
    booking: Booking,
    slot: Slot,
    event: Event,
) -> List[OutboxMessage]:
    """
    Record the promotee's calendar invite, email and (if a phone is on
    file) SMS. Nothing is sent here; the caller's transaction owns the rows.
    """
    host = _slot_host(db, slot, event)
    tz_name = host_timezone(host)
    message = render_promotion(booking, slot, event, tz_name)

    created: List[OutboxMessage] = []

    invite = enqueue_calendar_invite(db, booking, slot, event)
    if invite is not None:
        created.append(invite)

    created.append(
        enqueue(
            db,
            OutboxKind.EMAIL_SEND,
            {"to": booking.email, "subject": message.subject, "html": message.html},
        )
    )

    if booking.phone:
        created.append(
            enqueue(
                db,
                OutboxKind.SMS_SEND,
                {
                    "to": booking.phone,
                    "body": (
                        f"{event.name}: a spot opened up and you're confirmed for "
                        f"{format_slot_time(slot, tz_name)}."
                    ),
                },
            )
        )

    return created


def enqueue_cancellation_effects(
    db: Session,
    booking: Booking,
    slot: Slot,
    event: Event,
) -> List[OutboxMessage]:
    host = _slot_host(db, slot, event)
    message = render_cancellation(booking, slot, event, host_timezone(host))
    return [
        enqueue(
            db,
            OutboxKind.EMAIL_SEND,
            {"to": booking.email, "subject": message.subject, "html": message.html},
        )
    ]
