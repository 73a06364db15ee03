# app/services/outbox_service.py
"""
Outbox for external side effects (calendar invites, email, SMS).

State changes enqueue messages in their own transaction; `OutboxDispatcher`
delivers them afterwards. A delivery failure is logged and the message stays
pending until it runs out of attempts. It never undoes the state change
that produced it.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from app.config import get_settings
from app.core.errors import CalendarError, NotificationError
from app.models.booking import Booking
from app.models.host import Host
from app.models.outbox_message import OutboxKind, OutboxMessage, OutboxStatus
from app.services.email_client import get_email_client
from app.services.sms_client import get_sms_client

logger = logging.getLogger(__name__)


def enqueue(db: Session, kind: str, payload: Dict[str, Any]) -> OutboxMessage:
    """Add a pending message to the session without committing."""
    message = OutboxMessage(
        kind=kind,
        payload=payload,
        status=OutboxStatus.PENDING,
        attempts=0,
    )
    db.add(message)
    return message


def _optional(factory: Callable[[], Any]) -> Any:
    try:
        return factory()
    except RuntimeError as e:
        logger.warning("Notification provider unavailable: %s", e)
        return None


def optional_email_client():
    """Dependency: configured EmailClient, or None when email is not set up."""
    return _optional(get_email_client)


def optional_sms_client():
    """Dependency: configured SmsClient, or None when SMS is not set up."""
    return _optional(get_sms_client)


class OutboxDispatcher:
    """
    Delivers pending outbox messages once per `dispatch` call.

    Clients are optional: a message whose provider is not configured counts
    as a failed attempt.
    """

    def __init__(
        self,
        db: Session,
        calendar_client=None,
        email_client=None,
        sms_client=None,
        max_attempts: Optional[int] = None,
    ):
        self.db = db
        self.calendar_client = calendar_client
        self.email_client = email_client
        self.sms_client = sms_client
        self.max_attempts = max_attempts or get_settings().OUTBOX_MAX_ATTEMPTS

    def _deliver_calendar(self, payload: Dict[str, Any]) -> None:
        if self.calendar_client is None:
            raise CalendarError("calendar client not configured")
        host = self.db.get(Host, payload["host_id"])
        if host is None:
            raise CalendarError(f"host {payload['host_id']} no longer exists")

        self.calendar_client.add_attendee(host, payload["calendar_event_id"], payload["email"])

        booking_id = payload.get("booking_id")
        if booking_id is not None:
            booking = self.db.get(Booking, booking_id)
            if booking is not None:
                booking.calendar_invite_sent_at = datetime.utcnow()

    def _deliver_email(self, payload: Dict[str, Any]) -> None:
        if self.email_client is None:
            raise NotificationError("email client not configured")
        self.email_client.send(payload["to"], payload["subject"], payload["html"])

    def _deliver_sms(self, payload: Dict[str, Any]) -> None:
        if self.sms_client is None:
            raise NotificationError("sms client not configured")
        self.sms_client.send_sms(payload["to"], payload["body"])

    def deliver(self, message: OutboxMessage) -> bool:
        handlers = {
            OutboxKind.CALENDAR_ADD_ATTENDEE: self._deliver_calendar,
            OutboxKind.EMAIL_SEND: self._deliver_email,
            OutboxKind.SMS_SEND: self._deliver_sms,
        }
        handler = handlers.get(message.kind)

        message.attempts = (message.attempts or 0) + 1
        try:
            if handler is None:
                raise NotificationError(f"unknown outbox kind {message.kind!r}")
            handler(message.payload or {})
        except (CalendarError, NotificationError) as e:
            message.last_error = str(e)
            if message.attempts >= self.max_attempts:
                message.status = OutboxStatus.FAILED
            logger.warning(
                "Outbox message %s (%s) failed, attempt %s: %s",
                message.id, message.kind, message.attempts, e,
            )
            self.db.commit()
            return False

        message.status = OutboxStatus.SENT
        message.sent_at = datetime.utcnow()
        message.last_error = None
        self.db.commit()
        return True

    def dispatch(
        self,
        message_ids: Optional[Iterable[int]] = None,
        limit: Optional[int] = None,
    ) -> int:
        """
        Attempt every pending message (or only `message_ids`) once.
        Returns how many were delivered.
        """
        query = self.db.query(OutboxMessage).filter(
            OutboxMessage.status == OutboxStatus.PENDING,
        )
        if message_ids is not None:
            ids: List[int] = [i for i in message_ids if i is not None]
            if not ids:
                return 0
            query = query.filter(OutboxMessage.id.in_(ids))

        query = query.order_by(OutboxMessage.created_at.asc(), OutboxMessage.id.asc())
        query = query.limit(limit or get_settings().OUTBOX_BATCH_SIZE)

        delivered = 0
        for message in query.all():
            if self.deliver(message):
                delivered += 1
        return delivered


def dispatch(
    db: Session,
    message_ids: Optional[Iterable[int]] = None,
    limit: Optional[int] = None,
    *,
    calendar_client=None,
    email_client=None,
    sms_client=None,
) -> int:
    dispatcher = OutboxDispatcher(
        db,
        calendar_client=calendar_client,
        email_client=email_client,
        sms_client=sms_client,
    )
    return dispatcher.dispatch(message_ids=message_ids, limit=limit)
