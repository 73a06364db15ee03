# tests/test_outbox.py
from datetime import timedelta

from factories import NOW, make_booking, make_event, make_host, make_slot, reset_db, session

from app.core.errors import CalendarError, NotificationError
from app.models import OutboxMessage
from app.models.outbox_message import OutboxKind, OutboxStatus
from app.services.notification_service import enqueue_promotion_effects
from app.services.outbox_service import OutboxDispatcher, dispatch, enqueue


class FakeEmailClient:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    def send(self, to, subject, html):
        if self.fail:
            raise NotificationError("resend is down")
        self.sent.append({"to": to, "subject": subject, "html": html})
        return "email-1"


class FakeSmsClient:
    def __init__(self):
        self.sent = []

    def send_sms(self, to_number, body):
        self.sent.append({"to": to_number, "body": body})
        return "SM123"


class FakeCalendarClient:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.attendees = []

    def add_attendee(self, host, event_id, email):
        if self.fail:
            raise CalendarError("token revoked")
        self.attendees.append((host.id, event_id, email))


def setup_module(module):
    reset_db()


def _promotion_messages(db, phone="+15550001111"):
    host = make_host(db)
    event = make_event(db, host, name="Office hours", max_attendees=1, waitlist_enabled=True)
    slot = make_slot(db, event, NOW + timedelta(days=2))
    slot.calendar_event_id = "gcal-1"
    db.commit()
    booking = make_booking(db, slot, "lee@example.com", phone=phone)

    messages = enqueue_promotion_effects(db, booking, slot, event)
    db.commit()
    return host, booking, messages


def test_promotion_enqueues_invite_email_and_sms():
    reset_db()
    db = session()
    try:
        host, booking, messages = _promotion_messages(db)

        assert [m.kind for m in messages] == [
            OutboxKind.CALENDAR_ADD_ATTENDEE,
            OutboxKind.EMAIL_SEND,
            OutboxKind.SMS_SEND,
        ]
        assert all(m.status == OutboxStatus.PENDING for m in messages)
        assert messages[0].payload["calendar_event_id"] == "gcal-1"
        assert messages[1].payload["subject"] == "You're in: Office hours"
        assert "Office hours" in messages[2].payload["body"]
    finally:
        db.close()


def test_no_sms_without_phone():
    reset_db()
    db = session()
    try:
        _, _, messages = _promotion_messages(db, phone=None)
        assert OutboxKind.SMS_SEND not in [m.kind for m in messages]
    finally:
        db.close()


def test_dispatch_delivers_and_stamps_invite():
    reset_db()
    db = session()
    try:
        host, booking, messages = _promotion_messages(db)
        calendar, email, sms = FakeCalendarClient(), FakeEmailClient(), FakeSmsClient()

        delivered = dispatch(
            db,
            [m.id for m in messages],
            calendar_client=calendar,
            email_client=email,
            sms_client=sms,
        )

        assert delivered == 3
        assert calendar.attendees == [(host.id, "gcal-1", "lee@example.com")]
        assert email.sent[0]["to"] == "lee@example.com"
        assert sms.sent[0]["to"] == "+15550001111"

        db.refresh(booking)
        assert booking.calendar_invite_sent_at is not None
        rows = db.query(OutboxMessage).all()
        assert {r.status for r in rows} == {OutboxStatus.SENT}
        assert all(r.attempts == 1 and r.sent_at is not None for r in rows)
    finally:
        db.close()


def test_failures_stay_pending_then_fail():
    reset_db()
    db = session()
    try:
        host, booking, messages = _promotion_messages(db, phone=None)
        dispatcher = OutboxDispatcher(
            db,
            calendar_client=FakeCalendarClient(fail=True),
            email_client=FakeEmailClient(),
            max_attempts=2,
        )

        assert dispatcher.dispatch() == 1
        invite = db.query(OutboxMessage).filter_by(kind=OutboxKind.CALENDAR_ADD_ATTENDEE).one()
        assert invite.status == OutboxStatus.PENDING
        assert invite.attempts == 1
        assert "token revoked" in invite.last_error

        assert dispatcher.dispatch() == 0
        db.refresh(invite)
        assert invite.status == OutboxStatus.FAILED
        assert invite.attempts == 2

        # failed messages are not retried
        assert dispatcher.dispatch() == 0
        db.refresh(invite)
        assert invite.attempts == 2

        db.refresh(booking)
        assert booking.calendar_invite_sent_at is None
    finally:
        db.close()


def test_missing_provider_counts_as_failed_attempt():
    reset_db()
    db = session()
    try:
        message = enqueue(db, OutboxKind.EMAIL_SEND, {"to": "a@example.com", "subject": "s", "html": "h"})
        db.commit()

        assert dispatch(db, [message.id]) == 0
        db.refresh(message)
        assert message.status == OutboxStatus.PENDING
        assert message.last_error == "email client not configured"
    finally:
        db.close()


def test_dispatch_with_empty_ids_is_noop():
    reset_db()
    db = session()
    try:
        enqueue(db, OutboxKind.SMS_SEND, {"to": "+1", "body": "hi"})
        db.commit()
        assert dispatch(db, [], sms_client=FakeSmsClient()) == 0
        assert db.query(OutboxMessage).one().attempts == 0
    finally:
        db.close()
