# app/models/outbox_message.py
from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text

from app.models.base import Base


class OutboxKind:
    CALENDAR_ADD_ATTENDEE = "calendar.add_attendee"
    EMAIL_SEND = "email.send"
    SMS_SEND = "sms.send"


class OutboxStatus:
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class OutboxMessage(Base):
    """
    An external side effect recorded in the same transaction as the
    state change that caused it, delivered later by the outbox worker.
    """

    __tablename__ = "outbox_messages"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String(64), nullable=False)
    payload = Column(JSON, nullable=False, default=dict)

    status = Column(String(16), nullable=False, default=OutboxStatus.PENDING, index=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    sent_at = Column(DateTime, nullable=True)
