# app/models/booking.py
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship

from app.models.base import Base


class Booking(Base):
    """
    One attendee's seat (or waitlist place) on a slot.

    Lifecycle: confirmed -> cancelled, waitlisted -> confirmed (promotion),
    waitlisted -> cancelled. Cancellation is terminal.
    """

    __tablename__ = "bookings"
    __table_args__ = (
        Index("ix_bookings_waitlist", "slot_id", "is_waitlisted", "waitlist_position"),
    )

    id = Column(Integer, primary_key=True, index=True)

    slot_id = Column(
        Integer,
        ForeignKey("slots.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    phone = Column(String(50), nullable=True)

    manage_token = Column(String(64), nullable=False, unique=True, index=True)

    assigned_host_id = Column(
        Integer,
        ForeignKey("hosts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    is_waitlisted = Column(Boolean, nullable=False, default=False)
    # 1 = next to be promoted; null when confirmed
    waitlist_position = Column(Integer, nullable=True)
    promoted_from_waitlist_at = Column(DateTime, nullable=True)

    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(String, nullable=True)

    calendar_invite_sent_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    slot = relationship("Slot", backref="bookings")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_active(self) -> bool:
        return self.cancelled_at is None
