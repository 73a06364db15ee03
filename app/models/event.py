# app/models/event.py
from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from app.models.base import Base


class MeetingType(str, Enum):
    ONE_ON_ONE = "one_on_one"
    GROUP = "group"
    COLLECTIVE = "collective"
    ROUND_ROBIN = "round_robin"
    PANEL = "panel"
    WEBINAR = "webinar"


class RoundRobinStrategy(str, Enum):
    CYCLE = "cycle"
    LEAST_BOOKINGS = "least_bookings"
    AVAILABILITY_WEIGHTED = "availability_weighted"


class RoundRobinPeriod(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    ALL_TIME = "all_time"


class EventHostRole:
    OWNER = "owner"
    HOST = "host"
    CO_HOST = "co_host"


class Event(Base):
    """
    A bookable event type and its booking policy.

    Nullable policy columns fall back to the defaults in settings.
    """

    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(String, nullable=True)

    host_id = Column(
        Integer,
        ForeignKey("hosts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    meeting_type = Column(
        String(32),
        nullable=False,
        default=MeetingType.GROUP.value,
    )

    duration_minutes = Column(Integer, nullable=False, default=30)
    max_attendees = Column(Integer, nullable=False, default=1)

    min_notice_hours = Column(Integer, nullable=True)
    booking_window_days = Column(Integer, nullable=True)
    buffer_before = Column(Integer, nullable=False, default=0)  # minutes
    buffer_after = Column(Integer, nullable=False, default=0)  # minutes
    start_time_increment = Column(Integer, nullable=True)  # minutes

    max_daily_bookings = Column(Integer, nullable=True)
    max_weekly_bookings = Column(Integer, nullable=True)

    waitlist_enabled = Column(Boolean, nullable=False, default=False)
    waitlist_limit = Column(Integer, nullable=True)  # null = unlimited

    round_robin_strategy = Column(String(32), nullable=True)
    round_robin_period = Column(
        String(16),
        nullable=False,
        default=RoundRobinPeriod.WEEK.value,
    )

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    host = relationship("Host", backref="owned_events")


class EventHost(Base):
    """Participating host of an event (co-hosts, round-robin pool)."""

    __tablename__ = "event_hosts"

    id = Column(Integer, primary_key=True, index=True)

    event_id = Column(
        Integer,
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    host_id = Column(
        Integer,
        ForeignKey("hosts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    role = Column(String(16), nullable=False, default=EventHostRole.HOST)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    event = relationship("Event", backref="event_hosts")
    host = relationship("Host")
