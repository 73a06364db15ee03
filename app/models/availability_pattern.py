# app/models/availability_pattern.py
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from app.models.base import Base


class AvailabilityPattern(Base):
    """
    Weekly recurring window in the host's local time.

    Example: Monday 09:00–17:00 America/New_York.
    `day_of_week` uses 0=Sunday .. 6=Saturday.
    """

    __tablename__ = "availability_patterns"

    id = Column(Integer, primary_key=True, index=True)

    host_id = Column(
        Integer,
        ForeignKey("hosts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    day_of_week = Column(Integer, nullable=False)
    start_time = Column(String(5), nullable=False)  # "HH:MM"
    end_time = Column(String(5), nullable=False)  # "HH:MM"
    timezone = Column(String(64), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    host = relationship("Host", backref="availability_patterns")
