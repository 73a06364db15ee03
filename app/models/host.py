# app/models/host.py
from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, Text

from app.models.base import Base


class Host(Base):
    """
    A person whose calendar time can be booked.

    Google tokens are optional; a host without them is checked against
    cached busy blocks only.
    """

    __tablename__ = "hosts"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    phone = Column(String(50), nullable=True)

    # IANA name, e.g. "America/New_York". Null falls back to settings.
    timezone = Column(String(64), nullable=True)

    google_access_token = Column(Text, nullable=True)
    google_refresh_token = Column(Text, nullable=True)

    # Personal caps used by round-robin assignment
    max_meetings_per_day = Column(Integer, nullable=False, default=8)
    max_meetings_per_week = Column(Integer, nullable=False, default=30)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    @property
    def display_name(self) -> str:
        return self.name or self.email

    @property
    def has_calendar(self) -> bool:
        return bool(self.google_access_token and self.google_refresh_token)
