# app/models/busy_block.py
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from app.models.base import Base


class BusyBlockSource:
    CALENDAR = "calendar"
    MANUAL = "manual"


class BusyBlock(Base):
    """Cached busy time for a host, refreshed by calendar sync."""

    __tablename__ = "busy_blocks"

    id = Column(Integer, primary_key=True, index=True)

    host_id = Column(
        Integer,
        ForeignKey("hosts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False)

    source = Column(String(16), nullable=False, default=BusyBlockSource.CALENDAR)
    synced_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    host = relationship("Host", backref="busy_blocks")
