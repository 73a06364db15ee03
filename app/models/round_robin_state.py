# app/models/round_robin_state.py
from sqlalchemy import Column, DateTime, ForeignKey, Integer

from app.models.base import Base


class RoundRobinState(Base):
    __tablename__ = "round_robin_state"

    id = Column(Integer, primary_key=True, index=True)

    event_id = Column(
        Integer,
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    last_assigned_host_id = Column(
        Integer,
        ForeignKey("hosts.id", ondelete="SET NULL"),
        nullable=True,
    )
    last_assigned_at = Column(DateTime, nullable=True)
    assignment_count = Column(Integer, nullable=False, default=0)
