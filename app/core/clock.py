# app/core/clock.py
from datetime import datetime


def get_now() -> datetime:
    """Current time as naive UTC. Routers take it as a dependency so tests can pin it."""
    return datetime.utcnow()
