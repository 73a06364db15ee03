# app/models/__init__.py
from app.models.base import Base  # noqa: F401

from app.models.host import Host  # noqa: F401
from app.models.availability_pattern import AvailabilityPattern  # noqa: F401
from app.models.busy_block import BusyBlock, BusyBlockSource  # noqa: F401
from app.models.event import Event, EventHost  # noqa: F401
from app.models.slot import Slot  # noqa: F401
from app.models.booking import Booking  # noqa: F401
from app.models.company_holiday import CompanyHoliday  # noqa: F401
from app.models.round_robin_state import RoundRobinState  # noqa: F401
from app.models.outbox_message import OutboxMessage  # noqa: F401
