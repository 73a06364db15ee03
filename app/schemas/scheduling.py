# app/schemas/scheduling.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.booking import Booking
from app.models.event import Event
from app.models.slot import Slot
from app.services.intervals import Interval
from app.services.pattern_resolver import parse_hhmm


class PatternIn(BaseModel):
    day_of_week: int = Field(ge=0, le=6, description="0=Sunday .. 6=Saturday")
    start_time: str
    end_time: str
    timezone: Optional[str] = None

    @field_validator("start_time", "end_time")
    def validate_hhmm(cls, v: str) -> str:
        parse_hhmm(v)
        return v


class PatternsReplace(BaseModel):
    patterns: List[PatternIn]


class AvailabilityCheckRequest(BaseModel):
    start_time: datetime
    end_time: datetime
    event_id: Optional[int] = None
    # Defaults to the event's participating hosts (or its owner)
    host_ids: Optional[List[int]] = None
    enforce_booking_policy: bool = True

    @model_validator(mode="after")
    def check_target(self) -> "AvailabilityCheckRequest":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        if self.event_id is None and not self.host_ids:
            raise ValueError("event_id or host_ids is required")
        return self


class SlotCreate(BaseModel):
    event_id: int
    start_time: datetime
    end_time: datetime
    assigned_host_id: Optional[int] = None

    @model_validator(mode="after")
    def check_end_after_start(self) -> "SlotCreate":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class BookingCreate(BaseModel):
    slot_id: int
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: str
    phone: Optional[str] = None

    @field_validator("email")
    def validate_email(cls, v: str) -> str:
        v = v.strip()
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("invalid email address")
        return v


class BookingReschedule(BaseModel):
    slot_id: int


class BookingCancel(BaseModel):
    reason: Optional[str] = None


def interval_out(interval: Interval) -> Dict[str, str]:
    return {
        "start_time": interval.start.isoformat(),
        "end_time": interval.end.isoformat(),
    }


def slot_out(slot: Slot) -> Dict[str, Any]:
    return {
        "id": slot.id,
        "event_id": slot.event_id,
        "start_time": slot.start_time.isoformat(),
        "end_time": slot.end_time.isoformat(),
        "assigned_host_id": slot.assigned_host_id,
        "calendar_event_id": slot.calendar_event_id,
        "is_cancelled": slot.is_cancelled,
    }


def event_out(event: Event) -> Dict[str, Any]:
    return {
        "id": event.id,
        "name": event.name,
        "meeting_type": event.meeting_type,
        "duration_minutes": event.duration_minutes,
        "max_attendees": event.max_attendees,
    }


def booking_out(booking: Booking) -> Dict[str, Any]:
    return {
        "id": booking.id,
        "slot_id": booking.slot_id,
        "first_name": booking.first_name,
        "last_name": booking.last_name,
        "email": booking.email,
        "status": (
            "cancelled" if booking.cancelled_at
            else "waitlisted" if booking.is_waitlisted
            else "confirmed"
        ),
        "waitlist_position": booking.waitlist_position,
        "promoted_from_waitlist_at": (
            booking.promoted_from_waitlist_at.isoformat()
            if booking.promoted_from_waitlist_at else None
        ),
        "cancelled_at": booking.cancelled_at.isoformat() if booking.cancelled_at else None,
    }
