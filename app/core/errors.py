# app/core/errors.py
"""
Domain exceptions shared by services and routers.

Services raise these; routers translate them with `to_http_exception`
so the status code mapping lives in one place.
"""
from __future__ import annotations

from typing import Iterable, List, Optional

from fastapi import HTTPException

STATUS_BAD_REQUEST = 400
STATUS_NOT_FOUND = 404
STATUS_CONFLICT = 409


class SchedulingError(ValueError):
    """A request that the scheduling rules reject (surfaced as a 400)."""

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.reason = reason


class SlotUnavailableError(SchedulingError):
    """The candidate time is blocked for one or more hosts."""

    def __init__(
        self,
        message: str,
        reason: Optional[str] = None,
        host_ids: Iterable[int] = (),
    ):
        super().__init__(message, reason=reason)
        self.host_ids: List[int] = list(host_ids)


class CapacityError(SchedulingError):
    """Slot is full and the waitlist cannot take the booking."""


class NotFoundError(LookupError):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class CalendarError(RuntimeError):
    """Any failure talking to the external calendar provider."""


class NotificationError(RuntimeError):
    """Any failure handing a message to the email or SMS provider."""


def to_http_exception(exc: Exception) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=STATUS_NOT_FOUND, detail=exc.message)
    if isinstance(exc, SchedulingError):
        detail = {"error": exc.message}
        if exc.reason:
            detail["reason"] = exc.reason
        if isinstance(exc, SlotUnavailableError) and exc.host_ids:
            detail["host_ids"] = exc.host_ids
        return HTTPException(status_code=STATUS_BAD_REQUEST, detail=detail)
    if isinstance(exc, ValueError):
        return HTTPException(status_code=STATUS_BAD_REQUEST, detail=str(exc))
    raise exc
