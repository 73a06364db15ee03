# app/services/collective_service.py
"""
Multi-host availability: a candidate is admitted only if every
participating host admits it on their own busy set.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Mapping, Sequence

from sqlalchemy.orm import Session

from app.models.event import Event, EventHost, EventHostRole, MeetingType
from app.models.host import Host
from app.services.availability_service import check_host_availability
from app.services.constraint_filter import (
    ConstraintResult,
    EventPolicy,
    RejectReason,
    check_candidate,
)
from app.services.intervals import Interval

PARTICIPATING_ROLES = (EventHostRole.OWNER, EventHostRole.HOST, EventHostRole.CO_HOST)


@dataclass
class CollectiveResult:
    admitted: bool
    unavailable_host_ids: List[int] = field(default_factory=list)
    reasons: Dict[int, ConstraintResult] = field(default_factory=dict)

    @property
    def reason(self) -> RejectReason | None:
        return None if self.admitted else RejectReason.HOST_UNAVAILABLE


def check_collective(
    candidate: Interval,
    busy_by_host: Mapping[int, Sequence[Interval]],
    policy: EventPolicy,
    now: datetime,
    *,
    enforce_booking_policy: bool = True,
) -> CollectiveResult:
    """AND-fold of `check_candidate` over every host in `busy_by_host`."""
    unavailable: List[int] = []
    reasons: Dict[int, ConstraintResult] = {}

    for host_id, busy in busy_by_host.items():
        result = check_candidate(
            candidate,
            busy,
            policy,
            now,
            enforce_booking_policy=enforce_booking_policy,
        )
        if not result:
            unavailable.append(host_id)
            reasons[host_id] = result

    return CollectiveResult(
        admitted=not unavailable,
        unavailable_host_ids=unavailable,
        reasons=reasons,
    )


def check_hosts_available(
    db: Session,
    host_ids: Sequence[int],
    candidate: Interval,
    policy: EventPolicy,
    now: datetime,
    *,
    enforce_booking_policy: bool = True,
    exclude_slot_ids: Sequence[int] = (),
) -> CollectiveResult:
    """Same fold as `check_collective`, using each host's stored data."""
    unavailable: List[int] = []
    reasons: Dict[int, ConstraintResult] = {}

    for host_id in host_ids:
        result = check_host_availability(
            db,
            host_id,
            candidate,
            policy,
            now,
            enforce_booking_policy=enforce_booking_policy,
            exclude_slot_ids=exclude_slot_ids,
        )
        if not result:
            unavailable.append(host_id)
            reasons[host_id] = result

    return CollectiveResult(
        admitted=not unavailable,
        unavailable_host_ids=unavailable,
        reasons=reasons,
    )


def participating_host_ids(db: Session, event_id: int) -> List[int]:
    rows = (
        db.query(EventHost.host_id)
        .filter(
            EventHost.event_id == event_id,
            EventHost.role.in_(PARTICIPATING_ROLES),
        )
        .order_by(EventHost.created_at.asc(), EventHost.id.asc())
        .all()
    )
    seen: List[int] = []
    for (host_id,) in rows:
        if host_id not in seen:
            seen.append(host_id)
    return seen


def requires_collective_check(event: Event, host_ids: Sequence[int]) -> bool:
    meeting_type = MeetingType(event.meeting_type)
    if meeting_type == MeetingType.COLLECTIVE:
        return bool(host_ids)
    if meeting_type == MeetingType.WEBINAR:
        # only webinars with a co-host
        return any(host_id != event.host_id for host_id in host_ids)
    return False


def unavailable_message(db: Session, host_ids: Sequence[int]) -> str:
    hosts = db.query(Host).filter(Host.id.in_(list(host_ids))).all()
    by_id = {h.id: h.display_name for h in hosts}
    names = ", ".join(by_id.get(h, str(h)) for h in host_ids) or "Some hosts"
    return f"Not all hosts are available. Unavailable: {names}"
