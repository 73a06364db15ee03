# app/services/busy_service.py
"""
Build one host's merged busy set: cached calendar/manual busy blocks plus
the host's own non-cancelled slots, each slot widened by its event's buffers.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from app.models.busy_block import BusyBlock
from app.models.event import Event, EventHost, MeetingType
from app.models.slot import Slot
from app.services.intervals import Interval, merge_intervals, to_naive_utc

logger = logging.getLogger(__name__)

# Slots just outside the queried range can still reach into it through
# their buffers; buffers are minutes, so a day of slack is plenty.
_BUFFER_SLACK = timedelta(days=1)


def buffered_slot_interval(slot: Slot, event: Optional[Event]) -> Interval:
    before = timedelta(minutes=(event.buffer_before or 0) if event else 0)
    after = timedelta(minutes=(event.buffer_after or 0) if event else 0)
    return Interval(slot.start_time, slot.end_time).expand(before, after)


def _busy_block_intervals(
    db: Session,
    host_id: int,
    range_start: datetime,
    range_end: datetime,
) -> List[Interval]:
    blocks = (
        db.query(BusyBlock)
        .filter(
            BusyBlock.host_id == host_id,
            BusyBlock.start_time < range_end,
            BusyBlock.end_time > range_start,
        )
        .all()
    )

    out: List[Interval] = []
    for block in blocks:
        if block.end_time <= block.start_time:
            logger.warning("Ignoring empty busy block %s for host %s", block.id, host_id)
            continue
        out.append(Interval(block.start_time, block.end_time))
    return out


def host_slots_query(db: Session, host_id: int):
    """
    Non-cancelled slots that occupy `host_id`.

    A slot belongs to its assigned host when it has one; otherwise to the
    event owner and, except for round-robin pools, to every participating host.
    """
    member_event_ids = (
        db.query(EventHost.event_id)
        .join(Event, Event.id == EventHost.event_id)
        .filter(
            EventHost.host_id == host_id,
            Event.meeting_type != MeetingType.ROUND_ROBIN.value,
        )
    )

    return (
        db.query(Slot)
        .join(Event, Event.id == Slot.event_id)
        .filter(
            Slot.is_cancelled.is_(False),
            or_(
                Slot.assigned_host_id == host_id,
                and_(
                    Slot.assigned_host_id.is_(None),
                    or_(
                        Event.host_id == host_id,
                        Slot.event_id.in_(member_event_ids),
                    ),
                ),
            ),
        )
    )


def _slot_intervals(
    db: Session,
    host_id: int,
    range_start: datetime,
    range_end: datetime,
    exclude_slot_ids: Sequence[int] = (),
) -> List[Interval]:
    query = host_slots_query(db, host_id).filter(
        Slot.start_time < range_end + _BUFFER_SLACK,
        Slot.end_time > range_start - _BUFFER_SLACK,
    )
    if exclude_slot_ids:
        query = query.filter(Slot.id.notin_(list(exclude_slot_ids)))

    out: List[Interval] = []
    for slot in query.all():
        interval = buffered_slot_interval(slot, slot.event)
        if interval.start < range_end and interval.end > range_start:
            out.append(interval)
    return out


def collect_busy_intervals(
    db: Session,
    host_id: int,
    range_start: datetime,
    range_end: datetime,
    *,
    include_busy_blocks: bool = True,
    exclude_slot_ids: Sequence[int] = (),
    extra: Iterable[Interval] = (),
) -> List[Interval]:
    """
    Sorted, merged busy intervals for `host_id` touching `[range_start, range_end)`.

    Existing slots are widened by their own event's buffers; the candidate's
    buffers are applied on top by the constraint filter.
    `extra` lets the caller fold in live calendar data fetched for this
    request in place of the cached blocks.
    """
    range_start = to_naive_utc(range_start)
    range_end = to_naive_utc(range_end)

    raw: List[Interval] = list(extra)
    if include_busy_blocks:
        raw.extend(_busy_block_intervals(db, host_id, range_start, range_end))
    raw.extend(_slot_intervals(db, host_id, range_start, range_end, exclude_slot_ids))

    return merge_intervals(raw)


def collect_busy_by_host(
    db: Session,
    host_ids: Iterable[int],
    range_start: datetime,
    range_end: datetime,
    *,
    exclude_slot_ids: Sequence[int] = (),
) -> Dict[int, List[Interval]]:
    return {
        host_id: collect_busy_intervals(
            db,
            host_id,
            range_start,
            range_end,
            exclude_slot_ids=exclude_slot_ids,
        )
        for host_id in host_ids
    }
