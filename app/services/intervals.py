# app/services/intervals.py
"""
Half-open time intervals `[start, end)` over naive UTC datetimes.

All scheduling math goes through this module: availability windows,
busy sets, buffered candidates. Intervals that merely touch
(a.end == b.start) do not overlap, but `merge_intervals` still joins them.
"""
from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence


def to_naive_utc(dt: datetime) -> datetime:
    """Aware datetimes are converted to UTC; naive ones are assumed UTC."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True, order=True)
class Interval:
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise ValueError("interval end must be after start")

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, other: "Interval") -> bool:
        return self.start < other.end and other.start < self.end

    def contains(self, other: "Interval") -> bool:
        return self.start <= other.start and other.end <= self.end

    def expand(
        self,
        before: timedelta = timedelta(0),
        after: timedelta = timedelta(0),
    ) -> "Interval":
        return Interval(self.start - before, self.end + after)

    def intersection(self, other: "Interval") -> Optional["Interval"]:
        start = max(self.start, other.start)
        end = min(self.end, other.end)
        if start < end:
            return Interval(start, end)
        return None


def merge_intervals(intervals: Iterable[Interval]) -> List[Interval]:
    """
    Union of `intervals` as a sorted list with no two members that
    overlap or touch.
    """
    ordered = sorted(intervals, key=lambda i: (i.start, i.end))
    merged: List[Interval] = []

    for current in ordered:
        if merged and current.start <= merged[-1].end:
            last = merged[-1]
            if current.end > last.end:
                merged[-1] = Interval(last.start, current.end)
        else:
            merged.append(current)

    return merged


def total_duration(intervals: Iterable[Interval]) -> timedelta:
    total = timedelta(0)
    for interval in intervals:
        total += interval.duration
    return total


def first_overlap(merged: Sequence[Interval], candidate: Interval) -> Optional[Interval]:
    """
    First interval in `merged` overlapping `candidate`.

    `merged` must come from `merge_intervals` (sorted, disjoint), which
    makes ends ascending too, so only the block right after the last one
    ending at or before `candidate.start` can overlap first.
    """
    if not merged:
        return None

    ends = [i.end for i in merged]
    idx = bisect_right(ends, candidate.start)
    if idx < len(merged) and merged[idx].overlaps(candidate):
        return merged[idx]
    return None


def intersect_interval_sets(
    a: Sequence[Interval],
    b: Sequence[Interval],
) -> List[Interval]:
    """Pairwise intersection of two interval lists, merged."""
    out: List[Interval] = []
    for x in a:
        for y in b:
            common = x.intersection(y)
            if common is not None:
                out.append(common)
    return merge_intervals(out)
