"""Room availability: day-granular overlap checks.

Ranges are compared at calendar-day granularity with inclusive bounds:
the candidate is stretched from the start of its first day to the end of
its last day, and so is every existing range. A stay ending on day D
therefore conflicts with a stay starting on day D (no same-day turnover).

Only paid bookings are passed in as existing ranges; unpaid drafts never
block a room.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, NamedTuple


class DateRange(NamedTuple):
    start_date: date
    end_date: date


@dataclass
class AvailabilityResult:
    room_id: str
    start_date: date
    end_date: date
    available: bool
    disabled_dates: list[date]

    def to_dict(self) -> dict:
        return {
            "room_id": self.room_id,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "available": self.available,
            "disabled_dates": [d.isoformat() for d in self.disabled_dates],
        }


def _day(value: date | datetime) -> date:
    # datetime is a subclass of date; drop the time-of-day part
    if isinstance(value, datetime):
        return value.date()
    return value


def _within(day: date, start: date, end: date) -> bool:
    return start <= day <= end


def has_overlap(
    candidate_start: date | datetime,
    candidate_end: date | datetime,
    existing_ranges: Iterable[DateRange | tuple[date, date]],
) -> bool:
    """Return True if the candidate interval touches any existing range.

    Args:
        candidate_start: First day of the requested stay.
        candidate_end: Departure day of the requested stay.
        existing_ranges: (start, end) pairs of paid bookings for one room.

    Returns:
        True on conflict, False if the room is free.

    Raises:
        ValueError: If candidate_start is not before candidate_end.
    """
    target_start = _day(candidate_start)
    target_end = _day(candidate_end)
    if target_start >= target_end:
        raise ValueError("candidate_start must be before candidate_end")

    for existing_start, existing_end in existing_ranges:
        range_start = _day(existing_start)
        range_end = _day(existing_end)

        if (
            _within(target_start, range_start, range_end)
            or _within(target_end, range_start, range_end)
            or (target_start < range_start and target_end > range_end)
        ):
            return True

    return False


def blocking_cutoff(candidate_start: date | datetime) -> date:
    """Day after which a paid range must end to be able to touch the candidate.

    Matches the inclusive daterange exclusion constraint: any paid range
    ending on or after the candidate's first day is relevant, however long
    ago it started.
    """
    return _day(candidate_start) - timedelta(days=1)


def disabled_dates(ranges: Iterable[DateRange | tuple[date, date]]) -> list[date]:
    """Expand ranges into every calendar day they cover, ends included."""
    days: set[date] = set()
    for start, end in ranges:
        day = _day(start)
        last = _day(end)
        while day <= last:
            days.add(day)
            day += timedelta(days=1)
    return sorted(days)
