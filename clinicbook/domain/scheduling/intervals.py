"""
Interval arithmetic for appointment slots

All intervals are half-open: [start, end). Two slots that touch
(one ends exactly when the next starts) do not overlap.
"""

from datetime import datetime
from typing import Iterable, Optional, Protocol

from ...shared.clock import to_clinic_time


class TimedSlot(Protocol):
    id: Optional[int]
    start_time: datetime
    end_time: datetime


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """True when [start_a, end_a) and [start_b, end_b) share any instant"""
    return start_a < end_b and end_a > start_b


def find_conflict(
    start: datetime,
    end: datetime,
    existing: Iterable[TimedSlot],
    exclude_id: Optional[int] = None,
) -> Optional[TimedSlot]:
    """
    Return the first slot in ``existing`` that overlaps [start, end).

    Args:
        start: start of the range to check
        end: end of the range to check
        existing: slots already held by the doctor
        exclude_id: slot to skip (the one being edited)

    Returns:
        The colliding slot, or None when the range is free
    """
    start, end = to_clinic_time(start), to_clinic_time(end)
    for slot in existing:
        if exclude_id is not None and slot.id == exclude_id:
            continue
        if overlaps(start, end, slot.start_time, slot.end_time):
            return slot
    return None


def check_within_schedule(schedule, start: datetime, end: datetime) -> Optional[str]:
    """
    Check that [start, end) fits inside the schedule's single-day window.

    Dates and times are compared separately; windows never cross midnight.

    Returns:
        None when contained, otherwise the reason naming the failed bound
    """
    start, end = to_clinic_time(start), to_clinic_time(end)
    if end <= start:
        return "end time must be after start time"
    if start.date() != schedule.work_date or end.date() != schedule.work_date:
        return "date does not match schedule date"
    if start.time() < schedule.start_time:
        return "start before schedule start"
    if end.time() > schedule.end_time:
        return "end after schedule end"
    return None
