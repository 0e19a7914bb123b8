"""Clinic wall-clock helpers

Schedule and appointment times are stored as naive datetimes in the
clinic's local time. Anything timezone-aware is converted on the way in.
"""

from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from ..config import CLINIC_TIMEZONE

CLINIC_TZ = ZoneInfo(CLINIC_TIMEZONE)


def clinic_now() -> datetime:
    """Current time on the clinic's wall clock (naive)"""
    return datetime.now(CLINIC_TZ).replace(tzinfo=None)


def to_clinic_time(value: Optional[datetime]) -> Optional[datetime]:
    """
    Convert an aware datetime to naive clinic time.

    Naive values are already clinic time and are returned unchanged.
    """
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(CLINIC_TZ).replace(tzinfo=None)
