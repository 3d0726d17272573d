"""
Clock and clinic-timezone helpers.

Slot dates and times are clinic-local wall-clock values; holds and audit
timestamps are timezone-aware UTC. Services take an injectable ``clock``
(a zero-argument callable returning aware UTC) so expiry can be tested.
"""

from datetime import date, datetime, timezone
from typing import Callable
from zoneinfo import ZoneInfo

from ..config import CLINIC_TIMEZONE

Clock = Callable[[], datetime]


def system_clock() -> datetime:
    return datetime.now(timezone.utc)


def to_clinic_time(utc_dt: datetime, timezone_str: str = CLINIC_TIMEZONE) -> datetime:
    """
    Convert an aware UTC datetime to clinic local time.

    Naive input is assumed to be UTC.
    """
    if utc_dt.tzinfo is None:
        utc_dt = utc_dt.replace(tzinfo=timezone.utc)
    return utc_dt.astimezone(ZoneInfo(timezone_str))


def clinic_now(clock: Clock, timezone_str: str = CLINIC_TIMEZONE) -> datetime:
    """Clinic-local naive wall clock, comparable with slot start datetimes."""
    return to_clinic_time(clock(), timezone_str).replace(tzinfo=None)


def clinic_today(clock: Clock, timezone_str: str = CLINIC_TIMEZONE) -> date:
    return clinic_now(clock, timezone_str).date()
