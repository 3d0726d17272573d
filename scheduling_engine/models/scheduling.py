"""
Core scheduling records: work templates, slots, holds and blocked ranges.

Plain dataclasses with no display concerns; formatting lives in
``scheduling_engine.utils.formatting``.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import List, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def day_of_week(value: date) -> int:
    """Day number in the clinic convention: 0=Sunday ... 6=Saturday."""
    return (value.weekday() + 1) % 7


def minutes_between(start: time, end: time) -> int:
    return int(
        (datetime.combine(date.min, end) - datetime.combine(date.min, start)).total_seconds() // 60
    )


def minutes_of_day(value: time) -> int:
    return value.hour * 60 + value.minute


def time_from_minutes(minutes: int) -> time:
    """Inverse of minutes_of_day; raises ValueError past the end of the day."""
    if not 0 <= minutes < 24 * 60:
        raise ValueError(f"{minutes} minutes is outside a single day")
    return time(minutes // 60, minutes % 60)


def add_minutes(value: time, minutes: int) -> time:
    return time_from_minutes(minutes_of_day(value) + minutes)


def is_past_expiry(expires_at: datetime, now: datetime) -> bool:
    """The single hold-expiry rule used by reads, mutations and the cleanup sweep."""
    return now >= expires_at


def times_overlap(start_a: time, end_a: time, start_b: time, end_b: time) -> bool:
    """Half-open interval intersection: [start_a, end_a) and [start_b, end_b)."""
    return start_a < end_b and start_b < end_a


class SlotStatus(str, Enum):
    AVAILABLE = "available"
    HELD = "held"
    BOOKED = "booked"
    BLOCKED = "blocked"
    CANCELLED = "cancelled"


class HoldStatus(str, Enum):
    ACTIVE = "active"
    RELEASED = "released"
    EXPIRED = "expired"
    CONSUMED = "consumed"
    PREEMPTED = "preempted"


class BlockKind(str, Enum):
    LEAVE = "leave"
    MEETING = "meeting"
    HOLIDAY = "holiday"
    OTHER = "other"


@dataclass
class TimeRange:
    """Working period within a day. Invariant: end > start."""
    start: time
    end: time
    is_active: bool = True

    def __post_init__(self):
        if self.end <= self.start:
            raise ValueError(f"TimeRange end {self.end} must be after start {self.start}")

    @property
    def minutes(self) -> int:
        return minutes_between(self.start, self.end)


@dataclass
class WorkDay:
    day_of_week: int  # 0=Sunday ... 6=Saturday
    is_active: bool = True
    time_ranges: List[TimeRange] = field(default_factory=list)

    def active_ranges(self) -> List[TimeRange]:
        return sorted(
            (tr for tr in self.time_ranges if tr.is_active),
            key=lambda tr: tr.start
        )


@dataclass
class ScheduleSettings:
    """Per-doctor booking policy attached to the work template."""
    max_appointments_per_day: int = 50
    min_advance_booking_days: int = 1
    max_advance_booking_days: int = 90
    allow_same_day_booking: bool = True
    allow_emergency_booking: bool = True
    consultation_fee: float = 0.0
    hourly_operating_cost: float = 0.0


@dataclass
class WorkTemplate:
    """A doctor's recurring weekly availability pattern."""
    doctor_id: str
    work_days: List[WorkDay] = field(default_factory=list)
    appointment_duration: int = 30
    is_active: bool = True
    settings: ScheduleSettings = field(default_factory=ScheduleSettings)
    updated_at: Optional[datetime] = None

    def work_day_for(self, value: date) -> Optional[WorkDay]:
        dow = day_of_week(value)
        for work_day in self.work_days:
            if work_day.day_of_week == dow:
                return work_day
        return None

    def active_ranges_for(self, value: date) -> List[TimeRange]:
        work_day = self.work_day_for(value)
        if not work_day or not work_day.is_active:
            return []
        return work_day.active_ranges()

    def longest_active_range_minutes(self) -> int:
        lengths = [
            tr.minutes
            for wd in self.work_days if wd.is_active
            for tr in wd.time_ranges if tr.is_active
        ]
        return max(lengths, default=0)


@dataclass
class Slot:
    """A fixed-duration bookable time unit for one doctor on one date."""
    slot_id: str
    doctor_id: str
    slot_date: date
    start_time: time
    end_time: time
    duration_minutes: int
    status: SlotStatus = SlotStatus.AVAILABLE
    appointment_id: Optional[str] = None
    patient_id: Optional[str] = None
    is_emergency_slot: bool = False
    hold_id: Optional[str] = None
    held_by: Optional[str] = None
    hold_expires_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.end_time <= self.start_time:
            raise ValueError(f"Slot end {self.end_time} must be after start {self.start_time}")

    @property
    def start_datetime(self) -> datetime:
        return datetime.combine(self.slot_date, self.start_time)

    @property
    def end_datetime(self) -> datetime:
        return datetime.combine(self.slot_date, self.end_time)

    @property
    def is_active(self) -> bool:
        return self.status != SlotStatus.CANCELLED

    def hold_expired(self, now: datetime) -> bool:
        return (
            self.status == SlotStatus.HELD
            and self.hold_expires_at is not None
            and is_past_expiry(self.hold_expires_at, now)
        )

    def effective_status(self, now: datetime) -> SlotStatus:
        """Status as callers must see it: an expired hold reads as Available."""
        if self.hold_expired(now):
            return SlotStatus.AVAILABLE
        return self.status

    def overlaps(self, start: time, end: time) -> bool:
        return times_overlap(self.start_time, self.end_time, start, end)


@dataclass
class Hold:
    """Time-boxed exclusive claim on a slot prior to confirmed booking."""
    hold_id: str
    slot_id: str
    doctor_id: str
    patient_id: str
    duration: timedelta
    created_at: datetime
    expires_at: datetime
    status: HoldStatus = HoldStatus.ACTIVE
    released_at: Optional[datetime] = None
    release_reason: Optional[str] = None
    appointment_id: Optional[str] = None

    def is_expired(self, now: datetime) -> bool:
        return is_past_expiry(self.expires_at, now)

    @property
    def expires_in_seconds(self) -> int:
        return int(self.duration.total_seconds())


@dataclass
class BlockedRange:
    """Explicit unavailability window (leave, meeting) overriding generated slots."""
    block_id: str
    doctor_id: str
    start: datetime
    end: datetime
    reason: str
    kind: BlockKind = BlockKind.OTHER
    created_at: datetime = field(default_factory=utc_now)

    def covers(self, slot_date: date, start: time, end: time) -> bool:
        return (
            self.start < datetime.combine(slot_date, end)
            and datetime.combine(slot_date, start) < self.end
        )

    def touches(self, value: date) -> bool:
        day_start = datetime.combine(value, time.min)
        return self.start < day_start + timedelta(days=1) and day_start < self.end
