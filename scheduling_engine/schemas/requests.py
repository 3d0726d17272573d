"""
Request validation schemas.

Incoming requests are validated with pydantic before they reach the services;
the services then work with the plain dataclasses in ``scheduling_engine.models``.
"""
from datetime import date, datetime, time
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ..models.emergency import EmergencyPriority, EmergencyType
from ..models.scheduling import (
    BlockKind,
    ScheduleSettings,
    TimeRange,
    WorkDay,
    WorkTemplate,
    minutes_between,
)

MIN_APPOINTMENT_DURATION = 5
MAX_APPOINTMENT_DURATION = 120
MIN_RANGE_MINUTES = 15
MAX_RANGE_MINUTES = 480
MAX_RANGES_PER_DAY = 10


def _require_text(value: str, field_name: str) -> str:
    if not value or value.strip() == '':
        raise ValueError(f"{field_name} is required")
    return value.strip()


class EmergencyBookingRequest(BaseModel):
    """Out-of-template booking request for an emergency patient."""

    doctor_id: str = Field(description="Doctor identifier")
    patient_id: str = Field(description="Patient identifier")
    patient_name: str = Field(max_length=100, description="Patient full name")
    patient_phone: str = Field(max_length=20, description="Patient contact phone")
    booking_date: date = Field(description="Clinic-local date of the emergency visit")
    start_time: time = Field(description="Clinic-local start time")
    duration_minutes: Optional[int] = Field(
        default=None,
        gt=0,
        le=MAX_RANGE_MINUTES,
        description="Visit length; defaults to the doctor's appointment duration"
    )
    emergency_type: EmergencyType = Field(default=EmergencyType.MEDICAL)
    priority: EmergencyPriority = Field(default=EmergencyPriority.MEDIUM)
    reason: str = Field(max_length=500, description="Emergency reason")
    clinical_symptoms: Optional[str] = Field(default=None, max_length=1000)
    notes: Optional[str] = Field(default=None, max_length=1000)
    created_by: str = Field(default="system", max_length=100)

    @field_validator('doctor_id', 'patient_id')
    @classmethod
    def validate_ids(cls, v: str, info) -> str:
        return _require_text(v, info.field_name)

    @field_validator('patient_name', 'patient_phone', 'reason')
    @classmethod
    def validate_required_text(cls, v: str, info) -> str:
        return _require_text(v, info.field_name)


class TimeRangeInput(BaseModel):
    start: time
    end: time
    is_active: bool = True

    @model_validator(mode='after')
    def validate_range(self):
        if self.end <= self.start:
            raise ValueError("end must be after start")
        length = minutes_between(self.start, self.end)
        if length < MIN_RANGE_MINUTES or length > MAX_RANGE_MINUTES:
            raise ValueError(
                f"time range must be {MIN_RANGE_MINUTES}-{MAX_RANGE_MINUTES} minutes, got {length}"
            )
        return self


class WorkDayInput(BaseModel):
    day_of_week: int = Field(ge=0, le=6, description="0=Sunday ... 6=Saturday")
    is_active: bool = True
    time_ranges: List[TimeRangeInput] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_ranges(self):
        if not self.is_active:
            return self
        active = sorted((tr for tr in self.time_ranges if tr.is_active), key=lambda tr: tr.start)
        if not active:
            raise ValueError(f"active day {self.day_of_week} needs at least one time range")
        if len(active) > MAX_RANGES_PER_DAY:
            raise ValueError(f"day {self.day_of_week} has more than {MAX_RANGES_PER_DAY} time ranges")
        for previous, current in zip(active, active[1:]):
            if current.start < previous.end:
                raise ValueError(f"overlapping time ranges on day {self.day_of_week}")
        return self


class WorkTemplateInput(BaseModel):
    """Weekly work template submitted by an administrator."""

    appointment_duration: int = Field(
        default=30,
        ge=MIN_APPOINTMENT_DURATION,
        le=MAX_APPOINTMENT_DURATION,
        description="Slot length in minutes"
    )
    work_days: List[WorkDayInput] = Field(min_length=1, max_length=7)
    is_active: bool = True
    max_appointments_per_day: int = Field(default=50, ge=1)
    min_advance_booking_days: int = Field(default=1, ge=0)
    max_advance_booking_days: int = Field(default=90, ge=1)
    allow_same_day_booking: bool = True
    allow_emergency_booking: bool = True
    consultation_fee: float = Field(default=0.0, ge=0)
    hourly_operating_cost: float = Field(default=0.0, ge=0)

    @model_validator(mode='after')
    def validate_days(self):
        days = [wd.day_of_week for wd in self.work_days]
        if len(days) != len(set(days)):
            raise ValueError("work days must be unique")
        if not any(wd.is_active for wd in self.work_days):
            raise ValueError("at least one work day must be active")
        if self.min_advance_booking_days > self.max_advance_booking_days:
            raise ValueError("min_advance_booking_days cannot exceed max_advance_booking_days")
        return self

    def to_template(self, doctor_id: str, updated_at: Optional[datetime] = None) -> WorkTemplate:
        return WorkTemplate(
            doctor_id=doctor_id,
            work_days=[
                WorkDay(
                    day_of_week=wd.day_of_week,
                    is_active=wd.is_active,
                    time_ranges=[TimeRange(tr.start, tr.end, tr.is_active) for tr in wd.time_ranges],
                )
                for wd in sorted(self.work_days, key=lambda wd: wd.day_of_week)
            ],
            appointment_duration=self.appointment_duration,
            is_active=self.is_active,
            settings=ScheduleSettings(
                max_appointments_per_day=self.max_appointments_per_day,
                min_advance_booking_days=self.min_advance_booking_days,
                max_advance_booking_days=self.max_advance_booking_days,
                allow_same_day_booking=self.allow_same_day_booking,
                allow_emergency_booking=self.allow_emergency_booking,
                consultation_fee=self.consultation_fee,
                hourly_operating_cost=self.hourly_operating_cost,
            ),
            updated_at=updated_at,
        )


class BlockRangeRequest(BaseModel):
    """Unavailability window (leave, meeting, holiday)."""

    doctor_id: str
    start: datetime
    end: datetime
    reason: str = Field(max_length=500)
    kind: BlockKind = BlockKind.OTHER

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, v: str) -> str:
        return _require_text(v, 'reason')

    @model_validator(mode='after')
    def validate_window(self):
        if self.end <= self.start:
            raise ValueError("end must be after start")
        return self
