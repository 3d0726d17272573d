"""Request validation schemas."""

from .requests import (
    BlockRangeRequest,
    EmergencyBookingRequest,
    TimeRangeInput,
    WorkDayInput,
    WorkTemplateInput,
)

__all__ = [
    "BlockRangeRequest",
    "EmergencyBookingRequest",
    "TimeRangeInput",
    "WorkDayInput",
    "WorkTemplateInput",
]
