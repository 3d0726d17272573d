"""
Custom exceptions for the scheduling engine.

Services raise these internally; the engine boundary converts them into
typed ``OperationResult`` failures (see ``scheduling_engine.models.results``).
"""

from enum import Enum
from typing import List, Optional


class ErrorCode(str, Enum):
    """Error taxonomy exposed to callers."""
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    VALIDATION_ERROR = "validation_error"
    CONFLICT_UNRESOLVED = "conflict_unresolved"
    TEMPLATE_MISSING = "template_missing"
    INTERNAL_ERROR = "internal_error"


class SchedulingError(Exception):
    """Base class for all engine errors."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# Not found

class NotFoundError(SchedulingError):
    code = ErrorCode.NOT_FOUND


class SlotNotFoundError(NotFoundError):
    """Raised when a slot id is unknown."""

    def __init__(self, slot_id: str):
        self.slot_id = slot_id
        super().__init__(f"Slot {slot_id} not found")


class DoctorNotFoundError(NotFoundError):
    """Raised when a doctor id is unknown to the doctor directory."""

    def __init__(self, doctor_id: str):
        self.doctor_id = doctor_id
        super().__init__(f"Doctor {doctor_id} not found")


class HoldNotFoundError(NotFoundError):
    """Raised when a hold is not found."""

    def __init__(self, hold_id: str):
        self.hold_id = hold_id
        super().__init__(f"Hold {hold_id} not found")


class EmergencyBookingNotFoundError(NotFoundError):
    """Raised when an emergency booking is not found."""

    def __init__(self, booking_id: str):
        self.booking_id = booking_id
        super().__init__(f"Emergency booking {booking_id} not found")


# Invalid state

class InvalidStateError(SchedulingError):
    code = ErrorCode.INVALID_STATE


class SlotNotAvailableError(InvalidStateError):
    """Raised when attempting to hold or book an unavailable slot."""

    def __init__(self, slot_id: str = None, message: str = None):
        self.slot_id = slot_id
        super().__init__(message or f"Slot {slot_id} is not available")


class HoldExpiredError(InvalidStateError):
    """Raised when attempting to confirm or extend an expired hold."""

    def __init__(self, hold_id: str = None):
        self.hold_id = hold_id
        super().__init__(f"Hold {hold_id} has expired" if hold_id else "Hold has expired")


# Validation

class ValidationError(SchedulingError):
    code = ErrorCode.VALIDATION_ERROR


class InvalidDurationError(ValidationError):
    """Raised when a slot or hold duration is not usable."""

    def __init__(self, duration_minutes, message: str = None):
        self.duration_minutes = duration_minutes
        super().__init__(message or f"Invalid duration: {duration_minutes} minutes")


# Scheduling outcomes

class ConflictUnresolvedError(SchedulingError):
    """Raised when an emergency booking is blocked by existing conflicts."""

    code = ErrorCode.CONFLICT_UNRESOLVED

    def __init__(self, conflicts: Optional[List] = None, message: str = None):
        self.conflicts = list(conflicts or [])
        super().__init__(
            message or f"Emergency booking blocked by {len(self.conflicts)} unresolved conflict(s)"
        )


class TemplateMissingError(SchedulingError):
    """Raised when a doctor has no active work template."""

    code = ErrorCode.TEMPLATE_MISSING

    def __init__(self, doctor_id: str):
        self.doctor_id = doctor_id
        super().__init__(f"No active work template for doctor {doctor_id}")


class LockAcquisitionError(RuntimeError):
    """Raised when a schedule lock cannot be acquired after retries."""
