"""
Emergency booking and conflict records.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import List, Optional

from .scheduling import Hold, Slot, utc_now


class EmergencyPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _PRIORITY_ORDER.index(self)

    def at_least(self, other: "EmergencyPriority") -> bool:
        return self.rank >= other.rank


_PRIORITY_ORDER = [
    EmergencyPriority.LOW,
    EmergencyPriority.MEDIUM,
    EmergencyPriority.HIGH,
    EmergencyPriority.CRITICAL,
]


class EmergencyType(str, Enum):
    MEDICAL = "medical"
    SURGICAL = "surgical"
    TRAUMA = "trauma"
    CARDIAC = "cardiac"
    RESPIRATORY = "respiratory"
    PEDIATRIC = "pediatric"
    OTHER = "other"


class EmergencyBookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELED = "canceled"
    COMPLETED = "completed"


class NotificationChannel(str, Enum):
    SMS = "sms"
    EMAIL = "email"
    WHATSAPP = "whatsapp"
    IN_APP = "in_app"


class ConflictType(str, Enum):
    BOOKED_SLOT = "booked_slot"
    HELD_SLOT = "held_slot"
    AVAILABLE_SLOT = "available_slot"
    BLOCKED = "blocked"


class ConflictSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    def escalate(self) -> "ConflictSeverity":
        order = list(ConflictSeverity)
        return order[min(order.index(self) + 1, len(order) - 1)]


@dataclass
class StatusTransition:
    from_status: Optional[EmergencyBookingStatus]
    to_status: EmergencyBookingStatus
    at: datetime
    actor: str = "system"
    reason: Optional[str] = None


@dataclass
class Conflict:
    """An overlap between a requested emergency window and existing state. Never persisted."""
    conflict_id: str
    doctor_id: str
    conflict_date: date
    start_time: time
    end_time: time
    conflict_type: ConflictType
    severity: ConflictSeverity
    description: str
    suggested_resolution: str
    slot_id: Optional[str] = None
    hold_id: Optional[str] = None
    appointment_id: Optional[str] = None
    block_id: Optional[str] = None


@dataclass
class EmergencyBooking:
    booking_id: str
    doctor_id: str
    patient_id: str
    patient_name: str
    booking_date: date
    start_time: time
    end_time: time
    emergency_type: EmergencyType
    priority: EmergencyPriority
    reason: str
    status: EmergencyBookingStatus = EmergencyBookingStatus.PENDING
    patient_phone: Optional[str] = None
    notes: Optional[str] = None
    slot_id: Optional[str] = None
    created_by: str = "system"
    created_at: datetime = field(default_factory=utc_now)
    confirmed_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    preempted_hold_ids: List[str] = field(default_factory=list)
    displaced_appointment_ids: List[str] = field(default_factory=list)
    conflicts_detected: int = 0
    history: List[StatusTransition] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.status in (EmergencyBookingStatus.PENDING, EmergencyBookingStatus.CONFIRMED)

    def transition(self, to_status: EmergencyBookingStatus, at: datetime,
                   actor: str = "system", reason: Optional[str] = None):
        self.history.append(StatusTransition(self.status, to_status, at, actor, reason))
        self.status = to_status


@dataclass
class RescheduleRequest:
    """A booking displaced by an emergency, queued for the application layer to re-book."""
    request_id: str
    doctor_id: str
    appointment_id: Optional[str]
    patient_id: Optional[str]
    original_date: date
    original_start: time
    original_end: time
    emergency_booking_id: Optional[str]
    created_at: datetime = field(default_factory=utc_now)
    resolved: bool = False


@dataclass
class EmergencyBookingResult:
    booking: EmergencyBooking
    slot: Slot
    preempted_holds: List[Hold] = field(default_factory=list)


@dataclass
class EmergencyBookingStatistics:
    doctor_id: str
    from_date: date
    to_date: date
    total_emergency_bookings: int = 0
    confirmed_bookings: int = 0
    canceled_bookings: int = 0
    completed_bookings: int = 0
    doctor_name: Optional[str] = None

    def _rate(self, count: int) -> float:
        if not self.total_emergency_bookings:
            return 0.0
        return round(count / self.total_emergency_bookings, 4)

    @property
    def confirmation_rate(self) -> float:
        return self._rate(self.confirmed_bookings)

    @property
    def cancellation_rate(self) -> float:
        return self._rate(self.canceled_bookings)

    @property
    def completion_rate(self) -> float:
        return self._rate(self.completed_bookings)


@dataclass
class EmergencyReport:
    doctor_id: str
    from_date: date
    to_date: date
    report_date: datetime
    emergency_bookings_count: int = 0
    regular_bookings_count: int = 0
    average_response_minutes: int = 0
    conflicts_count: int = 0
    resolved_conflicts_count: int = 0
    doctor_name: Optional[str] = None

    @property
    def emergency_percentage(self) -> float:
        total = self.emergency_bookings_count + self.regular_bookings_count
        if not total:
            return 0.0
        return round(self.emergency_bookings_count / total * 100, 2)

    @property
    def conflict_resolution_rate(self) -> float:
        if not self.conflicts_count:
            return 0.0
        return round(self.resolved_conflicts_count / self.conflicts_count * 100, 2)
