"""Data models for the scheduling engine."""
from .scheduling import (
    BlockedRange,
    BlockKind,
    Hold,
    HoldStatus,
    ScheduleSettings,
    Slot,
    SlotStatus,
    TimeRange,
    WorkDay,
    WorkTemplate,
    day_of_week,
)
from .emergency import (
    Conflict,
    ConflictSeverity,
    ConflictType,
    EmergencyBooking,
    EmergencyBookingResult,
    EmergencyBookingStatistics,
    EmergencyBookingStatus,
    EmergencyPriority,
    EmergencyReport,
    EmergencyType,
    NotificationChannel,
    RescheduleRequest,
    StatusTransition,
)
from .optimization import (
    BreakTimeSlot,
    BreakType,
    Confidence,
    CostOptimizationReport,
    CostOptimizationSuggestion,
    EmergencyTimeSlot,
    PatientDistributionResult,
    WorkLifeBalanceReport,
    WorkLifeBalanceStatus,
    WorkloadBalanceResult,
    WorkloadBalanceStatus,
)
from .results import OperationResult, service_operation

__all__ = [
    "BlockedRange", "BlockKind", "Hold", "HoldStatus", "ScheduleSettings", "Slot",
    "SlotStatus", "TimeRange", "WorkDay", "WorkTemplate", "day_of_week",
    "Conflict", "ConflictSeverity", "ConflictType", "EmergencyBooking",
    "EmergencyBookingResult", "EmergencyBookingStatistics", "EmergencyBookingStatus",
    "EmergencyPriority", "EmergencyReport", "EmergencyType", "NotificationChannel",
    "RescheduleRequest", "StatusTransition",
    "BreakTimeSlot", "BreakType", "Confidence", "CostOptimizationReport",
    "CostOptimizationSuggestion", "EmergencyTimeSlot", "PatientDistributionResult",
    "WorkLifeBalanceReport", "WorkLifeBalanceStatus", "WorkloadBalanceResult",
    "WorkloadBalanceStatus",
    "OperationResult", "service_operation",
]
