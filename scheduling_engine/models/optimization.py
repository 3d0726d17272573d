"""
Advisory outputs of the schedule optimizer.

All of these are suggestions; nothing here is applied to slot or hold state.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Dict, List, Optional

from .emergency import EmergencyPriority, EmergencyType
from .scheduling import Slot


class Confidence(str, Enum):
    LOW = "low"
    NORMAL = "normal"


class WorkloadBalanceStatus(str, Enum):
    NO_WORK_DAY = "no_work_day"
    LIGHT = "light"
    BALANCED = "balanced"
    HEAVY = "heavy"
    OVERLOADED = "overloaded"


class BreakType(str, Enum):
    SHORT = "short"
    LUNCH = "lunch"
    EXISTING_GAP = "existing_gap"


class WorkLifeBalanceStatus(str, Enum):
    UNDERWORKED = "underworked"
    BALANCED = "balanced"
    OVERWORKED = "overworked"


@dataclass
class WorkloadBalanceResult:
    doctor_id: str
    status: WorkloadBalanceStatus
    message: str
    start_date: date
    end_date: date
    capacity: int = 0
    current_appointments: int = 0
    suggested_appointments: int = 0
    workload_percentage: float = 0.0
    total_work_minutes: int = 0
    break_time_minutes: int = 0
    optimized_slots: List[Slot] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    confidence: Confidence = Confidence.NORMAL
    doctor_name: Optional[str] = None


@dataclass
class BreakTimeSlot:
    break_id: str
    doctor_id: str
    break_date: date
    start_time: time
    end_time: time
    duration_minutes: int
    break_type: BreakType
    priority: int
    is_mandatory: bool = False


@dataclass
class EmergencyTimeSlot:
    emergency_time_id: str
    doctor_id: str
    slot_date: date
    start_time: time
    end_time: time
    duration_minutes: int
    slot_id: Optional[str] = None
    priority: EmergencyPriority = EmergencyPriority.HIGH
    emergency_type: EmergencyType = EmergencyType.MEDICAL
    is_available: bool = True


@dataclass
class PatientDistributionResult:
    doctor_id: str
    distribution_date: date
    total_patients: int = 0
    distribution_by_type: Dict[str, int] = field(default_factory=dict)
    distribution_by_hour: Dict[str, int] = field(default_factory=dict)
    recommendations: List[str] = field(default_factory=list)
    confidence: Confidence = Confidence.NORMAL


@dataclass
class WorkLifeBalanceReport:
    doctor_id: str
    start_date: date
    end_date: date
    report_date: datetime
    status: WorkLifeBalanceStatus
    working_days: int = 0
    rest_days: int = 0
    total_work_hours: float = 0.0
    total_break_hours: float = 0.0
    average_weekly_hours: float = 0.0
    balance_percentage: float = 0.0
    recommendations: List[str] = field(default_factory=list)
    confidence: Confidence = Confidence.NORMAL
    doctor_name: Optional[str] = None


@dataclass
class CostOptimizationSuggestion:
    suggestion_id: str
    title: str
    description: str
    cost_savings: float
    implementation_priority: int
    difficulty: str
    estimated_implementation_days: int


@dataclass
class CostOptimizationReport:
    doctor_id: str
    start_date: date
    end_date: date
    report_date: datetime
    total_revenue: float = 0.0
    total_costs: float = 0.0
    net_profit: float = 0.0
    current_costs: float = 0.0
    optimized_costs: float = 0.0
    savings: float = 0.0
    savings_percentage: float = 0.0
    suggestions: List[CostOptimizationSuggestion] = field(default_factory=list)
    confidence: Confidence = Confidence.NORMAL
    doctor_name: Optional[str] = None
