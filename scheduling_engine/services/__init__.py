"""Scheduling services: generation, availability, holds, emergencies, optimization."""

from .availability_service import AvailabilityIndex
from .doctor_directory import DoctorDirectory, DoctorInfo, InMemoryDoctorDirectory
from .emergency_booking import EmergencyBookingCoordinator, EmergencyNotifier, LoggingNotifier
from .hold_cleanup_job import HoldCleanupJob
from .locks import InProcessLockManager, RedisLockManager, schedule_key
from .reservation_manager import ReservationManager
from .schedule_manager import BlockTimeRangeResult, ScheduleManager
from .schedule_optimizer import ScheduleOptimizer
from .schedule_store import InMemoryScheduleStore, ScheduleStore
from .slot_generator import SlotGenerator
from .supabase_store import SupabaseScheduleStore

__all__ = [
    "AvailabilityIndex",
    "BlockTimeRangeResult",
    "DoctorDirectory",
    "DoctorInfo",
    "EmergencyBookingCoordinator",
    "EmergencyNotifier",
    "HoldCleanupJob",
    "InMemoryDoctorDirectory",
    "InMemoryScheduleStore",
    "InProcessLockManager",
    "LoggingNotifier",
    "RedisLockManager",
    "ReservationManager",
    "ScheduleManager",
    "ScheduleOptimizer",
    "ScheduleStore",
    "SlotGenerator",
    "SupabaseScheduleStore",
    "schedule_key",
]
