"""
Scheduling engine facade.

Wires every service onto one store, lock manager and clock so that lazy
expiry, the cleanup sweep and emergency pre-emption all see the same state
and the same "now".
"""

import logging
from typing import Optional

from .config import LOCK_BACKEND, STORE_BACKEND, get_redis_client
from .services.availability_service import AvailabilityIndex
from .services.doctor_directory import DoctorDirectory
from .services.emergency_booking import EmergencyBookingCoordinator, EmergencyNotifier
from .services.hold_cleanup_job import HoldCleanupJob
from .services.locks import InProcessLockManager, RedisLockManager
from .services.reservation_manager import ReservationManager
from .services.schedule_manager import ScheduleManager
from .services.schedule_optimizer import ScheduleOptimizer
from .services.schedule_store import InMemoryScheduleStore, ScheduleStore
from .services.slot_generator import SlotGenerator
from .utils.time_utils import Clock, system_clock

logger = logging.getLogger(__name__)


class SchedulingEngine:
    """Entry point consumed by the application layer."""

    def __init__(
        self,
        store: ScheduleStore,
        locks,
        clock: Clock = system_clock,
        directory: Optional[DoctorDirectory] = None,
        notifier: Optional[EmergencyNotifier] = None
    ):
        self.store = store
        self.locks = locks
        self.clock = clock
        self.directory = directory

        self.templates = ScheduleManager(store, locks, clock, directory)
        self.generator = SlotGenerator(store, locks, clock, directory)
        self.availability = AvailabilityIndex(store, clock, directory)
        self.reservations = ReservationManager(store, locks, clock)
        self.emergencies = EmergencyBookingCoordinator(store, locks, clock, directory, notifier)
        self.optimizer = ScheduleOptimizer(store, clock, directory)
        self.cleanup_job = HoldCleanupJob(self.reservations)

    def start_background_jobs(self):
        """Start the periodic hold sweep (needs a running event loop)."""
        self.cleanup_job.start()

    def shutdown(self):
        self.cleanup_job.stop()


def _build_store() -> ScheduleStore:
    if STORE_BACKEND == "supabase":
        from .services.supabase_store import SupabaseScheduleStore
        return SupabaseScheduleStore()
    if STORE_BACKEND != "memory":
        raise ValueError(f"Unknown STORE_BACKEND: {STORE_BACKEND}")
    return InMemoryScheduleStore()


def _build_locks():
    if LOCK_BACKEND == "redis":
        return RedisLockManager(get_redis_client())
    if LOCK_BACKEND != "memory":
        raise ValueError(f"Unknown LOCK_BACKEND: {LOCK_BACKEND}")
    return InProcessLockManager()


def create_engine(
    store: Optional[ScheduleStore] = None,
    locks=None,
    clock: Optional[Clock] = None,
    directory: Optional[DoctorDirectory] = None,
    notifier: Optional[EmergencyNotifier] = None
) -> SchedulingEngine:
    """
    Build an engine, falling back to the backends named in the environment
    (STORE_BACKEND, LOCK_BACKEND) for anything not passed in.
    """
    store = store or _build_store()
    locks = locks or _build_locks()
    engine = SchedulingEngine(store, locks, clock or system_clock, directory, notifier)
    logger.info(
        f"Scheduling engine ready (store={type(store).__name__}, locks={type(locks).__name__})"
    )
    return engine
