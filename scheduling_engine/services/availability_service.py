"""
Availability Index

Read-only projection over slot state. Statuses are reported as callers must
see them: a held slot whose hold has expired reads as Available, without the
read itself mutating anything (reclaiming is left to the next mutation or
the cleanup sweep).
"""

import logging
from datetime import date
from typing import List

from ..exceptions import SlotNotFoundError, ValidationError
from ..models.results import service_operation
from ..models.scheduling import Slot, SlotStatus
from ..utils.time_utils import Clock, system_clock
from .schedule_store import ScheduleStore

logger = logging.getLogger(__name__)


class AvailabilityIndex:

    def __init__(self, store: ScheduleStore, clock: Clock = system_clock, directory=None):
        self.store = store
        self.clock = clock
        self.directory = directory

    def _check_doctor(self, doctor_id: str):
        if self.directory is not None:
            self.directory.require_doctor(doctor_id)

    def _project(self, slot: Slot, now) -> Slot:
        """Copy of the slot with its effective status applied."""
        if slot.hold_expired(now):
            slot.status = SlotStatus.AVAILABLE
            slot.hold_id = None
            slot.held_by = None
            slot.hold_expires_at = None
        return slot

    @service_operation
    async def get_available_dates(self, doctor_id: str, start: date, end: date) -> List[date]:
        """Dates in start..end with at least one Available slot."""
        if start > end:
            raise ValidationError(f"Start date {start} is after end date {end}")
        self._check_doctor(doctor_id)

        now = self.clock()
        dates = {
            slot.slot_date
            for slot in self.store.list_slots_in_range(doctor_id, start, end)
            if slot.effective_status(now) == SlotStatus.AVAILABLE
        }
        return sorted(dates)

    @service_operation
    async def get_available_time_slots(self, doctor_id: str, slot_date: date) -> List[Slot]:
        """Available slots for one date, ordered by start time."""
        self._check_doctor(doctor_id)
        now = self.clock()
        slots = [
            self._project(slot, now)
            for slot in self.store.list_slots(doctor_id, slot_date)
            if slot.effective_status(now) == SlotStatus.AVAILABLE
        ]
        return sorted(slots, key=lambda s: s.start_time)

    @service_operation
    async def get_day_slots(self, doctor_id: str, slot_date: date, include_cancelled: bool = False) -> List[Slot]:
        """Every slot of the day with effective statuses, ordered by start time."""
        self._check_doctor(doctor_id)
        now = self.clock()
        slots = [
            self._project(slot, now)
            for slot in self.store.list_slots(doctor_id, slot_date)
            if include_cancelled or slot.is_active
        ]
        return sorted(slots, key=lambda s: s.start_time)

    @service_operation
    async def is_slot_available(self, slot_id: str) -> bool:
        slot = self.store.get_slot(slot_id)
        if slot is None:
            raise SlotNotFoundError(slot_id)
        return slot.effective_status(self.clock()) == SlotStatus.AVAILABLE

    @service_operation
    async def get_slot(self, slot_id: str) -> Slot:
        slot = self.store.get_slot(slot_id)
        if slot is None:
            raise SlotNotFoundError(slot_id)
        return self._project(slot, self.clock())
