"""
Schedule persistence contract and the in-memory implementation.

The store owns templates, slots, holds, blocked ranges, emergency bookings and
reschedule requests. ``transition_slot`` is the atomic conditional update every
status change goes through; services never write a slot's status any other way.
"""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from ..models.emergency import EmergencyBooking, RescheduleRequest
from ..models.scheduling import (
    BlockedRange,
    Hold,
    HoldStatus,
    Slot,
    SlotStatus,
    WorkTemplate,
)

logger = logging.getLogger(__name__)


class ScheduleStore(ABC):
    """Persistence layer used by every scheduling service."""

    # Templates

    @abstractmethod
    def get_template(self, doctor_id: str) -> Optional[WorkTemplate]:
        ...

    @abstractmethod
    def save_template(self, template: WorkTemplate) -> WorkTemplate:
        ...

    # Slots

    @abstractmethod
    def get_slot(self, slot_id: str) -> Optional[Slot]:
        ...

    @abstractmethod
    def list_slots(self, doctor_id: str, slot_date: date) -> List[Slot]:
        """All slots of a doctor on one date, cancelled included, ordered by start."""

    @abstractmethod
    def list_slots_in_range(self, doctor_id: str, start: date, end: date) -> List[Slot]:
        """All slots of a doctor for start..end inclusive, ordered by date and start."""

    @abstractmethod
    def list_held_slots(self) -> List[Slot]:
        ...

    @abstractmethod
    def add_slot(self, slot: Slot) -> Slot:
        ...

    @abstractmethod
    def transition_slot(
        self,
        slot_id: str,
        expected_statuses: Iterable[SlotStatus],
        updates: Dict[str, Any],
        expected_hold_id: Optional[str] = None
    ) -> Optional[Slot]:
        """
        Apply ``updates`` only if the slot is in one of ``expected_statuses``
        (and, when given, still carries ``expected_hold_id``).

        Returns:
            The updated slot, or None if the condition did not hold.
        """

    # Holds

    @abstractmethod
    def add_hold(self, hold: Hold) -> Hold:
        ...

    @abstractmethod
    def get_hold(self, hold_id: str) -> Optional[Hold]:
        ...

    @abstractmethod
    def update_hold(
        self,
        hold_id: str,
        expected_status: HoldStatus,
        updates: Dict[str, Any]
    ) -> Optional[Hold]:
        """Conditional hold update; None if the hold is not in ``expected_status``."""

    @abstractmethod
    def list_holds(
        self,
        status: Optional[HoldStatus] = None,
        slot_id: Optional[str] = None
    ) -> List[Hold]:
        ...

    # Blocked ranges

    @abstractmethod
    def add_block(self, block: BlockedRange) -> BlockedRange:
        ...

    @abstractmethod
    def get_block(self, block_id: str) -> Optional[BlockedRange]:
        ...

    @abstractmethod
    def delete_block(self, block_id: str) -> bool:
        ...

    @abstractmethod
    def list_blocks(self, doctor_id: str) -> List[BlockedRange]:
        ...

    def list_blocks_on(self, doctor_id: str, slot_date: date) -> List[BlockedRange]:
        return [block for block in self.list_blocks(doctor_id) if block.touches(slot_date)]

    # Emergency bookings

    @abstractmethod
    def save_emergency_booking(self, booking: EmergencyBooking) -> EmergencyBooking:
        ...

    @abstractmethod
    def get_emergency_booking(self, booking_id: str) -> Optional[EmergencyBooking]:
        ...

    @abstractmethod
    def list_emergency_bookings(
        self,
        doctor_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None
    ) -> List[EmergencyBooking]:
        ...

    # Reschedule queue

    @abstractmethod
    def add_reschedule_request(self, request: RescheduleRequest) -> RescheduleRequest:
        ...

    @abstractmethod
    def list_reschedule_requests(
        self,
        doctor_id: str,
        unresolved_only: bool = True
    ) -> List[RescheduleRequest]:
        ...


class InMemoryScheduleStore(ScheduleStore):
    """
    Thread-safe in-process store.

    Values are deep-copied in and out so callers never share state with the
    store; every write is visible to the next read.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._templates: Dict[str, WorkTemplate] = {}
        self._slots: Dict[str, Slot] = {}
        self._holds: Dict[str, Hold] = {}
        self._blocks: Dict[str, BlockedRange] = {}
        self._emergency_bookings: Dict[str, EmergencyBooking] = {}
        self._reschedules: Dict[str, RescheduleRequest] = {}

    @staticmethod
    def _copy(value):
        return copy.deepcopy(value)

    # Templates

    def get_template(self, doctor_id: str) -> Optional[WorkTemplate]:
        with self._lock:
            return self._copy(self._templates.get(doctor_id))

    def save_template(self, template: WorkTemplate) -> WorkTemplate:
        with self._lock:
            self._templates[template.doctor_id] = self._copy(template)
            return self._copy(template)

    # Slots

    def get_slot(self, slot_id: str) -> Optional[Slot]:
        with self._lock:
            return self._copy(self._slots.get(slot_id))

    def list_slots(self, doctor_id: str, slot_date: date) -> List[Slot]:
        with self._lock:
            slots = [
                s for s in self._slots.values()
                if s.doctor_id == doctor_id and s.slot_date == slot_date
            ]
            return self._copy(sorted(slots, key=lambda s: (s.start_time, s.created_at)))

    def list_slots_in_range(self, doctor_id: str, start: date, end: date) -> List[Slot]:
        with self._lock:
            slots = [
                s for s in self._slots.values()
                if s.doctor_id == doctor_id and start <= s.slot_date <= end
            ]
            return self._copy(sorted(slots, key=lambda s: (s.slot_date, s.start_time, s.created_at)))

    def list_held_slots(self) -> List[Slot]:
        with self._lock:
            return self._copy([s for s in self._slots.values() if s.status == SlotStatus.HELD])

    def add_slot(self, slot: Slot) -> Slot:
        with self._lock:
            if slot.slot_id in self._slots:
                raise ValueError(f"Slot {slot.slot_id} already exists")
            self._slots[slot.slot_id] = self._copy(slot)
            return self._copy(slot)

    def transition_slot(
        self,
        slot_id: str,
        expected_statuses: Iterable[SlotStatus],
        updates: Dict[str, Any],
        expected_hold_id: Optional[str] = None
    ) -> Optional[Slot]:
        expected = set(expected_statuses)
        with self._lock:
            current = self._slots.get(slot_id)
            if current is None or current.status not in expected:
                return None
            if expected_hold_id is not None and current.hold_id != expected_hold_id:
                return None
            updated = replace(current, **updates)
            self._slots[slot_id] = updated
            return self._copy(updated)

    # Holds

    def add_hold(self, hold: Hold) -> Hold:
        with self._lock:
            self._holds[hold.hold_id] = self._copy(hold)
            return self._copy(hold)

    def get_hold(self, hold_id: str) -> Optional[Hold]:
        with self._lock:
            return self._copy(self._holds.get(hold_id))

    def update_hold(
        self,
        hold_id: str,
        expected_status: HoldStatus,
        updates: Dict[str, Any]
    ) -> Optional[Hold]:
        with self._lock:
            current = self._holds.get(hold_id)
            if current is None or current.status != expected_status:
                return None
            updated = replace(current, **updates)
            self._holds[hold_id] = updated
            return self._copy(updated)

    def list_holds(
        self,
        status: Optional[HoldStatus] = None,
        slot_id: Optional[str] = None
    ) -> List[Hold]:
        with self._lock:
            holds = [
                h for h in self._holds.values()
                if (status is None or h.status == status)
                and (slot_id is None or h.slot_id == slot_id)
            ]
            return self._copy(sorted(holds, key=lambda h: h.created_at))

    # Blocked ranges

    def add_block(self, block: BlockedRange) -> BlockedRange:
        with self._lock:
            self._blocks[block.block_id] = self._copy(block)
            return self._copy(block)

    def get_block(self, block_id: str) -> Optional[BlockedRange]:
        with self._lock:
            return self._copy(self._blocks.get(block_id))

    def delete_block(self, block_id: str) -> bool:
        with self._lock:
            return self._blocks.pop(block_id, None) is not None

    def list_blocks(self, doctor_id: str) -> List[BlockedRange]:
        with self._lock:
            blocks = [b for b in self._blocks.values() if b.doctor_id == doctor_id]
            return self._copy(sorted(blocks, key=lambda b: b.start))

    # Emergency bookings

    def save_emergency_booking(self, booking: EmergencyBooking) -> EmergencyBooking:
        with self._lock:
            self._emergency_bookings[booking.booking_id] = self._copy(booking)
            return self._copy(booking)

    def get_emergency_booking(self, booking_id: str) -> Optional[EmergencyBooking]:
        with self._lock:
            return self._copy(self._emergency_bookings.get(booking_id))

    def list_emergency_bookings(
        self,
        doctor_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None
    ) -> List[EmergencyBooking]:
        with self._lock:
            bookings = [
                b for b in self._emergency_bookings.values()
                if b.doctor_id == doctor_id
                and (start is None or b.booking_date >= start)
                and (end is None or b.booking_date <= end)
            ]
            return self._copy(sorted(bookings, key=lambda b: (b.booking_date, b.start_time)))

    # Reschedule queue

    def add_reschedule_request(self, request: RescheduleRequest) -> RescheduleRequest:
        with self._lock:
            self._reschedules[request.request_id] = self._copy(request)
            return self._copy(request)

    def list_reschedule_requests(
        self,
        doctor_id: str,
        unresolved_only: bool = True
    ) -> List[RescheduleRequest]:
        with self._lock:
            requests = [
                r for r in self._reschedules.values()
                if r.doctor_id == doctor_id and (not unresolved_only or not r.resolved)
            ]
            return self._copy(sorted(requests, key=lambda r: r.created_at))
