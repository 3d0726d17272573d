"""
Reservation Manager

Grants, extends, releases and confirms short-lived holds on slots.

Slot state machine: Available -> Held -> {Booked, Available (released/expired)}.
Every transition is a conditional update on the store; the per doctor+date
lock only serializes the multi-step read/check/write sequences.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Union

from ..config import HOLD_TTL_MINUTES
from ..exceptions import (
    HoldExpiredError,
    HoldNotFoundError,
    InvalidDurationError,
    InvalidStateError,
    SlotNotAvailableError,
    SlotNotFoundError,
    ValidationError,
)
from ..models.results import service_operation
from ..models.scheduling import Hold, HoldStatus, Slot, SlotStatus
from ..utils.time_utils import Clock, system_clock
from .locks import schedule_key
from .schedule_store import ScheduleStore

logger = logging.getLogger(__name__)

DurationLike = Union[timedelta, int, float, None]


def hold_cleared(status: SlotStatus, now: datetime) -> Dict[str, Any]:
    return {
        'status': status,
        'hold_id': None,
        'held_by': None,
        'hold_expires_at': None,
        'updated_at': now,
    }


def reopened_status(store: ScheduleStore, slot: Slot) -> SlotStatus:
    """Status a slot falls back to when its booking goes away."""
    for block in store.list_blocks_on(slot.doctor_id, slot.slot_date):
        if block.covers(slot.slot_date, slot.start_time, slot.end_time):
            return SlotStatus.BLOCKED
    return SlotStatus.AVAILABLE


def close_hold(
    store: ScheduleStore,
    slot: Slot,
    now: datetime,
    to_status: SlotStatus,
    hold_status: HoldStatus,
    reason: str
) -> Optional[Slot]:
    """
    Move a held slot out of its hold and close the hold record.

    Returns:
        The updated slot, or None if the slot no longer carries that hold.
    """
    updated = store.transition_slot(
        slot.slot_id,
        [SlotStatus.HELD],
        hold_cleared(to_status, now),
        expected_hold_id=slot.hold_id
    )
    if updated and slot.hold_id:
        store.update_hold(slot.hold_id, HoldStatus.ACTIVE, {
            'status': hold_status,
            'released_at': now,
            'release_reason': reason,
        })
    return updated


def reclaim_if_expired(store: ScheduleStore, slot: Slot, now: datetime) -> Slot:
    """Lazy expiry: a held slot whose hold has run out goes back to Available first."""
    if not slot.hold_expired(now):
        return slot
    updated = close_hold(store, slot, now, SlotStatus.AVAILABLE, HoldStatus.EXPIRED, "expired")
    if updated:
        logger.info(f"Reclaimed expired hold {slot.hold_id} on slot {slot.slot_id}")
        return updated
    return store.get_slot(slot.slot_id) or slot


class ReservationManager:
    """
    Manages slot holds with TTL and atomic transitions.
    """

    def __init__(
        self,
        store: ScheduleStore,
        locks,
        clock: Clock = system_clock,
        hold_ttl_minutes: int = HOLD_TTL_MINUTES
    ):
        self.store = store
        self.locks = locks
        self.clock = clock
        self.hold_ttl_minutes = hold_ttl_minutes

    def _duration(self, duration: DurationLike) -> timedelta:
        if duration is None:
            return timedelta(minutes=self.hold_ttl_minutes)
        if not isinstance(duration, timedelta):
            duration = timedelta(minutes=duration)
        if duration <= timedelta(0):
            raise InvalidDurationError(duration.total_seconds() / 60, "Hold duration must be positive")
        return duration

    def _get_slot(self, slot_id: str) -> Slot:
        slot = self.store.get_slot(slot_id)
        if slot is None:
            raise SlotNotFoundError(slot_id)
        return slot

    def _lock_for(self, slot: Slot):
        return self.locks.acquire(schedule_key(slot.doctor_id, slot.slot_date))

    @service_operation
    async def reserve(self, slot_id: str, patient_id: str, duration: DurationLike = None) -> Hold:
        """
        Atomically claim an Available slot with a time-bounded hold.

        Args:
            slot_id: Slot to hold
            patient_id: Holder
            duration: timedelta or minutes (default HOLD_TTL_MINUTES)

        Returns:
            The created Hold; expires_at is now + duration
        """
        hold_duration = self._duration(duration)
        if not patient_id or not str(patient_id).strip():
            raise ValidationError("patient_id is required")

        slot = self._get_slot(slot_id)
        async with self._lock_for(slot):
            now = self.clock()
            slot = reclaim_if_expired(self.store, self._get_slot(slot_id), now)
            if slot.status != SlotStatus.AVAILABLE:
                raise SlotNotAvailableError(slot_id)

            hold = Hold(
                hold_id=str(uuid.uuid4()),
                slot_id=slot_id,
                doctor_id=slot.doctor_id,
                patient_id=patient_id,
                duration=hold_duration,
                created_at=now,
                expires_at=now + hold_duration,
            )
            updated = self.store.transition_slot(slot_id, [SlotStatus.AVAILABLE], {
                'status': SlotStatus.HELD,
                'hold_id': hold.hold_id,
                'held_by': patient_id,
                'hold_expires_at': hold.expires_at,
                'updated_at': now,
            })
            if updated is None:
                # Lost the compare-and-swap to another writer
                raise SlotNotAvailableError(slot_id)

            self.store.add_hold(hold)

        logger.info(
            f"Hold created: {hold.hold_id} on slot {slot_id} for patient {patient_id}, "
            f"expires at {hold.expires_at.isoformat()}"
        )
        return hold

    async def _release(self, slot_id: str, reason: str) -> bool:
        slot = self._get_slot(slot_id)
        async with self._lock_for(slot):
            now = self.clock()
            slot = reclaim_if_expired(self.store, self._get_slot(slot_id), now)
            if slot.status == SlotStatus.AVAILABLE:
                logger.debug(f"Slot {slot_id} already available, release is a no-op")
                return True
            if slot.status != SlotStatus.HELD:
                raise InvalidStateError(f"Slot {slot_id} is {slot.status.value}, only held slots can be released")

            hold_id = slot.hold_id
            if close_hold(self.store, slot, now, SlotStatus.AVAILABLE, HoldStatus.RELEASED, reason) is None:
                raise InvalidStateError(f"Slot {slot_id} changed while releasing")

        logger.info(f"Hold {hold_id} on slot {slot_id} released: {reason}")
        return True

    @service_operation
    async def release(self, slot_id: str, reason: str = "released") -> bool:
        """Held -> Available. Releasing an Available slot succeeds without change."""
        return await self._release(slot_id, reason)

    @service_operation
    async def release_hold(self, hold_id: str, reason: str = "released") -> bool:
        hold = self.store.get_hold(hold_id)
        if hold is None:
            raise HoldNotFoundError(hold_id)
        if hold.status in (HoldStatus.RELEASED, HoldStatus.EXPIRED):
            return True
        if hold.status != HoldStatus.ACTIVE:
            raise InvalidStateError(f"Hold {hold_id} is {hold.status.value} and cannot be released")
        return await self._release(hold.slot_id, reason)

    @service_operation
    async def confirm(self, slot_id: str, hold_id: str, appointment_id: str) -> Slot:
        """
        Consume a hold into a booking: Held(hold_id) -> Booked in a single
        conditional update that also clears the hold.
        """
        if not appointment_id:
            raise ValidationError("appointment_id is required")

        slot = self._get_slot(slot_id)
        async with self._lock_for(slot):
            now = self.clock()
            slot = self._get_slot(slot_id)
            hold = self.store.get_hold(hold_id)
            if hold is None:
                raise HoldNotFoundError(hold_id)

            if slot.status == SlotStatus.HELD and slot.hold_id == hold_id and slot.hold_expired(now):
                reclaim_if_expired(self.store, slot, now)
                raise HoldExpiredError(hold_id)
            if hold.status == HoldStatus.EXPIRED or (hold.status == HoldStatus.ACTIVE and hold.is_expired(now)):
                raise HoldExpiredError(hold_id)
            if slot.status != SlotStatus.HELD or slot.hold_id != hold_id:
                raise InvalidStateError(f"Hold {hold_id} does not hold slot {slot_id}")

            updates = hold_cleared(SlotStatus.BOOKED, now)
            updates.update({'appointment_id': appointment_id, 'patient_id': hold.patient_id})
            updated = self.store.transition_slot(slot_id, [SlotStatus.HELD], updates, expected_hold_id=hold_id)
            if updated is None:
                raise InvalidStateError(f"Slot {slot_id} changed while confirming hold {hold_id}")

            self.store.update_hold(hold_id, HoldStatus.ACTIVE, {
                'status': HoldStatus.CONSUMED,
                'released_at': now,
                'release_reason': 'confirmed',
                'appointment_id': appointment_id,
            })

        logger.info(f"Hold {hold_id} confirmed -> appointment {appointment_id} on slot {slot_id}")
        return updated

    @service_operation
    async def extend_hold(self, slot_id: str, hold_id: str, extra: DurationLike) -> Hold:
        """Push an unexpired hold's expiry forward."""
        if extra is None:
            raise InvalidDurationError(None, "Extension is required")
        extension = self._duration(extra)

        slot = self._get_slot(slot_id)
        async with self._lock_for(slot):
            now = self.clock()
            slot = self._get_slot(slot_id)
            hold = self.store.get_hold(hold_id)
            if hold is None:
                raise HoldNotFoundError(hold_id)
            if slot.status == SlotStatus.HELD and slot.hold_id == hold_id and slot.hold_expired(now):
                reclaim_if_expired(self.store, slot, now)
                raise HoldExpiredError(hold_id)
            if hold.status != HoldStatus.ACTIVE or slot.hold_id != hold_id:
                raise InvalidStateError(f"Hold {hold_id} is no longer active on slot {slot_id}")

            new_expiry = hold.expires_at + extension
            updated_slot = self.store.transition_slot(
                slot_id,
                [SlotStatus.HELD],
                {'hold_expires_at': new_expiry, 'updated_at': now},
                expected_hold_id=hold_id
            )
            if updated_slot is None:
                raise InvalidStateError(f"Slot {slot_id} changed while extending hold {hold_id}")
            updated_hold = self.store.update_hold(hold_id, HoldStatus.ACTIVE, {
                'expires_at': new_expiry,
                'duration': hold.duration + extension,
            })

        logger.info(f"Hold {hold_id} extended to {new_expiry.isoformat()}")
        return updated_hold

    @service_operation
    async def cancel_booking(self, slot_id: str, reason: str) -> Slot:
        """Booked -> Available for a regular (template) slot, or Blocked inside a blocked range."""
        if not reason or not reason.strip():
            raise ValidationError("Cancellation reason is required")

        slot = self._get_slot(slot_id)
        if slot.is_emergency_slot:
            raise InvalidStateError(f"Slot {slot_id} belongs to an emergency booking; cancel the emergency instead")

        async with self._lock_for(slot):
            now = self.clock()
            reopened = reopened_status(self.store, slot)
            updated = self.store.transition_slot(slot_id, [SlotStatus.BOOKED], {
                'status': reopened,
                'appointment_id': None,
                'patient_id': None,
                'cancellation_reason': reason,
                'updated_at': now,
            })
            if updated is None:
                current = self._get_slot(slot_id)
                raise InvalidStateError(f"Slot {slot_id} is {current.status.value}, not booked")

        logger.info(f"Booking on slot {slot_id} cancelled ({reopened.value}): {reason}")
        return updated

    @service_operation
    async def get_active_hold(self, slot_id: str) -> Optional[Hold]:
        slot = self._get_slot(slot_id)
        if slot.effective_status(self.clock()) != SlotStatus.HELD or not slot.hold_id:
            return None
        return self.store.get_hold(slot.hold_id)

    def find_expired_holds(self) -> List[Slot]:
        """Held slots whose hold has run out, as seen by the injected clock."""
        now = self.clock()
        return [slot for slot in self.store.list_held_slots() if slot.hold_expired(now)]

    async def reclaim_hold(self, slot: Slot) -> bool:
        """Reclaim one expired hold under the schedule lock; False if it was already gone."""
        async with self._lock_for(slot):
            now = self.clock()
            current = self.store.get_slot(slot.slot_id)
            if current is None or not current.hold_expired(now):
                return False
            return close_hold(
                self.store, current, now, SlotStatus.AVAILABLE, HoldStatus.EXPIRED, "Automatic expiration"
            ) is not None

    @service_operation
    async def reclaim_expired_holds(self) -> int:
        """Sweep every expired hold back to Available; returns how many were reclaimed."""
        reclaimed = 0
        for slot in self.find_expired_holds():
            if await self.reclaim_hold(slot):
                reclaimed += 1
        if reclaimed:
            logger.info(f"Reclaimed {reclaimed} expired holds")
        return reclaimed
