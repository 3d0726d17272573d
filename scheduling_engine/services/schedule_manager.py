"""
Schedule Manager

Owns doctors' weekly work templates and explicit unavailability windows.
Blocking a range takes the affected slots out of circulation: Available and
Held slots become Blocked, Booked slots are left alone and reported so the
caller can reach the patients.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Union

from ..exceptions import NotFoundError, TemplateMissingError, ValidationError
from ..models.results import service_operation
from ..models.scheduling import BlockKind, BlockedRange, HoldStatus, Slot, SlotStatus, WorkTemplate
from ..schemas.requests import BlockRangeRequest, WorkTemplateInput
from ..utils.time_utils import Clock, clinic_now, system_clock, to_clinic_time
from .locks import schedule_key
from .reservation_manager import close_hold, reclaim_if_expired
from .schedule_store import ScheduleStore

logger = logging.getLogger(__name__)


@dataclass
class BlockTimeRangeResult:
    block: BlockedRange
    blocked_slot_ids: List[str] = field(default_factory=list)
    affected_bookings: List[Slot] = field(default_factory=list)


def _dates_touched(block: BlockedRange) -> List[date]:
    dates = []
    current = block.start.date()
    while current <= block.end.date():
        if block.touches(current):
            dates.append(current)
        current += timedelta(days=1)
    return dates


class ScheduleManager:

    def __init__(self, store: ScheduleStore, locks, clock: Clock = system_clock, directory=None):
        self.store = store
        self.locks = locks
        self.clock = clock
        self.directory = directory

    def _check_doctor(self, doctor_id: str):
        if self.directory is not None:
            self.directory.require_doctor(doctor_id)

    def _require_template(self, doctor_id: str) -> WorkTemplate:
        template = self.store.get_template(doctor_id)
        if template is None:
            raise TemplateMissingError(doctor_id)
        return template

    # Work templates

    @service_operation
    async def set_work_template(
        self,
        doctor_id: str,
        template_input: Union[WorkTemplateInput, Dict[str, Any]]
    ) -> WorkTemplate:
        """Validate and store a doctor's weekly template, replacing any previous one."""
        self._check_doctor(doctor_id)
        if not isinstance(template_input, WorkTemplateInput):
            template_input = WorkTemplateInput.model_validate(template_input)

        template = self.store.save_template(template_input.to_template(doctor_id, updated_at=self.clock()))
        active_days = sum(1 for wd in template.work_days if wd.is_active)
        logger.info(
            f"Work template saved for doctor {doctor_id}: {active_days} active day(s), "
            f"{template.appointment_duration}-minute appointments"
        )
        return template

    @service_operation
    async def get_work_template(self, doctor_id: str) -> WorkTemplate:
        self._check_doctor(doctor_id)
        return self._require_template(doctor_id)

    async def _set_active(self, doctor_id: str, is_active: bool) -> WorkTemplate:
        self._check_doctor(doctor_id)
        template = self._require_template(doctor_id)
        if template.is_active == is_active:
            return template
        template.is_active = is_active
        template.updated_at = self.clock()
        template = self.store.save_template(template)
        logger.info(f"Work template for doctor {doctor_id} {'activated' if is_active else 'deactivated'}")
        return template

    @service_operation
    async def activate_template(self, doctor_id: str) -> WorkTemplate:
        return await self._set_active(doctor_id, True)

    @service_operation
    async def deactivate_template(self, doctor_id: str) -> WorkTemplate:
        return await self._set_active(doctor_id, False)

    # Blocked ranges

    @staticmethod
    def _local(value: datetime) -> datetime:
        if value.tzinfo is None:
            return value
        return to_clinic_time(value).replace(tzinfo=None)

    @service_operation
    async def block_time_range(
        self,
        doctor_id: str,
        start: datetime,
        end: datetime,
        reason: str,
        kind: BlockKind = BlockKind.OTHER
    ) -> BlockTimeRangeResult:
        """
        Mark the doctor unavailable between start and end.

        Args:
            doctor_id: Doctor to block
            start: Window start (clinic-local naive, or aware and converted)
            end: Window end, after start
            reason: Why the doctor is unavailable
            kind: leave, meeting, holiday or other

        Returns:
            The stored block, the slots it blocked and the bookings it overlaps
        """
        request = BlockRangeRequest(
            doctor_id=doctor_id,
            start=self._local(start),
            end=self._local(end),
            reason=reason,
            kind=kind,
        )
        self._check_doctor(doctor_id)
        if request.start < clinic_now(self.clock):
            raise ValidationError(f"Block start {request.start} is in the past")

        now = self.clock()
        block = self.store.add_block(BlockedRange(
            block_id=str(uuid.uuid4()),
            doctor_id=doctor_id,
            start=request.start,
            end=request.end,
            reason=request.reason,
            kind=request.kind,
            created_at=now,
        ))
        result = BlockTimeRangeResult(block=block)

        for slot_date in _dates_touched(block):
            async with self.locks.acquire(schedule_key(doctor_id, slot_date)):
                now = self.clock()
                for slot in self.store.list_slots(doctor_id, slot_date):
                    if not slot.is_active or not block.covers(slot_date, slot.start_time, slot.end_time):
                        continue
                    slot = reclaim_if_expired(self.store, slot, now)

                    if slot.status == SlotStatus.AVAILABLE:
                        updated = self.store.transition_slot(slot.slot_id, [SlotStatus.AVAILABLE], {
                            'status': SlotStatus.BLOCKED,
                            'updated_at': now,
                        })
                    elif slot.status == SlotStatus.HELD:
                        updated = close_hold(
                            self.store, slot, now, SlotStatus.BLOCKED, HoldStatus.RELEASED, "blocked"
                        )
                    elif slot.status == SlotStatus.BOOKED:
                        result.affected_bookings.append(slot)
                        continue
                    else:
                        continue

                    if updated is None:
                        logger.warning(f"Slot {slot.slot_id} changed while blocking, skipped")
                        continue
                    result.blocked_slot_ids.append(slot.slot_id)

        logger.info(
            f"Blocked doctor {doctor_id} from {block.start} to {block.end} ({block.kind.value}): "
            f"{len(result.blocked_slot_ids)} slot(s) blocked, "
            f"{len(result.affected_bookings)} booking(s) affected"
        )
        return result

    @service_operation
    async def unblock_time_range(self, block_id: str) -> List[str]:
        """Remove a block; returns the slot ids restored to Available."""
        block = self.store.get_block(block_id)
        if block is None:
            raise NotFoundError(f"Blocked range {block_id} not found")

        self.store.delete_block(block_id)
        restored = []
        for slot_date in _dates_touched(block):
            async with self.locks.acquire(schedule_key(block.doctor_id, slot_date)):
                now = self.clock()
                remaining = self.store.list_blocks_on(block.doctor_id, slot_date)
                for slot in self.store.list_slots(block.doctor_id, slot_date):
                    if slot.status != SlotStatus.BLOCKED:
                        continue
                    if not block.covers(slot_date, slot.start_time, slot.end_time):
                        continue
                    if any(other.covers(slot_date, slot.start_time, slot.end_time) for other in remaining):
                        continue
                    updated = self.store.transition_slot(slot.slot_id, [SlotStatus.BLOCKED], {
                        'status': SlotStatus.AVAILABLE,
                        'updated_at': now,
                    })
                    if updated:
                        restored.append(slot.slot_id)

        logger.info(f"Unblocked range {block_id} for doctor {block.doctor_id}: {len(restored)} slot(s) restored")
        return restored

    @service_operation
    async def list_blocked_ranges(self, doctor_id: str) -> List[BlockedRange]:
        self._check_doctor(doctor_id)
        return sorted(self.store.list_blocks(doctor_id), key=lambda b: b.start)
