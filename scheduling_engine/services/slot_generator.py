"""
Slot Generator

Expands a doctor's weekly work template into dated slots.

Generation is idempotent per (doctor, date, start): matching slots are kept,
cancelled slots are replaced, and held/booked/blocked/emergency slots are never
touched. Available slots of a different granularity that overlap a new
candidate are cancelled and replaced.
"""

import calendar
import logging
import uuid
from datetime import date, time, timedelta
from typing import Dict, FrozenSet, List, Optional, Tuple

from ..config import WEEKEND_DAYS
from ..exceptions import InvalidDurationError, TemplateMissingError, ValidationError
from ..models.results import service_operation
from ..models.scheduling import (
    Slot,
    SlotStatus,
    WorkTemplate,
    day_of_week,
    minutes_of_day,
    time_from_minutes,
)
from ..utils.time_utils import Clock, system_clock
from .locks import schedule_key
from .schedule_store import ScheduleStore

logger = logging.getLogger(__name__)

UNTOUCHABLE_STATUSES = (SlotStatus.HELD, SlotStatus.BOOKED, SlotStatus.BLOCKED)


class SlotGenerator:

    def __init__(
        self,
        store: ScheduleStore,
        locks,
        clock: Clock = system_clock,
        directory=None,
        weekend_days: FrozenSet[int] = WEEKEND_DAYS
    ):
        self.store = store
        self.locks = locks
        self.clock = clock
        self.directory = directory
        self.weekend_days = weekend_days

    @service_operation
    async def generate_weekly(
        self,
        doctor_id: str,
        week_start: date,
        slot_duration_minutes: Optional[int] = None,
        include_weekend: bool = False
    ) -> int:
        """Generate the 7 days starting at week_start; returns slots created."""
        return await self._generate(
            doctor_id, week_start, week_start + timedelta(days=6),
            slot_duration_minutes, include_weekend
        )

    @service_operation
    async def generate_monthly(
        self,
        doctor_id: str,
        month_start: date,
        slot_duration_minutes: Optional[int] = None,
        include_weekend: bool = False
    ) -> int:
        """Generate every day of month_start's calendar month."""
        first = month_start.replace(day=1)
        last = first.replace(day=calendar.monthrange(first.year, first.month)[1])
        return await self._generate(doctor_id, first, last, slot_duration_minutes, include_weekend)

    @service_operation
    async def generate_for_range(
        self,
        doctor_id: str,
        start: date,
        end: date,
        slot_duration_minutes: Optional[int] = None,
        include_weekend: bool = False
    ) -> int:
        if start > end:
            raise ValidationError(f"Start date {start} is after end date {end}")
        return await self._generate(doctor_id, start, end, slot_duration_minutes, include_weekend)

    def _load_template(self, doctor_id: str) -> WorkTemplate:
        if self.directory is not None:
            self.directory.require_doctor(doctor_id)
        template = self.store.get_template(doctor_id)
        if template is None or not template.is_active:
            raise TemplateMissingError(doctor_id)
        return template

    @staticmethod
    def _resolve_duration(template: WorkTemplate, slot_duration_minutes: Optional[int]) -> int:
        duration = template.appointment_duration if slot_duration_minutes is None else slot_duration_minutes
        if duration is None or duration <= 0:
            raise InvalidDurationError(duration, f"Slot duration must be positive, got {duration}")
        if duration > template.longest_active_range_minutes():
            raise InvalidDurationError(
                duration,
                f"Slot duration {duration} exceeds every active time range of the template"
            )
        return duration

    async def _generate(
        self,
        doctor_id: str,
        start: date,
        end: date,
        slot_duration_minutes: Optional[int],
        include_weekend: bool
    ) -> int:
        template = self._load_template(doctor_id)
        duration = self._resolve_duration(template, slot_duration_minutes)

        logger.info(
            f"Generating {duration}-minute slots for doctor {doctor_id} "
            f"from {start} to {end} (weekend={include_weekend})"
        )

        created = 0
        current = start
        while current <= end:
            try:
                async with self.locks.acquire(schedule_key(doctor_id, current)):
                    created += self._generate_day(template, current, duration, include_weekend)
            except Exception as e:
                # One bad day must not abort the range
                logger.error(f"Slot generation failed for doctor {doctor_id} on {current}: {e}")
            current += timedelta(days=1)

        logger.info(f"Generated {created} slots for doctor {doctor_id} from {start} to {end}")
        return created

    def _candidates(self, template: WorkTemplate, slot_date: date, duration: int) -> List[Tuple[time, time]]:
        candidates = []
        for time_range in template.active_ranges_for(slot_date):
            if time_range.minutes < duration:
                logger.warning(
                    f"Skipping range {time_range.start}-{time_range.end} on {slot_date} for doctor "
                    f"{template.doctor_id}: shorter than {duration} minutes"
                )
                continue
            cursor = minutes_of_day(time_range.start)
            range_end = minutes_of_day(time_range.end)
            # Trailing remainder shorter than the duration is dropped
            while cursor + duration <= range_end:
                candidates.append((time_from_minutes(cursor), time_from_minutes(cursor + duration)))
                cursor += duration
        return candidates

    def _replace_all(self, overlapping: List[Slot], now) -> bool:
        """
        Cancel every overlapping Available slot, or none of them.

        A slot that changed since it was listed leaves the day as it was;
        slots already cancelled in this pass are restored.
        """
        for slot in overlapping:
            current = self.store.get_slot(slot.slot_id)
            if current is None or current.status != SlotStatus.AVAILABLE:
                return False

        cancelled: List[Slot] = []
        for slot in overlapping:
            replaced = self.store.transition_slot(slot.slot_id, [SlotStatus.AVAILABLE], {
                'status': SlotStatus.CANCELLED,
                'cancellation_reason': 'regenerated',
                'updated_at': now,
            })
            if replaced is None:
                for done in cancelled:
                    self.store.transition_slot(done.slot_id, [SlotStatus.CANCELLED], {
                        'status': SlotStatus.AVAILABLE,
                        'cancellation_reason': None,
                        'updated_at': now,
                    })
                logger.warning(f"Slot {slot.slot_id} changed during regeneration; kept existing slots")
                return False
            cancelled.append(replaced)
        return True

    def _generate_day(self, template: WorkTemplate, slot_date: date, duration: int, include_weekend: bool) -> int:
        if day_of_week(slot_date) in self.weekend_days and not include_weekend:
            return 0

        candidates = self._candidates(template, slot_date, duration)
        if not candidates:
            return 0

        doctor_id = template.doctor_id
        now = self.clock()
        active: Dict[str, Slot] = {
            slot.slot_id: slot
            for slot in self.store.list_slots(doctor_id, slot_date)
            if slot.is_active
        }
        blocks = self.store.list_blocks_on(doctor_id, slot_date)

        created = 0
        for start, end in candidates:
            overlapping = [slot for slot in active.values() if slot.overlaps(start, end)]

            if any(slot.start_time == start and slot.end_time == end for slot in overlapping):
                continue
            if any(slot.status in UNTOUCHABLE_STATUSES or slot.is_emergency_slot for slot in overlapping):
                continue

            if not self._replace_all(overlapping, now):
                continue
            for slot in overlapping:
                del active[slot.slot_id]
                logger.debug(f"Replaced slot {slot.slot_id} ({slot.start_time}-{slot.end_time}) on {slot_date}")

            blocked = any(block.covers(slot_date, start, end) for block in blocks)
            slot = Slot(
                slot_id=str(uuid.uuid4()),
                doctor_id=doctor_id,
                slot_date=slot_date,
                start_time=start,
                end_time=end,
                duration_minutes=duration,
                status=SlotStatus.BLOCKED if blocked else SlotStatus.AVAILABLE,
                created_at=now,
            )
            self.store.add_slot(slot)
            active[slot.slot_id] = slot
            created += 1

        if created:
            logger.debug(f"Created {created} slots for doctor {doctor_id} on {slot_date}")
        return created
