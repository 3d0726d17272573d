"""
Supabase-backed schedule store.

Tables live in the ``scheduling`` schema. Conditional updates are expressed as
filtered UPDATEs (``.eq('slot_id', ...).in_('status', [...])``); an empty
result means another writer got there first.
"""

import logging
from dataclasses import asdict, fields
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from supabase import Client

from ..database import get_scheduling_client
from ..models.emergency import (
    EmergencyBooking,
    EmergencyBookingStatus,
    EmergencyPriority,
    EmergencyType,
    RescheduleRequest,
    StatusTransition,
)
from ..models.scheduling import (
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
    utc_now,
)
from .schedule_store import ScheduleStore

logger = logging.getLogger(__name__)

TEMPLATES_TABLE = 'work_templates'
SLOTS_TABLE = 'slots'
HOLDS_TABLE = 'holds'
BLOCKS_TABLE = 'blocked_ranges'
EMERGENCY_TABLE = 'emergency_bookings'
RESCHEDULE_TABLE = 'reschedule_requests'


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, timedelta):
        return int(value.total_seconds())
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def _to_row(record) -> Dict[str, Any]:
    return _jsonable(asdict(record))


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace('Z', '+00:00'))


def _parse_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _parse_time(value: Optional[str]) -> Optional[time]:
    return time.fromisoformat(value) if value else None


def _slot_from_row(row: Dict[str, Any]) -> Slot:
    return Slot(
        slot_id=row['slot_id'],
        doctor_id=row['doctor_id'],
        slot_date=_parse_date(row['slot_date']),
        start_time=_parse_time(row['start_time']),
        end_time=_parse_time(row['end_time']),
        duration_minutes=row['duration_minutes'],
        status=SlotStatus(row['status']),
        appointment_id=row.get('appointment_id'),
        patient_id=row.get('patient_id'),
        is_emergency_slot=bool(row.get('is_emergency_slot')),
        hold_id=row.get('hold_id'),
        held_by=row.get('held_by'),
        hold_expires_at=_parse_datetime(row.get('hold_expires_at')),
        cancellation_reason=row.get('cancellation_reason'),
        created_at=_parse_datetime(row.get('created_at')) or utc_now(),
        updated_at=_parse_datetime(row.get('updated_at')),
    )


def _hold_from_row(row: Dict[str, Any]) -> Hold:
    return Hold(
        hold_id=row['hold_id'],
        slot_id=row['slot_id'],
        doctor_id=row['doctor_id'],
        patient_id=row['patient_id'],
        duration=timedelta(seconds=row['duration']),
        created_at=_parse_datetime(row['created_at']),
        expires_at=_parse_datetime(row['expires_at']),
        status=HoldStatus(row['status']),
        released_at=_parse_datetime(row.get('released_at')),
        release_reason=row.get('release_reason'),
        appointment_id=row.get('appointment_id'),
    )


def _template_from_row(row: Dict[str, Any]) -> WorkTemplate:
    work_days = [
        WorkDay(
            day_of_week=wd['day_of_week'],
            is_active=wd.get('is_active', True),
            time_ranges=[
                TimeRange(_parse_time(tr['start']), _parse_time(tr['end']), tr.get('is_active', True))
                for tr in wd.get('time_ranges') or []
            ],
        )
        for wd in row.get('work_days') or []
    ]
    known = {f.name for f in fields(ScheduleSettings)}
    settings = ScheduleSettings(**{k: v for k, v in (row.get('settings') or {}).items() if k in known})
    return WorkTemplate(
        doctor_id=row['doctor_id'],
        work_days=work_days,
        appointment_duration=row.get('appointment_duration', 30),
        is_active=row.get('is_active', True),
        settings=settings,
        updated_at=_parse_datetime(row.get('updated_at')),
    )


def _block_from_row(row: Dict[str, Any]) -> BlockedRange:
    return BlockedRange(
        block_id=row['block_id'],
        doctor_id=row['doctor_id'],
        start=_parse_datetime(row['start']),
        end=_parse_datetime(row['end']),
        reason=row['reason'],
        kind=BlockKind(row.get('kind', BlockKind.OTHER.value)),
        created_at=_parse_datetime(row.get('created_at')) or utc_now(),
    )


def _emergency_from_row(row: Dict[str, Any]) -> EmergencyBooking:
    history = [
        StatusTransition(
            from_status=EmergencyBookingStatus(h['from_status']) if h.get('from_status') else None,
            to_status=EmergencyBookingStatus(h['to_status']),
            at=_parse_datetime(h['at']),
            actor=h.get('actor', 'system'),
            reason=h.get('reason'),
        )
        for h in row.get('history') or []
    ]
    return EmergencyBooking(
        booking_id=row['booking_id'],
        doctor_id=row['doctor_id'],
        patient_id=row['patient_id'],
        patient_name=row['patient_name'],
        booking_date=_parse_date(row['booking_date']),
        start_time=_parse_time(row['start_time']),
        end_time=_parse_time(row['end_time']),
        emergency_type=EmergencyType(row['emergency_type']),
        priority=EmergencyPriority(row['priority']),
        reason=row['reason'],
        status=EmergencyBookingStatus(row['status']),
        patient_phone=row.get('patient_phone'),
        notes=row.get('notes'),
        slot_id=row.get('slot_id'),
        created_by=row.get('created_by', 'system'),
        created_at=_parse_datetime(row.get('created_at')) or utc_now(),
        confirmed_at=_parse_datetime(row.get('confirmed_at')),
        canceled_at=_parse_datetime(row.get('canceled_at')),
        completed_at=_parse_datetime(row.get('completed_at')),
        cancellation_reason=row.get('cancellation_reason'),
        preempted_hold_ids=list(row.get('preempted_hold_ids') or []),
        displaced_appointment_ids=list(row.get('displaced_appointment_ids') or []),
        conflicts_detected=row.get('conflicts_detected', 0),
        history=history,
    )


def _reschedule_from_row(row: Dict[str, Any]) -> RescheduleRequest:
    return RescheduleRequest(
        request_id=row['request_id'],
        doctor_id=row['doctor_id'],
        appointment_id=row.get('appointment_id'),
        patient_id=row.get('patient_id'),
        original_date=_parse_date(row['original_date']),
        original_start=_parse_time(row['original_start']),
        original_end=_parse_time(row['original_end']),
        emergency_booking_id=row.get('emergency_booking_id'),
        created_at=_parse_datetime(row.get('created_at')) or utc_now(),
        resolved=bool(row.get('resolved')),
    )


class SupabaseScheduleStore(ScheduleStore):
    """ScheduleStore over Supabase tables in the scheduling schema."""

    def __init__(self, supabase_client: Optional[Client] = None):
        self.supabase = supabase_client or get_scheduling_client()

    def _table(self, name: str):
        return self.supabase.table(name)

    # Templates

    def get_template(self, doctor_id: str) -> Optional[WorkTemplate]:
        result = self._table(TEMPLATES_TABLE).select('*').eq('doctor_id', doctor_id).execute()
        return _template_from_row(result.data[0]) if result.data else None

    def save_template(self, template: WorkTemplate) -> WorkTemplate:
        self._table(TEMPLATES_TABLE).upsert(_to_row(template), on_conflict='doctor_id').execute()
        return template

    # Slots

    def get_slot(self, slot_id: str) -> Optional[Slot]:
        result = self._table(SLOTS_TABLE).select('*').eq('slot_id', slot_id).execute()
        return _slot_from_row(result.data[0]) if result.data else None

    def list_slots(self, doctor_id: str, slot_date: date) -> List[Slot]:
        result = self._table(SLOTS_TABLE).select('*').eq(
            'doctor_id', doctor_id
        ).eq(
            'slot_date', slot_date.isoformat()
        ).order('start_time').execute()
        return [_slot_from_row(row) for row in result.data or []]

    def list_slots_in_range(self, doctor_id: str, start: date, end: date) -> List[Slot]:
        result = self._table(SLOTS_TABLE).select('*').eq(
            'doctor_id', doctor_id
        ).gte(
            'slot_date', start.isoformat()
        ).lte(
            'slot_date', end.isoformat()
        ).order('slot_date').order('start_time').execute()
        return [_slot_from_row(row) for row in result.data or []]

    def list_held_slots(self) -> List[Slot]:
        result = self._table(SLOTS_TABLE).select('*').eq('status', SlotStatus.HELD.value).execute()
        return [_slot_from_row(row) for row in result.data or []]

    def add_slot(self, slot: Slot) -> Slot:
        result = self._table(SLOTS_TABLE).insert(_to_row(slot)).execute()
        if not result.data:
            raise ValueError(f"Slot {slot.slot_id} could not be inserted")
        return _slot_from_row(result.data[0])

    def transition_slot(
        self,
        slot_id: str,
        expected_statuses: Iterable[SlotStatus],
        updates: Dict[str, Any],
        expected_hold_id: Optional[str] = None
    ) -> Optional[Slot]:
        query = self._table(SLOTS_TABLE).update(_jsonable(updates)).eq(
            'slot_id', slot_id
        ).in_(
            'status', [SlotStatus(s).value for s in expected_statuses]
        )
        if expected_hold_id is not None:
            query = query.eq('hold_id', expected_hold_id)

        result = query.execute()
        if not result.data:
            logger.debug(f"Conditional update on slot {slot_id} matched no row")
            return None
        return _slot_from_row(result.data[0])

    # Holds

    def add_hold(self, hold: Hold) -> Hold:
        self._table(HOLDS_TABLE).insert(_to_row(hold)).execute()
        return hold

    def get_hold(self, hold_id: str) -> Optional[Hold]:
        result = self._table(HOLDS_TABLE).select('*').eq('hold_id', hold_id).execute()
        return _hold_from_row(result.data[0]) if result.data else None

    def update_hold(
        self,
        hold_id: str,
        expected_status: HoldStatus,
        updates: Dict[str, Any]
    ) -> Optional[Hold]:
        result = self._table(HOLDS_TABLE).update(_jsonable(updates)).eq(
            'hold_id', hold_id
        ).eq(
            'status', expected_status.value
        ).execute()
        return _hold_from_row(result.data[0]) if result.data else None

    def list_holds(
        self,
        status: Optional[HoldStatus] = None,
        slot_id: Optional[str] = None
    ) -> List[Hold]:
        query = self._table(HOLDS_TABLE).select('*')
        if status is not None:
            query = query.eq('status', status.value)
        if slot_id is not None:
            query = query.eq('slot_id', slot_id)
        result = query.order('created_at').execute()
        return [_hold_from_row(row) for row in result.data or []]

    # Blocked ranges

    def add_block(self, block: BlockedRange) -> BlockedRange:
        self._table(BLOCKS_TABLE).insert(_to_row(block)).execute()
        return block

    def get_block(self, block_id: str) -> Optional[BlockedRange]:
        result = self._table(BLOCKS_TABLE).select('*').eq('block_id', block_id).execute()
        return _block_from_row(result.data[0]) if result.data else None

    def delete_block(self, block_id: str) -> bool:
        result = self._table(BLOCKS_TABLE).delete().eq('block_id', block_id).execute()
        return bool(result.data)

    def list_blocks(self, doctor_id: str) -> List[BlockedRange]:
        result = self._table(BLOCKS_TABLE).select('*').eq('doctor_id', doctor_id).order('start').execute()
        return [_block_from_row(row) for row in result.data or []]

    # Emergency bookings

    def save_emergency_booking(self, booking: EmergencyBooking) -> EmergencyBooking:
        self._table(EMERGENCY_TABLE).upsert(_to_row(booking), on_conflict='booking_id').execute()
        return booking

    def get_emergency_booking(self, booking_id: str) -> Optional[EmergencyBooking]:
        result = self._table(EMERGENCY_TABLE).select('*').eq('booking_id', booking_id).execute()
        return _emergency_from_row(result.data[0]) if result.data else None

    def list_emergency_bookings(
        self,
        doctor_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None
    ) -> List[EmergencyBooking]:
        query = self._table(EMERGENCY_TABLE).select('*').eq('doctor_id', doctor_id)
        if start is not None:
            query = query.gte('booking_date', start.isoformat())
        if end is not None:
            query = query.lte('booking_date', end.isoformat())
        result = query.order('booking_date').order('start_time').execute()
        return [_emergency_from_row(row) for row in result.data or []]

    # Reschedule queue

    def add_reschedule_request(self, request: RescheduleRequest) -> RescheduleRequest:
        self._table(RESCHEDULE_TABLE).insert(_to_row(request)).execute()
        return request

    def list_reschedule_requests(
        self,
        doctor_id: str,
        unresolved_only: bool = True
    ) -> List[RescheduleRequest]:
        query = self._table(RESCHEDULE_TABLE).select('*').eq('doctor_id', doctor_id)
        if unresolved_only:
            query = query.eq('resolved', False)
        result = query.order('created_at').execute()
        return [_reschedule_from_row(row) for row in result.data or []]
