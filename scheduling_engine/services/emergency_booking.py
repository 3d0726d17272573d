"""
Emergency Booking Coordinator

Accepts out-of-template bookings, detects conflicts against the doctor's
slots and blocked ranges, and applies the pre-emption policy:

- Critical may pre-empt Available and Held slots (holds are invalidated and
  their holders notified) but never Booked or Blocked time.
- Any other priority is rejected whenever a conflict exists, with no state
  change; the caller resolves conflicts explicitly first.
- Booked slots are only displaced through ``resolve_conflicts``, which queues
  a RescheduleRequest for the affected patient.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional, Tuple, Union

from ..config import DEFAULT_SLOT_DURATION_MINUTES, EMERGENCY_MIN_PRIORITY
from ..exceptions import (
    ConflictUnresolvedError,
    EmergencyBookingNotFoundError,
    InvalidDurationError,
    InvalidStateError,
    SlotNotFoundError,
    TemplateMissingError,
    ValidationError,
)
from ..models.emergency import (
    Conflict,
    ConflictSeverity,
    ConflictType,
    EmergencyBooking,
    EmergencyBookingResult,
    EmergencyBookingStatistics,
    EmergencyBookingStatus,
    EmergencyPriority,
    EmergencyReport,
    NotificationChannel,
    RescheduleRequest,
)
from ..models.results import service_operation
from ..models.scheduling import (
    BlockedRange,
    HoldStatus,
    Slot,
    SlotStatus,
    WorkTemplate,
    minutes_of_day,
    time_from_minutes,
)
from ..schemas.requests import EmergencyBookingRequest
from ..utils.formatting import format_time, priority_label
from ..utils.time_utils import Clock, clinic_now, system_clock
from .locks import schedule_key
from .reservation_manager import close_hold, reclaim_if_expired, reopened_status
from .schedule_store import ScheduleStore

logger = logging.getLogger(__name__)

SEVERITY_BY_STATUS = {
    SlotStatus.AVAILABLE: ConflictSeverity.LOW,
    SlotStatus.HELD: ConflictSeverity.MEDIUM,
    SlotStatus.BOOKED: ConflictSeverity.HIGH,
    SlotStatus.BLOCKED: ConflictSeverity.HIGH,
}

TYPE_BY_STATUS = {
    SlotStatus.AVAILABLE: ConflictType.AVAILABLE_SLOT,
    SlotStatus.HELD: ConflictType.HELD_SLOT,
    SlotStatus.BOOKED: ConflictType.BOOKED_SLOT,
    SlotStatus.BLOCKED: ConflictType.BLOCKED,
}

RESOLUTION_BY_TYPE = {
    ConflictType.AVAILABLE_SLOT: "cancel_available_slot",
    ConflictType.HELD_SLOT: "preempt_hold",
    ConflictType.BOOKED_SLOT: "reschedule_booking",
    ConflictType.BLOCKED: "choose_another_time",
}

PREEMPTABLE_TYPES = (ConflictType.AVAILABLE_SLOT, ConflictType.HELD_SLOT)


# Notifications

class EmergencyNotifier(ABC):
    """Delivers patient-facing notices raised by emergency bookings."""

    @abstractmethod
    async def send(
        self,
        recipient_id: str,
        channel: NotificationChannel,
        message: str,
        context: Optional[Dict[str, Any]] = None
    ) -> bool:
        ...


@dataclass
class SentNotification:
    recipient_id: str
    channel: NotificationChannel
    message: str
    context: Dict[str, Any]


class LoggingNotifier(EmergencyNotifier):
    """Default notifier: logs every notice and keeps it in memory."""

    def __init__(self):
        self.sent: List[SentNotification] = []

    async def send(self, recipient_id, channel, message, context=None) -> bool:
        self.sent.append(SentNotification(recipient_id, channel, message, dict(context or {})))
        logger.info(f"[{channel.value}] notify {recipient_id}: {message}")
        return True


class EmergencyBookingCoordinator:

    def __init__(
        self,
        store: ScheduleStore,
        locks,
        clock: Clock = system_clock,
        directory=None,
        notifier: Optional[EmergencyNotifier] = None,
        min_priority: Union[EmergencyPriority, str] = EMERGENCY_MIN_PRIORITY,
        default_channel: NotificationChannel = NotificationChannel.SMS
    ):
        self.store = store
        self.locks = locks
        self.clock = clock
        self.directory = directory
        self.notifier = notifier or LoggingNotifier()
        self.min_priority = EmergencyPriority(min_priority)
        self.default_channel = default_channel

    # Validation helpers

    def _check_doctor(self, doctor_id: str):
        if self.directory is not None:
            self.directory.require_doctor(doctor_id)

    def _active_template(self, doctor_id: str) -> WorkTemplate:
        template = self.store.get_template(doctor_id)
        if template is None or not template.is_active:
            raise TemplateMissingError(doctor_id)
        return template

    def _check_not_past(self, slot_date: date, start_time: time):
        now_local = clinic_now(self.clock)
        if slot_date < now_local.date():
            raise ValidationError(f"Date {slot_date} is in the past")
        if datetime.combine(slot_date, start_time) < now_local:
            raise ValidationError(f"Time {format_time(start_time)} on {slot_date} is in the past")

    @staticmethod
    def _window(start_time: time, duration_minutes: int) -> Tuple[time, time]:
        if duration_minutes is None or duration_minutes <= 0:
            raise InvalidDurationError(duration_minutes, "Emergency duration must be positive")
        try:
            return start_time, time_from_minutes(minutes_of_day(start_time) + duration_minutes)
        except ValueError:
            raise ValidationError(
                f"Emergency window starting {format_time(start_time)} must end on the same day"
            )

    @staticmethod
    def _within_working_hours(template: WorkTemplate, slot_date: date, start: time, end: time) -> bool:
        return any(
            tr.start <= start and end <= tr.end
            for tr in template.active_ranges_for(slot_date)
        )

    def _policy_rejection(
        self,
        template: WorkTemplate,
        slot_date: date,
        start: time,
        end: time,
        priority: EmergencyPriority
    ) -> Optional[str]:
        """Reason the request is refused before conflicts are considered, if any."""
        if not template.settings.allow_emergency_booking:
            return f"Emergency booking is disabled for doctor {template.doctor_id}"
        if not priority.at_least(self.min_priority):
            return (
                f"Priority {priority.value} is below the minimum emergency priority "
                f"{self.min_priority.value}"
            )
        if priority != EmergencyPriority.CRITICAL and not self._within_working_hours(template, slot_date, start, end):
            return "Outside working hours only critical emergencies can be booked"
        return None

    @staticmethod
    def _blocking_conflicts(conflicts: List[Conflict], priority: EmergencyPriority) -> List[Conflict]:
        """Conflicts that stop a booking under the pre-emption policy."""
        if priority != EmergencyPriority.CRITICAL:
            return list(conflicts)
        return [c for c in conflicts if c.conflict_type not in PREEMPTABLE_TYPES]

    # Conflict detection

    @staticmethod
    def _severity(base: ConflictSeverity, priority: EmergencyPriority) -> ConflictSeverity:
        return base.escalate() if priority == EmergencyPriority.CRITICAL else base

    def _slot_conflict(self, slot: Slot, status: SlotStatus, priority: EmergencyPriority) -> Conflict:
        conflict_type = TYPE_BY_STATUS[status]
        window = f"{format_time(slot.start_time)}-{format_time(slot.end_time)}"
        return Conflict(
            conflict_id=f"{conflict_type.value}:{slot.slot_id}",
            doctor_id=slot.doctor_id,
            conflict_date=slot.slot_date,
            start_time=slot.start_time,
            end_time=slot.end_time,
            conflict_type=conflict_type,
            severity=self._severity(SEVERITY_BY_STATUS[status], priority),
            description=f"Overlaps {status.value} slot {window}",
            suggested_resolution=RESOLUTION_BY_TYPE[conflict_type],
            slot_id=slot.slot_id,
            hold_id=slot.hold_id if status == SlotStatus.HELD else None,
            appointment_id=slot.appointment_id if status == SlotStatus.BOOKED else None,
        )

    def _block_conflict(self, block: BlockedRange, slot_date: date, priority: EmergencyPriority) -> Conflict:
        return Conflict(
            conflict_id=f"{ConflictType.BLOCKED.value}:{block.block_id}",
            doctor_id=block.doctor_id,
            conflict_date=slot_date,
            start_time=block.start.time() if block.start.date() == slot_date else time.min,
            end_time=block.end.time() if block.end.date() == slot_date else time.max,
            conflict_type=ConflictType.BLOCKED,
            severity=self._severity(ConflictSeverity.HIGH, priority),
            description=f"Doctor unavailable ({block.kind.value}): {block.reason}",
            suggested_resolution=RESOLUTION_BY_TYPE[ConflictType.BLOCKED],
            block_id=block.block_id,
        )

    def _detect(
        self,
        doctor_id: str,
        slot_date: date,
        start: time,
        end: time,
        priority: EmergencyPriority
    ) -> Tuple[List[Conflict], Optional[Slot]]:
        """
        Scan active slots and blocked ranges intersecting [start, end).

        Returns:
            (conflicts, target) where target is an Available slot exactly
            matching the window, which the booking consumes instead of
            treating it as a conflict.
        """
        now = self.clock()
        conflicts: List[Conflict] = []
        target: Optional[Slot] = None

        for slot in self.store.list_slots(doctor_id, slot_date):
            if not slot.is_active or not slot.overlaps(start, end):
                continue
            status = slot.effective_status(now)
            if (
                status == SlotStatus.AVAILABLE
                and target is None
                and slot.start_time == start
                and slot.end_time == end
            ):
                target = slot
                continue
            conflicts.append(self._slot_conflict(slot, status, priority))

        for block in self.store.list_blocks_on(doctor_id, slot_date):
            if block.covers(slot_date, start, end):
                conflicts.append(self._block_conflict(block, slot_date, priority))

        return conflicts, target

    # Operations

    @service_operation
    async def can_book_emergency(
        self,
        doctor_id: str,
        slot_date: date,
        start_time: time,
        priority: EmergencyPriority,
        duration_minutes: Optional[int] = None
    ) -> bool:
        priority = EmergencyPriority(priority)
        self._check_doctor(doctor_id)
        self._check_not_past(slot_date, start_time)
        template = self._active_template(doctor_id)
        start, end = self._window(start_time, duration_minutes or template.appointment_duration)

        rejection = self._policy_rejection(template, slot_date, start, end, priority)
        if rejection:
            logger.info(f"Emergency not bookable for doctor {doctor_id} on {slot_date}: {rejection}")
            return False

        conflicts, _ = self._detect(doctor_id, slot_date, start, end, priority)
        return not self._blocking_conflicts(conflicts, priority)

    @service_operation
    async def check_conflicts(
        self,
        doctor_id: str,
        slot_date: date,
        start_time: time,
        duration_minutes: Optional[int] = None,
        priority: EmergencyPriority = EmergencyPriority.MEDIUM
    ) -> List[Conflict]:
        priority = EmergencyPriority(priority)
        self._check_doctor(doctor_id)
        if duration_minutes is None:
            template = self.store.get_template(doctor_id)
            duration_minutes = template.appointment_duration if template else DEFAULT_SLOT_DURATION_MINUTES
        start, end = self._window(start_time, duration_minutes)
        conflicts, _ = self._detect(doctor_id, slot_date, start, end, priority)
        return conflicts

    async def _notify(self, recipient_id: Optional[str], message: str, context: Dict[str, Any],
                      channel: Optional[NotificationChannel] = None) -> bool:
        if not recipient_id:
            return False
        try:
            return await self.notifier.send(recipient_id, channel or self.default_channel, message, context)
        except Exception as e:
            logger.warning(f"Failed to notify {recipient_id}: {e}")
            return False

    async def _preempt(self, conflict: Conflict, now: datetime, booking_id: str) -> Optional[str]:
        """
        Clear an Available or Held slot for a critical emergency.

        Returns:
            The pre-empted hold id, if a hold was invalidated.
        """
        slot = self.store.get_slot(conflict.slot_id)
        if slot is None:
            raise SlotNotFoundError(conflict.slot_id)
        slot = reclaim_if_expired(self.store, slot, now)

        if slot.status == SlotStatus.AVAILABLE:
            cancelled = self.store.transition_slot(slot.slot_id, [SlotStatus.AVAILABLE], {
                'status': SlotStatus.CANCELLED,
                'cancellation_reason': f"emergency {booking_id}",
                'updated_at': now,
            })
            if cancelled is None:
                raise InvalidStateError(f"Slot {slot.slot_id} changed during emergency booking")
            return None

        if slot.status == SlotStatus.HELD:
            hold_id, holder = slot.hold_id, slot.held_by
            if close_hold(self.store, slot, now, SlotStatus.CANCELLED, HoldStatus.PREEMPTED,
                          f"emergency {booking_id}") is None:
                raise InvalidStateError(f"Slot {slot.slot_id} changed during emergency booking")
            logger.info(f"Hold {hold_id} on slot {slot.slot_id} pre-empted by emergency {booking_id}")
            await self._notify(
                holder,
                f"Your reservation for {slot.slot_date} {format_time(slot.start_time)} was released "
                f"for an emergency. Please choose another time.",
                {'slot_id': slot.slot_id, 'hold_id': hold_id, 'emergency_booking_id': booking_id}
            )
            return hold_id

        raise InvalidStateError(f"Slot {slot.slot_id} is {slot.status.value} and cannot be pre-empted")

    def _secure_slot(self, booking: EmergencyBooking, target: Optional[Slot], now: datetime) -> Slot:
        if target is not None:
            target = reclaim_if_expired(self.store, target, now)
            consumed = self.store.transition_slot(target.slot_id, [SlotStatus.AVAILABLE], {
                'status': SlotStatus.BOOKED,
                'appointment_id': booking.booking_id,
                'patient_id': booking.patient_id,
                'updated_at': now,
            })
            if consumed is None:
                raise InvalidStateError(f"Slot {target.slot_id} changed during emergency booking")
            return consumed

        slot = Slot(
            slot_id=str(uuid.uuid4()),
            doctor_id=booking.doctor_id,
            slot_date=booking.booking_date,
            start_time=booking.start_time,
            end_time=booking.end_time,
            duration_minutes=minutes_of_day(booking.end_time) - minutes_of_day(booking.start_time),
            status=SlotStatus.BOOKED,
            appointment_id=booking.booking_id,
            patient_id=booking.patient_id,
            is_emergency_slot=True,
            created_at=now,
        )
        return self.store.add_slot(slot)

    @service_operation
    async def book_emergency(
        self,
        request: Union[EmergencyBookingRequest, Dict[str, Any]]
    ) -> EmergencyBookingResult:
        if not isinstance(request, EmergencyBookingRequest):
            request = EmergencyBookingRequest.model_validate(request)

        doctor_id, slot_date = request.doctor_id, request.booking_date
        self._check_doctor(doctor_id)
        self._check_not_past(slot_date, request.start_time)
        template = self._active_template(doctor_id)
        start, end = self._window(request.start_time, request.duration_minutes or template.appointment_duration)

        rejection = self._policy_rejection(template, slot_date, start, end, request.priority)
        if rejection:
            if not template.settings.allow_emergency_booking:
                raise InvalidStateError(rejection)
            raise ValidationError(rejection)

        async with self.locks.acquire(schedule_key(doctor_id, slot_date)):
            conflicts, target = self._detect(doctor_id, slot_date, start, end, request.priority)
            blocking = self._blocking_conflicts(conflicts, request.priority)
            if blocking:
                logger.warning(
                    f"Emergency for doctor {doctor_id} on {slot_date} {format_time(start)} rejected: "
                    f"{len(blocking)} unresolved conflict(s)"
                )
                raise ConflictUnresolvedError(conflicts)

            now = self.clock()
            booking = EmergencyBooking(
                booking_id=str(uuid.uuid4()),
                doctor_id=doctor_id,
                patient_id=request.patient_id,
                patient_name=request.patient_name,
                patient_phone=request.patient_phone,
                booking_date=slot_date,
                start_time=start,
                end_time=end,
                emergency_type=request.emergency_type,
                priority=request.priority,
                reason=request.reason,
                notes=request.notes,
                created_by=request.created_by,
                created_at=now,
                conflicts_detected=len(conflicts),
            )
            booking.transition(EmergencyBookingStatus.PENDING, now, request.created_by, "requested")
            self.store.save_emergency_booking(booking)

            try:
                preempted_ids = []
                for conflict in conflicts:
                    hold_id = await self._preempt(conflict, now, booking.booking_id)
                    if hold_id:
                        preempted_ids.append(hold_id)
                slot = self._secure_slot(booking, target, now)
            except InvalidStateError as e:
                booking.transition(EmergencyBookingStatus.CANCELED, now, "system", e.message)
                booking.canceled_at = now
                booking.cancellation_reason = e.message
                self.store.save_emergency_booking(booking)
                raise

            booking.slot_id = slot.slot_id
            booking.preempted_hold_ids = preempted_ids
            booking.confirmed_at = now
            booking.transition(EmergencyBookingStatus.CONFIRMED, now, request.created_by, "slot secured")
            self.store.save_emergency_booking(booking)

        preempted_holds = [h for h in (self.store.get_hold(hid) for hid in preempted_ids) if h]
        logger.info(
            f"Emergency booking {booking.booking_id} confirmed for doctor {doctor_id} on {slot_date} "
            f"{format_time(start)}-{format_time(end)} ({request.priority.value}), "
            f"slot {slot.slot_id}, pre-empted {len(preempted_ids)} hold(s)"
        )
        await self._notify(
            booking.patient_id,
            f"Emergency appointment confirmed for {slot_date} at {format_time(start)}.",
            {'emergency_booking_id': booking.booking_id, 'slot_id': slot.slot_id}
        )
        return EmergencyBookingResult(booking=booking, slot=slot, preempted_holds=preempted_holds)

    @service_operation
    async def resolve_conflicts(
        self,
        doctor_id: str,
        slot_date: date,
        conflicts: List[Conflict],
        emergency_booking_id: Optional[str] = None
    ) -> bool:
        """
        Explicitly clear conflicting time so an emergency can be booked.

        Available slots are cancelled, holds are pre-empted, and booked
        patients are displaced into reschedule requests. Blocked time is never
        resolved here.
        """
        if not conflicts:
            return True
        self._check_doctor(doctor_id)
        for conflict in conflicts:
            if conflict.doctor_id != doctor_id or conflict.conflict_date != slot_date:
                raise ValidationError(f"Conflict {conflict.conflict_id} does not belong to {doctor_id} on {slot_date}")

        async with self.locks.acquire(schedule_key(doctor_id, slot_date)):
            now = self.clock()

            # Re-evaluate against current state before touching anything
            plan: List[Tuple[Conflict, Slot]] = []
            for conflict in conflicts:
                if conflict.conflict_type == ConflictType.BLOCKED or conflict.slot_id is None:
                    raise ConflictUnresolvedError([conflict], "Blocked time cannot be resolved automatically")
                slot = self.store.get_slot(conflict.slot_id)
                if slot is None:
                    raise SlotNotFoundError(conflict.slot_id)
                status = slot.effective_status(now)
                if status == SlotStatus.BLOCKED:
                    raise ConflictUnresolvedError([conflict], f"Slot {slot.slot_id} is now blocked")
                if status != SlotStatus.CANCELLED:
                    plan.append((conflict, slot))

            tag = emergency_booking_id or "resolution"
            for conflict, slot in plan:
                if slot.effective_status(now) in (SlotStatus.AVAILABLE, SlotStatus.HELD):
                    await self._preempt(conflict, now, tag)
                    continue

                displaced = self.store.transition_slot(slot.slot_id, [SlotStatus.BOOKED], {
                    'status': SlotStatus.CANCELLED,
                    'cancellation_reason': f"displaced by emergency {tag}",
                    'updated_at': now,
                })
                if displaced is None:
                    raise InvalidStateError(f"Slot {slot.slot_id} changed while resolving conflicts")

                request = self.store.add_reschedule_request(RescheduleRequest(
                    request_id=str(uuid.uuid4()),
                    doctor_id=doctor_id,
                    appointment_id=slot.appointment_id,
                    patient_id=slot.patient_id,
                    original_date=slot.slot_date,
                    original_start=slot.start_time,
                    original_end=slot.end_time,
                    emergency_booking_id=emergency_booking_id,
                    created_at=now,
                ))
                if emergency_booking_id and slot.appointment_id:
                    booking = self.store.get_emergency_booking(emergency_booking_id)
                    if booking is not None:
                        booking.displaced_appointment_ids.append(slot.appointment_id)
                        self.store.save_emergency_booking(booking)
                if slot.appointment_id:
                    self._cancel_displaced_emergency(slot.appointment_id, now, tag)
                logger.info(
                    f"Booking {slot.appointment_id} on slot {slot.slot_id} displaced, "
                    f"reschedule request {request.request_id}"
                )
                await self._notify(
                    slot.patient_id,
                    f"Your appointment on {slot.slot_date} at {format_time(slot.start_time)} must be "
                    f"rescheduled because of an emergency. We will contact you with a new time.",
                    {'reschedule_request_id': request.request_id, 'appointment_id': slot.appointment_id}
                )

        logger.info(f"Resolved {len(plan)} conflict(s) for doctor {doctor_id} on {slot_date}")
        return True

    def _cancel_displaced_emergency(self, appointment_id: str, now: datetime, tag: str):
        """An emergency booking whose slot was displaced no longer holds any time."""
        displaced = self.store.get_emergency_booking(appointment_id)
        if displaced is None or not displaced.is_active:
            return
        reason = f"displaced by emergency {tag}"
        displaced.transition(EmergencyBookingStatus.CANCELED, now, "system", reason)
        displaced.canceled_at = now
        displaced.cancellation_reason = reason
        self.store.save_emergency_booking(displaced)
        logger.info(f"Emergency booking {appointment_id} canceled: {reason}")

    def _get_booking(self, booking_id: str) -> EmergencyBooking:
        booking = self.store.get_emergency_booking(booking_id)
        if booking is None:
            raise EmergencyBookingNotFoundError(booking_id)
        return booking

    @service_operation
    async def cancel_emergency(self, booking_id: str, reason: str, actor: str = "system") -> EmergencyBooking:
        if not reason or not reason.strip():
            raise ValidationError("Cancellation reason is required")

        booking = self._get_booking(booking_id)
        async with self.locks.acquire(schedule_key(booking.doctor_id, booking.booking_date)):
            booking = self._get_booking(booking_id)
            if not booking.is_active:
                raise InvalidStateError(f"Emergency booking {booking_id} is {booking.status.value}")

            now = self.clock()
            slot = self.store.get_slot(booking.slot_id) if booking.slot_id else None
            if slot and slot.status == SlotStatus.BOOKED and slot.appointment_id == booking_id:
                if slot.is_emergency_slot:
                    updates = {'status': SlotStatus.CANCELLED, 'cancellation_reason': reason, 'updated_at': now}
                else:
                    updates = {'status': reopened_status(self.store, slot), 'appointment_id': None,
                               'patient_id': None, 'updated_at': now}
                if self.store.transition_slot(slot.slot_id, [SlotStatus.BOOKED], updates) is None:
                    raise InvalidStateError(f"Slot {slot.slot_id} changed while cancelling {booking_id}")

            booking.transition(EmergencyBookingStatus.CANCELED, now, actor, reason)
            booking.canceled_at = now
            booking.cancellation_reason = reason
            self.store.save_emergency_booking(booking)

        logger.info(f"Emergency booking {booking_id} canceled by {actor}: {reason}")
        await self._notify(
            booking.patient_id,
            f"Your emergency appointment on {booking.booking_date} at {format_time(booking.start_time)} "
            f"was canceled.",
            {'emergency_booking_id': booking_id}
        )
        return booking

    @service_operation
    async def complete_emergency(self, booking_id: str, actor: str = "system") -> EmergencyBooking:
        booking = self._get_booking(booking_id)
        if booking.status != EmergencyBookingStatus.CONFIRMED:
            raise InvalidStateError(
                f"Only confirmed emergency bookings can be completed, {booking_id} is {booking.status.value}"
            )
        now = self.clock()
        booking.transition(EmergencyBookingStatus.COMPLETED, now, actor, "completed")
        booking.completed_at = now
        self.store.save_emergency_booking(booking)
        logger.info(f"Emergency booking {booking_id} completed")
        return booking

    @service_operation
    async def get_emergency_bookings(
        self,
        doctor_id: str,
        slot_date: Optional[date] = None,
        priority: Optional[EmergencyPriority] = None
    ) -> List[EmergencyBooking]:
        self._check_doctor(doctor_id)
        bookings = self.store.list_emergency_bookings(doctor_id, slot_date, slot_date)
        if priority is not None:
            priority = EmergencyPriority(priority)
            bookings = [b for b in bookings if b.priority == priority]
        return bookings

    @service_operation
    async def get_emergency_priorities(self) -> List[Dict[str, Any]]:
        return [
            {
                'value': priority.value,
                'label': priority_label(priority),
                'rank': priority.rank,
                'can_preempt': priority == EmergencyPriority.CRITICAL,
                'accepted': priority.at_least(self.min_priority),
            }
            for priority in EmergencyPriority
        ]

    @service_operation
    async def set_emergency_priority(
        self,
        booking_id: str,
        priority: EmergencyPriority,
        actor: str = "system"
    ) -> EmergencyBooking:
        priority = EmergencyPriority(priority)
        booking = self._get_booking(booking_id)
        if not booking.is_active:
            raise InvalidStateError(f"Emergency booking {booking_id} is {booking.status.value}")
        if booking.priority == priority:
            return booking

        previous = booking.priority
        booking.priority = priority
        # Priority changes are recorded in the history without a status change
        booking.transition(booking.status, self.clock(), actor, f"priority {previous.value} -> {priority.value}")
        self.store.save_emergency_booking(booking)
        logger.info(f"Emergency booking {booking_id} priority {previous.value} -> {priority.value}")
        return booking

    @service_operation
    async def send_emergency_notification(
        self,
        booking_id: str,
        channel: NotificationChannel = NotificationChannel.SMS,
        message: Optional[str] = None
    ) -> bool:
        booking = self._get_booking(booking_id)
        channel = NotificationChannel(channel)
        text = message or (
            f"Emergency appointment ({priority_label(booking.priority)}) on {booking.booking_date} "
            f"at {format_time(booking.start_time)}: {booking.status.value}."
        )
        return await self._notify(booking.patient_id, text, {'emergency_booking_id': booking_id}, channel)

    @service_operation
    async def get_emergency_statistics(self, doctor_id: str, start: date, end: date) -> EmergencyBookingStatistics:
        if start > end:
            raise ValidationError(f"Start date {start} is after end date {end}")
        self._check_doctor(doctor_id)
        bookings = self.store.list_emergency_bookings(doctor_id, start, end)
        by_status = {status: 0 for status in EmergencyBookingStatus}
        for booking in bookings:
            by_status[booking.status] += 1
        return EmergencyBookingStatistics(
            doctor_id=doctor_id,
            from_date=start,
            to_date=end,
            total_emergency_bookings=len(bookings),
            confirmed_bookings=by_status[EmergencyBookingStatus.CONFIRMED],
            canceled_bookings=by_status[EmergencyBookingStatus.CANCELED],
            completed_bookings=by_status[EmergencyBookingStatus.COMPLETED],
            doctor_name=self.directory.doctor_name(doctor_id) if self.directory else None,
        )

    @service_operation
    async def get_emergency_report(self, doctor_id: str, start: date, end: date) -> EmergencyReport:
        if start > end:
            raise ValidationError(f"Start date {start} is after end date {end}")
        self._check_doctor(doctor_id)

        bookings = self.store.list_emergency_bookings(doctor_id, start, end)
        live = [b for b in bookings if b.status != EmergencyBookingStatus.CANCELED]
        emergency_ids = {b.booking_id for b in bookings}
        regular = [
            s for s in self.store.list_slots_in_range(doctor_id, start, end)
            if s.status == SlotStatus.BOOKED and s.appointment_id not in emergency_ids
        ]
        response_minutes = [
            (b.confirmed_at - b.created_at).total_seconds() / 60
            for b in bookings if b.confirmed_at
        ]
        resolved = sum(b.conflicts_detected for b in bookings if b.confirmed_at)

        return EmergencyReport(
            doctor_id=doctor_id,
            from_date=start,
            to_date=end,
            report_date=self.clock(),
            emergency_bookings_count=len(live),
            regular_bookings_count=len(regular),
            average_response_minutes=round(sum(response_minutes) / len(response_minutes)) if response_minutes else 0,
            conflicts_count=sum(b.conflicts_detected for b in bookings),
            resolved_conflicts_count=resolved,
            doctor_name=self.directory.doctor_name(doctor_id) if self.directory else None,
        )

    @service_operation
    async def get_pending_reschedules(self, doctor_id: str) -> List[RescheduleRequest]:
        self._check_doctor(doctor_id)
        return self.store.list_reschedule_requests(doctor_id, unresolved_only=True)
