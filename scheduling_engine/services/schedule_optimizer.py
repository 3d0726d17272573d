"""
Schedule Optimizer

Advisory workload analysis over a doctor's slots. Reads the store only and
never changes slot or hold state; callers apply suggestions explicitly
through the generator and reservation manager.

Missing templates or slots do not fail an analysis: the result comes back
with low confidence instead. Identical inputs give identical outputs (ids are
derived from doctor, date and time; iteration is always sorted).
"""

import calendar
import logging
import math
from dataclasses import dataclass
from datetime import date, time, timedelta
from typing import Dict, List, Optional, Sequence

from ..config import (
    DEFAULT_SLOT_DURATION_MINUTES,
    EMERGENCY_HEADROOM_PERCENT,
    MAX_CONTINUOUS_WORK_MINUTES,
    MIN_BREAK_MINUTES,
    TARGET_UTILIZATION_HIGH,
    TARGET_UTILIZATION_LOW,
)
from ..exceptions import ValidationError
from ..models.optimization import (
    BreakTimeSlot,
    BreakType,
    Confidence,
    CostOptimizationReport,
    CostOptimizationSuggestion,
    EmergencyTimeSlot,
    PatientDistributionResult,
    WorkLifeBalanceReport,
    WorkLifeBalanceStatus,
    WorkloadBalanceResult,
    WorkloadBalanceStatus,
)
from ..models.results import service_operation
from ..models.scheduling import Slot, SlotStatus, TimeRange, day_of_week, minutes_of_day, time_from_minutes
from ..utils.formatting import format_date, format_time
from ..utils.time_utils import Clock, system_clock
from .schedule_store import ScheduleStore

logger = logging.getLogger(__name__)

LUNCH_START = time(12, 0)
LUNCH_END = time(13, 0)
STANDARD_WEEKLY_HOURS = 40.0
OVERWORK_WEEKLY_HOURS = 48.0
UNDERWORK_WEEKLY_HOURS = 20.0
RECOMMENDED_DAILY_BREAK_MINUTES = 60

STATUS_MESSAGES = {
    WorkloadBalanceStatus.NO_WORK_DAY: "No working hours defined for this date",
    WorkloadBalanceStatus.LIGHT: "Light workload, room for more appointments",
    WorkloadBalanceStatus.BALANCED: "Balanced workload",
    WorkloadBalanceStatus.HEAVY: "Heavy workload, consider optimizing",
    WorkloadBalanceStatus.OVERLOADED: "Workload exceeds capacity, reduce immediately",
}

STATUS_RECOMMENDATIONS = {
    WorkloadBalanceStatus.NO_WORK_DAY: [],
    WorkloadBalanceStatus.LIGHT: [
        "Increase the number of appointments to make better use of time",
        "Offer consultation services in free slots",
    ],
    WorkloadBalanceStatus.BALANCED: [
        "Keep the current schedule",
        "Look for ways to improve service quality",
    ],
    WorkloadBalanceStatus.HEAVY: [
        "Reduce the number of appointments",
        "Add rest time between appointments",
        "Route new patients to less busy doctors",
    ],
    WorkloadBalanceStatus.OVERLOADED: [
        "Reduce appointments immediately",
        "Add rest time",
        "Bring in an assisting doctor",
        "Review the work template",
    ],
}


@dataclass
class _DaySnapshot:
    ranges: List[TimeRange]
    slots: List[Slot]
    duration: int
    from_template_only: bool

    @property
    def capacity(self) -> int:
        if self.slots:
            return sum(1 for s in self.slots if s.status != SlotStatus.BLOCKED)
        return sum(r.minutes for r in self.ranges) // self.duration if self.duration else 0

    def count(self, status: SlotStatus) -> int:
        return sum(1 for s in self.slots if s.status == status)

    def slots_with(self, status: SlotStatus) -> List[Slot]:
        return [s for s in self.slots if s.status == status]

    @property
    def work_minutes(self) -> int:
        if self.slots:
            return sum(s.duration_minutes for s in self.slots if s.status != SlotStatus.BLOCKED)
        return sum(r.minutes for r in self.ranges)

    @property
    def break_minutes(self) -> int:
        """Gaps between consecutive working ranges."""
        ordered = sorted(self.ranges, key=lambda r: r.start)
        return sum(
            max(0, minutes_of_day(nxt.start) - minutes_of_day(prev.end))
            for prev, nxt in zip(ordered, ordered[1:])
        )


def _utilization(current: int, capacity: int) -> float:
    return round(current / capacity * 100, 2) if capacity else 0.0


def _band(capacity: int, low: float, high: float):
    return math.ceil(capacity * low / 100), math.floor(capacity * high / 100)


def _date_range(start: date, end: date) -> List[date]:
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


class ScheduleOptimizer:

    def __init__(
        self,
        store: ScheduleStore,
        clock: Clock = system_clock,
        directory=None,
        target_low: float = TARGET_UTILIZATION_LOW,
        target_high: float = TARGET_UTILIZATION_HIGH,
        emergency_headroom_percent: float = EMERGENCY_HEADROOM_PERCENT,
        max_continuous_work_minutes: int = MAX_CONTINUOUS_WORK_MINUTES,
        min_break_minutes: int = MIN_BREAK_MINUTES
    ):
        if target_low > target_high:
            raise ValueError("target_low cannot exceed target_high")
        self.store = store
        self.clock = clock
        self.directory = directory
        self.target_low = target_low
        self.target_high = target_high
        self.emergency_headroom_percent = emergency_headroom_percent
        self.max_continuous_work_minutes = max_continuous_work_minutes
        self.min_break_minutes = min_break_minutes

    def _check_doctor(self, doctor_id: str):
        if self.directory is not None:
            self.directory.require_doctor(doctor_id)

    def _doctor_name(self, doctor_id: str) -> Optional[str]:
        return self.directory.doctor_name(doctor_id) if self.directory else None

    @staticmethod
    def _check_range(start: date, end: date):
        if start > end:
            raise ValidationError(f"Start date {start} is after end date {end}")

    def _snapshot(self, doctor_id: str, slot_date: date) -> _DaySnapshot:
        now = self.clock()
        template = self.store.get_template(doctor_id)
        ranges = template.active_ranges_for(slot_date) if template and template.is_active else []
        duration = template.appointment_duration if template else DEFAULT_SLOT_DURATION_MINUTES

        slots = []
        for slot in self.store.list_slots(doctor_id, slot_date):
            if not slot.is_active:
                continue
            slot.status = slot.effective_status(now)
            slots.append(slot)
        slots.sort(key=lambda s: s.start_time)
        return _DaySnapshot(ranges, slots, duration, from_template_only=not slots)

    def _classify(self, utilization: float) -> WorkloadBalanceStatus:
        if utilization < self.target_low:
            return WorkloadBalanceStatus.LIGHT
        if utilization <= self.target_high:
            return WorkloadBalanceStatus.BALANCED
        if utilization < 100:
            return WorkloadBalanceStatus.HEAVY
        return WorkloadBalanceStatus.OVERLOADED

    def _recommendations(self, status: WorkloadBalanceStatus, break_minutes: int) -> List[str]:
        recommendations = list(STATUS_RECOMMENDATIONS[status])
        if status != WorkloadBalanceStatus.NO_WORK_DAY and break_minutes < RECOMMENDED_DAILY_BREAK_MINUTES:
            recommendations.append("Increase break time to maintain quality of care")
        return recommendations

    # Workload

    def _daily(self, doctor_id: str, slot_date: date) -> WorkloadBalanceResult:
        snapshot = self._snapshot(doctor_id, slot_date)
        capacity = snapshot.capacity

        if capacity == 0:
            status = WorkloadBalanceStatus.NO_WORK_DAY
            return WorkloadBalanceResult(
                doctor_id=doctor_id,
                status=status,
                message=STATUS_MESSAGES[status],
                start_date=slot_date,
                end_date=slot_date,
                confidence=Confidence.LOW,
                doctor_name=self._doctor_name(doctor_id),
            )

        current = snapshot.count(SlotStatus.BOOKED)
        utilization = _utilization(current, capacity)
        status = self._classify(utilization)
        low_target, high_target = _band(capacity, self.target_low, self.target_high)
        break_minutes = snapshot.break_minutes

        return WorkloadBalanceResult(
            doctor_id=doctor_id,
            status=status,
            message=STATUS_MESSAGES[status],
            start_date=slot_date,
            end_date=slot_date,
            capacity=capacity,
            current_appointments=current,
            suggested_appointments=min(max(current, low_target), high_target),
            workload_percentage=utilization,
            total_work_minutes=snapshot.work_minutes,
            break_time_minutes=break_minutes,
            optimized_slots=snapshot.slots_with(SlotStatus.AVAILABLE),
            recommendations=self._recommendations(status, break_minutes),
            confidence=Confidence.LOW if snapshot.from_template_only else Confidence.NORMAL,
            doctor_name=self._doctor_name(doctor_id),
        )

    @service_operation
    async def optimize_daily_schedule(self, doctor_id: str, slot_date: date) -> WorkloadBalanceResult:
        self._check_doctor(doctor_id)
        result = self._daily(doctor_id, slot_date)
        logger.info(
            f"Daily schedule analysis for doctor {doctor_id} on {slot_date}: "
            f"{result.status.value} ({result.workload_percentage}%)"
        )
        return result

    @service_operation
    async def optimize_weekly_schedule(self, doctor_id: str, week_start: date) -> List[WorkloadBalanceResult]:
        self._check_doctor(doctor_id)
        return [self._daily(doctor_id, d) for d in _date_range(week_start, week_start + timedelta(days=6))]

    @service_operation
    async def optimize_monthly_schedule(
        self,
        doctor_id: str,
        month_start: date
    ) -> Dict[str, List[WorkloadBalanceResult]]:
        """Daily results for the month grouped into Sunday-based weeks."""
        self._check_doctor(doctor_id)
        first = month_start.replace(day=1)
        last = first.replace(day=calendar.monthrange(first.year, first.month)[1])

        weeks: Dict[str, List[WorkloadBalanceResult]] = {}
        current = first
        while current <= last:
            week_end = min(current + timedelta(days=6 - day_of_week(current)), last)
            label = f"{format_date(current)} - {format_date(week_end)}"
            weeks[label] = [self._daily(doctor_id, d) for d in _date_range(current, week_end)]
            current = week_end + timedelta(days=1)
        return weeks

    @service_operation
    async def balance_workload(
        self,
        doctor_ids: Sequence[str],
        start: date,
        end: date
    ) -> List[WorkloadBalanceResult]:
        """
        Compare doctors over a period and shift suggested load from doctors
        above the target band to doctors below it.

        Returns:
            One result per doctor, ordered by doctor id
        """
        self._check_range(start, end)
        doctor_ids = sorted(set(doctor_ids))
        if not doctor_ids:
            raise ValidationError("At least one doctor is required")
        for doctor_id in doctor_ids:
            self._check_doctor(doctor_id)

        results: Dict[str, WorkloadBalanceResult] = {}
        bands = {}
        for doctor_id in doctor_ids:
            days = [self._snapshot(doctor_id, d) for d in _date_range(start, end)]
            capacity = sum(day.capacity for day in days)
            current = sum(day.count(SlotStatus.BOOKED) for day in days)
            utilization = _utilization(current, capacity)
            status = self._classify(utilization) if capacity else WorkloadBalanceStatus.NO_WORK_DAY
            results[doctor_id] = WorkloadBalanceResult(
                doctor_id=doctor_id,
                status=status,
                message=STATUS_MESSAGES[status],
                start_date=start,
                end_date=end,
                capacity=capacity,
                current_appointments=current,
                suggested_appointments=current,
                workload_percentage=utilization,
                total_work_minutes=sum(day.work_minutes for day in days),
                break_time_minutes=sum(day.break_minutes for day in days),
                confidence=Confidence.LOW if all(day.from_template_only for day in days) else Confidence.NORMAL,
                doctor_name=self._doctor_name(doctor_id),
            )
            bands[doctor_id] = _band(capacity, self.target_low, self.target_high)

        ordered = sorted(results.values(), key=lambda r: (r.workload_percentage, r.doctor_id))
        donors = [r for r in reversed(ordered) if r.capacity and r.workload_percentage > self.target_high]
        receivers = [r for r in ordered if r.capacity and r.workload_percentage < self.target_low]

        excess = sum(r.current_appointments - bands[r.doctor_id][1] for r in donors)
        room = sum(bands[r.doctor_id][1] - r.current_appointments for r in receivers)
        movable = min(excess, room)

        remaining = movable
        for donor in donors:
            take = min(donor.current_appointments - bands[donor.doctor_id][1], remaining)
            if take > 0:
                donor.suggested_appointments -= take
                donor.recommendations.append(f"Move {take} appointment(s) to less busy doctors")
                remaining -= take

        remaining = movable
        for receiver in receivers:
            give = min(bands[receiver.doctor_id][1] - receiver.current_appointments, remaining)
            if give > 0:
                receiver.suggested_appointments += give
                receiver.recommendations.append(f"Can take {give} more appointment(s) from busier doctors")
                remaining -= give

        for result in results.values():
            if not result.recommendations:
                result.recommendations = list(STATUS_RECOMMENDATIONS[result.status])

        logger.info(f"Workload balance for {len(doctor_ids)} doctor(s) from {start} to {end}: {movable} to move")
        return [results[doctor_id] for doctor_id in doctor_ids]

    # Derived artifacts

    def _break_id(self, doctor_id: str, slot_date: date, start: time, break_type: BreakType) -> str:
        return f"{doctor_id}:{slot_date.isoformat()}:{start.strftime('%H%M')}:{break_type.value}"

    @service_operation
    async def optimize_break_times(self, doctor_id: str, slot_date: date) -> List[BreakTimeSlot]:
        """
        Suggest breaks for the day: existing gaps long enough to rest, a
        mandatory short break after long continuous stretches, and lunch.
        """
        self._check_doctor(doctor_id)
        snapshot = self._snapshot(doctor_id, slot_date)
        working = [s for s in snapshot.slots if s.status != SlotStatus.BLOCKED]
        breaks: List[BreakTimeSlot] = []

        def add(start: time, end: time, break_type: BreakType, priority: int, mandatory: bool):
            breaks.append(BreakTimeSlot(
                break_id=self._break_id(doctor_id, slot_date, start, break_type),
                doctor_id=doctor_id,
                break_date=slot_date,
                start_time=start,
                end_time=end,
                duration_minutes=minutes_of_day(end) - minutes_of_day(start),
                break_type=break_type,
                priority=priority,
                is_mandatory=mandatory,
            ))

        # Existing gaps between consecutive slots
        for prev, nxt in zip(working, working[1:]):
            gap = minutes_of_day(nxt.start_time) - minutes_of_day(prev.end_time)
            if gap >= self.min_break_minutes:
                add(prev.end_time, nxt.start_time, BreakType.EXISTING_GAP, 2, False)

        # Continuous stretches
        run_minutes = 0
        previous_end = None
        for slot in working:
            if previous_end is None or slot.start_time != previous_end:
                run_minutes = 0
            if run_minutes >= self.max_continuous_work_minutes and slot.status == SlotStatus.AVAILABLE:
                end = time_from_minutes(
                    minutes_of_day(slot.start_time) + min(self.min_break_minutes, slot.duration_minutes)
                )
                add(slot.start_time, end, BreakType.SHORT, 1, True)
                run_minutes = 0
            else:
                run_minutes += slot.duration_minutes
            previous_end = slot.end_time

        # Lunch inside a range that spans midday
        has_midday_gap = any(
            b.break_type == BreakType.EXISTING_GAP and b.start_time <= LUNCH_START and LUNCH_END <= b.end_time
            for b in breaks
        )
        spans_lunch = any(r.start <= LUNCH_START and LUNCH_END <= r.end for r in snapshot.ranges)
        if spans_lunch and not has_midday_gap:
            add(LUNCH_START, LUNCH_END, BreakType.LUNCH, 1, False)

        breaks.sort(key=lambda b: (b.start_time, b.break_type.value))
        return breaks

    @service_operation
    async def optimize_emergency_times(self, doctor_id: str, slot_date: date) -> List[EmergencyTimeSlot]:
        """Reserve headroom for emergencies on evenly spaced Available slots."""
        self._check_doctor(doctor_id)
        snapshot = self._snapshot(doctor_id, slot_date)
        available = snapshot.slots_with(SlotStatus.AVAILABLE)
        if not snapshot.slots or not available:
            return []

        wanted = min(math.ceil(snapshot.capacity * self.emergency_headroom_percent / 100), len(available))
        if wanted <= 0:
            return []
        picks = sorted({i * len(available) // wanted for i in range(wanted)})

        return [
            EmergencyTimeSlot(
                emergency_time_id=f"{doctor_id}:{slot_date.isoformat()}:{available[i].start_time.strftime('%H%M')}",
                doctor_id=doctor_id,
                slot_date=slot_date,
                start_time=available[i].start_time,
                end_time=available[i].end_time,
                duration_minutes=available[i].duration_minutes,
                slot_id=available[i].slot_id,
            )
            for i in picks
        ]

    @service_operation
    async def optimize_patient_distribution(self, doctor_id: str, slot_date: date) -> PatientDistributionResult:
        self._check_doctor(doctor_id)
        booked = self._snapshot(doctor_id, slot_date).slots_with(SlotStatus.BOOKED)
        result = PatientDistributionResult(doctor_id=doctor_id, distribution_date=slot_date)

        if not booked:
            result.confidence = Confidence.LOW
            result.recommendations.append("No booked patients to analyse for this date")
            return result

        emergency = sum(1 for s in booked if s.is_emergency_slot)
        result.total_patients = len(booked)
        result.distribution_by_type = {"regular": len(booked) - emergency, "emergency": emergency}
        by_hour: Dict[str, int] = {}
        for slot in booked:
            hour = f"{slot.start_time.hour:02d}:00"
            by_hour[hour] = by_hour.get(hour, 0) + 1
        result.distribution_by_hour = dict(sorted(by_hour.items()))

        busiest, count = max(result.distribution_by_hour.items(), key=lambda item: (item[1], item[0]))
        if len(booked) >= 4 and count * 2 > len(booked):
            result.recommendations.append(
                f"Spread appointments across the day: {count} of {len(booked)} patients start at {busiest}"
            )
        if emergency and emergency * 4 > len(booked):
            result.recommendations.append("Emergency share is high, reserve more emergency capacity")
        return result

    @service_operation
    async def optimize_work_life_balance(self, doctor_id: str, start: date, end: date) -> WorkLifeBalanceReport:
        self._check_range(start, end)
        self._check_doctor(doctor_id)

        days = [self._snapshot(doctor_id, d) for d in _date_range(start, end)]
        working_days = sum(1 for day in days if day.work_minutes > 0)
        total_work_hours = round(sum(day.work_minutes for day in days) / 60, 2)
        total_break_hours = round(sum(day.break_minutes for day in days if day.work_minutes) / 60, 2)
        average_weekly_hours = round(total_work_hours / (len(days) / 7), 2)

        if average_weekly_hours > OVERWORK_WEEKLY_HOURS:
            status = WorkLifeBalanceStatus.OVERWORKED
            recommendations = [
                f"Average {average_weekly_hours}h per week exceeds {OVERWORK_WEEKLY_HOURS:g}h, reduce working hours",
                "Schedule at least one full rest day per week",
            ]
        elif average_weekly_hours < UNDERWORK_WEEKLY_HOURS:
            status = WorkLifeBalanceStatus.UNDERWORKED
            recommendations = ["Working hours are low, consider opening more slots"]
        else:
            status = WorkLifeBalanceStatus.BALANCED
            recommendations = ["Working hours are within a healthy range"]

        if working_days and total_break_hours * 60 < RECOMMENDED_DAILY_BREAK_MINUTES * working_days:
            recommendations.append("Plan longer breaks between working ranges")

        return WorkLifeBalanceReport(
            doctor_id=doctor_id,
            start_date=start,
            end_date=end,
            report_date=self.clock(),
            status=status,
            working_days=working_days,
            rest_days=len(days) - working_days,
            total_work_hours=total_work_hours,
            total_break_hours=total_break_hours,
            average_weekly_hours=average_weekly_hours,
            balance_percentage=round(min(average_weekly_hours / STANDARD_WEEKLY_HOURS, 1.0) * 100, 2),
            recommendations=recommendations,
            confidence=Confidence.LOW if all(day.from_template_only for day in days) else Confidence.NORMAL,
            doctor_name=self._doctor_name(doctor_id),
        )

    @service_operation
    async def optimize_costs(self, doctor_id: str, start: date, end: date) -> CostOptimizationReport:
        """
        Estimate revenue and operating cost from the template's consultation
        fee and hourly operating cost, and price the idle time beyond the
        emergency headroom.
        """
        self._check_range(start, end)
        self._check_doctor(doctor_id)

        template = self.store.get_template(doctor_id)
        fee = template.settings.consultation_fee if template else 0.0
        hourly = template.settings.hourly_operating_cost if template else 0.0

        days = [self._snapshot(doctor_id, d) for d in _date_range(start, end)]
        booked = sum(day.count(SlotStatus.BOOKED) for day in days)
        capacity = sum(day.capacity for day in days)
        work_hours = sum(day.work_minutes for day in days) / 60

        headroom = math.ceil(capacity * self.emergency_headroom_percent / 100)
        idle_slots = sorted(
            (s for day in days for s in day.slots_with(SlotStatus.AVAILABLE)),
            key=lambda s: (s.slot_date, s.start_time)
        )
        trimmable_hours = sum(s.duration_minutes for s in idle_slots[headroom:]) / 60

        total_revenue = round(booked * fee, 2)
        total_costs = round(work_hours * hourly, 2)
        savings = round(trimmable_hours * hourly, 2)

        suggestions = []
        if savings > 0:
            suggestions.append(CostOptimizationSuggestion(
                suggestion_id=f"{doctor_id}:{start.isoformat()}:consolidate",
                title="Consolidate idle slots",
                description=(
                    f"{len(idle_slots) - headroom} idle slot(s) beyond emergency headroom could be "
                    f"closed or merged into shorter working ranges"
                ),
                cost_savings=savings,
                implementation_priority=1,
                difficulty="medium",
                estimated_implementation_days=7,
            ))
        utilization = _utilization(booked, capacity)
        if capacity and utilization < self.target_low:
            suggestions.append(CostOptimizationSuggestion(
                suggestion_id=f"{doctor_id}:{start.isoformat()}:shorten",
                title="Shorten working hours",
                description=f"Utilization {utilization}% is below the {self.target_low:g}% target",
                cost_savings=0.0,
                implementation_priority=2,
                difficulty="low",
                estimated_implementation_days=3,
            ))

        return CostOptimizationReport(
            doctor_id=doctor_id,
            start_date=start,
            end_date=end,
            report_date=self.clock(),
            total_revenue=total_revenue,
            total_costs=total_costs,
            net_profit=round(total_revenue - total_costs, 2),
            current_costs=total_costs,
            optimized_costs=round(total_costs - savings, 2),
            savings=savings,
            savings_percentage=round(savings / total_costs * 100, 2) if total_costs else 0.0,
            suggestions=suggestions,
            confidence=Confidence.LOW if not template or (not fee and not hourly) else Confidence.NORMAL,
            doctor_name=self._doctor_name(doctor_id),
        )
