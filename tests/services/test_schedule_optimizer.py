"""
Tests for the advisory schedule optimizer
"""

from datetime import date, time, timedelta

import pytest

from scheduling_engine.exceptions import ErrorCode
from scheduling_engine.models.optimization import (
    BreakType,
    Confidence,
    WorkLifeBalanceStatus,
    WorkloadBalanceStatus,
)
from scheduling_engine.models.scheduling import SlotStatus
from tests.fixtures import (
    DOCTOR_ID,
    MONDAY,
    OTHER_DOCTOR_ID,
    TUESDAY,
    emergency_request,
    full_week_template_input,
    monday_template_input,
)


async def book_first(engine, count: int, doctor_id: str = DOCTOR_ID, slot_date: date = MONDAY):
    slots = [s for s in engine.store.list_slots(doctor_id, slot_date) if s.status == SlotStatus.AVAILABLE]
    for slot in slots[:count]:
        hold = (await engine.reservations.reserve(slot.slot_id, f"patient-{slot.start_time}")).data
        await engine.reservations.confirm(slot.slot_id, hold.hold_id, f"appt-{doctor_id}-{slot.start_time}")


class TestDailySchedule:
    """Utilization status and suggested load"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("booked,status", [
        (3, WorkloadBalanceStatus.LIGHT),
        (5, WorkloadBalanceStatus.BALANCED),
        (6, WorkloadBalanceStatus.OVERLOADED),
    ])
    async def test_status_follows_utilization(self, monday_engine, booked, status):
        await book_first(monday_engine, booked)

        result = await monday_engine.optimizer.optimize_daily_schedule(DOCTOR_ID, MONDAY)

        assert result.data.status == status
        assert result.data.capacity == 6
        assert result.data.current_appointments == booked

    @pytest.mark.asyncio
    async def test_light_day_suggests_lower_band(self, monday_engine):
        await book_first(monday_engine, 3)

        result = (await monday_engine.optimizer.optimize_daily_schedule(DOCTOR_ID, MONDAY)).data

        assert result.workload_percentage == 50.0
        assert result.suggested_appointments == 4
        assert len(result.optimized_slots) == 3
        assert result.confidence == Confidence.NORMAL
        assert "Increase break time to maintain quality of care" in result.recommendations
        assert result.doctor_name == "Dr. Ada Smith"

    @pytest.mark.asyncio
    async def test_identical_inputs_give_identical_outputs(self, monday_engine):
        await book_first(monday_engine, 2)

        first = await monday_engine.optimizer.optimize_daily_schedule(DOCTOR_ID, MONDAY)
        second = await monday_engine.optimizer.optimize_daily_schedule(DOCTOR_ID, MONDAY)

        assert first.data == second.data

    @pytest.mark.asyncio
    async def test_no_work_day(self, monday_engine):
        result = (await monday_engine.optimizer.optimize_daily_schedule(DOCTOR_ID, TUESDAY)).data

        assert result.status == WorkloadBalanceStatus.NO_WORK_DAY
        assert result.capacity == 0
        assert result.confidence == Confidence.LOW

    @pytest.mark.asyncio
    async def test_template_without_slots_is_low_confidence(self, engine):
        await engine.templates.set_work_template(DOCTOR_ID, monday_template_input())

        result = (await engine.optimizer.optimize_daily_schedule(DOCTOR_ID, MONDAY)).data

        assert result.capacity == 6
        assert result.status == WorkloadBalanceStatus.LIGHT
        assert result.confidence == Confidence.LOW

    @pytest.mark.asyncio
    async def test_no_template_is_not_an_error(self, engine):
        result = await engine.optimizer.optimize_daily_schedule(DOCTOR_ID, MONDAY)

        assert result.success is True
        assert result.data.status == WorkloadBalanceStatus.NO_WORK_DAY

    @pytest.mark.asyncio
    async def test_unknown_doctor(self, engine):
        result = await engine.optimizer.optimize_daily_schedule("doc-404", MONDAY)

        assert result.error_code == ErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_analysis_never_mutates_state(self, monday_engine, clock):
        slot = monday_engine.store.list_slots(DOCTOR_ID, MONDAY)[0]
        await monday_engine.reservations.reserve(slot.slot_id, "patient-1", 5)
        clock.advance(minutes=10)

        result = await monday_engine.optimizer.optimize_daily_schedule(DOCTOR_ID, MONDAY)

        assert len(result.data.optimized_slots) == 6
        assert monday_engine.store.get_slot(slot.slot_id).status == SlotStatus.HELD


class TestPeriodSchedules:
    """Weekly and monthly roll-ups"""

    @pytest.mark.asyncio
    async def test_weekly_has_seven_days(self, monday_engine):
        result = await monday_engine.optimizer.optimize_weekly_schedule(DOCTOR_ID, MONDAY)

        assert [r.start_date for r in result.data] == [MONDAY + timedelta(days=i) for i in range(7)]
        assert result.data[0].status == WorkloadBalanceStatus.LIGHT
        assert all(r.status == WorkloadBalanceStatus.NO_WORK_DAY for r in result.data[1:])

    @pytest.mark.asyncio
    async def test_monthly_grouped_by_sunday_weeks(self, monday_engine):
        result = await monday_engine.optimizer.optimize_monthly_schedule(DOCTOR_ID, date(2030, 6, 17))

        weeks = list(result.data)
        assert weeks[0] == "2030/06/01 - 2030/06/01"
        assert weeks[1] == "2030/06/02 - 2030/06/08"
        assert weeks[-1] == "2030/06/30 - 2030/06/30"
        assert sum(len(days) for days in result.data.values()) == 30


class TestBalanceWorkload:
    """Cross-doctor load shifting"""

    @pytest.mark.asyncio
    async def test_excess_moved_to_light_doctor(self, monday_engine):
        await monday_engine.templates.set_work_template(OTHER_DOCTOR_ID, monday_template_input())
        await monday_engine.generator.generate_weekly(OTHER_DOCTOR_ID, MONDAY)
        await book_first(monday_engine, 6)

        result = await monday_engine.optimizer.balance_workload([OTHER_DOCTOR_ID, DOCTOR_ID], MONDAY, MONDAY)

        busy, idle = result.data
        assert (busy.doctor_id, idle.doctor_id) == (DOCTOR_ID, OTHER_DOCTOR_ID)
        assert busy.status == WorkloadBalanceStatus.OVERLOADED
        assert idle.status == WorkloadBalanceStatus.LIGHT
        assert busy.suggested_appointments == 5
        assert idle.suggested_appointments == 1

    @pytest.mark.asyncio
    async def test_balanced_doctors_unchanged(self, monday_engine):
        await book_first(monday_engine, 5)

        result = await monday_engine.optimizer.balance_workload([DOCTOR_ID], MONDAY, MONDAY)

        assert result.data[0].suggested_appointments == 5
        assert result.data[0].recommendations

    @pytest.mark.asyncio
    @pytest.mark.parametrize("doctor_ids,start,end", [
        ([], MONDAY, MONDAY),
        ([DOCTOR_ID], TUESDAY, MONDAY),
    ])
    async def test_invalid_input(self, monday_engine, doctor_ids, start, end):
        result = await monday_engine.optimizer.balance_workload(doctor_ids, start, end)

        assert result.error_code == ErrorCode.VALIDATION_ERROR


class TestDerivedSuggestions:
    """Breaks, emergency headroom and patient spread"""

    @pytest.mark.asyncio
    async def test_gap_and_mandatory_break(self, engine):
        await engine.templates.set_work_template(DOCTOR_ID, full_week_template_input())
        await engine.generator.generate_weekly(DOCTOR_ID, MONDAY)

        result = await engine.optimizer.optimize_break_times(DOCTOR_ID, MONDAY)

        breaks = [(b.start_time, b.end_time, b.break_type) for b in result.data]
        assert breaks == [
            (time(12, 0), time(13, 0), BreakType.EXISTING_GAP),
            (time(16, 0), time(16, 15), BreakType.SHORT),
        ]
        assert result.data[0].break_id == "doc-1:2030-06-03:1200:existing_gap"
        assert result.data[1].is_mandatory is True

    @pytest.mark.asyncio
    async def test_lunch_suggested_inside_long_range(self, engine):
        template = monday_template_input(work_days=[
            {"day_of_week": 1, "time_ranges": [{"start": "09:00", "end": "14:00"}]}
        ])
        await engine.templates.set_work_template(DOCTOR_ID, template)
        await engine.generator.generate_weekly(DOCTOR_ID, MONDAY)

        result = await engine.optimizer.optimize_break_times(DOCTOR_ID, MONDAY)

        at_noon = {b.break_type for b in result.data if b.start_time == time(12, 0)}
        assert at_noon == {BreakType.LUNCH, BreakType.SHORT}

    @pytest.mark.asyncio
    async def test_emergency_headroom_spread_over_day(self, engine):
        await engine.templates.set_work_template(DOCTOR_ID, full_week_template_input())
        await engine.generator.generate_weekly(DOCTOR_ID, MONDAY)

        result = await engine.optimizer.optimize_emergency_times(DOCTOR_ID, MONDAY)

        assert [e.start_time for e in result.data] == [time(9, 0), time(13, 30)]
        assert all(e.slot_id for e in result.data)

    @pytest.mark.asyncio
    async def test_no_emergency_times_without_slots(self, engine):
        await engine.templates.set_work_template(DOCTOR_ID, monday_template_input())

        result = await engine.optimizer.optimize_emergency_times(DOCTOR_ID, MONDAY)

        assert result.data == []

    @pytest.mark.asyncio
    async def test_patient_distribution(self, monday_engine):
        await book_first(monday_engine, 2)
        await monday_engine.emergencies.book_emergency(emergency_request(start_time=time(18, 0)))

        result = (await monday_engine.optimizer.optimize_patient_distribution(DOCTOR_ID, MONDAY)).data

        assert result.total_patients == 3
        assert result.distribution_by_type == {"regular": 2, "emergency": 1}
        assert result.distribution_by_hour == {"09:00": 2, "18:00": 1}
        assert "Emergency share is high, reserve more emergency capacity" in result.recommendations

    @pytest.mark.asyncio
    async def test_empty_distribution_low_confidence(self, monday_engine):
        result = (await monday_engine.optimizer.optimize_patient_distribution(DOCTOR_ID, MONDAY)).data

        assert result.total_patients == 0
        assert result.confidence == Confidence.LOW


class TestReports:
    """Work-life balance and cost reports"""

    @pytest.mark.asyncio
    async def test_balanced_week_from_template(self, engine):
        await engine.templates.set_work_template(DOCTOR_ID, full_week_template_input())

        result = await engine.optimizer.optimize_work_life_balance(DOCTOR_ID, MONDAY, MONDAY + timedelta(days=6))

        report = result.data
        assert report.status == WorkLifeBalanceStatus.BALANCED
        assert report.working_days == 6
        assert report.rest_days == 1
        assert report.total_work_hours == 37.0
        assert report.total_break_hours == 5.0
        assert report.balance_percentage == 92.5
        assert report.confidence == Confidence.LOW
        assert "Plan longer breaks between working ranges" in report.recommendations

    @pytest.mark.asyncio
    async def test_underworked(self, monday_engine):
        result = await monday_engine.optimizer.optimize_work_life_balance(
            DOCTOR_ID, MONDAY, MONDAY + timedelta(days=6)
        )

        assert result.data.status == WorkLifeBalanceStatus.UNDERWORKED
        assert result.data.total_work_hours == 3.0

    @pytest.mark.asyncio
    async def test_costs(self, engine):
        await engine.templates.set_work_template(
            DOCTOR_ID, monday_template_input(consultation_fee=100, hourly_operating_cost=50)
        )
        await engine.generator.generate_weekly(DOCTOR_ID, MONDAY)
        await book_first(engine, 2)

        report = (await engine.optimizer.optimize_costs(DOCTOR_ID, MONDAY, MONDAY)).data

        assert report.total_revenue == 200.0
        assert report.total_costs == 150.0
        assert report.net_profit == 50.0
        assert report.savings == 75.0
        assert report.optimized_costs == 75.0
        assert report.savings_percentage == 50.0
        assert [s.title for s in report.suggestions] == ["Consolidate idle slots", "Shorten working hours"]
        assert report.confidence == Confidence.NORMAL

    @pytest.mark.asyncio
    async def test_costs_without_prices_low_confidence(self, monday_engine):
        report = (await monday_engine.optimizer.optimize_costs(DOCTOR_ID, MONDAY, MONDAY)).data

        assert report.total_costs == 0.0
        assert report.suggestions[-1].title == "Shorten working hours"
        assert report.confidence == Confidence.LOW

    @pytest.mark.asyncio
    async def test_reversed_range(self, monday_engine):
        result = await monday_engine.optimizer.optimize_costs(DOCTOR_ID, TUESDAY, MONDAY)

        assert result.error_code == ErrorCode.VALIDATION_ERROR
