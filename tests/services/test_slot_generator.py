"""
Tests for template-driven slot generation
"""

from datetime import date, datetime, time

import pytest

from scheduling_engine.exceptions import ErrorCode
from scheduling_engine.models.scheduling import SlotStatus
from tests.fixtures import (
    DOCTOR_ID,
    MONDAY,
    SATURDAY,
    active_slots,
    full_week_template_input,
    monday_template_input,
    slot_at,
)


class TestWeeklyGeneration:
    """Weekly expansion of a work template"""

    @pytest.mark.asyncio
    async def test_monday_morning_yields_six_slots(self, monday_engine):
        """09:00-12:00 with 30-minute appointments gives 09:00 ... 11:30"""
        slots = active_slots(monday_engine)

        assert [s.start_time for s in slots] == [
            time(9, 0), time(9, 30), time(10, 0), time(10, 30), time(11, 0), time(11, 30)
        ]
        assert all(s.end_time <= time(12, 0) for s in slots)
        assert all(s.status == SlotStatus.AVAILABLE for s in slots)
        assert all(s.duration_minutes == 30 for s in slots)

    @pytest.mark.asyncio
    async def test_generation_is_idempotent(self, monday_engine):
        """Generating the same week twice creates nothing new"""
        before = {s.slot_id for s in active_slots(monday_engine)}

        result = await monday_engine.generator.generate_weekly(DOCTOR_ID, MONDAY)

        assert result.success is True
        assert result.data == 0
        assert {s.slot_id for s in active_slots(monday_engine)} == before

    @pytest.mark.asyncio
    async def test_regeneration_keeps_held_and_booked_slots(self, monday_engine):
        """A coarser regeneration replaces free slots but never touches claimed ones"""
        held = slot_at(monday_engine, MONDAY, time(9, 30))
        booked = slot_at(monday_engine, MONDAY, time(11, 30))
        await monday_engine.reservations.reserve(held.slot_id, "patient-1")
        hold = (await monday_engine.reservations.reserve(booked.slot_id, "patient-2")).data
        await monday_engine.reservations.confirm(booked.slot_id, hold.hold_id, "appt-1")

        result = await monday_engine.generator.generate_weekly(DOCTOR_ID, MONDAY, slot_duration_minutes=60)

        assert result.success is True
        assert result.data == 1
        slots = {s.start_time: s for s in active_slots(monday_engine)}
        assert slots[time(9, 30)].status == SlotStatus.HELD
        assert slots[time(11, 30)].status == SlotStatus.BOOKED
        assert slots[time(9, 0)].duration_minutes == 30
        assert slots[time(10, 0)].duration_minutes == 60
        assert time(10, 30) not in slots

    @pytest.mark.asyncio
    async def test_cancelled_slot_is_replaced(self, monday_engine, clock):
        """A cancelled slot does not count as existing"""
        slot = slot_at(monday_engine, MONDAY, time(9, 0))
        monday_engine.store.transition_slot(
            slot.slot_id, [SlotStatus.AVAILABLE], {'status': SlotStatus.CANCELLED, 'updated_at': clock()}
        )

        result = await monday_engine.generator.generate_weekly(DOCTOR_ID, MONDAY)

        assert result.data == 1
        replacement = slot_at(monday_engine, MONDAY, time(9, 0))
        assert replacement.slot_id != slot.slot_id
        assert replacement.status == SlotStatus.AVAILABLE

    @pytest.mark.asyncio
    async def test_lost_replacement_restores_cancelled_neighbours(self, monday_engine, monkeypatch):
        """If one overlapping slot changes mid-replacement, the others are restored"""
        store = monday_engine.store
        first = slot_at(monday_engine, MONDAY, time(10, 0))
        contested = slot_at(monday_engine, MONDAY, time(10, 30))
        original = store.transition_slot

        def lose_race(slot_id, expected, updates, **kwargs):
            if slot_id == contested.slot_id and updates.get('status') == SlotStatus.CANCELLED:
                return None
            return original(slot_id, expected, updates, **kwargs)

        monkeypatch.setattr(store, "transition_slot", lose_race)

        result = await monday_engine.generator.generate_weekly(DOCTOR_ID, MONDAY, slot_duration_minutes=60)

        assert result.success is True
        assert result.data == 2
        slots = {s.start_time: s for s in active_slots(monday_engine)}
        assert sorted(slots) == [time(9, 0), time(10, 0), time(10, 30), time(11, 0)]
        assert slots[time(10, 0)].slot_id == first.slot_id
        assert slots[time(10, 0)].status == SlotStatus.AVAILABLE
        assert slots[time(10, 30)].slot_id == contested.slot_id
        assert slots[time(9, 0)].duration_minutes == 60


class TestGenerationRules:
    """Weekend handling, ranges and blocked time"""

    @pytest.mark.asyncio
    async def test_weekend_skipped_unless_requested(self, engine):
        await engine.templates.set_work_template(DOCTOR_ID, full_week_template_input())

        skipped = await engine.generator.generate_for_range(DOCTOR_ID, SATURDAY, SATURDAY)
        included = await engine.generator.generate_for_range(
            DOCTOR_ID, SATURDAY, SATURDAY, include_weekend=True
        )

        assert skipped.data == 0
        assert included.data == 4

    @pytest.mark.asyncio
    async def test_monthly_covers_whole_calendar_month(self, engine):
        """June 2030 has 20 weekdays with 14 slots each"""
        await engine.templates.set_work_template(DOCTOR_ID, full_week_template_input())

        result = await engine.generator.generate_monthly(DOCTOR_ID, date(2030, 6, 15))

        assert result.success is True
        assert result.data == 20 * 14
        slots = engine.store.list_slots_in_range(DOCTOR_ID, date(2030, 5, 1), date(2030, 7, 31))
        assert min(s.slot_date for s in slots) == date(2030, 6, 3)
        assert max(s.slot_date for s in slots) == date(2030, 6, 28)

    @pytest.mark.asyncio
    async def test_short_range_and_trailing_remainder_dropped(self, engine):
        template = monday_template_input(work_days=[{
            "day_of_week": 1,
            "is_active": True,
            "time_ranges": [{"start": "09:00", "end": "09:20"}, {"start": "10:00", "end": "11:45"}],
        }])
        await engine.templates.set_work_template(DOCTOR_ID, template)

        result = await engine.generator.generate_weekly(DOCTOR_ID, MONDAY)

        assert result.data == 3
        assert [s.start_time for s in active_slots(engine)] == [time(10, 0), time(10, 30), time(11, 0)]

    @pytest.mark.asyncio
    async def test_slots_inside_blocked_range_created_blocked(self, engine):
        await engine.templates.set_work_template(DOCTOR_ID, monday_template_input())
        await engine.templates.block_time_range(
            DOCTOR_ID, datetime(2030, 6, 3, 10, 0), datetime(2030, 6, 3, 11, 0), "Staff meeting"
        )

        result = await engine.generator.generate_weekly(DOCTOR_ID, MONDAY)

        assert result.data == 6
        statuses = {s.start_time: s.status for s in active_slots(engine)}
        assert statuses[time(10, 0)] == SlotStatus.BLOCKED
        assert statuses[time(10, 30)] == SlotStatus.BLOCKED
        assert statuses[time(9, 30)] == SlotStatus.AVAILABLE


class TestGenerationErrors:
    """Typed failures from the generator"""

    @pytest.mark.asyncio
    async def test_template_missing(self, engine):
        result = await engine.generator.generate_weekly(DOCTOR_ID, MONDAY)

        assert result.success is False
        assert result.error_code == ErrorCode.TEMPLATE_MISSING

    @pytest.mark.asyncio
    async def test_inactive_template_counts_as_missing(self, engine):
        await engine.templates.set_work_template(DOCTOR_ID, monday_template_input())
        await engine.templates.deactivate_template(DOCTOR_ID)

        result = await engine.generator.generate_weekly(DOCTOR_ID, MONDAY)

        assert result.error_code == ErrorCode.TEMPLATE_MISSING

    @pytest.mark.asyncio
    @pytest.mark.parametrize("duration", [0, -30, 240])
    async def test_invalid_duration(self, engine, duration):
        """Non-positive or longer than every range"""
        await engine.templates.set_work_template(DOCTOR_ID, monday_template_input())

        result = await engine.generator.generate_weekly(DOCTOR_ID, MONDAY, slot_duration_minutes=duration)

        assert result.success is False
        assert result.error_code == ErrorCode.VALIDATION_ERROR
        assert engine.store.list_slots(DOCTOR_ID, MONDAY) == []

    @pytest.mark.asyncio
    async def test_unknown_doctor(self, engine):
        result = await engine.generator.generate_weekly("doc-404", MONDAY)

        assert result.error_code == ErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_reversed_range_rejected(self, engine):
        await engine.templates.set_work_template(DOCTOR_ID, monday_template_input())

        result = await engine.generator.generate_for_range(DOCTOR_ID, date(2030, 6, 10), MONDAY)

        assert result.error_code == ErrorCode.VALIDATION_ERROR
