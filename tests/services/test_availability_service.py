"""
Tests for the read-only availability projection
"""

from datetime import time, timedelta

import pytest

from scheduling_engine.exceptions import ErrorCode
from scheduling_engine.models.scheduling import SlotStatus
from tests.fixtures import DOCTOR_ID, MONDAY, TUESDAY, full_week_template_input, slot_at


class TestAvailableDates:
    """Dates with at least one free slot"""

    @pytest.mark.asyncio
    async def test_dates_with_free_slots(self, engine):
        await engine.templates.set_work_template(DOCTOR_ID, full_week_template_input())
        await engine.generator.generate_weekly(DOCTOR_ID, MONDAY)

        result = await engine.availability.get_available_dates(DOCTOR_ID, MONDAY, MONDAY + timedelta(days=6))

        assert result.success is True
        assert result.data == [MONDAY + timedelta(days=i) for i in range(5)]

    @pytest.mark.asyncio
    async def test_fully_booked_date_excluded(self, monday_engine):
        for slot in monday_engine.store.list_slots(DOCTOR_ID, MONDAY):
            hold = (await monday_engine.reservations.reserve(slot.slot_id, "patient-1")).data
            await monday_engine.reservations.confirm(slot.slot_id, hold.hold_id, f"appt-{slot.start_time}")

        result = await monday_engine.availability.get_available_dates(DOCTOR_ID, MONDAY, TUESDAY)

        assert result.data == []

    @pytest.mark.asyncio
    async def test_reversed_range_is_validation_error(self, monday_engine):
        result = await monday_engine.availability.get_available_dates(DOCTOR_ID, TUESDAY, MONDAY)

        assert result.error_code == ErrorCode.VALIDATION_ERROR

    @pytest.mark.asyncio
    async def test_unknown_doctor(self, monday_engine):
        result = await monday_engine.availability.get_available_dates("doc-404", MONDAY, TUESDAY)

        assert result.error_code == ErrorCode.NOT_FOUND


class TestTimeSlots:
    """Per-day listings with effective status"""

    @pytest.mark.asyncio
    async def test_held_slot_not_listed(self, monday_engine):
        held = slot_at(monday_engine, MONDAY, time(10, 0))
        await monday_engine.reservations.reserve(held.slot_id, "patient-1")

        result = await monday_engine.availability.get_available_time_slots(DOCTOR_ID, MONDAY)

        starts = [s.start_time for s in result.data]
        assert time(10, 0) not in starts
        assert starts == sorted(starts)
        assert len(starts) == 5

    @pytest.mark.asyncio
    async def test_expired_hold_listed_as_available(self, monday_engine, clock):
        held = slot_at(monday_engine, MONDAY, time(10, 0))
        await monday_engine.reservations.reserve(held.slot_id, "patient-1", 5)
        clock.advance(minutes=5, seconds=1)

        result = await monday_engine.availability.get_available_time_slots(DOCTOR_ID, MONDAY)

        projected = next(s for s in result.data if s.slot_id == held.slot_id)
        assert projected.status == SlotStatus.AVAILABLE
        assert projected.hold_id is None

    @pytest.mark.asyncio
    async def test_day_slots_hide_cancelled_by_default(self, monday_engine, clock):
        cancelled = slot_at(monday_engine, MONDAY, time(9, 0))
        monday_engine.store.transition_slot(
            cancelled.slot_id, [SlotStatus.AVAILABLE], {'status': SlotStatus.CANCELLED, 'updated_at': clock()}
        )

        visible = await monday_engine.availability.get_day_slots(DOCTOR_ID, MONDAY)
        everything = await monday_engine.availability.get_day_slots(DOCTOR_ID, MONDAY, include_cancelled=True)

        assert len(visible.data) == 5
        assert len(everything.data) == 6

    @pytest.mark.asyncio
    async def test_get_slot_projects_status(self, monday_engine, clock):
        slot = slot_at(monday_engine, MONDAY, time(11, 0))
        await monday_engine.reservations.reserve(slot.slot_id, "patient-1", 1)

        held = await monday_engine.availability.get_slot(slot.slot_id)
        clock.advance(minutes=2)
        expired = await monday_engine.availability.get_slot(slot.slot_id)

        assert held.data.status == SlotStatus.HELD
        assert expired.data.status == SlotStatus.AVAILABLE

    @pytest.mark.asyncio
    async def test_is_slot_available_unknown_slot(self, monday_engine):
        result = await monday_engine.availability.is_slot_available("missing")

        assert result.success is False
        assert result.error_code == ErrorCode.NOT_FOUND
