"""
Tests for the Supabase-backed store against a mocked client
"""

from datetime import date, datetime, time, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from scheduling_engine.models.emergency import EmergencyBookingStatus
from scheduling_engine.models.scheduling import HoldStatus, Slot, SlotStatus
from scheduling_engine.services.supabase_store import SLOTS_TABLE, SupabaseScheduleStore

SLOT_ROW = {
    "slot_id": "slot-1",
    "doctor_id": "doc-1",
    "slot_date": "2030-06-03",
    "start_time": "10:00:00",
    "end_time": "10:30:00",
    "duration_minutes": 30,
    "status": "held",
    "hold_id": "hold-1",
    "held_by": "patient-1",
    "hold_expires_at": "2030-06-01T08:05:00+00:00",
    "created_at": "2030-06-01T08:00:00Z",
}


def mock_client(data):
    """Supabase client whose query builder chains to a single result"""
    builder = MagicMock()
    for method in ("select", "eq", "in_", "gte", "lte", "order", "update", "insert", "upsert", "delete"):
        getattr(builder, method).return_value = builder
    builder.execute.return_value = MagicMock(data=data)
    client = MagicMock()
    client.table.return_value = builder
    return client, builder


class TestSlotRows:

    def test_get_slot_parses_row(self):
        client, builder = mock_client([SLOT_ROW])
        store = SupabaseScheduleStore(client)

        slot = store.get_slot("slot-1")

        client.table.assert_called_with(SLOTS_TABLE)
        builder.eq.assert_called_with("slot_id", "slot-1")
        assert slot.status == SlotStatus.HELD
        assert slot.slot_date == date(2030, 6, 3)
        assert slot.start_time == time(10, 0)
        assert slot.hold_expires_at == datetime(2030, 6, 1, 8, 5, tzinfo=timezone.utc)
        assert slot.created_at.tzinfo is not None

    def test_missing_slot(self):
        client, _ = mock_client([])

        assert SupabaseScheduleStore(client).get_slot("nope") is None

    def test_transition_is_conditional_update(self):
        client, builder = mock_client([dict(SLOT_ROW, status="booked", hold_id=None, appointment_id="appt-1")])
        store = SupabaseScheduleStore(client)

        slot = store.transition_slot(
            "slot-1", [SlotStatus.HELD], {"status": SlotStatus.BOOKED, "appointment_id": "appt-1"},
            expected_hold_id="hold-1"
        )

        builder.update.assert_called_once_with({"status": "booked", "appointment_id": "appt-1"})
        builder.in_.assert_called_once_with("status", ["held"])
        builder.eq.assert_any_call("slot_id", "slot-1")
        builder.eq.assert_any_call("hold_id", "hold-1")
        assert slot.status == SlotStatus.BOOKED

    def test_transition_lost_race_returns_none(self):
        client, _ = mock_client([])

        result = SupabaseScheduleStore(client).transition_slot(
            "slot-1", [SlotStatus.AVAILABLE], {"status": SlotStatus.HELD}
        )

        assert result is None

    def test_add_slot_serializes_values(self):
        client, builder = mock_client([dict(SLOT_ROW, status="available", hold_id=None, held_by=None)])
        slot = Slot("slot-1", "doc-1", date(2030, 6, 3), time(10, 0), time(10, 30), 30)

        SupabaseScheduleStore(client).add_slot(slot)

        row = builder.insert.call_args.args[0]
        assert row["slot_date"] == "2030-06-03"
        assert row["start_time"] == "10:00:00"
        assert row["status"] == "available"

    def test_add_slot_failure_raises(self):
        client, _ = mock_client([])
        slot = Slot("slot-1", "doc-1", date(2030, 6, 3), time(10, 0), time(10, 30), 30)

        with pytest.raises(ValueError):
            SupabaseScheduleStore(client).add_slot(slot)


class TestOtherRecords:

    def test_hold_duration_stored_in_seconds(self):
        row = {
            "hold_id": "hold-1",
            "slot_id": "slot-1",
            "doctor_id": "doc-1",
            "patient_id": "patient-1",
            "duration": 300,
            "created_at": "2030-06-01T08:00:00+00:00",
            "expires_at": "2030-06-01T08:05:00+00:00",
            "status": "active",
        }
        client, builder = mock_client([row])

        hold = SupabaseScheduleStore(client).update_hold("hold-1", HoldStatus.ACTIVE, {"status": HoldStatus.EXPIRED})

        builder.eq.assert_any_call("status", "active")
        assert hold.duration == timedelta(minutes=5)

    def test_template_round_trips_work_days(self):
        row = {
            "doctor_id": "doc-1",
            "appointment_duration": 20,
            "is_active": True,
            "work_days": [{"day_of_week": 1, "is_active": True,
                           "time_ranges": [{"start": "09:00:00", "end": "12:00:00", "is_active": True}]}],
            "settings": {"allow_emergency_booking": False, "unknown_column": 1},
        }
        client, _ = mock_client([row])

        template = SupabaseScheduleStore(client).get_template("doc-1")

        assert template.appointment_duration == 20
        assert [r.start for r in template.active_ranges_for(date(2030, 6, 3))] == [time(9, 0)]
        assert template.settings.allow_emergency_booking is False

    def test_emergency_history_parsed(self):
        row = {
            "booking_id": "er-1",
            "doctor_id": "doc-1",
            "patient_id": "patient-er",
            "patient_name": "Sam Rivera",
            "booking_date": "2030-06-03",
            "start_time": "10:00:00",
            "end_time": "10:30:00",
            "emergency_type": "cardiac",
            "priority": "critical",
            "reason": "Chest pain",
            "status": "confirmed",
            "history": [
                {"from_status": None, "to_status": "pending", "at": "2030-06-01T08:00:00+00:00"},
                {"from_status": "pending", "to_status": "confirmed", "at": "2030-06-01T08:00:00+00:00"},
            ],
        }
        client, builder = mock_client([row])

        bookings = SupabaseScheduleStore(client).list_emergency_bookings("doc-1", date(2030, 6, 3), date(2030, 6, 3))

        builder.gte.assert_called_once_with("booking_date", "2030-06-03")
        assert bookings[0].status == EmergencyBookingStatus.CONFIRMED
        assert bookings[0].history[0].from_status is None
        assert [h.to_status for h in bookings[0].history] == [
            EmergencyBookingStatus.PENDING, EmergencyBookingStatus.CONFIRMED
        ]
