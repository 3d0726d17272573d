"""
Test fixtures for the scheduling engine
"""

from datetime import date, datetime, time, timedelta

# Sample test data
DOCTOR_ID = "doc-1"
OTHER_DOCTOR_ID = "doc-2"
MONDAY = date(2030, 6, 3)
TUESDAY = date(2030, 6, 4)
SATURDAY = date(2030, 6, 8)


class FakeClock:
    """Injectable clock returning aware UTC; advance it to simulate elapsed time."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


# Fixture functions
def monday_template_input(**kwargs):
    """Monday 09:00-12:00 only, 30-minute appointments"""
    data = {
        "appointment_duration": 30,
        "work_days": [
            {"day_of_week": 1, "is_active": True, "time_ranges": [{"start": "09:00", "end": "12:00"}]},
        ],
    }
    data.update(kwargs)
    return data


def full_week_template_input(**kwargs):
    """Monday to Friday 09:00-12:00 and 13:00-17:00, Saturday 09:00-11:00"""
    work_days = [
        {
            "day_of_week": day,
            "is_active": True,
            "time_ranges": [
                {"start": "09:00", "end": "12:00"},
                {"start": "13:00", "end": "17:00"},
            ],
        }
        for day in range(1, 6)
    ]
    work_days.append({"day_of_week": 6, "is_active": True, "time_ranges": [{"start": "09:00", "end": "11:00"}]})
    data = {"appointment_duration": 30, "work_days": work_days}
    data.update(kwargs)
    return data


def emergency_request(**kwargs):
    """Emergency booking request payload for doc-1 on Monday"""
    data = {
        "doctor_id": DOCTOR_ID,
        "patient_id": "patient-er",
        "patient_name": "Sam Rivera",
        "patient_phone": "+15550100",
        "booking_date": MONDAY,
        "start_time": time(10, 0),
        "duration_minutes": 30,
        "priority": "critical",
        "emergency_type": "cardiac",
        "reason": "Chest pain",
    }
    data.update(kwargs)
    return data


def slot_at(engine, slot_date: date, start: time, doctor_id: str = DOCTOR_ID):
    """The active slot starting at ``start`` on ``slot_date``"""
    for slot in engine.store.list_slots(doctor_id, slot_date):
        if slot.is_active and slot.start_time == start:
            return slot
    raise AssertionError(f"No active slot at {start} on {slot_date}")


def active_slots(engine, slot_date: date = MONDAY, doctor_id: str = DOCTOR_ID):
    return [s for s in engine.store.list_slots(doctor_id, slot_date) if s.is_active]
