"""
Pytest configuration for the scheduling engine tests

All scenarios run against Monday 2030-06-03 with a fake clock set before it,
so nothing is in the past unless a test moves the clock.
"""

from datetime import datetime, timezone

import pytest

from scheduling_engine.engine import create_engine
from scheduling_engine.services.doctor_directory import DoctorInfo, InMemoryDoctorDirectory
from scheduling_engine.services.emergency_booking import LoggingNotifier
from scheduling_engine.services.locks import InProcessLockManager
from scheduling_engine.services.schedule_store import InMemoryScheduleStore

from .fixtures import DOCTOR_ID, MONDAY, OTHER_DOCTOR_ID, FakeClock, monday_template_input


@pytest.fixture
def clock():
    return FakeClock(datetime(2030, 6, 1, 8, 0, tzinfo=timezone.utc))


@pytest.fixture
def store():
    return InMemoryScheduleStore()


@pytest.fixture
def locks():
    return InProcessLockManager()


@pytest.fixture
def directory():
    return InMemoryDoctorDirectory([
        DoctorInfo(DOCTOR_ID, "Dr. Ada Smith", "Cardiology", ["consultation"]),
        DoctorInfo(OTHER_DOCTOR_ID, "Dr. Lin Park", "General Practice", ["consultation", "checkup"]),
    ])


@pytest.fixture
def notifier():
    return LoggingNotifier()


@pytest.fixture
def engine(store, locks, clock, directory, notifier):
    return create_engine(store=store, locks=locks, clock=clock, directory=directory, notifier=notifier)


@pytest.fixture
async def monday_engine(engine):
    """Engine with doc-1's Monday template applied and the week generated (6 slots)"""
    result = await engine.templates.set_work_template(DOCTOR_ID, monday_template_input())
    assert result.success, result.message
    generated = await engine.generator.generate_weekly(DOCTOR_ID, MONDAY)
    assert generated.data == 6
    return engine
