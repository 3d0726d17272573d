"""
Tests for request validation schemas
"""

from datetime import date, datetime, time

import pytest
from pydantic import ValidationError

from scheduling_engine.models.emergency import EmergencyPriority, EmergencyType
from scheduling_engine.schemas.requests import (
    BlockRangeRequest,
    EmergencyBookingRequest,
    WorkTemplateInput,
)
from tests.fixtures import emergency_request, full_week_template_input


class TestEmergencyBookingRequest:

    def test_defaults_and_stripping(self):
        payload = emergency_request(patient_name="  Sam Rivera ", duration_minutes=None)
        del payload["priority"], payload["emergency_type"]

        request = EmergencyBookingRequest(**payload)

        assert request.patient_name == "Sam Rivera"
        assert request.priority == EmergencyPriority.MEDIUM
        assert request.emergency_type == EmergencyType.MEDICAL
        assert request.duration_minutes is None

    @pytest.mark.parametrize("overrides", [
        {"patient_id": " "},
        {"reason": ""},
        {"duration_minutes": 0},
        {"priority": "urgent"},
        {"patient_phone": "0" * 21},
    ])
    def test_invalid_payloads(self, overrides):
        with pytest.raises(ValidationError):
            EmergencyBookingRequest(**emergency_request(**overrides))


class TestWorkTemplateInput:

    def test_to_template_orders_days(self):
        data = full_week_template_input()
        data["work_days"] = list(reversed(data["work_days"]))

        template = WorkTemplateInput.model_validate(data).to_template("doc-1")

        assert [wd.day_of_week for wd in template.work_days] == [1, 2, 3, 4, 5, 6]
        assert template.settings.allow_emergency_booking is True
        assert template.longest_active_range_minutes() == 240

    def test_inactive_day_needs_no_ranges(self):
        data = full_week_template_input()
        data["work_days"].append({"day_of_week": 0, "is_active": False})

        template = WorkTemplateInput.model_validate(data).to_template("doc-1")

        assert template.active_ranges_for(date(2030, 6, 2)) == []


class TestBlockRangeRequest:

    def test_valid_block(self):
        block = BlockRangeRequest(
            doctor_id="doc-1", start=datetime(2030, 6, 3, 9), end=datetime(2030, 6, 3, 10),
            reason=" Meeting ", kind="meeting"
        )

        assert block.reason == "Meeting"
        assert block.start.time() == time(9, 0)

    def test_end_must_follow_start(self):
        with pytest.raises(ValidationError):
            BlockRangeRequest(
                doctor_id="doc-1", start=datetime(2030, 6, 3, 10), end=datetime(2030, 6, 3, 10), reason="x"
            )
