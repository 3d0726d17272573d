"""
Display helpers for the presentation tier.

Core records carry no display fields; views call these instead.
"""
from datetime import date, time
from typing import Any, Dict, Optional

from ..models.emergency import EmergencyPriority
from ..models.scheduling import Slot, SlotStatus, day_of_week

DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")

STATUS_LABELS = {
    SlotStatus.AVAILABLE: "Available",
    SlotStatus.HELD: "Temporarily reserved",
    SlotStatus.BOOKED: "Booked",
    SlotStatus.BLOCKED: "Blocked",
    SlotStatus.CANCELLED: "Cancelled",
}

PRIORITY_LABELS = {
    EmergencyPriority.LOW: "Low",
    EmergencyPriority.MEDIUM: "Medium",
    EmergencyPriority.HIGH: "High",
    EmergencyPriority.CRITICAL: "Critical",
}


def format_time(value: time) -> str:
    return value.strftime("%H:%M")


def format_date(value: date) -> str:
    return value.strftime("%Y/%m/%d")


def day_name(day_number: int) -> str:
    """Name for a clinic day number (0=Sunday ... 6=Saturday)."""
    return DAY_NAMES[day_number % 7]


def status_label(status: SlotStatus) -> str:
    return STATUS_LABELS.get(status, str(status.value).title())


def priority_label(priority: EmergencyPriority) -> str:
    return PRIORITY_LABELS.get(priority, str(priority.value).title())


def format_slot(slot: Slot, doctor_name: Optional[str] = None,
                status: Optional[SlotStatus] = None) -> Dict[str, Any]:
    """
    Flatten a slot into display fields.

    Args:
        slot: Slot to render
        doctor_name: Optional name from the doctor directory
        status: Effective status to show (defaults to the stored status)
    """
    shown = status or slot.status
    return {
        "slot_id": slot.slot_id,
        "doctor_id": slot.doctor_id,
        "doctor_name": doctor_name,
        "date": format_date(slot.slot_date),
        "day": day_name(day_of_week(slot.slot_date)),
        "start_time": format_time(slot.start_time),
        "end_time": format_time(slot.end_time),
        "time_range": f"{format_time(slot.start_time)} - {format_time(slot.end_time)}",
        "duration_minutes": slot.duration_minutes,
        "status": shown.value,
        "status_label": status_label(shown),
        "is_available": shown == SlotStatus.AVAILABLE,
        "is_emergency_slot": slot.is_emergency_slot,
    }
