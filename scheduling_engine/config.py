"""
Engine Configuration
Centralized configuration for holds, locks, storage backends and the optimizer
"""
import os
from typing import FrozenSet

from dotenv import load_dotenv
from redis import Redis

load_dotenv()

# Clinic-local timezone used for "today" and past-date checks
CLINIC_TIMEZONE = os.getenv("CLINIC_TIMEZONE", "UTC")

# Temporary reservations (holds)
HOLD_TTL_MINUTES = int(os.getenv("HOLD_TTL_MINUTES", "5"))
HOLD_CLEANUP_INTERVAL_MINUTES = int(os.getenv("HOLD_CLEANUP_INTERVAL_MINUTES", "1"))

# Slot generation
DEFAULT_SLOT_DURATION_MINUTES = int(os.getenv("DEFAULT_SLOT_DURATION_MINUTES", "30"))


def _parse_days(raw: str) -> FrozenSet[int]:
    return frozenset(int(part) for part in raw.split(",") if part.strip())


# Day numbers follow the clinic convention: 0=Sunday ... 6=Saturday
WEEKEND_DAYS = _parse_days(os.getenv("WEEKEND_DAYS", "0,6"))

# Locking
LOCK_BACKEND = os.getenv("LOCK_BACKEND", "memory").lower()
SLOT_LOCK_TTL_MS = int(os.getenv("SLOT_LOCK_TTL_MS", "5000"))
SLOT_LOCK_RETRIES = int(os.getenv("SLOT_LOCK_RETRIES", "8"))

# Storage
STORE_BACKEND = os.getenv("STORE_BACKEND", "memory").lower()
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379")
SUPABASE_SCHEMA = os.getenv("SUPABASE_SCHEMA", "scheduling")
SUPABASE_TIMEOUT_SECONDS = float(os.getenv("SUPABASE_TIMEOUT_SECONDS", "10"))

# Emergency bookings below this priority are not accepted as emergencies
EMERGENCY_MIN_PRIORITY = os.getenv("EMERGENCY_MIN_PRIORITY", "medium").lower()

# Schedule optimizer heuristics (percentages / minutes)
TARGET_UTILIZATION_LOW = float(os.getenv("TARGET_UTILIZATION_LOW", "60"))
TARGET_UTILIZATION_HIGH = float(os.getenv("TARGET_UTILIZATION_HIGH", "85"))
EMERGENCY_HEADROOM_PERCENT = float(os.getenv("EMERGENCY_HEADROOM_PERCENT", "10"))
MAX_CONTINUOUS_WORK_MINUTES = int(os.getenv("MAX_CONTINUOUS_WORK_MINUTES", "180"))
MIN_BREAK_MINUTES = int(os.getenv("MIN_BREAK_MINUTES", "15"))


def get_redis_client() -> Redis:
    """
    Get configured Redis client with optimized settings

    Returns:
        Redis: Configured Redis client instance
    """
    return Redis.from_url(
        REDIS_URL,
        decode_responses=True,  # Automatically decode responses to strings
        socket_connect_timeout=5,
        socket_timeout=5,
        retry_on_timeout=True,
        health_check_interval=30
    )
