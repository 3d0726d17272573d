"""Schedule locks: mutual exclusion per doctor and date."""

import asyncio
import uuid
import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Dict

from ..config import SLOT_LOCK_RETRIES, SLOT_LOCK_TTL_MS
from ..exceptions import LockAcquisitionError

logger = logging.getLogger(__name__)

# Lua script for atomic compare-and-delete
COMPARE_AND_DELETE = """
if redis.call("get", KEYS[1]) == ARGV[1] then
  return redis.call("del", KEYS[1])
else
  return 0
end
"""


def schedule_key(doctor_id: str, slot_date: date) -> str:
    return f"schedule_lock:{doctor_id}:{slot_date.isoformat()}"


class InProcessLockManager:
    """asyncio.Lock per key, for single-process deployments and tests."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def acquire(self, key: str):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            # Drop the key once nobody holds or waits on it
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


class RedisLockManager:
    """Token-based distributed lock shared by every engine process."""

    def __init__(self, redis_client, ttl_ms: int = SLOT_LOCK_TTL_MS, retries: int = SLOT_LOCK_RETRIES):
        """
        Args:
            redis_client: Synchronous Redis client (redis-py)
            ttl_ms: Lock TTL in milliseconds
            retries: Acquisition attempts after the first one
        """
        self.redis = redis_client
        self.ttl_ms = ttl_ms
        self.retries = retries

    @asynccontextmanager
    async def acquire(self, key: str):
        """
        Acquire the lock for ``key`` with automatic release.

        Raises:
            LockAcquisitionError: If the lock cannot be acquired after retries
        """
        token = str(uuid.uuid4())  # Unique token for this acquisition
        acquired = False

        try:
            # NX = only if not exists, PX = TTL in ms
            acquired = self.redis.set(key, token, nx=True, px=self.ttl_ms)

            if not acquired:
                for i in range(self.retries):
                    await asyncio.sleep(0.05 * (i + 1))  # 50ms, 100ms, 150ms...
                    acquired = self.redis.set(key, token, nx=True, px=self.ttl_ms)
                    if acquired:
                        break

                if not acquired:
                    raise LockAcquisitionError(
                        f"Schedule lock busy for {key} after {self.retries} retries"
                    )

            logger.debug(f"Acquired schedule lock: {key} (token: {token[:8]})")
            yield

        finally:
            if acquired:
                try:
                    # Only delete if we still own the lock
                    self.redis.eval(COMPARE_AND_DELETE, 1, key, token)
                    logger.debug(f"Released schedule lock: {key}")
                except Exception as e:
                    logger.warning(f"Failed to release lock {key}: {e}")
