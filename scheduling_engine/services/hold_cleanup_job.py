"""
Hold Cleanup Job

Background sweep that reclaims expired holds so slots return to Available
even when nothing reads or mutates them. Reads and mutations also reclaim
lazily; both paths use the same expiry rule and the same clock.
"""

import logging
import time
from datetime import datetime, timedelta
from typing import Any, Dict

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import HOLD_CLEANUP_INTERVAL_MINUTES
from .reservation_manager import ReservationManager

logger = logging.getLogger(__name__)


class HoldCleanupJob:
    """
    Periodic job that finds and reclaims expired holds.
    """

    def __init__(
        self,
        reservations: ReservationManager,
        run_interval_minutes: int = HOLD_CLEANUP_INTERVAL_MINUTES,
        scheduler: AsyncIOScheduler = None
    ):
        """
        Args:
            reservations: Reservation manager whose store and clock are swept
            run_interval_minutes: How often to run the cleanup
            scheduler: Optional scheduler to register on (a new one by default)
        """
        self.reservations = reservations
        self.scheduler = scheduler or AsyncIOScheduler()
        self.run_interval_minutes = run_interval_minutes
        self.is_running = False

        logger.info(f"Initialized HoldCleanupJob with {run_interval_minutes} minute interval")

    async def cleanup_expired_holds(self) -> Dict[str, Any]:
        """
        Find and reclaim all expired holds.

        Returns:
            Dictionary with cleanup statistics
        """
        started = self.reservations.clock()
        timer = time.monotonic()
        stats = {
            "expired_holds": 0,
            "released_holds": 0,
            "errors": 0,
            "start_time": started.isoformat(),
        }

        try:
            expired = self.reservations.find_expired_holds()
        except Exception as e:
            logger.error(f"Error finding expired holds: {e}", exc_info=True)
            stats["errors"] += 1
            expired = []

        stats["expired_holds"] = len(expired)
        if expired:
            logger.info(f"Found {len(expired)} expired holds to clean up")

        for slot in expired:
            try:
                if await self.reservations.reclaim_hold(slot):
                    stats["released_holds"] += 1
            except Exception as e:
                logger.error(f"Error releasing hold {slot.hold_id} on slot {slot.slot_id}: {e}")
                stats["errors"] += 1

        stats["end_time"] = self.reservations.clock().isoformat()
        stats["duration_seconds"] = round(time.monotonic() - timer, 6)

        logger.info(
            f"Hold cleanup completed. Released {stats['released_holds']} holds, "
            f"{stats['errors']} errors"
        )
        return stats

    def start(self):
        """Start the scheduled cleanup job (requires a running event loop)."""
        if self.is_running:
            return

        self.scheduler.add_job(
            self.cleanup_expired_holds,
            trigger=IntervalTrigger(minutes=self.run_interval_minutes),
            id='hold_cleanup_job',
            name='Slot Hold Cleanup',
            misfire_grace_time=60,  # Allow 60 seconds grace period
            coalesce=True,  # Combine missed runs
            max_instances=1,  # Only one instance running at a time
            replace_existing=True
        )

        # Also run cleanup shortly after startup
        self.scheduler.add_job(
            self.cleanup_expired_holds,
            trigger='date',
            run_date=datetime.now() + timedelta(seconds=10),
            id='hold_cleanup_startup',
            name='Slot Hold Cleanup (Startup)',
            replace_existing=True
        )

        self.scheduler.start()
        self.is_running = True
        logger.info(f"Hold cleanup job started (runs every {self.run_interval_minutes} minutes)")

    def stop(self):
        if self.is_running:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            logger.info("Hold cleanup job stopped")

    async def run_once(self) -> Dict[str, Any]:
        """Run the cleanup once (for tests or manual execution)."""
        return await self.cleanup_expired_holds()
