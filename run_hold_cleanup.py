#!/usr/bin/env python3
"""
Standalone Hold Cleanup Worker
Runs the periodic expired-hold sweep independently from the application layer

Usage:
    python run_hold_cleanup.py [--once]

Environment Variables:
    STORE_BACKEND - memory or supabase
    LOCK_BACKEND - memory or redis
    HOLD_CLEANUP_INTERVAL_MINUTES - sweep interval
    REDIS_URL - Redis connection URL (redis locks)
    SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY - Supabase credentials (supabase store)
"""
import asyncio
import logging
import signal
import sys

from scheduling_engine.config import HOLD_CLEANUP_INTERVAL_MINUTES, LOCK_BACKEND, STORE_BACKEND
from scheduling_engine.engine import create_engine
from scheduling_engine.utils.logging_config import configure_logging

# Configure centralized logging (container-aware: no timestamps in Docker/Fly.io)
configure_logging()
logger = logging.getLogger(__name__)


async def main(run_once: bool = False):
    """Main entry point for the standalone sweep."""
    logger.info("=" * 80)
    logger.info("Hold Cleanup Worker Starting")
    logger.info("=" * 80)
    logger.info(f"Store backend: {STORE_BACKEND}")
    logger.info(f"Lock backend: {LOCK_BACKEND}")
    logger.info(f"Interval: {HOLD_CLEANUP_INTERVAL_MINUTES} minute(s)")
    logger.info("=" * 80)

    engine = create_engine()

    if run_once:
        stats = await engine.cleanup_job.run_once()
        logger.info(f"Single sweep finished: {stats}")
        return

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop_event.set)

    engine.start_background_jobs()
    logger.info("Cleanup job running (press Ctrl+C to stop)...")
    try:
        await stop_event.wait()
    finally:
        logger.info("Stopping cleanup job...")
        engine.shutdown()
        logger.info("Cleanup job stopped cleanly")


if __name__ == "__main__":
    try:
        asyncio.run(main(run_once="--once" in sys.argv[1:]))
    except KeyboardInterrupt:
        logger.info("Worker terminated by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)
