#!/usr/bin/env python
"""
Calendar Sync Worker

Standalone process that runs a calendar sync tick every
SYNC_INTERVAL_MINUTES. Use it instead of the in-process scheduler
(SYNC_SCHEDULER_ENABLED=false on the API) when the API runs several replicas;
set SYNC_LOCK_BACKEND=database if more than one worker shares a database.

Run with:
    python worker.py

Or once, for cron:
    python worker.py --once
"""

import os
import sys
import time
import logging
import signal

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from calsync.config import settings
from calsync.database import create_tables
from calsync.services.calendar_sync import run_calendar_sync_tick
from calsync.utils.logging_config import setup_logging

logger = logging.getLogger("worker")

RUNNING = True


def signal_handler(signum, frame):
    """Handle shutdown signals gracefully"""
    global RUNNING
    logger.info("Received shutdown signal, finishing current tick...")
    RUNNING = False


def run_tick(cycle: int):
    start_time = time.time()
    try:
        results = run_calendar_sync_tick()
    except Exception as e:
        logger.error(f"Critical error in cycle {cycle}: {e}")
        return
    
    failed = sum(1 for r in results if r.outcome == "failed")
    skipped = sum(1 for r in results if r.skipped)
    logger.info(
        f"Cycle {cycle}: {len(results)} pairs | "
        f"{failed} failed | {skipped} skipped | "
        f"{time.time() - start_time:.2f}s"
    )


def run_worker():
    """Main worker loop"""
    interval = settings.sync_interval_minutes * 60
    
    logger.info("=" * 50)
    logger.info("Starting Calendar Sync Worker")
    logger.info(f"Interval: {settings.sync_interval_minutes} min")
    logger.info(f"Pool size: {settings.sync_pool_size}")
    logger.info(f"Lock backend: {settings.sync_lock_backend}")
    logger.info("=" * 50)
    
    cycle = 0
    
    while RUNNING:
        cycle += 1
        tick_started = time.time()
        run_tick(cycle)
        
        # Sleep until next tick, waking up regularly to honour shutdown
        while RUNNING and time.time() - tick_started < interval:
            time.sleep(1)
    
    logger.info("Worker shutdown complete")


if __name__ == "__main__":
    setup_logging(level=settings.log_level, json_format=settings.log_json, include_uvicorn=False)
    create_tables()
    
    if "--once" in sys.argv:
        run_tick(1)
        sys.exit(0)
    
    # Register signal handlers for graceful shutdown
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)
    
    try:
        run_worker()
    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")
    except Exception as e:
        logger.critical(f"Worker crashed: {e}")
        sys.exit(1)
