"""
Calendar Sync Scheduler

Runs a calendar sync tick every SYNC_INTERVAL_MINUTES inside the API process.

Uses APScheduler with max_instances=1: a tick that is still running when the
next one is due makes APScheduler skip that occurrence instead of stacking
them up.
"""

import asyncio
import logging
from datetime import datetime
from typing import Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import settings
from .calendar_sync import run_calendar_sync_tick

logger = logging.getLogger(__name__)

# Global scheduler instance
_scheduler: Optional[AsyncIOScheduler] = None
_last_tick_time: Optional[datetime] = None
_last_tick_result: Optional[Dict] = None

JOB_ID = "calendar_sync_tick"


def _summarize(results) -> Dict:
    summary = {"pairs": len(results), "unchanged": 0, "updated": 0, "failed": 0, "skipped": 0}
    for r in results:
        key = "skipped" if r.skipped else r.outcome
        summary[key] = summary.get(key, 0) + 1
    return summary


async def run_calendar_sync_job():
    """
    Async job function called by the scheduler.
    
    The tick blocks on network I/O, so it runs in the default executor and
    the event loop stays free for API requests.
    """
    global _last_tick_time, _last_tick_result
    
    loop = asyncio.get_running_loop()
    try:
        results = await loop.run_in_executor(None, run_calendar_sync_tick)
        _last_tick_time = datetime.utcnow()
        _last_tick_result = _summarize(results)
        logger.info(f"Scheduled calendar sync: {_last_tick_result}")
    except Exception as e:
        logger.error(f"Scheduled calendar sync job failed: {e}")


def start_sync_scheduler(interval_minutes: Optional[int] = None) -> bool:
    """
    Start the periodic calendar sync.
    
    Returns:
        True if scheduler started successfully, False otherwise
    """
    global _scheduler
    
    if _scheduler is not None and _scheduler.running:
        logger.warning("Calendar sync scheduler is already running")
        return True
    
    interval = interval_minutes or settings.sync_interval_minutes
    try:
        _scheduler = AsyncIOScheduler(timezone="UTC")
        _scheduler.add_job(
            run_calendar_sync_job,
            IntervalTrigger(minutes=interval),
            id=JOB_ID,
            name=f"Calendar sync every {interval} min",
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.utcnow(),
            replace_existing=True
        )
        _scheduler.start()
        
        logger.info(f"Calendar sync scheduler started (every {interval} min)")
        return True
        
    except Exception as e:
        logger.error(f"Failed to start calendar sync scheduler: {e}")
        return False


def stop_sync_scheduler() -> bool:
    global _scheduler
    
    if _scheduler is None:
        return True
    
    try:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("Calendar sync scheduler stopped")
        return True
    except Exception as e:
        logger.error(f"Failed to stop calendar sync scheduler: {e}")
        return False


def get_scheduler_status() -> Dict:
    status = {
        "running": False,
        "next_run": None,
        "interval_minutes": settings.sync_interval_minutes,
        "last_tick": _last_tick_time.isoformat() if _last_tick_time else None,
        "last_tick_result": _last_tick_result,
    }
    
    if _scheduler is not None and _scheduler.running:
        status["running"] = True
        job = _scheduler.get_job(JOB_ID)
        if job and job.next_run_time:
            status["next_run"] = job.next_run_time.isoformat()
    
    return status
