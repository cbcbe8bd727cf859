"""APScheduler integration for the trade refresh cycle.

The scheduler runs on the Telegram bot's event loop, so refresh cycles and chat
handlers share one cooperative loop.
"""

import asyncio
import logging

from apscheduler.events import EVENT_JOB_MAX_INSTANCES
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from tradebot.engine.lifecycle import TradeLifecycle

logger = logging.getLogger(__name__)

REFRESH_JOB_ID = "refresh_open_trades"

scheduler = AsyncIOScheduler()


def _on_overlap(event):
    logger.warning(f"Skipping refresh cycle for job {event.job_id}: previous cycle still running")


def add_refresh_job(lifecycle: TradeLifecycle, interval_seconds: int):
    """Add or replace the interval job that refreshes all open trades."""
    from tradebot.engine.refresh_job import run_refresh_cycle

    if scheduler.get_job(REFRESH_JOB_ID):
        scheduler.remove_job(REFRESH_JOB_ID)

    scheduler.add_job(
        run_refresh_cycle,
        trigger=IntervalTrigger(seconds=interval_seconds),
        args=[lifecycle],
        id=REFRESH_JOB_ID,
        name="Refresh open trades",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=interval_seconds,
    )
    logger.info(f"Scheduled trade refresh every {interval_seconds}s")


def start_scheduler(lifecycle: TradeLifecycle, interval_seconds: int, loop: asyncio.AbstractEventLoop):
    """Start the scheduler on ``loop`` with the refresh job registered."""
    if not scheduler.running:
        scheduler.configure(event_loop=loop)
        scheduler.add_listener(_on_overlap, EVENT_JOB_MAX_INSTANCES)
    add_refresh_job(lifecycle, interval_seconds)
    if not scheduler.running:
        scheduler.start()
    logger.info(f"Scheduler started with {len(scheduler.get_jobs())} jobs")


def stop_scheduler():
    """Shut down the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")


def get_scheduler_status() -> dict:
    """Return current scheduler state for the API."""
    jobs = scheduler.get_jobs()
    return {
        "running": scheduler.running,
        "job_count": len(jobs),
        "jobs": [
            {
                "id": j.id,
                "name": j.name,
                "next_run": str(j.next_run_time) if j.next_run_time else None,
                "trigger": str(j.trigger),
            }
            for j in jobs
        ],
    }
