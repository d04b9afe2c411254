"""APScheduler integration for FastAPI.

Runs housekeeping jobs; currently activity log retention.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from alert_relay.config import settings
from alert_relay.database import engine
from alert_relay.services.activity_log import run_prune

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()

PRUNE_JOB_ID = "prune_activity_log"


async def prune_activity_log_job():
    try:
        run_prune(engine, settings.activity_log_max_rows)
    except Exception as e:
        logger.error(f"Activity log prune failed: {e}", exc_info=True)


def start_scheduler():
    """Start the scheduler with the retention job."""
    scheduler.add_job(
        prune_activity_log_job,
        trigger=IntervalTrigger(minutes=settings.activity_log_prune_minutes),
        id=PRUNE_JOB_ID,
        name="Prune activity log",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=60,
    )
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
