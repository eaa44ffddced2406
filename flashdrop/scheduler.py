"""
Scheduled tasks for the reservation engine.
This module sets up the expiry sweep that runs within the FastAPI application.
"""

import logging
from datetime import datetime
from typing import Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, EVENT_JOB_MAX_INSTANCES
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from flashdrop.core.config import Settings, get_settings
from flashdrop.services.expiry_service import ExpirySweeper

logger = logging.getLogger(__name__)

EXPIRY_JOB_ID = "expire_reservations"


def job_listener(event):
    """Listen to job events for logging"""
    if event.code == EVENT_JOB_MAX_INSTANCES:
        logger.warning(f"Job {event.job_id} skipped: previous run still in progress")
    elif event.exception:
        logger.error(f"Job {event.job_id} crashed: {event.exception}")
    else:
        logger.debug(f"Job {event.job_id} executed successfully at {datetime.now()}")


def create_scheduler(sweeper: ExpirySweeper, settings: Optional[Settings] = None) -> AsyncIOScheduler:
    """Create and configure the scheduler"""
    settings = settings or get_settings()

    scheduler = AsyncIOScheduler()

    # Add job event listeners
    scheduler.add_listener(job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR | EVENT_JOB_MAX_INSTANCES)

    if settings.EXPIRY_SWEEP_ENABLED:
        scheduler.add_job(
            sweeper.run_once,
            IntervalTrigger(seconds=settings.EXPIRY_SWEEP_INTERVAL_SECONDS),
            id=EXPIRY_JOB_ID,
            name="Expire Reservations",
            replace_existing=True,
            max_instances=1,  # Ticks never overlap
            coalesce=True,
        )
        logger.info(f"Expiry sweep scheduled every {settings.EXPIRY_SWEEP_INTERVAL_SECONDS}s")
    else:
        logger.info("Expiry sweep is disabled. Set EXPIRY_SWEEP_ENABLED=true to enable")

    return scheduler


async def start_scheduler(scheduler: AsyncIOScheduler):
    """Start the scheduler"""
    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started successfully")

        jobs = scheduler.get_jobs()
        if jobs:
            logger.info(f"Active scheduled jobs: {len(jobs)}")
            for job in jobs:
                logger.info(f"  - {job.name}: {job.trigger}")
        else:
            logger.info("No scheduled jobs configured")


async def stop_scheduler(scheduler: Optional[AsyncIOScheduler]):
    """Stop the scheduler gracefully"""
    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped successfully")


def get_scheduler_status(scheduler: Optional[AsyncIOScheduler]) -> dict:
    """Get current scheduler status and job information"""
    if scheduler is None:
        return {"status": "not_initialized", "jobs": []}

    jobs_info = []
    for job in scheduler.get_jobs():
        # Jobs added before start() have no next_run_time yet
        next_run = getattr(job, "next_run_time", None)
        jobs_info.append({
            "id": job.id,
            "name": job.name,
            "next_run": next_run.isoformat() if next_run else None,
            "trigger": str(job.trigger)
        })

    return {
        "status": "running" if scheduler.running else "stopped",
        "jobs": jobs_info
    }
