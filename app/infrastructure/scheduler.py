"""
APScheduler setup with persistent job store for the periodic reminder jobs.
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.triggers.interval import IntervalTrigger

from app.config.settings import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

EMAIL_REMINDER_JOB_ID = "email_reminder_dispatch"
OUTBOX_JOB_ID = "notification_outbox"

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None


def get_scheduler() -> AsyncIOScheduler:
    """Get or create the scheduler instance."""
    global scheduler

    if scheduler is None:
        # Use SQLite for persistent job storage
        jobstores = {
            'default': SQLAlchemyJobStore(url=settings.jobs_database_url)
        }

        scheduler = AsyncIOScheduler(
            jobstores=jobstores,
            timezone=settings.timezone,
            job_defaults={
                # A tick still running when the next is due is skipped, never overlapped
                'max_instances': 1,
                'coalesce': True,
            },
        )

    return scheduler


def register_jobs(sched: AsyncIOScheduler) -> None:
    """Register the recurring dispatcher and outbox jobs."""
    from app.usecases.appointment_lifecycle import process_pending_intents
    from app.usecases.email_dispatcher import dispatch_due_email_reminders

    sched.add_job(
        dispatch_due_email_reminders,
        trigger=IntervalTrigger(seconds=settings.reminder_poll_seconds),
        id=EMAIL_REMINDER_JOB_ID,
        name="Email reminder dispatcher",
        replace_existing=True,
        misfire_grace_time=settings.reminder_poll_seconds,
    )
    logger.info(f"Scheduled email reminder dispatch every {settings.reminder_poll_seconds}s")

    sched.add_job(
        process_pending_intents,
        trigger=IntervalTrigger(seconds=settings.outbox_poll_seconds),
        id=OUTBOX_JOB_ID,
        name="Notification outbox",
        replace_existing=True,
        misfire_grace_time=settings.outbox_poll_seconds,
    )
    logger.info(f"Scheduled notification outbox sweep every {settings.outbox_poll_seconds}s")


async def start_scheduler() -> None:
    """Register jobs and start the scheduler."""
    sched = get_scheduler()
    if not sched.running:
        register_jobs(sched)
        sched.start()
        logger.info("Scheduler started")


async def stop_scheduler() -> None:
    """Stop the scheduler gracefully."""
    global scheduler
    if scheduler and scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Scheduler stopped")
