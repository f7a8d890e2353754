"""APScheduler background jobs for the Accord API.

Contains the recurring jobs and the scheduler lifecycle helpers
``start_scheduler()`` and ``shutdown_scheduler()``.
"""

import logging
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from app.database import async_session_factory
from app.services.notification_service import NotificationService
from app.services.report_service import REPORT_RETENTION_HOURS, cleanup_reports
from app.storage import ReportStorageError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Scheduler singleton
# ---------------------------------------------------------------------------
scheduler = AsyncIOScheduler()


def is_scheduler_running() -> bool:
    return bool(getattr(scheduler, "running", False))


# ---------------------------------------------------------------------------
# Scheduled job functions
# ---------------------------------------------------------------------------


async def run_report_cleanup():
    """Delete stored reports past the retention window. Runs hourly."""
    try:
        result = await cleanup_reports(REPORT_RETENTION_HOURS)
        logger.info(
            "Scheduled report cleanup: %s deleted, %s failed",
            result.get("deleted", 0),
            result.get("failed", 0),
        )
    except ReportStorageError as e:
        logger.error("Scheduled report cleanup failed: %s", e)


async def run_overdue_reminders():
    """Notify assignees of overdue tasks. Runs daily at 7:00 AM UTC."""
    if async_session_factory is None:
        logger.error("Database not configured; cannot send overdue reminders")
        return

    try:
        async with async_session_factory() as db:
            today = datetime.now(timezone.utc).date()
            count = await NotificationService.send_overdue_reminders(db, today)
            await db.commit()
        logger.info("Sent %d overdue task reminder(s)", count)
    except Exception as e:
        logger.error("Overdue reminder job failed: %s", e)


# ---------------------------------------------------------------------------
# Lifecycle helpers
# ---------------------------------------------------------------------------


def start_scheduler():
    """Start the APScheduler for background jobs."""
    if is_scheduler_running():
        logger.info("Scheduler already running; skipping start")
        return

    scheduler.add_job(
        run_report_cleanup,
        "interval",
        hours=1,
        id="report_cleanup",
        name="Delete expired reports",
        max_instances=1,
        replace_existing=True,
    )

    scheduler.add_job(
        run_overdue_reminders,
        "cron",
        hour=7,
        minute=0,
        id="overdue_reminders",
        name="Overdue task reminders",
        max_instances=1,
        replace_existing=True,
    )

    scheduler.start()
    logger.info(
        "Scheduler started - report cleanup hourly, overdue reminders at 7:00 AM UTC"
    )


def shutdown_scheduler():
    """Gracefully shut down the scheduler if it is running."""
    if is_scheduler_running():
        scheduler.shutdown(wait=False)
