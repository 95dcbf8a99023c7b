"""Background job scheduler for the derived flag repair pass."""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlmodel import Session

from timebox.core.config import settings
from timebox.core.database import engine
from timebox.planner.reconcile import reconcile_all

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


def reconcile_job():
    """Background repair job."""
    try:
        with Session(engine) as session:
            stats = reconcile_all(session)
            logger.info(f"Flag repair completed: {stats}")
    except Exception as e:
        logger.error(f"Flag repair failed: {e}")


def start_scheduler():
    """Start the background scheduler."""
    if settings.reconcile_interval_minutes <= 0:
        logger.info("Flag repair job disabled")
        return

    scheduler.add_job(
        reconcile_job,
        trigger=IntervalTrigger(minutes=settings.reconcile_interval_minutes),
        id="flag_repair",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started, repairing flags every {settings.reconcile_interval_minutes} minutes"
    )


def shutdown_scheduler():
    """Graceful shutdown."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler shut down")
