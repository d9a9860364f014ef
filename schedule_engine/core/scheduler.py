"""Background job scheduler for calendar syncing."""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from schedule_engine.calendar.client import has_valid_credentials
from schedule_engine.calendar.sync import sync_calendar
from schedule_engine.core.config import settings
from schedule_engine.core.dependencies import collection, store
from schedule_engine.errors import ReauthenticationRequired

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


async def sync_job():
    """Background sync job."""
    if not has_valid_credentials():
        logger.debug("No calendar credentials, skipping background sync")
        return
    try:
        stats = await sync_calendar(collection, store)
        logger.info(f"Background sync completed: {stats}")
    except ReauthenticationRequired as e:
        logger.warning(f"Background sync needs reauthentication: {e}")
    except Exception as e:
        logger.error(f"Background sync failed: {e}")


def start_scheduler():
    """Start the background scheduler."""
    scheduler.add_job(
        sync_job,
        trigger=IntervalTrigger(minutes=settings.sync_interval_minutes),
        id="calendar_sync",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started, syncing every {settings.sync_interval_minutes} minutes"
    )


def shutdown_scheduler():
    """Graceful shutdown."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
    logger.info("Scheduler shut down")
