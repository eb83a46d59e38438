# scheduler/scheduler.py
import asyncio

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from finder.services import Services
from scheduler.daily_search import run_daily_search
from scheduler.retention import run_retention_sweep
from utils.log import get_logger

logger = get_logger("scheduler")


def build_scheduler(services):
    """
    Create an AsyncIOScheduler with the daily search and weekly retention jobs.

    Both jobs use cron triggers in the configured timezone and allow a single
    running instance, so a slow run is never overlapped by the next one.
    """
    s = services.settings
    scheduler = AsyncIOScheduler(timezone=s.schedule_timezone)
    scheduler.add_job(
        run_daily_search,
        CronTrigger.from_crontab(s.daily_search_cron, timezone=s.schedule_timezone),
        args=[services],
        id="daily_book_search",
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        run_retention_sweep,
        CronTrigger.from_crontab(s.retention_cron, timezone=s.schedule_timezone),
        args=[services],
        id="cleanup_old_notifications",
        max_instances=1,
        coalesce=True,
    )
    return scheduler


async def async_main():
    """
    Run the scheduler until the process is stopped.

    Services are created once for the lifetime of the process and closed
    on the way out.
    """
    services = Services.create()
    scheduler = build_scheduler(services)
    scheduler.start()
    logger.info(
        f"Scheduler started (search: '{services.settings.daily_search_cron}', "
        f"cleanup: '{services.settings.retention_cron}', tz {services.settings.schedule_timezone})"
    )
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown(wait=False)
        await services.aclose()


if __name__ == "__main__":
    asyncio.run(async_main())
