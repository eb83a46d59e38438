# scheduler/retention.py
import asyncio
from datetime import datetime, timedelta, timezone

from finder.services import Services
from utils.log import get_logger

logger = get_logger("retention")


async def sweep_old_notifications(store, max_age_days=30, limit=500, now=None):
    """
    Delete notifications older than ``max_age_days``, at most ``limit`` per call.

    Errors are logged and reported as zero deletions; the next weekly run
    picks up whatever is left.

    Returns:
        int: number of notifications deleted
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=max_age_days)
    logger.info(f"Starting cleanup of notifications created before {cutoff.isoformat()}")
    try:
        deleted = await store.delete_expired_notifications(cutoff, limit=limit)
    except Exception:
        logger.exception("Error cleaning up old notifications")
        return 0

    if deleted == 0:
        logger.info("No old notifications to clean up")
    else:
        logger.info(f"Deleted {deleted} old notifications")
    return deleted


async def run_retention_sweep(services):
    s = services.settings
    return await sweep_old_notifications(
        services.store, max_age_days=s.retention_days, limit=s.retention_batch_limit
    )


async def main():
    services = Services.create()
    try:
        await run_retention_sweep(services)
    finally:
        await services.aclose()


if __name__ == "__main__":
    asyncio.run(main())
