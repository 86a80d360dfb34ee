"""
Cron Scheduler Service using APScheduler.
Runs periodic maintenance such as trending bucket cleanup.
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.jobstores.base import JobLookupError
from typing import Callable, Dict, List, Optional

from core.logging import get_logger

logger = get_logger(__name__)

TRENDING_CLEANUP_JOB = "trending-cleanup"

_scheduler: Optional[AsyncIOScheduler] = None


def get_scheduler() -> AsyncIOScheduler:
    """Get or create the singleton scheduler instance."""
    global _scheduler
    if _scheduler is None:
        _scheduler = AsyncIOScheduler(timezone="UTC")
    return _scheduler


def start_scheduler():
    """Start the scheduler if not already running."""
    scheduler = get_scheduler()
    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started", jobs=len(scheduler.get_jobs()))


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    global _scheduler
    scheduler = get_scheduler()
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler shutdown")
    _scheduler = None


def build_trigger(cron_expression: str, timezone: str = "UTC") -> CronTrigger:
    """
    Parse a cron expression.

    Accepts 6 fields (second minute hour day month weekday) or 5 fields
    (minute hour day month weekday, second fixed at 0). Missing trailing
    fields default to '*'.
    """
    parts = cron_expression.split()
    if not parts:
        raise ValueError("Empty cron expression")

    if len(parts) >= 6:
        second, minute, hour, day, month, day_of_week = parts[:6]
    else:
        parts = parts + ['*'] * (5 - len(parts))
        second = '0'
        minute, hour, day, month, day_of_week = parts

    return CronTrigger(
        second=second,
        minute=minute,
        hour=hour,
        day=day,
        month=month,
        day_of_week=day_of_week,
        timezone=timezone
    )


def register_cron_job(
    job_id: str,
    cron_expression: str,
    callback: Callable,
    timezone: str = "UTC",
    **kwargs
) -> str:
    """
    Register a cron job with the scheduler.

    Args:
        job_id: Unique identifier for the job
        cron_expression: 5- or 6-field cron expression
        callback: Async function to call when job fires
        timezone: Timezone for schedule (default: UTC)
        **kwargs: Additional arguments passed to the callback

    Returns:
        The job_id
    """
    scheduler = get_scheduler()
    scheduler.add_job(
        callback,
        trigger=build_trigger(cron_expression, timezone),
        id=job_id,
        replace_existing=True,
        coalesce=True,
        max_instances=1,
        kwargs=kwargs
    )

    logger.info("Registered cron job", job_id=job_id, cron=cron_expression)
    return job_id


def remove_cron_job(job_id: str) -> bool:
    """Remove a cron job. Returns False if it was not registered."""
    scheduler = get_scheduler()
    try:
        scheduler.remove_job(job_id)
        logger.info("Removed cron job", job_id=job_id)
        return True
    except JobLookupError:
        logger.warning("Cron job not found", job_id=job_id)
        return False


def _job_info(job) -> Dict:
    # Pending jobs (scheduler not started) have no next_run_time yet
    next_run = getattr(job, "next_run_time", None)
    return {
        "id": job.id,
        "next_run_time": next_run.isoformat() if next_run else None,
        "trigger": str(job.trigger)
    }


def get_job_info(job_id: str) -> Optional[Dict]:
    job = get_scheduler().get_job(job_id)
    return _job_info(job) if job else None


def get_all_jobs() -> List[Dict]:
    """Get list of all scheduled jobs."""
    return [_job_info(job) for job in get_scheduler().get_jobs()]


def register_trending_cleanup(stats_service, cron_expression: str) -> str:
    """Schedule ``StatsService.cleanup_old_trending``."""

    async def _cleanup():
        try:
            await stats_service.cleanup_old_trending()
        except Exception as e:
            logger.error("Trending cleanup job failed", error=str(e), exc_info=True)

    return register_cron_job(TRENDING_CLEANUP_JOB, cron_expression, _cleanup)
