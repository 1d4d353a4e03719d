# authstarter/services/scheduler_service.py
"""
Scheduler service for periodic maintenance jobs.
Uses APScheduler's asyncio scheduler so jobs run on the application's event loop.
"""
from datetime import timedelta
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import async_sessionmaker

from authstarter.services.session_cleanup import cleanup_expired_sessions

logger = logging.getLogger(__name__)

SESSION_CLEANUP_JOB_ID = "session_cleanup"

# Global scheduler instance
_scheduler: AsyncIOScheduler | None = None


def get_scheduler() -> AsyncIOScheduler | None:
    """Get the global scheduler instance."""
    return _scheduler


async def _run_session_cleanup(sessions: async_sessionmaker, refresh_ttl: timedelta) -> None:
    try:
        await cleanup_expired_sessions(sessions, refresh_ttl)
    except Exception:
        logger.exception("Session cleanup sweep failed")


def start_scheduler(sessions: async_sessionmaker, refresh_ttl: timedelta, interval_min: int) -> AsyncIOScheduler:
    """
    Start the scheduler with the session cleanup job.
    Must be called from inside a running event loop (the app lifespan).
    """
    global _scheduler

    if _scheduler is not None and _scheduler.running:
        logger.warning("Scheduler is already running")
        return _scheduler

    job_defaults = {
        'coalesce': True,  # Combine multiple pending executions into one
        'max_instances': 1,  # never overlap two sweeps
        'misfire_grace_time': 30  # Seconds after which a missed job is considered expired
    }

    _scheduler = AsyncIOScheduler(job_defaults=job_defaults, timezone='UTC')
    _scheduler.add_job(
        _run_session_cleanup,
        trigger='interval',
        minutes=interval_min,
        args=[sessions, refresh_ttl],
        id=SESSION_CLEANUP_JOB_ID,
        replace_existing=True,
    )

    _scheduler.start()
    logger.info(f"Session cleanup scheduled every {interval_min} minutes")
    return _scheduler


def stop_scheduler() -> None:
    """Stop the scheduler without waiting for an in-flight sweep."""
    global _scheduler

    if _scheduler is None:
        return

    if not _scheduler.running:
        logger.warning("Scheduler is not running")
        _scheduler = None
        return

    try:
        _scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
    except Exception as e:
        logger.error(f"Error stopping scheduler: {e}")
    finally:
        _scheduler = None
