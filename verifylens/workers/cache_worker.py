"""
Celery worker for verification cache cleanup
"""
from celery import Task
import asyncio
import logging

from verifylens.workers.celery_app import celery_app
from verifylens.core.config import settings
from verifylens.db.session import build_engine, build_session_factory
from verifylens.services.cache_service import ResultCache

logger = logging.getLogger(__name__)


class CacheMaintenanceTask(Task):
    """Base task for cache maintenance"""

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        """Handle task failure"""
        logger.error(f"Cache maintenance task {task_id} failed: {exc}")
        super().on_failure(exc, task_id, args, kwargs, einfo)


async def run_cache_purge(database_url: str) -> int:
    """
    Delete expired cache entries using a dedicated engine

    Each task run owns its event loop, so it gets its own engine as well.

    Returns:
        Number of entries purged
    """
    engine = build_engine(database_url)
    try:
        cache = ResultCache(build_session_factory(engine))
        purged = await cache.purge_expired()
        logger.info(f"Cache sweep complete: {purged} expired entries purged")
        return purged
    except Exception as e:
        logger.error(f"Error in cache sweep: {e}")
        raise
    finally:
        await engine.dispose()


@celery_app.task(base=CacheMaintenanceTask, name="purge_expired_cache")
def purge_expired_cache():
    """
    Purge expired verification cache entries

    Scheduled by Celery Beat every CACHE_SWEEP_INTERVAL_SECONDS.

    Returns:
        Number of entries purged
    """
    return asyncio.run(run_cache_purge(settings.DATABASE_URL))
