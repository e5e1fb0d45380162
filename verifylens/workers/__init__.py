"""
Background workers for scheduled maintenance
"""
from verifylens.workers.celery_app import celery_app
from verifylens.workers.cache_worker import purge_expired_cache

__all__ = ["celery_app", "purge_expired_cache"]
