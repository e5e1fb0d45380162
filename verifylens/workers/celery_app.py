"""
Celery application configuration
"""
from celery import Celery
from verifylens.core.config import settings

# Create Celery app
celery_app = Celery(
    "verifylens_worker",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["verifylens.workers.cache_worker"]
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=600,
    task_soft_time_limit=540,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    result_expires=86400,  # Results expire after 24 hours
)

# Periodic cache sweep (run with `celery -A verifylens.workers.celery_app beat`)
celery_app.conf.beat_schedule = {
    "purge-expired-cache": {
        "task": "purge_expired_cache",
        "schedule": float(settings.CACHE_SWEEP_INTERVAL_SECONDS),
    },
}

# Task routes
celery_app.conf.task_routes = {
    "purge_expired_cache": {"queue": "maintenance"},
}
