from celery import Celery

from lms_storage.core.config import get_settings

settings = get_settings()

celery = Celery(
    "lms_storage",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["lms_storage.tasks.tasks"],
)
celery.conf.update(
    timezone="UTC",
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    task_default_queue="storage",
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=24 * 60 * 60,
    beat_schedule={
        "storage-cleanup-orphans": {
            "task": "lms_storage.tasks.tasks.storage_cleanup_orphans",
            "schedule": settings.storage_cleanup_interval_seconds,
        }
    },
)
