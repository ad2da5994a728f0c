from datetime import UTC, datetime, timedelta

import structlog

from lms_storage.core.config import Settings, get_settings
from lms_storage.integrations.storage.base import StorageProvider
from lms_storage.integrations.storage.factory import get_storage_provider
from lms_storage.tasks.celery_app import celery

logger = structlog.get_logger()


def cleanup_orphans(settings: Settings, provider: StorageProvider, now: datetime | None = None) -> dict:
    """Abort chunked uploads that outlived the chunked credential TTL without a commit."""
    now = now or datetime.now(UTC)
    cutoff = now - timedelta(seconds=settings.storage_chunked_ttl_seconds)
    aborted = provider.abort_stale(cutoff)
    logger.info("storage_cleanup_orphans", provider=provider.name, aborted=aborted, cutoff=cutoff.isoformat())
    return {"ok": True, "aborted": aborted}


@celery.task(name="lms_storage.tasks.tasks.storage_cleanup_orphans")
def storage_cleanup_orphans() -> dict:
    settings = get_settings()
    return cleanup_orphans(settings, get_storage_provider(settings))
