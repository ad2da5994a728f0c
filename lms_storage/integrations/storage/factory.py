from lms_storage.core.config import Settings, get_settings
from lms_storage.core.constants import StorageType
from lms_storage.core.errors import ConfigurationError
from lms_storage.integrations.storage.base import StorageProvider
from lms_storage.integrations.storage.s3 import S3StorageProvider
from lms_storage.integrations.storage.supabase import SupabaseStorageProvider


def get_storage_provider(settings: Settings | None = None) -> StorageProvider:
    settings = settings or get_settings()
    if settings.storage_provider == StorageType.SUPABASE:
        if not settings.supabase_configured:
            raise ConfigurationError("Storage not configured: SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY required")
        return SupabaseStorageProvider(settings)
    if not settings.s3_configured:
        raise ConfigurationError("Storage not configured: S3 bucket and access keys required")
    return S3StorageProvider(settings)
