from collections.abc import Callable

from lms_storage.core.config import Settings, get_settings
from lms_storage.core.constants import StorageType
from lms_storage.integrations.adapters.base import BackendAdapter
from lms_storage.integrations.adapters.s3 import S3BackendAdapter
from lms_storage.integrations.adapters.supabase import SupabaseBackendAdapter


def get_backend_adapter(
    settings: Settings | None = None, session_token: Callable[[], str | None] | None = None
) -> BackendAdapter:
    settings = settings or get_settings()
    if settings.storage_provider == StorageType.SUPABASE:
        return SupabaseBackendAdapter(settings, session_token=session_token)
    return S3BackendAdapter(settings)
