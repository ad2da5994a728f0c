from collections.abc import Callable

import httpx

from lms_storage.core.config import Settings
from lms_storage.core.errors import ConfigurationError
from lms_storage.integrations.adapters.base import BackendAdapter
from lms_storage.integrations.storage.supabase import public_object_url
from lms_storage.models.uploads import UploadCredential


class SupabaseBackendAdapter(BackendAdapter):
    """Bearer-authenticated PUTs to the per-object Storage endpoint.

    The bearer is the caller's session token when one is available, the anon
    key otherwise. The anon key is also sent as `apikey`.
    """

    name = "supabase"

    def __init__(self, settings: Settings, session_token: Callable[[], str | None] | None = None) -> None:
        self.settings = settings
        self.session_token = session_token

    def auth_headers(self, credential: UploadCredential) -> dict[str, str]:
        anon_key = self.settings.supabase_anon_key
        if not anon_key:
            raise ConfigurationError("Supabase anon key not configured")
        token = (self.session_token() if self.session_token else None) or anon_key
        return {
            "Authorization": f"Bearer {token}",
            "apikey": anon_key,
            # chunks rewrite one object and thumbnails replace the previous one
            "x-upsert": "true",
            "cache-control": "3600",
        }

    def build_public_url(self, key: str) -> str:
        if not self.settings.supabase_url:
            raise ConfigurationError("Supabase URL not configured")
        return public_object_url(self.settings.supabase_url, self.settings.supabase_bucket, key)

    def describe_failure(self, response: httpx.Response) -> str:
        status = super().describe_failure(response)
        try:
            body = response.json()
        except ValueError:
            return f"{status} {response.text}".strip()
        if isinstance(body, dict):
            detail = body.get("message") or body.get("error")
            if detail:
                return f"{status} {detail}"
        return status
