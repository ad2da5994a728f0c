from urllib.parse import quote

import structlog

from lms_storage.core.config import Settings
from lms_storage.integrations.storage.base import ChunkedUpload, SignedUpload, StorageProvider
from lms_storage.models.uploads import UploadSession

logger = structlog.get_logger()


def object_endpoint(base_url: str, bucket: str, object_key: str) -> str:
    return f"{base_url.rstrip('/')}/storage/v1/object/{bucket}/{quote(object_key)}"


def public_object_url(base_url: str, bucket: str, object_key: str) -> str:
    return f"{base_url.rstrip('/')}/storage/v1/object/public/{bucket}/{quote(object_key)}"


class SupabaseStorageProvider(StorageProvider):
    """Supabase Storage: writes go to a stable per-object endpoint with bearer auth.

    The bucket has no block assembly, so a chunked session is acknowledged on
    commit without any server-side work.
    """

    name = "supabase"

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.base_url = settings.supabase_url.rstrip("/")
        self.bucket = settings.supabase_bucket

    def public_url(self, object_key: str) -> str:
        return public_object_url(self.base_url, self.bucket, object_key)

    def sign_upload(
        self, object_key: str, mime_type: str, size_bytes: int | None, expires_in: int
    ) -> SignedUpload:
        return SignedUpload(
            upload_url=object_endpoint(self.base_url, self.bucket, object_key),
            method="PUT",
            headers={"Content-Type": mime_type, "x-upsert": "true"},
            public_url=self.public_url(object_key),
            object_key=object_key,
            bucket=self.bucket,
            expires_at=self.expiry(expires_in),
        )

    def initiate_chunked(
        self, object_key: str, mime_type: str, total_chunks: int, expires_in: int
    ) -> ChunkedUpload:
        endpoint = object_endpoint(self.base_url, self.bucket, object_key)
        return ChunkedUpload(
            backend_upload_id="",
            chunk_urls=[endpoint] * total_chunks,
            public_url=self.public_url(object_key),
            object_key=object_key,
            bucket=self.bucket,
            expires_at=self.expiry(expires_in),
        )

    def commit_chunked(self, session: UploadSession) -> str:
        logger.warning(
            "chunked_commit_not_durable",
            session_id=session.session_id,
            key=session.key,
            total_chunks=session.total_chunks,
            reason="supabase storage has no block commit; each chunk PUT overwrites the object",
        )
        return "Upload acknowledged (storage backend has no block commit)"

    def abort_chunked(self, session: UploadSession) -> None:
        return None
