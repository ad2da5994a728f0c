from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from lms_storage.models.uploads import UploadSession


@dataclass
class SignedUpload:
    upload_url: str
    method: str
    headers: dict[str, str]
    public_url: str
    object_key: str
    bucket: str
    expires_at: datetime


@dataclass
class ChunkedUpload:
    backend_upload_id: str
    chunk_urls: list[str]
    public_url: str
    object_key: str
    bucket: str
    expires_at: datetime


class StorageProvider:
    """Server side of a storage backend. Holds the secrets, never sees file bytes."""

    name: str = "base"

    @staticmethod
    def expiry(expires_in: int) -> datetime:
        return datetime.now(UTC) + timedelta(seconds=expires_in)

    def sign_upload(
        self, object_key: str, mime_type: str, size_bytes: int | None, expires_in: int
    ) -> SignedUpload:
        raise NotImplementedError

    def initiate_chunked(
        self, object_key: str, mime_type: str, total_chunks: int, expires_in: int
    ) -> ChunkedUpload:
        raise NotImplementedError

    def commit_chunked(self, session: UploadSession) -> str:
        raise NotImplementedError

    def abort_chunked(self, session: UploadSession) -> None:
        raise NotImplementedError

    def abort_stale(self, older_than: datetime) -> int:
        return 0

    def public_url(self, object_key: str) -> str:
        raise NotImplementedError
