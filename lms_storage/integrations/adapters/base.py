from dataclasses import dataclass

import httpx

from lms_storage.core.errors import ValidationError
from lms_storage.models.uploads import ChunkSetCredential, SingleShotCredential, UploadCredential


@dataclass(frozen=True)
class ByteRange:
    start: int
    end: int
    total: int

    @property
    def length(self) -> int:
        return self.end - self.start

    @property
    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end - 1}/{self.total}"


@dataclass(frozen=True)
class WriteRequest:
    method: str
    url: str
    headers: dict[str, str]


class BackendAdapter:
    """Client-side wire protocol of one storage backend."""

    name: str = "base"

    def build_write_request(
        self,
        credential: UploadCredential,
        *,
        content_type: str,
        content_length: int,
        byte_range: ByteRange | None = None,
        chunk_index: int | None = None,
    ) -> WriteRequest:
        url = self.target_url(credential, chunk_index)
        headers = {"Content-Type": content_type, "Content-Length": str(content_length)}
        if byte_range is not None:
            headers["Content-Range"] = byte_range.content_range
        if isinstance(credential, SingleShotCredential):
            for name, value in credential.required_headers.items():
                headers.setdefault(name, value)
        headers.update(self.auth_headers(credential))
        return WriteRequest(method="PUT", url=url, headers=headers)

    def target_url(self, credential: UploadCredential, chunk_index: int | None) -> str:
        if isinstance(credential, ChunkSetCredential):
            if chunk_index is None:
                raise ValidationError("chunk index required for a chunked credential")
            if not 0 <= chunk_index < len(credential.chunk_urls):
                raise ValidationError(f"Missing chunk URL for chunk {chunk_index}")
            return credential.chunk_urls[chunk_index]
        return credential.target_url

    def auth_headers(self, credential: UploadCredential) -> dict[str, str]:
        return {}

    def build_public_url(self, key: str) -> str:
        raise NotImplementedError

    def describe_failure(self, response: httpx.Response) -> str:
        return f"{response.status_code} {response.reason_phrase}".strip()
