import httpx
import structlog
from pydantic import ValidationError as PydanticValidationError

from lms_storage.core.errors import CommitFailed, SignRequestFailed, UploadError
from lms_storage.models.uploads import ChunkSetCredential, CommitAck, FileSource, SingleShotCredential
from lms_storage.schemas.uploads import ChunkedUploadResponse, CommitResponse, SignedUploadResponse

logger = structlog.get_logger()


def _error_text(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return f"Sign failed: {response.status_code} {response.reason_phrase}".strip()


class SignerClient:
    """HTTP client of the signing boundary (`POST /uploads/sign-lms`)."""

    def __init__(self, client: httpx.AsyncClient, sign_url: str) -> None:
        self.client = client
        self.sign_url = sign_url

    async def _post(self, payload: dict, error_cls: type[UploadError] = SignRequestFailed) -> dict:
        try:
            response = await self.client.post(self.sign_url, json=payload)
        except httpx.HTTPError as exc:
            raise error_cls(f"signing boundary unreachable: {exc}") from exc
        if not response.is_success:
            message = _error_text(response)
            logger.error("sign_request_failed", status=response.status_code, error=message)
            if error_cls is SignRequestFailed:
                raise SignRequestFailed(message, response.status_code)
            raise error_cls(message, {"status_code": response.status_code})
        try:
            return response.json()
        except ValueError as exc:
            raise error_cls("signing boundary returned invalid JSON") from exc

    async def sign_single_shot(self, key: str, source: FileSource) -> SingleShotCredential:
        data = await self._post(
            {
                "filename": source.name,
                "contentType": source.content_type,
                "path": key,
                "fileSize": source.size,
            }
        )
        try:
            signed = SignedUploadResponse.model_validate(data)
        except PydanticValidationError as exc:
            raise SignRequestFailed(f"unexpected sign response: {exc}") from exc
        return SingleShotCredential(
            target_url=signed.put_url,
            expires_at=signed.expires_at,
            required_headers=signed.headers,
            key=signed.key or key,
            public_url=signed.public_url,
        )

    async def initiate_chunked(self, key: str, source: FileSource) -> ChunkSetCredential:
        data = await self._post(
            {
                "filename": source.name,
                "contentType": source.content_type,
                "path": key,
                "fileSize": source.size,
                "chunked": True,
            }
        )
        try:
            chunked = ChunkedUploadResponse.model_validate(data)
        except PydanticValidationError as exc:
            raise SignRequestFailed(f"unexpected chunked initiate response: {exc}") from exc
        return ChunkSetCredential(
            session_id=chunked.upload_id,
            chunk_urls=chunked.chunk_urls,
            chunk_size=chunked.chunk_size,
            total_chunks=chunked.total_chunks,
            expires_at=chunked.expires_at,
            key=chunked.key or key,
            public_url=chunked.public_url,
        )

    async def commit(self, session_id: str) -> CommitAck:
        data = await self._post({"uploadId": session_id, "action": "commit"}, error_cls=CommitFailed)
        try:
            ack = CommitResponse.model_validate(data)
        except PydanticValidationError as exc:
            raise CommitFailed(f"unexpected commit response: {exc}") from exc
        return CommitAck(ok=ack.ok, message=ack.message)
