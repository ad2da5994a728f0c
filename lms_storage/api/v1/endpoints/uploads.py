from fastapi import APIRouter, Depends
from prometheus_client import Counter

from lms_storage.api.deps import get_signer
from lms_storage.core.constants import DEFAULT_CONTENT_TYPE
from lms_storage.core.errors import UploadError, ValidationError
from lms_storage.schemas.uploads import (
    ChunkedUploadResponse,
    CommitResponse,
    ErrorResponse,
    SignedUploadResponse,
    SignLmsRequest,
)
from lms_storage.services.signing_service import CredentialSigner

router = APIRouter(prefix="/uploads", tags=["uploads"])
SIGN_COUNTER = Counter("lms_sign_requests_total", "Signing boundary requests", ["shape", "outcome"])
ERROR_RESPONSES = {status: {"model": ErrorResponse} for status in (400, 404, 500, 502)}


def _request_shape(payload: SignLmsRequest) -> str:
    if payload.action == "commit":
        return "commit"
    return "chunked" if payload.chunked else "single"


@router.post("/sign-lms", responses=ERROR_RESPONSES)
def sign_lms(payload: SignLmsRequest, signer: CredentialSigner = Depends(get_signer)) -> dict:
    shape = _request_shape(payload)
    try:
        body = _dispatch(shape, payload, signer)
    except UploadError as exc:
        SIGN_COUNTER.labels(shape=shape, outcome=exc.kind).inc()
        raise
    SIGN_COUNTER.labels(shape=shape, outcome="ok").inc()
    return body.model_dump(mode="json", by_alias=True)


def _dispatch(shape: str, payload: SignLmsRequest, signer: CredentialSigner):
    if shape == "commit":
        ack = signer.commit(payload.upload_id or "")
        return CommitResponse(ok=ack.ok, message=ack.message)

    if not payload.filename or not payload.path:
        raise ValidationError("filename and path required")
    content_type = payload.content_type or DEFAULT_CONTENT_TYPE

    if shape == "chunked":
        upload_id, chunked = signer.initiate_chunked(payload.path, content_type, payload.file_size or 0)
        return ChunkedUploadResponse(
            upload_id=upload_id,
            chunk_urls=chunked.chunk_urls,
            total_chunks=len(chunked.chunk_urls),
            chunk_size=signer.chunk_size,
            public_url=chunked.public_url,
            key=chunked.object_key,
            expires_at=chunked.expires_at,
            storage_type=signer.provider.name,
        )

    signed = signer.sign_single_shot(payload.path, content_type, payload.file_size)
    return SignedUploadResponse(
        put_url=signed.upload_url,
        public_url=signed.public_url,
        key=signed.object_key,
        headers=signed.headers,
        expires_at=signed.expires_at,
        storage_type=signer.provider.name,
    )
