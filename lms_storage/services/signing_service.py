"""
Credential signer: the trusted boundary that turns a storage key into
time-boxed write credentials.

Only this module (through a StorageProvider) touches storage secrets. It never
reads or writes file bytes. Chunked sessions live in memory for their TTL so
that a later commit can find the backend upload they belong to.
"""
import math
import re
import secrets
import time
from datetime import UTC, datetime

import structlog

from lms_storage.core.config import Settings
from lms_storage.core.constants import StorageType
from lms_storage.core.errors import CommitFailed, SessionNotFound, SizeLimitExceeded, UploadError, ValidationError
from lms_storage.integrations.storage.base import ChunkedUpload, SignedUpload, StorageProvider
from lms_storage.integrations.storage.factory import get_storage_provider
from lms_storage.models.uploads import CommitAck, UploadSession

logger = structlog.get_logger()

_KEY_SEGMENT_RE = re.compile(r"^[A-Za-z0-9._ -]+$")


def new_session_id() -> str:
    return f"upload-{time.time_ns() // 1_000_000}-{secrets.token_hex(4)}"


def validate_key(key: str | None) -> str:
    key = (key or "").strip()
    if not key:
        raise ValidationError("filename and path required")
    if key.startswith("/") or any(seg in {"", ".", ".."} for seg in key.split("/")):
        raise ValidationError("invalid storage path")
    if not all(_KEY_SEGMENT_RE.match(seg) for seg in key.split("/")):
        raise ValidationError("invalid characters in storage path")
    return key


class UploadSessionStore:
    def __init__(self) -> None:
        self._sessions: dict[str, UploadSession] = {}

    def add(self, session: UploadSession) -> None:
        self._sessions[session.session_id] = session

    def get(self, session_id: str) -> UploadSession | None:
        return self._sessions.get(session_id)

    def pop(self, session_id: str) -> UploadSession | None:
        return self._sessions.pop(session_id, None)

    def expired(self, now: datetime) -> list[UploadSession]:
        return [s for s in list(self._sessions.values()) if s.expires_at <= now]

    def __len__(self) -> int:
        return len(self._sessions)


class CredentialSigner:
    def __init__(
        self,
        settings: Settings,
        provider: StorageProvider | None = None,
        sessions: UploadSessionStore | None = None,
    ) -> None:
        self.settings = settings
        self._provider = provider
        self.sessions = sessions if sessions is not None else UploadSessionStore()

    @property
    def provider(self) -> StorageProvider:
        if self._provider is None:
            self._provider = get_storage_provider(self.settings)
        return self._provider

    @property
    def chunk_size(self) -> int:
        return self.settings.storage_chunk_size

    def sign_single_shot(self, key: str, content_type: str, expected_size: int | None = None) -> SignedUpload:
        key = validate_key(key)
        provider = self.provider
        if expected_size is not None and expected_size > self.settings.storage_max_file_size:
            raise SizeLimitExceeded(expected_size, self.settings.storage_max_file_size)
        signed = provider.sign_upload(
            object_key=key,
            mime_type=content_type,
            size_bytes=expected_size,
            expires_in=self.settings.storage_single_ttl_seconds,
        )
        logger.info("sign_single_shot", key=key, provider=provider.name, size=expected_size)
        return signed

    def initiate_chunked(self, key: str, content_type: str, total_file_size: int) -> tuple[str, ChunkedUpload]:
        key = validate_key(key)
        provider = self.provider
        if not total_file_size or total_file_size <= 0:
            raise ValidationError("fileSize must be positive for chunked uploads")
        self.sweep_expired()

        total_chunks = math.ceil(total_file_size / self.chunk_size)
        chunked = provider.initiate_chunked(
            object_key=key,
            mime_type=content_type,
            total_chunks=total_chunks,
            expires_in=self.settings.storage_chunked_ttl_seconds,
        )
        session = UploadSession(
            session_id=new_session_id(),
            key=key,
            backend=StorageType(provider.name),
            backend_upload_id=chunked.backend_upload_id,
            total_chunks=total_chunks,
            chunk_size=self.chunk_size,
            created_at=datetime.now(UTC),
            expires_at=chunked.expires_at,
        )
        self.sessions.add(session)
        logger.info(
            "initiate_chunked",
            key=key,
            session_id=session.session_id,
            provider=provider.name,
            total_chunks=total_chunks,
            chunk_size=self.chunk_size,
        )
        return session.session_id, chunked

    def commit(self, session_id: str) -> CommitAck:
        if not session_id:
            raise ValidationError("uploadId required")
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFound("unknown or expired upload session", {"session_id": session_id})
        if session.committed:
            return CommitAck(ok=True, message="Upload already committed")
        if session.expires_at <= datetime.now(UTC):
            # left for sweep_expired, which also aborts the backend upload
            raise SessionNotFound("upload session expired", {"session_id": session_id})

        try:
            message = self.provider.commit_chunked(session)
        except CommitFailed:
            logger.warning("commit_failed", session_id=session_id, key=session.key)
            raise
        session.committed = True
        logger.info("commit_chunked", session_id=session_id, key=session.key, provider=self.provider.name)
        return CommitAck(ok=True, message=message)

    def sweep_expired(self, now: datetime | None = None) -> int:
        now = now or datetime.now(UTC)
        swept = 0
        for session in self.sessions.expired(now):
            if not session.committed:
                try:
                    self.provider.abort_chunked(session)
                except UploadError as exc:
                    # kept registered so the next sweep retries the abort
                    logger.warning(
                        "session_sweep_failed", session_id=session.session_id, key=session.key, error=exc.message
                    )
                    continue
                logger.info("session_swept", session_id=session.session_id, key=session.key)
            self.sessions.pop(session.session_id)
            swept += 1
        return swept
