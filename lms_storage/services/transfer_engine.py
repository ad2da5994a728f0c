"""
Transfer engine: moves the bytes of one upload attempt straight to storage.

Per attempt the engine walks

    idle -> size_check -> single_shot | chunked -> (commit) -> done | failed

Chunks are sent strictly one after another, each PUT awaited before the next
one starts. A failed chunk fails the whole attempt; there is no retry and no
resume, a new attempt starts again from chunk 0 with a fresh credential.
"""
import math
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import BinaryIO

import anyio.to_thread
import httpx
import structlog

from lms_storage.core.constants import PROGRESS_BLOCK_SIZE, UNBOUNDED_ASSET_CLASSES, AssetClass, TransferState
from lms_storage.core.errors import (
    ChunkUploadFailed,
    CommitFailed,
    SizeLimitExceeded,
    TransferFailed,
    UploadError,
    ValidationError,
)
from lms_storage.integrations.adapters.base import BackendAdapter, ByteRange
from lms_storage.integrations.signer_client import SignerClient
from lms_storage.models.uploads import (
    ChunkSetCredential,
    FileSource,
    ProgressCallback,
    ProgressEvent,
    SingleShotCredential,
    UploadCredential,
)

logger = structlog.get_logger()


def _read_at(fh: BinaryIO, offset: int, length: int) -> bytes:
    fh.seek(offset)
    return fh.read(length)


@dataclass
class TransferAttempt:
    key: str
    size: int
    asset_class: AssetClass
    state: TransferState = TransferState.IDLE
    history: list[TransferState] = field(default_factory=lambda: [TransferState.IDLE])
    credential: UploadCredential | None = None
    chunks_completed: int = 0
    failed_chunk: int | None = None

    def advance(self, state: TransferState) -> None:
        self.state = state
        self.history.append(state)


class TransferEngine:
    def __init__(
        self,
        client: httpx.AsyncClient,
        adapter: BackendAdapter,
        signer: SignerClient,
        *,
        max_single_shot_bytes: int,
    ) -> None:
        self.client = client
        self.adapter = adapter
        self.signer = signer
        self.max_single_shot_bytes = max_single_shot_bytes

    def check_size(self, size: int, asset_class: AssetClass) -> None:
        if size > self.max_single_shot_bytes and asset_class not in UNBOUNDED_ASSET_CLASSES:
            raise SizeLimitExceeded(size, self.max_single_shot_bytes)

    def choose_strategy(self, size: int, asset_class: AssetClass) -> TransferState:
        if size > self.max_single_shot_bytes and asset_class in UNBOUNDED_ASSET_CLASSES:
            return TransferState.CHUNKED
        return TransferState.SINGLE_SHOT

    async def transfer(
        self,
        source: FileSource,
        key: str,
        asset_class: AssetClass,
        on_progress: ProgressCallback | None = None,
    ) -> TransferAttempt:
        attempt = TransferAttempt(key=key, size=source.size, asset_class=asset_class)
        try:
            attempt.advance(TransferState.SIZE_CHECK)
            self.check_size(source.size, asset_class)
            strategy = self.choose_strategy(source.size, asset_class)
            attempt.advance(strategy)
            if strategy is TransferState.CHUNKED:
                credential = await self.signer.initiate_chunked(key, source)
                attempt.credential = credential
                await self.send_chunks(source, credential, attempt, on_progress)
                attempt.advance(TransferState.COMMIT)
                ack = await self.signer.commit(credential.session_id)
                if not ack.ok:
                    raise CommitFailed(ack.message or "commit was not acknowledged")
                logger.info("chunked_upload_committed", key=key, session_id=credential.session_id, message=ack.message)
            else:
                credential = await self.signer.sign_single_shot(key, source)
                attempt.credential = credential
                await self.send_single_shot(source, credential, on_progress)
        except UploadError:
            attempt.advance(TransferState.FAILED)
            logger.warning(
                "transfer_failed",
                key=key,
                history=[state.value for state in attempt.history],
                failed_chunk=attempt.failed_chunk,
            )
            raise
        attempt.advance(TransferState.DONE)
        return attempt

    async def _stream(
        self, source: FileSource, on_progress: ProgressCallback | None
    ) -> AsyncIterator[bytes]:
        sent = 0
        with source.open() as fh:
            while sent < source.size:
                # disk reads stay off the event loop
                block = await anyio.to_thread.run_sync(fh.read, min(PROGRESS_BLOCK_SIZE, source.size - sent))
                if not block:
                    break
                yield block
                sent += len(block)
                if on_progress and sent < source.size:
                    on_progress(ProgressEvent(loaded=sent, total=source.size))

    async def send_single_shot(
        self,
        source: FileSource,
        credential: SingleShotCredential,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        request = self.adapter.build_write_request(
            credential, content_type=source.content_type, content_length=source.size
        )
        if on_progress:
            on_progress(ProgressEvent(loaded=0, total=source.size))
        try:
            response = await self.client.request(
                request.method,
                request.url,
                headers=request.headers,
                content=self._stream(source, on_progress),
            )
        except httpx.HTTPError as exc:
            raise TransferFailed(f"Upload failed - network error: {exc}") from exc
        if not response.is_success:
            raise TransferFailed(f"Upload failed: {self.adapter.describe_failure(response)}", response.status_code)
        if on_progress:
            on_progress(ProgressEvent(loaded=source.size, total=source.size))
        logger.info("single_shot_uploaded", key=credential.key, size=source.size, backend=self.adapter.name)

    async def send_chunks(
        self,
        source: FileSource,
        credential: ChunkSetCredential,
        attempt: TransferAttempt,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        chunk_size = credential.chunk_size
        total_chunks = math.ceil(source.size / chunk_size)
        if on_progress:
            on_progress(ProgressEvent(loaded=0, total=total_chunks))
        with source.open() as fh:
            for index in range(total_chunks):
                start = index * chunk_size
                end = min(start + chunk_size, source.size)
                span = ByteRange(start=start, end=end, total=source.size)
                try:
                    request = self.adapter.build_write_request(
                        credential,
                        content_type=source.content_type,
                        content_length=span.length,
                        byte_range=span,
                        chunk_index=index,
                    )
                except ValidationError as exc:
                    attempt.failed_chunk = index
                    raise ChunkUploadFailed(index, exc.message) from exc
                body = await anyio.to_thread.run_sync(_read_at, fh, start, span.length)
                try:
                    response = await self.client.request(
                        request.method, request.url, headers=request.headers, content=body
                    )
                except httpx.HTTPError as exc:
                    attempt.failed_chunk = index
                    raise ChunkUploadFailed(index, f"network error: {exc}") from exc
                if not response.is_success:
                    attempt.failed_chunk = index
                    raise ChunkUploadFailed(index, self.adapter.describe_failure(response), response.status_code)
                attempt.chunks_completed = index + 1
                logger.debug("chunk_uploaded", key=credential.key, chunk=index + 1, total=total_chunks)
                if on_progress:
                    on_progress(ProgressEvent(loaded=index + 1, total=total_chunks))
