from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

import httpx
import structlog

from lms_storage.core.config import Settings, get_settings
from lms_storage.integrations.adapters.base import BackendAdapter
from lms_storage.integrations.adapters.factory import get_backend_adapter
from lms_storage.integrations.signer_client import SignerClient
from lms_storage.models.uploads import FileSource, ProgressCallback, UploadHierarchy, UploadResult
from lms_storage.services.storage_keys import derive_key_for
from lms_storage.services.transfer_engine import TransferEngine

logger = structlog.get_logger()


class UploadService:
    """Entry point for callers: derive the key, move the bytes, return the result."""

    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient,
        adapter: BackendAdapter | None = None,
        signer: SignerClient | None = None,
    ) -> None:
        self.settings = settings
        self.adapter = adapter or get_backend_adapter(settings)
        self.signer = signer or SignerClient(client, settings.signer_url)
        self.engine = TransferEngine(
            client,
            self.adapter,
            self.signer,
            max_single_shot_bytes=settings.storage_max_file_size,
        )

    async def upload(
        self,
        source: FileSource,
        hierarchy: UploadHierarchy,
        on_progress: ProgressCallback | None = None,
    ) -> UploadResult:
        key = derive_key_for(hierarchy, source.name, root_prefix=self.settings.storage_root_prefix)
        logger.info(
            "upload_started",
            key=key,
            size=source.size,
            asset_class=hierarchy.asset_class.value,
            backend=self.adapter.name,
        )
        await self.engine.transfer(source, key, hierarchy.asset_class, on_progress)
        result = UploadResult(
            public_url=self.adapter.build_public_url(key),
            storage_key=key,
            byte_size=source.size,
        )
        logger.info("upload_finished", key=key, public_url=result.public_url)
        return result


@asynccontextmanager
async def upload_service(
    settings: Settings | None = None,
    session_token: Callable[[], str | None] | None = None,
) -> AsyncIterator[UploadService]:
    settings = settings or get_settings()
    timeout = httpx.Timeout(settings.transfer_timeout_seconds)
    async with httpx.AsyncClient(timeout=timeout) as client:
        adapter = get_backend_adapter(settings, session_token=session_token)
        yield UploadService(settings, client, adapter=adapter)
