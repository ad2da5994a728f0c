from datetime import datetime

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError, PartialCredentialsError

from lms_storage.core.config import MIB, Settings
from lms_storage.core.errors import CommitFailed, ConfigurationError, StorageUnavailable, UploadError
from lms_storage.integrations.storage.base import ChunkedUpload, SignedUpload, StorageProvider
from lms_storage.models.uploads import UploadSession

logger = structlog.get_logger()

# S3 rejects CompleteMultipartUpload when a non-final part is below this size
S3_MIN_PART_SIZE = 5 * MIB


def public_s3_url(settings: Settings, object_key: str) -> str:
    public_base = settings.s3_public_base_url.rstrip("/")
    if public_base:
        return f"{public_base}/{object_key}"
    if settings.s3_endpoint:
        return f"{settings.s3_endpoint.rstrip('/')}/{settings.s3_bucket}/{object_key}"
    return f"https://{settings.s3_bucket}.s3.{settings.s3_region}.amazonaws.com/{object_key}"


def backend_error(exc: BotoCoreError | ClientError, action: str) -> UploadError:
    if isinstance(exc, (NoCredentialsError, PartialCredentialsError)):
        return ConfigurationError(f"could not {action}: {exc}")
    return StorageUnavailable(f"could not {action}: {exc}")


class S3StorageProvider(StorageProvider):
    name = "s3"

    def __init__(self, settings: Settings, client=None) -> None:
        self.settings = settings
        self.client = client or boto3.client(
            "s3",
            endpoint_url=settings.s3_endpoint or None,
            region_name=settings.s3_region,
            aws_access_key_id=settings.s3_access_key or None,
            aws_secret_access_key=settings.s3_secret_key or None,
            config=Config(signature_version="s3v4"),
        )
        self.bucket = settings.s3_bucket

    def public_url(self, object_key: str) -> str:
        return public_s3_url(self.settings, object_key)

    def sign_upload(
        self, object_key: str, mime_type: str, size_bytes: int | None, expires_in: int
    ) -> SignedUpload:
        try:
            url = self.client.generate_presigned_url(
                "put_object",
                Params={
                    "Bucket": self.bucket,
                    "Key": object_key,
                    "ContentType": mime_type,
                },
                ExpiresIn=expires_in,
                HttpMethod="PUT",
            )
        except (BotoCoreError, ClientError) as exc:
            raise backend_error(exc, "presign upload") from exc
        return SignedUpload(
            upload_url=url,
            method="PUT",
            headers={"Content-Type": mime_type},
            public_url=self.public_url(object_key),
            object_key=object_key,
            bucket=self.bucket,
            expires_at=self.expiry(expires_in),
        )

    def initiate_chunked(
        self, object_key: str, mime_type: str, total_chunks: int, expires_in: int
    ) -> ChunkedUpload:
        if total_chunks > 1 and self.settings.storage_chunk_size < S3_MIN_PART_SIZE:
            logger.warning(
                "s3_chunk_below_min_part_size",
                chunk_size=self.settings.storage_chunk_size,
                min_part_size=S3_MIN_PART_SIZE,
            )
        try:
            created = self.client.create_multipart_upload(
                Bucket=self.bucket, Key=object_key, ContentType=mime_type
            )
            upload_id = created["UploadId"]
            chunk_urls = [
                self.client.generate_presigned_url(
                    "upload_part",
                    Params={
                        "Bucket": self.bucket,
                        "Key": object_key,
                        "UploadId": upload_id,
                        "PartNumber": part_number,
                    },
                    ExpiresIn=expires_in,
                    HttpMethod="PUT",
                )
                for part_number in range(1, total_chunks + 1)
            ]
        except (BotoCoreError, ClientError) as exc:
            raise backend_error(exc, "initiate multipart upload") from exc
        return ChunkedUpload(
            backend_upload_id=upload_id,
            chunk_urls=chunk_urls,
            public_url=self.public_url(object_key),
            object_key=object_key,
            bucket=self.bucket,
            expires_at=self.expiry(expires_in),
        )

    def _uploaded_parts(self, session: UploadSession) -> list[dict]:
        parts: list[dict] = []
        paginator = self.client.get_paginator("list_parts")
        for page in paginator.paginate(Bucket=self.bucket, Key=session.key, UploadId=session.backend_upload_id):
            for part in page.get("Parts", []):
                parts.append({"ETag": part["ETag"], "PartNumber": part["PartNumber"]})
        return sorted(parts, key=lambda item: item["PartNumber"])

    def commit_chunked(self, session: UploadSession) -> str:
        try:
            parts = self._uploaded_parts(session)
            if len(parts) != session.total_chunks:
                raise CommitFailed(
                    f"expected {session.total_chunks} uploaded parts, found {len(parts)}",
                    {"session_id": session.session_id},
                )
            self.client.complete_multipart_upload(
                Bucket=self.bucket,
                Key=session.key,
                UploadId=session.backend_upload_id,
                MultipartUpload={"Parts": parts},
            )
        except (BotoCoreError, ClientError) as exc:
            raise CommitFailed(f"multipart commit failed: {exc}", {"session_id": session.session_id}) from exc
        return f"Upload committed ({len(parts)} parts)"

    def abort_chunked(self, session: UploadSession) -> None:
        try:
            self.client.abort_multipart_upload(
                Bucket=self.bucket, Key=session.key, UploadId=session.backend_upload_id
            )
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") != "NoSuchUpload":
                raise backend_error(exc, "abort multipart upload") from exc
            # already completed or aborted
            logger.info("s3_abort_skipped", session_id=session.session_id, error=str(exc))
        except BotoCoreError as exc:
            raise backend_error(exc, "abort multipart upload") from exc

    def abort_stale(self, older_than: datetime) -> int:
        aborted = 0
        paginator = self.client.get_paginator("list_multipart_uploads")
        prefix = f"{self.settings.storage_root_prefix}/"
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            for upload in page.get("Uploads", []):
                if upload["Initiated"] >= older_than:
                    continue
                try:
                    self.client.abort_multipart_upload(
                        Bucket=self.bucket, Key=upload["Key"], UploadId=upload["UploadId"]
                    )
                except (BotoCoreError, ClientError) as exc:
                    logger.warning("s3_stale_abort_failed", key=upload["Key"], upload_id=upload["UploadId"], error=str(exc))
                    continue
                aborted += 1
        return aborted
