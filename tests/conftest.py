import pytest

from lms_storage.core.config import MIB, Settings


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def s3_settings() -> Settings:
    return Settings(
        _env_file=None,
        storage_provider="s3",
        s3_endpoint="https://minio.test",
        s3_bucket="lms-content",
        s3_access_key="AKIATEST",
        s3_secret_key="secret",
        s3_public_base_url="https://cdn.test",
        signer_url="http://signer.test/api/uploads/sign-lms",
        storage_chunk_size=4 * MIB,
    )


@pytest.fixture
def supabase_settings() -> Settings:
    return Settings(
        _env_file=None,
        storage_provider="supabase",
        supabase_url="https://proj.supabase.test",
        supabase_service_role_key="service-role",
        supabase_anon_key="anon-key",
        supabase_bucket="lms-content",
        signer_url="http://signer.test/api/uploads/sign-lms",
        storage_chunk_size=4 * MIB,
    )


class FakePaginator:
    def __init__(self, pages: list[dict]):
        self.pages = pages
        self.kwargs: dict = {}

    def paginate(self, **kwargs):
        self.kwargs = kwargs
        return iter(self.pages)


class FakeS3Client:
    """Records boto3 calls; presigned URLs are deterministic strings."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict]] = []
        self.parts: list[dict] = []
        self.stale_uploads: list[dict] = []
        self.completed: list[dict] = []
        self.aborted: list[dict] = []
        self.abort_error: Exception | None = None
        self.create_error: Exception | None = None

    def generate_presigned_url(self, operation, Params, ExpiresIn, HttpMethod):
        self.calls.append((operation, {"Params": Params, "ExpiresIn": ExpiresIn, "HttpMethod": HttpMethod}))
        base = f"https://minio.test/{Params['Bucket']}/{Params['Key']}"
        signature = f"X-Amz-Expires={ExpiresIn}&X-Amz-Signature=sig"
        if operation == "upload_part":
            return f"{base}?partNumber={Params['PartNumber']}&uploadId={Params['UploadId']}&{signature}"
        return f"{base}?{signature}"

    def create_multipart_upload(self, **kwargs):
        self.calls.append(("create_multipart_upload", kwargs))
        if self.create_error is not None:
            raise self.create_error
        return {"UploadId": "mpu-1"}

    def get_paginator(self, name):
        if name == "list_parts":
            return FakePaginator([{"Parts": list(self.parts)}])
        return FakePaginator([{"Uploads": list(self.stale_uploads)}])

    def complete_multipart_upload(self, **kwargs):
        self.completed.append(kwargs)
        return {"Location": kwargs["Key"]}

    def abort_multipart_upload(self, **kwargs):
        if self.abort_error is not None:
            raise self.abort_error
        self.aborted.append(kwargs)
        return {}


@pytest.fixture
def fake_s3() -> FakeS3Client:
    return FakeS3Client()
