from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class SignLmsRequest(CamelModel):
    filename: str | None = None
    content_type: str | None = None
    path: str | None = None
    file_size: int | None = Field(default=None, ge=0)
    chunked: bool = False
    upload_id: str | None = None
    action: Literal["commit"] | None = None


class SignedUploadResponse(CamelModel):
    put_url: str
    public_url: str
    key: str
    headers: dict[str, str] = Field(default_factory=dict)
    expires_at: datetime | None = None
    storage_type: str | None = None


class ChunkedUploadResponse(CamelModel):
    upload_id: str
    chunk_urls: list[str]
    total_chunks: int
    chunk_size: int
    public_url: str = ""
    key: str = ""
    expires_at: datetime | None = None
    storage_type: str | None = None


class CommitResponse(CamelModel):
    ok: bool
    message: str = ""


class ErrorResponse(BaseModel):
    error: str
