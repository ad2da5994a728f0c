import io
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import BinaryIO

from lms_storage.core.constants import DEFAULT_CONTENT_TYPE, AssetClass, StorageType


@dataclass(frozen=True)
class UploadHierarchy:
    asset_class: AssetClass
    course_slug: str
    module_ordinal: int | None = None
    module_title: str | None = None
    lesson_ordinal: int | None = None
    lesson_title: str | None = None
    item_id: str | None = None


@dataclass(frozen=True)
class SingleShotCredential:
    target_url: str
    expires_at: datetime
    required_headers: dict[str, str]
    key: str
    public_url: str = ""


@dataclass(frozen=True)
class ChunkSetCredential:
    session_id: str
    chunk_urls: list[str]
    chunk_size: int
    total_chunks: int
    expires_at: datetime
    key: str
    public_url: str = ""


UploadCredential = SingleShotCredential | ChunkSetCredential


@dataclass
class UploadSession:
    session_id: str
    key: str
    backend: StorageType
    backend_upload_id: str
    total_chunks: int
    chunk_size: int
    created_at: datetime
    expires_at: datetime
    committed: bool = False


@dataclass(frozen=True)
class UploadResult:
    public_url: str
    storage_key: str
    byte_size: int


@dataclass(frozen=True)
class CommitAck:
    ok: bool
    message: str


@dataclass(frozen=True)
class ProgressEvent:
    loaded: int
    total: int

    @property
    def percent(self) -> int:
        if self.total <= 0:
            return 100
        return min(100, round(self.loaded * 100 / self.total))


ProgressCallback = Callable[[ProgressEvent], None]


@dataclass(frozen=True)
class FileSource:
    """Payload handed to the uploader, either in memory or on disk."""

    name: str
    size: int
    content_type: str = DEFAULT_CONTENT_TYPE
    data: bytes | None = None
    path: Path | None = field(default=None)

    @classmethod
    def from_bytes(cls, name: str, data: bytes, content_type: str = DEFAULT_CONTENT_TYPE) -> "FileSource":
        return cls(name=name, size=len(data), content_type=content_type or DEFAULT_CONTENT_TYPE, data=data)

    @classmethod
    def from_path(cls, path: str | Path, content_type: str = DEFAULT_CONTENT_TYPE) -> "FileSource":
        path = Path(path)
        return cls(
            name=path.name,
            size=path.stat().st_size,
            content_type=content_type or DEFAULT_CONTENT_TYPE,
            path=path,
        )

    @contextmanager
    def open(self) -> Iterator[BinaryIO]:
        """One handle for the whole transfer."""
        if self.data is not None:
            with io.BytesIO(self.data) as fh:
                yield fh
            return
        if self.path is None:
            raise ValueError("file source has neither data nor path")
        with self.path.open("rb") as fh:
            yield fh
