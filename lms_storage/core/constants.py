from enum import StrEnum


class AssetClass(StrEnum):
    THUMBNAIL = "thumbnail"
    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"

    @property
    def folder(self) -> str:
        return f"{self.value}s"


class StorageType(StrEnum):
    S3 = "s3"
    SUPABASE = "supabase"


class TransferState(StrEnum):
    IDLE = "idle"
    SIZE_CHECK = "size_check"
    SINGLE_SHOT = "single_shot"
    CHUNKED = "chunked"
    COMMIT = "commit"
    DONE = "done"
    FAILED = "failed"


THUMBNAIL_BASENAME = "thumbnail"
DEFAULT_THUMBNAIL_EXT = "jpg"
DEFAULT_CONTENT_TYPE = "application/octet-stream"
UNBOUNDED_ASSET_CLASSES = frozenset({AssetClass.VIDEO})
PROGRESS_BLOCK_SIZE = 64 * 1024
