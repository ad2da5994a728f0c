"""Error taxonomy shared by the signing boundary and the upload client."""


class UploadError(Exception):
    """Base class for every failure raised by the upload pipeline."""

    kind: str = "upload_error"
    http_status: int = 500

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(UploadError):
    """No usable backend credentials. Fatal, never retried."""

    kind = "configuration_error"
    http_status = 500


class ValidationError(UploadError):
    """A required field is missing or empty."""

    kind = "validation_error"
    http_status = 400


class SessionNotFound(ValidationError):
    kind = "session_not_found"
    http_status = 404


class SizeLimitExceeded(UploadError):
    kind = "size_limit_exceeded"
    http_status = 400

    def __init__(self, size_bytes: int, limit_bytes: int) -> None:
        super().__init__(
            f"File size ({size_bytes / 1024 / 1024:.2f}MB) exceeds limit of {limit_bytes // (1024 * 1024)}MB",
            {"size_bytes": size_bytes, "limit_bytes": limit_bytes},
        )
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes


class StorageUnavailable(UploadError):
    """The storage backend failed while the signer talked to it. Safe to retry."""

    kind = "storage_unavailable"
    http_status = 503


class SignRequestFailed(UploadError):
    """The signing boundary was unreachable or rejected the request. Safe to retry."""

    kind = "sign_request_failed"
    http_status = 502

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message, {"status_code": status_code})
        self.status_code = status_code


class TransferFailed(UploadError):
    """A PUT to the storage backend failed."""

    kind = "transfer_failed"
    http_status = 502

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message, {"status_code": status_code})
        self.status_code = status_code


class ChunkUploadFailed(TransferFailed):
    """One chunk of a chunked transfer failed; the whole attempt must be retried."""

    kind = "chunk_upload_failed"

    def __init__(self, chunk_index: int, message: str, status_code: int | None = None) -> None:
        super().__init__(f"Chunk {chunk_index} upload failed: {message}", status_code)
        self.chunk_index = chunk_index
        self.details["chunk_index"] = chunk_index


class CommitFailed(UploadError):
    """Finalizing a chunked session failed; uncommitted parts may remain on the backend."""

    kind = "commit_failed"
    http_status = 502
