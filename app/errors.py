"""Audio Transcriber - Error taxonomy.

Every error carries a stable error_code (used in API error bodies and logs)
and a human-readable message.

Surfaced to the caller of a service operation:
- JobNotFoundError, InvalidStateError, InvalidFileError,
  InvalidRequestError, StorageError

Recorded on the job (never escape the processing task):
- SegmentationError, TranscriptionProviderError

Never surfaced anywhere (logged only):
- CleanupError
"""

from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    NOT_FOUND = "NOT_FOUND"
    INVALID_STATE = "INVALID_STATE"
    INVALID_FILE = "INVALID_FILE"
    INVALID_REQUEST = "INVALID_REQUEST"
    STORAGE_FAILED = "STORAGE_FAILED"
    SEGMENTATION_FAILED = "SEGMENTATION_FAILED"
    TRANSCRIPTION_FAILED = "TRANSCRIPTION_FAILED"
    CLEANUP_FAILED = "CLEANUP_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class TranscriberError(Exception):
    """Base exception for all application errors."""

    def __init__(self, error_code: str, message: str):
        self.error_code = error_code
        self.message = message
        super().__init__(message)


class JobNotFoundError(TranscriberError):
    """Job id is unknown."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(ErrorCode.NOT_FOUND, f"Transcription job not found: {job_id}")


class InvalidStateError(TranscriberError):
    """Operation is not allowed in the job's current status."""

    def __init__(self, message: str):
        super().__init__(ErrorCode.INVALID_STATE, message)


class InvalidFileError(TranscriberError):
    """Uploaded file failed validation."""

    def __init__(self, message: str):
        super().__init__(ErrorCode.INVALID_FILE, message)


class InvalidRequestError(TranscriberError):
    """A request parameter is out of range."""

    def __init__(self, message: str):
        super().__init__(ErrorCode.INVALID_REQUEST, message)


class StorageError(TranscriberError):
    """Uploaded bytes could not be persisted."""

    def __init__(self, message: str):
        super().__init__(ErrorCode.STORAGE_FAILED, message)


class SegmentationError(TranscriberError):
    """Source could not be split into chunks (missing, corrupt, tool failure)."""

    def __init__(self, message: str):
        super().__init__(ErrorCode.SEGMENTATION_FAILED, message)


# User-facing messages per provider status code. Upstream response bodies
# are logged but never shown to clients.
PROVIDER_STATUS_MESSAGES = {
    400: "The audio file has an invalid format or is corrupted.",
    401: "Authentication with the transcription service failed.",
    413: "The audio file is too large to be processed.",
    429: "Transcription rate limit exceeded. Try again in a few minutes.",
    500: "The transcription service is temporarily unavailable.",
    502: "The transcription service is temporarily unavailable.",
    503: "The transcription service is temporarily unavailable.",
    504: "The transcription service did not respond in time.",
}
PROVIDER_DEFAULT_MESSAGE = "The audio could not be transcribed. Please try again."


def provider_message_for_status(status_code: int) -> str:
    return PROVIDER_STATUS_MESSAGES.get(status_code, PROVIDER_DEFAULT_MESSAGE)


class TranscriptionProviderError(TranscriberError):
    """The speech-to-text provider rejected or failed a request.

    Attributes:
        status_code: HTTP-like status from the provider (503 for network
            errors, 504 for timeouts).
        detail: Raw upstream detail, for logs only.
    """

    def __init__(self, status_code: int, detail: str = ""):
        self.status_code = status_code
        self.detail = detail
        super().__init__(ErrorCode.TRANSCRIPTION_FAILED, provider_message_for_status(status_code))

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429

    @property
    def is_auth_failure(self) -> bool:
        return self.status_code == 401

    @property
    def is_unavailable(self) -> bool:
        return self.status_code in (500, 502, 503, 504)


class CleanupError(TranscriberError):
    """A file or directory could not be removed."""

    def __init__(self, message: str):
        super().__init__(ErrorCode.CLEANUP_FAILED, message)


__all__ = [
    "CleanupError",
    "ErrorCode",
    "InvalidFileError",
    "InvalidRequestError",
    "InvalidStateError",
    "JobNotFoundError",
    "PROVIDER_DEFAULT_MESSAGE",
    "SegmentationError",
    "StorageError",
    "TranscriberError",
    "TranscriptionProviderError",
    "provider_message_for_status",
]
