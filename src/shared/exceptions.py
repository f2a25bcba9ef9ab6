"""Custom exception hierarchy for the media pipeline.

All pipeline-specific exceptions inherit from PipelineError, enabling
consistent error handling and structured error responses.

Exception hierarchy:
    PipelineError (base)
    ├── EventValidationError          permanent, never retried
    ├── RetryableError                transient, job retried as a whole
    │   ├── StorageError
    │   ├── EncodeError
    │   └── PublishError
    └── PlaybackError
        ├── VideoNotFoundError        404
        ├── NotReadyError             409
        ├── InvalidParameterError     400
        └── UpstreamError             502
"""

from typing import Any


class PipelineError(Exception):
    """Base exception for all pipeline errors.

    Provides structured error information suitable for logging,
    metrics, dead-letter attributes and HTTP error bodies.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable error code for metrics/filtering
        details: Additional context as key-value pairs
    """

    def __init__(
        self,
        message: str,
        error_code: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize pipeline error.

        Args:
            message: Human-readable error description
            error_code: Machine-readable error code (e.g., 'EVENT_VALIDATION_ERROR')
            details: Additional context for debugging
        """
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for JSON serialization.

        Returns:
            Dictionary with error_code, error_message, and details.
            Note: Uses 'error_message' instead of 'message' to avoid conflicts
            with Python's logging module which reserves 'message' internally.
        """
        return {
            "error_code": self.error_code,
            "error_message": self.message,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.error_code!r}, {self.message!r})"


class EventValidationError(PipelineError):
    """Raised when an upload event cannot be processed at all.

    This covers:
    - Malformed JSON body
    - Missing required fields (uploadId, userId, rawVideoPath)
    - Unsupported rendition labels

    The message is dead-lettered without retry.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, "EVENT_VALIDATION_ERROR", details)


class RetryableError(PipelineError):
    """Raised for transient errors that should be retried.

    The job consumer requeues the message with backoff until the
    attempt budget is exhausted.
    """

    def __init__(
        self,
        message: str,
        original_error: Exception | None = None,
        details: dict[str, Any] | None = None,
        error_code: str = "RETRYABLE_ERROR",
    ) -> None:
        """Initialize retryable error.

        Args:
            message: Error description
            original_error: The underlying exception that triggered this
            details: Additional context
            error_code: Machine-readable error code
        """
        error_details = details or {}
        if original_error:
            error_details["original_error"] = str(original_error)
            error_details["original_error_type"] = type(original_error).__name__

        super().__init__(message, error_code, error_details)
        self.original_error = original_error


class StorageError(RetryableError):
    """Raised when the object store cannot be read or written."""

    def __init__(
        self,
        message: str,
        original_error: Exception | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, original_error, details, error_code="STORAGE_ERROR")


class EncodeError(RetryableError):
    """Raised when the encoder fails to produce a rendition.

    This covers:
    - Non-zero encoder exit status
    - Encoder timeout
    - Encoder binary not installed
    """

    def __init__(
        self,
        message: str,
        original_error: Exception | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, original_error, details, error_code="ENCODE_ERROR")


class PublishError(RetryableError):
    """Raised when the completion event cannot be published."""

    def __init__(
        self,
        message: str,
        original_error: Exception | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, original_error, details, error_code="PUBLISH_ERROR")


class PlaybackError(PipelineError):
    """Base class for client-facing playback errors.

    Attributes:
        status_code: HTTP status the playback API answers with
    """

    status_code = 500


class VideoNotFoundError(PlaybackError):
    """Raised when no descriptor exists for the requested upload."""

    status_code = 404

    def __init__(self, upload_id: str, message: str = "not found") -> None:
        super().__init__(message, "VIDEO_NOT_FOUND", {"upload_id": upload_id})


class NotReadyError(PlaybackError):
    """Raised when a descriptor exists but its manifest has not been produced."""

    status_code = 409

    def __init__(self, upload_id: str) -> None:
        super().__init__("master not ready", "VIDEO_NOT_READY", {"upload_id": upload_id})


class InvalidParameterError(PlaybackError):
    """Raised for a rendition or segment name outside the allowed set."""

    status_code = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, "INVALID_PARAMETER", details)


class UpstreamError(PlaybackError):
    """Raised when the object store or public origin cannot be reached.

    Not retried synchronously; clients are expected to retry.
    """

    status_code = 502

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, "UPSTREAM_ERROR", details)
