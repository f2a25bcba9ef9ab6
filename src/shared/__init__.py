"""Shared utilities for the VOD media pipeline."""

from .config import Settings, get_settings
from .exceptions import (
    PipelineError,
    EventValidationError,
    RetryableError,
    StorageError,
    EncodeError,
    PublishError,
    PlaybackError,
    VideoNotFoundError,
    NotReadyError,
    InvalidParameterError,
    UpstreamError,
)
from .models import (
    CacheKind,
    RenditionSpec,
    UploadEvent,
    HLSOutput,
    CompletionEvent,
    VideoDescriptor,
    BlobLocator,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Exceptions
    "PipelineError",
    "EventValidationError",
    "RetryableError",
    "StorageError",
    "EncodeError",
    "PublishError",
    "PlaybackError",
    "VideoNotFoundError",
    "NotReadyError",
    "InvalidParameterError",
    "UpstreamError",
    # Models
    "CacheKind",
    "RenditionSpec",
    "UploadEvent",
    "HLSOutput",
    "CompletionEvent",
    "VideoDescriptor",
    "BlobLocator",
]
