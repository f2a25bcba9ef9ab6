"""Pydantic models for data validation and serialization.

This module defines the core data structures shared by the transcoder and
the playback service:
- Queue message records (UploadEvent in, CompletionEvent out)
- Rendition profiles for the HLS ladder
- Catalog descriptors and resolved blob locations

Queue records use the camelCase field names of the wire format as aliases;
Python code uses snake_case attributes. All models use Pydantic v2.
"""

from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Version of the queue message schema this code reads and writes
EVENT_SCHEMA_VERSION = "1.0"


class CacheKind(str, Enum):
    """Resource kinds held by the segment cache."""

    SEGMENT = "segment"
    THUMBNAIL = "thumbnail"


class RenditionSpec(BaseModel):
    """A single rung of the HLS resolution ladder.

    Each rendition is encoded once per job into its own directory and
    referenced from the master manifest as ``<label>/index.m3u8``.
    """

    model_config = ConfigDict(frozen=True)

    label: str = Field(
        pattern=r"^\d+p$",
        description="Rendition label (e.g., '720p')",
    )
    width: Annotated[int, Field(gt=0, le=7680)] = Field(
        description="Target width in pixels",
    )
    height: Annotated[int, Field(gt=0, le=4320)] = Field(
        description="Target height in pixels",
    )
    video_bitrate_kbps: Annotated[int, Field(gt=0, le=50000)] = Field(
        description="Target video bitrate in kbps",
    )
    audio_bitrate_kbps: Annotated[int, Field(gt=0, le=512)] = Field(
        description="Target audio bitrate in kbps",
    )

    @property
    def resolution(self) -> str:
        """Return resolution string (e.g., '1280x720')."""
        return f"{self.width}x{self.height}"

    @property
    def bandwidth(self) -> int:
        """Peak bandwidth advertised in the master manifest (bits per second)."""
        return (self.video_bitrate_kbps + self.audio_bitrate_kbps) * 1000


class UploadEvent(BaseModel):
    """Upload-completed event produced by the ingestion service.

    Immutable and consumed once per job attempt. Only ``uploadId``,
    ``userId`` and ``rawVideoPath`` are required; everything else is
    carried through to the completion event.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    schema_version: str = Field(
        default=EVENT_SCHEMA_VERSION,
        alias="schemaVersion",
        description="Message schema version",
    )
    upload_id: str = Field(
        min_length=1,
        max_length=200,
        alias="uploadId",
        description="Unique identifier of the upload",
    )
    user_id: str = Field(
        min_length=1,
        max_length=200,
        alias="userId",
        description="Owner of the upload",
    )
    raw_video_path: str = Field(
        min_length=1,
        alias="rawVideoPath",
        description="Key of the uploaded source in the raw bucket",
    )
    username: str = Field(default="", alias="username")
    original_filename: str = Field(default="", alias="originalFilename")
    title: str = Field(default="", alias="title")
    description: str = Field(default="", alias="description")
    tags: list[str] = Field(default_factory=list, alias="tags")
    category: str = Field(default="", alias="category")
    is_private: bool = Field(default=False, alias="isPrivate")
    resolutions: list[str] = Field(
        default_factory=list,
        alias="resolutions",
        description="Requested ladder in encode order; empty means the default ladder",
    )

    @field_validator("upload_id", "user_id", "raw_video_path")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Reject whitespace-only identifiers."""
        if not v.strip():
            raise ValueError("must not be blank")
        return v

    @field_validator("schema_version")
    @classmethod
    def validate_schema_major(cls, v: str) -> str:
        """Accept any minor revision of the supported major version."""
        if v.split(".", 1)[0] != EVENT_SCHEMA_VERSION.split(".", 1)[0]:
            raise ValueError(f"unsupported schema version {v!r}")
        return v

    @field_validator("upload_id", "user_id")
    @classmethod
    def validate_path_safe(cls, v: str) -> str:
        """Identifiers become storage path segments."""
        if "/" in v or ":" in v or v in (".", ".."):
            raise ValueError("must be a single path segment without ':'")
        return v

    @field_validator("tags", "resolutions", mode="before")
    @classmethod
    def none_as_empty(cls, v: list[str] | None) -> list[str]:
        """Treat JSON null as an empty list."""
        return v if v is not None else []

    @property
    def hls_prefix(self) -> str:
        """Deterministic storage prefix of this upload's HLS tree."""
        return f"hls/{self.user_id}/{self.upload_id}"

    @property
    def thumbnail_path(self) -> str:
        """Deterministic storage path of this upload's thumbnail."""
        return f"thumbnails/{self.user_id}/{self.upload_id}.jpg"


class HLSOutput(BaseModel):
    """HLS block of the completion event."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    master_url: str = Field(alias="masterUrl")


class CompletionEvent(BaseModel):
    """Video-transcoded event consumed by the catalog service.

    Carries the upload metadata through so the catalog can fill in
    fields it has not stored yet.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    schema_version: str = Field(default=EVENT_SCHEMA_VERSION, alias="schemaVersion")
    upload_id: str = Field(alias="uploadId")
    user_id: str = Field(alias="userId")
    title: str = Field(default="", alias="title")
    description: str = Field(default="", alias="description")
    tags: list[str] = Field(default_factory=list, alias="tags")
    category: str = Field(default="", alias="category")
    is_private: bool = Field(default=False, alias="isPrivate")
    original_filename: str = Field(default="", alias="originalFilename")
    raw_video_path: str = Field(default="", alias="rawVideoPath")
    hls: HLSOutput = Field(alias="hls")
    thumbnail_url: str = Field(
        default="",
        alias="thumbnailUrl",
        description="Empty when thumbnail generation failed",
    )
    ready: bool = Field(default=True, alias="ready")

    @classmethod
    def from_upload(
        cls,
        event: UploadEvent,
        master_url: str,
        thumbnail_url: str = "",
    ) -> "CompletionEvent":
        """Build the completion event for a successfully processed upload."""
        return cls(
            upload_id=event.upload_id,
            user_id=event.user_id,
            title=event.title,
            description=event.description,
            tags=list(event.tags),
            category=event.category,
            is_private=event.is_private,
            original_filename=event.original_filename,
            raw_video_path=event.raw_video_path,
            hls=HLSOutput(master_url=master_url),
            thumbnail_url=thumbnail_url,
            ready=True,
        )

    def to_message(self) -> str:
        """Serialize to the JSON wire format."""
        return self.model_dump_json(by_alias=True)


class VideoDescriptor(BaseModel):
    """Catalog view of a video, read-only from the playback side."""

    model_config = ConfigDict(frozen=True)

    upload_id: str
    user_id: str = ""
    title: str = ""
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    category: str = ""
    duration: float = 0.0
    hls_master_url: str = ""
    thumbnail_url: str = ""
    status: str = ""

    @property
    def is_ready(self) -> bool:
        """Check whether a master manifest has been recorded."""
        return bool(self.hls_master_url)


class BlobLocator(BaseModel):
    """Resolved (bucket, path) pair for a stored URL. Never persisted."""

    model_config = ConfigDict(frozen=True)

    bucket: str
    path: str

    @property
    def base(self) -> str:
        """Directory of the master manifest (path without ``/master.m3u8``)."""
        return self.path.removesuffix("/master.m3u8")

    def child(self, *parts: str) -> "BlobLocator":
        """Locator for a path under this locator's base directory."""
        return BlobLocator(bucket=self.bucket, path="/".join([self.base, *parts]))
