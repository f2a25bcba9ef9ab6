"""Environment-aware configuration with validation.

This module provides centralized configuration management using Pydantic Settings.
All environment variables are validated at startup to fail fast on misconfigurations.
Both the transcoder worker and the playback service read the same Settings class;
each only looks at the fields it needs.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings are cached to avoid repeated parsing.

    Example:
        >>> settings = get_settings()
        >>> print(settings.processed_bucket)
        'processed-videos'
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    environment: Literal["dev", "staging", "prod"] = Field(
        default="dev",
        description="Deployment environment",
    )
    aws_region: str = Field(
        default="us-east-1",
        alias="AWS_REGION",
        description="AWS region for all services",
    )

    # Object storage (S3 or an S3-compatible store such as MinIO)
    storage_endpoint_url: str = Field(
        default="",
        alias="STORAGE_ENDPOINT_URL",
        description="S3-compatible endpoint URL; empty means AWS S3",
    )
    storage_access_key: str = Field(
        default="",
        alias="STORAGE_ACCESS_KEY",
        description="Static access key for the object store",
    )
    storage_secret_key: str = Field(
        default="",
        alias="STORAGE_SECRET_KEY",
        description="Static secret key for the object store",
    )
    storage_public_base: str = Field(
        default="",
        alias="STORAGE_PUBLIC_BASE",
        description="Public base URL used when building playback URLs",
    )
    raw_bucket: str = Field(
        default="raw-videos",
        alias="RAW_BUCKET",
        description="Bucket holding uploaded source videos",
    )
    processed_bucket: str = Field(
        default="processed-videos",
        alias="PROCESSED_BUCKET",
        description="Bucket holding HLS trees and thumbnails",
    )

    # Messaging
    upload_queue_url: str = Field(
        default="",
        alias="UPLOAD_QUEUE_URL",
        description="SQS queue delivering upload-completed events",
    )
    dead_letter_queue_url: str = Field(
        default="",
        alias="DEAD_LETTER_QUEUE_URL",
        description="SQS queue receiving dead-lettered upload events",
    )
    completion_topic_arn: str = Field(
        default="",
        alias="COMPLETION_TOPIC_ARN",
        description="SNS topic receiving video-transcoded events",
    )

    # Worker pool
    worker_concurrency: int = Field(
        default=1,
        ge=1,
        le=32,
        alias="WORKER_CONCURRENCY",
        description="Number of concurrent job workers",
    )
    receive_wait_seconds: int = Field(
        default=20,
        ge=0,
        le=20,
        alias="RECEIVE_WAIT_SECONDS",
        description="SQS long-poll wait time",
    )
    visibility_timeout_seconds: int = Field(
        default=900,
        ge=30,
        le=43200,
        alias="VISIBILITY_TIMEOUT_SECONDS",
        description="Visibility timeout while a job is in flight",
    )

    # Retry Configuration
    max_attempts: int = Field(
        default=5,
        ge=1,
        le=20,
        alias="MAX_ATTEMPTS",
        description="Delivery attempts before a message is dead-lettered",
    )
    retry_base_delay_seconds: int = Field(
        default=30,
        ge=0,
        le=3600,
        alias="RETRY_BASE_DELAY_SECONDS",
        description="Initial redelivery delay (exponential backoff)",
    )
    retry_max_delay_seconds: int = Field(
        default=900,
        ge=0,
        le=43200,
        alias="RETRY_MAX_DELAY_SECONDS",
        description="Upper bound on the redelivery delay",
    )

    # Encoding
    work_dir: str = Field(
        default="",
        alias="WORK_DIR",
        description="Parent directory for job workspaces; empty means system temp",
    )
    ffmpeg_path: str = Field(
        default="ffmpeg",
        alias="FFMPEG_PATH",
        description="Path to the ffmpeg binary",
    )
    encode_timeout_seconds: int = Field(
        default=3600,
        ge=1,
        alias="ENCODE_TIMEOUT_SECONDS",
        description="Timeout for a single rendition encode",
    )
    hls_segment_seconds: int = Field(
        default=6,
        ge=1,
        le=30,
        alias="HLS_SEGMENT_SECONDS",
        description="Target HLS segment duration",
    )
    thumbnail_offset_seconds: float = Field(
        default=1.0,
        ge=0.0,
        alias="THUMBNAIL_OFFSET_SECONDS",
        description="Source offset of the extracted thumbnail frame",
    )

    # Playback
    catalog_table: str = Field(
        default="video-catalog",
        alias="CATALOG_TABLE",
        description="DynamoDB table holding video descriptors",
    )
    redis_url: str = Field(
        default="",
        alias="REDIS_URL",
        description="Redis URL for the segment cache; empty disables caching",
    )
    cache_ttl_seconds: int = Field(
        default=3600,
        ge=1,
        alias="CACHE_TTL_SECONDS",
        description="TTL applied to cached segments and thumbnails",
    )
    upstream_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        le=300.0,
        alias="UPSTREAM_TIMEOUT_SECONDS",
        description="Per-call timeout for public-mode HTTP fetches",
    )
    segment_max_age_seconds: int = Field(
        default=60,
        ge=0,
        alias="SEGMENT_MAX_AGE_SECONDS",
        description="Cache-Control max-age for served segments",
    )
    thumbnail_max_age_seconds: int = Field(
        default=3600,
        ge=0,
        alias="THUMBNAIL_MAX_AGE_SECONDS",
        description="Cache-Control max-age for served thumbnails",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )

    @field_validator("storage_endpoint_url", "storage_public_base", mode="before")
    @classmethod
    def validate_http_url(cls, v: str) -> str:
        """Ensure endpoint-style settings are http(s) URLs without a trailing slash."""
        if v and not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v.rstrip("/") if v else v

    @field_validator("upload_queue_url", "dead_letter_queue_url", mode="before")
    @classmethod
    def validate_queue_url(cls, v: str) -> str:
        """Validate SQS queue URL format."""
        if v and not v.startswith(("http://", "https://")):
            raise ValueError("Queue URL must start with http:// or https://")
        return v

    @field_validator("completion_topic_arn", mode="before")
    @classmethod
    def validate_arn_format(cls, v: str) -> str:
        """Validate ARN format."""
        if v and not v.startswith("arn:aws:"):
            raise ValueError("Invalid ARN format - must start with 'arn:aws:'")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "prod"

    @property
    def private_storage(self) -> bool:
        """Whether static storage credentials are configured.

        Playback serves blobs through the object store in this case and
        treats stored URLs as directly fetchable otherwise.
        """
        return bool(self.storage_access_key and self.storage_secret_key)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached application settings.

    Settings are loaded once and cached for the lifetime of the process.

    Returns:
        Validated Settings instance

    Raises:
        ValidationError: If environment variables are invalid
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when environment variables change.
    """
    get_settings.cache_clear()
