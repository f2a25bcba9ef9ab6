"""AWS client wrappers with retry logic.

This module provides centralized AWS client management with:
- Automatic retry for transient errors
- S3-compatible endpoint support (MinIO) with path-style addressing
- Consistent configuration across the worker and the playback service

boto3 clients are thread-safe, so the cached instances are shared by all
worker threads and request handlers.
"""

import time
from functools import lru_cache
from typing import Any, Callable

import boto3
from aws_lambda_powertools import Logger
from botocore.config import Config
from botocore.exceptions import ClientError

from .config import get_settings
from .exceptions import RetryableError

logger = Logger(service="aws-clients")

# AWS service configuration with retry
AWS_CONFIG = Config(
    retries={
        "max_attempts": 3,
        "mode": "adaptive",
    },
    connect_timeout=5,
    read_timeout=30,
)

# S3-compatible stores need path-style addressing
S3_CONFIG = AWS_CONFIG.merge(
    Config(
        s3={"addressing_style": "path"},
        signature_version="s3v4",
    )
)

# Error codes that indicate transient failures
RETRYABLE_ERROR_CODES = {
    "ThrottlingException",
    "ProvisionedThroughputExceededException",
    "ServiceUnavailable",
    "SlowDown",
    "RequestLimitExceeded",
    "RequestTimeout",
    "InternalError",
    "Throttling",
}

NOT_FOUND_ERROR_CODES = {"404", "NoSuchKey", "NotFound"}


def _client(service: str, config: Config = AWS_CONFIG) -> Any:
    return boto3.client(service, region_name=get_settings().aws_region, config=config)


@lru_cache(maxsize=1)
def get_s3_client() -> Any:
    """Get cached S3 client.

    Uses the configured S3-compatible endpoint and static credentials when
    present, otherwise the default AWS credential chain.

    Returns:
        boto3 S3 client configured for the current environment
    """
    settings = get_settings()
    kwargs: dict[str, Any] = {
        "region_name": settings.aws_region,
        "config": S3_CONFIG,
    }
    if settings.storage_endpoint_url:
        kwargs["endpoint_url"] = settings.storage_endpoint_url
    if settings.private_storage:
        kwargs["aws_access_key_id"] = settings.storage_access_key
        kwargs["aws_secret_access_key"] = settings.storage_secret_key
    return boto3.client("s3", **kwargs)


@lru_cache(maxsize=1)
def get_sqs_client() -> Any:
    """SQS client for the upload and dead-letter queues."""
    return _client("sqs")


@lru_cache(maxsize=1)
def get_sns_client() -> Any:
    """SNS client for completion events."""
    return _client("sns")


@lru_cache(maxsize=1)
def get_dynamodb_resource() -> Any:
    """DynamoDB resource for catalog reads."""
    return boto3.resource(
        "dynamodb",
        region_name=get_settings().aws_region,
        config=AWS_CONFIG,
    )


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


def is_retryable_error(error: ClientError) -> bool:
    """Check whether a ClientError reports throttling or a transient outage."""
    return _error_code(error) in RETRYABLE_ERROR_CODES


def is_not_found_error(error: ClientError) -> bool:
    """Check if an AWS error means the object or key does not exist."""
    return _error_code(error) in NOT_FOUND_ERROR_CODES


def retry_with_backoff(
    func: Callable[..., Any],
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
) -> Any:
    """Call ``func`` and retry throttled/transient ClientErrors in-process.

    Meant for short calls such as the SNS publish of a completion event.

    Args:
        func: Zero-argument callable
        max_retries: Retries after the first call
        base_delay: Delay before the first retry (seconds)
        max_delay: Upper bound on a single delay (seconds)

    Returns:
        Whatever ``func`` returns

    Raises:
        RetryableError: If every attempt hit a transient error
        ClientError: Non-transient errors, raised immediately
    """
    last_error: ClientError | None = None

    for attempt in range(max_retries + 1):
        try:
            return func()
        except ClientError as e:
            if not is_retryable_error(e):
                raise
            last_error = e

        if attempt < max_retries:
            delay = min(base_delay * (2**attempt), max_delay)
            logger.debug(
                "Transient AWS error, retrying",
                extra={"error_code": _error_code(last_error), "attempt": attempt + 1, "delay": delay},
            )
            time.sleep(delay)

    raise RetryableError(
        f"AWS call still failing after {max_retries + 1} attempts",
        original_error=last_error,
    )


def clear_client_cache() -> None:
    """Drop cached clients so tests can rebuild them inside a moto context."""
    for factory in (get_s3_client, get_sqs_client, get_sns_client, get_dynamodb_resource):
        factory.cache_clear()
