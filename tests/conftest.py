"""Pytest configuration and shared fixtures.

This module provides:
- AWS credential mocking for moto
- Mocked S3/SQS/SNS/DynamoDB with the pipeline's buckets, queues and topic
- A stub encoder and an in-memory async redis stand-in
- Sample upload events
- Environment variable setup
"""

import fnmatch
import os
import re
from pathlib import Path
from typing import Any, AsyncIterator, Generator

import boto3
import pytest
from moto import mock_aws

# Set dummy AWS credentials BEFORE importing any application code
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
os.environ["AWS_SECURITY_TOKEN"] = "testing"
os.environ["AWS_SESSION_TOKEN"] = "testing"
os.environ["AWS_DEFAULT_REGION"] = "us-east-1"

# Set application environment variables
os.environ["ENVIRONMENT"] = "dev"
os.environ["RAW_BUCKET"] = "test-raw-videos"
os.environ["PROCESSED_BUCKET"] = "test-processed-videos"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["POWERTOOLS_TRACE_DISABLED"] = "true"
os.environ["POWERTOOLS_METRICS_NAMESPACE"] = "VodPipeline"

from src.shared.aws_clients import clear_client_cache  # noqa: E402
from src.shared.config import Settings, clear_settings_cache  # noqa: E402
from src.shared.exceptions import EncodeError  # noqa: E402
from src.shared.models import RenditionSpec  # noqa: E402

RAW_BUCKET = "test-raw-videos"
PROCESSED_BUCKET = "test-processed-videos"

# KEY=VALUE or KEY="VALUE"
HLS_ATTRIBUTE_PATTERN = re.compile(r'([A-Z-]+)=("[^"]*"|[^,]*)')


def parse_stream_inf(content: str) -> list[dict[str, Any]]:
    """Parse EXT-X-STREAM-INF entries of a master playlist into dicts."""
    variants = []
    lines = [line.strip() for line in content.strip().split("\n")]

    for i, line in enumerate(lines):
        if line.startswith("#EXT-X-STREAM-INF:"):
            attrs = {
                m.group(1): m.group(2).strip('"')
                for m in HLS_ATTRIBUTE_PATTERN.finditer(line.split(":", 1)[1])
            }
            # URI is on the next line
            uri = lines[i + 1] if i + 1 < len(lines) else ""
            variants.append({
                "bandwidth": int(attrs.get("BANDWIDTH", 0)),
                "resolution": attrs.get("RESOLUTION", ""),
                "uri": uri,
            })

    return variants


@pytest.fixture(autouse=True)
def reset_caches() -> Generator[None, None, None]:
    """Drop cached settings and clients between tests."""
    clear_settings_cache()
    clear_client_cache()
    yield
    clear_settings_cache()
    clear_client_cache()


# =============================================================================
# AWS Fixtures
# =============================================================================


@pytest.fixture
def aws_credentials() -> None:
    """Mocked AWS credentials for moto."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"


@pytest.fixture
def mocked_aws(aws_credentials: None) -> Generator[None, None, None]:
    """Single moto context shared by all client fixtures of a test."""
    with mock_aws():
        yield


@pytest.fixture
def s3_client(mocked_aws: None) -> Any:
    """Mocked S3 client."""
    return boto3.client("s3", region_name="us-east-1")


@pytest.fixture
def sqs_client(mocked_aws: None) -> Any:
    """Mocked SQS client."""
    return boto3.client("sqs", region_name="us-east-1")


@pytest.fixture
def sns_client(mocked_aws: None) -> Any:
    """Mocked SNS client."""
    return boto3.client("sns", region_name="us-east-1")


@pytest.fixture
def dynamodb_resource(mocked_aws: None) -> Any:
    """Mocked DynamoDB resource."""
    return boto3.resource("dynamodb", region_name="us-east-1")


@pytest.fixture
def s3_buckets(s3_client: Any) -> dict[str, str]:
    """Create raw and processed buckets."""
    s3_client.create_bucket(Bucket=RAW_BUCKET)
    s3_client.create_bucket(Bucket=PROCESSED_BUCKET)
    return {
        "raw": RAW_BUCKET,
        "processed": PROCESSED_BUCKET,
    }


@pytest.fixture
def queues(sqs_client: Any) -> dict[str, str]:
    """Create upload queue, dead-letter queue and a completion sink queue."""
    return {
        "upload": sqs_client.create_queue(QueueName="upload-events")["QueueUrl"],
        "dlq": sqs_client.create_queue(QueueName="upload-events-dlq")["QueueUrl"],
        "completions": sqs_client.create_queue(QueueName="completion-sink")["QueueUrl"],
    }


@pytest.fixture
def completion_topic(sns_client: Any, sqs_client: Any, queues: dict[str, str]) -> str:
    """Create the completion topic, subscribed by the completion sink queue."""
    topic_arn = sns_client.create_topic(Name="video-transcoded")["TopicArn"]
    sink_arn = sqs_client.get_queue_attributes(
        QueueUrl=queues["completions"],
        AttributeNames=["QueueArn"],
    )["Attributes"]["QueueArn"]
    sns_client.subscribe(TopicArn=topic_arn, Protocol="sqs", Endpoint=sink_arn)
    return topic_arn


@pytest.fixture
def catalog_table(dynamodb_resource: Any) -> Any:
    """Create the video catalog table."""
    return dynamodb_resource.create_table(
        TableName="test-video-catalog",
        AttributeDefinitions=[
            {"AttributeName": "upload_id", "AttributeType": "S"},
        ],
        KeySchema=[
            {"AttributeName": "upload_id", "KeyType": "HASH"},
        ],
        BillingMode="PAY_PER_REQUEST",
    )


@pytest.fixture
def pipeline_settings(
    queues: dict[str, str],
    completion_topic: str,
    s3_buckets: dict[str, str],
    tmp_path: Path,
) -> Settings:
    """Settings wired to the mocked queues, topic and buckets."""
    work_dir = tmp_path / "work"
    work_dir.mkdir()
    return Settings(
        upload_queue_url=queues["upload"],
        dead_letter_queue_url=queues["dlq"],
        completion_topic_arn=completion_topic,
        raw_bucket=s3_buckets["raw"],
        processed_bucket=s3_buckets["processed"],
        storage_public_base="https://cdn.example.com",
        work_dir=str(work_dir),
        max_attempts=3,
        retry_base_delay_seconds=30,
        retry_max_delay_seconds=900,
        receive_wait_seconds=0,
    )


# =============================================================================
# Test doubles
# =============================================================================


VARIANT_PLAYLIST = """#EXTM3U
#EXT-X-VERSION:3
#EXT-X-TARGETDURATION:6
#EXT-X-PLAYLIST-TYPE:VOD
#EXTINF:6.000000,
segment_000.ts
#EXTINF:4.000000,
segment_001.ts
#EXT-X-ENDLIST
"""


class StubEncoder:
    """Encoder double writing a two-segment playlist per rendition."""

    def __init__(
        self,
        fail_on: str | None = None,
        thumbnail_fails: bool = False,
        playlist: str = VARIANT_PLAYLIST,
    ) -> None:
        self.fail_on = fail_on
        self.thumbnail_fails = thumbnail_fails
        self.playlist = playlist
        self.encoded: list[str] = []

    def encode(self, input_path: Path, output_dir: Path, profile: RenditionSpec) -> None:
        self.encoded.append(profile.label)
        if profile.label == self.fail_on:
            raise EncodeError(
                "ffmpeg exited with status 1",
                details={"rendition": profile.label},
            )
        (output_dir / "index.m3u8").write_text(self.playlist)
        (output_dir / "segment_000.ts").write_bytes(b"\x47" * 188)
        (output_dir / "segment_001.ts").write_bytes(b"\x47" * 188)

    def extract_thumbnail(self, input_path: Path, output_path: Path) -> None:
        if self.thumbnail_fails:
            raise EncodeError("ffmpeg produced no thumbnail frame")
        output_path.write_bytes(b"\xff\xd8\xff\xe0fake-jpeg")


class FakeRedis:
    """In-memory stand-in for ``redis.asyncio.Redis`` (bytes values)."""

    def __init__(self, fail_get: bool = False, fail_set: bool = False) -> None:
        self.data: dict[str, bytes] = {}
        self.expiry: dict[str, int | None] = {}
        self.fail_get = fail_get
        self.fail_set = fail_set
        self.closed = False

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> bytes | None:
        if self.fail_get:
            from redis.exceptions import ConnectionError

            raise ConnectionError("connection refused")
        return self.data.get(key)

    async def set(self, key: str, value: bytes, ex: int | None = None) -> bool:
        if self.fail_set:
            from redis.exceptions import ConnectionError

            raise ConnectionError("connection refused")
        self.data[key] = value
        self.expiry[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                self.expiry.pop(key, None)
                removed += 1
        return removed

    async def scan_iter(self, match: str = "*", count: int | None = None) -> AsyncIterator[str]:
        for key in list(self.data):
            if fnmatch.fnmatchcase(key, match):
                yield key

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def stub_encoder() -> StubEncoder:
    """Encoder double that always succeeds."""
    return StubEncoder()


@pytest.fixture
def fake_redis() -> FakeRedis:
    """Empty in-memory redis."""
    return FakeRedis()


# =============================================================================
# Sample Data Fixtures
# =============================================================================


@pytest.fixture
def sample_upload_event() -> dict[str, Any]:
    """Upload event for a two-rendition ladder (wire format)."""
    return {
        "uploadId": "abc123",
        "userId": "u1",
        "username": "alice",
        "originalFilename": "holiday.mp4",
        "title": "Holiday",
        "description": "Beach day",
        "tags": ["travel", "beach"],
        "category": "vlog",
        "isPrivate": False,
        "rawVideoPath": "raw/u1/abc123.mp4",
        "resolutions": ["720p", "360p"],
    }


@pytest.fixture
def sample_master_playlist() -> str:
    """Master playlist as written by the transcoder for 720p/360p."""
    return (
        "#EXTM3U\n"
        "#EXT-X-VERSION:3\n"
        "#EXT-X-STREAM-INF:BANDWIDTH=2928000,RESOLUTION=1280x720\n"
        "720p/index.m3u8\n"
        "#EXT-X-STREAM-INF:BANDWIDTH=864000,RESOLUTION=640x360\n"
        "360p/index.m3u8\n"
    )
