"""Unit tests for the S3 object store adapter."""

from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from src.shared.aws_clients import retry_with_backoff
from src.shared.exceptions import RetryableError, StorageError
from src.shared.storage import BlobNotFoundError, S3ObjectStore, detect_content_type


@pytest.fixture
def store(s3_client: Any, s3_buckets: dict[str, str]) -> S3ObjectStore:
    return S3ObjectStore(s3_buckets["processed"], client=s3_client)


class TestContentTypes:
    @pytest.mark.parametrize(
        "path,expected",
        [
            ("hls/u/a/master.m3u8", "application/vnd.apple.mpegurl"),
            ("hls/u/a/720p/segment_000.ts", "video/MP2T"),
            ("hls/u/a/720p/segment_000.m4s", "video/iso.segment"),
            ("thumbnails/u/a.jpg", "image/jpeg"),
            ("notes.unknownext", "application/octet-stream"),
        ],
    )
    def test_detect_content_type(self, path: str, expected: str):
        assert detect_content_type(path) == expected


class TestS3ObjectStore:
    """Tests against moto S3."""

    def test_upload_dir_sets_content_types(self, store: S3ObjectStore, s3_client: Any, tmp_path):
        (tmp_path / "720p").mkdir()
        (tmp_path / "720p" / "index.m3u8").write_text("#EXTM3U\n")
        (tmp_path / "720p" / "segment_000.ts").write_bytes(b"\x47")
        (tmp_path / "master.m3u8").write_text("#EXTM3U\n")

        keys = store.upload_dir(tmp_path, "hls/u1/a", exclude={"master.m3u8"})

        assert keys == ["hls/u1/a/720p/index.m3u8", "hls/u1/a/720p/segment_000.ts"]
        head = s3_client.head_object(Bucket=store.bucket, Key="hls/u1/a/720p/segment_000.ts")
        assert head["ContentType"] == "video/MP2T"
        assert not store.exists("hls/u1/a/master.m3u8")

    def test_get_bytes_roundtrip(self, store: S3ObjectStore, tmp_path):
        source = tmp_path / "thumb.jpg"
        source.write_bytes(b"jpeg-bytes")

        store.upload_file(source, "thumbnails/u1/a.jpg")

        assert store.get_bytes("thumbnails/u1/a.jpg") == b"jpeg-bytes"

    def test_get_bytes_missing_key(self, store: S3ObjectStore):
        with pytest.raises(BlobNotFoundError):
            store.get_bytes("hls/u1/missing/master.m3u8")

    def test_download_missing_key(self, store: S3ObjectStore, tmp_path):
        with pytest.raises(BlobNotFoundError):
            store.download_to("raw/u1/missing.mp4", tmp_path / "source.mp4")

    def test_download_creates_parent_dirs(self, store: S3ObjectStore, s3_client: Any, tmp_path):
        s3_client.put_object(Bucket=store.bucket, Key="raw/a.mp4", Body=b"video")

        path = store.download_to("raw/a.mp4", tmp_path / "nested" / "source.mp4")

        assert path.read_bytes() == b"video"

    def test_delete_prefix(self, store: S3ObjectStore, s3_client: Any):
        for key in ["hls/u1/a/master.m3u8", "hls/u1/a/720p/index.m3u8", "hls/u1/ab/master.m3u8"]:
            s3_client.put_object(Bucket=store.bucket, Key=key, Body=b"x")

        deleted = store.delete_prefix("hls/u1/a/")

        assert deleted == 2
        assert store.list_keys("hls/u1/") == ["hls/u1/ab/master.m3u8"]

    def test_delete_missing_key_is_not_an_error(self, store: S3ObjectStore):
        store.delete("thumbnails/u1/never-existed.jpg")

    def test_client_errors_wrapped(self):
        client = MagicMock()
        client.get_object.side_effect = ClientError(
            {"Error": {"Code": "SlowDown", "Message": "Reduce your request rate"}},
            "GetObject",
        )
        store = S3ObjectStore("videos", client=client)

        with pytest.raises(StorageError) as exc_info:
            store.get_bytes("hls/u1/a/master.m3u8")

        assert not isinstance(exc_info.value, BlobNotFoundError)
        assert exc_info.value.error_code == "STORAGE_ERROR"
        assert exc_info.value.details["original_error_type"] == "ClientError"

    def test_exists_connection_failure_wrapped(self):
        client = MagicMock()
        client.head_object.side_effect = EndpointConnectionError(endpoint_url="http://minio:9000")
        store = S3ObjectStore("videos", client=client)

        with pytest.raises(StorageError) as exc_info:
            store.exists("thumbnails/u1/a.jpg")

        assert exc_info.value.details["original_error_type"] == "EndpointConnectionError"

    def test_exists(self, store: S3ObjectStore, s3_client: Any):
        s3_client.put_object(Bucket=store.bucket, Key="thumbnails/u1/a.jpg", Body=b"x")

        assert store.exists("thumbnails/u1/a.jpg")
        assert not store.exists("thumbnails/u1/b.jpg")


def client_error(code: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, "Publish")


class TestRetryWithBackoff:
    @patch("src.shared.aws_clients.time.sleep")
    def test_transient_errors_retried(self, mock_sleep: MagicMock):
        func = MagicMock(side_effect=[client_error("Throttling"), client_error("Throttling"), "ok"])

        assert retry_with_backoff(func, base_delay=1.0) == "ok"
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1.0, 2.0]

    @patch("src.shared.aws_clients.time.sleep")
    def test_exhausted_retries(self, mock_sleep: MagicMock):
        func = MagicMock(side_effect=client_error("ServiceUnavailable"))

        with pytest.raises(RetryableError) as exc_info:
            retry_with_backoff(func, max_retries=2)

        assert func.call_count == 3
        assert mock_sleep.call_count == 2
        assert isinstance(exc_info.value.original_error, ClientError)

    def test_permanent_error_raised_immediately(self):
        func = MagicMock(side_effect=client_error("AuthorizationError"))

        with pytest.raises(ClientError):
            retry_with_backoff(func)

        assert func.call_count == 1
