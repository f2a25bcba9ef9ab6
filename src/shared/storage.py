"""Object store adapter over S3 (or any S3-compatible store).

One S3ObjectStore is bound to one bucket. The transcoder uses a store for
the raw bucket (downloads) and one for the processed bucket (uploads);
playback only reads from the processed bucket.

All botocore failures are wrapped in StorageError so callers can treat
them as transient. A missing key on read is reported separately through
BlobNotFoundError so the playback path can answer 404 where appropriate.
"""

import mimetypes
from pathlib import Path
from typing import Any

from aws_lambda_powertools import Logger
from botocore.exceptions import BotoCoreError, ClientError

from .aws_clients import get_s3_client, is_not_found_error
from .exceptions import StorageError

logger = Logger(service="object-store")

# S3 DeleteObjects accepts at most 1000 keys per call
DELETE_BATCH_SIZE = 1000

CONTENT_TYPES = {
    ".m3u8": "application/vnd.apple.mpegurl",
    ".ts": "video/MP2T",
    ".m4s": "video/iso.segment",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
}


class BlobNotFoundError(StorageError):
    """Raised when a requested key does not exist in the bucket."""


def detect_content_type(path: str | Path) -> str:
    """Guess the Content-Type for an HLS asset or image by extension."""
    suffix = Path(path).suffix.lower()
    if suffix in CONTENT_TYPES:
        return CONTENT_TYPES[suffix]
    guessed, _ = mimetypes.guess_type(str(path))
    return guessed or "application/octet-stream"


class S3ObjectStore:
    """Get/put/delete/list of blobs in a single bucket.

    Safe for concurrent use: the underlying boto3 client is thread-safe
    and the store itself holds no mutable state.
    """

    def __init__(self, bucket: str, client: Any | None = None) -> None:
        self.bucket = bucket
        self._client = client if client is not None else get_s3_client()

    def download_to(self, key: str, local_path: str | Path) -> Path:
        """Download a blob to a local file, creating parent directories."""
        local_path = Path(local_path)
        local_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._client.download_file(self.bucket, key, str(local_path))
        except ClientError as e:
            if is_not_found_error(e):
                raise BlobNotFoundError(
                    f"Blob not found: {key}",
                    original_error=e,
                    details={"bucket": self.bucket, "key": key},
                )
            raise StorageError(
                f"Failed to download {key}",
                original_error=e,
                details={"bucket": self.bucket, "key": key},
            )
        except BotoCoreError as e:
            raise StorageError(
                f"Failed to download {key}",
                original_error=e,
                details={"bucket": self.bucket, "key": key},
            )
        return local_path

    def get_bytes(self, key: str) -> bytes:
        """Read a whole blob into memory."""
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except ClientError as e:
            if is_not_found_error(e):
                raise BlobNotFoundError(
                    f"Blob not found: {key}",
                    original_error=e,
                    details={"bucket": self.bucket, "key": key},
                )
            raise StorageError(
                f"Failed to read {key}",
                original_error=e,
                details={"bucket": self.bucket, "key": key},
            )
        except BotoCoreError as e:
            raise StorageError(
                f"Failed to read {key}",
                original_error=e,
                details={"bucket": self.bucket, "key": key},
            )

    def upload_file(
        self,
        local_path: str | Path,
        key: str,
        content_type: str | None = None,
    ) -> None:
        """Upload a single file, overwriting any existing blob at key."""
        extra = {"ContentType": content_type or detect_content_type(local_path)}
        try:
            self._client.upload_file(str(local_path), self.bucket, key, ExtraArgs=extra)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(
                f"Failed to upload {key}",
                original_error=e,
                details={"bucket": self.bucket, "key": key},
            )

    def upload_dir(
        self,
        local_dir: str | Path,
        key_prefix: str,
        exclude: set[str] | None = None,
    ) -> list[str]:
        """Recursively upload every file under local_dir below key_prefix.

        Args:
            local_dir: Directory to upload
            key_prefix: Destination prefix (no trailing slash)
            exclude: Paths relative to local_dir to skip

        Returns:
            Uploaded keys in upload order
        """
        base = Path(local_dir)
        exclude = exclude or set()
        uploaded: list[str] = []

        for path in sorted(base.rglob("*")):
            if not path.is_file():
                continue
            rel = path.relative_to(base).as_posix()
            if rel in exclude:
                continue
            key = f"{key_prefix}/{rel}"
            self.upload_file(path, key)
            uploaded.append(key)

        return uploaded

    def exists(self, key: str) -> bool:
        """Check whether a blob exists."""
        try:
            self._client.head_object(Bucket=self.bucket, Key=key)
            return True
        except (ClientError, BotoCoreError) as e:
            if isinstance(e, ClientError) and is_not_found_error(e):
                return False
            raise StorageError(
                f"Failed to stat {key}",
                original_error=e,
                details={"bucket": self.bucket, "key": key},
            )

    def list_keys(self, prefix: str) -> list[str]:
        """List keys under a prefix.

        Listing is best-effort: objects written concurrently may or may
        not be included.
        """
        keys: list[str] = []
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                keys.extend(obj["Key"] for obj in page.get("Contents", []))
        except (ClientError, BotoCoreError) as e:
            raise StorageError(
                f"Failed to list objects with prefix {prefix}",
                original_error=e,
                details={"bucket": self.bucket, "prefix": prefix},
            )
        return keys

    def delete(self, key: str) -> None:
        """Delete a single blob. Deleting a missing key is not an error."""
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(
                f"Failed to delete {key}",
                original_error=e,
                details={"bucket": self.bucket, "key": key},
            )

    def delete_prefix(self, prefix: str) -> int:
        """Delete every blob under a prefix.

        Returns:
            Number of keys submitted for deletion
        """
        keys = self.list_keys(prefix)
        for start in range(0, len(keys), DELETE_BATCH_SIZE):
            batch = keys[start : start + DELETE_BATCH_SIZE]
            try:
                self._client.delete_objects(
                    Bucket=self.bucket,
                    Delete={"Objects": [{"Key": k} for k in batch], "Quiet": True},
                )
            except (ClientError, BotoCoreError) as e:
                raise StorageError(
                    f"Failed to delete objects with prefix {prefix}",
                    original_error=e,
                    details={"bucket": self.bucket, "prefix": prefix},
                )

        logger.info(
            "Deleted objects by prefix",
            extra={"bucket": self.bucket, "prefix": prefix, "count": len(keys)},
        )
        return len(keys)
