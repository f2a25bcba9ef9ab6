"""Result publisher.

Uploads a finished job's output tree to the processed bucket, generates
the thumbnail, and emits the completion event.

Storage paths are deterministic (``hls/<userId>/<uploadId>/...`` and
``thumbnails/<userId>/<uploadId>.jpg``), so a redelivered job overwrites
exactly the same keys. The master playlist is uploaded after every
rendition file: once it is visible, everything it lists is in storage.
"""

from pathlib import Path
from typing import Any

from aws_lambda_powertools import Logger, Metrics, Tracer
from aws_lambda_powertools.metrics import MetricUnit
from botocore.exceptions import BotoCoreError, ClientError

from ..shared.aws_clients import retry_with_backoff
from ..shared.config import Settings
from ..shared.exceptions import PipelineError, PublishError, RetryableError
from ..shared.models import CompletionEvent, UploadEvent
from ..shared.storage import S3ObjectStore
from .encoder import Encoder
from .playlists import MASTER_PLAYLIST_NAME

logger = Logger(service="result-publisher")
tracer = Tracer(service="result-publisher")
metrics = Metrics(service="result-publisher", namespace="VodPipeline")

COMPLETION_EVENT_TYPE = "video.transcoded"


def build_public_url(
    blob_path: str,
    public_base: str = "",
    endpoint_url: str = "",
    bucket: str = "",
) -> str:
    """Build the playback URL recorded for a stored blob.

    Policy, first match wins:
    - public base configured: ``<base>/<blobPath>``
    - storage endpoint configured: ``<endpoint>/<bucket>/<blobPath>``
    - otherwise the relative path ``/<blobPath>``

    Example:
        >>> build_public_url("hls/u1/abc/master.m3u8", public_base="https://cdn.example.com")
        'https://cdn.example.com/hls/u1/abc/master.m3u8'
    """
    blob_path = blob_path.lstrip("/")
    if public_base:
        return f"{public_base.rstrip('/')}/{blob_path}"
    if endpoint_url:
        return f"{endpoint_url.rstrip('/')}/{bucket}/{blob_path}"
    return f"/{blob_path}"


class ResultPublisher:
    """Uploads job output and announces completion."""

    def __init__(
        self,
        store: S3ObjectStore,
        sns_client: Any,
        settings: Settings,
    ) -> None:
        self.store = store
        self.sns_client = sns_client
        self.settings = settings

    def public_url(self, blob_path: str) -> str:
        return build_public_url(
            blob_path,
            public_base=self.settings.storage_public_base,
            endpoint_url=self.settings.storage_endpoint_url,
            bucket=self.store.bucket,
        )

    @tracer.capture_method
    def publish(
        self,
        event: UploadEvent,
        output_root: Path,
        encoder: Encoder,
        input_path: Path,
    ) -> CompletionEvent:
        """Upload the output tree and thumbnail, then emit the completion event.

        Args:
            event: Upload being processed
            output_root: Directory holding ``master.m3u8`` and one directory per rendition
            encoder: Encoder used for the thumbnail frame
            input_path: Downloaded source file

        Returns:
            The completion event that was published

        Raises:
            StorageError: If the HLS tree could not be uploaded
            PublishError: If the completion event could not be published
        """
        master_key = self.upload_tree(event, output_root)
        thumbnail_url = self.publish_thumbnail(event, encoder, input_path, output_root.parent)

        completion = CompletionEvent.from_upload(
            event,
            master_url=self.public_url(master_key),
            thumbnail_url=thumbnail_url,
        )
        self.emit(completion)
        return completion

    def upload_tree(self, event: UploadEvent, output_root: Path) -> str:
        """Upload rendition files first and the master playlist last.

        Returns:
            Storage key of the master playlist
        """
        prefix = event.hls_prefix
        uploaded = self.store.upload_dir(output_root, prefix, exclude={MASTER_PLAYLIST_NAME})

        master_key = f"{prefix}/{MASTER_PLAYLIST_NAME}"
        self.store.upload_file(output_root / MASTER_PLAYLIST_NAME, master_key)

        logger.info(
            "HLS tree uploaded",
            extra={
                "upload_id": event.upload_id,
                "prefix": prefix,
                "file_count": len(uploaded) + 1,
            },
        )
        return master_key

    def publish_thumbnail(
        self,
        event: UploadEvent,
        encoder: Encoder,
        input_path: Path,
        workspace: Path,
    ) -> str:
        """Extract and upload the thumbnail.

        Failure is not fatal: it is logged and counted, and the completion
        event goes out with an empty thumbnail URL.

        Returns:
            Thumbnail URL, or "" if no thumbnail was stored
        """
        local_path = workspace / "thumbnail.jpg"
        try:
            encoder.extract_thumbnail(input_path, local_path)
            self.store.upload_file(local_path, event.thumbnail_path, content_type="image/jpeg")
        except PipelineError as e:
            logger.warning(
                "Thumbnail generation failed",
                extra={"upload_id": event.upload_id, **e.to_dict()},
            )
            metrics.add_metric(name="ThumbnailFailures", unit=MetricUnit.Count, value=1)
            return ""

        return self.public_url(event.thumbnail_path)

    def emit(self, completion: CompletionEvent) -> None:
        """Publish the completion event to the completion topic.

        Raises:
            PublishError: If the broker is unavailable
        """
        topic_arn = self.settings.completion_topic_arn
        if not topic_arn:
            raise PublishError(
                "No completion topic configured",
                details={"upload_id": completion.upload_id},
            )

        def _publish() -> dict[str, Any]:
            return self.sns_client.publish(
                TopicArn=topic_arn,
                Message=completion.to_message(),
                MessageAttributes={
                    "type": {"DataType": "String", "StringValue": COMPLETION_EVENT_TYPE},
                    "uploadId": {"DataType": "String", "StringValue": completion.upload_id},
                },
            )

        try:
            response = retry_with_backoff(_publish)
        except RetryableError as e:
            raise PublishError(
                "Failed to publish completion event",
                original_error=e.original_error,
                details={"upload_id": completion.upload_id},
            )
        except (ClientError, BotoCoreError) as e:
            raise PublishError(
                "Failed to publish completion event",
                original_error=e,
                details={"upload_id": completion.upload_id},
            )

        metrics.add_metric(name="CompletionEventsPublished", unit=MetricUnit.Count, value=1)
        logger.info(
            "Completion event published",
            extra={
                "upload_id": completion.upload_id,
                "message_id": response.get("MessageId"),
                "master_url": completion.hls.master_url,
                "thumbnail_url": completion.thumbnail_url,
            },
        )
