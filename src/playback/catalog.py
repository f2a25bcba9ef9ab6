"""Read-only access to the video catalog.

The catalog is owned by another service; playback only reads the fields
it needs to locate a video's HLS package and thumbnail.
"""

from decimal import Decimal
from typing import Any

from aws_lambda_powertools import Logger
from botocore.exceptions import BotoCoreError, ClientError

from ..shared.aws_clients import get_dynamodb_resource
from ..shared.exceptions import UpstreamError
from ..shared.models import VideoDescriptor

logger = Logger(service="video-catalog")


class DynamoDBVideoCatalog:
    """Video descriptors stored in DynamoDB, keyed by ``upload_id``."""

    def __init__(self, table_name: str, resource: Any | None = None) -> None:
        resource = resource if resource is not None else get_dynamodb_resource()
        self.table = resource.Table(table_name)

    def get(self, upload_id: str) -> VideoDescriptor | None:
        """Fetch a descriptor.

        Returns:
            The descriptor, or None if the upload is unknown

        Raises:
            UpstreamError: If the table cannot be read
        """
        try:
            response = self.table.get_item(Key={"upload_id": upload_id})
        except (ClientError, BotoCoreError) as e:
            logger.error(
                "Catalog lookup failed",
                extra={"upload_id": upload_id, "error": str(e)},
            )
            raise UpstreamError("catalog unavailable", {"upload_id": upload_id})

        item = response.get("Item")
        if not item:
            return None
        return descriptor_from_item(item)


def descriptor_from_item(item: dict[str, Any]) -> VideoDescriptor:
    """Convert a DynamoDB item (Decimal numbers, sets) into a VideoDescriptor."""
    duration = item.get("duration", 0)
    if isinstance(duration, Decimal):
        duration = float(duration)

    # String sets come back unordered
    tags = item.get("tags", [])
    tags = sorted(tags) if isinstance(tags, set) else list(tags)

    return VideoDescriptor(
        upload_id=item["upload_id"],
        user_id=item.get("user_id", ""),
        title=item.get("title", ""),
        description=item.get("description", ""),
        tags=tags,
        category=item.get("category", ""),
        duration=duration,
        hls_master_url=item.get("hls_master_url", ""),
        thumbnail_url=item.get("thumbnail_url", ""),
        status=item.get("status", ""),
    )
