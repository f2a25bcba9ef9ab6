"""Asset cleanup for deleted videos.

Called by the video-delete workflow after the catalog row is removed.
Each step is attempted even if an earlier one fails, so a partial outage
leaves as little behind as possible. Cache entries are purged last;
without this they would keep being served until their TTL lapses.
"""

from typing import Any

from aws_lambda_powertools import Logger

from ..shared.exceptions import StorageError
from ..shared.storage import S3ObjectStore
from .cache import CACHE_ERRORS, SegmentCache

logger = Logger(service="asset-cleanup")


async def delete_video_assets(
    store: S3ObjectStore,
    cache: SegmentCache | None,
    user_id: str,
    upload_id: str,
    raw_store: S3ObjectStore | None = None,
    raw_video_path: str | None = None,
) -> dict[str, Any]:
    """Delete an upload's HLS tree, thumbnail, raw source and cache entries.

    Args:
        store: Processed bucket store
        cache: Segment cache, if one is configured
        user_id: Owner of the upload
        upload_id: Upload to delete
        raw_store: Raw bucket store; the raw source is kept when omitted
        raw_video_path: Key of the raw source

    Returns:
        Summary with deleted object/key counts and the names of failed steps
    """
    summary: dict[str, Any] = {
        "hls_objects": 0,
        "thumbnail": False,
        "raw": False,
        "cache_keys": 0,
        "failed": [],
    }
    context = {"upload_id": upload_id, "user_id": user_id}

    try:
        summary["hls_objects"] = store.delete_prefix(f"hls/{user_id}/{upload_id}/")
    except StorageError as e:
        logger.warning("Failed to delete HLS tree", extra={**context, **e.to_dict()})
        summary["failed"].append("hls")

    try:
        store.delete(f"thumbnails/{user_id}/{upload_id}.jpg")
        summary["thumbnail"] = True
    except StorageError as e:
        logger.warning("Failed to delete thumbnail", extra={**context, **e.to_dict()})
        summary["failed"].append("thumbnail")

    if raw_store is not None and raw_video_path:
        try:
            raw_store.delete(raw_video_path)
            summary["raw"] = True
        except StorageError as e:
            logger.warning("Failed to delete raw source", extra={**context, **e.to_dict()})
            summary["failed"].append("raw")

    if cache is not None:
        try:
            summary["cache_keys"] = await cache.purge(upload_id)
        except CACHE_ERRORS as e:
            logger.warning("Failed to purge cache", extra={**context, "error": str(e)})
            summary["failed"].append("cache")

    logger.info("Video assets deleted", extra={**context, **summary})
    return summary
