"""Read-through cache for segments and thumbnails.

Entries are keyed ``playback:<kind>:<uploadId>:<blobPath>`` and expire by
TTL only. Cache failures never fail a request: a failed get counts as a
miss and a failed set is logged. Concurrent misses for the same key may
both fetch; the cached bytes are immutable, so last write wins.
"""

import re
from typing import Awaitable, Callable

import redis.asyncio as redis
from aws_lambda_powertools import Logger, Metrics
from aws_lambda_powertools.metrics import MetricUnit
from redis.exceptions import RedisError

from ..shared.config import Settings
from ..shared.models import CacheKind

logger = Logger(service="segment-cache")
metrics = Metrics(service="segment-cache", namespace="VodPipeline")

KEY_PREFIX = "playback"

# Characters with meaning in redis MATCH patterns
_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")

CACHE_ERRORS = (RedisError, OSError)


class SegmentCache:
    """Bytes cache in front of the object store."""

    def __init__(self, client: redis.Redis, ttl_seconds: int) -> None:
        self.client = client
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def key(kind: CacheKind, upload_id: str, blob_path: str) -> str:
        return f"{KEY_PREFIX}:{kind.value}:{upload_id}:{blob_path}"

    async def get_or_fetch(
        self,
        kind: CacheKind,
        upload_id: str,
        blob_path: str,
        fetch: Callable[[], Awaitable[bytes]],
    ) -> bytes:
        """Return cached bytes, or fetch, populate and return them.

        Args:
            kind: Resource kind
            upload_id: Owning upload
            blob_path: Object store path of the resource
            fetch: Coroutine factory reading the bytes from storage; its
                errors propagate unchanged

        Returns:
            Resource bytes
        """
        key = self.key(kind, upload_id, blob_path)

        try:
            cached = await self.client.get(key)
        except CACHE_ERRORS as e:
            logger.warning("Cache get failed", extra={"key": key, "error": str(e)})
            cached = None

        if cached is not None:
            metrics.add_metric(name="SegmentCacheHits", unit=MetricUnit.Count, value=1)
            return cached

        metrics.add_metric(name="SegmentCacheMisses", unit=MetricUnit.Count, value=1)
        data = await fetch()

        try:
            await self.client.set(key, data, ex=self.ttl_seconds)
        except CACHE_ERRORS as e:
            logger.warning("Cache set failed", extra={"key": key, "error": str(e)})

        return data

    async def purge(self, upload_id: str) -> int:
        """Delete every cached entry of an upload.

        Returns:
            Number of keys deleted
        """
        escaped = _GLOB_SPECIAL.sub(r"\\\1", upload_id)
        deleted = 0

        for kind in CacheKind:
            pattern = f"{KEY_PREFIX}:{kind.value}:{escaped}:*"
            async for key in self.client.scan_iter(match=pattern, count=500):
                deleted += await self.client.delete(key)

        logger.info("Cache purged", extra={"upload_id": upload_id, "count": deleted})
        return deleted

    async def close(self) -> None:
        await self.client.aclose()


async def init_segment_cache(settings: Settings) -> SegmentCache | None:
    """Connect the process-wide segment cache.

    Fails open: with no REDIS_URL, or if the server does not answer a
    ping, playback runs without caching.
    """
    if not settings.redis_url:
        logger.info("Segment cache disabled (REDIS_URL not set)")
        return None

    client = redis.from_url(settings.redis_url, decode_responses=False)
    try:
        await client.ping()
    except CACHE_ERRORS as e:
        logger.warning(
            "Segment cache unavailable, continuing without it",
            extra={"error": str(e)},
        )
        await client.aclose()
        return None

    logger.info("Segment cache connected", extra={"ttl_seconds": settings.cache_ttl_seconds})
    return SegmentCache(client, settings.cache_ttl_seconds)
