"""Playback resolver: where a video's HLS package and thumbnail live.

Two strategies, chosen once at startup:

- PrivateResolver (storage credentials configured): the descriptor's
  stored URL is resolved to a blob path in the processed bucket and read
  through the object store. Segments and thumbnails go through the
  segment cache when one is available.
- PublicPassthrough (no credentials): the stored URLs are fetched over
  HTTP as is and proxied, or redirected to for thumbnails.

Stored manifest URLs come in three shapes, tried in this order:
1. Cloud provider URL (host ends in a storage-provider suffix)
2. Generic ``http(s)://host[:port]/bucket/path`` URL
3. Relative path (``/hls/...`` or ``hls/...``)
"""

from dataclasses import dataclass, field
from typing import Protocol
from urllib.parse import unquote, urlsplit

import httpx
from aws_lambda_powertools import Logger
from starlette.concurrency import run_in_threadpool

from ..shared.config import Settings
from ..shared.exceptions import StorageError, UpstreamError, VideoNotFoundError
from ..shared.models import BlobLocator, CacheKind, VideoDescriptor
from ..shared.storage import BlobNotFoundError, S3ObjectStore, detect_content_type
from ..transcoder.playlists import MASTER_PLAYLIST_NAME, VARIANT_PLAYLIST_NAME
from .cache import SegmentCache

logger = Logger(service="playback-resolver")

CLOUD_HOST_SUFFIXES = (".blob.core.windows.net", ".amazonaws.com")

PLAYLIST_MEDIA_TYPE = "application/vnd.apple.mpegurl"

# Upstream headers not forwarded by the segment proxy
EXCLUDED_PROXY_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
    "content-length",
    "content-encoding",
    "cache-control",
})


@dataclass
class MediaResponse:
    """Body and response metadata for one served resource."""

    body: bytes = b""
    status_code: int = 200
    media_type: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    redirect_url: str | None = None


def extract_blob_path(url: str, bucket: str) -> str:
    """Resolve a stored URL to a blob path inside ``bucket``.

    Example:
        >>> extract_blob_path("https://acct.blob.core.windows.net/videos/hls/u/1/master.m3u8", "videos")
        'hls/u/1/master.m3u8'
        >>> extract_blob_path("http://minio:9000/videos/hls/u/1/master.m3u8", "videos")
        'hls/u/1/master.m3u8'
        >>> extract_blob_path("/hls/u/1/master.m3u8", "videos")
        'hls/u/1/master.m3u8'
    """
    cloud_path = _cloud_provider_path(url, bucket)
    if cloud_path is not None:
        return cloud_path

    http_path = _generic_http_path(url, bucket)
    if http_path is not None:
        return http_path

    return url.lstrip("/")


def _cloud_provider_path(url: str, bucket: str) -> str | None:
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https"):
        return None

    host = (parts.hostname or "").lower()
    if not host.endswith(CLOUD_HOST_SUFFIXES):
        return None

    # Path-style URLs carry the bucket/container as first segment
    path = unquote(parts.path).lstrip("/")
    return path.removeprefix(f"{bucket}/")


def _generic_http_path(url: str, bucket: str) -> str | None:
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None

    path = unquote(parts.path).lstrip("/")
    return path.removeprefix(f"{bucket}/")


def _proxy_headers(upstream: httpx.Response, max_age: int) -> dict[str, str]:
    headers = {
        name: value
        for name, value in upstream.headers.items()
        if name.lower() not in EXCLUDED_PROXY_HEADERS
    }
    headers["Cache-Control"] = f"public, max-age={max_age}"
    return headers


class PlaybackSource(Protocol):
    """Access strategy for a video's stored package."""

    async def master(self, descriptor: VideoDescriptor) -> bytes: ...

    async def variant(self, descriptor: VideoDescriptor, rendition: str) -> MediaResponse: ...

    async def segment(
        self,
        descriptor: VideoDescriptor,
        rendition: str,
        segment: str,
    ) -> MediaResponse: ...

    async def thumbnail(self, descriptor: VideoDescriptor) -> MediaResponse: ...


class PrivateResolver:
    """Serves packages from the processed bucket through the object store."""

    def __init__(
        self,
        store: S3ObjectStore,
        cache: SegmentCache | None = None,
        segment_max_age: int = 60,
        thumbnail_max_age: int = 3600,
    ) -> None:
        self.store = store
        self.cache = cache
        self.segment_max_age = segment_max_age
        self.thumbnail_max_age = thumbnail_max_age

    def locate(self, descriptor: VideoDescriptor) -> BlobLocator:
        """Locate the master playlist of a ready descriptor."""
        bucket = self.store.bucket
        return BlobLocator(
            bucket=bucket,
            path=extract_blob_path(descriptor.hls_master_url, bucket),
        )

    async def master(self, descriptor: VideoDescriptor) -> bytes:
        locator = self.locate(descriptor)
        return await self._read(descriptor.upload_id, locator.path)

    async def variant(self, descriptor: VideoDescriptor, rendition: str) -> MediaResponse:
        locator = self.locate(descriptor).child(rendition, VARIANT_PLAYLIST_NAME)
        body = await self._read(descriptor.upload_id, locator.path)
        return MediaResponse(body=body, media_type=PLAYLIST_MEDIA_TYPE)

    async def segment(
        self,
        descriptor: VideoDescriptor,
        rendition: str,
        segment: str,
    ) -> MediaResponse:
        locator = self.locate(descriptor).child(rendition, segment)
        body = await self._cached_read(CacheKind.SEGMENT, descriptor.upload_id, locator.path)
        return MediaResponse(
            body=body,
            media_type=detect_content_type(segment),
            headers={"Cache-Control": f"public, max-age={self.segment_max_age}"},
        )

    async def thumbnail(self, descriptor: VideoDescriptor) -> MediaResponse:
        if not descriptor.thumbnail_url:
            raise VideoNotFoundError(descriptor.upload_id, "thumbnail not available")

        blob_path = f"thumbnails/{descriptor.user_id}/{descriptor.upload_id}.jpg"
        try:
            body = await self._cached_read(CacheKind.THUMBNAIL, descriptor.upload_id, blob_path)
        except UpstreamError:
            raise VideoNotFoundError(descriptor.upload_id, "thumbnail not available")

        return MediaResponse(
            body=body,
            media_type="image/jpeg",
            headers={"Cache-Control": f"public, max-age={self.thumbnail_max_age}"},
        )

    async def _cached_read(self, kind: CacheKind, upload_id: str, blob_path: str) -> bytes:
        if self.cache is None:
            return await self._read(upload_id, blob_path)

        async def fetch() -> bytes:
            return await self._read(upload_id, blob_path)

        return await self.cache.get_or_fetch(kind, upload_id, blob_path, fetch)

    async def _read(self, upload_id: str, blob_path: str) -> bytes:
        try:
            return await run_in_threadpool(self.store.get_bytes, blob_path)
        except BlobNotFoundError:
            raise VideoNotFoundError(upload_id, "not found")
        except StorageError as e:
            logger.error(
                "Storage read failed",
                extra={"upload_id": upload_id, "blob_path": blob_path, **e.to_dict()},
            )
            raise UpstreamError("storage unavailable", {"blob_path": blob_path})


class PublicPassthrough:
    """Proxies stored URLs that are directly fetchable over HTTP."""

    def __init__(self, http_client: httpx.AsyncClient, segment_max_age: int = 60) -> None:
        self.http_client = http_client
        self.segment_max_age = segment_max_age

    @staticmethod
    def base_url(descriptor: VideoDescriptor) -> str:
        return descriptor.hls_master_url.removesuffix(f"/{MASTER_PLAYLIST_NAME}")

    async def master(self, descriptor: VideoDescriptor) -> bytes:
        upstream = await self._get(descriptor.hls_master_url)
        if not upstream.is_success:
            logger.warning(
                "Upstream master fetch failed",
                extra={"upload_id": descriptor.upload_id, "status_code": upstream.status_code},
            )
            raise UpstreamError(
                "upstream fetch failed",
                {"status_code": upstream.status_code},
            )
        return upstream.content

    async def variant(self, descriptor: VideoDescriptor, rendition: str) -> MediaResponse:
        url = f"{self.base_url(descriptor)}/{rendition}/{VARIANT_PLAYLIST_NAME}"
        upstream = await self._get(url)
        return MediaResponse(
            body=upstream.content,
            status_code=upstream.status_code,
            media_type=PLAYLIST_MEDIA_TYPE,
        )

    async def segment(
        self,
        descriptor: VideoDescriptor,
        rendition: str,
        segment: str,
    ) -> MediaResponse:
        url = f"{self.base_url(descriptor)}/{rendition}/{segment}"
        upstream = await self._get(url)
        return MediaResponse(
            body=upstream.content,
            status_code=upstream.status_code,
            media_type=upstream.headers.get("content-type") or detect_content_type(segment),
            headers=_proxy_headers(upstream, self.segment_max_age),
        )

    async def thumbnail(self, descriptor: VideoDescriptor) -> MediaResponse:
        if not descriptor.thumbnail_url:
            raise VideoNotFoundError(descriptor.upload_id, "thumbnail not available")
        return MediaResponse(status_code=302, redirect_url=descriptor.thumbnail_url)

    async def _get(self, url: str) -> httpx.Response:
        try:
            return await self.http_client.get(url)
        except httpx.HTTPError as e:
            logger.warning("Upstream request failed", extra={"url": url, "error": str(e)})
            raise UpstreamError("upstream unavailable", {"url": url})


def build_source(
    settings: Settings,
    store: S3ObjectStore | None = None,
    cache: SegmentCache | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> PlaybackSource:
    """Select the playback strategy for this process.

    Private mode when storage credentials are configured, public
    passthrough otherwise.
    """
    if settings.private_storage:
        logger.info("Playback running in private mode", extra={"bucket": settings.processed_bucket})
        return PrivateResolver(
            store=store or S3ObjectStore(settings.processed_bucket),
            cache=cache,
            segment_max_age=settings.segment_max_age_seconds,
            thumbnail_max_age=settings.thumbnail_max_age_seconds,
        )

    logger.info("Playback running in public passthrough mode")
    if http_client is None:
        http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.upstream_timeout_seconds),
            follow_redirects=True,
        )
    return PublicPassthrough(http_client, segment_max_age=settings.segment_max_age_seconds)
