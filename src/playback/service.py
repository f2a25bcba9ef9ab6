"""Playback operations behind the HTTP routes.

Request parameters are validated before the catalog or storage is
touched. Every media operation requires a descriptor (404 otherwise) with
a recorded master URL (409 otherwise).
"""

from typing import Any, Protocol

from starlette.concurrency import run_in_threadpool

from ..shared.exceptions import NotReadyError, VideoNotFoundError
from ..shared.models import VideoDescriptor
from .manifests import rewrite_master, validate_rendition, validate_segment_name
from .resolver import MediaResponse, PlaybackSource

PLAYBACK_PREFIX = "/playback/videos"


class VideoCatalog(Protocol):
    def get(self, upload_id: str) -> VideoDescriptor | None: ...


class PlaybackService:
    """Resolves, rewrites and proxies a video's HLS package."""

    def __init__(self, catalog: VideoCatalog, source: PlaybackSource) -> None:
        self.catalog = catalog
        self.source = source

    async def describe(self, upload_id: str) -> dict[str, Any]:
        """Descriptor JSON with proxy-relative playback URLs."""
        descriptor = await self._descriptor(upload_id)
        base = f"{PLAYBACK_PREFIX}/{descriptor.upload_id}"

        return {
            "uploadId": descriptor.upload_id,
            "userId": descriptor.user_id,
            "title": descriptor.title,
            "description": descriptor.description,
            "tags": list(descriptor.tags),
            "category": descriptor.category,
            "duration": descriptor.duration,
            "status": descriptor.status,
            "hls": {"master": f"{base}/master.m3u8" if descriptor.is_ready else ""},
            "thumbnail": f"{base}/thumbnail.jpg" if descriptor.thumbnail_url else "",
        }

    async def master(self, upload_id: str) -> bytes:
        """Master playlist with variant references rewritten.

        Bytes that are not UTF-8 are carried through unchanged.
        """
        descriptor = await self._ready_descriptor(upload_id)
        content = await self.source.master(descriptor)
        rewritten = rewrite_master(content.decode("utf-8", errors="surrogateescape"))
        return rewritten.encode("utf-8", errors="surrogateescape")

    async def variant(self, upload_id: str, rendition: str) -> MediaResponse:
        validate_rendition(rendition)
        descriptor = await self._ready_descriptor(upload_id)
        return await self.source.variant(descriptor, rendition)

    async def segment(self, upload_id: str, rendition: str, segment: str) -> MediaResponse:
        validate_rendition(rendition)
        validate_segment_name(segment)
        descriptor = await self._ready_descriptor(upload_id)
        return await self.source.segment(descriptor, rendition, segment)

    async def thumbnail(self, upload_id: str) -> MediaResponse:
        descriptor = await self._ready_descriptor(upload_id)
        return await self.source.thumbnail(descriptor)

    async def _descriptor(self, upload_id: str) -> VideoDescriptor:
        descriptor = await run_in_threadpool(self.catalog.get, upload_id)
        if descriptor is None:
            raise VideoNotFoundError(upload_id)
        return descriptor

    async def _ready_descriptor(self, upload_id: str) -> VideoDescriptor:
        descriptor = await self._descriptor(upload_id)
        if not descriptor.is_ready:
            raise NotReadyError(upload_id)
        return descriptor
