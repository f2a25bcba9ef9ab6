"""HTTP surface of the playback service (FastAPI).

The ASGI app is ``src.playback.api:app``. The catalog, the access strategy
and the segment cache are created once in the lifespan and kept on
``app.state``; a service placed on ``app.state.playback_service`` before
startup is used as is.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx
from aws_lambda_powertools import Logger, Metrics
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response

from ..shared.config import get_settings
from ..shared.exceptions import PlaybackError
from .cache import init_segment_cache
from .catalog import DynamoDBVideoCatalog
from .resolver import PLAYLIST_MEDIA_TYPE, MediaResponse, build_source
from .service import PlaybackService

logger = Logger(service="playback-api")
metrics = Metrics(service="playback-api", namespace="VodPipeline")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    if getattr(app.state, "playback_service", None) is not None:
        yield
        return

    settings = get_settings()
    logger.setLevel(settings.log_level)

    cache = await init_segment_cache(settings) if settings.private_storage else None
    http_client = None
    if not settings.private_storage:
        http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.upstream_timeout_seconds),
            follow_redirects=True,
        )

    source = build_source(settings, cache=cache, http_client=http_client)
    app.state.segment_cache = cache
    app.state.playback_service = PlaybackService(
        DynamoDBVideoCatalog(settings.catalog_table),
        source,
    )

    try:
        yield
    finally:
        if http_client is not None:
            await http_client.aclose()
        if cache is not None:
            await cache.close()


def get_playback_service(request: Request) -> PlaybackService:
    """Return PlaybackService from app state (set in lifespan)."""
    return request.app.state.playback_service


def to_response(media: MediaResponse) -> Response:
    if media.redirect_url:
        return RedirectResponse(media.redirect_url, status_code=302)
    return Response(
        content=media.body,
        status_code=media.status_code,
        media_type=media.media_type,
        headers=media.headers,
    )


def create_app() -> FastAPI:
    app = FastAPI(title="VOD Playback", lifespan=lifespan)

    @app.exception_handler(PlaybackError)
    async def playback_error_handler(request: Request, exc: PlaybackError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.warning("Playback request failed", extra={"path": request.url.path, **exc.to_dict()})
        return JSONResponse(
            status_code=exc.status_code,
            content={"error_code": exc.error_code, "error_message": exc.message},
        )

    @app.middleware("http")
    async def flush_metrics(request: Request, call_next: Any) -> Response:
        response = await call_next(request)
        if metrics.metric_set:
            metrics.flush_metrics()
        return response

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/playback/videos/{upload_id}")
    async def get_video(
        upload_id: str,
        service: PlaybackService = Depends(get_playback_service),
    ) -> dict[str, Any]:
        """Descriptor JSON."""
        return await service.describe(upload_id)

    @app.get("/playback/videos/{upload_id}/master.m3u8")
    async def get_master(
        upload_id: str,
        service: PlaybackService = Depends(get_playback_service),
    ) -> Response:
        """Rewritten master playlist."""
        content = await service.master(upload_id)
        return Response(content=content, media_type=PLAYLIST_MEDIA_TYPE)

    @app.get("/playback/videos/{upload_id}/thumbnail.jpg")
    async def get_thumbnail(
        upload_id: str,
        service: PlaybackService = Depends(get_playback_service),
    ) -> Response:
        """Thumbnail bytes (private) or redirect (public)."""
        return to_response(await service.thumbnail(upload_id))

    @app.get("/playback/videos/{upload_id}/{rendition}/index.m3u8")
    async def get_variant(
        upload_id: str,
        rendition: str,
        service: PlaybackService = Depends(get_playback_service),
    ) -> Response:
        """Variant playlist of one rendition."""
        return to_response(await service.variant(upload_id, rendition))

    @app.get("/playback/videos/{upload_id}/{rendition}/{segment}")
    async def get_segment(
        upload_id: str,
        rendition: str,
        segment: str,
        service: PlaybackService = Depends(get_playback_service),
    ) -> Response:
        """Media segment."""
        return to_response(await service.segment(upload_id, rendition, segment))

    return app


app = create_app()
