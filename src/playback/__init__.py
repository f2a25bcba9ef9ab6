"""Playback module for the VOD media pipeline.

This module serves transcoded videos back to clients:
- Catalog lookup and storage path resolution (private/public)
- Master playlist rewriting and parameter validation
- Read-through segment cache
- FastAPI application and asset cleanup
"""

from .resolver import PrivateResolver, PublicPassthrough, extract_blob_path, build_source
from .manifests import rewrite_master
from .cache import SegmentCache, init_segment_cache
from .service import PlaybackService
from .cleanup import delete_video_assets

__all__ = [
    "PrivateResolver",
    "PublicPassthrough",
    "extract_blob_path",
    "build_source",
    "rewrite_master",
    "SegmentCache",
    "init_segment_cache",
    "PlaybackService",
    "delete_video_assets",
]
