"""Transcoder module for the VOD media pipeline.

This module turns upload events into HLS packages:
- Rendition ladder and ffmpeg encoder adapter
- Master playlist synthesis
- Upload of the output tree and completion events
- SQS job consumer and worker pool
"""

from .renditions import RENDITION_PROFILES, DEFAULT_LADDER, resolve_ladder
from .playlists import build_master_playlist
from .encoder import Encoder, FFmpegEncoder
from .publisher import ResultPublisher
from .consumer import JobConsumer, MessageState

__all__ = [
    "RENDITION_PROFILES",
    "DEFAULT_LADDER",
    "resolve_ladder",
    "build_master_playlist",
    "Encoder",
    "FFmpegEncoder",
    "ResultPublisher",
    "JobConsumer",
    "MessageState",
]
