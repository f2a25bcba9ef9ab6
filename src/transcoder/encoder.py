"""Encoder adapter around the ffmpeg binary.

The rest of the transcoder only depends on the Encoder protocol, so tests
swap in a stub that writes fake playlists. FFmpegEncoder produces one HLS
VOD rendition per call (``index.m3u8`` plus ``segment_NNN.ts``) and can
extract a single JPEG frame for the thumbnail.
"""

import subprocess
from pathlib import Path
from typing import Protocol

from aws_lambda_powertools import Logger

from ..shared.config import Settings
from ..shared.exceptions import EncodeError
from ..shared.models import RenditionSpec
from .playlists import VARIANT_PLAYLIST_NAME

logger = Logger(service="encoder")

SEGMENT_FILENAME = "segment_%03d.ts"

# Keep the tail of ffmpeg's stderr in error details
STDERR_TAIL_CHARS = 2000


class Encoder(Protocol):
    """Synchronous encoding capability."""

    def encode(self, input_path: Path, output_dir: Path, profile: RenditionSpec) -> None:
        """Encode one rendition into output_dir.

        Raises:
            EncodeError: If the rendition could not be produced
        """
        ...

    def extract_thumbnail(self, input_path: Path, output_path: Path) -> None:
        """Write a single JPEG frame from near the start of the source.

        Raises:
            EncodeError: If no frame could be extracted
        """
        ...


class FFmpegEncoder:
    """Encoder backed by an ffmpeg subprocess (libx264 + AAC, HLS VOD)."""

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        timeout_seconds: int = 3600,
        segment_seconds: int = 6,
        thumbnail_offset_seconds: float = 1.0,
    ) -> None:
        self.ffmpeg_path = ffmpeg_path
        self.timeout_seconds = timeout_seconds
        self.segment_seconds = segment_seconds
        self.thumbnail_offset_seconds = thumbnail_offset_seconds

    def build_hls_command(
        self,
        input_path: Path,
        output_dir: Path,
        profile: RenditionSpec,
    ) -> list[str]:
        """Build the ffmpeg argument list for one rendition.

        Video is scaled to the profile height keeping aspect ratio (width
        rounded to an even number), capped at the profile bitrate with a
        2x VBV buffer.
        """
        video_kbps = profile.video_bitrate_kbps
        return [
            self.ffmpeg_path,
            "-y",
            "-i", str(input_path),
            "-vf", f"scale=-2:{profile.height}",
            "-c:v", "libx264",
            "-preset", "veryfast",
            "-profile:v", "main",
            "-b:v", f"{video_kbps}k",
            "-maxrate", f"{video_kbps}k",
            "-bufsize", f"{video_kbps * 2}k",
            "-c:a", "aac",
            "-b:a", f"{profile.audio_bitrate_kbps}k",
            "-ac", "2",
            "-f", "hls",
            "-hls_time", str(self.segment_seconds),
            "-hls_playlist_type", "vod",
            "-hls_segment_filename", str(output_dir / SEGMENT_FILENAME),
            str(output_dir / VARIANT_PLAYLIST_NAME),
        ]

    def build_thumbnail_command(self, input_path: Path, output_path: Path) -> list[str]:
        """Build the ffmpeg argument list for a single-frame JPEG grab."""
        return [
            self.ffmpeg_path,
            "-y",
            "-ss", f"{self.thumbnail_offset_seconds:g}",
            "-i", str(input_path),
            "-frames:v", "1",
            "-q:v", "2",
            str(output_path),
        ]

    def encode(self, input_path: Path, output_dir: Path, profile: RenditionSpec) -> None:
        """Encode one HLS rendition into output_dir.

        Args:
            input_path: Downloaded source file
            output_dir: Existing per-rendition directory
            profile: Target rendition

        Raises:
            EncodeError: On non-zero exit, timeout, or missing ffmpeg binary
        """
        command = self.build_hls_command(input_path, output_dir, profile)
        self._run(command, {"rendition": profile.label})

    def extract_thumbnail(self, input_path: Path, output_path: Path) -> None:
        """Extract one frame at the configured offset as a JPEG."""
        command = self.build_thumbnail_command(input_path, output_path)
        self._run(command, {"output": str(output_path)})

        if not output_path.exists():
            raise EncodeError(
                "ffmpeg produced no thumbnail frame",
                details={"output": str(output_path)},
            )

    def _run(self, command: list[str], context: dict[str, str]) -> None:
        logger.debug("Running ffmpeg", extra={"command": " ".join(command), **context})

        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
            )
        except subprocess.TimeoutExpired as e:
            raise EncodeError(
                "ffmpeg timed out",
                original_error=e,
                details={"timeout_seconds": self.timeout_seconds, **context},
            )
        except FileNotFoundError as e:
            raise EncodeError(
                "ffmpeg not found - ensure FFmpeg is installed",
                original_error=e,
                details={"ffmpeg_path": self.ffmpeg_path, **context},
            )

        if result.returncode != 0:
            raise EncodeError(
                f"ffmpeg exited with status {result.returncode}",
                details={
                    "returncode": result.returncode,
                    "stderr": result.stderr[-STDERR_TAIL_CHARS:],
                    **context,
                },
            )


def encoder_from_settings(settings: Settings) -> FFmpegEncoder:
    """Create the ffmpeg encoder configured for this process."""
    return FFmpegEncoder(
        ffmpeg_path=settings.ffmpeg_path,
        timeout_seconds=settings.encode_timeout_seconds,
        segment_seconds=settings.hls_segment_seconds,
        thumbnail_offset_seconds=settings.thumbnail_offset_seconds,
    )
