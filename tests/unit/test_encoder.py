"""Unit tests for the ffmpeg encoder adapter and ladder builder."""

import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from conftest import StubEncoder
from src.shared.config import Settings
from src.shared.exceptions import EncodeError
from src.transcoder.encoder import FFmpegEncoder, encoder_from_settings
from src.transcoder.ladder_builder import build_renditions
from src.transcoder.renditions import RENDITION_PROFILES, resolve_ladder


class TestFFmpegCommands:
    """Tests for ffmpeg argument construction."""

    def test_hls_command(self, tmp_path: Path):
        encoder = FFmpegEncoder(ffmpeg_path="/usr/bin/ffmpeg", segment_seconds=4)

        command = encoder.build_hls_command(
            tmp_path / "source.mp4",
            tmp_path / "720p",
            RENDITION_PROFILES["720p"],
        )

        assert command[0] == "/usr/bin/ffmpeg"
        assert command[command.index("-vf") + 1] == "scale=-2:720"
        assert command[command.index("-c:v") + 1] == "libx264"
        assert command[command.index("-b:v") + 1] == "2800k"
        assert command[command.index("-c:a") + 1] == "aac"
        assert command[command.index("-b:a") + 1] == "128k"
        assert command[command.index("-hls_time") + 1] == "4"
        assert command[command.index("-hls_playlist_type") + 1] == "vod"
        assert command[command.index("-hls_segment_filename") + 1] == str(tmp_path / "720p" / "segment_%03d.ts")
        assert command[-1] == str(tmp_path / "720p" / "index.m3u8")

    def test_thumbnail_command(self, tmp_path: Path):
        encoder = FFmpegEncoder()

        command = encoder.build_thumbnail_command(tmp_path / "in.mp4", tmp_path / "thumb.jpg")

        assert command[command.index("-ss") + 1] == "1"
        assert command[command.index("-frames:v") + 1] == "1"
        assert command[-1] == str(tmp_path / "thumb.jpg")

    def test_from_settings(self):
        settings = Settings(ffmpeg_path="/opt/ffmpeg", encode_timeout_seconds=120, hls_segment_seconds=10)

        encoder = encoder_from_settings(settings)

        assert encoder.ffmpeg_path == "/opt/ffmpeg"
        assert encoder.timeout_seconds == 120
        assert encoder.segment_seconds == 10


class TestFFmpegFailures:
    """Tests for subprocess failures surfacing as EncodeError."""

    @patch("src.transcoder.encoder.subprocess.run")
    def test_nonzero_exit(self, mock_run: MagicMock, tmp_path: Path):
        mock_run.return_value = subprocess.CompletedProcess(
            args=[], returncode=1, stdout="", stderr="Invalid data found when processing input"
        )

        with pytest.raises(EncodeError) as exc_info:
            FFmpegEncoder().encode(tmp_path / "in.mp4", tmp_path, RENDITION_PROFILES["360p"])

        assert exc_info.value.details["returncode"] == 1
        assert "Invalid data" in exc_info.value.details["stderr"]
        assert exc_info.value.details["rendition"] == "360p"

    @patch("src.transcoder.encoder.subprocess.run")
    def test_timeout(self, mock_run: MagicMock, tmp_path: Path):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="ffmpeg", timeout=5)

        with pytest.raises(EncodeError) as exc_info:
            FFmpegEncoder(timeout_seconds=5).encode(tmp_path / "in.mp4", tmp_path, RENDITION_PROFILES["360p"])

        assert exc_info.value.details["timeout_seconds"] == 5

    @patch("src.transcoder.encoder.subprocess.run")
    def test_missing_binary(self, mock_run: MagicMock, tmp_path: Path):
        mock_run.side_effect = FileNotFoundError("ffmpeg")

        with pytest.raises(EncodeError, match="not found"):
            FFmpegEncoder().encode(tmp_path / "in.mp4", tmp_path, RENDITION_PROFILES["360p"])

    @patch("src.transcoder.encoder.subprocess.run")
    def test_thumbnail_without_output(self, mock_run: MagicMock, tmp_path: Path):
        mock_run.return_value = subprocess.CompletedProcess(args=[], returncode=0, stdout="", stderr="")

        with pytest.raises(EncodeError, match="no thumbnail"):
            FFmpegEncoder().extract_thumbnail(tmp_path / "in.mp4", tmp_path / "thumb.jpg")


class TestLadderBuilder:
    """Tests for driving the encoder over a ladder."""

    def test_builds_in_ladder_order(self, tmp_path: Path):
        encoder = StubEncoder()

        labels = build_renditions(encoder, tmp_path / "in.mp4", tmp_path / "out", resolve_ladder(["720p", "360p"]))

        assert labels == ["720p", "360p"]
        assert encoder.encoded == ["720p", "360p"]
        assert (tmp_path / "out" / "720p" / "index.m3u8").is_file()
        assert (tmp_path / "out" / "360p" / "segment_001.ts").is_file()

    def test_stops_at_first_failure(self, tmp_path: Path):
        encoder = StubEncoder(fail_on="720p")

        with pytest.raises(EncodeError):
            build_renditions(encoder, tmp_path / "in.mp4", tmp_path / "out", resolve_ladder(["1080p", "720p", "360p"]))

        assert encoder.encoded == ["1080p", "720p"]
        assert not (tmp_path / "out" / "360p").exists()

    def test_incomplete_playlist_rejected(self, tmp_path: Path):
        encoder = StubEncoder(playlist="#EXTM3U\n#EXTINF:6.0,\nsegment_000.ts\n")

        with pytest.raises(EncodeError) as exc_info:
            build_renditions(encoder, tmp_path / "in.mp4", tmp_path / "out", resolve_ladder(["480p"]))

        assert "Missing ENDLIST" in exc_info.value.details["failed_checks"]

    def test_missing_playlist_rejected(self, tmp_path: Path):
        encoder = MagicMock()

        with pytest.raises(EncodeError, match="no index.m3u8"):
            build_renditions(encoder, tmp_path / "in.mp4", tmp_path / "out", resolve_ladder(["480p"]))
