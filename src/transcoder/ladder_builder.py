"""Rendition ladder builder.

Drives the encoder once per rendition, in ladder order, each into its own
``<label>/`` directory under the job output root. The ladder is
all-or-nothing: the first failing rendition aborts the job so a master
playlist is never built over an incomplete set.
"""

import time
from pathlib import Path

from aws_lambda_powertools import Logger, Metrics, Tracer
from aws_lambda_powertools.metrics import MetricUnit

from ..shared.exceptions import EncodeError
from ..shared.models import RenditionSpec
from .encoder import Encoder
from .playlists import VARIANT_PLAYLIST_NAME, validate_media_playlist

logger = Logger(service="ladder-builder")
tracer = Tracer(service="ladder-builder")
metrics = Metrics(service="ladder-builder", namespace="VodPipeline")


@tracer.capture_method
def build_renditions(
    encoder: Encoder,
    input_path: Path,
    output_root: Path,
    ladder: list[RenditionSpec],
) -> list[str]:
    """Encode every rendition of the ladder.

    Args:
        encoder: Encoder capability
        input_path: Downloaded source file
        output_root: Job output directory; one subdirectory per label
        ladder: Renditions in ladder order

    Returns:
        Labels of the built renditions, in ladder order

    Raises:
        EncodeError: If any rendition fails or produces an unusable playlist
    """
    built: list[str] = []

    for profile in ladder:
        rendition_dir = output_root / profile.label
        rendition_dir.mkdir(parents=True, exist_ok=True)

        started = time.monotonic()
        encoder.encode(input_path, rendition_dir, profile)
        elapsed_ms = int((time.monotonic() - started) * 1000)

        _check_variant_output(rendition_dir, profile)

        logger.info(
            "Rendition encoded",
            extra={
                "rendition": profile.label,
                "resolution": profile.resolution,
                "duration_ms": elapsed_ms,
            },
        )
        metrics.add_metric(name="RenditionsEncoded", unit=MetricUnit.Count, value=1)
        metrics.add_metric(
            name="RenditionEncodeMilliseconds",
            unit=MetricUnit.Milliseconds,
            value=elapsed_ms,
        )
        built.append(profile.label)

    return built


def _check_variant_output(rendition_dir: Path, profile: RenditionSpec) -> None:
    """Make sure the encoder left a complete VOD playlist behind."""
    playlist = rendition_dir / VARIANT_PLAYLIST_NAME
    if not playlist.is_file():
        raise EncodeError(
            f"Encoder produced no {VARIANT_PLAYLIST_NAME} for {profile.label}",
            details={"rendition": profile.label},
        )

    result = validate_media_playlist(playlist.read_text())
    if not result["passed"]:
        failed = [c["message"] for c in result["checks"] if not c["passed"]]
        raise EncodeError(
            f"Invalid variant playlist for {profile.label}",
            details={"rendition": profile.label, "failed_checks": failed},
        )
