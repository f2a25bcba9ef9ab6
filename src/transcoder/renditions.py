"""HLS rendition ladder configuration.

Defines the fixed per-label encoding table. The ladder for a job is the
order supplied in the upload event, falling back to the canonical
1080p/720p/480p/360p ladder. Ladder order is preserved everywhere,
including the master manifest; nothing is re-sorted by bitrate.
"""

from ..shared.exceptions import EventValidationError
from ..shared.models import RenditionSpec

# =============================================================================
# Rendition table (H.264 video + AAC audio)
# =============================================================================

RENDITION_PROFILES: dict[str, RenditionSpec] = {
    # 1080p Full HD - Desktop/TV
    "1080p": RenditionSpec(
        label="1080p",
        width=1920,
        height=1080,
        video_bitrate_kbps=5000,
        audio_bitrate_kbps=192,
    ),
    # 720p HD - Tablet/Good Mobile
    "720p": RenditionSpec(
        label="720p",
        width=1280,
        height=720,
        video_bitrate_kbps=2800,
        audio_bitrate_kbps=128,
    ),
    # 480p SD - Mobile/Poor Connection
    "480p": RenditionSpec(
        label="480p",
        width=854,
        height=480,
        video_bitrate_kbps=1400,
        audio_bitrate_kbps=96,
    ),
    # 360p Low - Very Poor Connection
    "360p": RenditionSpec(
        label="360p",
        width=640,
        height=360,
        video_bitrate_kbps=800,
        audio_bitrate_kbps=64,
    ),
}

DEFAULT_LADDER: tuple[str, ...] = ("1080p", "720p", "480p", "360p")

# Renditions the playback service will proxy
ALLOWED_RENDITIONS: frozenset[str] = frozenset(DEFAULT_LADDER)


def resolve_ladder(resolutions: list[str] | None) -> list[RenditionSpec]:
    """Build the rendition ladder for a job.

    Args:
        resolutions: Labels from the upload event, in encode order.
            Empty or None selects the default ladder.

    Returns:
        Rendition specs in ladder order, duplicates collapsed

    Raises:
        EventValidationError: If a label has no encoding profile

    Example:
        >>> [r.label for r in resolve_ladder(["720p", "360p", "720p"])]
        ['720p', '360p']
    """
    labels = list(resolutions) if resolutions else list(DEFAULT_LADDER)

    unknown = [label for label in labels if label not in RENDITION_PROFILES]
    if unknown:
        raise EventValidationError(
            f"Unsupported resolutions: {unknown}",
            {"unsupported": unknown, "allowed": list(DEFAULT_LADDER)},
        )

    ladder: list[RenditionSpec] = []
    seen: set[str] = set()
    for label in labels:
        if label not in seen:
            seen.add(label)
            ladder.append(RENDITION_PROFILES[label])

    return ladder


def bandwidth_for(label: str) -> int:
    """Advertised bandwidth for a label; 0 for labels outside the table."""
    profile = RENDITION_PROFILES.get(label)
    return profile.bandwidth if profile else 0


def resolution_for(label: str) -> str:
    """Resolution string for a label; empty for labels outside the table."""
    profile = RENDITION_PROFILES.get(label)
    return profile.resolution if profile else ""
