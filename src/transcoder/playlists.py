"""HLS playlist synthesis and inspection.

Builds the master playlist for a finished ladder and provides the small
parsers used to check encoder output:
- Master playlist synthesis (ladder order, relative variant URIs)
- Media playlist checks (header, segments, ENDLIST)
"""

from pathlib import Path
from typing import Any

from .renditions import bandwidth_for, resolution_for

MASTER_PLAYLIST_NAME = "master.m3u8"
VARIANT_PLAYLIST_NAME = "index.m3u8"


def build_master_playlist(labels: list[str]) -> str:
    """Build the master playlist for a ladder.

    One STREAM-INF entry per label, in the order given. Bandwidth is the
    sum of the label's video and audio bitrates; labels outside the
    rendition table get BANDWIDTH=0 and no RESOLUTION attribute.

    Args:
        labels: Rendition labels in ladder order

    Returns:
        Playlist text

    Example:
        >>> print(build_master_playlist(["720p"]))
        #EXTM3U
        #EXT-X-VERSION:3
        #EXT-X-STREAM-INF:BANDWIDTH=2928000,RESOLUTION=1280x720
        720p/index.m3u8
        <BLANKLINE>
    """
    lines = ["#EXTM3U", "#EXT-X-VERSION:3"]

    for label in labels:
        attrs = f"BANDWIDTH={bandwidth_for(label)}"
        resolution = resolution_for(label)
        if resolution:
            attrs += f",RESOLUTION={resolution}"
        lines.append(f"#EXT-X-STREAM-INF:{attrs}")
        lines.append(f"{label}/{VARIANT_PLAYLIST_NAME}")

    return "\n".join(lines) + "\n"


def write_master_playlist(output_root: Path, labels: list[str]) -> Path:
    """Write ``master.m3u8`` at the root of a job's output tree."""
    path = output_root / MASTER_PLAYLIST_NAME
    path.write_text(build_master_playlist(labels))
    return path


def validate_media_playlist(content: str) -> dict[str, Any]:
    """Validate an HLS media playlist (segment list).

    Checks:
    - Valid #EXTM3U header
    - EXTINF entries for segments
    - ENDLIST tag (VOD output)

    Args:
        content: Media playlist content

    Returns:
        Validation result dictionary with "passed", "checks" and "segments"
    """
    result: dict[str, Any] = {
        "type": "hls_media",
        "passed": True,
        "checks": [],
        "segments": [],
    }

    lines = content.strip().split("\n")

    if not lines or not lines[0].startswith("#EXTM3U"):
        result["passed"] = False
        result["checks"].append({
            "check": "extm3u_header",
            "passed": False,
            "message": "Missing #EXTM3U header",
        })
        return result

    result["checks"].append({
        "check": "extm3u_header",
        "passed": True,
        "message": "#EXTM3U header present",
    })

    segments = _parse_extinf(content)
    result["segments"] = segments
    result["checks"].append({
        "check": "segments",
        "passed": len(segments) > 0,
        "message": f"Found {len(segments)} segment(s)",
    })
    if not segments:
        result["passed"] = False

    has_endlist = any(line.startswith("#EXT-X-ENDLIST") for line in lines)
    result["checks"].append({
        "check": "endlist",
        "passed": has_endlist,
        "message": "VOD playlist complete" if has_endlist else "Missing ENDLIST",
    })
    if not has_endlist:
        result["passed"] = False

    return result


def _parse_extinf(content: str) -> list[dict[str, Any]]:
    """Parse EXTINF entries from a media playlist."""
    segments = []
    lines = [line.strip() for line in content.strip().split("\n")]

    for i, line in enumerate(lines):
        if line.startswith("#EXTINF:"):
            # Format: #EXTINF:6.000,
            duration_str = line.split(":", 1)[1].split(",")[0]
            try:
                duration = float(duration_str)
            except ValueError:
                duration = 0.0

            uri = lines[i + 1] if i + 1 < len(lines) else ""
            segments.append({"duration": duration, "uri": uri})

    return segments
