"""Manifest rewriting and request parameter validation.

The playback API serves variant playlists at
``/playback/videos/<uploadId>/<rendition>/index.m3u8``, i.e. next to the
proxied master. Master playlist entries are therefore rewritten to the
bare relative form ``<label>/index.m3u8`` whatever form storage holds
them in (``./720p/index.m3u8``, doubled separators, absolute origin URLs).
"""

import re

from ..shared.exceptions import InvalidParameterError
from ..transcoder.renditions import ALLOWED_RENDITIONS

SEGMENT_EXTENSIONS = (".ts", ".m4s")

_LABELS = "|".join(sorted(ALLOWED_RENDITIONS, key=lambda label: int(label[:-1]), reverse=True))

# Variant reference line, optionally prefixed by a directory or origin URL
VARIANT_LINE_PATTERN = re.compile(
    rf"^(?:.*/)?({_LABELS})/+index\.m3u8(?:\?.*)?$"
)

SEGMENT_NAME_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")


def rewrite_master(content: str) -> str:
    """Rewrite variant references in a master playlist to proxy-relative paths.

    Tag lines and lines for labels outside the allowed set are left as is.

    Example:
        >>> rewrite_master("#EXTM3U\\nhttps://cdn/x/720p//index.m3u8\\n")
        '#EXTM3U\\n720p/index.m3u8\\n'
    """
    lines = content.splitlines(keepends=True)
    rewritten = []

    for line in lines:
        body = line.rstrip("\r\n")
        ending = line[len(body):]

        if body and not body.startswith("#"):
            match = VARIANT_LINE_PATTERN.match(body.strip())
            if match:
                body = f"{match.group(1)}/index.m3u8"

        rewritten.append(body + ending)

    return "".join(rewritten)


def validate_rendition(rendition: str) -> str:
    """Reject renditions outside the served ladder.

    Raises:
        InvalidParameterError: For any label not in {1080p, 720p, 480p, 360p}
    """
    if rendition not in ALLOWED_RENDITIONS:
        raise InvalidParameterError(
            "invalid rendition",
            {"rendition": rendition, "allowed": sorted(ALLOWED_RENDITIONS)},
        )
    return rendition


def validate_segment_name(segment: str) -> str:
    """Accept a bare media segment filename (``.ts`` or ``.m4s``).

    Raises:
        InvalidParameterError: For other extensions or names that could
            escape the rendition directory
    """
    if (
        not segment.endswith(SEGMENT_EXTENSIONS)
        or not SEGMENT_NAME_PATTERN.match(segment)
        or segment.startswith(".")
    ):
        raise InvalidParameterError("invalid segment", {"segment": segment})
    return segment
