"""
Static quality/format → stream selector table.

Only encodings listed here can be requested; callers pick a media kind and a
quality hint, never a raw selector.
"""

import re
from typing import Dict, List, Optional, Tuple

from .models import ErrorCode, ErrorDetail, FormatOption, MediaKind, MediaRequest, StreamSelector

DEFAULT_VIDEO_QUALITY = "720p"

# Ordered by descending quality within each kind
SELECTOR_TABLE: Dict[MediaKind, Tuple[StreamSelector, ...]] = {
    MediaKind.VIDEO: (
        StreamSelector(itag=22, quality="720p", media_kind=MediaKind.VIDEO, container="mp4", height=720),
        StreamSelector(itag=18, quality="360p", media_kind=MediaKind.VIDEO, container="mp4", height=360),
    ),
    MediaKind.AUDIO: (
        StreamSelector(itag=140, quality="audio", media_kind=MediaKind.AUDIO, container="m4a"),
    ),
}

MIME_TYPES: Dict[MediaKind, str] = {
    MediaKind.VIDEO: "video/mp4",
    MediaKind.AUDIO: "audio/mp4",
}

_QUALITY_RE = re.compile(r"^(\d{2,4})p?$")


def parse_quality_hint(hint: Optional[str]) -> Tuple[Optional[int], Optional[ErrorDetail]]:
    """
    Convert a quality hint into a maximum pixel height.

    None/empty → default quality; "best"/"max" → no cap.
    Returns (max_height, None) or (None, error).
    """
    text = (hint or "").strip().lower()
    if not text:
        text = DEFAULT_VIDEO_QUALITY
    if text in ("best", "max", "highest"):
        return 10_000, None
    match = _QUALITY_RE.match(text)
    if not match:
        return None, ErrorDetail(
            code=ErrorCode.INVALID_REQUEST,
            message=f"Unsupported quality '{hint}' (use e.g. 360p, 720p or best)",
            is_transient=False,
        )
    return int(match.group(1)), None


def candidate_selectors(request: MediaRequest) -> List[StreamSelector]:
    """
    Ordered selector candidates for a request.

    Video: every tier at or below the hint, best first. A hint below the
    lowest tier still yields the lowest tier. Audio: the single audio tier.
    """
    tiers = SELECTOR_TABLE[request.media_kind]
    if request.media_kind == MediaKind.AUDIO:
        return list(tiers)

    max_height, _ = parse_quality_hint(request.quality_hint)
    if max_height is None:
        max_height = int(DEFAULT_VIDEO_QUALITY.rstrip("p"))

    capped = [s for s in tiers if (s.height or 0) <= max_height]
    return capped or [tiers[-1]]


def mime_type_for(media_kind: MediaKind) -> str:
    return MIME_TYPES[media_kind]


def build_filename(video_id: str, selector: StreamSelector) -> str:
    """youtube_<id>_<quality>.<ext>, e.g. youtube_dQw4w9WgXcQ_720p.mp4"""
    return f"youtube_{video_id}_{selector.quality}.{selector.container}"


def format_options() -> List[FormatOption]:
    """The offered formats, as listed in metadata responses."""
    return [
        FormatOption(
            quality=s.quality,
            format=s.container,
            type=s.media_kind,
            itag=s.itag,
            container=s.container,
        )
        for kind in (MediaKind.VIDEO, MediaKind.AUDIO)
        for s in SELECTOR_TABLE[kind]
    ]
