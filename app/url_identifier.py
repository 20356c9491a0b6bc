"""
Video URL validation and identifier extraction.

Three URL shapes are recognised:
  https://www.youtube.com/watch?v=<id>   — canonical watch page
  https://youtu.be/<id>                  — short link
  https://www.youtube.com/embed/<id>     — embedded player

Matching is done against the identifier grammar (word characters and hyphen)
rather than a full URL parser, so trailing query parameters such as
``&t=42s`` or ``?si=...`` are tolerated.
"""

import re
from typing import Optional, Tuple

from .models import ErrorCode, ErrorDetail

_URL_SHAPES = (
    re.compile(r"^https?://(?:www\.)?youtube\.com/watch\?v=([\w-]+)", re.ASCII),
    re.compile(r"^https?://youtu\.be/([\w-]+)", re.ASCII),
    re.compile(r"^https?://(?:www\.)?youtube\.com/embed/([\w-]+)", re.ASCII),
)

def validate(url: Optional[str]) -> bool:
    """True if ``url`` is one of the supported video URL shapes."""
    return extract_video_id(url) is not None


def extract_video_id(url: Optional[str]) -> Optional[str]:
    """Return the video ID embedded in ``url``, or None if it is not a supported URL."""
    if not url or not isinstance(url, str):
        return None
    text = url.strip()
    if not text:
        return None
    for pattern in _URL_SHAPES:
        match = pattern.match(text)
        if match:
            return match.group(1)
    return None


def parse_video_url(url: Optional[str]) -> Tuple[Optional[str], Optional[ErrorDetail]]:
    """
    Resolver entrypoint form of ``extract_video_id``.

    Returns (video_id, None) on success, (None, error) for missing or
    malformed input. Never raises.
    """
    if url is None or (isinstance(url, str) and not url.strip()):
        return None, ErrorDetail(
            code=ErrorCode.MISSING_FIELD,
            message="URL is required",
            is_transient=False,
        )

    video_id = extract_video_id(url)
    if video_id is None:
        return None, ErrorDetail(
            code=ErrorCode.INVALID_URL,
            message="Invalid YouTube URL",
            is_transient=False,
        )
    return video_id, None
