"""
Display metadata resolution with field-by-field provider fallback.

Providers are queried in priority order. Each successful response fills only
the fields that are still unknown, so the first provider to supply a field
wins it. Querying stops once every field is known or providers run out.
"""

import logging
from typing import List, Optional, Tuple

import httpx

from .cascade import Attempt, run_attempt
from .config import Settings
from .models import UNKNOWN, ErrorDetail, ProviderKind, VideoMetadata
from .providers import Provider, build_providers
from .stream_selectors import format_options
from .upstream import ProviderMetadata
from .url_identifier import parse_video_url

logger = logging.getLogger(__name__)

FIELDS = ("title", "author", "duration_seconds", "view_count", "thumbnail")


def format_duration(seconds: Optional[int]) -> str:
    """45 → "0:45", 125 → "2:05", 3725 → "1:02:05"; 0 or None → "Unknown"."""
    if not seconds or seconds < 0:
        return UNKNOWN
    seconds = int(seconds)
    hours, rem = divmod(seconds, 3600)
    minutes, secs = divmod(rem, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_views(views: Optional[int]) -> str:
    """950 → "950 views", 1500 → "1.5K views", 2_300_000 → "2.3M views"; 0 or None → "Unknown"."""
    if not views or views < 0:
        return UNKNOWN
    if views >= 1_000_000:
        return f"{views / 1_000_000:.1f}M views"
    if views >= 1_000:
        return f"{views / 1_000:.1f}K views"
    return f"{views} views"


def thumbnail_url(video_id: str) -> str:
    return f"https://img.youtube.com/vi/{video_id}/maxresdefault.jpg"


def merge_unknown(draft: ProviderMetadata, partial: ProviderMetadata) -> List[str]:
    """Copy fields from ``partial`` into ``draft`` where ``draft`` has none. Returns filled names."""
    filled = []
    for name in FIELDS:
        if getattr(draft, name) is not None:
            continue
        value = getattr(partial, name)
        if isinstance(value, str):
            value = value.strip() or None
        elif isinstance(value, int) and value < 0:
            value = None
        # a zero length is what live streams report; keep looking
        if name == "duration_seconds" and value == 0:
            value = None
        if value is not None:
            setattr(draft, name, value)
            filled.append(name)
    return filled


def _missing(draft: ProviderMetadata) -> List[str]:
    return [name for name in FIELDS if getattr(draft, name) is None]


class MetadataResolver:
    """Best-effort metadata for a video ID; provider failures are logged, never raised."""

    def __init__(self, providers: List[Provider], timeout: float = 10.0):
        self.providers = [p for p in providers if p.supports_metadata]
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "MetadataResolver":
        providers = build_providers(
            settings.endpoints(ProviderKind.METADATA),
            timeout=settings.provider_timeout_seconds,
            cobalt_api_token=settings.cobalt_api_token,
        )
        return cls(providers, timeout=settings.provider_timeout_seconds)

    async def resolve(self, client: httpx.AsyncClient, video_id: str) -> Tuple[VideoMetadata, bool]:
        """
        Returns (metadata, incomplete). ``incomplete`` is True when no provider
        could supply a title.
        """
        draft = ProviderMetadata()
        total = len(self.providers)

        for idx, provider in enumerate(self.providers, 1):
            missing = _missing(draft)
            if not missing:
                break
            logger.info(f"🎯 Metadata provider {idx}/{total}: {provider.name} (missing: {', '.join(missing)})")

            attempt = Attempt(
                name=provider.name,
                run=lambda p=provider: p.fetch_metadata(client, video_id),
            )
            partial, error = await run_attempt(attempt, self.timeout)
            if partial is None:
                logger.warning(f"⚠️ Metadata provider {provider.name} failed: {error[:120]}")
                continue

            filled = merge_unknown(draft, partial)
            logger.info(f"✅ {provider.name} filled: {', '.join(filled) or 'nothing new'}")

        incomplete = draft.title is None
        if incomplete:
            logger.error(f"❌ No metadata provider returned a title for {video_id}")

        metadata = VideoMetadata(
            video_id=video_id,
            title=draft.title or UNKNOWN,
            author=draft.author or UNKNOWN,
            thumbnail=draft.thumbnail or thumbnail_url(video_id),
            duration=format_duration(draft.duration_seconds),
            views=format_views(draft.view_count),
            duration_seconds=draft.duration_seconds,
            view_count=draft.view_count,
            formats=format_options(),
        )
        return metadata, incomplete

    async def resolve_url(
        self, client: httpx.AsyncClient, url: Optional[str]
    ) -> Tuple[Optional[VideoMetadata], bool, Optional[ErrorDetail]]:
        """Validate ``url`` first; a malformed URL is rejected before any provider is queried."""
        video_id, error = parse_video_url(url)
        if error:
            return None, False, error
        metadata, incomplete = await self.resolve(client, video_id)
        return metadata, incomplete, None
