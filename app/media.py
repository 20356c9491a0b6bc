"""
Media stream location resolution.

Every (provider, selector) pair is one attempt. Attempts are ordered provider
first, then selector by descending quality, so a provider's lower tier is
tried before the next provider's higher tier:

  P1/720p → P1/360p → P2/720p → P2/360p → ...

The first attempt that yields a usable stream wins. When every attempt fails
the caller gets None, which the API reports as 503.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import httpx

from .cascade import Attempt, first_success
from .config import Settings
from .models import (
    ErrorCode,
    ErrorDetail,
    MediaKind,
    MediaRequest,
    ProviderKind,
    ResolvedLocation,
    StreamSelector,
)
from .providers import Provider, build_providers
from .stream_selectors import build_filename, candidate_selectors, mime_type_for, parse_quality_hint
from .url_identifier import parse_video_url

logger = logging.getLogger(__name__)


@dataclass
class ResolvedStream:
    """An opened upstream body. Owned by exactly one relay, which must close it."""
    location: ResolvedLocation
    response: httpx.Response

    async def aclose(self) -> None:
        await self.response.aclose()


def build_media_request(
    url: Optional[str], media_kind: Optional[str], quality: Optional[str] = None
) -> Tuple[Optional[MediaRequest], Optional[ErrorDetail]]:
    """Validate raw request fields. Input errors are returned, never raised."""
    video_id, error = parse_video_url(url)
    if error:
        return None, error

    if not media_kind or media_kind.strip().lower() not in (k.value for k in MediaKind):
        return None, ErrorDetail(
            code=ErrorCode.INVALID_MEDIA_KIND,
            message='media_kind must be either "audio" or "video"',
            is_transient=False,
        )
    kind = MediaKind(media_kind.strip().lower())

    if kind == MediaKind.VIDEO:
        _, error = parse_quality_hint(quality)
        if error:
            return None, error
    else:
        quality = None

    return MediaRequest(video_id=video_id, media_kind=kind, quality_hint=quality or None), None


class MediaLocationResolver:
    """Cascades through media providers and stream selectors until one works."""

    def __init__(
        self,
        providers: List[Provider],
        timeout: float = 10.0,
        open_timeout: float = 15.0,
    ):
        self.providers = [p for p in providers if p.supports_media]
        self.timeout = timeout
        self.open_timeout = open_timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "MediaLocationResolver":
        providers = build_providers(
            settings.endpoints(ProviderKind.MEDIA),
            timeout=settings.provider_timeout_seconds,
            cobalt_api_token=settings.cobalt_api_token,
        )
        return cls(
            providers,
            timeout=settings.provider_timeout_seconds,
            open_timeout=settings.relay_connect_timeout_seconds,
        )

    def _plan(self, request: MediaRequest) -> List[Tuple[Provider, StreamSelector]]:
        selectors = candidate_selectors(request)
        return [(provider, selector) for provider in self.providers for selector in selectors]

    def _location(self, request: MediaRequest, provider: Provider, selector: StreamSelector, url: str) -> ResolvedLocation:
        return ResolvedLocation(
            url=url,
            provider=provider.name,
            selector=selector,
            filename=build_filename(request.video_id, selector),
            mime_type=mime_type_for(request.media_kind),
        )

    async def resolve_location(self, client: httpx.AsyncClient, request: MediaRequest) -> Optional[ResolvedLocation]:
        """Indirection mode: find a provider-hosted URL without opening it."""

        def make(provider: Provider, selector: StreamSelector) -> Attempt[ResolvedLocation]:
            async def run():
                url, error = await provider.locate_stream(client, request.video_id, selector)
                if error:
                    return None, error
                return self._location(request, provider, selector, url), None
            return Attempt(name=f"{provider.name} [{selector.quality}/itag {selector.itag}]", run=run)

        outcome = await first_success(
            (make(p, s) for p, s in self._plan(request)),
            timeout=self.timeout,
            label=f"Media {request.video_id} {request.media_kind.value}",
        )
        return outcome.value

    async def open_stream(self, client: httpx.AsyncClient, request: MediaRequest) -> Optional[ResolvedStream]:
        """
        Direct mode: locate a stream and open its body.

        A located URL only counts once the upstream answers 200/206; any other
        status closes the response and moves on to the next attempt.
        """

        def make(provider: Provider, selector: StreamSelector) -> Attempt[ResolvedStream]:
            async def run():
                url, error = await provider.locate_stream(client, request.video_id, selector)
                if error:
                    return None, error
                return await self._open(client, self._location(request, provider, selector, url))
            return Attempt(name=f"{provider.name} [{selector.quality}/itag {selector.itag}]", run=run)

        outcome = await first_success(
            (make(p, s) for p, s in self._plan(request)),
            timeout=self.timeout + self.open_timeout,
            label=f"Media {request.video_id} {request.media_kind.value}",
        )
        return outcome.value

    async def _open(
        self, client: httpx.AsyncClient, location: ResolvedLocation
    ) -> Tuple[Optional[ResolvedStream], Optional[str]]:
        try:
            upstream_request = client.build_request("GET", location.url)
            response = await client.send(upstream_request, stream=True, follow_redirects=True)
        except httpx.HTTPError as e:
            return None, f"stream open failed: {e.__class__.__name__}: {e}"

        if response.status_code not in (200, 206):
            await response.aclose()
            return None, f"stream HTTP {response.status_code}"
        return ResolvedStream(location=location, response=response), None
