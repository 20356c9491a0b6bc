"""
Upstream provider backends.

Each provider answers one or both questions for a video ID:
  fetch_metadata()  — partial display metadata
  locate_stream()   — a provider-hosted URL for one stream selector

Both return ``(value, error_message)`` tuples and never raise for upstream
failures; the cascade decides whether to move on.

Backends:
  invidious — open-source YouTube frontend, /api/v1/videos/{id}?local=true
  piped     — alternative frontend API, /streams/{id}
  ytdlp     — in-process yt-dlp extraction (no download)
  cobalt    — cobalt.tools API, media only
  oembed    — YouTube oEmbed, metadata only; universal last resort
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urljoin

import httpx
import yt_dlp

from .models import MediaKind, ProviderEndpoint, StreamSelector
from .upstream import (
    CobaltResponse,
    InvidiousVideo,
    OEmbedResponse,
    PipedStreams,
    ProviderMetadata,
    UpstreamStream,
)

logger = logging.getLogger(__name__)

MetadataResult = Tuple[Optional[ProviderMetadata], Optional[str]]
LocateResult = Tuple[Optional[str], Optional[str]]


def watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


class Provider:
    """Base provider; subclasses override the operations they support."""

    backend = ""
    supports_metadata = False
    supports_media = False

    def __init__(self, endpoint: ProviderEndpoint, timeout: float = 10.0):
        self.endpoint = endpoint
        self.timeout = timeout

    @property
    def name(self) -> str:
        return self.endpoint.name

    async def fetch_metadata(self, client: httpx.AsyncClient, video_id: str) -> MetadataResult:
        return None, f"{self.name} does not provide metadata"

    async def locate_stream(
        self, client: httpx.AsyncClient, video_id: str, selector: StreamSelector
    ) -> LocateResult:
        return None, f"{self.name} does not provide media streams"

    async def _get_json(
        self, client: httpx.AsyncClient, url: str, params: Optional[Dict[str, str]] = None
    ) -> Tuple[Optional[Any], Optional[str]]:
        try:
            resp = await client.get(
                url,
                params=params,
                timeout=self.timeout,
                follow_redirects=True,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            return None, f"{self.name} request failed: {e.__class__.__name__}: {e}"

        if resp.status_code != 200:
            return None, f"{self.name} HTTP {resp.status_code}"

        try:
            return resp.json(), None
        except ValueError:
            return None, f"{self.name} invalid JSON: {resp.text[:200]}"


class _CachedLookupProvider(Provider):
    """
    Provider whose metadata and stream list come from one API call per video.

    Instances are created per resolution, so the cache never outlives a request.
    """

    def __init__(self, endpoint: ProviderEndpoint, timeout: float = 10.0):
        super().__init__(endpoint, timeout)
        self._lookups: Dict[str, Tuple[Optional[Any], Optional[str]]] = {}

    async def _lookup(self, client: httpx.AsyncClient, video_id: str) -> Tuple[Optional[Any], Optional[str]]:
        if video_id not in self._lookups:
            try:
                self._lookups[video_id] = await self._fetch(client, video_id)
            except asyncio.CancelledError:
                # A lookup cut off by the attempt timeout is not retried for the next selector
                self._lookups[video_id] = (None, f"{self.name} lookup timed out")
                raise
        return self._lookups[video_id]

    async def _fetch(self, client: httpx.AsyncClient, video_id: str) -> Tuple[Optional[Any], Optional[str]]:
        raise NotImplementedError


class InvidiousProvider(_CachedLookupProvider):
    backend = "invidious"
    supports_metadata = True
    supports_media = True

    async def _fetch(self, client, video_id):
        data, error = await self._get_json(
            client,
            f"{self.endpoint.base_url}/api/v1/videos/{video_id}",
            # local=true makes Invidious proxy stream URLs through its own servers
            params={"local": "true"},
        )
        if error:
            return None, error
        try:
            video = InvidiousVideo.model_validate(data)
        except ValueError as e:
            return None, f"{self.name} unexpected payload: {e}"
        if video.error:
            return None, f"{self.name} error: {video.error}"
        return video, None

    async def fetch_metadata(self, client, video_id):
        video, error = await self._lookup(client, video_id)
        if error:
            return None, error
        return ProviderMetadata(
            title=video.title or None,
            author=video.author or None,
            duration_seconds=video.length_seconds,
            view_count=video.view_count,
            thumbnail=video.best_thumbnail(),
        ), None

    async def locate_stream(self, client, video_id, selector):
        video, error = await self._lookup(client, video_id)
        if error:
            return None, error
        stream = _find_stream(video.format_streams + video.adaptive_formats, selector)
        if stream is None:
            return None, f"{self.name}: itag {selector.itag} not offered"
        return urljoin(self.endpoint.base_url + "/", stream.url), None


class PipedProvider(_CachedLookupProvider):
    backend = "piped"
    supports_metadata = True
    supports_media = True

    async def _fetch(self, client, video_id):
        data, error = await self._get_json(client, f"{self.endpoint.base_url}/streams/{video_id}")
        if error:
            return None, error
        try:
            streams = PipedStreams.model_validate(data)
        except ValueError as e:
            return None, f"{self.name} unexpected payload: {e}"
        if streams.error:
            return None, f"{self.name} error: {streams.error}"
        return streams, None

    async def fetch_metadata(self, client, video_id):
        streams, error = await self._lookup(client, video_id)
        if error:
            return None, error
        return ProviderMetadata(
            title=streams.title or None,
            author=streams.uploader or None,
            duration_seconds=streams.duration,
            view_count=streams.views,
            thumbnail=streams.thumbnail_url or None,
        ), None

    async def locate_stream(self, client, video_id, selector):
        streams, error = await self._lookup(client, video_id)
        if error:
            return None, error
        pool = streams.audio_streams if selector.media_kind == MediaKind.AUDIO else streams.video_streams
        # Muxed selectors must not resolve to a video-only stream
        if selector.media_kind == MediaKind.VIDEO:
            pool = [s for s in pool if not s.video_only]
        stream = _find_stream(pool, selector)
        if stream is None:
            return None, f"{self.name}: itag {selector.itag} not offered"
        return stream.url, None


class YtDlpProvider(_CachedLookupProvider):
    """In-process yt-dlp extraction; blocking work runs in the default executor."""

    backend = "ytdlp"
    supports_metadata = True
    supports_media = True

    def _build_ytdlp_opts(self) -> Dict[str, Any]:
        return {
            "user_agent": (
                "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
                "AppleWebKit/537.36 (KHTML, like Gecko) "
                "Chrome/120.0.0.0 Safari/537.36"
            ),
            "extractor_args": {"youtube": {"player_client": ["ios", "tv_embedded", "mweb"]}},
            "http_headers": {"Accept-Language": "en-US,en;q=0.9"},
            "skip_download": True,
            "quiet": True,
            "no_warnings": True,
            "socket_timeout": self.timeout,
        }

    async def _fetch(self, client, video_id):
        opts = self._build_ytdlp_opts()

        def _extract():
            with yt_dlp.YoutubeDL(opts) as ydl:
                return ydl.extract_info(watch_url(video_id), download=False)

        loop = asyncio.get_running_loop()
        try:
            info = await asyncio.wait_for(loop.run_in_executor(None, _extract), timeout=self.timeout)
        except asyncio.TimeoutError:
            return None, f"{self.name} timed out after {self.timeout:.0f}s"
        except yt_dlp.utils.DownloadError as e:
            return None, f"{self.name} extraction failed: {e}"

        if not info:
            return None, f"{self.name} returned no info"
        return info, None

    async def fetch_metadata(self, client, video_id):
        info, error = await self._lookup(client, video_id)
        if error:
            return None, error
        return ProviderMetadata(
            title=info.get("title") or None,
            author=info.get("channel") or info.get("uploader") or None,
            duration_seconds=_as_int(info.get("duration")),
            view_count=_as_int(info.get("view_count")),
            thumbnail=info.get("thumbnail") or None,
        ), None

    async def locate_stream(self, client, video_id, selector):
        info, error = await self._lookup(client, video_id)
        if error:
            return None, error
        for fmt in info.get("formats") or []:
            if str(fmt.get("format_id")) == str(selector.itag) and fmt.get("url"):
                return fmt["url"], None
        return None, f"{self.name}: format {selector.itag} not offered"


class CobaltProvider(Provider):
    """cobalt.tools API; selectors map to its videoQuality/downloadMode parameters."""

    backend = "cobalt"
    supports_media = True

    def __init__(self, endpoint: ProviderEndpoint, timeout: float = 10.0, api_token: Optional[str] = None):
        super().__init__(endpoint, timeout)
        self.api_token = api_token

    def _request_body(self, video_id: str, selector: StreamSelector) -> Dict[str, str]:
        if selector.media_kind == MediaKind.AUDIO:
            return {"url": watch_url(video_id), "downloadMode": "audio", "audioFormat": "best"}
        return {
            "url": watch_url(video_id),
            "videoQuality": str(selector.height or 720),
            "downloadMode": "auto",
            "youtubeVideoCodec": "h264",
        }

    async def locate_stream(self, client, video_id, selector):
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Api-Key {self.api_token}"

        try:
            resp = await client.post(
                self.endpoint.base_url,
                json=self._request_body(video_id, selector),
                headers=headers,
                timeout=self.timeout,
                follow_redirects=True,
            )
        except httpx.HTTPError as e:
            return None, f"{self.name} request failed: {e.__class__.__name__}: {e}"

        if resp.status_code != 200:
            return None, f"{self.name} HTTP {resp.status_code}: {resp.text[:200]}"

        try:
            data = CobaltResponse.model_validate(resp.json())
        except ValueError:
            return None, f"{self.name} invalid JSON: {resp.text[:200]}"

        if data.status == "error":
            code = data.error.get("code", str(data.error)) if isinstance(data.error, dict) else str(data.error)
            return None, f"{self.name} error: {code}"
        if data.status not in ("stream", "redirect", "tunnel", "picker"):
            return None, f"{self.name} unexpected status '{data.status}'"

        stream_url = data.stream_url()
        if not stream_url:
            return None, f"{self.name} returned no stream URL"
        return stream_url, None


class OEmbedProvider(Provider):
    """YouTube oEmbed: title, author and thumbnail for any public video."""

    backend = "oembed"
    supports_metadata = True

    async def fetch_metadata(self, client, video_id):
        data, error = await self._get_json(
            client,
            self.endpoint.base_url,
            params={"url": watch_url(video_id), "format": "json"},
        )
        if error:
            return None, error
        try:
            oembed = OEmbedResponse.model_validate(data)
        except ValueError as e:
            return None, f"{self.name} unexpected payload: {e}"
        return ProviderMetadata(
            title=oembed.title or None,
            author=oembed.author_name or None,
            thumbnail=oembed.thumbnail_url or None,
        ), None


PROVIDER_CLASSES = {
    "invidious": InvidiousProvider,
    "piped": PipedProvider,
    "ytdlp": YtDlpProvider,
    "cobalt": CobaltProvider,
    "oembed": OEmbedProvider,
}


def build_providers(
    endpoints: List[ProviderEndpoint],
    timeout: float = 10.0,
    cobalt_api_token: Optional[str] = None,
) -> List[Provider]:
    """Instantiate fresh providers for one resolution, preserving table order."""
    providers: List[Provider] = []
    for endpoint in endpoints:
        cls = PROVIDER_CLASSES.get(endpoint.backend)
        if cls is None:
            logger.warning(f"⚠️ Unknown provider backend '{endpoint.backend}' for {endpoint.name}; skipped")
            continue
        if cls is CobaltProvider:
            providers.append(CobaltProvider(endpoint, timeout, api_token=cobalt_api_token))
        else:
            providers.append(cls(endpoint, timeout))
    return providers


def _find_stream(streams: List[UpstreamStream], selector: StreamSelector) -> Optional[UpstreamStream]:
    for stream in streams:
        if stream.matches(selector.itag) and stream.url:
            return stream
    return None


def _as_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
