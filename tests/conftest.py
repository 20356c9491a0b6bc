"""
Shared fixtures and helpers for the relay service tests.

Upstream providers are simulated with ``httpx.MockTransport`` so every test
runs offline. Live provider checks live in test_live_providers.py.
"""

import pathlib
import sys
from typing import Callable, Dict, List, Optional, Tuple, Union

import httpx
import pytest

# ─── Path setup (must happen before any app import) ──────────────────────────

_ROOT = pathlib.Path(__file__).parent.parent
sys.path.insert(0, str(_ROOT))

from app.config import Settings  # noqa: E402

# ─── Constants ───────────────────────────────────────────────────────────────

TEST_VIDEO_ID = "dQw4w9WgXcQ"
TEST_VIDEO_URL = f"https://www.youtube.com/watch?v={TEST_VIDEO_ID}"

INVIDIOUS = "https://inv.test"
PIPED = "https://piped.test"
MEDIA_HOST = "https://media.test"

RouteResult = Union[httpx.Response, Callable[[httpx.Request], httpx.Response], Exception]


# ─── Fake upstream ───────────────────────────────────────────────────────────

class FakeUpstream:
    """
    Routes requests by "host + path" prefix to canned responses and records
    every request it sees. Unrouted requests get a 404.
    """

    def __init__(self) -> None:
        self.routes: List[Tuple[str, RouteResult]] = []
        self.calls: List[httpx.Request] = []
        self.opened: List[httpx.Response] = []

    def add(self, prefix: str, result: RouteResult) -> "FakeUpstream":
        self.routes.append((prefix, result))
        return self

    def json(self, prefix: str, payload, status: int = 200) -> "FakeUpstream":
        return self.add(prefix, httpx.Response(status, json=payload))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        target = f"{request.url.scheme}://{request.url.host}{request.url.path}"
        for prefix, result in self.routes:
            if target.startswith(prefix):
                if isinstance(result, Exception):
                    raise result
                response = result(request) if callable(result) else result
                # Fresh copy so a route can be hit more than once
                if not callable(result):
                    response = httpx.Response(
                        result.status_code, headers=result.headers, content=result.content
                    )
                self.opened.append(response)
                return response
        return httpx.Response(404, json={"error": "not found"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport())

    def hits(self, prefix: str) -> int:
        return sum(
            1 for r in self.calls
            if f"{r.url.scheme}://{r.url.host}{r.url.path}".startswith(prefix)
        )


def invidious_payload(
    title: Optional[str] = "Invidious Title",
    itags: Tuple[str, ...] = ("22", "18"),
    adaptive: Tuple[str, ...] = ("140",),
    **extra,
) -> Dict:
    payload = {
        "title": title,
        "author": "Invidious Author",
        "lengthSeconds": 212,
        "viewCount": 1_500_000_000,
        "videoThumbnails": [
            {"quality": "default", "url": "https://inv.test/vi/small.jpg", "width": 120},
            {"quality": "maxres", "url": "https://inv.test/vi/maxres.jpg", "width": 1280},
        ],
        "formatStreams": [
            {"itag": itag, "url": f"/latest_version?id={TEST_VIDEO_ID}&itag={itag}&local=true"}
            for itag in itags
        ],
        "adaptiveFormats": [
            {"itag": itag, "url": f"/latest_version?id={TEST_VIDEO_ID}&itag={itag}&local=true"}
            for itag in adaptive
        ],
    }
    payload.update(extra)
    return payload


def piped_payload(
    title: Optional[str] = "Piped Title",
    video_itags: Tuple[int, ...] = (22, 18),
    audio_itags: Tuple[int, ...] = (140,),
    **extra,
) -> Dict:
    payload = {
        "title": title,
        "uploader": "Piped Uploader",
        "duration": 212,
        "views": 2_300_000,
        "thumbnailUrl": "https://piped.test/thumb.jpg",
        "videoStreams": [
            {"itag": itag, "url": f"{MEDIA_HOST}/piped/{itag}", "videoOnly": False}
            for itag in video_itags
        ],
        "audioStreams": [
            {"itag": itag, "url": f"{MEDIA_HOST}/piped/{itag}"}
            for itag in audio_itags
        ],
    }
    payload.update(extra)
    return payload


# ─── Fixtures ────────────────────────────────────────────────────────────────

@pytest.fixture
def settings() -> Settings:
    """Two HTTP providers plus oEmbed; yt-dlp and cobalt disabled."""
    return Settings(
        invidious_instances=[INVIDIOUS],
        piped_instances=[PIPED],
        enable_ytdlp=False,
        cobalt_api_url=None,
        provider_timeout_seconds=2.0,
        relay_connect_timeout_seconds=2.0,
        relay_read_timeout_seconds=2.0,
        relay_chunk_size=4,
    )


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def api(settings, upstream):
    """TestClient wired to the fake upstream and test settings."""
    from fastapi.testclient import TestClient

    from app.config import get_settings
    from app.main import app

    app.dependency_overrides[get_settings] = lambda: settings
    app.state.upstream_transport = upstream.transport()
    with TestClient(app, raise_server_exceptions=False) as client:
        yield client
    app.dependency_overrides.clear()
    app.state.upstream_transport = None
