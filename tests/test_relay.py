"""
Tests for StreamRelay header rewriting, incremental forwarding and release.
"""

import httpx
import pytest

from app.media import ResolvedStream
from app.models import MediaKind, ResolvedLocation, StreamSelector
from app.relay import StreamRelay

from .conftest import MEDIA_HOST, TEST_VIDEO_ID


def _location(kind=MediaKind.VIDEO):
    if kind == MediaKind.AUDIO:
        selector = StreamSelector(itag=140, quality="audio", media_kind=kind, container="m4a")
        return ResolvedLocation(
            url=f"{MEDIA_HOST}/a", provider="piped (piped.test)", selector=selector,
            filename=f"youtube_{TEST_VIDEO_ID}_audio.m4a", mime_type="audio/mp4",
        )
    selector = StreamSelector(itag=22, quality="720p", media_kind=kind, container="mp4", height=720)
    return ResolvedLocation(
        url=f"{MEDIA_HOST}/v", provider="invidious (inv.test)", selector=selector,
        filename=f"youtube_{TEST_VIDEO_ID}_720p.mp4", mime_type="video/mp4",
    )


class ChunkSource:
    """Async byte source that can fail after a number of chunks."""

    def __init__(self, chunks, fail_after=None):
        self.chunks = chunks
        self.fail_after = fail_after
        self.closed = False

    async def __aiter__(self):
        for idx, chunk in enumerate(self.chunks):
            if self.fail_after is not None and idx >= self.fail_after:
                raise httpx.ReadError("connection reset by peer")
            yield chunk

    async def aclose(self):
        self.closed = True


async def _open(source, headers=None, kind=MediaKind.VIDEO):
    client = httpx.AsyncClient(transport=httpx.MockTransport(
        lambda request: httpx.Response(200, headers=headers or {}, content=source)
    ))
    response = await client.send(client.build_request("GET", f"{MEDIA_HOST}/v"), stream=True)
    return ResolvedStream(location=_location(kind), response=response), client


@pytest.mark.asyncio
async def test_headers_rewritten_from_media_kind():
    stream, client = await _open(
        ChunkSource([b"abc"]),
        headers={"Content-Type": "application/octet-stream", "Content-Length": "3"},
        kind=MediaKind.AUDIO,
    )
    relay = StreamRelay(stream, client)
    headers = relay.headers()

    assert headers["Content-Type"] == "audio/mp4"
    assert headers["Content-Disposition"] == f'attachment; filename="youtube_{TEST_VIDEO_ID}_audio.m4a"'
    assert headers["Content-Length"] == "3"
    assert headers["Access-Control-Allow-Origin"] == "*"
    await relay.release()


@pytest.mark.asyncio
async def test_content_length_dropped_for_encoded_upstream():
    stream, client = await _open(
        ChunkSource([b"abc"]),
        headers={"Content-Length": "3", "Content-Encoding": "identity"},
    )
    relay = StreamRelay(stream, client)
    assert "Content-Length" not in relay.headers()
    await relay.release()


@pytest.mark.asyncio
async def test_bytes_forwarded_incrementally_then_released():
    stream, client = await _open(ChunkSource([b"one", b"two", b"three"]))
    relay = StreamRelay(stream, client, chunk_size=3)

    received = [chunk async for chunk in relay.iter_bytes()]

    assert b"".join(received) == b"onetwothree"
    assert len(received) >= 3
    assert relay.bytes_sent == len(b"onetwothree")
    assert stream.response.is_closed
    assert client.is_closed


@pytest.mark.asyncio
async def test_upstream_drop_ends_stream_without_retry():
    stream, client = await _open(ChunkSource([b"part1", b"part2", b"part3"], fail_after=1))
    relay = StreamRelay(stream, client, chunk_size=5)

    received = [chunk async for chunk in relay.iter_bytes()]

    assert b"".join(received) == b"part1"
    assert stream.response.is_closed
    assert client.is_closed


@pytest.mark.asyncio
async def test_caller_disconnect_closes_upstream():
    """Closing the relay generator early (caller went away) releases the upstream."""
    stream, client = await _open(ChunkSource([b"a", b"b", b"c"]))
    relay = StreamRelay(stream, client, chunk_size=1)

    iterator = relay.iter_bytes()
    assert await iterator.__anext__() == b"a"
    await iterator.aclose()

    assert stream.response.is_closed
    assert client.is_closed


@pytest.mark.asyncio
async def test_release_is_idempotent():
    stream, client = await _open(ChunkSource([b"a"]))
    relay = StreamRelay(stream, client)
    await relay.release()
    await relay.release()
    assert client.is_closed


@pytest.mark.asyncio
async def test_streaming_response_carries_headers():
    stream, client = await _open(ChunkSource([b"a"]))
    relay = StreamRelay(stream, client)
    response = relay.response()

    assert response.media_type == "video/mp4"
    assert response.headers["content-disposition"].startswith("attachment;")
    assert response.background is not None
    await relay.release()
