"""
Incremental relay of an upstream media body to the caller.

Bytes are forwarded chunk by chunk as they arrive; the payload is never held
in memory as a whole. Content-Type comes from the media kind, not from the
upstream. If the upstream drops mid-stream the relay ends early without
retrying, since part of the body has already been sent.
"""

import logging
from typing import AsyncIterator, Dict

import httpx
from starlette.background import BackgroundTask
from fastapi.responses import StreamingResponse

from .config import CORS_HEADERS
from .media import ResolvedStream

logger = logging.getLogger(__name__)


class StreamRelay:
    """Relays one ResolvedStream; owns the upstream response and its client."""

    def __init__(self, stream: ResolvedStream, client: httpx.AsyncClient, chunk_size: int = 65536):
        self.stream = stream
        self.client = client
        self.chunk_size = chunk_size
        self.bytes_sent = 0
        self._released = False

    def headers(self) -> Dict[str, str]:
        location = self.stream.location
        upstream = self.stream.response.headers
        headers = {
            **CORS_HEADERS,
            "Content-Type": location.mime_type,
            "Content-Disposition": f'attachment; filename="{location.filename}"',
            "Cache-Control": "no-store",
            "X-Resolved-Provider": location.provider,
            "X-Resolved-Quality": location.selector.quality,
        }
        # Length is only meaningful when bytes pass through undecoded
        if upstream.get("content-length") and not upstream.get("content-encoding"):
            headers["Content-Length"] = upstream["content-length"]
        return headers

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        location = self.stream.location
        logger.info(f"📤 Relaying {location.filename} from {location.provider}")
        try:
            async for chunk in self.stream.response.aiter_bytes(self.chunk_size):
                self.bytes_sent += len(chunk)
                yield chunk
        except httpx.HTTPError as e:
            logger.warning(
                f"⚠️ Upstream dropped after {self.bytes_sent:,} bytes of {location.filename}: "
                f"{e.__class__.__name__}: {e}"
            )
        else:
            logger.info(f"✅ Relayed {location.filename} ({self.bytes_sent / 1024 / 1024:.1f} MB)")
        finally:
            await self.release()

    async def release(self) -> None:
        """Close the upstream response and client. Safe to call more than once."""
        if self._released:
            return
        self._released = True
        await self.stream.aclose()
        await self.client.aclose()

    def response(self) -> StreamingResponse:
        return StreamingResponse(
            self.iter_bytes(),
            media_type=self.stream.location.mime_type,
            headers=self.headers(),
            # runs even when the caller disconnects before the body is drained
            background=BackgroundTask(self.release),
        )
