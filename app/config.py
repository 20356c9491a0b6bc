"""
Service configuration loaded from environment variables.

Environment variables:
  INVIDIOUS_INSTANCES            — comma-separated Invidious base URLs, tried in order
  PIPED_INSTANCES                — comma-separated Piped API base URLs, tried in order
  COBALT_API_URL                 — cobalt.tools API endpoint (media only; empty disables)
  COBALT_API_TOKEN               — cobalt.tools API key
  ENABLE_YTDLP                   — "false" disables the in-process yt-dlp provider
  PROVIDER_TIMEOUT_SECONDS       — timeout for every metadata/location lookup
  RELAY_CONNECT_TIMEOUT_SECONDS  — timeout for opening an upstream media body
  RELAY_READ_TIMEOUT_SECONDS     — per-read timeout while relaying
  RELAY_CHUNK_SIZE               — bytes per forwarded chunk
  MEDIA_DELIVERY_MODE            — "stream" (relay bytes) or "url" (return provider URL)
  ALLOWED_ORIGINS                — comma-separated CORS origins
"""

import os
from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .models import DeliveryMode, ProviderEndpoint, ProviderKind

DEFAULT_INVIDIOUS_INSTANCES = [
    "https://inv.nadeko.net",
    "https://yewtu.be",
    "https://invidious.nerdvpn.de",
]

DEFAULT_PIPED_INSTANCES = [
    "https://pipedapi.kavin.rocks",
    "https://pipedapi.in.projectsegfau.lt",
]

OEMBED_URL = "https://www.youtube.com/oembed"
YTDLP_PSEUDO_URL = "ytdlp://local"

# Permissive cross-origin headers attached to every response, errors included
CORS_HEADERS: Dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Expose-Headers": "Content-Disposition, Content-Length",
}


def _split_list(value: Optional[str], default: List[str]) -> List[str]:
    if value is None:
        return list(default)
    return [item.strip().rstrip("/") for item in value.split(",") if item.strip()]


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    invidious_instances: List[str] = Field(default_factory=lambda: list(DEFAULT_INVIDIOUS_INSTANCES))
    piped_instances: List[str] = Field(default_factory=lambda: list(DEFAULT_PIPED_INSTANCES))
    cobalt_api_url: Optional[str] = None
    cobalt_api_token: Optional[str] = None
    enable_ytdlp: bool = True
    provider_timeout_seconds: float = 10.0
    relay_connect_timeout_seconds: float = 15.0
    relay_read_timeout_seconds: float = 60.0
    relay_chunk_size: int = 65536
    delivery_mode: DeliveryMode = DeliveryMode.DIRECT
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "Settings":
        mode = os.getenv("MEDIA_DELIVERY_MODE", DeliveryMode.DIRECT.value).strip().lower()
        if mode == "direct":
            mode = DeliveryMode.DIRECT.value
        elif mode == "indirection":
            mode = DeliveryMode.INDIRECTION.value
        return cls(
            invidious_instances=_split_list(os.getenv("INVIDIOUS_INSTANCES"), DEFAULT_INVIDIOUS_INSTANCES),
            piped_instances=_split_list(os.getenv("PIPED_INSTANCES"), DEFAULT_PIPED_INSTANCES),
            cobalt_api_url=os.getenv("COBALT_API_URL") or None,
            cobalt_api_token=os.getenv("COBALT_API_TOKEN") or None,
            enable_ytdlp=_env_bool("ENABLE_YTDLP", True),
            provider_timeout_seconds=float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "10")),
            relay_connect_timeout_seconds=float(os.getenv("RELAY_CONNECT_TIMEOUT_SECONDS", "15")),
            relay_read_timeout_seconds=float(os.getenv("RELAY_READ_TIMEOUT_SECONDS", "60")),
            relay_chunk_size=int(os.getenv("RELAY_CHUNK_SIZE", "65536")),
            delivery_mode=DeliveryMode(mode),
            allowed_origins=_split_list(os.getenv("ALLOWED_ORIGINS"), ["*"]),
        )

    def provider_table(self) -> List[ProviderEndpoint]:
        """
        Build the ordered provider table.

        Metadata: invidious → piped → yt-dlp → oEmbed (always last).
        Media:    invidious → piped → yt-dlp → cobalt.
        """
        endpoints: List[ProviderEndpoint] = []
        priority = 0

        def add(name: str, backend: str, base_url: str, kinds: List[ProviderKind]) -> None:
            nonlocal priority
            priority += 1
            for kind in kinds:
                endpoints.append(ProviderEndpoint(
                    name=name, backend=backend, base_url=base_url, kind=kind, priority=priority,
                ))

        both = [ProviderKind.METADATA, ProviderKind.MEDIA]
        for instance in self.invidious_instances:
            add(f"invidious ({_host(instance)})", "invidious", instance, both)
        for instance in self.piped_instances:
            add(f"piped ({_host(instance)})", "piped", instance, both)
        if self.enable_ytdlp:
            add("yt-dlp", "ytdlp", YTDLP_PSEUDO_URL, both)
        if self.cobalt_api_url:
            add(f"cobalt ({_host(self.cobalt_api_url)})", "cobalt", self.cobalt_api_url, [ProviderKind.MEDIA])
        add("youtube oembed", "oembed", OEMBED_URL, [ProviderKind.METADATA])

        return sorted(endpoints, key=lambda e: e.priority)

    def endpoints(self, kind: ProviderKind) -> List[ProviderEndpoint]:
        return [e for e in self.provider_table() if e.kind == kind]


def _host(url: str) -> str:
    return url.split("://", 1)[-1].split("/", 1)[0]


@lru_cache()
def get_settings() -> Settings:
    return Settings.from_env()
