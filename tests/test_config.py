"""
Tests for environment-driven settings and the provider table.
"""

import pytest
from pydantic import ValidationError

from app.config import Settings
from app.models import DeliveryMode, ProviderKind


def test_defaults_from_empty_env(monkeypatch):
    for name in (
        "INVIDIOUS_INSTANCES", "PIPED_INSTANCES", "COBALT_API_URL", "COBALT_API_TOKEN",
        "ENABLE_YTDLP", "PROVIDER_TIMEOUT_SECONDS", "MEDIA_DELIVERY_MODE", "ALLOWED_ORIGINS",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()

    assert settings.delivery_mode == DeliveryMode.DIRECT
    assert settings.enable_ytdlp is True
    assert settings.cobalt_api_url is None
    assert settings.provider_timeout_seconds == 10.0
    assert settings.allowed_origins == ["*"]


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("INVIDIOUS_INSTANCES", "https://a.example/, https://b.example")
    monkeypatch.setenv("PIPED_INSTANCES", "")
    monkeypatch.setenv("COBALT_API_URL", "https://cobalt.example/")
    monkeypatch.setenv("ENABLE_YTDLP", "false")
    monkeypatch.setenv("PROVIDER_TIMEOUT_SECONDS", "3.5")
    monkeypatch.setenv("MEDIA_DELIVERY_MODE", "indirection")

    settings = Settings.from_env()

    assert settings.invidious_instances == ["https://a.example", "https://b.example"]
    assert settings.piped_instances == []
    assert settings.enable_ytdlp is False
    assert settings.provider_timeout_seconds == 3.5
    assert settings.delivery_mode == DeliveryMode.INDIRECTION


def test_provider_table_order_is_deterministic():
    settings = Settings(
        invidious_instances=["https://i1", "https://i2"],
        piped_instances=["https://p1"],
        cobalt_api_url="https://cobalt.example/",
    )

    metadata = [e.backend for e in settings.endpoints(ProviderKind.METADATA)]
    media = [e.backend for e in settings.endpoints(ProviderKind.MEDIA)]

    assert metadata == ["invidious", "invidious", "piped", "ytdlp", "oembed"]
    assert media == ["invidious", "invidious", "piped", "ytdlp", "cobalt"]
    assert settings.provider_table() == settings.provider_table()
    assert [e.name for e in settings.endpoints(ProviderKind.MEDIA)][:2] == ["invidious (i1)", "invidious (i2)"]


def test_provider_endpoints_are_immutable():
    endpoint = Settings(invidious_instances=["https://i1"], piped_instances=[]).provider_table()[0]

    with pytest.raises(ValidationError):
        endpoint.priority = 99
