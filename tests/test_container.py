"""Tests for container wiring."""

import asyncio

from artai_client.adapters.artai_client import HttpxArtaiClient
from artai_client.adapters.token_store import FileTokenStore
from artai_client.config import Settings
from artai_client.containers import build_container


def test_build_container_creates_services(settings: Settings) -> None:
    container = build_container(settings)

    assert isinstance(container.client, HttpxArtaiClient)
    assert isinstance(container.token_store, FileTokenStore)
    assert container.token_store.path == settings.token_path
    assert container.client.base_url == settings.api_base_url
    assert container.client.asset_base_url == settings.asset_base_url
    assert container.gallery.pagination is container.pagination
    asyncio.run(container.close_resources())


def test_client_reads_token_from_session_manager(settings: Settings) -> None:
    container = build_container(settings)
    client = container.client
    assert isinstance(client, HttpxArtaiClient)

    assert client.token_provider() is None
    assert container.session_manager.handle_auth_rejected in client.auth_rejected_listeners
    asyncio.run(container.close_resources())


def test_settings_read_environment(monkeypatch) -> None:  # type: ignore[no-untyped-def]
    monkeypatch.setenv("ARTAI_API_BASE_URL", "https://staging.test/api/artai")
    monkeypatch.setenv("ARTAI_TAXONOMY_STALE_SECONDS", "30")

    settings = Settings()

    assert settings.api_base_url == "https://staging.test/api/artai"
    assert settings.taxonomy_stale_time.total_seconds() == 30


def test_injected_client_gets_configured_asset_host(settings: Settings) -> None:
    client = HttpxArtaiClient.create(settings.api_base_url)

    container = build_container(settings, client=client)

    assert client.asset_base_url == "https://assets.test"
    assert container.gallery.client is client
    asyncio.run(container.close_resources())
