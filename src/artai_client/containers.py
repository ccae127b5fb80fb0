"""Dependency container wiring for the client."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from artai_client.adapters.artai_client import ArtaiClient, HttpxArtaiClient
from artai_client.adapters.token_store import FileTokenStore, TokenStore
from artai_client.config import Settings
from artai_client.services.auth import SessionManager
from artai_client.services.cache import CacheCoordinator
from artai_client.services.categories import CategorySetReconciler
from artai_client.services.gallery import GalleryService
from artai_client.services.pagination import PaginationController


@dataclass
class AppContainer:
    """Holds client-wide dependencies."""

    settings: Settings
    token_store: TokenStore
    client: ArtaiClient
    cache: CacheCoordinator
    session_manager: SessionManager
    pagination: PaginationController
    categories: CategorySetReconciler
    gallery: GalleryService
    close_resources: Callable[[], Awaitable[None]]


def build_container(
    settings: Settings | None = None,
    token_store: TokenStore | None = None,
    client: HttpxArtaiClient | None = None,
) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    resolved_store = token_store or FileTokenStore(
        path=resolved_settings.token_path, key=resolved_settings.token_key
    )
    artai_client = client or HttpxArtaiClient.create(
        resolved_settings.api_base_url,
        timeout=resolved_settings.request_timeout_seconds,
        asset_base_url=resolved_settings.asset_base_url,
    )
    if not artai_client.asset_base_url:
        artai_client.asset_base_url = resolved_settings.asset_base_url
    cache = CacheCoordinator(default_stale_time=resolved_settings.default_stale_time)
    session_manager = SessionManager(client=artai_client, token_store=resolved_store)
    session_manager.on_logout.append(cache.clear)
    artai_client.token_provider = session_manager.current_token
    artai_client.auth_rejected_listeners.append(session_manager.handle_auth_rejected)

    pagination = PaginationController()
    categories = CategorySetReconciler(
        client=artai_client,
        cache=cache,
        stale_time=resolved_settings.image_categories_stale_time,
    )
    gallery = GalleryService(
        client=artai_client,
        cache=cache,
        pagination=pagination,
        categories_reconciler=categories,
        list_stale_time=resolved_settings.default_stale_time,
        taxonomy_stale_time=resolved_settings.taxonomy_stale_time,
    )

    async def close_resources() -> None:
        await artai_client.close()

    return AppContainer(
        settings=resolved_settings,
        token_store=resolved_store,
        client=artai_client,
        cache=cache,
        session_manager=session_manager,
        pagination=pagination,
        categories=categories,
        gallery=gallery,
        close_resources=close_resources,
    )
