"""Cached reads and cache-invalidating mutations for the image gallery."""

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TypeVar

from artai_client.adapters.artai_client import ArtaiClient, UploadFile
from artai_client.domain.resources import (
    Category,
    ImageCategories,
    ImageHistoryItem,
    ImageItem,
    LikeInfo,
    MutationResult,
    Paginated,
    ReferenceImage,
    SessionRecord,
    Tag,
)
from artai_client.services.cache import CacheCoordinator, CacheKey, CacheRead
from artai_client.services.categories import (
    CategorySetReconciler,
    image_categories_key,
)
from artai_client.services.pagination import IMAGE_LIST_PREFIX, PaginationController

T = TypeVar("T")

CATEGORIES_KEY: CacheKey = ("categories",)
TAGS_KEY: CacheKey = ("tags",)
REFERENCE_IMAGES_PREFIX: CacheKey = ("reference-images",)
SESSIONS_PREFIX: CacheKey = ("sessions",)

_logger = logging.getLogger(__name__)


def image_key(image_id: int) -> CacheKey:
    return ("image", image_id)


def image_likes_key(image_id: int) -> CacheKey:
    return ("image-likes", image_id)


def image_history_key(image_id: int) -> CacheKey:
    return ("image-history", image_id)


@dataclass
class GalleryService:
    """Serves gallery data from the cache and keeps it consistent after writes.

    Each mutation names the cache keys it makes stale; they are invalidated
    only after the server confirmed the write.
    """

    client: ArtaiClient
    cache: CacheCoordinator
    pagination: PaginationController
    categories_reconciler: CategorySetReconciler
    list_stale_time: timedelta = timedelta(minutes=5)
    taxonomy_stale_time: timedelta = timedelta(minutes=10)
    displayed: Paginated[ImageItem] | None = field(default=None, init=False)

    # Listing

    def view(self) -> CacheRead:
        """Snapshot of the current page, showing the previous page while loading."""
        page = self.pagination.current_page
        category_id = self.pagination.category_id
        return self.cache.read(
            self.pagination.key,
            self.list_stale_time,
            lambda: self.client.list_images(page=page, category_id=category_id),
            placeholder=self.displayed,
        )

    async def load_page(self) -> Paginated[ImageItem] | None:
        """Load the page the controller points at.

        Returns ``None`` when the page or filter changed while the request was
        in flight; the late result never replaces what is displayed.
        """
        key = self.pagination.key
        value = await self.view().result()
        if self.pagination.key != key:
            _logger.debug("Discarding listing for %s; now showing %s", key, self.pagination.key)
            return None
        if not isinstance(value, Paginated):
            raise TypeError(f"Unexpected cached value for {key}")
        page = value.clamped()
        self.pagination.observe(page)
        if self.pagination.key != key:
            return await self.load_page()
        self.displayed = page
        return page

    async def next_page(self) -> Paginated[ImageItem] | None:
        """Advance and load; stays put on the last page."""
        self.pagination.next_page()
        return await self.load_page()

    async def previous_page(self) -> Paginated[ImageItem] | None:
        """Go back and load; stays put on page 1."""
        self.pagination.previous_page()
        return await self.load_page()

    async def select_category(self, category_id: int | None) -> Paginated[ImageItem] | None:
        """Filter by category (``None`` for all) starting from page 1."""
        self.pagination.select_category(category_id)
        return await self.load_page()

    # Reads

    async def categories(self) -> list[Category]:
        return await self._fetch(
            CATEGORIES_KEY, self.taxonomy_stale_time, self.client.get_categories
        )

    async def tags(self) -> list[Tag]:
        return await self._fetch(TAGS_KEY, self.taxonomy_stale_time, self.client.get_tags)

    def image_url(self, image: ImageItem | ReferenceImage) -> str:
        """Absolute URL of an image file on the asset host."""
        return self.client.asset_url(image.file_path)

    async def image(self, image_id: int) -> ImageItem:
        return await self._fetch(
            image_key(image_id),
            self.list_stale_time,
            lambda: self.client.get_image(image_id),
        )

    async def image_categories(self, image_id: int) -> ImageCategories:
        return await self.categories_reconciler.assigned(image_id)

    async def image_likes(self, image_id: int) -> LikeInfo:
        return await self._fetch(
            image_likes_key(image_id),
            self.list_stale_time,
            lambda: self.client.get_image_likes(image_id),
        )

    async def image_history(self, image_id: int) -> list[ImageHistoryItem]:
        return await self._fetch(
            image_history_key(image_id),
            self.list_stale_time,
            lambda: self.client.get_image_history(image_id),
        )

    async def reference_images(
        self, page: int = 1, user_id: int | None = None
    ) -> Paginated[ReferenceImage]:
        listing = await self._fetch(
            (*REFERENCE_IMAGES_PREFIX, page, user_id),
            self.list_stale_time,
            lambda: self.client.list_reference_images(user_id=user_id, page=page),
        )
        return listing.clamped()

    async def sessions(
        self, page: int = 1, user_id: int | None = None
    ) -> Paginated[SessionRecord]:
        listing = await self._fetch(
            (*SESSIONS_PREFIX, page, user_id),
            self.list_stale_time,
            lambda: self.client.list_sessions(user_id=user_id, page=page),
        )
        return listing.clamped()

    # Mutations

    async def upload_image(  # noqa: PLR0913
        self,
        file: UploadFile,
        title: str | None = None,
        description: str | None = None,
        status: str | None = None,
        is_public: bool | None = None,
        category_id: int | None = None,
    ) -> ImageItem:
        return await self._mutate(
            self.client.create_image(
                file,
                title=title,
                description=description,
                status=status,
                is_public=is_public,
                category_id=category_id,
            ),
            [IMAGE_LIST_PREFIX],
        )

    async def update_image(
        self, image_id: int, *, file: UploadFile | None = None, **changes: object
    ) -> ImageItem:
        return await self._mutate(
            self.client.update_image(image_id, file=file, **changes),
            [IMAGE_LIST_PREFIX, image_key(image_id)],
        )

    async def delete_image(self, image_id: int) -> MutationResult:
        """Delete an image and every cached view that could still show it."""
        return await self._mutate(
            self.client.delete_image(image_id),
            [
                IMAGE_LIST_PREFIX,
                image_key(image_id),
                image_categories_key(image_id),
                image_likes_key(image_id),
                image_history_key(image_id),
            ],
        )

    async def generate(  # noqa: PLR0913
        self,
        prompt: str | None = None,
        reference: UploadFile | None = None,
        image: UploadFile | None = None,
        title: str | None = None,
        is_public: bool | None = None,
        category_id: int | None = None,
    ) -> ImageItem:
        return await self._mutate(
            self.client.generate(
                prompt=prompt,
                reference=reference,
                image=image,
                title=title,
                is_public=is_public,
                category_id=category_id,
            ),
            [IMAGE_LIST_PREFIX],
        )

    async def edit_image(self, image_id: int, file: UploadFile) -> ImageItem:
        return await self._mutate(
            self.client.edit_image(image_id, file),
            [IMAGE_LIST_PREFIX, image_key(image_id), image_history_key(image_id)],
        )

    async def add_history(
        self, image_id: int, action: str | None = None, file: UploadFile | None = None
    ) -> ImageHistoryItem:
        return await self._mutate(
            self.client.add_image_history(image_id, action=action, file=file),
            [image_history_key(image_id)],
        )

    async def create_category(
        self, name: str, description: str | None = None
    ) -> Category:
        """Create a category and switch the listing filter to it."""
        category = await self._mutate(
            self.client.create_category(name, description=description),
            [CATEGORIES_KEY],
        )
        self.pagination.select_category(category.id)
        return category

    async def create_tag(self, name: str) -> Tag:
        return await self._mutate(self.client.create_tag(name), [TAGS_KEY])

    async def assign_category(self, image_id: int, category_id: int) -> ImageCategories:
        return await self.categories_reconciler.add(image_id, category_id)

    async def unassign_category(
        self, image_id: int, category_id: int
    ) -> ImageCategories:
        return await self.categories_reconciler.remove(image_id, category_id)

    async def like(self, image_id: int) -> MutationResult:
        return await self._mutate(
            self.client.like_image(image_id), [image_likes_key(image_id)]
        )

    async def unlike(self, image_id: int) -> MutationResult:
        return await self._mutate(
            self.client.unlike_image(image_id), [image_likes_key(image_id)]
        )

    async def add_reference_image(
        self, file: UploadFile, description: str | None = None
    ) -> ReferenceImage:
        return await self._mutate(
            self.client.create_reference_image(file, description=description),
            [REFERENCE_IMAGES_PREFIX],
        )

    async def delete_session(self, session_id: int) -> MutationResult:
        return await self._mutate(
            self.client.delete_session(session_id), [SESSIONS_PREFIX]
        )

    async def _fetch(
        self, key: CacheKey, stale_time: timedelta, fetcher: Callable[[], Awaitable[T]]
    ) -> T:
        return await self.cache.fetch(key, stale_time, fetcher)  # type: ignore[return-value]

    async def _mutate(self, call: Awaitable[T], invalidates: Iterable[CacheKey]) -> T:
        result = await call
        self.cache.invalidate(invalidates)
        return result
