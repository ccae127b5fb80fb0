"""Category assignment for images as full-set replacement."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import timedelta

from artai_client.adapters.artai_client import ArtaiClient
from artai_client.domain.resources import ImageCategories
from artai_client.services.cache import CacheCoordinator, CacheKey

_logger = logging.getLogger(__name__)


def image_categories_key(image_id: int) -> CacheKey:
    """Cache key holding one image's assigned categories."""
    return ("image-categories", image_id)


def normalize_category_ids(category_ids: Iterable[int]) -> list[int]:
    """Drop duplicate ids, keeping first-seen order."""
    return list(dict.fromkeys(category_ids))


def with_category(category_ids: Iterable[int], category_id: int) -> list[int]:
    """Return the full set after adding ``category_id``."""
    return normalize_category_ids([*category_ids, category_id])


def without_category(category_ids: Iterable[int], category_id: int) -> list[int]:
    """Return the full set after removing ``category_id``."""
    return [cid for cid in normalize_category_ids(category_ids) if cid != category_id]


@dataclass
class CategorySetReconciler:
    """Turns add/remove intents into full category sets sent to the server."""

    client: ArtaiClient
    cache: CacheCoordinator
    stale_time: timedelta = timedelta(seconds=60)

    async def assigned(self, image_id: int) -> ImageCategories:
        """Return the image's categories through the cache."""
        value = await self.cache.fetch(
            image_categories_key(image_id),
            self.stale_time,
            lambda: self.client.get_image_categories(image_id),
        )
        if not isinstance(value, ImageCategories):
            raise TypeError(f"Unexpected cached value for image {image_id}")
        return value

    async def add(self, image_id: int, category_id: int) -> ImageCategories:
        """Assign one more category to the image."""
        current = await self.assigned(image_id)
        return await self.replace(
            image_id, with_category(current.category_ids, category_id)
        )

    async def remove(self, image_id: int, category_id: int) -> ImageCategories:
        """Unassign one category from the image."""
        current = await self.assigned(image_id)
        return await self.replace(
            image_id, without_category(current.category_ids, category_id)
        )

    async def replace(
        self, image_id: int, category_ids: Iterable[int]
    ) -> ImageCategories:
        """Send the complete set and invalidate only this image's entry."""
        ids = normalize_category_ids(category_ids)
        result = await self.client.set_image_categories(image_id, ids)
        self.cache.invalidate([image_categories_key(image_id)])
        _logger.debug("Image %s categories set to %s", image_id, ids)
        return result
