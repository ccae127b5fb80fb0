"""Page and category-filter state for the image gallery."""

from dataclasses import dataclass, field

from artai_client.domain.resources import Paginated
from artai_client.services.cache import CacheKey

IMAGE_LIST_PREFIX: CacheKey = ("server-images",)


@dataclass
class PaginationController:
    """Tracks the current page and filter, clamped to the observed page count."""

    current_page: int = 1
    category_id: int | None = None
    last_page: int = 1
    _generation: int = field(default=0, init=False)

    @property
    def key(self) -> CacheKey:
        """Cache key of the listing the controller currently points at."""
        return (*IMAGE_LIST_PREFIX, self.current_page, self.category_id)

    @property
    def generation(self) -> int:
        """Counter bumped on every page or filter change."""
        return self._generation

    @property
    def has_next(self) -> bool:
        return self.current_page < self.last_page

    @property
    def has_previous(self) -> bool:
        return self.current_page > 1

    def select_category(self, category_id: int | None) -> None:
        """Switch the filter; a new filter always starts from page 1."""
        if category_id == self.category_id and self.current_page == 1:
            return
        self.category_id = category_id
        self.current_page = 1
        self.last_page = 1
        self._generation += 1

    def next_page(self) -> bool:
        """Advance one page; a no-op on the last page."""
        return self.go_to(self.current_page + 1)

    def previous_page(self) -> bool:
        """Go back one page; a no-op on page 1."""
        return self.go_to(self.current_page - 1)

    def go_to(self, page: int) -> bool:
        """Move to ``page`` if it lies within bounds; return whether it moved."""
        if page < 1 or page > self.last_page or page == self.current_page:
            return False
        self.current_page = page
        self._generation += 1
        return True

    def observe(self, envelope: Paginated[object]) -> None:
        """Record the server's page count and pull the current page into range."""
        self.last_page = max(1, envelope.last_page)
        if self.current_page > self.last_page:
            self.current_page = self.last_page
            self._generation += 1
