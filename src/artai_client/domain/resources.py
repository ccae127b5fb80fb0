"""Pydantic models for server-owned Artai resources."""

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class User(BaseModel):
    """Authenticated account record."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    email: str
    role: str | None = None


class ImageItem(BaseModel):
    """Image record."""

    id: int
    user_id: int
    title: str | None = None
    description: str | None = None
    file_path: str
    status: str | None = None
    is_public: bool | None = None
    category_id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


class ImageHistoryItem(BaseModel):
    """Single entry of an image's edit history."""

    id: int
    image_id: int
    user_id: int
    action: str
    file_path: str | None = None
    created_at: str | None = None


class Category(BaseModel):
    """Image category."""

    id: int
    name: str
    description: str | None = None


class Tag(BaseModel):
    """Image tag."""

    id: int
    name: str


class LikeUser(BaseModel):
    """User entry in a like listing."""

    id: int | None = None
    username: str | None = None


class LikeInfo(BaseModel):
    """Like count and likers for an image."""

    count: int
    users: list[LikeUser] = Field(default_factory=list)


class ReferenceImage(BaseModel):
    """Reference image uploaded for generation."""

    id: int
    user_id: int
    file_path: str
    description: str | None = None
    created_at: str | None = None


class SessionRecord(BaseModel):
    """Server-side work session."""

    id: int
    user_id: int
    started_at: str | None = None
    ended_at: str | None = None
    created_at: str | None = None


class ImageCategories(BaseModel):
    """Categories currently assigned to an image."""

    image_id: int
    categories: list[Category] = Field(default_factory=list)

    @property
    def category_ids(self) -> list[int]:
        """Return assigned category ids in server order."""
        return [category.id for category in self.categories]


class Paginated(BaseModel, Generic[T]):
    """Paginated collection envelope."""

    data: list[T] = Field(default_factory=list)
    current_page: int = 1
    last_page: int = 1
    per_page: int = 0
    total: int = 0

    def clamped(self) -> "Paginated[T]":
        """Return a copy whose page numbers satisfy 1 <= current <= last."""
        last_page = max(1, self.last_page)
        current_page = min(max(1, self.current_page), last_page)
        if last_page == self.last_page and current_page == self.current_page:
            return self
        return self.model_copy(
            update={"current_page": current_page, "last_page": last_page}
        )


class AuthResult(BaseModel):
    """Result of a successful login or registration."""

    token: str
    user: User
    message: str | None = None


class MutationResult(BaseModel):
    """Acknowledgement of a mutation, with the affected record if returned."""

    model_config = ConfigDict(extra="allow")

    message: str | None = None
    url: str | None = None


class ProfileResult(BaseModel):
    """Result of a profile update; the server may rotate the token."""

    user: User
    token: str | None = None
    message: str | None = None
