"""Artai REST API client.

Translates typed calls into authorized HTTP exchanges and normalizes every
outcome into a parsed record or a typed ``ArtaiError``.
"""

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Protocol, TypeVar

import httpx
from pydantic import TypeAdapter, ValidationError

from artai_client.domain.errors import (
    ArtaiError,
    AuthRejected,
    DecodeFailure,
    NetworkFailure,
    ServerFailure,
    ValidationFailure,
)
from artai_client.domain.resources import (
    AuthResult,
    Category,
    ImageCategories,
    ImageHistoryItem,
    ImageItem,
    LikeInfo,
    MutationResult,
    Paginated,
    ProfileResult,
    ReferenceImage,
    SessionRecord,
    Tag,
    User,
)

_logger = logging.getLogger(__name__)

T = TypeVar("T")

IMAGE_UPDATE_FIELDS = frozenset(
    {"title", "description", "status", "is_public", "category_id"}
)
USER_UPDATE_FIELDS = frozenset({"username", "email", "password", "role"})

_GENERIC_MESSAGE = "Request error"
_GENERIC_SERVER_MESSAGE = "Server error"


@dataclass(frozen=True)
class UploadFile:
    """File content sent as a multipart part."""

    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


@dataclass(frozen=True)
class JsonBody:
    """Response body declared and parsed as JSON."""

    value: object


@dataclass(frozen=True)
class TextBody:
    """Response body treated as opaque text."""

    value: str


ResponseBody = JsonBody | TextBody


class ArtaiClient(Protocol):
    """Interface for Artai API interactions."""

    async def register(self, username: str, email: str, password: str) -> AuthResult:
        """Create an account and return its token and user."""

    async def login(self, ident: str, password: str) -> AuthResult:
        """Exchange credentials for a token and user."""

    async def logout(self) -> MutationResult:
        """Invalidate the current token on the server."""

    async def get_user(self) -> User:
        """Return the user owning the current token."""

    async def update_user(self, **changes: object) -> ProfileResult:
        """Apply a partial profile update and return the new user record."""

    async def list_images(
        self,
        public: bool | None = None,
        user_id: int | None = None,
        category_id: int | None = None,
        page: int | None = None,
    ) -> Paginated[ImageItem]:
        """Return one page of images."""

    async def get_image(self, image_id: int) -> ImageItem:
        """Return a single image."""

    async def create_image(  # noqa: PLR0913
        self,
        file: UploadFile,
        title: str | None = None,
        description: str | None = None,
        status: str | None = None,
        is_public: bool | None = None,
        category_id: int | None = None,
    ) -> ImageItem:
        """Upload a new image."""

    async def update_image(
        self, image_id: int, *, file: UploadFile | None = None, **changes: object
    ) -> ImageItem:
        """Update an image, replacing its file when one is supplied."""

    async def delete_image(self, image_id: int) -> MutationResult:
        """Delete an image."""

    async def get_image_history(self, image_id: int) -> list[ImageHistoryItem]:
        """Return the edit history of an image."""

    async def add_image_history(
        self,
        image_id: int,
        action: str | None = None,
        file: UploadFile | None = None,
    ) -> ImageHistoryItem:
        """Append an entry to an image's history."""

    async def get_categories(self) -> list[Category]:
        """Return all categories."""

    async def create_category(
        self, name: str, description: str | None = None
    ) -> Category:
        """Create a category."""

    async def get_tags(self) -> list[Tag]:
        """Return all tags."""

    async def create_tag(self, name: str) -> Tag:
        """Create a tag."""

    async def get_image_categories(self, image_id: int) -> ImageCategories:
        """Return the categories assigned to an image."""

    async def set_image_categories(
        self, image_id: int, category_ids: Sequence[int]
    ) -> ImageCategories:
        """Replace the full category set of an image."""

    async def like_image(self, image_id: int) -> MutationResult:
        """Like an image."""

    async def unlike_image(self, image_id: int) -> MutationResult:
        """Remove a like from an image."""

    async def get_image_likes(self, image_id: int) -> LikeInfo:
        """Return like information for an image."""

    async def list_reference_images(
        self, user_id: int | None = None, page: int | None = None
    ) -> Paginated[ReferenceImage]:
        """Return one page of reference images."""

    async def create_reference_image(
        self, file: UploadFile, description: str | None = None
    ) -> ReferenceImage:
        """Upload a reference image."""

    async def list_sessions(
        self, user_id: int | None = None, page: int | None = None
    ) -> Paginated[SessionRecord]:
        """Return one page of work sessions."""

    async def delete_session(self, session_id: int) -> MutationResult:
        """Delete a work session."""

    async def generate(  # noqa: PLR0913
        self,
        prompt: str | None = None,
        reference: UploadFile | None = None,
        image: UploadFile | None = None,
        title: str | None = None,
        is_public: bool | None = None,
        category_id: int | None = None,
    ) -> ImageItem:
        """Request a generated image."""

    async def edit_image(self, image_id: int, file: UploadFile) -> ImageItem:
        """Submit an edited version of an image."""

    def asset_url(self, file_path: str) -> str:
        """Resolve a server-relative asset path to an absolute URL."""


def _no_token() -> str | None:
    return None


@dataclass
class HttpxArtaiClient(ArtaiClient):
    """Artai client implemented with httpx."""

    base_url: str
    http_client: httpx.AsyncClient
    timeout: float = 30
    token_provider: Callable[[], str | None] = _no_token
    auth_rejected_listeners: list[Callable[[str], None]] = field(default_factory=list)
    asset_base_url: str = ""

    @classmethod
    def create(
        cls, base_url: str, timeout: float = 30, asset_base_url: str = ""
    ) -> "HttpxArtaiClient":
        """Create an Artai client with a managed httpx session."""
        return cls(
            base_url=base_url.rstrip("/"),
            http_client=httpx.AsyncClient(),
            timeout=timeout,
            asset_base_url=asset_base_url,
        )

    def asset_url(self, file_path: str) -> str:
        """Return the absolute URL of a stored asset."""
        return absolute_url(file_path, self.asset_base_url)

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()

    # Auth

    async def register(self, username: str, email: str, password: str) -> AuthResult:
        """Create an account; login and register are the only anonymous calls."""
        body = await self._send(
            "POST",
            "/register",
            json_body={"username": username, "email": email, "password": password},
            authenticated=False,
        )
        return _parse(AuthResult, body)

    async def login(self, ident: str, password: str) -> AuthResult:
        """Exchange an identifier (username or email) and password for a token."""
        body = await self._send(
            "POST",
            "/login",
            json_body={"ident": ident, "password": password},
            authenticated=False,
        )
        return _parse(AuthResult, body)

    async def logout(self) -> MutationResult:
        """Invalidate the current token on the server."""
        body = await self._send("POST", "/logout")
        return _parse(MutationResult, body)

    async def get_user(self) -> User:
        """Return the user owning the current token."""
        body = await self._send("GET", "/user")
        return _parse_field(User, body, "user")

    async def update_user(self, **changes: object) -> ProfileResult:
        """Send only the supplied profile fields."""
        _check_fields(changes, USER_UPDATE_FIELDS)
        body = await self._send("POST", "/user", json_body=dict(changes))
        return _parse(ProfileResult, body)

    # Images

    async def list_images(
        self,
        public: bool | None = None,
        user_id: int | None = None,
        category_id: int | None = None,
        page: int | None = None,
    ) -> Paginated[ImageItem]:
        """Return one page of images, filtered by the supplied parameters."""
        params = _query(
            public=public, user_id=user_id, category_id=category_id, page=page
        )
        body = await self._send("GET", "/images", params=params)
        return _parse(Paginated[ImageItem], body)

    async def get_image(self, image_id: int) -> ImageItem:
        body = await self._send("GET", f"/images/{image_id}")
        return _parse(ImageItem, body)

    async def create_image(  # noqa: PLR0913
        self,
        file: UploadFile,
        title: str | None = None,
        description: str | None = None,
        status: str | None = None,
        is_public: bool | None = None,
        category_id: int | None = None,
    ) -> ImageItem:
        """Upload a new image with optional metadata."""
        parts = _multipart(
            {
                "title": title or None,
                "description": description or None,
                "status": status or None,
                "is_public": is_public,
                "category_id": category_id,
            },
            {"image": file},
        )
        body = await self._send("POST", "/images", files=parts)
        return _parse_field(ImageItem, body, "image")

    async def update_image(
        self, image_id: int, *, file: UploadFile | None = None, **changes: object
    ) -> ImageItem:
        """Update an image.

        With a file the request is multipart (file plus supplied fields);
        without one it is JSON holding exactly the supplied fields, so server
        values the caller did not mention are never overwritten.
        """
        _check_fields(changes, IMAGE_UPDATE_FIELDS)
        path = f"/images/{image_id}"
        if file is not None:
            parts = _multipart(changes, {"image": file})
            body = await self._send("POST", path, files=parts)
        else:
            body = await self._send("POST", path, json_body=dict(changes))
        return _parse_field(ImageItem, body, "image")

    async def delete_image(self, image_id: int) -> MutationResult:
        body = await self._send("POST", f"/images-delete/{image_id}")
        return _parse(MutationResult, body)

    async def get_image_history(self, image_id: int) -> list[ImageHistoryItem]:
        body = await self._send("GET", f"/images/{image_id}/history")
        return _parse(list[ImageHistoryItem], body)

    async def add_image_history(
        self,
        image_id: int,
        action: str | None = None,
        file: UploadFile | None = None,
    ) -> ImageHistoryItem:
        """Append a history entry, optionally with the resulting file."""
        parts = _multipart({"action": action or None}, {"file": file})
        body = await self._send("POST", f"/images/{image_id}/history", files=parts)
        return _parse_field(ImageHistoryItem, body, "history")

    # Categories and tags

    async def get_categories(self) -> list[Category]:
        body = await self._send("GET", "/categories")
        return _parse(list[Category], body)

    async def create_category(
        self, name: str, description: str | None = None
    ) -> Category:
        payload: dict[str, object] = {"name": name}
        if description is not None:
            payload["description"] = description
        body = await self._send("POST", "/categories", json_body=payload)
        return _parse_field(Category, body, "category")

    async def get_tags(self) -> list[Tag]:
        body = await self._send("GET", "/tags")
        return _parse(list[Tag], body)

    async def create_tag(self, name: str) -> Tag:
        body = await self._send("POST", "/tags", json_body={"name": name})
        return _parse_field(Tag, body, "tag")

    async def get_image_categories(self, image_id: int) -> ImageCategories:
        body = await self._send("GET", f"/images/{image_id}/categories")
        return _parse(ImageCategories, body)

    async def set_image_categories(
        self, image_id: int, category_ids: Sequence[int]
    ) -> ImageCategories:
        """Replace the image's category set; the id list is the wire form used."""
        body = await self._send(
            "POST",
            f"/images/{image_id}/categories",
            json_body={"category_ids": list(category_ids)},
        )
        return _parse(ImageCategories, body)

    # Likes

    async def like_image(self, image_id: int) -> MutationResult:
        body = await self._send("POST", f"/images/{image_id}/like")
        return _parse(MutationResult, body)

    async def unlike_image(self, image_id: int) -> MutationResult:
        body = await self._send("POST", f"/images/{image_id}/unlike")
        return _parse(MutationResult, body)

    async def get_image_likes(self, image_id: int) -> LikeInfo:
        body = await self._send("GET", f"/images/{image_id}/likes")
        return _parse(LikeInfo, body)

    # Reference images and sessions

    async def list_reference_images(
        self, user_id: int | None = None, page: int | None = None
    ) -> Paginated[ReferenceImage]:
        params = _query(user_id=user_id, page=page)
        body = await self._send("GET", "/reference-images", params=params)
        return _parse(Paginated[ReferenceImage], body)

    async def create_reference_image(
        self, file: UploadFile, description: str | None = None
    ) -> ReferenceImage:
        parts = _multipart({"description": description or None}, {"image": file})
        body = await self._send("POST", "/reference-images", files=parts)
        return _parse_field(ReferenceImage, body, "reference")

    async def list_sessions(
        self, user_id: int | None = None, page: int | None = None
    ) -> Paginated[SessionRecord]:
        params = _query(user_id=user_id, page=page)
        body = await self._send("GET", "/sessions", params=params)
        return _parse(Paginated[SessionRecord], body)

    async def delete_session(self, session_id: int) -> MutationResult:
        body = await self._send("POST", f"/sessions/{session_id}")
        return _parse(MutationResult, body)

    # Generation

    async def generate(  # noqa: PLR0913
        self,
        prompt: str | None = None,
        reference: UploadFile | None = None,
        image: UploadFile | None = None,
        title: str | None = None,
        is_public: bool | None = None,
        category_id: int | None = None,
    ) -> ImageItem:
        """Request a generated image from a prompt and optional source files."""
        parts = _multipart(
            {
                "prompt": prompt or None,
                "title": title or None,
                "is_public": is_public,
                "category_id": category_id,
            },
            {"reference": reference, "image": image},
        )
        body = await self._send("POST", "/generate", files=parts)
        return _parse_field(ImageItem, body, "image")

    async def edit_image(self, image_id: int, file: UploadFile) -> ImageItem:
        parts = _multipart({}, {"image": file})
        body = await self._send("POST", f"/edit/{image_id}", files=parts)
        return _parse_field(ImageItem, body, "image")

    # Transport

    async def _send(  # noqa: PLR0913
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json_body: dict[str, object] | None = None,
        files: list[tuple[str, tuple]] | None = None,
        authenticated: bool = True,
    ) -> ResponseBody:
        """Execute a request and return its tagged body or raise a typed failure.

        Multipart requests never carry an explicit content type; httpx sets it
        together with the boundary.
        """
        headers: dict[str, str] = {"Accept": "application/json"}
        token = self.token_provider() if authenticated else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            response = await self.http_client.request(
                method,
                f"{self.base_url}{path}",
                params=params,
                json=json_body,
                files=files or None,
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TransportError as exc:
            _logger.warning("Artai %s %s failed in transport: %s", method, path, exc)
            raise NetworkFailure(str(exc) or "Network error") from exc

        body = _read_body(response)
        if response.is_success:
            return body
        failure = _failure_for(response, body, sent_token=bool(token))
        if isinstance(failure, AuthRejected) and token:
            _logger.warning("Artai %s %s rejected the token", method, path)
            for listener in list(self.auth_rejected_listeners):
                listener(token)
        raise failure


def absolute_url(file_path: str, asset_base_url: str) -> str:
    """Resolve a server-relative asset path against the asset host."""
    if not file_path:
        return ""
    if file_path.startswith(("http://", "https://")):
        return file_path
    path = file_path if file_path.startswith("/") else f"/{file_path}"
    return f"{asset_base_url.rstrip('/')}{path}"


def _read_body(response: httpx.Response) -> ResponseBody:
    """Tag the body as JSON or text based on the declared content type."""
    content_type = response.headers.get("content-type", "")
    if "application/json" not in content_type:
        return TextBody(response.text)
    try:
        return JsonBody(response.json())
    except ValueError as exc:
        if not response.is_success:
            return TextBody(response.text)
        raise DecodeFailure(
            "Response declared JSON but could not be parsed",
            status_code=response.status_code,
        ) from exc


def _failure_for(
    response: httpx.Response, body: ResponseBody, *, sent_token: bool
) -> ArtaiError:
    """Map an unsuccessful response to the matching typed failure."""
    status_code = response.status_code
    message = _error_message(response, body)
    details: dict[str, object] = {}
    if isinstance(body, JsonBody) and isinstance(body.value, dict):
        errors = body.value.get("errors")
        if errors is not None:
            details["errors"] = errors
    if status_code == httpx.codes.UNAUTHORIZED and sent_token:
        return AuthRejected(message, details=details)
    if status_code >= httpx.codes.INTERNAL_SERVER_ERROR:
        if message == _GENERIC_MESSAGE:
            message = _GENERIC_SERVER_MESSAGE
        return ServerFailure(message, status_code=status_code, details=details)
    return ValidationFailure(message, status_code=status_code, details=details)


def _error_message(response: httpx.Response, body: ResponseBody) -> str:
    """Pick the server message, then the status text, then a generic one."""
    if isinstance(body, JsonBody) and isinstance(body.value, dict):
        message = body.value.get("message")
        if isinstance(message, str) and message:
            return message
    return response.reason_phrase or _GENERIC_MESSAGE


def _parse(model: type[T], body: ResponseBody) -> T:
    """Validate a JSON body against the expected record type."""
    if not isinstance(body, JsonBody):
        raise DecodeFailure("Expected a JSON response but received text")
    try:
        return TypeAdapter(model).validate_python(body.value)
    except ValidationError as exc:
        raise DecodeFailure(
            "Response did not match the expected shape",
            details={"errors": exc.errors(include_url=False)},
        ) from exc


def _parse_field(model: type[T], body: ResponseBody, key: str) -> T:
    """Validate the record nested under ``key`` in a JSON object body."""
    if not isinstance(body, JsonBody) or not isinstance(body.value, dict):
        raise DecodeFailure("Expected a JSON object response")
    if key not in body.value:
        raise DecodeFailure(f"Response is missing '{key}'")
    return _parse(model, JsonBody(body.value[key]))


def _check_fields(changes: Mapping[str, object], allowed: frozenset[str]) -> None:
    unknown = set(changes) - allowed
    if unknown:
        raise ValueError(f"Unsupported fields: {', '.join(sorted(unknown))}")


def _form_value(value: object) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


def _query(**values: object) -> dict[str, str]:
    """Build query parameters, skipping unset values."""
    return {
        name: _form_value(value) for name, value in values.items() if value is not None
    }


def _multipart(
    fields: Mapping[str, object], files: Mapping[str, UploadFile | None]
) -> list[tuple[str, tuple]]:
    """Build multipart parts from scalar fields and files, skipping unset ones.

    Scalar fields are encoded as filename-less parts so the body stays
    multipart even when no file is attached.
    """
    parts: list[tuple[str, tuple]] = []
    for name, upload in files.items():
        if upload is not None:
            parts.append(
                (name, (upload.filename, upload.content, upload.content_type))
            )
    for name, value in fields.items():
        if value is not None:
            parts.append((name, (None, _form_value(value))))
    return parts
