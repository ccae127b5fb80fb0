"""Shared test fixtures."""

import asyncio
import json
import math
import re
from dataclasses import dataclass, field
from pathlib import Path

import httpx
import pytest

from artai_client.adapters.artai_client import HttpxArtaiClient
from artai_client.adapters.token_store import TokenStore
from artai_client.config import Settings
from artai_client.containers import AppContainer, build_container

BASE_URL = "https://api.test/api/artai"


@dataclass
class InMemoryTokenStore(TokenStore):
    """Token store kept in memory for tests."""

    token: str | None = None
    writes: int = 0

    def get(self) -> str | None:
        return self.token

    def set(self, token: str) -> None:
        self.token = token
        self.writes += 1

    def clear(self) -> None:
        self.token = None


def _json(status_code: int, payload: object) -> httpx.Response:
    return httpx.Response(status_code, json=payload)


def _form_field(request: httpx.Request, name: str) -> str | None:
    body = request.content.decode("latin-1")
    match = re.search(rf'name="{name}"\r\n\r\n(.*?)\r\n', body)
    return match[1] if match else None


@dataclass
class FakeArtaiServer:
    """In-memory stand-in for the Artai API, served through httpx.MockTransport."""

    users: dict[int, dict[str, object]] = field(default_factory=dict)
    passwords: dict[int, str] = field(default_factory=dict)
    tokens: dict[str, int] = field(default_factory=dict)
    images: dict[int, dict[str, object]] = field(default_factory=dict)
    categories: dict[int, dict[str, object]] = field(default_factory=dict)
    image_categories: dict[int, list[int]] = field(default_factory=dict)
    tags: dict[int, dict[str, object]] = field(default_factory=dict)
    per_page: int = 4
    requests: list[httpx.Request] = field(default_factory=list)
    overrides: dict[tuple[str, str], httpx.Response] = field(default_factory=dict)
    gates: dict[str, asyncio.Event] = field(default_factory=dict)
    path_gates: dict[tuple[str, str], asyncio.Event] = field(default_factory=dict)
    likes: dict[int, set[int]] = field(default_factory=dict)
    history: dict[int, list[dict[str, object]]] = field(default_factory=dict)
    references: dict[int, dict[str, object]] = field(default_factory=dict)
    sessions: dict[int, dict[str, object]] = field(default_factory=dict)
    rotate_token_on_update: bool = False
    _next_id: int = 1000

    def add_user(self, username: str, email: str, password: str) -> dict[str, object]:
        user_id = self._new_id()
        user = {"id": user_id, "username": username, "email": email, "role": "user"}
        self.users[user_id] = user
        self.passwords[user_id] = password
        return user

    def issue_token(self, user_id: int) -> str:
        token = f"token-{user_id}-{len(self.tokens)}"
        self.tokens[token] = user_id
        return token

    def add_image(self, image_id: int, category_id: int | None = None) -> None:
        self.images[image_id] = {
            "id": image_id,
            "user_id": 1,
            "title": f"Image {image_id}",
            "description": None,
            "file_path": f"/storage/{image_id}.png",
            "status": "ready",
            "is_public": False,
            "category_id": category_id,
        }

    def add_category(self, category_id: int, name: str) -> None:
        self.categories[category_id] = {"id": category_id, "name": name}

    def add_session(self, session_id: int, user_id: int = 1) -> None:
        self.sessions[session_id] = {
            "id": session_id,
            "user_id": user_id,
            "started_at": "2026-01-01T10:00:00Z",
        }

    def client(self) -> HttpxArtaiClient:
        transport = httpx.MockTransport(self.handle)
        return HttpxArtaiClient(
            base_url=BASE_URL, http_client=httpx.AsyncClient(transport=transport)
        )

    def last_request(self, method: str, path: str) -> httpx.Request:
        for request in reversed(self.requests):
            if request.method == method and request.url.path == f"/api/artai{path}":
                return request
        raise AssertionError(f"No {method} {path} request recorded")

    async def handle(self, request: httpx.Request) -> httpx.Response:  # noqa: PLR0911, PLR0912
        self.requests.append(request)
        path = request.url.path.removeprefix("/api/artai")
        method = request.method
        override = self.overrides.get((method, path))
        if override is not None:
            return override
        gate = self.gates.get(str(request.url.query, "ascii")) or self.path_gates.get(
            (method, path)
        )
        if gate is not None:
            await gate.wait()

        if path == "/login" and method == "POST":
            return self._login(json.loads(request.content))
        if path == "/register" and method == "POST":
            body = json.loads(request.content)
            user = self.add_user(body["username"], body["email"], body["password"])
            token = self.issue_token(int(user["id"]))
            return _json(201, {"message": "Registered", "token": token, "user": user})

        user_id = self._authorize(request)
        if user_id is None:
            return _json(401, {"message": "Unauthenticated."})

        if path == "/logout" and method == "POST":
            token = request.headers["Authorization"].removeprefix("Bearer ")
            self.tokens.pop(token, None)
            return _json(200, {"message": "Logged out"})
        if path == "/user" and method == "GET":
            return _json(200, {"user": self.users[user_id]})
        if path == "/user" and method == "POST":
            self.users[user_id] = {**self.users[user_id], **json.loads(request.content)}
            self.users[user_id].pop("password", None)
            payload: dict[str, object] = {"message": "Updated", "user": self.users[user_id]}
            if self.rotate_token_on_update:
                payload["token"] = self.issue_token(user_id)
            return _json(200, payload)
        if path == "/images" and method == "GET":
            return self._list_images(request.url.params)
        if path.startswith("/images-delete/") and method == "POST":
            image_id = int(path.rsplit("/", 1)[1])
            if self.images.pop(image_id, None) is None:
                return _json(404, {"message": "Image not found"})
            return _json(200, {"message": "Deleted"})
        if path == "/categories" and method == "GET":
            return _json(200, list(self.categories.values()))
        if path == "/categories" and method == "POST":
            body = json.loads(request.content)
            category_id = self._new_id()
            self.add_category(category_id, body["name"])
            return _json(
                201, {"message": "Created", "category": self.categories[category_id]}
            )
        if path == "/tags" and method == "GET":
            return _json(200, list(self.tags.values()))
        if path == "/tags" and method == "POST":
            tag_id = self._new_id()
            self.tags[tag_id] = {"id": tag_id, "name": json.loads(request.content)["name"]}
            return _json(201, {"message": "Created", "tag": self.tags[tag_id]})
        if path.endswith("/categories") and path.startswith("/images/"):
            image_id = int(path.split("/")[2])
            if method == "POST":
                ids = json.loads(request.content)["category_ids"]
                self.image_categories[image_id] = list(ids)
            return _json(200, self._categories_payload(image_id))
        return self._media_routes(request, method, path, user_id)

    def _media_routes(  # noqa: PLR0911
        self, request: httpx.Request, method: str, path: str, user_id: int
    ) -> httpx.Response:
        if match := re.fullmatch(r"/images/(\d+)", path):
            image = self.images.get(int(match[1]))
            if image is None:
                return _json(404, {"message": "Image not found"})
            if method == "POST":
                image.update(self._update_fields(request, image))
                return _json(200, {"message": "Updated", "image": image})
            return _json(200, image)
        if match := re.fullmatch(r"/images/(\d+)/history", path):
            entries = self.history.setdefault(int(match[1]), [])
            if method == "POST":
                entry = {
                    "id": self._new_id(),
                    "image_id": int(match[1]),
                    "user_id": user_id,
                    "action": _form_field(request, "action") or "update",
                }
                entries.append(entry)
                return _json(201, {"message": "Added", "history": entry})
            return _json(200, entries)
        if match := re.fullmatch(r"/images/(\d+)/(like|unlike|likes)", path):
            likers = self.likes.setdefault(int(match[1]), set())
            if match[2] == "like":
                likers.add(user_id)
            elif match[2] == "unlike":
                likers.discard(user_id)
            else:
                users = [
                    {"id": uid, "username": self.users[uid]["username"]}
                    for uid in sorted(likers)
                ]
                return _json(200, {"count": len(likers), "users": users})
            return _json(200, {"message": "OK"})
        if path == "/reference-images" and method == "GET":
            return self._page(list(self.references.values()), request.url.params)
        if path == "/reference-images" and method == "POST":
            reference_id = self._new_id()
            self.references[reference_id] = {
                "id": reference_id,
                "user_id": user_id,
                "file_path": f"/storage/references/{reference_id}.png",
                "description": _form_field(request, "description"),
            }
            return _json(
                201, {"message": "Created", "reference": self.references[reference_id]}
            )
        if path == "/sessions" and method == "GET":
            return self._page(list(self.sessions.values()), request.url.params)
        if match := re.fullmatch(r"/sessions/(\d+)", path):
            if self.sessions.pop(int(match[1]), None) is None:
                return _json(404, {"message": "Session not found"})
            return _json(200, {"message": "Deleted"})
        if path == "/generate" and method == "POST":
            image_id = self._new_id()
            self.add_image(image_id)
            self.images[image_id]["title"] = _form_field(request, "title")
            return _json(201, {"message": "Generated", "image": self.images[image_id]})
        if match := re.fullmatch(r"/edit/(\d+)", path):
            image = self.images[int(match[1])]
            image["file_path"] = f"/storage/{match[1]}-edited.png"
            self.history.setdefault(int(match[1]), []).append(
                {
                    "id": self._new_id(),
                    "image_id": int(match[1]),
                    "user_id": user_id,
                    "action": "edit",
                }
            )
            return _json(200, {"message": "Edited", "image": image})
        return _json(404, {"message": "Not found"})

    def _update_fields(
        self, request: httpx.Request, image: dict[str, object]
    ) -> dict[str, object]:
        if request.headers["Content-Type"] == "application/json":
            return dict(json.loads(request.content))
        return {"file_path": f"/storage/{image['id']}-replaced.png"}

    def _login(self, body: dict[str, object]) -> httpx.Response:
        for user_id, user in self.users.items():
            if body["ident"] in (user["username"], user["email"]):
                if self.passwords[user_id] != body["password"]:
                    break
                token = self.issue_token(user_id)
                return _json(200, {"message": "OK", "token": token, "user": user})
        return _json(401, {"message": "Invalid credentials"})

    def _authorize(self, request: httpx.Request) -> int | None:
        header = request.headers.get("Authorization", "")
        if not header.startswith("Bearer "):
            return None
        return self.tokens.get(header.removeprefix("Bearer "))

    def _list_images(self, params: httpx.QueryParams) -> httpx.Response:
        category_id = params.get("category_id")
        items = [
            image
            for image in sorted(self.images.values(), key=lambda image: image["id"])
            if category_id is None or image["category_id"] == int(category_id)
        ]
        return self._page(items, params)

    def _page(
        self, items: list[dict[str, object]], params: httpx.QueryParams
    ) -> httpx.Response:
        page = int(params.get("page", "1"))
        last_page = max(1, math.ceil(len(items) / self.per_page))
        start = (page - 1) * self.per_page
        return _json(
            200,
            {
                "data": items[start : start + self.per_page],
                "current_page": page,
                "last_page": last_page,
                "per_page": self.per_page,
                "total": len(items),
            },
        )

    def _categories_payload(self, image_id: int) -> dict[str, object]:
        assigned = self.image_categories.get(image_id, [])
        return {
            "image_id": image_id,
            "categories": [
                self.categories[cid] for cid in assigned if cid in self.categories
            ],
            "count": len(assigned),
        }

    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        api_base_url=BASE_URL,
        asset_base_url="https://assets.test",
        token_path=tmp_path / "token.json",
    )


@pytest.fixture
def server() -> FakeArtaiServer:
    return FakeArtaiServer()


@pytest.fixture
def token_store() -> InMemoryTokenStore:
    return InMemoryTokenStore()


@pytest.fixture
def container(
    settings: Settings, server: FakeArtaiServer, token_store: InMemoryTokenStore
) -> AppContainer:
    return build_container(settings, token_store=token_store, client=server.client())


@pytest.fixture
def signed_in(container: AppContainer, server: FakeArtaiServer) -> AppContainer:
    """Container whose session is authenticated as ``alice``."""
    server.add_user("alice", "alice@example.com", "secret")
    asyncio.run(container.session_manager.login("alice", "secret"))
    return container
