"""Session manager owning the authentication token and current user."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from artai_client.adapters.artai_client import ArtaiClient
from artai_client.adapters.token_store import TokenStore
from artai_client.domain.errors import ArtaiError, DecodeFailure
from artai_client.domain.models import Session, SessionStatus
from artai_client.domain.resources import AuthResult, User

PROFILE_FIELDS = frozenset({"username", "email", "password"})

_logger = logging.getLogger(__name__)


@dataclass
class SessionManager:
    """Controls every transition of the session.

    States move Unknown -> Loading -> Authenticated/Anonymous. After bootstrap
    the session only alternates between Authenticated and Anonymous.
    """

    client: ArtaiClient
    token_store: TokenStore
    on_logout: list[Callable[[], None]] = field(default_factory=list)
    _session: Session = field(default_factory=Session, init=False)
    _identity_lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)
    _generation: int = field(default=0, init=False)

    @property
    def session(self) -> Session:
        """Return the current session snapshot."""
        return self._session

    @property
    def status(self) -> SessionStatus:
        return self._session.status

    @property
    def user(self) -> User | None:
        return self._session.user

    @property
    def generation(self) -> int:
        """Counter bumped on every session change."""
        return self._generation

    def current_token(self) -> str | None:
        """Return the token to attach to authenticated requests."""
        return self._session.token

    async def bootstrap(self) -> User | None:
        """Restore the session from the persisted token, if any."""
        token = self.token_store.get()
        if not token:
            self._set(Session.anonymous())
            return None
        self._set(Session(token=token, status=SessionStatus.LOADING))
        generation = self._generation
        async with self._identity_lock:
            return await self._fetch_user(token, generation)

    async def login(self, ident: str, password: str) -> User:
        """Log in with a username or email; failures leave the session as is."""
        result = await self.client.login(ident=ident, password=password)
        return self._accept(result)

    async def register(self, username: str, email: str, password: str) -> User:
        """Create an account and log straight into it."""
        result = await self.client.register(
            username=username, email=email, password=password
        )
        return self._accept(result)

    async def logout(self) -> None:
        """End the session; local state is cleared even if the server call fails."""
        try:
            await self.client.logout()
        except ArtaiError as exc:
            _logger.warning("Remote logout failed: %s", exc.message)
            raise
        finally:
            self._drop_session()

    async def get_user(self) -> User | None:
        """Re-fetch the current user; an unusable token ends the session."""
        async with self._identity_lock:
            token = self._session.token
            if token is None:
                self._set(Session.anonymous())
                return None
            return await self._fetch_user(token, self._generation)

    async def update_profile(self, **changes: str) -> User:
        """Apply a partial profile update and replace the user record.

        The result is applied only if the session did not change while the
        request was in flight; a rotated token never revives a closed session.
        """
        unknown = set(changes) - PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported profile fields: {', '.join(sorted(unknown))}")
        async with self._identity_lock:
            generation = self._generation
            result = await self.client.update_user(**changes)
            if generation != self._generation:
                _logger.info("Session changed during profile update; result not applied")
                return result.user
            token = result.token or self._session.token
            if result.token:
                self.token_store.set(result.token)
            if token is not None:
                self._set(Session.authenticated(token, result.user))
            return result.user

    def handle_auth_rejected(self, token: str | None = None) -> None:
        """Downgrade to Anonymous after the server rejected the token.

        A rejection of a token that is no longer current is ignored.
        """
        if self._session.status is SessionStatus.ANONYMOUS:
            return
        if token is not None and token != self._session.token:
            return
        _logger.warning("Token rejected by server; ending session")
        self._drop_session()

    async def _fetch_user(self, token: str, generation: int) -> User | None:
        try:
            user = await self.client.get_user()
        except ArtaiError as exc:
            if generation != self._generation:
                return self.user
            _logger.warning("Stored token is unusable (%s); signing out", exc.code)
            self._drop_session()
            return None
        if generation != self._generation:
            _logger.info("Session changed during identity fetch; result discarded")
            return self.user
        self._set(Session.authenticated(token, user))
        return user

    def _accept(self, result: AuthResult) -> User:
        if not result.token:
            raise DecodeFailure("Authentication response did not include a token")
        self.token_store.set(result.token)
        self._set(Session.authenticated(result.token, result.user))
        return result.user

    def _drop_session(self) -> None:
        self.token_store.clear()
        self._set(Session.anonymous())
        for callback in list(self.on_logout):
            callback()

    def _set(self, session: Session) -> None:
        if session.status is not self._session.status:
            _logger.info(
                "Session %s -> %s", self._session.status.value, session.status.value
            )
        self._session = session
        self._generation += 1
