"""Domain models for the client-side authentication session."""

from dataclasses import dataclass
from enum import StrEnum

from artai_client.domain.resources import User


class SessionStatus(StrEnum):
    """Lifecycle state of the authentication session."""

    UNKNOWN = "unknown"
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"


@dataclass(frozen=True)
class Session:
    """Live authentication state: token plus current user."""

    token: str | None = None
    user: User | None = None
    status: SessionStatus = SessionStatus.UNKNOWN

    def __post_init__(self) -> None:
        authenticated = self.user is not None and self.token is not None
        if (self.status is SessionStatus.AUTHENTICATED) != authenticated:
            raise ValueError("Authenticated sessions require both a token and a user")
        if self.status is SessionStatus.ANONYMOUS and self.user is not None:
            raise ValueError("Anonymous sessions cannot carry a user")

    @classmethod
    def authenticated(cls, token: str, user: User) -> "Session":
        """Build an authenticated session."""
        return cls(token=token, user=user, status=SessionStatus.AUTHENTICATED)

    @classmethod
    def anonymous(cls) -> "Session":
        """Build an anonymous session."""
        return cls(status=SessionStatus.ANONYMOUS)

    @property
    def is_authenticated(self) -> bool:
        """Return whether the session holds a usable token and user."""
        return self.status is SessionStatus.AUTHENTICATED
