"""Typed failures raised by the Artai client.

Every failure carries the best human-readable message available so callers
can surface it without inspecting status codes.
"""

from typing import Any


class ArtaiError(Exception):
    """Base exception for all Artai client failures."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert the failure to a dictionary for display or logging."""
        return {
            "error": self.code,
            "message": self.message,
            "status_code": self.status_code,
            "details": self.details,
        }


class NetworkFailure(ArtaiError):
    """The request never reached the server or no response came back."""


class AuthRejected(ArtaiError):
    """The server rejected the bearer token as invalid or expired."""

    def __init__(self, message: str = "Authentication token rejected", **kwargs: Any):
        kwargs.setdefault("status_code", 401)
        super().__init__(message, code="AUTH_REJECTED", **kwargs)


class ValidationFailure(ArtaiError):
    """The server refused the request with a 4xx and a message."""


class ServerFailure(ArtaiError):
    """The server failed with a 5xx."""


class DecodeFailure(ArtaiError):
    """The response body could not be interpreted as declared."""
