"""Durable storage for the authentication token."""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

_logger = logging.getLogger(__name__)


class TokenStore(Protocol):
    """Interface for synchronous token persistence."""

    def get(self) -> str | None:
        """Return the persisted token, if any."""

    def set(self, token: str) -> None:
        """Persist the token."""

    def clear(self) -> None:
        """Remove the persisted token."""


@dataclass
class FileTokenStore(TokenStore):
    """Token store backed by a small JSON file that outlives the process."""

    path: Path
    key: str = "artai_token"

    def get(self) -> str | None:
        """Read the token; a missing or unreadable file means no session."""
        data = self._read()
        token = data.get(self.key)
        if isinstance(token, str) and token:
            return token
        return None

    def set(self, token: str) -> None:
        """Write the token under the storage key."""
        data = self._read()
        data[self.key] = token
        self._write(data)

    def clear(self) -> None:
        """Remove the token, keeping any unrelated keys."""
        data = self._read()
        if self.key not in data:
            return
        data.pop(self.key)
        self._write(data)

    def _read(self) -> dict[str, object]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            _logger.warning("Token storage unreadable at %s: %s", self.path, exc)
            return {}
        try:
            data = json.loads(raw)
        except ValueError:
            _logger.warning("Token storage at %s is corrupt; ignoring", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, object]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data), encoding="utf-8")
