"""Application configuration."""

import os
from datetime import timedelta
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Client settings loaded from environment variables."""

    api_base_url: str = "https://crm.actium.ro/api/artai"
    asset_base_url: str = "https://crm.actium.ro"
    token_path: Path = Path.home() / ".artai" / "token"
    token_key: str = "artai_token"
    request_timeout_seconds: float = 30
    default_stale_seconds: int = 300
    taxonomy_stale_seconds: int = 600
    image_categories_stale_seconds: int = 60
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_prefix="ARTAI_",
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )

    @property
    def default_stale_time(self) -> timedelta:
        return timedelta(seconds=self.default_stale_seconds)

    @property
    def taxonomy_stale_time(self) -> timedelta:
        return timedelta(seconds=self.taxonomy_stale_seconds)

    @property
    def image_categories_stale_time(self) -> timedelta:
        return timedelta(seconds=self.image_categories_stale_seconds)
