"""Application configuration."""

import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    backend_url: str
    nutrition_url: str
    data_dir: Path = Path.home() / ".nutrilog"
    history_limit: int = 200
    prefetch_limit: int = 20
    http_timeout_seconds: float = 15
    upload_timeout_seconds: float = 30
    estimate_timeout_seconds: float = 30
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_prefix="NUTRILOG_",
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )

    @property
    def log_cache_path(self) -> Path:
        """Location of the durable food log cache."""
        return self.data_dir / "food_logs.json"

    @property
    def image_dir(self) -> Path:
        """Directory holding cached food images."""
        return self.data_dir / "food_images"

    @property
    def user_id_path(self) -> Path:
        """File holding the stable installation user id."""
        return self.data_dir / "user_id"
