"""Application configuration."""

import os
from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    data_dir: Path = Path("~/.local/share/chilema")
    db_name: str = "chilema.sqlite3"
    storage_enabled: bool = True
    timezone: str | None = None
    image_max_dimension: int = Field(default=1024, gt=0)
    image_quality: float = Field(default=0.78, gt=0.0, le=1.0)
    image_format: Literal["jpeg", "webp"] = "jpeg"
    list_limit: int = 200
    export_limit: int = 100_000
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_prefix="CHILEMA_",
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )

    @property
    def db_path(self) -> Path:
        """Location of the SQLite database file."""
        return self.data_dir.expanduser() / self.db_name


def resolve_timezone(name: str | None) -> ZoneInfo | None:
    """Return the configured zone, or None to use the system local time."""
    if name is None:
        return None
    cleaned = name.strip()
    if cleaned in {"", "local"}:
        return None
    return ZoneInfo(cleaned)
