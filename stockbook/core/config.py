"""Environment-driven configuration for the inventory and billing service.

Every setting the service relies on lives on ``AppSettings`` so anyone reading
the project can answer "what can I configure?" in one place. Values come from
the process environment first, then ``.env`` / ``.env.local``.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Iterable

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class AppSettings(BaseSettings):
    """Environment-driven application configuration."""

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "Stockbook"
    BASE_DIR: Path = Field(default_factory=lambda: Path(__file__).resolve().parents[2])
    DATA_DIR: Path = Field(default_factory=lambda: Path(__file__).resolve().parents[2] / "data")

    # Empty means "SQLite file inside DATA_DIR", resolved by ``database_url``.
    DB_URL: str = Field(default="", validation_alias=AliasChoices("DB_URL", "DATABASE_URL"))

    API_KEY: str = Field(default="", validation_alias=AliasChoices("API_KEY", "API_TOKEN"))
    JWT_SECRET: str = "change-me"
    JWT_ACCESS_TTL_MIN: int = 15
    JWT_REFRESH_TTL_DAYS: int = 7
    ALLOWED_ORIGINS: Annotated[list[str], NoDecode] = Field(default_factory=list)

    LOG_LEVEL: str = "INFO"

    # Business knobs
    LOW_STOCK_THRESHOLD: int = 5
    DEFAULT_CATEGORY: str = "Other"

    HOST: str = "0.0.0.0"
    PORT: int = 8089

    @property
    def database_url(self) -> str:
        if self.DB_URL:
            return self.DB_URL
        return f"sqlite:///{self.DATA_DIR / 'stockbook.db'}"

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_allowed_origins(cls, value: Any) -> list[str]:
        if value in (None, "", []):
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, Iterable):
            return [str(item).strip() for item in value if str(item).strip()]
        raise TypeError("ALLOWED_ORIGINS must be a comma separated string or list")


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    settings = AppSettings()
    settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
    return settings


# Importing ``settings`` anywhere gives the configured values without
# rebuilding the object each time.
settings = get_settings()
