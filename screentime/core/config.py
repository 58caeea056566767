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

    APP_NAME: str = "Screen Time Leaderboard"
    DATA_DIR: Path = Field(default_factory=lambda: Path(__file__).resolve().parents[2] / "data")
    DB_URL: str = Field(default="", validation_alias=AliasChoices("DB_URL", "DATABASE_URL"))
    LOG_LEVEL: str = "INFO"

    # Week buckets roll over at local midnight of WEEK_START_DAY in TZ.
    TZ: str = "UTC"
    WEEK_START_DAY: str = "saturday"
    LEADERBOARD_ORDER: str = "asc"
    STREAM_IDLE_SECONDS: float = 15.0

    JWT_SECRET: str = "change-me"
    JWT_ACCESS_TTL_MIN: int = 60
    JWT_REFRESH_TTL_DAYS: int = 30
    BCRYPT_ROUNDS: int = 12
    ADMIN_EMAILS: Annotated[list[str], NoDecode] = Field(default_factory=list)
    ALLOWED_ORIGINS: Annotated[list[str], NoDecode] = Field(default_factory=list)

    HOST: str = "0.0.0.0"
    PORT: int = 8089

    @property
    def database_url(self) -> str:
        return self.DB_URL or f"sqlite:///{self.DATA_DIR / 'leaderboard.db'}"

    @field_validator("ADMIN_EMAILS", "ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_csv_list(cls, value: Any) -> list[str]:
        if value in (None, "", []):
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, Iterable):
            return [str(item).strip() for item in value if str(item).strip()]
        raise TypeError("value must be a comma separated string or list")

    @field_validator("ADMIN_EMAILS", mode="after")
    @classmethod
    def normalize_admin_emails(cls, value: list[str]) -> list[str]:
        return [item.lower() for item in value]

    @field_validator("LEADERBOARD_ORDER", mode="after")
    @classmethod
    def check_order(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in {"asc", "desc"}:
            raise ValueError("LEADERBOARD_ORDER must be 'asc' or 'desc'")
        return normalized


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    settings = AppSettings()
    settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
    return settings


settings = get_settings()
