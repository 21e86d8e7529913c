"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120 Safari/537.36"
)
DEFAULT_PLACEHOLDER_POSTER = "https://i.imgur.com/PsWn3oM.png"


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="YouTube Universe", alias="APP_NAME")
    addon_id: str = Field(default="com.youtube-universe.python", alias="ADDON_ID")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=7000, alias="PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    public_base_url: HttpUrl | None = Field(default=None, alias="PUBLIC_BASE_URL")
    youtube_base_url: str = Field(
        default="https://www.youtube.com",
        alias="YOUTUBE_BASE_URL",
        validation_alias=AliasChoices("YOUTUBE_BASE_URL", "YOUTUBE_URL"),
    )
    stremio_web_url: str = Field(
        default="https://web.stremio.com/#/addons?addon=", alias="STREMIO_WEB_URL"
    )

    page_timeout_seconds: float = Field(
        default=12.0, alias="PAGE_TIMEOUT", gt=0, le=120
    )
    feed_timeout_seconds: float = Field(
        default=15.0, alias="FEED_TIMEOUT", gt=0, le=120
    )
    user_agent: str = Field(default=DEFAULT_USER_AGENT, alias="USER_AGENT")
    accept_language: str = Field(default="en-US,en;q=0.9", alias="ACCEPT_LANGUAGE")

    fetch_concurrency: int = Field(default=8, alias="FETCH_CONCURRENCY", ge=1, le=64)
    suggestion_limit: int = Field(default=8, alias="SUGGESTION_LIMIT", ge=1, le=50)
    placeholder_poster: str = Field(
        default=DEFAULT_PLACEHOLDER_POSTER, alias="PLACEHOLDER_POSTER"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("youtube_base_url", "stremio_web_url", mode="before")
    @classmethod
    def _strip_url(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("youtube_base_url")
    @classmethod
    def _normalise_youtube_url(cls, value: str) -> str:
        """Drop trailing slashes so paths can be appended verbatim."""

        normalized = value.rstrip("/")
        if not normalized.startswith(("http://", "https://")):
            raise ValueError("YOUTUBE_BASE_URL must be an absolute http(s) URL")
        return normalized

    @field_validator("log_level")
    @classmethod
    def _normalise_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError("LOG_LEVEL must be a standard logging level name")
        return level

    @property
    def browser_headers(self) -> dict[str, str]:
        """Headers sent with page scrapes to look like a regular browser."""

        return {
            "User-Agent": self.user_agent,
            "Accept-Language": self.accept_language,
            "Cookie": "PREF=hl=en",
        }

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", populate_by_name=True
    )


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
