"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PrimaryFailurePolicy = Literal["fallback", "leaveUnenriched"]


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="AIOLists", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=7000, alias="PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    trakt_client_id: str | None = Field(default=None, alias="TRAKT_CLIENT_ID")
    trakt_client_secret: str | None = Field(
        default=None, alias="TRAKT_CLIENT_SECRET"
    )
    trakt_redirect_uri: str | None = Field(default=None, alias="TRAKT_REDIRECT_URI")
    tmdb_bearer_token: str | None = Field(default=None, alias="TMDB_BEARER_TOKEN")
    fanart_api_key: str | None = Field(default=None, alias="FANART_API_KEY")

    mdblist_api_url: HttpUrl = Field(
        default="https://api.mdblist.com", alias="MDBLIST_API_URL"
    )
    mdblist_public_url: HttpUrl = Field(
        default="https://mdblist.com", alias="MDBLIST_PUBLIC_URL"
    )
    trakt_api_url: HttpUrl = Field(
        default="https://api.trakt.tv", alias="TRAKT_API_URL"
    )
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    cinemeta_url: HttpUrl = Field(
        default="https://v3-cinemeta.strem.io", alias="CINEMETA_URL"
    )
    fanart_api_url: HttpUrl = Field(
        default="https://webservice.fanart.tv/v3", alias="FANART_API_URL"
    )
    rpdb_api_url: HttpUrl = Field(
        default="https://api.ratingposterdb.com", alias="RPDB_API_URL"
    )

    items_per_page: int = Field(default=100, alias="ITEMS_PER_PAGE", ge=1, le=500)
    tmdb_concurrency: int = Field(default=15, alias="TMDB_CONCURRENCY", ge=1, le=50)
    metadata_batch_size: int = Field(
        default=10, alias="METADATA_BATCH_SIZE", ge=1, le=50
    )
    manifest_concurrency: int = Field(
        default=5, alias="MANIFEST_CONCURRENCY", ge=1, le=20
    )
    poster_concurrency: int = Field(
        default=10, alias="POSTER_CONCURRENCY", ge=1, le=50
    )
    genre_filter_max_pages: int = Field(
        default=3, alias="GENRE_FILTER_MAX_PAGES", ge=1, le=20
    )

    retry_max_attempts: int = Field(default=4, alias="RETRY_MAX_ATTEMPTS", ge=1, le=10)
    retry_base_delay: float = Field(default=2.0, alias="RETRY_BASE_DELAY", ge=0)
    retry_max_delay: float = Field(default=30.0, alias="RETRY_MAX_DELAY", ge=0)

    enable_manifest_cache: bool = Field(default=True, alias="ENABLE_MANIFEST_CACHE")
    manifest_cache_ttl: int = Field(default=300, alias="MANIFEST_CACHE_TTL", ge=0)
    manifest_cache_size: int = Field(default=5, alias="MANIFEST_CACHE_SIZE", ge=1)
    id_cache_ttl: int = Field(default=7 * 24 * 3600, alias="ID_CACHE_TTL", ge=60)
    metadata_cache_ttl: int = Field(default=24 * 3600, alias="METADATA_CACHE_TTL", ge=60)
    negative_cache_ttl: int = Field(default=3600, alias="NEGATIVE_CACHE_TTL", ge=1)
    cache_max_entries: int = Field(default=10_000, alias="CACHE_MAX_ENTRIES", ge=10)

    on_primary_failure: PrimaryFailurePolicy = Field(
        default="leaveUnenriched", alias="ON_PRIMARY_FAILURE"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator(
        "trakt_client_id",
        "trakt_client_secret",
        "trakt_redirect_uri",
        "tmdb_bearer_token",
        "fanart_api_key",
        mode="before",
    )
    @classmethod
    def _strip_secret(cls, value: object) -> object:
        """Environment values frequently carry stray whitespace."""

        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper() or "INFO"
        return value

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
