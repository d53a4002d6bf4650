"""Per-user configuration carried in the addon URL."""

from __future__ import annotations

import base64
import binascii
import gzip
import json
from collections.abc import Mapping, Sequence
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .config import PrimaryFailurePolicy

MetadataSource = Literal["cinemeta", "tmdb", "none"]

FREE_RPDB_KEY = "t0-free-rpdb"


class InvalidConfig(ValueError):
    """Raised when the config path segment cannot be decoded."""


class SortPreference(BaseModel):
    sort: str | None = None
    order: Literal["asc", "desc"] | None = None

    @field_validator("sort", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator("order", mode="before")
    @classmethod
    def _normalize_order(cls, value: object) -> object:
        if isinstance(value, str):
            lowered = value.strip().lower()
            return lowered if lowered in {"asc", "desc"} else None
        return value


class ListMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    list_type: Literal["L", "E", "W"] | None = Field(
        default=None, validation_alias=AliasChoices("listType", "list_type")
    )


class ImportedList(BaseModel):
    """A public list imported from its URL."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    name: str = ""
    is_mdblist_url_import: bool = Field(
        default=False, validation_alias=AliasChoices("isMDBListUrlImport")
    )
    is_trakt_public_list: bool = Field(
        default=False, validation_alias=AliasChoices("isTraktPublicList")
    )
    mdblist_id: str | None = Field(
        default=None, validation_alias=AliasChoices("mdblistId")
    )
    mdblist_username: str | None = Field(
        default=None, validation_alias=AliasChoices("mdblistUsername")
    )
    mdblist_slug: str | None = Field(
        default=None, validation_alias=AliasChoices("mdblistSlug")
    )
    trakt_user: str | None = Field(default=None, validation_alias=AliasChoices("traktUser"))
    trakt_slug: str | None = Field(
        default=None, validation_alias=AliasChoices("originalTraktSlug", "traktSlug")
    )
    has_movies: bool = Field(default=False, validation_alias=AliasChoices("hasMovies"))
    has_shows: bool = Field(default=False, validation_alias=AliasChoices("hasShows"))

    @field_validator("id", "mdblist_id", mode="before")
    @classmethod
    def _stringify(cls, value: object) -> object:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @property
    def is_url_import(self) -> bool:
        return self.is_mdblist_url_import or self.is_trakt_public_list

    def to_payload(self) -> dict[str, Any]:
        """Return the entry in the shape stored under ``importedAddons``."""

        payload = {
            "id": self.id,
            "name": self.name,
            "isMDBListUrlImport": self.is_mdblist_url_import,
            "isTraktPublicList": self.is_trakt_public_list,
            "mdblistId": self.mdblist_id,
            "mdblistUsername": self.mdblist_username,
            "mdblistSlug": self.mdblist_slug,
            "traktUser": self.trakt_user,
            "originalTraktSlug": self.trakt_slug,
            "hasMovies": self.has_movies,
            "hasShows": self.has_shows,
        }
        return {key: value for key, value in payload.items() if value is not None}


class UserConfig(BaseModel):
    """Credentials, per-list preferences and enrichment choices of one user."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    api_key: str | None = Field(default=None, validation_alias=AliasChoices("apiKey"))
    trakt_access_token: str | None = Field(
        default=None, validation_alias=AliasChoices("traktAccessToken")
    )
    trakt_refresh_token: str | None = Field(
        default=None, validation_alias=AliasChoices("traktRefreshToken")
    )
    trakt_expires_at: float | None = Field(
        default=None, validation_alias=AliasChoices("traktExpiresAt")
    )
    tmdb_session_id: str | None = Field(
        default=None, validation_alias=AliasChoices("tmdbSessionId")
    )
    tmdb_account_id: str | None = Field(
        default=None, validation_alias=AliasChoices("tmdbAccountId")
    )
    tmdb_bearer_token: str | None = Field(
        default=None, validation_alias=AliasChoices("tmdbBearerToken")
    )
    tmdb_language: str = Field(
        default="en-US", validation_alias=AliasChoices("tmdbLanguage")
    )
    rpdb_api_key: str | None = Field(
        default=None, validation_alias=AliasChoices("rpdbApiKey")
    )
    metadata_source: MetadataSource = Field(
        default="cinemeta", validation_alias=AliasChoices("metadataSource")
    )
    on_primary_failure: PrimaryFailurePolicy | None = Field(
        default=None, validation_alias=AliasChoices("onPrimaryFailure")
    )
    list_order: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("listOrder")
    )
    hidden_lists: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("hiddenLists")
    )
    removed_lists: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("removedLists")
    )
    custom_list_names: dict[str, str] = Field(
        default_factory=dict, validation_alias=AliasChoices("customListNames")
    )
    custom_media_type_names: dict[str, str] = Field(
        default_factory=dict, validation_alias=AliasChoices("customMediaTypeNames")
    )
    merged_lists: dict[str, bool] = Field(
        default_factory=dict, validation_alias=AliasChoices("mergedLists")
    )
    sort_preferences: dict[str, SortPreference] = Field(
        default_factory=dict, validation_alias=AliasChoices("sortPreferences")
    )
    lists_metadata: dict[str, ListMetadata] = Field(
        default_factory=dict, validation_alias=AliasChoices("listsMetadata")
    )
    imported_addons: dict[str, ImportedList] = Field(
        default_factory=dict, validation_alias=AliasChoices("importedAddons")
    )
    enable_random_list_feature: bool = Field(
        default=False, validation_alias=AliasChoices("enableRandomListFeature")
    )
    random_mdblist_usernames: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("randomMDBListUsernames")
    )
    disable_genre_filter: bool = Field(
        default=False, validation_alias=AliasChoices("disableGenreFilter")
    )
    search_sources: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("searchSources")
    )
    merged_search_sources: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("mergedSearchSources")
    )

    @classmethod
    def from_segment(cls, segment: str) -> "UserConfig":
        return cls.model_validate(decode_config(segment))

    @field_validator(
        "api_key",
        "trakt_access_token",
        "trakt_refresh_token",
        "tmdb_session_id",
        "tmdb_bearer_token",
        "rpdb_api_key",
        mode="before",
    )
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        if value is None:
            return None
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return value

    @field_validator("tmdb_account_id", mode="before")
    @classmethod
    def _parse_account_id(cls, value: object) -> object:
        if value is None or value == "":
            return None
        return str(value).strip() or None

    @field_validator("tmdb_language", mode="before")
    @classmethod
    def _default_language(cls, value: object) -> object:
        if value is None:
            return "en-US"
        if isinstance(value, str):
            return value.strip() or "en-US"
        return value

    @field_validator("metadata_source", mode="before")
    @classmethod
    def _normalize_source(cls, value: object) -> object:
        if value is None or value == "":
            return "cinemeta"
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator(
        "list_order",
        "hidden_lists",
        "removed_lists",
        "random_mdblist_usernames",
        "search_sources",
        "merged_search_sources",
        mode="before",
    )
    @classmethod
    def _parse_string_list(cls, value: object) -> object:
        if value is None or value == "":
            return []
        if isinstance(value, str):
            raw_values: Sequence[Any] = value.split(",")
        elif isinstance(value, Sequence):
            raw_values = value
        else:
            raise TypeError("Expected a string or a list of strings")
        cleaned: list[str] = []
        for entry in raw_values:
            text = str(entry).strip()
            if text and text not in cleaned:
                cleaned.append(text)
        return cleaned

    @field_validator("imported_addons", mode="before")
    @classmethod
    def _keep_url_imports(cls, value: object) -> object:
        if not isinstance(value, Mapping):
            return {}
        imported: dict[str, Any] = {}
        for key, entry in value.items():
            if not isinstance(entry, Mapping):
                continue
            payload = dict(entry)
            payload.setdefault("id", key)
            imported[str(key)] = payload
        return imported

    def primary_failure_policy(self, default: PrimaryFailurePolicy) -> PrimaryFailurePolicy:
        return self.on_primary_failure or default

    def sort_preference(self, list_id: str) -> SortPreference:
        return self.sort_preferences.get(list_id) or SortPreference()

    def is_merged(self, catalog_id: str) -> bool:
        """Lists default to merged unless the user switched merging off."""

        return self.merged_lists.get(catalog_id) is not False

    def has_trakt(self) -> bool:
        return bool(self.trakt_access_token)

    def has_tmdb_session(self) -> bool:
        return bool(self.tmdb_session_id)


def decode_config(segment: str) -> dict[str, Any]:
    """Decode a URL-safe base64 (optionally gzip-compressed) JSON object."""

    text = (segment or "").strip()
    if not text:
        raise InvalidConfig("Empty configuration")
    padded = text + "=" * (-len(text) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError, ValueError) as exc:
        raise InvalidConfig("Configuration is not valid base64") from exc
    if raw[:2] == b"\x1f\x8b":
        try:
            raw = gzip.decompress(raw)
        except (OSError, EOFError) as exc:
            raise InvalidConfig("Configuration is not valid gzip") from exc
    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise InvalidConfig("Configuration is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise InvalidConfig("Configuration must be a JSON object")
    return payload


def encode_config(payload: Mapping[str, Any], *, compress: bool = False) -> str:
    raw = json.dumps(dict(payload), separators=(",", ":")).encode("utf-8")
    if compress:
        raw = gzip.compress(raw)
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")
