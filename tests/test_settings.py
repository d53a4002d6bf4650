"""Configuration settings behaviour tests."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.config import Settings
from app.services.retry import RetryPolicy


def test_defaults_match_upstream_limits() -> None:
    """Out of the box the service uses the documented windows and TTLs."""

    settings = Settings(_env_file=None)

    assert settings.items_per_page == 100
    assert settings.tmdb_concurrency == 15
    assert settings.metadata_batch_size == 10
    assert settings.manifest_concurrency == 5
    assert settings.manifest_cache_ttl == 300
    assert settings.on_primary_failure == "leaveUnenriched"


def test_secrets_are_stripped_and_blank_values_dropped() -> None:
    """Environment secrets frequently carry stray whitespace."""

    settings = Settings(_env_file=None, TMDB_BEARER_TOKEN="  token  ", FANART_API_KEY="   ")

    assert settings.tmdb_bearer_token == "token"
    assert settings.fanart_api_key is None


def test_log_level_is_normalised() -> None:
    assert Settings(_env_file=None, LOG_LEVEL=" debug ").log_level == "DEBUG"


def test_retry_policy_follows_settings() -> None:
    settings = Settings(
        _env_file=None, RETRY_MAX_ATTEMPTS=3, RETRY_BASE_DELAY=0.5, RETRY_MAX_DELAY=4
    )

    assert RetryPolicy.from_settings(settings) == RetryPolicy(
        max_attempts=3, base_delay=0.5, max_delay=4.0
    )


def test_invalid_failure_policy_is_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, ON_PRIMARY_FAILURE="retryForever")


def test_concurrency_bounds_are_enforced() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, TMDB_CONCURRENCY=0)
