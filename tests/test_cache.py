"""Tests for the TTL cache service."""

from __future__ import annotations

import asyncio

from app.services.cache import MISSING, CacheService


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_entries_expire_after_their_ttl() -> None:
    clock = FakeClock()
    cache = CacheService(default_ttl=10, timer=clock)
    cache.set("key", "value")

    clock.now = 9
    assert cache.get("key") == "value"
    clock.now = 11
    assert cache.lookup("key") is MISSING


def test_negative_results_use_the_shorter_ttl() -> None:
    clock = FakeClock()
    cache = CacheService(default_ttl=100, negative_ttl=5, timer=clock)
    cache.set("hit", "value")
    cache.set("miss", None)

    clock.now = 6
    assert "miss" not in cache
    assert cache.get("hit") == "value"


def test_cached_none_is_distinguished_from_absent() -> None:
    cache = CacheService(default_ttl=10)
    cache.set_negative("gone")

    assert cache.lookup("gone") is None
    assert cache.lookup("never-set") is MISSING


def test_get_or_load_calls_loader_once() -> None:
    cache = CacheService(default_ttl=10)
    calls = 0

    async def loader() -> str:
        nonlocal calls
        calls += 1
        return "loaded"

    async def run() -> list[str]:
        return [await cache.get_or_load("key", loader) for _ in range(3)]

    assert asyncio.run(run()) == ["loaded", "loaded", "loaded"]
    assert calls == 1


def test_maxsize_bounds_the_number_of_entries() -> None:
    cache = CacheService(default_ttl=60, maxsize=2)
    for key in ("a", "b", "c"):
        cache.set(key, key)

    assert len(cache) == 2
    assert "c" in cache


def test_zero_ttl_removes_the_entry() -> None:
    cache = CacheService(default_ttl=60)
    cache.set("key", "value")
    cache.set("key", "other", ttl=0)

    assert cache.lookup("key") is MISSING
