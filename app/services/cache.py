"""In-memory read-through caches with per-entry expiry."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Hashable

from cachetools import TLRUCache

MISSING: Any = object()


@dataclass(slots=True)
class _Entry:
    value: Any
    ttl: float


class CacheService:
    """Bounded key/value store where every entry carries its own time-to-live.

    ``None`` is a legitimate cached value: it marks a negative lookup and is
    stored with ``negative_ttl`` so persistently failing keys are retried
    sooner than successful ones expire.
    """

    def __init__(
        self,
        *,
        default_ttl: float,
        maxsize: int = 1024,
        negative_ttl: float | None = None,
        timer: Callable[[], float] = time.monotonic,
    ):
        self._default_ttl = float(default_ttl)
        self._negative_ttl = float(
            negative_ttl if negative_ttl is not None else default_ttl
        )
        self._cache: TLRUCache[Hashable, _Entry] = TLRUCache(
            maxsize=maxsize, ttu=self._expires_at, timer=timer
        )

    @staticmethod
    def _expires_at(_key: Hashable, entry: _Entry, now: float) -> float:
        return now + entry.ttl

    def lookup(self, key: Hashable) -> Any:
        """Return the cached value, or :data:`MISSING` if absent or expired."""

        entry = self._cache.get(key)
        if entry is None:
            return MISSING
        return entry.value

    def get(self, key: Hashable, default: Any = None) -> Any:
        value = self.lookup(key)
        return default if value is MISSING else value

    def set(self, key: Hashable, value: Any, ttl: float | None = None) -> None:
        if ttl is None:
            ttl = self._negative_ttl if value is None else self._default_ttl
        if ttl <= 0:
            self._cache.pop(key, None)
            return
        self._cache[key] = _Entry(value=value, ttl=float(ttl))

    def set_negative(self, key: Hashable) -> None:
        self.set(key, None, self._negative_ttl)

    async def get_or_load(
        self,
        key: Hashable,
        loader: Callable[[], Awaitable[Any]],
        *,
        ttl: float | None = None,
    ) -> Any:
        """Read-through access: call ``loader`` on a miss and remember its result."""

        cached = self.lookup(key)
        if cached is not MISSING:
            return cached
        value = await loader()
        self.set(key, value, None if value is None else ttl)
        return value

    def delete(self, key: Hashable) -> None:
        self._cache.pop(key, None)

    def clear(self) -> None:
        self._cache.clear()

    def __contains__(self, key: Hashable) -> bool:
        return self.lookup(key) is not MISSING

    def __len__(self) -> int:
        self._cache.expire()
        return len(self._cache)
