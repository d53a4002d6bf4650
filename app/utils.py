"""Utility helpers for the AIOLists service."""

from __future__ import annotations

import asyncio
import re
from typing import Any, Awaitable, Callable, Iterable, Iterator, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")

IMDB_ID_RE = re.compile(r"^tt\d{7,9}$")
BARE_IMDB_ID_RE = re.compile(r"^\d{7,9}$")
YEAR_RE = re.compile(r"(18|19|20|21)\d{2}")


def normalize_imdb_id(value: Any) -> str | None:
    """Return ``value`` as a ``tt``-prefixed IMDb id, or ``None``."""

    if value is None:
        return None
    text = str(value).strip()
    if IMDB_ID_RE.match(text):
        return text
    if BARE_IMDB_ID_RE.match(text):
        return f"tt{text}"
    return None


def parse_year(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if 1800 <= value <= 2200 else None
    if not value:
        return None
    match = YEAR_RE.search(str(value))
    if not match:
        return None
    return int(match.group(0))


def format_runtime(value: Any) -> str | None:
    """Render a runtime with a ``min`` unit suffix."""

    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if value <= 0:
            return None
        return f"{int(value)} min"
    text = str(value).strip()
    if not text:
        return None
    if "min" in text or "h" in text:
        return text
    return f"{text} min"


def format_rating(value: Any) -> str | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return f"{float(value):.1f}"
    text = str(value).strip()
    return text or None


def normalize_genres(value: Any) -> list[str]:
    """Return genres as a list whether given a CSV string, names or ``{name}`` dicts."""

    if not value:
        return []
    if isinstance(value, str):
        raw: Iterable[Any] = value.split(",")
    elif isinstance(value, (list, tuple, set)):
        raw = value
    else:
        return []
    genres: list[str] = []
    for entry in raw:
        if isinstance(entry, dict):
            entry = entry.get("name") or entry.get("title")
        if not isinstance(entry, str):
            continue
        name = entry.strip()
        if name and name not in genres:
            genres.append(name)
    return genres


def pick_localized(
    entries: Sequence[dict[str, Any]],
    *,
    language: str | None,
    original_language: str | None = None,
    key: str = "iso_639_1",
) -> dict[str, Any] | None:
    """Pick the entry for ``language``, then the original language, then English."""

    if not entries:
        return None
    candidates: list[str] = []
    for code in (language, original_language, "en"):
        if code:
            short = code.split("-")[0].lower()
            if short not in candidates:
                candidates.append(short)
    for code in candidates:
        for entry in entries:
            if str(entry.get(key) or "").lower() == code:
                return entry
    return entries[0]


def chunked(values: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of at most ``size`` elements."""

    step = max(1, int(size))
    for start in range(0, len(values), step):
        yield values[start : start + step]


async def gather_in_windows(
    values: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    *,
    window: int,
) -> list[R | BaseException]:
    """Run ``worker`` over ``values`` a window at a time.

    Every call in a window runs concurrently and the whole window is awaited
    before the next one starts. Results keep the input order; a failing call
    yields its exception in place of a result so siblings are unaffected.
    """

    results: list[R | BaseException] = []
    for window_values in chunked(values, window):
        outcome = await asyncio.gather(
            *(worker(value) for value in window_values), return_exceptions=True
        )
        results.extend(outcome)
    return results
