"""Utilities for caching listing search results."""

from __future__ import annotations

import hashlib
from typing import Callable, Dict, List

from django.conf import settings  # type: ignore
from django.core.cache import cache  # type: ignore

CACHE_PREFIX = "search:listings"
CACHE_KEYS_STORAGE_KEY = "search:listing_cache_keys"

SearchResult = List[List[object]]


def _is_cache_enabled() -> bool:
    return settings.DOKKERR.get("SEARCH_CACHE_ENABLED", False)


def _build_cache_key(filters: Dict[str, object]) -> str:
    normalized_parts = [f"{key}={filters[key]}" for key in sorted(filters)]
    fingerprint = "|".join(normalized_parts)
    digest = hashlib.sha1(fingerprint.encode("utf-8")).hexdigest()
    return f"{CACHE_PREFIX}:{digest}"


def _register_cache_key(key: str) -> None:
    keys: List[str] | None = cache.get(CACHE_KEYS_STORAGE_KEY)
    if keys is None:
        cache.set(CACHE_KEYS_STORAGE_KEY, [key], None)
        return
    if key in keys:
        return
    keys.append(key)
    cache.set(CACHE_KEYS_STORAGE_KEY, keys, None)


def get_cached_search(filters: Dict[str, object], builder: Callable[[], SearchResult]) -> SearchResult:
    """Return cached ``[listing_id, distance]`` rows for the provided filters."""
    if not _is_cache_enabled():
        return builder()

    key = _build_cache_key(filters)
    cached: SearchResult | None = cache.get(key)
    if cached is not None:
        return cached

    result = builder()
    cache.set(key, result, settings.DOKKERR.get("SEARCH_CACHE_TIMEOUT", 120))
    _register_cache_key(key)
    return result


def invalidate_search_cache() -> None:
    """Remove all cached search result entries."""
    keys: List[str] | None = cache.get(CACHE_KEYS_STORAGE_KEY)
    if keys:
        cache.delete_many(keys)
    cache.delete(CACHE_KEYS_STORAGE_KEY)


__all__ = [
    "get_cached_search",
    "invalidate_search_cache",
]
