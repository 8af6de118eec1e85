"""
Per-process read-through cache for hot, rarely-changing rows (user permissions).

Entries expire after ``CACHE_TTL_SECONDS``; writers call ``cache_invalidate``
after committing so the next read in this process reloads from the database.
Other worker processes converge once their own entries expire.
"""
from __future__ import annotations

import os
import threading
from typing import Any

from cachetools import TTLCache


def _env_int(name: str, default: int, lo: int, hi: int) -> int:
    try:
        val = int(os.getenv(name, "") or default)
    except ValueError:
        val = default
    return max(lo, min(hi, val))


class _ProcessCache:
    def __init__(self, *, ttl: int, maxsize: int):
        self._cache: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl)
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Any:
        with self._lock:
            val = self._cache.get(key)
            if val is None:
                self._misses += 1
            else:
                self._hits += 1
            return val

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._cache[key] = value

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._cache.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self._hits = self._misses = 0

    def stats(self) -> dict[str, Any]:
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "size": len(self._cache),
                "maxsize": self._cache.maxsize,
                "ttlSeconds": int(self._cache.ttl),
                "hits": self._hits,
                "misses": self._misses,
                "hitRate": round(self._hits * 100.0 / lookups, 2) if lookups else 0.0,
            }


_cache = _ProcessCache(
    ttl=_env_int("CACHE_TTL_SECONDS", 60, 1, 3600),
    maxsize=_env_int("CACHE_MAX_ITEMS", 10000, 100, 500_000),
)


def cache_key(namespace: str, *parts: Any) -> str:
    return ":".join([str(namespace).strip().upper(), *(str(p or "").strip() for p in parts)])


def cache_get(key: str) -> Any:
    return _cache.get(key)


def cache_set(key: str, value: Any) -> None:
    _cache.set(key, value)


def cache_invalidate(key: str) -> bool:
    return _cache.invalidate(key)


def cache_clear() -> None:
    _cache.clear()


def cache_stats() -> dict[str, Any]:
    return _cache.stats()
