"""Simple TTL cache helpers for frequently requested price quotes."""
from __future__ import annotations

from datetime import date
from typing import Generic, Optional, TypeVar

from cachetools import TTLCache

T = TypeVar("T")


class SimpleTTLCache(Generic[T]):
    def __init__(self, ttl: int, maxsize: int = 256) -> None:
        self._cache: TTLCache[str, T] = TTLCache(maxsize=maxsize, ttl=ttl)

    def get(self, key: str) -> Optional[T]:
        return self._cache.get(key)

    def set(self, key: str, value: T) -> None:
        self._cache[key] = value

    def pop(self, key: str) -> None:
        self._cache.pop(key, None)

    def pop_prefix(self, prefix: str) -> int:
        """Drop every entry whose key starts with ``prefix``; returns how many went."""
        stale = [key for key in list(self._cache.keys()) if key.startswith(prefix)]
        for key in stale:
            self._cache.pop(key, None)
        return len(stale)

    def clear(self) -> None:
        self._cache.clear()


def room_prefix(room_id: int) -> str:
    return f"price:{room_id}:"


def price_key(room_id: int, check_in: date, check_out: date) -> str:
    return f"{room_prefix(room_id)}{check_in.isoformat()}:{check_out.isoformat()}"
