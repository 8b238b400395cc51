from __future__ import annotations

import time
from typing import Any, Callable, NamedTuple

from budget_platform.services.cache.interface import CacheInterface


class _Entry(NamedTuple):
    value: Any
    expires_at: float | None


class MemoryCache(CacheInterface):
    """Dict-backed cache; expired entries are evicted lazily on read.

    ``clock`` returns seconds on a monotonic scale. Tests pass a fake clock to
    step past TTL boundaries without sleeping.
    """

    def __init__(self, clock: Callable[[], float] | None = None) -> None:
        self._entries: dict[str, _Entry] = {}
        self._clock = clock or time.monotonic

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        expires_at = None if ttl is None else self._clock() + ttl
        self._entries[key] = _Entry(value, expires_at)

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def delete_prefix(self, prefix: str) -> int:
        doomed = [key for key in self._entries if key.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def flush(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
