from __future__ import annotations

import asyncio

from budget_platform.currency.models import ExchangeRateSnapshot
from budget_platform.services.cache.interface import CacheInterface

_KEY_PREFIX = "rate:"


def _key(from_currency: str, to_currency: str) -> str:
    return f"{_KEY_PREFIX}{from_currency}:{to_currency}"


class RateCache:
    """Process-wide snapshot cache shared by every request.

    Entries expire ``ttl_ms`` after insertion, independently of the persisted
    freshness window.
    """

    def __init__(self, cache: CacheInterface, ttl_ms: int) -> None:
        self._cache = cache
        self._ttl_seconds = ttl_ms / 1000

    def get(self, from_currency: str, to_currency: str) -> ExchangeRateSnapshot | None:
        value = self._cache.get(_key(from_currency, to_currency))
        return value if isinstance(value, ExchangeRateSnapshot) else None

    def put(self, snapshot: ExchangeRateSnapshot) -> None:
        if self._ttl_seconds <= 0:
            return
        self._cache.set(
            _key(snapshot.from_currency, snapshot.to_currency),
            snapshot,
            ttl=self._ttl_seconds,
        )

    def invalidate(self, from_currency: str, to_currency: str) -> None:
        self._cache.delete(_key(from_currency, to_currency))

    def clear(self) -> None:
        self._cache.delete_prefix(_KEY_PREFIX)


class RateContext:
    """Request-scoped map of in-flight upstream fetches, keyed by pair.

    Callers resolving the same pair within one context await the same task.
    """

    def __init__(self, name: str = "request") -> None:
        self.name = name
        self._in_flight: dict[tuple[str, str], asyncio.Task[ExchangeRateSnapshot]] = {}

    def get(self, pair: tuple[str, str]) -> asyncio.Task[ExchangeRateSnapshot] | None:
        return self._in_flight.get(pair)

    def track(self, pair: tuple[str, str], task: asyncio.Task[ExchangeRateSnapshot]) -> None:
        self._in_flight[pair] = task

    def release(self, pair: tuple[str, str], task: asyncio.Task[ExchangeRateSnapshot]) -> None:
        if self._in_flight.get(pair) is task:
            del self._in_flight[pair]

    def __len__(self) -> int:
        return len(self._in_flight)

    def __repr__(self) -> str:
        return f"RateContext({self.name!r}, in_flight={len(self._in_flight)})"
