from __future__ import annotations

import pytest

from budget_platform.currency.converter import CurrencyConverter
from budget_platform.currency.memory_rate_source import MemoryRateSource
from budget_platform.currency.rate_cache import RateCache
from budget_platform.currency.rates_store import RatesStore
from budget_platform.currency.refresh import RateRefresher
from budget_platform.currency.settings import CurrencySettings
from budget_platform.services.cache.memory_cache import MemoryCache
from budget_platform.services.database.memory_database import MemoryDatabase
from budget_platform.services.logger.memory_logger import MemoryLogger
from budget_platform.services.metrics.memory_metrics import MemoryMetrics

START_MS = 1_767_225_600_000  # 2026-01-01T00:00:00Z


class FakeClock:
    """Epoch-milliseconds clock advanced by hand."""

    def __init__(self, start_ms: int = START_MS) -> None:
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms

    def seconds(self) -> float:
        return self.now / 1000


RATES = {
    ("EUR", "USD"): 1.1,
    ("EUR", "GBP"): 0.85,
    ("USD", "EUR"): 0.9,
    ("USD", "GBP"): 0.77,
    ("GBP", "EUR"): 1.18,
    ("GBP", "USD"): 1.3,
}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> CurrencySettings:
    return CurrencySettings(
        base_currency="EUR",
        supported_currencies=("EUR", "USD", "GBP"),
        provider="test-provider",
        memory_cache_ttl_ms=5 * 60 * 1000,
        persisted_fresh_ms=24 * 60 * 60 * 1000,
        persisted_ttl_days=30,
    )


@pytest.fixture
def db() -> MemoryDatabase:
    database = MemoryDatabase()
    database.connect()
    return database


@pytest.fixture
def store(db: MemoryDatabase, settings: CurrencySettings, clock: FakeClock) -> RatesStore:
    return RatesStore(db, settings, clock=clock)


@pytest.fixture
def source(clock: FakeClock) -> MemoryRateSource:
    return MemoryRateSource(RATES, clock=clock)


@pytest.fixture
def metrics() -> MemoryMetrics:
    return MemoryMetrics()


@pytest.fixture
def logger() -> MemoryLogger:
    return MemoryLogger()


@pytest.fixture
def rate_cache(settings: CurrencySettings, clock: FakeClock) -> RateCache:
    return RateCache(MemoryCache(clock=clock.seconds), settings.memory_cache_ttl_ms)


@pytest.fixture
def converter(settings, rate_cache, store, source, logger, metrics, clock) -> CurrencyConverter:
    return CurrencyConverter(settings, rate_cache, store, source, logger, metrics, clock=clock)


@pytest.fixture
def refresher(settings, store, source, logger, metrics, clock) -> RateRefresher:
    return RateRefresher(settings, store, source, logger, metrics, clock=clock)
