from __future__ import annotations

import pytest

from budget_platform.currency.converter import CurrencyConverter
from budget_platform.currency.memory_rate_source import MemoryRateSource
from budget_platform.currency.rate_cache import RateCache
from budget_platform.currency.rates_store import RatesStore
from budget_platform.currency.settings import CurrencySettings
from budget_platform.services.cache.memory_cache import MemoryCache
from budget_platform.services.database.memory_database import MemoryDatabase
from budget_platform.services.logger.memory_logger import MemoryLogger
from budget_platform.services.metrics.memory_metrics import MemoryMetrics

RATES = {
    ("EUR", "USD"): 1.1,
    ("USD", "EUR"): 0.9,
    ("EUR", "GBP"): 0.85,
    ("GBP", "EUR"): 1.18,
    ("USD", "GBP"): 0.77,
    ("GBP", "USD"): 1.3,
}


@pytest.fixture
def settings() -> CurrencySettings:
    return CurrencySettings(base_currency="EUR", supported_currencies=("EUR", "USD", "GBP"))


@pytest.fixture
def db() -> MemoryDatabase:
    database = MemoryDatabase()
    database.connect()
    return database


@pytest.fixture
def source() -> MemoryRateSource:
    return MemoryRateSource(RATES)


@pytest.fixture
def converter(settings, db, source) -> CurrencyConverter:
    return CurrencyConverter(
        settings,
        RateCache(MemoryCache(), settings.memory_cache_ttl_ms),
        RatesStore(db, settings),
        source,
        MemoryLogger(),
        MemoryMetrics(),
    )


@pytest.fixture
def context(converter):
    return converter.create_rate_context()
