"""Assembles the currency components that modules share."""

from __future__ import annotations

from dataclasses import dataclass

from budget_platform.config.context import PlatformConfig
from budget_platform.currency.api_key import ApiKeyProvider
from budget_platform.currency.converter import CurrencyConverter
from budget_platform.currency.rate_cache import RateCache
from budget_platform.currency.rate_source import CurrencyApiRateSource, RateSourceInterface
from budget_platform.currency.rates_store import RatesStore
from budget_platform.currency.refresh import RateRefresher
from budget_platform.currency.settings import CurrencySettings
from budget_platform.services.cache.interface import CacheInterface
from budget_platform.services.database.interface import DatabaseInterface
from budget_platform.services.logger.interface import LoggingInterface
from budget_platform.services.metrics.interface import MetricsInterface
from budget_platform.services.secrets.interface import SecretsInterface


@dataclass
class CurrencyStack:
    settings: CurrencySettings
    store: RatesStore
    source: RateSourceInterface
    converter: CurrencyConverter
    refresher: RateRefresher

    async def close(self) -> None:
        await self.converter.close()


def build_currency_stack(
    env: PlatformConfig,
    secrets: SecretsInterface,
    db: DatabaseInterface | None,
    cache: CacheInterface,
    logger: LoggingInterface,
    metrics: MetricsInterface,
    source: RateSourceInterface | None = None,
    settings: CurrencySettings | None = None,
) -> CurrencyStack:
    """Wire settings, store, upstream source, converter and refresher.

    Snapshots written by a refresh also warm this process's memory cache.
    """
    settings = settings or CurrencySettings.from_config(env)
    store = RatesStore(db, settings)
    if source is None:
        source = CurrencyApiRateSource(settings, ApiKeyProvider(settings, secrets))
    converter = CurrencyConverter(
        settings,
        RateCache(cache, settings.memory_cache_ttl_ms),
        store,
        source,
        logger,
        metrics,
    )
    refresher = RateRefresher(settings, store, source, logger, metrics, on_snapshot=converter.warm)
    return CurrencyStack(settings, store, source, converter, refresher)
