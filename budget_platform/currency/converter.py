"""Currency conversion over a tiered rate lookup.

Resolution order for a pair:

1. identical currencies: rate 1, no I/O
2. the process-wide ``RateCache``
3. a fetch for the same pair already running in the caller's ``RateContext``
4. a persisted record still inside its freshness window
5. the upstream rate source (result cached and persisted)
6. on upstream failure, any persisted record, flagged ``stale``

Steps 4 to 6 run as one task per (context, pair) so concurrent callers share
a single upstream request.
"""

from __future__ import annotations

import asyncio
import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable

from budget_platform.currency.errors import RateFetchError
from budget_platform.currency.models import (
    Conversion,
    ExchangeRateSnapshot,
    RateResolution,
    iso_from_ms,
)
from budget_platform.currency.rate_cache import RateCache, RateContext
from budget_platform.currency.rate_source import RateSourceInterface
from budget_platform.currency.rates_store import RatesStore
from budget_platform.currency.settings import CurrencySettings
from budget_platform.services.logger.interface import LoggingInterface
from budget_platform.services.metrics.interface import MetricsInterface

_CENT = Decimal("0.01")


def round_money(value: float) -> float:
    """Round to 2 decimals, halves away from zero."""
    return float(Decimal(repr(value)).quantize(_CENT, rounding=ROUND_HALF_UP))


def multiply_money(amount: float, rate: float) -> float:
    """``amount * rate`` rounded once, computed on the decimal forms of both."""
    product = Decimal(repr(float(amount))) * Decimal(repr(float(rate)))
    return float(product.quantize(_CENT, rounding=ROUND_HALF_UP))


class CurrencyConverter:
    def __init__(
        self,
        settings: CurrencySettings,
        rate_cache: RateCache,
        store: RatesStore,
        source: RateSourceInterface,
        logger: LoggingInterface,
        metrics: MetricsInterface,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.settings = settings
        self.rate_cache = rate_cache
        self.store = store
        self.source = source
        self.log = logger
        self.metrics = metrics
        self._clock = clock or (lambda: int(time.time() * 1000))
        self.default_context = RateContext("default")

    def create_rate_context(self, name: str = "request") -> RateContext:
        return RateContext(name)

    async def convert(
        self, amount: float, from_currency: str, to_currency: str, context: RateContext
    ) -> Conversion:
        snapshot = await self.get_rate(from_currency, to_currency, context)
        return Conversion(amount=multiply_money(amount, snapshot.rate), snapshot=snapshot)

    async def convert_to_base_currency(
        self, amount: float, currency: str, context: RateContext
    ) -> Conversion:
        return await self.convert(amount, currency, self.settings.base_currency, context)

    async def convert_from_base_currency(
        self, amount: float, currency: str, context: RateContext
    ) -> Conversion:
        return await self.convert(amount, self.settings.base_currency, currency, context)

    async def get_rate(
        self, from_currency: str, to_currency: str, context: RateContext
    ) -> ExchangeRateSnapshot:
        """Return a snapshot for the pair, raising ``RateFetchError`` when none exists."""
        resolution = await self.resolve(from_currency, to_currency, context)
        self.metrics.counter("currency_rate_lookups_total", tags={"source": resolution.source})
        return resolution.unwrap()

    async def resolve(
        self, from_currency: str, to_currency: str, context: RateContext
    ) -> RateResolution:
        if from_currency == to_currency:
            return RateResolution.resolved(self._identity(from_currency), "identity")

        cached = self.rate_cache.get(from_currency, to_currency)
        if cached is not None:
            return RateResolution.resolved(cached, "memory")

        pair = (from_currency, to_currency)
        task = context.get(pair)
        if task is None:
            task = asyncio.ensure_future(self._resolve_uncached(from_currency, to_currency))
            context.track(pair, task)
            task.add_done_callback(lambda done: context.release(pair, done))
        # A cancelled waiter must not cancel the fetch other waiters share.
        return await asyncio.shield(task)

    def warm(self, snapshot: ExchangeRateSnapshot) -> None:
        """Seed the process cache with a freshly refreshed snapshot."""
        self.rate_cache.put(snapshot.as_fresh())

    async def close(self) -> None:
        self.rate_cache.clear()
        await self.source.close()

    def _identity(self, currency: str) -> ExchangeRateSnapshot:
        return ExchangeRateSnapshot(
            from_currency=currency,
            to_currency=currency,
            rate=1.0,
            provider=self.settings.provider,
            captured_at=iso_from_ms(self._clock()),
        )

    async def _resolve_uncached(self, from_currency: str, to_currency: str) -> RateResolution:
        persisted = await self.store.get_persisted_rate(from_currency, to_currency)
        if persisted is not None and persisted.is_fresh(self._clock()):
            snapshot = persisted.snapshot.as_fresh()
            self.rate_cache.put(snapshot)
            return RateResolution.resolved(snapshot, "persisted")

        try:
            self.log.debug("Fetching exchange rate", from_currency=from_currency, to_currency=to_currency)
            with self.metrics.timed("currency_upstream_fetch_ms", tags={"caller": "converter"}):
                quote = await self.source.fetch_rates(from_currency, [to_currency])
        except RateFetchError as exc:
            self.metrics.counter(
                "currency_rate_fetch_failures_total",
                tags={"pair": f"{from_currency}:{to_currency}"},
            )
            if persisted is None:
                self.log.error(
                    "Exchange rate unavailable",
                    from_currency=from_currency,
                    to_currency=to_currency,
                    error=str(exc),
                )
                return RateResolution.failed(exc)
            self.log.warn(
                "Serving stale exchange rate",
                from_currency=from_currency,
                to_currency=to_currency,
                captured_at=persisted.snapshot.captured_at,
                error=str(exc),
            )
            return RateResolution.resolved(persisted.snapshot.as_stale(), "stale")

        snapshot = ExchangeRateSnapshot(
            from_currency=from_currency,
            to_currency=to_currency,
            rate=quote.rates[to_currency],
            provider=self.settings.provider,
            captured_at=quote.captured_at,
        )
        self.rate_cache.put(snapshot)
        await self.store.put_persisted_rate(snapshot)
        return RateResolution.resolved(snapshot, "upstream")
