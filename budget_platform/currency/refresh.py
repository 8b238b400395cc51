"""Batch refresh of every supported currency pair into the rates store.

One upstream call per base currency (N calls for N currencies). A refresh is
skipped while the previous one is still inside the freshness window unless
forced.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable

from budget_platform.currency.models import ExchangeRateSnapshot, RefreshResult
from budget_platform.currency.rate_source import RateSourceInterface
from budget_platform.currency.rates_store import RatesStore
from budget_platform.currency.settings import CurrencySettings
from budget_platform.services.logger.interface import LoggingInterface
from budget_platform.services.metrics.interface import MetricsInterface

SnapshotCallback = Callable[[ExchangeRateSnapshot], None]

MS_PER_HOUR = 60 * 60 * 1000


def hours_since(epoch_ms: int, now_ms: int) -> float:
    return round((now_ms - epoch_ms) / MS_PER_HOUR, 2)


class RateRefresher:
    def __init__(
        self,
        settings: CurrencySettings,
        store: RatesStore,
        source: RateSourceInterface,
        logger: LoggingInterface,
        metrics: MetricsInterface,
        clock: Callable[[], int] | None = None,
        on_snapshot: SnapshotCallback | None = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.source = source
        self.log = logger
        self.metrics = metrics
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._on_snapshot = on_snapshot

    async def refresh_all_rates(self, force: bool = False) -> RefreshResult:
        if not self.store.enabled:
            raise RuntimeError("Rates persistence is not configured")

        now = self._clock()
        last = await self.store.get_last_refresh_epoch() or 0
        next_allowed = last + self.settings.persisted_fresh_ms
        if not force and last and now < next_allowed:
            self.metrics.counter("rates_refresh_total", tags={"outcome": "skipped"})
            self.log.info(
                "Rate refresh skipped",
                reason="fresh",
                last_refresh_epoch=last,
                next_allowed_refresh_epoch=next_allowed,
            )
            return RefreshResult(
                refreshed=False,
                updated_pairs=0,
                last_refresh_epoch=last,
                next_allowed_refresh_epoch=next_allowed,
                skipped_reason="fresh",
            )

        try:
            snapshots = await self._refresh_batches()
            await self.store.set_last_refresh_epoch(now, manual=force)
        except Exception as exc:
            self.metrics.counter("rates_refresh_total", tags={"outcome": "failed"})
            self.log.error("Rate refresh failed", forced=force, error=str(exc))
            raise

        self.metrics.counter("rates_refresh_total", tags={"outcome": "refreshed"})
        self.log.info("Rates refreshed", forced=force, updated_pairs=len(snapshots))
        return RefreshResult(
            refreshed=True,
            updated_pairs=len(snapshots),
            last_refresh_epoch=now,
            next_allowed_refresh_epoch=now + self.settings.persisted_fresh_ms,
            snapshots=snapshots,
        )

    async def refresh_and_report(self, force: bool = False) -> RefreshResult:
        """Refresh, then publish the refresh age; on failure publish the last known age."""
        try:
            result = await self.refresh_all_rates(force=force)
        except Exception:
            await self.publish_refresh_age(await self.store.get_last_refresh_epoch())
            raise
        await self.publish_refresh_age(result.last_refresh_epoch)
        return result

    async def publish_refresh_age(self, last_refresh_epoch: int | None) -> None:
        if not last_refresh_epoch:
            return
        self.metrics.gauge(
            "rates_hours_since_refresh", hours_since(last_refresh_epoch, self._clock())
        )

    async def _refresh_batches(self) -> list[ExchangeRateSnapshot]:
        currencies = list(self.settings.supported_currencies)
        refreshed: list[ExchangeRateSnapshot] = []
        for base in currencies:
            targets = [c for c in currencies if c != base]
            if not targets:
                continue
            with self.metrics.timed("currency_upstream_fetch_ms", tags={"caller": "refresh"}):
                quote = await self.source.fetch_rates(base, targets)
            batch = [
                ExchangeRateSnapshot(
                    from_currency=base,
                    to_currency=target,
                    rate=quote.rates[target],
                    provider=self.settings.provider,
                    captured_at=quote.captured_at,
                )
                for target in targets
            ]
            await asyncio.gather(*(self._persist(s) for s in batch))
            refreshed.extend(batch)
        return refreshed

    async def _persist(self, snapshot: ExchangeRateSnapshot) -> None:
        await self.store.put_persisted_rate(snapshot)
        if self._on_snapshot is not None:
            self._on_snapshot(snapshot)
