"""Durable exchange-rate records keyed by (from_currency, to_currency).

The refresh watermark lives in the same table under a sentinel key that can
never collide with a three-letter currency code. Without a database the store
is disabled: reads return None and writes do nothing.
"""

from __future__ import annotations

import time
from typing import Any, Callable

from budget_platform.currency.models import (
    ExchangeRateSnapshot,
    PersistedRate,
    RefreshMetadata,
    iso_from_ms,
    ms_from_iso,
)
from budget_platform.currency.settings import CurrencySettings
from budget_platform.services.database.interface import DatabaseInterface

RATES_TABLE = "exchange_rates"
META_FROM = "__meta__"
META_TO = "snapshot"
_KEY = ["from_currency", "to_currency"]

_SELECT_PAIR = f"SELECT * FROM {RATES_TABLE} WHERE from_currency = $1 AND to_currency = $2"


def _now_ms() -> int:
    return int(time.time() * 1000)


class RatesStore:
    def __init__(
        self,
        db: DatabaseInterface | None,
        settings: CurrencySettings,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._db = db if settings.persistence_enabled else None
        self._settings = settings
        self._clock = clock or _now_ms

    @property
    def enabled(self) -> bool:
        return self._db is not None

    async def get_persisted_rate(self, from_currency: str, to_currency: str) -> PersistedRate | None:
        if self._db is None:
            return None
        row = await self._db.fetch_one_async(_SELECT_PAIR, [from_currency, to_currency])
        if row is None:
            return None
        rate = row.get("rate")
        if rate is None:
            return None
        ttl_epoch = _as_int(row.get("ttl_epoch"))
        if ttl_epoch is not None and ttl_epoch <= self._clock() // 1000:
            return None
        snapshot = ExchangeRateSnapshot(
            from_currency=row["from_currency"],
            to_currency=row["to_currency"],
            rate=float(rate),
            provider=row.get("provider") or self._settings.provider,
            captured_at=row.get("captured_at") or iso_from_ms(0),
            stale=bool(row.get("stale")),
        )
        return PersistedRate(
            snapshot=snapshot,
            fresh_until_epoch=_as_int(row.get("fresh_until_epoch")),
            ttl_epoch=ttl_epoch,
        )

    async def put_persisted_rate(self, snapshot: ExchangeRateSnapshot) -> None:
        if self._db is None or snapshot.from_currency == snapshot.to_currency:
            return
        captured_ms = ms_from_iso(snapshot.captured_at) or self._clock()
        await self._db.upsert_async(
            RATES_TABLE,
            {
                "from_currency": snapshot.from_currency,
                "to_currency": snapshot.to_currency,
                "rate": snapshot.rate,
                "provider": snapshot.provider,
                "captured_at": snapshot.captured_at,
                "fresh_until_epoch": captured_ms + self._settings.persisted_fresh_ms,
                "ttl_epoch": (captured_ms + self._settings.persisted_ttl_ms) // 1000,
                "stale": snapshot.stale,
            },
            _KEY,
        )

    async def get_refresh_metadata(self) -> RefreshMetadata | None:
        if self._db is None:
            return None
        row = await self._db.fetch_one_async(_SELECT_PAIR, [META_FROM, META_TO])
        if row is None:
            return None
        return RefreshMetadata(
            last_refresh_epoch=_as_int(row.get("last_refresh_epoch")),
            last_manual_refresh_epoch=_as_int(row.get("last_manual_refresh_epoch")),
        )

    async def get_last_refresh_epoch(self) -> int | None:
        meta = await self.get_refresh_metadata()
        return meta.last_refresh_epoch if meta else None

    async def set_last_refresh_epoch(self, epoch: int, manual: bool = False) -> None:
        """Record a completed refresh; the manual watermark survives scheduled runs."""
        if self._db is None:
            return
        previous = await self.get_refresh_metadata()
        manual_epoch = epoch if manual else (previous.last_manual_refresh_epoch if previous else None)
        await self._db.upsert_async(
            RATES_TABLE,
            {
                "from_currency": META_FROM,
                "to_currency": META_TO,
                "stale": False,
                "last_refresh_epoch": epoch,
                "last_manual_refresh_epoch": manual_epoch,
            },
            _KEY,
        )

    async def purge_expired(self) -> int:
        """Delete rate rows whose ttl_epoch has passed. Returns rows removed."""
        if self._db is None:
            return 0
        return await self._db.execute_async(
            f"DELETE FROM {RATES_TABLE} WHERE ttl_epoch <= $1", [self._clock() // 1000]
        )


def _as_int(value: Any) -> int | None:
    if value is None:
        return None
    return int(value)
