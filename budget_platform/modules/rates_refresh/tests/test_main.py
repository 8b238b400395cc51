"""Tests for the scheduled rates refresh job."""

from __future__ import annotations

import pytest

from budget_platform.config.context import ModuleConfig, PlatformConfig
from budget_platform.currency.errors import RateFetchError
from budget_platform.currency.memory_rate_source import MemoryRateSource
from budget_platform.currency.rates_store import META_FROM, RATES_TABLE
from budget_platform.modules.rates_refresh.main import RatesRefreshModule
from budget_platform.services.cache.memory_cache import MemoryCache
from budget_platform.services.database.memory_database import MemoryDatabase
from budget_platform.services.logger.factory import LoggerFactory
from budget_platform.services.metrics.memory_metrics import MemoryMetrics
from budget_platform.services.secrets.env_secrets import EnvSecrets

RATES = {
    ("EUR", "USD"): 1.1,
    ("EUR", "GBP"): 0.85,
    ("USD", "EUR"): 0.9,
    ("USD", "GBP"): 0.77,
    ("GBP", "EUR"): 1.18,
    ("GBP", "USD"): 1.3,
}

ENV = {"BASE_CURRENCY": "EUR", "SUPPORTED_CURRENCIES": "EUR,USD,GBP"}


def _make_module(
    args: dict | None = None,
    db: MemoryDatabase | None = None,
    env: dict[str, str] | None = None,
    source: MemoryRateSource | None = None,
) -> tuple[RatesRefreshModule, MemoryDatabase, MemoryRateSource, MemoryMetrics]:
    db = db or MemoryDatabase()
    source = source or MemoryRateSource(RATES)
    metrics = MemoryMetrics()
    module = RatesRefreshModule(
        config=ModuleConfig(args or {}),
        logger=LoggerFactory(default_impl="memory"),
        db=db,
        cache=MemoryCache(),
        metrics=metrics,
        env=PlatformConfig(overrides={**ENV, **(env or {})}),
        secrets=EnvSecrets(overrides={}),
        rate_source=source,
    )
    return module, db, source, metrics


def _rate_rows(db: MemoryDatabase) -> list[dict]:
    return [r for r in db._tables.get(RATES_TABLE, []) if r["from_currency"] != META_FROM]


@pytest.mark.asyncio
async def test_refresh_persists_every_pair(capsys) -> None:
    module, db, source, metrics = _make_module()
    assert await module.run() == 0

    assert sorted(base for base, _ in source.calls) == ["EUR", "GBP", "USD"]
    rows = _rate_rows(db)
    assert len(rows) == 6
    by_pair = {(r["from_currency"], r["to_currency"]): r["rate"] for r in rows}
    assert by_pair[("EUR", "USD")] == 1.1
    assert "Refreshed 6 rate pair(s)." in capsys.readouterr().out
    assert metrics.count("rates_refresh_total", outcome="refreshed") == 1
    assert metrics.gauges["rates_hours_since_refresh"] == 0.0


@pytest.mark.asyncio
async def test_second_run_inside_window_is_skipped(capsys) -> None:
    db = MemoryDatabase()
    first, _, _, _ = _make_module(db=db)
    await first.run()
    capsys.readouterr()

    second, _, source, metrics = _make_module(db=db)
    assert await second.run() == 0
    assert source.calls == []
    assert "Refresh skipped (fresh)" in capsys.readouterr().out
    assert metrics.count("rates_refresh_total", outcome="skipped") == 1


@pytest.mark.asyncio
async def test_force_ignores_freshness_window() -> None:
    db = MemoryDatabase()
    first, _, _, _ = _make_module(db=db)
    await first.run()

    forced, _, source, _ = _make_module(args={"force": True}, db=db)
    await forced.run()
    assert len(source.calls) == 3

    meta = next(r for r in db._tables[RATES_TABLE] if r["from_currency"] == META_FROM)
    assert meta["last_manual_refresh_epoch"] == meta["last_refresh_epoch"]


@pytest.mark.asyncio
async def test_expired_rows_are_purged() -> None:
    db = MemoryDatabase()
    db.connect()
    db.insert_one(RATES_TABLE, {"from_currency": "EUR", "to_currency": "CHF", "rate": 0.95, "ttl_epoch": 1})
    module, _, _, _ = _make_module(db=db)
    await module.run()

    pairs = {(r["from_currency"], r["to_currency"]) for r in _rate_rows(db)}
    assert ("EUR", "CHF") not in pairs
    assert len(pairs) == 6


@pytest.mark.asyncio
async def test_purge_can_be_disabled() -> None:
    db = MemoryDatabase()
    db.connect()
    db.insert_one(RATES_TABLE, {"from_currency": "EUR", "to_currency": "CHF", "rate": 0.95, "ttl_epoch": 1})
    module, _, _, _ = _make_module(args={"purge": False}, db=db)
    await module.run()

    assert ("EUR", "CHF") in {(r["from_currency"], r["to_currency"]) for r in _rate_rows(db)}


@pytest.mark.asyncio
async def test_persistence_disabled_fails_validation() -> None:
    module, _, source, _ = _make_module(env={"RATES_PERSISTENCE": "false"})
    with pytest.raises(ValueError, match="needs persistence"):
        await module.run()
    assert source.calls == []


@pytest.mark.asyncio
async def test_upstream_failure_propagates_and_records_outcome() -> None:
    source = MemoryRateSource(RATES)
    source.fail = True
    module, db, _, metrics = _make_module(source=source)
    with pytest.raises(RateFetchError):
        await module.run()
    assert metrics.count("rates_refresh_total", outcome="failed") == 1
    assert not db.is_connected()
