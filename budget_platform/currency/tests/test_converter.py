"""Tests for the tiered conversion engine."""

from __future__ import annotations

import asyncio

import pytest

from budget_platform.currency.converter import CurrencyConverter, multiply_money, round_money
from budget_platform.currency.errors import RateFetchError
from budget_platform.currency.models import ExchangeRateSnapshot, iso_from_ms
from budget_platform.currency.rate_cache import RateCache
from budget_platform.currency.rates_store import RatesStore
from budget_platform.services.cache.memory_cache import MemoryCache

DAY_MS = 24 * 60 * 60 * 1000


async def _persist(store: RatesStore, clock, rate: float, age_ms: int = 0) -> None:
    captured = iso_from_ms(clock() - age_ms)
    await store.put_persisted_rate(ExchangeRateSnapshot("EUR", "USD", rate, "test-provider", captured))


@pytest.mark.parametrize("amount", [0.0, 10.005, -10.005, 1234.5678, 0.125])
@pytest.mark.asyncio
async def test_identity_conversion_rounds_with_rate_one(converter: CurrencyConverter, source, amount):
    result = await converter.convert(amount, "GBP", "GBP", converter.create_rate_context())
    assert result.amount == round_money(amount)
    assert result.snapshot.rate == 1
    assert result.snapshot.provider == "test-provider"
    assert source.calls == []


def test_rounding_is_half_away_from_zero():
    assert round_money(2.675) == 2.68
    assert round_money(-2.675) == -2.68
    assert multiply_money(0.5, 0.01) == 0.01
    assert multiply_money(-0.5, 0.01) == -0.01
    assert multiply_money(1.005, 1) == 1.01


@pytest.mark.parametrize("amount", [0.01, 10.01, 99.99, 1234.56, 1_000_000.07])
@pytest.mark.asyncio
async def test_round_trip_with_same_snapshot_within_one_cent(converter: CurrencyConverter, amount):
    forward = await converter.convert(amount, "EUR", "USD", converter.create_rate_context())
    back = multiply_money(forward.amount, 1 / forward.snapshot.rate)
    assert abs(back - amount) <= 0.01 + 1e-9


@pytest.mark.asyncio
async def test_fresh_persisted_record_skips_upstream(converter, store, source, metrics, clock):
    await _persist(store, clock, rate=1.25, age_ms=60_000)

    result = await converter.convert(100, "EUR", "USD", converter.create_rate_context())

    assert result.amount == 125.0
    assert result.snapshot.stale is False
    assert source.calls == []
    assert metrics.count("currency_rate_lookups_total", source="persisted") == 1

    # promoted into the process cache
    await converter.convert(1, "EUR", "USD", converter.create_rate_context())
    assert metrics.count("currency_rate_lookups_total", source="memory") == 1


@pytest.mark.asyncio
async def test_upstream_result_is_cached_and_persisted(converter, store, source, clock):
    result = await converter.convert(10, "EUR", "USD", converter.default_context)
    assert result.amount == 11.0
    assert source.calls == [("EUR", ("USD",))]

    persisted = await store.get_persisted_rate("EUR", "USD")
    assert persisted.snapshot.rate == 1.1
    assert persisted.is_fresh(clock())

    await converter.convert(20, "EUR", "USD", converter.default_context)
    assert len(source.calls) == 1


@pytest.mark.asyncio
async def test_outdated_record_replaced_by_upstream(converter, store, source, clock):
    await _persist(store, clock, rate=1.0, age_ms=2 * DAY_MS)

    result = await converter.convert(10, "EUR", "USD", converter.create_rate_context())

    assert result.snapshot.rate == 1.1
    assert len(source.calls) == 1
    assert (await store.get_persisted_rate("EUR", "USD")).snapshot.rate == 1.1


@pytest.mark.asyncio
async def test_upstream_failure_falls_back_to_stale_record(converter, store, source, logger, metrics, clock):
    await _persist(store, clock, rate=1.05, age_ms=3 * DAY_MS)
    source.fail = True

    result = await converter.convert(100, "EUR", "USD", converter.create_rate_context())

    assert result.amount == 105.0
    assert result.snapshot.stale is True
    assert result.snapshot.rate == 1.05
    assert logger.at_level("WARN")[0].msg == "Serving stale exchange rate"
    assert metrics.count("currency_rate_lookups_total", source="stale") == 1
    assert metrics.counters["currency_rate_fetch_failures_total"] == 1


@pytest.mark.asyncio
async def test_stale_fallback_is_not_cached(converter, store, source, clock):
    await _persist(store, clock, rate=1.05, age_ms=3 * DAY_MS)
    source.fail = True
    await converter.convert(1, "EUR", "USD", converter.create_rate_context())

    source.fail = False
    result = await converter.convert(1, "EUR", "USD", converter.create_rate_context())
    assert result.snapshot.stale is False
    assert len(source.calls) == 2


@pytest.mark.asyncio
async def test_upstream_failure_without_record_raises(converter, source):
    source.fail = True
    with pytest.raises(RateFetchError):
        await converter.convert(100, "EUR", "USD", converter.create_rate_context())


@pytest.mark.asyncio
async def test_expired_record_is_not_a_fallback(converter, store, source, clock):
    await _persist(store, clock, rate=1.05, age_ms=31 * DAY_MS)
    source.fail = True
    with pytest.raises(RateFetchError):
        await converter.convert(100, "EUR", "USD", converter.create_rate_context())


@pytest.mark.asyncio
async def test_memory_cache_expires_after_ttl(converter, store, source, clock, metrics):
    await converter.convert(1, "EUR", "USD", converter.create_rate_context())
    clock.advance(5 * 60 * 1000)

    await converter.convert(1, "EUR", "USD", converter.create_rate_context())

    # the persisted copy is still fresh, so no second upstream call
    assert len(source.calls) == 1
    assert metrics.count("currency_rate_lookups_total", source="persisted") == 1


@pytest.mark.asyncio
async def test_concurrent_lookups_in_one_context_share_one_fetch(converter: CurrencyConverter, source):
    source.gate = asyncio.Event()
    context = converter.create_rate_context()

    pending = asyncio.gather(*(converter.convert(i, "EUR", "USD", context) for i in range(1, 6)))
    while not source.calls:
        await asyncio.sleep(0)
    assert len(context) == 1
    source.gate.set()
    results = await pending

    assert source.calls == [("EUR", ("USD",))]
    assert [r.amount for r in results] == [1.1, 2.2, 3.3, 4.4, 5.5]
    assert len(context) == 0


@pytest.mark.asyncio
async def test_contexts_do_not_share_in_flight_fetches(converter: CurrencyConverter, source):
    source.gate = asyncio.Event()
    first, second = converter.create_rate_context(), converter.create_rate_context()

    pending = asyncio.gather(
        converter.convert(1, "EUR", "USD", first),
        converter.convert(1, "EUR", "USD", second),
    )
    while len(source.calls) < 2:
        await asyncio.sleep(0)
    source.gate.set()
    await pending

    assert len(source.calls) == 2


@pytest.mark.asyncio
async def test_shared_failure_reaches_every_waiter(converter: CurrencyConverter, source):
    source.gate = asyncio.Event()
    source.fail = True
    context = converter.create_rate_context()

    pending = asyncio.gather(
        *(converter.convert(1, "EUR", "GBP", context) for _ in range(3)),
        return_exceptions=True,
    )
    while not source.calls:
        await asyncio.sleep(0)
    source.gate.set()
    results = await pending

    assert len(source.calls) == 1
    assert all(isinstance(r, RateFetchError) for r in results)


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_cancel_shared_fetch(converter: CurrencyConverter, source):
    source.gate = asyncio.Event()
    context = converter.create_rate_context()

    first = asyncio.ensure_future(converter.convert(1, "EUR", "USD", context))
    second = asyncio.ensure_future(converter.convert(2, "EUR", "USD", context))
    while not source.calls:
        await asyncio.sleep(0)
    await asyncio.sleep(0)

    first.cancel()
    source.gate.set()

    assert (await second).amount == 2.2
    with pytest.raises(asyncio.CancelledError):
        await first
    assert len(source.calls) == 1


@pytest.mark.asyncio
async def test_directional_wrappers_use_base_currency(converter: CurrencyConverter):
    context = converter.create_rate_context()
    to_base = await converter.convert_to_base_currency(10, "USD", context)
    from_base = await converter.convert_from_base_currency(10, "GBP", context)
    assert to_base.snapshot.pair == ("USD", "EUR")
    assert to_base.amount == 9.0
    assert from_base.snapshot.pair == ("EUR", "GBP")
    assert from_base.amount == 8.5


@pytest.mark.asyncio
async def test_without_persistence_upstream_answers(settings, source, logger, metrics, clock):
    converter = CurrencyConverter(
        settings,
        RateCache(MemoryCache(clock=clock.seconds), settings.memory_cache_ttl_ms),
        RatesStore(None, settings, clock=clock),
        source,
        logger,
        metrics,
        clock=clock,
    )
    result = await converter.convert(10, "EUR", "USD", converter.default_context)
    assert result.amount == 11.0

    converter.rate_cache.clear()
    source.fail = True
    with pytest.raises(RateFetchError):
        await converter.convert(10, "EUR", "USD", converter.default_context)


@pytest.mark.asyncio
async def test_warm_seeds_process_cache(converter: CurrencyConverter, source, clock):
    converter.warm(ExchangeRateSnapshot("EUR", "USD", 1.3, "test-provider", iso_from_ms(clock()), stale=True))
    result = await converter.convert(10, "EUR", "USD", converter.create_rate_context())
    assert result.amount == 13.0
    assert result.snapshot.stale is False
    assert source.calls == []
