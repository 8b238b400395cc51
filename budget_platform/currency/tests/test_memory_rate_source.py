from __future__ import annotations

import pytest

from budget_platform.config.context import PlatformConfig
from budget_platform.currency.errors import RateFetchError
from budget_platform.currency.memory_rate_source import MemoryRateSource, parse_rate_table


def test_parse_rate_table_reads_entries():
    assert parse_rate_table("EUR:USD=1.08, usd:eur=0.93,") == {
        ("EUR", "USD"): 1.08,
        ("USD", "EUR"): 0.93,
    }


def test_parse_rate_table_empty():
    assert parse_rate_table("") == {}


@pytest.mark.parametrize("raw", ["EUR-USD=1.1", "EUR:USD", ":USD=1.1", "EUR:=1.1"])
def test_parse_rate_table_rejects_malformed_entry(raw):
    with pytest.raises(ValueError, match="entries look like FROM:TO=rate"):
        parse_rate_table(raw)


def test_parse_rate_table_rejects_non_numeric_rate():
    with pytest.raises(ValueError, match="rate for EUR:USD must be a number"):
        parse_rate_table("EUR:USD=abc")


def test_table_seeded_from_environment():
    source = MemoryRateSource(env=PlatformConfig(overrides={"RATES_MEMORY_TABLE": "GBP:EUR=1.18"}))
    assert source.rates == {("GBP", "EUR"): 1.18}


def test_explicit_rates_win_over_environment():
    source = MemoryRateSource(
        rates={("EUR", "USD"): 1.1},
        env=PlatformConfig(overrides={"RATES_MEMORY_TABLE": "GBP:EUR=1.18"}),
    )
    assert source.rates == {("EUR", "USD"): 1.1}


@pytest.mark.asyncio
async def test_fetch_from_seeded_table(clock):
    source = MemoryRateSource(
        clock=clock, env=PlatformConfig(overrides={"RATES_MEMORY_TABLE": "EUR:USD=1.1,EUR:GBP=0.85"})
    )
    quote = await source.fetch_rates("EUR", ["USD", "GBP"])
    assert quote.base_currency == "EUR"
    assert quote.rates == {"USD": 1.1, "GBP": 0.85}
    assert source.calls == [("EUR", ("USD", "GBP"))]


@pytest.mark.asyncio
async def test_unknown_pair_is_a_fetch_failure(clock):
    source = MemoryRateSource(clock=clock, env=PlatformConfig(overrides={"RATES_MEMORY_TABLE": ""}))
    with pytest.raises(RateFetchError, match="Exchange rate not found for EUR->USD"):
        await source.fetch_rates("EUR", ["USD"])
