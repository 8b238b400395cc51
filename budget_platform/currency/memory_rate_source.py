"""Rate source answering from a fixed table (``--rates memory``).

Offline runs seed the table from ``RATES_MEMORY_TABLE``, a comma list of
``FROM:TO=rate`` entries such as ``EUR:USD=1.08,USD:EUR=0.93``.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Sequence

from budget_platform.config.context import PlatformConfig
from budget_platform.currency.errors import RateFetchError
from budget_platform.currency.models import RateQuote, iso_from_ms
from budget_platform.currency.rate_source import RateSourceInterface

TABLE_VAR = "RATES_MEMORY_TABLE"


def parse_rate_table(raw: str) -> dict[tuple[str, str], float]:
    table: dict[tuple[str, str], float] = {}
    for entry in (e.strip() for e in raw.split(",")):
        if not entry:
            continue
        pair, sep, value = entry.partition("=")
        from_currency, colon, to_currency = pair.strip().partition(":")
        if not sep or not colon or not from_currency or not to_currency:
            raise ValueError(f"{TABLE_VAR} entries look like FROM:TO=rate, got {entry!r}")
        try:
            table[(from_currency.upper(), to_currency.upper())] = float(value)
        except ValueError:
            raise ValueError(f"{TABLE_VAR} rate for {pair.strip()} must be a number, got {value!r}") from None
    return table


class MemoryRateSource(RateSourceInterface):
    """Answers from ``rates`` and records every call in ``calls``.

    Setting ``fail`` makes every call raise ``RateFetchError``. ``gate`` (when
    set) holds each call until the event is released so callers can pile up.
    """

    def __init__(
        self,
        rates: dict[tuple[str, str], float] | None = None,
        clock: Callable[[], int] | None = None,
        env: PlatformConfig | None = None,
    ) -> None:
        if rates is None:
            rates = parse_rate_table(env.get(TABLE_VAR)) if env is not None else {}
        self.rates = dict(rates)
        self.clock = clock or (lambda: int(time.time() * 1000))
        self.calls: list[tuple[str, tuple[str, ...]]] = []
        self.fail = False
        self.gate: asyncio.Event | None = None

    async def fetch_rates(self, base: str, targets: Sequence[str]) -> RateQuote:
        self.calls.append((base, tuple(targets)))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise RateFetchError(f"Failed to fetch exchange rate {base}->{','.join(targets)}: 503")
        quoted = {}
        for target in targets:
            if (base, target) not in self.rates:
                raise RateFetchError(f"Exchange rate not found for {base}->{target}", base, target)
            quoted[target] = self.rates[(base, target)]
        return RateQuote(base_currency=base, rates=quoted, captured_at=iso_from_ms(self.clock()))
