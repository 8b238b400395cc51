"""Upstream exchange-rate adapter.

One GET per base currency: ``?base_currency=EUR&currencies=USD,GBP`` answered
with ``{"data": {"USD": {"value": 1.08}, ...}}``.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Sequence

import aiohttp

from budget_platform.currency.api_key import ApiKeyProvider
from budget_platform.currency.errors import RateFetchError
from budget_platform.currency.models import RateQuote, iso_from_ms
from budget_platform.currency.settings import CurrencySettings


class RateSourceInterface(ABC):
    @abstractmethod
    async def fetch_rates(self, base: str, targets: Sequence[str]) -> RateQuote:
        """Fetch rates from *base* to every code in *targets* in one call.

        Raises ``RateFetchError`` unless every target is present.
        """
        ...

    async def close(self) -> None:
        """Release network resources. Override as needed."""


class CurrencyApiRateSource(RateSourceInterface):
    def __init__(
        self,
        settings: CurrencySettings,
        api_keys: ApiKeyProvider,
        session: aiohttp.ClientSession | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._settings = settings
        self._api_keys = api_keys
        self._session = session
        self._owns_session = session is None
        self._clock = clock or (lambda: int(time.time() * 1000))

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._settings.api_timeout_ms / 1000)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def fetch_rates(self, base: str, targets: Sequence[str]) -> RateQuote:
        target_list = list(targets)
        pair_to = target_list[0] if len(target_list) == 1 else None
        label = f"{base}->{','.join(target_list)}"

        api_key = await self._api_keys.get_api_key()
        params = {"base_currency": base, "currencies": ",".join(target_list)}
        headers: dict[str, str] = {}
        if api_key:
            params["apikey"] = api_key
            headers["apikey"] = api_key

        try:
            async with self._get_session().get(
                self._settings.api_url, params=params, headers=headers
            ) as resp:
                if resp.status >= 400:
                    raise RateFetchError(
                        f"Failed to fetch exchange rate {label}: {resp.status} {resp.reason}",
                        base,
                        pair_to,
                    )
                payload = await resp.json(content_type=None)
        except RateFetchError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise RateFetchError(
                f"Failed to fetch exchange rate {label}: {exc or type(exc).__name__}",
                base,
                pair_to,
            ) from exc

        captured_at = iso_from_ms(self._clock())
        return RateQuote(
            base_currency=base,
            rates={t: _extract_rate(payload, base, t) for t in target_list},
            captured_at=captured_at,
        )


def _extract_rate(payload: Any, base: str, target: str) -> float:
    data = payload.get("data") if isinstance(payload, dict) else None
    entry = data.get(target) if isinstance(data, dict) else None
    value = entry.get("value") if isinstance(entry, dict) else None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise RateFetchError(f"Exchange rate not found for {base}->{target}", base, target)
    return float(value)
