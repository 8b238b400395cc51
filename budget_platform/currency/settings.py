"""Currency configuration, read once at startup and passed to every component."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from budget_platform.config.context import PlatformConfig

DEFAULT_BASE_CURRENCY = "EUR"
DEFAULT_API_URL = "https://api.currencyapi.com/v3/latest"
DEFAULT_PROVIDER = "currencyapi.com"

MS_PER_DAY = 24 * 60 * 60 * 1000


@dataclass(frozen=True)
class CurrencySettings:
    base_currency: str = DEFAULT_BASE_CURRENCY
    supported_currencies: tuple[str, ...] = (DEFAULT_BASE_CURRENCY,)
    api_url: str = DEFAULT_API_URL
    provider: str = DEFAULT_PROVIDER
    memory_cache_ttl_ms: int = 5 * 60 * 1000
    persisted_fresh_ms: int = MS_PER_DAY
    persisted_ttl_days: int = 30
    secret_cache_ttl_ms: int = 5 * 60 * 1000
    api_timeout_ms: int = 10_000
    api_key: str | None = None
    api_secret_name: str | None = None
    persistence_enabled: bool = True
    refresh_allowed_groups: tuple[str, ...] = ("rates-admins",)

    def __post_init__(self) -> None:
        if self.base_currency not in self.supported_currencies:
            object.__setattr__(
                self,
                "supported_currencies",
                (self.base_currency, *self.supported_currencies),
            )

    @classmethod
    def from_config(cls, env: PlatformConfig) -> CurrencySettings:
        base = env.get("BASE_CURRENCY").strip().upper() or DEFAULT_BASE_CURRENCY
        supported = tuple(c.upper() for c in env.get_list("SUPPORTED_CURRENCIES", [base]))
        return cls(
            base_currency=base,
            supported_currencies=supported or (base,),
            api_url=env.get("CURRENCY_API_URL") or DEFAULT_API_URL,
            provider=env.get("CURRENCY_RATE_PROVIDER") or DEFAULT_PROVIDER,
            memory_cache_ttl_ms=env.get_int("CURRENCY_CACHE_TTL_MS", 5 * 60 * 1000),
            persisted_fresh_ms=env.get_int("CURRENCY_PERSISTED_FRESH_MS", MS_PER_DAY),
            persisted_ttl_days=env.get_int("CURRENCY_PERSISTED_TTL_DAYS", 30),
            secret_cache_ttl_ms=env.get_int("CURRENCY_SECRET_CACHE_TTL_MS", 5 * 60 * 1000),
            api_timeout_ms=env.get_int("CURRENCY_API_TIMEOUT_MS", 10_000),
            api_key=env.get("CURRENCY_API_KEY") or None,
            api_secret_name=env.get("CURRENCY_API_SECRET_NAME") or None,
            persistence_enabled=env.get_bool("RATES_PERSISTENCE", True),
            refresh_allowed_groups=tuple(
                env.get_list("RATES_REFRESH_ALLOWED_GROUP") or ["rates-admins"]
            ),
        )

    @property
    def persisted_ttl_ms(self) -> int:
        return self.persisted_ttl_days * MS_PER_DAY

    def is_supported_currency(self, code: Any) -> bool:
        return isinstance(code, str) and code in self.supported_currencies

    def normalize_currency_code(self, code: Any) -> str:
        """Return *code* when supported, otherwise the base currency."""
        return code if self.is_supported_currency(code) else self.base_currency


def to_currency_number(value: Any) -> float:
    """Coerce a payload value to a finite float; anything else becomes 0.0."""
    if isinstance(value, bool):
        return float(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0
