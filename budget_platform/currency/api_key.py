from __future__ import annotations

import time
from typing import Callable

from budget_platform.currency.errors import SecretUnavailableError
from budget_platform.currency.settings import CurrencySettings
from budget_platform.services.secrets.interface import SecretsInterface

SECRET_FIELD = "CURRENCY_API_KEY"


def _now_ms() -> int:
    return int(time.time() * 1000)


class ApiKeyProvider:
    """Resolves the upstream API key.

    A literal ``CURRENCY_API_KEY`` wins. Otherwise the secret named by
    ``CURRENCY_API_SECRET_NAME`` is read (plain or ``{"CURRENCY_API_KEY": ...}``)
    and cached for ``secret_cache_ttl_ms``. With neither configured the
    upstream is called without a key.
    """

    def __init__(
        self,
        settings: CurrencySettings,
        secrets: SecretsInterface,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._settings = settings
        self._secrets = secrets
        self._clock = clock or _now_ms
        self._cached: str | None = None
        self._expires_at = 0

    async def get_api_key(self) -> str | None:
        if self._settings.api_key:
            return self._settings.api_key
        if not self._settings.api_secret_name:
            return None

        now = self._clock()
        if self._cached is not None and self._expires_at > now:
            return self._cached

        value = self._secrets.get_field(self._settings.api_secret_name, SECRET_FIELD)
        if not value:
            raise SecretUnavailableError("Currency API secret is empty")

        self._cached = value
        self._expires_at = now + self._settings.secret_cache_ttl_ms
        return value

    def invalidate(self) -> None:
        self._cached = None
        self._expires_at = 0
