"""Per-user display currency, stored in ``user_preferences``."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable

from budget_platform.currency.models import iso_from_ms
from budget_platform.currency.settings import CurrencySettings
from budget_platform.services.database.interface import DatabaseInterface

PREFERENCES_TABLE = "user_preferences"


@dataclass(frozen=True)
class UserPreference:
    user_id: str
    preferred_currency: str
    updated_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "preferredCurrency": self.preferred_currency,
            "updatedAt": self.updated_at,
        }


class UserPreferenceStore:
    """Reads fall back to the base currency when no record (or no database) exists."""

    def __init__(
        self,
        db: DatabaseInterface | None,
        settings: CurrencySettings,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._db = db
        self._settings = settings
        self._clock = clock or (lambda: int(time.time() * 1000))

    @property
    def enabled(self) -> bool:
        return self._db is not None

    def _fallback(self, user_id: str) -> UserPreference:
        return UserPreference(user_id, self._settings.base_currency, iso_from_ms(self._clock()))

    async def get_user_preference(self, user_id: str) -> UserPreference:
        if self._db is None:
            return self._fallback(user_id)
        row = await self._db.fetch_one_async(
            f"SELECT * FROM {PREFERENCES_TABLE} WHERE user_id = $1", [user_id]
        )
        if row is None:
            return self._fallback(user_id)
        return UserPreference(
            user_id=user_id,
            preferred_currency=row.get("preferred_currency") or self._settings.base_currency,
            updated_at=row.get("updated_at") or iso_from_ms(self._clock()),
        )

    async def get_user_preferred_currency(self, user_id: str) -> str:
        preference = await self.get_user_preference(user_id)
        return preference.preferred_currency or self._settings.base_currency

    async def save_user_preference(self, user_id: str, preferred_currency: str) -> UserPreference:
        if self._db is None:
            raise RuntimeError("User preferences storage is not configured")
        preference = UserPreference(user_id, preferred_currency, iso_from_ms(self._clock()))
        await self._db.upsert_async(
            PREFERENCES_TABLE,
            {
                "user_id": preference.user_id,
                "preferred_currency": preference.preferred_currency,
                "updated_at": preference.updated_at,
            },
            ["user_id"],
        )
        return preference
