"""Value objects shared by the rate source, the rates store and the converter.

Timestamps follow two conventions: ``captured_at`` is an ISO-8601 UTC string
(what API payloads carry) and every ``*_epoch`` field is milliseconds since
the Unix epoch, except ``ttl_epoch`` which is seconds (deletion time).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from budget_platform.currency.errors import RateFetchError


def iso_from_ms(epoch_ms: int) -> str:
    """Render epoch milliseconds as ``2026-01-01T00:00:00.000Z``."""
    moment = datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def ms_from_iso(value: str | None) -> int | None:
    """Parse an ISO-8601 timestamp into epoch milliseconds; None when unparseable."""
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        moment = datetime.fromisoformat(text)
    except ValueError:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


@dataclass(frozen=True)
class ExchangeRateSnapshot:
    from_currency: str
    to_currency: str
    rate: float
    provider: str
    captured_at: str
    stale: bool = False

    @property
    def pair(self) -> tuple[str, str]:
        return (self.from_currency, self.to_currency)

    def as_stale(self) -> ExchangeRateSnapshot:
        return replace(self, stale=True)

    def as_fresh(self) -> ExchangeRateSnapshot:
        return replace(self, stale=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "fromCurrency": self.from_currency,
            "toCurrency": self.to_currency,
            "rate": self.rate,
            "provider": self.provider,
            "capturedAt": self.captured_at,
            "stale": self.stale,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExchangeRateSnapshot:
        return cls(
            from_currency=str(data["fromCurrency"]),
            to_currency=str(data["toCurrency"]),
            rate=float(data["rate"]),
            provider=str(data.get("provider", "")),
            captured_at=str(data.get("capturedAt", "")),
            stale=bool(data.get("stale", False)),
        )


@dataclass(frozen=True)
class Conversion:
    amount: float
    snapshot: ExchangeRateSnapshot


@dataclass(frozen=True)
class RateQuote:
    """One batched upstream answer: target code -> rate, all captured together."""

    base_currency: str
    rates: dict[str, float]
    captured_at: str


@dataclass(frozen=True)
class PersistedRate:
    snapshot: ExchangeRateSnapshot
    fresh_until_epoch: int | None = None
    ttl_epoch: int | None = None

    def is_fresh(self, now_ms: int) -> bool:
        return self.fresh_until_epoch is not None and now_ms < self.fresh_until_epoch


@dataclass(frozen=True)
class RefreshMetadata:
    last_refresh_epoch: int | None = None
    last_manual_refresh_epoch: int | None = None


@dataclass(frozen=True)
class RateResolution:
    """Outcome of resolving one pair: a snapshot or the error that prevented it.

    ``source`` names the tier that answered (identity, memory, persisted,
    upstream, stale) or ``failed``.
    """

    source: str
    snapshot: ExchangeRateSnapshot | None = None
    error: RateFetchError | None = None

    @classmethod
    def resolved(cls, snapshot: ExchangeRateSnapshot, source: str) -> RateResolution:
        return cls(source=source, snapshot=snapshot)

    @classmethod
    def failed(cls, error: RateFetchError) -> RateResolution:
        return cls(source="failed", error=error)

    @property
    def ok(self) -> bool:
        return self.snapshot is not None

    def unwrap(self) -> ExchangeRateSnapshot:
        if self.snapshot is None:
            raise self.error or RateFetchError("Exchange rate could not be resolved")
        return self.snapshot


@dataclass(frozen=True)
class RefreshResult:
    refreshed: bool
    updated_pairs: int
    last_refresh_epoch: int
    next_allowed_refresh_epoch: int
    skipped_reason: str | None = None
    snapshots: list[ExchangeRateSnapshot] = field(default_factory=list, compare=False, repr=False)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "refreshed": self.refreshed,
            "updatedPairs": self.updated_pairs,
            "lastRefreshEpoch": self.last_refresh_epoch,
            "nextAllowedRefreshEpoch": self.next_allowed_refresh_epoch,
        }
        if self.skipped_reason:
            payload["skippedReason"] = self.skipped_reason
        return payload
