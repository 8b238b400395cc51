from __future__ import annotations


class RateFetchError(RuntimeError):
    """The upstream rate source could not produce a rate for a pair."""

    def __init__(
        self,
        message: str,
        from_currency: str | None = None,
        to_currency: str | None = None,
    ) -> None:
        super().__init__(message)
        self.from_currency = from_currency
        self.to_currency = to_currency


class SecretUnavailableError(RuntimeError):
    """The configured API key secret resolved to an empty value."""
