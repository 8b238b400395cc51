from __future__ import annotations

import json
from abc import ABC, abstractmethod


class SecretsInterface(ABC):
    """Named secrets: the currency API key, JWT secret and database URLs.

    Implementations provide ``get``; the other readers are built on it.
    """

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the secret stored under *key*, or None."""

    def get_or_default(self, key: str, default: str) -> str:
        value = self.get(key)
        return default if value is None else value

    def require(self, key: str) -> str:
        value = self.get(key)
        if value is None:
            raise KeyError(f"Required secret '{key}' is not set")
        return value

    def get_field(self, key: str, field: str) -> str | None:
        """Read *field* from a JSON-object secret, or the raw value if it is not JSON.

        Secret stores commonly hold ``{"CURRENCY_API_KEY": "..."}`` blobs; plain
        string secrets are returned unchanged.
        """
        raw = self.get(key)
        if raw is None:
            return None
        try:
            decoded = json.loads(raw)
        except ValueError:
            return raw
        if isinstance(decoded, dict):
            value = decoded.get(field)
            return None if value is None else str(value)
        return raw
