from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class CacheInterface(ABC):
    """Process-local key-value cache with per-entry TTL in seconds.

    Keys are namespaced by prefix (``rate:EUR:USD``) so one cache instance can
    back several components; ``delete_prefix`` clears a single namespace.
    """

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """Return the live value for *key*, or None when missing or expired."""

    @abstractmethod
    def set(self, key: str, value: Any, ttl: float | None = None) -> None: ...

    @abstractmethod
    def delete(self, key: str) -> bool: ...

    @abstractmethod
    def delete_prefix(self, prefix: str) -> int:
        """Remove every key starting with *prefix*; returns how many were removed."""

    @abstractmethod
    def flush(self) -> None: ...

    def health_check(self) -> bool:
        return True
