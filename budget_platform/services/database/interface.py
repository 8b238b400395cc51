from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class DatabaseInterface(ABC):
    """Row-oriented storage behind the rates store, preferences and resource repositories.

    Rows are plain dicts. Queries use ``$n`` placeholders. Implementations
    provide the blocking methods; the ``_async`` methods are what modules
    await, and default to calling the blocking ones.
    """

    @abstractmethod
    def connect(self) -> None: ...

    @abstractmethod
    def disconnect(self) -> None: ...

    @abstractmethod
    def is_connected(self) -> bool: ...

    @abstractmethod
    def health_check(self) -> bool: ...

    @abstractmethod
    def execute(self, query: str, params: list[Any] | None = None) -> int:
        """Run a statement; returns the affected row count."""

    @abstractmethod
    def fetch_one(self, query: str, params: list[Any] | None = None) -> dict[str, Any] | None: ...

    @abstractmethod
    def fetch_all(self, query: str, params: list[Any] | None = None) -> list[dict[str, Any]]: ...

    @abstractmethod
    def insert_one(self, table: str, row: dict[str, Any]) -> int: ...

    @abstractmethod
    def bulk_insert(self, table: str, rows: list[dict[str, Any]]) -> int: ...

    def upsert(self, table: str, row: dict[str, Any], key_columns: list[str]) -> int:
        """Write *row*, replacing any row with the same *key_columns* values."""
        where = " AND ".join(f"{col} = ${n}" for n, col in enumerate(key_columns, start=1))
        self.execute(f"DELETE FROM {table} WHERE {where}", [row[c] for c in key_columns])
        return self.insert_one(table, row)

    async def connect_async(self) -> None:
        self.connect()

    async def disconnect_async(self) -> None:
        self.disconnect()

    async def execute_async(self, query: str, params: list[Any] | None = None) -> int:
        return self.execute(query, params)

    async def fetch_one_async(
        self, query: str, params: list[Any] | None = None
    ) -> dict[str, Any] | None:
        return self.fetch_one(query, params)

    async def fetch_all_async(
        self, query: str, params: list[Any] | None = None
    ) -> list[dict[str, Any]]:
        return self.fetch_all(query, params)

    async def insert_one_async(self, table: str, row: dict[str, Any]) -> int:
        return self.insert_one(table, row)

    async def bulk_insert_async(self, table: str, rows: list[dict[str, Any]]) -> int:
        return self.bulk_insert(table, rows)

    async def upsert_async(self, table: str, row: dict[str, Any], key_columns: list[str]) -> int:
        return self.upsert(table, row, key_columns)
