from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, TypeVar

import asyncpg

from budget_platform.services.database.interface import DatabaseInterface
from budget_platform.services.secrets.interface import SecretsInterface

T = TypeVar("T")


def _insert_sql(table: str, columns: list[str]) -> str:
    placeholders = ", ".join(f"${n}" for n in range(1, len(columns) + 1))
    return f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"


def _affected(status: str) -> int:
    # asyncpg reports a command tag such as "UPDATE 3" or "INSERT 0 1"
    tail = status.rsplit(" ", 1)[-1]
    return int(tail) if tail.isdigit() else 0


class PostgresDatabase(DatabaseInterface):
    """asyncpg pool configured from ``DB_POSTGRES_*`` secrets.

    Modules use the ``_async`` methods. The blocking ones run on a private event
    loop and exist for scripts that run outside one.
    """

    def __init__(self, secrets: SecretsInterface) -> None:
        self._secrets = secrets
        self._pool: asyncpg.Pool | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    async def connect_async(self) -> None:
        if self._pool is not None:
            return
        timeout_ms = int(self._secrets.get_or_default("DB_POSTGRES_STATEMENT_TIMEOUT", "30000"))
        self._pool = await asyncpg.create_pool(
            self._secrets.require("DB_POSTGRES_URL"),
            min_size=int(self._secrets.get_or_default("DB_POSTGRES_POOL_MIN", "2")),
            max_size=int(self._secrets.get_or_default("DB_POSTGRES_POOL_MAX", "10")),
            command_timeout=timeout_ms / 1000,
        )

    async def disconnect_async(self) -> None:
        pool, self._pool = self._pool, None
        if pool is not None:
            await pool.close()

    def is_connected(self) -> bool:
        return self._pool is not None

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[asyncpg.Connection]:
        if self._pool is None:
            raise RuntimeError("Database is not connected. Call connect() first.")
        async with self._pool.acquire() as conn:
            yield conn

    async def execute_async(self, query: str, params: list[Any] | None = None) -> int:
        async with self._connection() as conn:
            return _affected(await conn.execute(query, *(params or [])))

    async def fetch_one_async(
        self, query: str, params: list[Any] | None = None
    ) -> dict[str, Any] | None:
        async with self._connection() as conn:
            row = await conn.fetchrow(query, *(params or []))
        return None if row is None else dict(row)

    async def fetch_all_async(
        self, query: str, params: list[Any] | None = None
    ) -> list[dict[str, Any]]:
        async with self._connection() as conn:
            return [dict(r) for r in await conn.fetch(query, *(params or []))]

    async def insert_one_async(self, table: str, row: dict[str, Any]) -> int:
        columns = list(row)
        return await self.execute_async(_insert_sql(table, columns), [row[c] for c in columns])

    async def bulk_insert_async(self, table: str, rows: list[dict[str, Any]]) -> int:
        if not rows:
            return 0
        columns = list(rows[0])
        async with self._connection() as conn:
            await conn.executemany(
                _insert_sql(table, columns), [tuple(r[c] for c in columns) for r in rows]
            )
        return len(rows)

    async def upsert_async(
        self, table: str, row: dict[str, Any], key_columns: list[str]
    ) -> int:
        """Single-statement ``INSERT ... ON CONFLICT``; needs a unique index on *key_columns*."""
        columns = list(row)
        updates = ", ".join(f"{c} = EXCLUDED.{c}" for c in columns if c not in key_columns)
        action = f"DO UPDATE SET {updates}" if updates else "DO NOTHING"
        query = f"{_insert_sql(table, columns)} ON CONFLICT ({', '.join(key_columns)}) {action}"
        return await self.execute_async(query, [row[c] for c in columns])

    async def health_check_async(self) -> bool:
        try:
            async with self._connection() as conn:
                await conn.fetchval("SELECT 1")
        except (RuntimeError, OSError, asyncpg.PostgresError):
            return False
        return True

    def health_check(self) -> bool:
        return self.is_connected()

    # Blocking variants share one private loop so the pool stays on it

    def _run(self, coro: Coroutine[Any, Any, T]) -> T:
        if self._loop is None or self._loop.is_closed():
            self._loop = asyncio.new_event_loop()
        return self._loop.run_until_complete(coro)

    def connect(self) -> None:
        self._run(self.connect_async())

    def disconnect(self) -> None:
        self._run(self.disconnect_async())
        if self._loop is not None:
            self._loop.close()
            self._loop = None

    def execute(self, query: str, params: list[Any] | None = None) -> int:
        return self._run(self.execute_async(query, params))

    def fetch_one(self, query: str, params: list[Any] | None = None) -> dict[str, Any] | None:
        return self._run(self.fetch_one_async(query, params))

    def fetch_all(self, query: str, params: list[Any] | None = None) -> list[dict[str, Any]]:
        return self._run(self.fetch_all_async(query, params))

    def insert_one(self, table: str, row: dict[str, Any]) -> int:
        return self._run(self.insert_one_async(table, row))

    def bulk_insert(self, table: str, rows: list[dict[str, Any]]) -> int:
        return self._run(self.bulk_insert_async(table, rows))

    def upsert(self, table: str, row: dict[str, Any], key_columns: list[str]) -> int:
        return self._run(self.upsert_async(table, row, key_columns))
