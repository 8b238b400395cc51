"""JSON-document storage for the budget resources.

Each resource has its own table of ``(id, user_id, body)`` rows where
``body`` is the item serialized as JSON. Ownership checks are left to the
caller so it can tell "not found" from "forbidden".
"""

from __future__ import annotations

import json
from typing import Any

from budget_platform.services.database.interface import DatabaseInterface

RESOURCE_TABLES = {
    "transactions": "transactions",
    "categories": "categories",
    "goals": "goals",
    "recurring-transactions": "recurring_transactions",
}


class EntityRepository:
    def __init__(self, db: DatabaseInterface, table: str) -> None:
        self._db = db
        self.table = table

    async def get(self, item_id: str) -> dict[str, Any] | None:
        row = await self._db.fetch_one_async(f"SELECT * FROM {self.table} WHERE id = $1", [item_id])
        return _decode(row) if row else None

    async def list_for_user(self, user_id: str) -> list[dict[str, Any]]:
        rows = await self._db.fetch_all_async(
            f"SELECT * FROM {self.table} WHERE user_id = $1", [user_id]
        )
        return [_decode(row) for row in rows]

    async def put(self, item: dict[str, Any]) -> None:
        """Insert or replace *item*; it must carry ``id`` and ``userId``."""
        await self._db.upsert_async(
            self.table,
            {
                "id": item["id"],
                "user_id": item["userId"],
                "body": json.dumps(item, sort_keys=True),
            },
            ["id"],
        )

    async def delete(self, item_id: str) -> bool:
        removed = await self._db.execute_async(f"DELETE FROM {self.table} WHERE id = $1", [item_id])
        return removed > 0


def _decode(row: dict[str, Any]) -> dict[str, Any]:
    body = row.get("body")
    item = json.loads(body) if isinstance(body, str) else dict(body or {})
    item.setdefault("id", row["id"])
    item.setdefault("userId", row["user_id"])
    return item


def repositories_for(db: DatabaseInterface) -> dict[str, EntityRepository]:
    return {name: EntityRepository(db, table) for name, table in RESOURCE_TABLES.items()}
