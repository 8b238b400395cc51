"""SQL migrations for the budget schema.

A migration is a ``NNN_name.up.sql`` / ``NNN_name.down.sql`` pair under
``migrations/<db_name>/``. Applied names are recorded in ``_migrations`` so
``up`` only runs what is pending.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

from budget_platform.services.database.interface import DatabaseInterface

MIGRATIONS_DIR = Path(__file__).resolve().parent

TRACKING_TABLE = "_migrations"

_TRACKING_DDL = (
    f"CREATE TABLE IF NOT EXISTS {TRACKING_TABLE} "
    "(name TEXT NOT NULL PRIMARY KEY, applied_at TEXT NOT NULL)"
)

_FILE_NAME = re.compile(r"^(?P<number>\d{3})_(?P<slug>.+)\.up\.sql$")

Direction = Literal["up", "down"]


@dataclass(frozen=True)
class Migration:
    number: int
    name: str
    up_sql: str
    down_sql: str

    def statements(self, direction: Direction) -> list[str]:
        return split_statements(self.up_sql if direction == "up" else self.down_sql)


@dataclass(frozen=True)
class MigrationStatus:
    name: str
    applied: bool
    applied_at: str | None = None


def split_statements(sql: str) -> list[str]:
    """Break a script on ``;`` and drop ``--`` comment lines and empty chunks."""
    statements = []
    for chunk in sql.split(";"):
        kept = "\n".join(ln for ln in chunk.splitlines() if not ln.lstrip().startswith("--"))
        if kept.strip():
            statements.append(kept.strip())
    return statements


def discover_migrations(db_name: str, root: Path | None = None) -> list[Migration]:
    folder = (root or MIGRATIONS_DIR) / db_name
    if not folder.is_dir():
        return []

    found = []
    for up_file in folder.glob("*.up.sql"):
        match = _FILE_NAME.match(up_file.name)
        if match is None:
            continue
        name = f"{match['number']}_{match['slug']}"
        down_file = folder / f"{name}.down.sql"
        if not down_file.is_file():
            raise FileNotFoundError(f"Migration {up_file.name} is missing its .down.sql counterpart")
        found.append(Migration(int(match["number"]), name, up_file.read_text(), down_file.read_text()))
    return sorted(found, key=lambda m: m.number)


class MigrationRunner:
    def __init__(
        self, db: DatabaseInterface, db_name: str = "budget", root: Path | None = None
    ) -> None:
        self._db = db
        self._db_name = db_name
        self._root = root

    def _migrations(self) -> list[Migration]:
        return discover_migrations(self._db_name, self._root)

    async def applied(self) -> dict[str, str]:
        """Applied migration names mapped to their ISO timestamps."""
        await self._db.execute_async(_TRACKING_DDL)
        rows = await self._db.fetch_all_async(f"SELECT * FROM {TRACKING_TABLE}")
        return {row["name"]: row["applied_at"] for row in rows}

    async def _run(self, migration: Migration, direction: Direction) -> None:
        for statement in migration.statements(direction):
            await self._db.execute_async(statement)
        if direction == "up":
            stamp = datetime.now(timezone.utc).isoformat()
            await self._db.insert_one_async(TRACKING_TABLE, {"name": migration.name, "applied_at": stamp})
        else:
            await self._db.execute_async(
                f"DELETE FROM {TRACKING_TABLE} WHERE name = $1", [migration.name]
            )

    async def up(self, target: int | None = None) -> list[str]:
        """Apply pending migrations numbered up to *target*; returns their names."""
        done = await self.applied()
        pending = [
            m for m in self._migrations()
            if m.name not in done and (target is None or m.number <= target)
        ]
        for migration in pending:
            await self._run(migration, "up")
        return [m.name for m in pending]

    async def down(self, count: int = 1) -> list[str]:
        """Roll back the *count* most recent applied migrations, newest first."""
        done = await self.applied()
        latest = [m for m in reversed(self._migrations()) if m.name in done][:count]
        for migration in latest:
            await self._run(migration, "down")
        return [m.name for m in latest]

    async def status(self) -> list[MigrationStatus]:
        done = await self.applied()
        return [MigrationStatus(m.name, m.name in done, done.get(m.name)) for m in self._migrations()]
