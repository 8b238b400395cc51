"""Schema management job for the budget database.

::

    python -m budget_platform run run_migrations --db postgres --env-file local
    python -m budget_platform run run_migrations --direction status --db postgres
    python -m budget_platform run run_migrations --direction down --count 2 --allow-down --db postgres
    python -m budget_platform run run_migrations --create add_budgets_table --db memory
"""

from __future__ import annotations

import sys
from pathlib import Path

from budget_platform.config.context import ModuleConfig
from budget_platform.migrations.runner import MIGRATIONS_DIR, MigrationRunner
from budget_platform.modules.base import AsyncModule
from budget_platform.services.database.interface import DatabaseInterface
from budget_platform.services.logger.factory import LoggerFactory
from budget_platform.services.logger.interface import LoggingInterface


class RunMigrationsModule(AsyncModule):
    name = "run_migrations"
    log: LoggingInterface

    def __init__(
        self,
        config: ModuleConfig,
        logger: LoggerFactory,
        db: DatabaseInterface,
    ) -> None:
        self.config = config
        self.logger = logger
        self.db = db

    async def initialize(self) -> None:
        self.log = self.logger.create(self.name)
        self.db_name: str = self.config.get("db-name", "budget")
        custom_root = self.config.get("migrations-dir")
        self.root = Path(custom_root) if custom_root else MIGRATIONS_DIR
        await self.db.connect_async()

    async def teardown(self) -> None:
        await self.db.disconnect_async()

    async def execute(self) -> int:
        new_name = self.config.get("create")
        if new_name:
            return self._scaffold(new_name)

        direction = self.config.get("direction", "up")
        handlers = {"up": self._up, "down": self._down, "status": self._status}
        handler = handlers.get(direction)
        if handler is None:
            self.log.error("Unknown direction", direction=direction)
            print(f"Unknown direction: {direction!r}. Use 'up', 'down', or 'status'.", file=sys.stderr)
            return 1
        return await handler(MigrationRunner(self.db, db_name=self.db_name, root=self.root))

    def _report(self, verb: str, names: list[str], empty: str) -> None:
        if not names:
            print(empty)
            return
        for migration in names:
            self.log.info(f"{verb} migration", migration=migration, db_name=self.db_name)
            print(f"  {verb}: {migration}")
        print(f"\n{len(names)} migration(s) {verb.lower()}.")

    async def _up(self, runner: MigrationRunner) -> int:
        applied = await runner.up(target=self.config.get("target"))
        self._report("Applied", applied, "No pending migrations.")
        return 0

    async def _down(self, runner: MigrationRunner) -> int:
        if not self.config.get("allow-down", False):
            self.log.error("Down migrations blocked", db_name=self.db_name)
            print(
                "Error: Down migrations are disabled by default.\n"
                "Pass --allow-down to enable rolling back migrations.",
                file=sys.stderr,
            )
            return 1
        rolled_back = await runner.down(count=self.config.get("count", 1))
        self._report("Rolled back", rolled_back, "No migrations to roll back.")
        return 0

    async def _status(self, runner: MigrationRunner) -> int:
        statuses = await runner.status()
        if not statuses:
            print("No migrations found.")
            return 0
        print(f"{'Migration':<45} {'Status':<10} Applied At")
        print("-" * 80)
        for entry in statuses:
            state = "applied" if entry.applied else "pending"
            print(f"{entry.name:<45} {state:<10} {entry.applied_at or ''}")
        return 0

    def _scaffold(self, slug: str) -> int:
        """Write the next numbered, empty up/down pair."""
        folder = self.root / self.db_name
        folder.mkdir(parents=True, exist_ok=True)
        numbers = [int(p.name[:3]) for p in folder.glob("[0-9][0-9][0-9]_*.up.sql")]
        base = f"{max(numbers, default=0) + 1:03d}_{slug}"
        title = slug.replace("_", " ").title()

        for direction in ("up", "down"):
            path = folder / f"{base}.{direction}.sql"
            path.write_text(f"-- {title} ({direction})\n")
            print(f"Created: {path}")
        self.log.info("Created migration", migration=base, folder=str(folder))
        return 0


module_class = RunMigrationsModule
