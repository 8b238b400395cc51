"""Scheduled exchange-rate refresh.

Runs one refresh pass over every supported pair, publishes the hours since
the last successful refresh, then purges records past their TTL. Meant to be
triggered by an external scheduler (cron, Kubernetes CronJob)::

    python -m budget_platform run rates_refresh --db postgres --metrics prometheus
    python -m budget_platform run rates_refresh --force --db postgres
    python -m budget_platform run rates_refresh --db memory --rates memory --env '{"RATES_MEMORY_TABLE": "EUR:USD=1.08"}'
"""

from __future__ import annotations

from budget_platform.config.context import ModuleConfig, PlatformConfig
from budget_platform.currency.rate_source import RateSourceInterface
from budget_platform.currency.stack import CurrencyStack, build_currency_stack
from budget_platform.modules.base import AsyncModule
from budget_platform.services.cache.interface import CacheInterface
from budget_platform.services.database.interface import DatabaseInterface
from budget_platform.services.logger.factory import LoggerFactory
from budget_platform.services.logger.interface import LoggingInterface
from budget_platform.services.metrics.interface import MetricsInterface
from budget_platform.services.secrets.interface import SecretsInterface


class RatesRefreshModule(AsyncModule):
    name = "rates_refresh"
    log: LoggingInterface

    def __init__(
        self,
        config: ModuleConfig,
        logger: LoggerFactory,
        db: DatabaseInterface,
        cache: CacheInterface,
        metrics: MetricsInterface,
        env: PlatformConfig,
        secrets: SecretsInterface,
        rate_source: RateSourceInterface | None = None,
    ) -> None:
        self.config = config
        self.logger = logger
        self.db = db
        self.cache = cache
        self.metrics = metrics
        self.env = env
        self.secrets = secrets
        self.rate_source = rate_source

    async def initialize(self) -> None:
        self.log = self.logger.create(self.name)
        await self.db.connect_async()
        self.currency: CurrencyStack = build_currency_stack(
            self.env, self.secrets, self.db, self.cache, self.log, self.metrics, source=self.rate_source
        )

    async def validate(self) -> None:
        if not self.currency.store.enabled:
            raise ValueError("Rates refresh needs persistence: pass --db and keep RATES_PERSISTENCE enabled")

    async def execute(self) -> int:
        force = bool(self.config.get("force", False))
        result = await self.currency.refresher.refresh_and_report(force=force)
        if result.refreshed:
            print(f"Refreshed {result.updated_pairs} rate pair(s).")
        else:
            print(f"Refresh skipped ({result.skipped_reason}); next allowed at {result.next_allowed_refresh_epoch}.")

        if self.config.get("purge", True):
            purged = await self.currency.store.purge_expired()
            self.log.info("Expired rates purged", purged=purged)
        return 0

    async def teardown(self) -> None:
        currency = getattr(self, "currency", None)
        if currency is not None:
            await currency.close()
        await self.db.disconnect_async()


module_class = RatesRefreshModule
