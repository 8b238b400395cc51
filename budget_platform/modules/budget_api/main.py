"""Budget API service.

CRUD for the four budget resources, user currency preferences and a manual
rate refresh. Every money field is stored in the base currency and converted
into the caller's preferred currency on the way out.

Endpoints::

    GET|POST        /api/v1/{resource}
    GET|PUT|DELETE  /api/v1/{resource}/{id}
    GET             /api/v1/users[/{id}]
    POST|PUT        /api/v1/users
    POST            /api/v1/rates/refresh

where ``resource`` is one of transactions, categories, goals,
recurring-transactions.
"""

from __future__ import annotations

import asyncio
import json
import time
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from aiohttp import web

from budget_platform.budget import resources
from budget_platform.budget.auth_middleware import (
    create_auth_middleware,
    create_gateway_identity_middleware,
)
from budget_platform.budget.preferences import UserPreferenceStore
from budget_platform.budget.recurrence import InvalidRuleError
from budget_platform.budget.repository import EntityRepository, repositories_for
from budget_platform.config.context import ModuleConfig, PlatformConfig
from budget_platform.currency.converter import CurrencyConverter
from budget_platform.currency.rate_cache import RateContext
from budget_platform.currency.rate_source import RateSourceInterface
from budget_platform.currency.stack import CurrencyStack, build_currency_stack
from budget_platform.modules.base import AsyncModule
from budget_platform.services.cache.interface import CacheInterface
from budget_platform.services.database.interface import DatabaseInterface
from budget_platform.services.health.health_server import HealthCheckServer
from budget_platform.services.lifecycle.lifecycle_manager import LifecycleManager
from budget_platform.services.logger.factory import LoggerFactory
from budget_platform.services.logger.interface import LoggingInterface
from budget_platform.services.metrics.interface import MetricsInterface
from budget_platform.services.secrets.interface import SecretsInterface

Item = dict[str, Any]
Shaper = Callable[[CurrencyConverter, Item, str, RateContext], Awaitable[Item]]
Creator = Callable[[CurrencyConverter, Item, str, RateContext], Awaitable[Item]]
Updater = Callable[[CurrencyConverter, Item, Item, str, RateContext], Awaitable[Item]]


@dataclass(frozen=True)
class ResourceHandlers:
    label: str
    shape: Shaper
    create: Creator
    update: Updater


async def _update_transaction(converter, stored, payload, user_id, context):
    return await resources.build_transaction(converter, payload, user_id, context, item_id=stored["id"])


async def _create_recurring(converter, payload, user_id, context):
    return await resources.build_recurring_transaction(converter, payload, user_id, context)


async def _update_recurring(converter, stored, payload, user_id, context):
    return await resources.build_recurring_transaction(converter, payload, user_id, context, stored=stored)


async def _update_category(converter, stored, payload, user_id, context):
    return await resources.update_category(converter, stored, payload, context)


async def _update_goal(converter, stored, payload, user_id, context):
    return await resources.update_goal(converter, stored, payload, context)


RESOURCES: dict[str, ResourceHandlers] = {
    "transactions": ResourceHandlers(
        "Transaction", resources.shape_money_response, resources.build_transaction, _update_transaction
    ),
    "recurring-transactions": ResourceHandlers(
        "Recurring transaction", resources.shape_money_response, _create_recurring, _update_recurring
    ),
    "categories": ResourceHandlers(
        "Category", resources.shape_category_response, resources.build_category, _update_category
    ),
    "goals": ResourceHandlers(
        "Goal", resources.shape_goal_response, resources.build_goal, _update_goal
    ),
}


def _json_error(status: int, body: dict[str, Any]) -> web.Response:
    return web.json_response(body, status=status)


class BudgetApiModule(AsyncModule):
    name = "budget_api"
    log: LoggingInterface

    def __init__(
        self,
        config: ModuleConfig,
        logger: LoggerFactory,
        db: DatabaseInterface,
        cache: CacheInterface,
        lifecycle: LifecycleManager,
        metrics: MetricsInterface,
        env: PlatformConfig,
        secrets: SecretsInterface,
        health: HealthCheckServer | None = None,
        rate_source: RateSourceInterface | None = None,
    ) -> None:
        self.config = config
        self.logger = logger
        self.db = db
        self.cache = cache
        self.lifecycle = lifecycle
        self.metrics = metrics
        self.env = env
        self.secrets = secrets
        self.health = health
        self.rate_source = rate_source
        self._runner: web.AppRunner | None = None

    async def initialize(self) -> None:
        self.log = self.logger.create(self.name)
        self.port = int(self.config.get("port", 8000))
        await self.db.connect_async()
        self.currency: CurrencyStack = build_currency_stack(
            self.env, self.secrets, self.db, self.cache, self.log, self.metrics, source=self.rate_source
        )
        self.converter = self.currency.converter
        self.settings = self.currency.settings
        self.preferences = UserPreferenceStore(self.db, self.settings)
        self.repositories: dict[str, EntityRepository] = repositories_for(self.db)

        self.lifecycle.on_shutdown(self.db.disconnect_async, name="database")
        self.lifecycle.on_shutdown(self.currency.close, name="currency")
        self.lifecycle.on_shutdown(self._stop_server, name="http_server")
        if self.health is not None:
            self.health.register_check("rates_store", self._rates_store_ready)
        self.log.info(
            "Budget API initialized",
            port=self.port,
            base_currency=self.settings.base_currency,
            supported_currencies=",".join(self.settings.supported_currencies),
            rates_persistence=self.currency.store.enabled,
        )

    async def execute(self) -> int:
        app = self._create_app()
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, "0.0.0.0", self.port)
        await site.start()
        self.log.info("Budget API listening", port=self.port)

        await self.lifecycle.wait_for_shutdown()

        return 0

    def _create_app(self) -> web.Application:
        jwt_secret = self.secrets.get("JWT_SECRET")
        auth = (
            create_auth_middleware(jwt_secret)
            if jwt_secret
            else create_gateway_identity_middleware()
        )
        app = web.Application(
            middlewares=[
                self._correlation_middleware,
                self._logging_middleware,
                self._error_middleware,
                auth,
                self._rate_context_middleware,
            ]
        )
        app.router.add_get("/api/v1/users", self._get_preference)
        app.router.add_get("/api/v1/users/{id}", self._get_preference)
        app.router.add_post("/api/v1/users", self._save_preference)
        app.router.add_put("/api/v1/users", self._save_preference)
        app.router.add_post("/api/v1/rates/refresh", self._refresh_rates)
        for name in RESOURCES:
            app.router.add_get(f"/api/v1/{name}", self._list_items)
            app.router.add_post(f"/api/v1/{name}", self._create_item)
            app.router.add_get(f"/api/v1/{name}/{{id}}", self._get_item)
            app.router.add_put(f"/api/v1/{name}/{{id}}", self._update_item)
            app.router.add_delete(f"/api/v1/{name}/{{id}}", self._delete_item)
        return app

    # ── Middlewares ───────────────────────────────────────────────────────────

    @web.middleware
    async def _correlation_middleware(self, request: web.Request, handler):
        correlation_id = request.headers.get("X-Correlation-ID", uuid.uuid4().hex)
        request["correlation_id"] = correlation_id
        response = await handler(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response

    @web.middleware
    async def _logging_middleware(self, request: web.Request, handler):
        start = time.monotonic()
        status = 500
        try:
            response = await handler(request)
            status = response.status
            return response
        except web.HTTPException as exc:
            status = exc.status
            raise
        finally:
            duration_ms = (time.monotonic() - start) * 1000
            route = request.match_info.route.resource
            endpoint = route.canonical if route is not None else request.path
            self.metrics.counter(
                "http_requests_total",
                tags={"service": self.name, "endpoint": endpoint, "method": request.method, "status": str(status)},
            )
            self.metrics.histogram(
                "http_request_duration_ms", duration_ms, tags={"service": self.name, "endpoint": endpoint}
            )
            self.log.info(
                "Request handled",
                method=request.method,
                path=request.path,
                status=status,
                duration_ms=round(duration_ms, 2),
                correlation_id=request.get("correlation_id", ""),
            )

    @web.middleware
    async def _error_middleware(self, request: web.Request, handler):
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except InvalidRuleError as exc:
            return _json_error(400, {"message": str(exc)})
        except Exception as exc:
            self.log.error(
                "Request failed",
                method=request.method,
                path=request.path,
                error=str(exc),
                error_type=type(exc).__name__,
                correlation_id=request.get("correlation_id", ""),
            )
            return _json_error(500, {"error": str(exc)})

    @web.middleware
    async def _rate_context_middleware(self, request: web.Request, handler):
        request["rate_context"] = self.converter.create_rate_context(
            f"request:{request.get('correlation_id', '')}"
        )
        return await handler(request)

    # ── Helpers ───────────────────────────────────────────────────────────────

    @staticmethod
    def _resource_name(request: web.Request) -> str:
        return request.path.split("/")[3]

    @staticmethod
    async def _read_payload(request: web.Request) -> Item | None:
        if not request.can_read_body:
            return None
        try:
            payload = await request.json()
        except ValueError:
            return None
        return payload if isinstance(payload, dict) else None

    async def _load_owned(
        self, request: web.Request, name: str
    ) -> tuple[Item | None, web.Response | None]:
        """Fetch the addressed item, or the 404/403 response to send instead."""
        item = await self.repositories[name].get(request.match_info["id"])
        if item is None:
            return None, _json_error(404, {"message": f"{RESOURCES[name].label} not found"})
        if item.get("userId") != request["user_id"]:
            return None, _json_error(403, {"message": "Forbidden"})
        return item, None

    async def _shape(self, request: web.Request, name: str, item: Item, preferred: str) -> Item:
        return await RESOURCES[name].shape(self.converter, item, preferred, request["rate_context"])

    # ── Resource endpoints ────────────────────────────────────────────────────

    async def _list_items(self, request: web.Request) -> web.Response:
        name = self._resource_name(request)
        user_id = request["user_id"]
        preferred_task = asyncio.ensure_future(self.preferences.get_user_preferred_currency(user_id))
        items = await self.repositories[name].list_for_user(user_id)
        preferred = await preferred_task
        shaped = await asyncio.gather(*(self._shape(request, name, item, preferred) for item in items))
        return web.json_response(list(shaped))

    async def _get_item(self, request: web.Request) -> web.Response:
        name = self._resource_name(request)
        item, error = await self._load_owned(request, name)
        if error is not None:
            return error
        preferred = await self.preferences.get_user_preferred_currency(request["user_id"])
        return web.json_response(await self._shape(request, name, item, preferred))

    async def _create_item(self, request: web.Request) -> web.Response:
        name = self._resource_name(request)
        payload = await self._read_payload(request)
        if payload is None:
            return _json_error(400, {"message": "Unsupported method or missing data."})
        user_id = request["user_id"]
        item = await RESOURCES[name].create(self.converter, payload, user_id, request["rate_context"])
        await self.repositories[name].put(item)
        self.log.info("Item created", resource=name, item_id=item["id"], user_id=user_id)
        preferred = await self.preferences.get_user_preferred_currency(user_id)
        return web.json_response(await self._shape(request, name, item, preferred), status=201)

    async def _update_item(self, request: web.Request) -> web.Response:
        name = self._resource_name(request)
        payload = await self._read_payload(request)
        if payload is None:
            return _json_error(400, {"message": "Unsupported method or missing data."})
        stored, error = await self._load_owned(request, name)
        if error is not None:
            return error
        user_id = request["user_id"]
        updated = await RESOURCES[name].update(
            self.converter, stored, payload, user_id, request["rate_context"]
        )
        await self.repositories[name].put(updated)
        self.log.info("Item updated", resource=name, item_id=updated["id"], user_id=user_id)
        preferred = await self.preferences.get_user_preferred_currency(user_id)
        return web.json_response(await self._shape(request, name, updated, preferred))

    async def _delete_item(self, request: web.Request) -> web.Response:
        name = self._resource_name(request)
        item, error = await self._load_owned(request, name)
        if error is not None:
            return error
        await self.repositories[name].delete(item["id"])
        self.log.info("Item deleted", resource=name, item_id=item["id"], user_id=request["user_id"])
        return web.json_response({"message": "Deleted"})

    # ── Users ─────────────────────────────────────────────────────────────────

    async def _get_preference(self, request: web.Request) -> web.Response:
        user_id = request["user_id"]
        target = request.match_info.get("id", user_id)
        if target != user_id:
            return _json_error(403, {"message": "Forbidden"})
        preference = await self.preferences.get_user_preference(target)
        return web.json_response(
            {**preference.to_dict(), "supportedCurrencies": list(self.settings.supported_currencies)}
        )

    async def _save_preference(self, request: web.Request) -> web.Response:
        payload = await self._read_payload(request)
        if payload is None:
            return _json_error(400, {"message": "Unsupported method or missing data."})
        supported = list(self.settings.supported_currencies)
        currency = payload.get("preferredCurrency")
        if not self.settings.is_supported_currency(currency):
            return _json_error(400, {"message": "Unsupported currency", "supportedCurrencies": supported})
        preference = await self.preferences.save_user_preference(request["user_id"], currency)
        self.log.info("Preference saved", user_id=preference.user_id, preferred_currency=currency)
        return web.json_response({**preference.to_dict(), "supportedCurrencies": supported})

    # ── Rates ─────────────────────────────────────────────────────────────────

    def _caller_may_refresh(self, groups: list[str]) -> bool:
        return any(group in self.settings.refresh_allowed_groups for group in groups)

    async def _refresh_rates(self, request: web.Request) -> web.Response:
        if not self._caller_may_refresh(request.get("groups", [])):
            return _json_error(403, {"message": "Forbidden"})
        result = await self.currency.refresher.refresh_and_report(force=True)
        return web.json_response(result.to_dict())

    async def _rates_store_ready(self) -> bool:
        if not self.currency.store.enabled:
            return True
        check = getattr(self.db, "health_check_async", None)
        if check is not None:
            return await check()
        return self.db.health_check()

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def _stop_server(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None


module_class = BudgetApiModule
