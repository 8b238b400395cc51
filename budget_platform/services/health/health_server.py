"""Probe endpoints for service modules, served by a small aiohttp app.

    GET /health/live      always 200 while the process runs
    GET /health/ready     200 when every registered check passes, else 503
    GET /health/startup   503 until the runner marks the module started

The budget API registers the database and the rates store as readiness checks.
"""

from __future__ import annotations

import inspect
from typing import Awaitable, Callable, Union

from aiohttp import web

HealthCheck = Union[Callable[[], bool], Callable[[], Awaitable[bool]]]


class HealthCheckServer:
    def __init__(self, port: int = 8080, host: str = "0.0.0.0") -> None:
        self._port = port
        self._host = host
        self._checks: dict[str, HealthCheck] = {}
        self._started = False
        self._ready = True
        self._runner: web.AppRunner | None = None

    def register_check(self, name: str, check: HealthCheck) -> None:
        """Register a named readiness check (sync or async)."""
        self._checks[name] = check

    def mark_started(self) -> None:
        self._started = True

    def mark_not_ready(self) -> None:
        self._ready = False

    @property
    def port(self) -> int:
        """The bound port once started (resolves ``port=0``), else the configured one."""
        if self._runner is not None:
            for address in self._runner.addresses:
                if isinstance(address, tuple):
                    return address[1]
        return self._port

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health/live", self._live)
        app.router.add_get("/health/ready", self._ready_probe)
        app.router.add_get("/health/startup", self._startup)
        return app

    async def start(self) -> None:
        self._runner = web.AppRunner(self.create_app(), access_log=None)
        await self._runner.setup()
        await web.TCPSite(self._runner, self._host, self._port).start()

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

    async def run_checks(self) -> tuple[bool, dict[str, str]]:
        checks: dict[str, str] = {}
        all_ok = True
        for name, check_fn in self._checks.items():
            try:
                result = check_fn()
                if inspect.isawaitable(result):
                    result = await result
            except Exception as exc:
                checks[name] = f"error: {exc}"
                all_ok = False
                continue
            checks[name] = "ok" if result else "fail"
            all_ok = all_ok and bool(result)
        return all_ok, checks

    async def _live(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    async def _ready_probe(self, request: web.Request) -> web.Response:
        if not self._ready:
            return web.json_response({"status": "not ready", "reason": "shutting down"}, status=503)
        all_ok, checks = await self.run_checks()
        if all_ok:
            return web.json_response({"status": "ok", "checks": checks})
        return web.json_response({"status": "not ready", "checks": checks}, status=503)

    async def _startup(self, request: web.Request) -> web.Response:
        if self._started:
            return web.json_response({"status": "ok"})
        return web.json_response({"status": "not started"}, status=503)
