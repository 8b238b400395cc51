"""Shutdown coordination for long-running modules.

A service module awaits ``wait_for_shutdown()`` after it starts serving;
SIGTERM/SIGINT (or an explicit ``request_shutdown()``) releases it, and the
runner then calls ``shutdown()`` to run the registered cleanup hooks newest
first.
"""

from __future__ import annotations

import asyncio
import inspect
import signal
from typing import Any, Awaitable, Callable, Union

from budget_platform.services.health.health_server import HealthCheckServer

ShutdownHook = Union[Callable[[], None], Callable[[], Awaitable[None]]]

_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class LifecycleManager:
    def __init__(self) -> None:
        self._hooks: list[tuple[str, ShutdownHook]] = []
        self._stop_requested = asyncio.Event()
        self._shutdown_done = False
        self._health_server: HealthCheckServer | None = None
        self.hook_errors: list[tuple[str, BaseException]] = []

    @property
    def is_shutting_down(self) -> bool:
        return self._stop_requested.is_set()

    def on_shutdown(self, callback: ShutdownHook, name: str | None = None) -> None:
        """Register a cleanup callback (sync or async)."""
        self._hooks.append((name or getattr(callback, "__qualname__", repr(callback)), callback))

    def set_health_server(self, server: HealthCheckServer) -> None:
        self._health_server = server

    def request_shutdown(self) -> None:
        self._stop_requested.set()

    async def wait_for_shutdown(self) -> None:
        await self._stop_requested.wait()

    def install_signal_handlers(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        if loop is not None:
            for sig in _SIGNALS:
                loop.add_signal_handler(sig, self.request_shutdown)
            return
        for sig in _SIGNALS:
            signal.signal(sig, self._handle_signal)

    async def shutdown(self) -> None:
        """Run hooks newest-first; a failing hook is recorded and the rest still run."""
        if self._shutdown_done:
            return
        self._shutdown_done = True
        self.request_shutdown()

        if self._health_server:
            self._health_server.mark_not_ready()

        for name, hook in reversed(self._hooks):
            try:
                result = hook()
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                self.hook_errors.append((name, exc))

        if self._health_server:
            await self._health_server.stop()

    def _handle_signal(self, signum: int, frame: Any) -> None:
        self.request_shutdown()
