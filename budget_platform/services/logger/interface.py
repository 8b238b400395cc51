from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

LEVELS = {"DEBUG": 10, "INFO": 20, "WARN": 30, "ERROR": 40}


class LoggingInterface(ABC):
    """Structured logging: a message plus keyword context.

    Backends implement ``emit``; call sites use the level methods and pass
    context as keywords (``log.warn("Serving stale exchange rate", pair=...)``).
    """

    @abstractmethod
    def emit(self, level: str, msg: str, ctx: dict[str, Any]) -> None: ...

    def debug(self, msg: str, **ctx: Any) -> None:
        self.emit("DEBUG", msg, ctx)

    def info(self, msg: str, **ctx: Any) -> None:
        self.emit("INFO", msg, ctx)

    def warn(self, msg: str, **ctx: Any) -> None:
        self.emit("WARN", msg, ctx)

    def error(self, msg: str, **ctx: Any) -> None:
        self.emit("ERROR", msg, ctx)

    def bind(self, **ctx: Any) -> LoggingInterface:
        """Return a logger that adds *ctx* to every entry (e.g. ``request_id``)."""
        return BoundLogger(self, ctx)


class BoundLogger(LoggingInterface):
    def __init__(self, parent: LoggingInterface, ctx: dict[str, Any]) -> None:
        self._parent = parent
        self._ctx = ctx

    def emit(self, level: str, msg: str, ctx: dict[str, Any]) -> None:
        self._parent.emit(level, msg, {**self._ctx, **ctx})

    def bind(self, **ctx: Any) -> LoggingInterface:
        return BoundLogger(self._parent, {**self._ctx, **ctx})
