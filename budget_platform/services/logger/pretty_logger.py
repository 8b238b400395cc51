import os
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

from budget_platform.services.logger.interface import LEVELS, LoggingInterface

_STYLE = {"DEBUG": "\033[36m", "INFO": "\033[32m", "WARN": "\033[33m", "ERROR": "\033[31m"}
_RESET = "\033[0m"


class PrettyLogger(LoggingInterface):
    """One colored line per entry on stderr, for local runs.

    Entries below ``LOG_LEVEL`` (default ``INFO``) are dropped.
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream
        self._threshold = LEVELS.get(os.environ.get("LOG_LEVEL", "INFO").upper(), LEVELS["INFO"])

    def emit(self, level: str, msg: str, ctx: dict[str, Any]) -> None:
        if LEVELS.get(level, 0) < self._threshold:
            return
        clock = datetime.now(timezone.utc).strftime("%H:%M:%S")
        fields = "".join(f" {key}={value}" for key, value in ctx.items())
        line = f"{_STYLE.get(level, '')}{clock} [{level}]{_RESET} {msg}{'  ' + fields.lstrip() if fields else ''}"
        print(line, file=self._stream or sys.stderr)
