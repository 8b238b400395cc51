from typing import Any, NamedTuple

from budget_platform.services.logger.interface import LoggingInterface


class LogEntry(NamedTuple):
    level: str
    msg: str
    ctx: dict[str, Any]


class MemoryLogger(LoggingInterface):
    """Keeps every entry in ``entries``; selected with ``--log memory``."""

    def __init__(self) -> None:
        self.entries: list[LogEntry] = []

    def emit(self, level: str, msg: str, ctx: dict[str, Any]) -> None:
        self.entries.append(LogEntry(level, msg, dict(ctx)))

    @property
    def messages(self) -> list[str]:
        return [entry.msg for entry in self.entries]

    def at_level(self, level: str) -> list[LogEntry]:
        return [entry for entry in self.entries if entry.level == level]
