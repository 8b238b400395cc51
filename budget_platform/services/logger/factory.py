from __future__ import annotations

from budget_platform.services.logger.interface import LoggingInterface
from budget_platform.services.logger.memory_logger import MemoryLogger
from budget_platform.services.logger.pretty_logger import PrettyLogger

LOGGER_IMPLS: dict[str, type[LoggingInterface]] = {
    "pretty": PrettyLogger,
    "memory": MemoryLogger,
}


class LoggerFactory:
    """Hands out loggers that share one sink per process.

    ``create("rates_refresh")`` returns the sink bound to
    ``component="rates_refresh"``; without a component the sink itself is
    returned, so tests can read every entry from a single ``MemoryLogger``.
    """

    def __init__(self, default_impl: str = "pretty") -> None:
        impl = LOGGER_IMPLS.get(default_impl)
        if impl is None:
            raise ValueError(
                f"Unknown logger implementation: '{default_impl}' "
                f"(available: {', '.join(LOGGER_IMPLS)})"
            )
        self.impl_name = default_impl
        self._impl = impl
        self._sink: LoggingInterface | None = None

    @property
    def sink(self) -> LoggingInterface:
        if self._sink is None:
            self._sink = self._impl()
        return self._sink

    def create(self, component: str | None = None) -> LoggingInterface:
        if component is None:
            return self.sink
        return self.sink.bind(component=component)
