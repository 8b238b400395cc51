from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping
from contextlib import contextmanager

Tags = Mapping[str, str] | None


class MetricsInterface(ABC):
    """Counters, gauges and millisecond histograms, labelled by string tags.

    Names are snake_case (``rates_refresh_total``); backends translate them
    into whatever their exposition format needs.
    """

    @abstractmethod
    def counter(self, name: str, value: float = 1, tags: Tags = None) -> None: ...

    @abstractmethod
    def gauge(self, name: str, value: float, tags: Tags = None) -> None: ...

    @abstractmethod
    def histogram(self, name: str, value: float, tags: Tags = None) -> None: ...

    @contextmanager
    def timed(self, name: str, tags: Tags = None) -> Iterator[None]:
        """Record the wall time of the block in milliseconds, even when it raises."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.histogram(name, (time.perf_counter() - start) * 1000, tags=tags)
