from __future__ import annotations

from budget_platform.services.metrics.interface import MetricsInterface, Tags

TagKey = tuple[tuple[str, str], ...]


def _tag_key(tags: Tags) -> TagKey:
    return tuple(sorted((tags or {}).items()))


class MemoryMetrics(MetricsInterface):
    """In-memory metrics for test assertions on metric values.

    ``counters``/``gauges``/``histograms`` aggregate by name; ``tagged`` keeps
    counter totals per ``(name, tags)`` so tests can assert on label values.
    """

    def __init__(self) -> None:
        self.counters: dict[str, float] = {}
        self.gauges: dict[str, float] = {}
        self.histograms: dict[str, list[float]] = {}
        self.tagged: dict[tuple[str, TagKey], float] = {}

    def counter(self, name: str, value: float = 1, tags: Tags = None) -> None:
        self.counters[name] = self.counters.get(name, 0) + value
        key = (name, _tag_key(tags))
        self.tagged[key] = self.tagged.get(key, 0) + value

    def gauge(self, name: str, value: float, tags: Tags = None) -> None:
        self.gauges[name] = value

    def histogram(self, name: str, value: float, tags: Tags = None) -> None:
        self.histograms.setdefault(name, []).append(value)

    def count(self, name: str, **tags: str) -> float:
        """Counter total for *name* restricted to exactly *tags*."""
        return self.tagged.get((name, _tag_key(tags)), 0)
