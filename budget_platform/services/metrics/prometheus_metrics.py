"""Prometheus metrics implementation using prometheus_client."""

from __future__ import annotations

from typing import Any

from budget_platform.services.metrics.interface import MetricsInterface, Tags
from budget_platform.services.secrets.interface import SecretsInterface

# Upstream fetches and request handling are measured in milliseconds.
_MS_BUCKETS = (5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000)


class PrometheusMetrics(MetricsInterface):
    """Exposes counters, gauges and histograms on a ``/metrics`` endpoint.

    Config (via secrets):
        METRICS_PROMETHEUS_PORT - Port to expose /metrics on (default: 9091).
                                  Empty or 0 skips the HTTP server, which is
                                  what short-lived jobs and tests want.

    A metric's label names are fixed by the first call that records it; later
    calls must use the same tag keys.
    """

    def __init__(self, secrets: SecretsInterface, registry: Any = None) -> None:
        import prometheus_client as prom

        self._prom = prom
        self.registry = registry if registry is not None else prom.REGISTRY
        self._metrics: dict[str, tuple[Any, tuple[str, ...]]] = {}

        port_str = secrets.get_or_default("METRICS_PROMETHEUS_PORT", "9091")
        port = int(port_str) if port_str else 0
        if port:
            prom.start_http_server(port, registry=self.registry)

    @staticmethod
    def _sanitize(name: str) -> str:
        return name.replace("-", "_").replace(".", "_")

    def _child(self, kind: str, name: str, tags: Tags) -> Any:
        safe = self._sanitize(name)
        registered = self._metrics.get(safe)
        if registered is None:
            label_names = tuple(sorted(tags or {}))
            factory = getattr(self._prom, kind)
            extra = {"buckets": _MS_BUCKETS} if kind == "Histogram" else {}
            metric = factory(safe, safe, label_names, registry=self.registry, **extra)
            registered = (metric, label_names)
            self._metrics[safe] = registered
        metric, label_names = registered
        if set(tags or {}) != set(label_names):
            raise ValueError(
                f"Metric '{safe}' was registered with labels {list(label_names)}, got {sorted(tags or {})}"
            )
        if label_names:
            return metric.labels(*[tags[n] for n in label_names])  # type: ignore[index]
        return metric

    def counter(self, name: str, value: float = 1, tags: Tags = None) -> None:
        self._child("Counter", name, tags).inc(value)

    def gauge(self, name: str, value: float, tags: Tags = None) -> None:
        self._child("Gauge", name, tags).set(value)

    def histogram(self, name: str, value: float, tags: Tags = None) -> None:
        self._child("Histogram", name, tags).observe(value)
