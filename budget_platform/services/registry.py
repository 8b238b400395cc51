"""Backends selectable from the command line (``--db postgres``, ``--metrics prometheus``).

Classes are named by dotted path and imported on demand, so asyncpg and
prometheus_client are only loaded when that backend is picked.
"""

from __future__ import annotations

import importlib
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ServiceSlot:
    interface: str
    impls: dict[str, str]


SLOTS: dict[str, ServiceSlot] = {
    "db": ServiceSlot(
        interface="budget_platform.services.database.interface.DatabaseInterface",
        impls={
            "memory": "budget_platform.services.database.memory_database.MemoryDatabase",
            "postgres": "budget_platform.services.database.postgres_database.PostgresDatabase",
        },
    ),
    "cache": ServiceSlot(
        interface="budget_platform.services.cache.interface.CacheInterface",
        impls={"memory": "budget_platform.services.cache.memory_cache.MemoryCache"},
    ),
    "metrics": ServiceSlot(
        interface="budget_platform.services.metrics.interface.MetricsInterface",
        impls={
            "noop": "budget_platform.services.metrics.noop_metrics.NoopMetrics",
            "memory": "budget_platform.services.metrics.memory_metrics.MemoryMetrics",
            "prometheus": "budget_platform.services.metrics.prometheus_metrics.PrometheusMetrics",
        },
    ),
    "rates": ServiceSlot(
        interface="budget_platform.currency.rate_source.RateSourceInterface",
        impls={"memory": "budget_platform.currency.memory_rate_source.MemoryRateSource"},
    ),
}


def resolve_class(dotted_path: str) -> type[Any]:
    module_path, class_name = dotted_path.rsplit(".", 1)
    return getattr(importlib.import_module(module_path), class_name)


def _slot(flag_name: str) -> ServiceSlot:
    slot = SLOTS.get(flag_name)
    if slot is None:
        raise ValueError(f"Unknown interface flag: --{flag_name}")
    return slot


def resolve_implementation(flag_name: str, impl_name: str) -> type[Any]:
    slot = _slot(flag_name)
    dotted = slot.impls.get(impl_name)
    if dotted is None:
        raise ValueError(
            f"Unknown implementation '{impl_name}' for --{flag_name} "
            f"(available: {', '.join(slot.impls)})"
        )
    return resolve_class(dotted)


def resolve_interface_type(flag_name: str) -> type[Any]:
    """The ABC an implementation is registered under in the container."""
    return resolve_class(_slot(flag_name).interface)
