"""``python -m budget_platform run <module> [global flags] [module args]``.

Global flags pick backends (``--db``, ``--cache``, ``--metrics``, ``--log``,
``--rates``) and environment (``--env '{json}'``, ``--env-file <name>``);
everything else is validated against the module's ``module.json`` argument
list. The module class is then built by the DI container and run on a fresh event loop.
"""

from __future__ import annotations

import asyncio
import importlib
import json
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from budget_platform.config.container import Container
from budget_platform.config.context import ModuleConfig, PlatformConfig
from budget_platform.config.env_loader import load_env_file
from budget_platform.modules.base import AsyncModule
from budget_platform.services.cache.interface import CacheInterface
from budget_platform.services.cache.memory_cache import MemoryCache
from budget_platform.services.health.health_server import HealthCheckServer
from budget_platform.services.lifecycle.lifecycle_manager import LifecycleManager
from budget_platform.services.logger.factory import LoggerFactory
from budget_platform.services.metrics.interface import MetricsInterface
from budget_platform.services.metrics.noop_metrics import NoopMetrics
from budget_platform.services.registry import resolve_implementation, resolve_interface_type
from budget_platform.services.secrets.env_secrets import EnvSecrets
from budget_platform.services.secrets.interface import SecretsInterface

MODULES_DIR = Path(__file__).resolve().parent.parent / "modules"

USAGE = "Usage: python -m budget_platform run <module_name> [flags] [module args]"

BACKEND_FLAGS = ("db", "cache", "metrics", "log", "rates")
VALUE_FLAGS = (*BACKEND_FLAGS, "env", "env-file", "health-port")
DEFAULT_HEALTH_PORT = 8080

# Module types that get probes and signal handling
SERVICE_TYPES = frozenset({"service", "worker"})

_MISSING = object()

_GLOBAL_HELP = (
    ("db", "Database: memory, postgres [default: none]"),
    ("cache", "Rate cache backend: memory [default: memory]"),
    ("metrics", "Metrics: noop, memory, prometheus [default: noop]"),
    ("log", "Logging format: pretty, memory [default: pretty]"),
    ("rates", "Rate source: memory (table from RATES_MEMORY_TABLE) [default: currency API]"),
    ("health-port", f"Health check HTTP port (service/worker only) [default: {DEFAULT_HEALTH_PORT}]"),
    ("env", "JSON string of env var overrides"),
    ("env-file", "Environment file name (loads .env/<name>.env)"),
)


@dataclass(frozen=True)
class ArgSpec:
    name: str
    type: str = "string"
    description: str = ""
    default: Any = _MISSING
    required: bool = False
    choices: tuple[Any, ...] = ()

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ArgSpec:
        return cls(
            name=raw["name"],
            type=raw.get("type", "string"),
            description=raw.get("description", ""),
            default=raw.get("default", _MISSING),
            required=bool(raw.get("required", False)),
            choices=tuple(raw.get("choices", ())),
        )

    @property
    def has_default(self) -> bool:
        return self.default is not _MISSING

    def cast(self, raw: str) -> Any:
        if self.type == "integer":
            return int(raw)
        if self.type == "float":
            return float(raw)
        if self.type == "boolean":
            return raw.lower() in ("true", "1", "yes")
        return raw

    def help_line(self) -> str:
        text = f"    --{self.name:20s} {self.description}"
        if self.required:
            text += " (required)"
        if self.has_default:
            text += f" [default: {self.default}]"
        if self.choices:
            text += f" (choices: {', '.join(str(c) for c in self.choices)})"
        return text


@dataclass(frozen=True)
class ModuleDescriptor:
    """The parsed ``modules/<name>/module.json``."""

    name: str
    display_name: str
    description: str
    version: str = ""
    type: str = "job"
    args: tuple[ArgSpec, ...] = ()

    @classmethod
    def load(cls, module_name: str, modules_dir: Path = MODULES_DIR) -> ModuleDescriptor:
        path = modules_dir / module_name / "module.json"
        if not path.is_file():
            raise FileNotFoundError(f"module '{module_name}' not found at {path}")
        raw = json.loads(path.read_text())
        return cls(
            name=module_name,
            display_name=raw["display_name"],
            description=raw["description"],
            version=raw.get("version", ""),
            type=raw.get("type", "job"),
            args=tuple(ArgSpec.from_dict(a) for a in raw.get("args", [])),
        )

    @property
    def is_service(self) -> bool:
        return self.type in SERVICE_TYPES

    def parse_args(self, raw_args: list[str]) -> dict[str, Any]:
        """Validate ``--name value`` pairs (a bare ``--name`` means true) against the arg specs."""
        given = _pair_flags(raw_args)
        parsed: dict[str, Any] = {}
        errors: list[str] = []

        for spec in self.args:
            if spec.name in given:
                try:
                    parsed[spec.name] = spec.cast(given[spec.name])
                except ValueError:
                    errors.append(f"Invalid value for --{spec.name}: '{given[spec.name]}'")
                    continue
            elif spec.has_default:
                parsed[spec.name] = spec.default
            elif spec.required:
                errors.append(f"Missing required argument: --{spec.name}")
                continue
            else:
                continue

            if spec.choices and parsed[spec.name] not in spec.choices:
                errors.append(
                    f"Invalid value for --{spec.name}: '{parsed[spec.name]}' "
                    f"(choices: {', '.join(str(c) for c in spec.choices)})"
                )

        if errors:
            raise ValueError("; ".join(errors))
        return parsed

    def render_help(self) -> str:
        version = f" v{self.version}" if self.version else ""
        lines = [f"\n  {self.display_name}{version}", f"  {self.description}\n", f"  Type: {self.type}\n"]
        if self.args:
            lines.append("  Module arguments:")
            lines.extend(spec.help_line() for spec in self.args)
            lines.append("")
        lines.append("  Global flags:")
        lines.extend(f"    --{flag:20s} {text}" for flag, text in _GLOBAL_HELP)
        lines.append("")
        return "\n".join(lines)


def _pair_flags(raw_args: list[str]) -> dict[str, str]:
    pairs: dict[str, str] = {}
    i = 0
    while i < len(raw_args):
        token = raw_args[i]
        if not token.startswith("--"):
            i += 1
            continue
        if i + 1 < len(raw_args) and not raw_args[i + 1].startswith("--"):
            pairs[token[2:]] = raw_args[i + 1]
            i += 2
        else:
            pairs[token[2:]] = "true"
            i += 1
    return pairs


def _parse_env_overrides(raw: str) -> dict[str, str]:
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("--env value must be a JSON object")
    if not all(isinstance(k, str) and isinstance(v, str) for k, v in data.items()):
        raise ValueError("--env JSON must have string keys and string values")
    return data


@dataclass
class GlobalOptions:
    backends: dict[str, str] = field(default_factory=dict)
    env: dict[str, str] = field(default_factory=dict)
    module_args: list[str] = field(default_factory=list)
    health_port: int = DEFAULT_HEALTH_PORT

    @classmethod
    def parse(cls, argv: list[str]) -> GlobalOptions:
        """Split global flags from module args.

        ``--env-file`` values load first; ``--env`` JSON wins over them.
        """
        options = cls()
        env_file: str | None = None
        i = 0
        while i < len(argv):
            token = argv[i]
            name = token[2:] if token.startswith("--") else ""
            if name in VALUE_FLAGS and i + 1 < len(argv):
                value = argv[i + 1]
                if name == "env":
                    options.env.update(_parse_env_overrides(value))
                elif name == "env-file":
                    env_file = value
                elif name == "health-port":
                    options.health_port = int(value)
                else:
                    options.backends[name] = value
                i += 2
            else:
                options.module_args.append(token)
                i += 1

        if env_file:
            options.env = {**load_env_file(env_file), **options.env}
        if "log" in options.backends:
            options.env.setdefault("LOG_IMPL", options.backends["log"])
        return options


def build_container(
    options: GlobalOptions,
    module_args: dict[str, Any],
    module_type: str = "job",
) -> Container:
    container = Container()
    container.register_instance(Container, container)
    container.register_instance(SecretsInterface, EnvSecrets(overrides=options.env))
    container.register_instance(PlatformConfig, PlatformConfig(overrides=options.env))
    container.register_instance(ModuleConfig, ModuleConfig(module_args))

    log_impl = options.backends.get("log") or options.env.get("LOG_IMPL", "pretty")
    container.register_factory(LoggerFactory, LoggerFactory(default_impl=log_impl))

    lifecycle = LifecycleManager()
    container.register_instance(LifecycleManager, lifecycle)

    probes: HealthCheckServer | None = None
    if module_type in SERVICE_TYPES:
        probes = HealthCheckServer(port=options.health_port)
        lifecycle.set_health_server(probes)
        container.register_instance(HealthCheckServer, probes)

    for flag_name, impl_name in options.backends.items():
        if flag_name == "log":
            continue
        instance = container.resolve(resolve_implementation(flag_name, impl_name))
        container.register_instance(resolve_interface_type(flag_name), instance)
        if probes is not None and hasattr(instance, "health_check"):
            probes.register_check(flag_name, getattr(instance, "health_check_async", instance.health_check))

    if not container.has(MetricsInterface):
        container.register_instance(MetricsInterface, NoopMetrics())
    if not container.has(CacheInterface):
        container.register_instance(CacheInterface, MemoryCache())
    return container


async def _serve(module: AsyncModule, container: Container) -> int:
    """Run a service/worker with probes up and SIGTERM/SIGINT wired to shutdown."""
    lifecycle = container.get(LifecycleManager)
    probes = container.get(HealthCheckServer)
    await probes.start()
    lifecycle.install_signal_handlers(loop=asyncio.get_running_loop())
    try:
        probes.mark_started()
        return await module.run()
    finally:
        await lifecycle.shutdown()


async def _run_job(module: AsyncModule, container: Container) -> int:
    try:
        return await module.run()
    finally:
        await container.get(LifecycleManager).shutdown()


def run_module(argv: list[str]) -> tuple[int, AsyncModule | None]:
    """Parse, wire and run; returns (exit_code, module) so tests can inspect the module."""
    if len(argv) < 2 or argv[0] != "run":
        raise ValueError(USAGE)

    descriptor = ModuleDescriptor.load(argv[1])
    remaining = argv[2:]
    if "--help" in remaining or "-h" in remaining:
        print(descriptor.render_help())
        return 0, None

    options = GlobalOptions.parse(remaining)
    container = build_container(options, descriptor.parse_args(options.module_args), descriptor.type)

    import_path = f"budget_platform.modules.{descriptor.name}.main"
    module_class = getattr(importlib.import_module(import_path), "module_class", None)
    if module_class is None:
        raise AttributeError(f"Module '{import_path}' must define a 'module_class' attribute")

    module = container.resolve(module_class)
    runner = _serve if descriptor.is_service else _run_job
    return asyncio.run(runner(module, container)), module


def run_cli(argv: list[str] | None = None) -> None:
    try:
        exit_code, _ = run_module(sys.argv[1:] if argv is None else argv)
    except (ValueError, FileNotFoundError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    sys.exit(exit_code)
