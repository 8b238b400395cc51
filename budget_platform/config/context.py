import os
from typing import Any


class ModuleConfig:
    """Wrapper around parsed module arguments with typed access."""

    def __init__(self, args: dict[str, Any]) -> None:
        self._args = args

    def get(self, key: str, default: Any = None) -> Any:
        return self._args.get(key, default)

    def __contains__(self, key: str) -> bool:
        return key in self._args

    def __repr__(self) -> str:
        return f"ModuleConfig({self._args})"


class PlatformConfig:
    """Environment-based configuration with optional overrides."""

    def __init__(self, overrides: dict[str, str] | None = None) -> None:
        self._env = dict(os.environ)
        if overrides:
            self._env.update(overrides)

    def get(self, key: str, default: str = "") -> str:
        return self._env.get(key, default)

    def get_int(self, key: str, default: int) -> int:
        """Read an integer variable; a malformed value is a startup error."""
        raw = self._env.get(key, "").strip()
        if not raw:
            return default
        try:
            return int(raw)
        except ValueError:
            raise ValueError(f"{key} must be an integer, got {raw!r}") from None

    def get_bool(self, key: str, default: bool) -> bool:
        raw = self._env.get(key, "").strip().lower()
        if not raw:
            return default
        return raw in ("true", "1", "yes")

    def get_list(self, key: str, default: list[str] | None = None) -> list[str]:
        """Read a comma-separated variable, dropping blank items."""
        raw = self._env.get(key)
        if raw is None:
            return list(default or [])
        return [item.strip() for item in raw.split(",") if item.strip()]
