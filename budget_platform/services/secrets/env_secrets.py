from __future__ import annotations

import os
from collections import ChainMap

from budget_platform.services.secrets.interface import SecretsInterface


class EnvSecrets(SecretsInterface):
    """Secrets from the process environment, shadowed by explicit overrides.

    The environment is snapshotted at construction. ``set`` writes to the
    override layer, which is how tests rotate a secret mid-run.
    """

    def __init__(self, overrides: dict[str, str] | None = None) -> None:
        self._values = ChainMap(dict(overrides or {}), dict(os.environ))

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value
