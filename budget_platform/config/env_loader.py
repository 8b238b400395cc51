"""Reads ``.env/<name>.env`` files selected with ``--env-file <name>``.

One ``KEY=VALUE`` per line, optionally prefixed with ``export``. ``#`` starts a
comment only at the beginning of a line. Single-quoted values are taken
literally; double-quoted values understand ``\\n``, ``\\t``, ``\\"`` and ``\\\\``.
"""

from __future__ import annotations

import re
from pathlib import Path

_PROJECT_ROOT = Path(__file__).resolve().parents[2]

_LINE = re.compile(r"^(?:export\s+)?([A-Za-z_][A-Za-z0-9_]*)\s*=\s*(.*)$")
_ESCAPES = {"n": "\n", "t": "\t", '"': '"', "\\": "\\"}


def load_env_file(env_name: str = "local", project_root: Path | None = None) -> dict[str, str]:
    """Parse .env/<env_name>.env; a missing file yields an empty dict."""
    env_file = (project_root or _PROJECT_ROOT) / ".env" / f"{env_name}.env"
    if not env_file.is_file():
        return {}
    return parse_env_text(env_file.read_text(), source=str(env_file))


def parse_env_text(text: str, source: str = "<env>") -> dict[str, str]:
    values: dict[str, str] = {}
    for number, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        match = _LINE.match(line)
        if match is None:
            raise ValueError(f"{source}:{number}: expected KEY=VALUE, got {raw!r}")
        key, value = match.groups()
        values[key] = _unquote(value.strip(), f"{source}:{number}")
    return values


def _unquote(value: str, where: str) -> str:
    if not value or value[0] not in "'\"":
        return value
    quote = value[0]
    if len(value) < 2 or value[-1] != quote:
        raise ValueError(f"{where}: unterminated {quote} quote")
    body = value[1:-1]
    if quote == "'":
        return body
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(0)), body)
