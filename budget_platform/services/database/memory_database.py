import operator
import re
from typing import Any, Callable

from budget_platform.services.database.interface import DatabaseInterface

_SELECT_RE = re.compile(r"(?is)^\s*SELECT\s+\*\s+FROM\s+(\w+)(?:\s+WHERE\s+(.+?))?\s*$")
_DELETE_RE = re.compile(r"(?is)^\s*DELETE\s+FROM\s+(\w+)(?:\s+WHERE\s+(.+?))?\s*$")
_CONDITION_RE = re.compile(r"^(\w+)\s*(<=|>=|=|<|>)\s*\$(\d+)$")

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "=": operator.eq,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


class MemoryDatabase(DatabaseInterface):
    """In-memory database for unit testing. Tables are lists of dicts.

    Understands ``SELECT * FROM <table>`` and ``DELETE FROM <table>`` with an
    optional ``WHERE`` of ``<col> <op> $n`` predicates joined by ``AND``
    (``op`` is one of ``= < <= > >=``). Everything else (DDL) is a no-op.
    """

    def __init__(self) -> None:
        self._tables: dict[str, list[dict[str, Any]]] = {}
        self._connected = False

    def connect(self) -> None:
        self._connected = True

    def disconnect(self) -> None:
        self._connected = False

    def is_connected(self) -> bool:
        return self._connected

    def execute(self, query: str, params: list[Any] | None = None) -> int:
        self._check_connected()
        delete_match = _DELETE_RE.match(query)
        if delete_match:
            table, where = delete_match.group(1), delete_match.group(2)
            predicate = _compile_where(where, params or [])
            rows = self._tables.get(table, [])
            kept = [r for r in rows if not predicate(r)]
            self._tables[table] = kept
            return len(rows) - len(kept)
        # For DDL and other statements, no-op
        return 0

    def fetch_one(self, query: str, params: list[Any] | None = None) -> dict[str, Any] | None:
        self._check_connected()
        rows = self._query(query, params)
        return rows[0] if rows else None

    def fetch_all(self, query: str, params: list[Any] | None = None) -> list[dict[str, Any]]:
        self._check_connected()
        return self._query(query, params)

    def insert_one(self, table: str, row: dict[str, Any]) -> int:
        self._check_connected()
        self._tables.setdefault(table, []).append(dict(row))
        return 1

    def bulk_insert(self, table: str, rows: list[dict[str, Any]]) -> int:
        self._check_connected()
        self._tables.setdefault(table, []).extend(dict(r) for r in rows)
        return len(rows)

    def health_check(self) -> bool:
        return self._connected

    def _check_connected(self) -> None:
        if not self._connected:
            raise RuntimeError("Database is not connected. Call connect() first.")

    def _query(self, query: str, params: list[Any] | None = None) -> list[dict[str, Any]]:
        match = _SELECT_RE.match(query)
        if not match:
            return []
        table, where = match.group(1), match.group(2)
        predicate = _compile_where(where, params or [])
        return [dict(r) for r in self._tables.get(table, []) if predicate(r)]


def _compile_where(where: str | None, params: list[Any]) -> Callable[[dict[str, Any]], bool]:
    if not where:
        return lambda row: True

    checks: list[tuple[str, Callable[[Any, Any], bool], Any]] = []
    for clause in re.split(r"(?i)\s+AND\s+", where.strip()):
        match = _CONDITION_RE.match(clause.strip())
        if not match:
            raise ValueError(f"Unsupported WHERE clause for MemoryDatabase: {clause!r}")
        col, op, index = match.group(1), match.group(2), int(match.group(3))
        if index < 1 or index > len(params):
            raise ValueError(f"Missing query parameter ${index}")
        checks.append((col, _OPERATORS[op], params[index - 1]))

    def predicate(row: dict[str, Any]) -> bool:
        for col, compare, value in checks:
            current = row.get(col)
            if current is None:
                return False
            if not compare(current, value):
                return False
        return True

    return predicate
