"""Recurring transaction rules: validation, normalization and occurrence math.

All arithmetic is on UTC calendar days. Dates travel as ``YYYY-MM-DD``
strings; status is never stored as a transition, it is re-derived from the
next occurrence and the rule's end date on every write.
"""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta, timezone
from typing import Any

FREQUENCIES = ("weekly", "biweekly", "monthly")
STATUSES = ("active", "paused", "completed")

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_DAYS_PER_STEP = {"weekly": 7, "biweekly": 14}


class InvalidRuleError(ValueError):
    """A recurrence rule failed validation; the message names the field."""


@dataclass(frozen=True)
class RecurringRule:
    frequency: str
    start_date: str
    interval: int = 1
    end_date: str | None = None
    day_of_month: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RecurringRule:
        """Build a rule from wire keys without validating it."""
        return cls(
            frequency=data.get("frequency"),  # type: ignore[arg-type]
            start_date=data.get("startDate"),  # type: ignore[arg-type]
            interval=data.get("interval", 1),
            end_date=data.get("endDate") or None,
            day_of_month=data.get("dayOfMonth"),
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "frequency": self.frequency,
            "interval": self.effective_interval,
            "startDate": self.start_date,
        }
        if self.end_date:
            payload["endDate"] = self.end_date
        if self.day_of_month is not None:
            payload["dayOfMonth"] = self.day_of_month
        return payload

    @property
    def effective_interval(self) -> int:
        value = self.interval
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            return 1
        return value


def _is_valid_date(value: Any) -> bool:
    if not isinstance(value, str) or not _DATE_RE.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def _to_date(value: str) -> date:
    return date.fromisoformat(value)


def _clamp_day(year: int, month: int, day: int) -> date:
    return date(year, month, min(day, calendar.monthrange(year, month)[1]))


def _add_months(base: date, months: int) -> tuple[int, int]:
    index = base.month - 1 + months
    return base.year + index // 12, index % 12 + 1


def _implied_day(rule: RecurringRule) -> Any:
    if rule.day_of_month is not None:
        return rule.day_of_month
    return _to_date(rule.start_date).day


def normalize_recurring_rule(rule: RecurringRule) -> RecurringRule:
    """Fix ``day_of_month`` for monthly rules; drop it for the others."""
    if rule.frequency == "monthly":
        return replace(rule, day_of_month=_implied_day(rule))
    return replace(rule, day_of_month=None)


def validate_recurring_rule(rule: RecurringRule) -> None:
    if rule.frequency not in FREQUENCIES:
        raise InvalidRuleError("Unsupported recurrence frequency")
    if not _is_valid_date(rule.start_date):
        raise InvalidRuleError("Invalid recurrence startDate")
    if rule.end_date and not _is_valid_date(rule.end_date):
        raise InvalidRuleError("Invalid recurrence endDate")
    if rule.end_date and _to_date(rule.end_date) < _to_date(rule.start_date):
        raise InvalidRuleError("recurrence endDate must be after startDate")
    if rule.frequency == "monthly":
        day = _implied_day(rule)
        if isinstance(day, bool) or not isinstance(day, int) or not 1 <= day <= 31:
            raise InvalidRuleError("recurrence dayOfMonth must be between 1 and 31")


def parse_recurring_rule(raw: Any) -> RecurringRule:
    """Turn a request payload's ``rule`` into a validated, normalized rule."""
    if isinstance(raw, RecurringRule):
        rule = raw
    elif isinstance(raw, dict):
        rule = RecurringRule.from_dict(raw)
    else:
        raise InvalidRuleError("Missing recurrence rule")
    validate_recurring_rule(rule)
    return normalize_recurring_rule(rule)


def build_initial_next_occurrence(rule: RecurringRule) -> str:
    start = _to_date(rule.start_date)
    if rule.frequency == "monthly":
        return _clamp_day(start.year, start.month, _implied_day(rule)).isoformat()
    return start.isoformat()


def get_next_occurrence(rule: RecurringRule, from_date: str) -> str:
    """The occurrence one step after *from_date*.

    Monthly steps clamp ``day_of_month`` against the month being advanced
    into, so day 31 lands on the last day of shorter months.
    """
    base = _to_date(from_date)
    interval = rule.effective_interval
    if rule.frequency in _DAYS_PER_STEP:
        return (base + timedelta(days=_DAYS_PER_STEP[rule.frequency] * interval)).isoformat()
    if rule.frequency == "monthly":
        year, month = _add_months(base, interval)
        day = rule.day_of_month if rule.day_of_month is not None else base.day
        return _clamp_day(year, month, day).isoformat()
    year, month = _add_months(base, 1)
    return _clamp_day(year, month, base.day).isoformat()


def _calendar_day(value: date | datetime | str | None) -> date:
    if value is None:
        return datetime.now(timezone.utc).date()
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    return _to_date(value[:10])


def compute_next_occurrence(
    rule: RecurringRule, from_date: date | datetime | str | None = None
) -> str:
    """First occurrence on or after *from_date* (today, UTC, by default)."""
    target = _calendar_day(from_date)
    pointer = build_initial_next_occurrence(rule)
    while _to_date(pointer) < target:
        pointer = get_next_occurrence(rule, pointer)
    return pointer


def get_status_for_occurrence(next_occurrence: str, end_date: str | None = None) -> str:
    if end_date and _to_date(next_occurrence) > _to_date(end_date):
        return "completed"
    return "active"


def resolve_status(requested: Any, next_occurrence: str, end_date: str | None = None) -> str:
    """Keep an explicit ``paused`` or ``completed``; derive anything else."""
    if requested in ("paused", "completed"):
        return requested
    return get_status_for_occurrence(next_occurrence, end_date)
