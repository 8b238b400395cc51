"""Request/response shaping for the budget resources.

Writes normalize every amount to the base currency before anything is
stored; reads convert stored base amounts into the caller's preferred
currency. Display fields are computed here and never persisted. All rate
lookups for one request go through that request's ``RateContext``.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Any

from budget_platform.budget.recurrence import (
    compute_next_occurrence,
    parse_recurring_rule,
    resolve_status,
)
from budget_platform.currency.converter import CurrencyConverter
from budget_platform.currency.rate_cache import RateContext
from budget_platform.currency.settings import to_currency_number


def _first(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def new_id() -> str:
    return str(uuid.uuid4())


def current_month() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m")


# -- Transactions and recurring transactions ------------------------------------


async def normalize_money_input(
    converter: CurrencyConverter, payload: dict[str, Any], context: RateContext
) -> dict[str, Any]:
    """Rewrite ``amount``/``currency`` into the base currency, keeping the original."""
    base = converter.settings.base_currency
    original_currency = converter.settings.normalize_currency_code(payload.get("currency"))
    original_amount = to_currency_number(payload.get("amount"))
    conversion = await converter.convert_to_base_currency(original_amount, original_currency, context)
    return {
        **payload,
        "amount": conversion.amount,
        "currency": base,
        "baseAmount": conversion.amount,
        "baseCurrency": base,
        "originalAmount": original_amount,
        "originalCurrency": original_currency,
        "exchangeRateSnapshot": conversion.snapshot.to_dict(),
    }


async def shape_money_response(
    converter: CurrencyConverter, item: dict[str, Any], preferred: str, context: RateContext
) -> dict[str, Any]:
    base_amount = to_currency_number(_first(item.get("baseAmount"), item.get("amount"), 0))
    base_currency = item.get("baseCurrency") or converter.settings.base_currency
    shaped = {
        **item,
        "baseAmount": base_amount,
        "baseCurrency": base_currency,
        "originalAmount": _first(item.get("originalAmount"), base_amount),
        "originalCurrency": _first(item.get("originalCurrency"), base_currency),
    }
    if preferred == base_currency:
        shaped.update(
            amount=base_amount,
            currency=base_currency,
            displayAmount=base_amount,
            displayCurrency=base_currency,
        )
        return shaped

    conversion = await converter.convert_from_base_currency(base_amount, preferred, context)
    shaped.update(
        amount=conversion.amount,
        currency=preferred,
        displayAmount=conversion.amount,
        displayCurrency=preferred,
        exchangeRateSnapshot=conversion.snapshot.to_dict(),
    )
    return shaped


async def build_transaction(
    converter: CurrencyConverter,
    payload: dict[str, Any],
    user_id: str,
    context: RateContext,
    item_id: str | None = None,
) -> dict[str, Any]:
    normalized = await normalize_money_input(converter, payload, context)
    return {**normalized, "id": item_id or new_id(), "userId": user_id}


async def build_recurring_transaction(
    converter: CurrencyConverter,
    payload: dict[str, Any],
    user_id: str,
    context: RateContext,
    stored: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Create (``stored`` is None) or update a recurring transaction.

    Raises ``InvalidRuleError`` before any conversion when the rule is bad.
    """
    if stored is None:
        rule = parse_recurring_rule(payload.get("rule"))
        requested_status = payload.get("status")
        merged = dict(payload)
        item_id = new_id()
    else:
        rule = parse_recurring_rule(payload["rule"] if payload.get("rule") else stored.get("rule"))
        requested_status = _first(payload.get("status"), stored.get("status"))
        merged = {**stored, **payload}
        item_id = stored["id"]

    next_occurrence = compute_next_occurrence(rule)
    normalized = await normalize_money_input(converter, merged, context)
    return {
        **normalized,
        "id": item_id,
        "rule": rule.to_dict(),
        "nextOccurrence": next_occurrence,
        "status": resolve_status(requested_status, next_occurrence, rule.end_date),
        "userId": user_id,
    }


# -- Categories ------------------------------------------------------------------


async def normalize_monthly_data(
    converter: CurrencyConverter, monthly: dict[str, Any], currency: str, context: RateContext
) -> dict[str, dict[str, float]]:
    """Convert each month's ``limit`` and ``spent`` into the base currency."""

    async def normalize_month(value: Any) -> dict[str, float]:
        value = value if isinstance(value, dict) else {}
        limit, spent = await asyncio.gather(
            converter.convert_to_base_currency(to_currency_number(value.get("limit")), currency, context),
            converter.convert_to_base_currency(to_currency_number(value.get("spent")), currency, context),
        )
        return {"limit": limit.amount, "spent": spent.amount}

    months = list(monthly)
    values = await asyncio.gather(*(normalize_month(monthly[m]) for m in months))
    return dict(zip(months, values))


async def shape_category_response(
    converter: CurrencyConverter, category: dict[str, Any], preferred: str, context: RateContext
) -> dict[str, Any]:
    base_currency = category.get("baseCurrency") or converter.settings.base_currency

    async def shape_month(value: dict[str, Any]) -> dict[str, Any]:
        limit_base = to_currency_number(value.get("limit"))
        spent_base = to_currency_number(value.get("spent"))
        if preferred == base_currency:
            limit, spent = limit_base, spent_base
        else:
            limit_conv, spent_conv = await asyncio.gather(
                converter.convert_from_base_currency(limit_base, preferred, context),
                converter.convert_from_base_currency(spent_base, preferred, context),
            )
            limit, spent = limit_conv.amount, spent_conv.amount
        return {
            **value,
            "baseLimit": limit_base,
            "baseSpent": spent_base,
            "limit": limit,
            "spent": spent,
            "currency": preferred,
        }

    monthly = category.get("monthlyData") or {}
    months = list(monthly)
    shaped = await asyncio.gather(*(shape_month(monthly[m]) for m in months))
    return {
        **category,
        "currency": preferred,
        "baseCurrency": base_currency,
        "monthlyData": dict(zip(months, shaped)),
    }


async def build_category(
    converter: CurrencyConverter, payload: dict[str, Any], user_id: str, context: RateContext
) -> dict[str, Any]:
    """Without ``monthlyData`` the top-level limit/spent seed the current month."""
    base = converter.settings.base_currency
    currency = converter.settings.normalize_currency_code(payload.get("currency"))
    monthly_payload = payload.get("monthlyData")
    if not isinstance(monthly_payload, dict):
        monthly_payload = {
            current_month(): {"limit": payload.get("limit"), "spent": _first(payload.get("spent"), 0)}
        }
    return {
        "id": new_id(),
        "userId": user_id,
        "name": payload.get("name"),
        "color": payload.get("color"),
        "type": payload.get("type"),
        "currency": currency,
        "baseCurrency": base,
        "monthlyData": await normalize_monthly_data(converter, monthly_payload, currency, context),
    }


async def update_category(
    converter: CurrencyConverter, existing: dict[str, Any], payload: dict[str, Any], context: RateContext
) -> dict[str, Any]:
    """Incoming months replace stored months of the same key; the rest are kept."""
    currency = converter.settings.normalize_currency_code(
        payload.get("currency") or existing.get("currency")
    )
    incoming = payload.get("monthlyData")
    normalized = (
        await normalize_monthly_data(converter, incoming, currency, context)
        if isinstance(incoming, dict) and incoming
        else {}
    )
    return {
        **existing,
        "name": _first(payload.get("name"), existing.get("name")),
        "color": _first(payload.get("color"), existing.get("color")),
        "type": _first(payload.get("type"), existing.get("type")),
        "currency": currency,
        "baseCurrency": converter.settings.base_currency,
        "monthlyData": {**(existing.get("monthlyData") or {}), **normalized},
    }


# -- Goals -----------------------------------------------------------------------


async def normalize_goal_amounts(
    converter: CurrencyConverter, amounts: dict[str, Any], currency: str, context: RateContext
) -> dict[str, float]:
    """Convert each named goal amount (``target``, ``current``) into the base currency."""
    names = list(amounts)
    conversions = await asyncio.gather(
        *(
            converter.convert_to_base_currency(to_currency_number(amounts[n]), currency, context)
            for n in names
        )
    )
    return {name: conv.amount for name, conv in zip(names, conversions)}


async def shape_goal_response(
    converter: CurrencyConverter, goal: dict[str, Any], preferred: str, context: RateContext
) -> dict[str, Any]:
    base_currency = goal.get("baseCurrency") or converter.settings.base_currency
    if preferred == base_currency:
        return {
            **goal,
            "currency": base_currency,
            "displayTarget": goal.get("target"),
            "displayCurrent": goal.get("current"),
        }
    target, current = await asyncio.gather(
        converter.convert_from_base_currency(to_currency_number(goal.get("target")), preferred, context),
        converter.convert_from_base_currency(to_currency_number(goal.get("current")), preferred, context),
    )
    return {
        **goal,
        "currency": preferred,
        "displayTarget": target.amount,
        "displayCurrent": current.amount,
    }


async def build_goal(
    converter: CurrencyConverter, payload: dict[str, Any], user_id: str, context: RateContext
) -> dict[str, Any]:
    currency = converter.settings.normalize_currency_code(payload.get("currency"))
    amounts = await normalize_goal_amounts(
        converter,
        {"target": payload.get("target"), "current": _first(payload.get("current"), 0)},
        currency,
        context,
    )
    return {
        "id": new_id(),
        "userId": user_id,
        "name": payload.get("name"),
        "target": amounts["target"],
        "current": amounts["current"],
        "targetDate": payload.get("targetDate"),
        "description": payload.get("description"),
        "currency": currency,
        "baseCurrency": converter.settings.base_currency,
    }


async def update_goal(
    converter: CurrencyConverter, stored: dict[str, Any], payload: dict[str, Any], context: RateContext
) -> dict[str, Any]:
    """Only amounts present in *payload* are re-normalized."""
    currency = converter.settings.normalize_currency_code(
        payload.get("currency") or stored.get("currency")
    )
    provided = {name: payload[name] for name in ("target", "current") if name in payload}
    amounts = await normalize_goal_amounts(converter, provided, currency, context)
    return {
        **stored,
        "name": _first(payload.get("name"), stored.get("name")),
        "description": _first(payload.get("description"), stored.get("description")),
        "targetDate": _first(payload.get("targetDate"), stored.get("targetDate")),
        "target": amounts.get("target", stored.get("target")),
        "current": amounts.get("current", stored.get("current")),
        "currency": currency,
        "baseCurrency": converter.settings.base_currency,
    }
