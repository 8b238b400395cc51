import pytest

from budget_platform.budget import resources
from budget_platform.budget.recurrence import InvalidRuleError


# -- Transactions ----------------------------------------------------------------


@pytest.mark.asyncio
async def test_money_input_is_normalized_to_base(converter, context):
    normalized = await resources.normalize_money_input(
        converter, {"amount": 100, "currency": "USD", "note": "rent"}, context
    )
    assert normalized["amount"] == 90.0
    assert normalized["currency"] == "EUR"
    assert normalized["baseAmount"] == 90.0
    assert normalized["baseCurrency"] == "EUR"
    assert normalized["originalAmount"] == 100.0
    assert normalized["originalCurrency"] == "USD"
    assert normalized["note"] == "rent"
    snapshot = normalized["exchangeRateSnapshot"]
    assert (snapshot["fromCurrency"], snapshot["toCurrency"], snapshot["rate"]) == ("USD", "EUR", 0.9)


@pytest.mark.asyncio
async def test_unsupported_currency_is_treated_as_base(converter, context, source):
    normalized = await resources.normalize_money_input(
        converter, {"amount": "12.345", "currency": "JPY"}, context
    )
    assert normalized["originalCurrency"] == "EUR"
    assert normalized["amount"] == 12.35
    assert normalized["exchangeRateSnapshot"]["rate"] == 1.0
    assert source.calls == []


@pytest.mark.asyncio
async def test_shape_in_base_currency_keeps_stored_snapshot(converter, context, source):
    stored_snapshot = {"fromCurrency": "USD", "toCurrency": "EUR", "rate": 0.9}
    item = {"id": "t1", "baseAmount": 90.0, "baseCurrency": "EUR", "exchangeRateSnapshot": stored_snapshot}
    shaped = await resources.shape_money_response(converter, item, "EUR", context)
    assert shaped["amount"] == shaped["displayAmount"] == 90.0
    assert shaped["currency"] == shaped["displayCurrency"] == "EUR"
    assert shaped["exchangeRateSnapshot"] == stored_snapshot
    assert shaped["originalAmount"] == 90.0
    assert source.calls == []


@pytest.mark.asyncio
async def test_shape_converts_into_preferred_currency(converter, context):
    item = {"id": "t1", "amount": 90.0, "currency": "EUR", "originalAmount": 100.0, "originalCurrency": "USD"}
    shaped = await resources.shape_money_response(converter, item, "USD", context)
    assert shaped["amount"] == shaped["displayAmount"] == 99.0
    assert shaped["currency"] == shaped["displayCurrency"] == "USD"
    assert shaped["baseAmount"] == 90.0
    assert shaped["originalAmount"] == 100.0
    assert shaped["exchangeRateSnapshot"]["toCurrency"] == "USD"


@pytest.mark.asyncio
async def test_build_transaction_assigns_identity(converter, context):
    item = await resources.build_transaction(converter, {"amount": 5, "currency": "EUR"}, "u1", context)
    assert item["userId"] == "u1"
    assert item["id"]
    replaced = await resources.build_transaction(
        converter, {"amount": 6, "id": "ignored"}, "u1", context, item_id="t9"
    )
    assert replaced["id"] == "t9"


@pytest.mark.asyncio
async def test_created_items_never_take_the_client_id(converter, context):
    payload = {"id": "someone-elses", "amount": 5, "target": 10, "name": "x"}
    rule = {"frequency": "monthly", "startDate": "2099-01-31"}
    created = [
        await resources.build_transaction(converter, payload, "u2", context),
        await resources.build_recurring_transaction(converter, {**payload, "rule": rule}, "u2", context),
        await resources.build_category(converter, payload, "u2", context),
        await resources.build_goal(converter, payload, "u2", context),
    ]
    for item in created:
        assert item["id"] != "someone-elses"
        assert item["userId"] == "u2"


# -- Recurring transactions ------------------------------------------------------


@pytest.mark.asyncio
async def test_recurring_create_computes_schedule(converter, context):
    item = await resources.build_recurring_transaction(
        converter,
        {"amount": 50, "currency": "USD", "rule": {"frequency": "monthly", "startDate": "2099-01-31"}},
        "u1",
        context,
    )
    assert item["rule"] == {"frequency": "monthly", "interval": 1, "startDate": "2099-01-31", "dayOfMonth": 31}
    assert item["nextOccurrence"] == "2099-01-31"
    assert item["status"] == "active"
    assert item["amount"] == 45.0


@pytest.mark.asyncio
async def test_recurring_past_end_date_is_completed(converter, context):
    item = await resources.build_recurring_transaction(
        converter,
        {"amount": 1, "rule": {"frequency": "weekly", "startDate": "2020-01-01", "endDate": "2020-02-01"}},
        "u1",
        context,
    )
    assert item["status"] == "completed"


@pytest.mark.asyncio
async def test_recurring_paused_is_sticky(converter, context):
    item = await resources.build_recurring_transaction(
        converter,
        {"amount": 1, "status": "paused", "rule": {"frequency": "weekly", "startDate": "2099-01-01"}},
        "u1",
        context,
    )
    assert item["status"] == "paused"

    updated = await resources.build_recurring_transaction(
        converter, {"amount": 2}, "u1", context, stored=item
    )
    assert updated["status"] == "paused"
    assert updated["id"] == item["id"]
    assert updated["rule"] == item["rule"]
    assert updated["amount"] == 2.0


@pytest.mark.asyncio
async def test_invalid_rule_rejected_before_conversion(converter, context, source):
    with pytest.raises(InvalidRuleError, match="Invalid recurrence startDate"):
        await resources.build_recurring_transaction(
            converter,
            {"amount": 1, "currency": "USD", "rule": {"frequency": "weekly", "startDate": "invalid-date"}},
            "u1",
            context,
        )
    with pytest.raises(InvalidRuleError, match="Missing recurrence rule"):
        await resources.build_recurring_transaction(converter, {"amount": 1, "currency": "USD"}, "u1", context)
    assert source.calls == []


# -- Categories ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_monthly_data_normalized_to_base(converter, context):
    monthly = await resources.normalize_monthly_data(
        converter, {"2026-01": {"limit": 200, "spent": 50}, "2026-02": {"limit": 100}}, "USD", context
    )
    assert monthly == {"2026-01": {"limit": 180.0, "spent": 45.0}, "2026-02": {"limit": 90.0, "spent": 0.0}}


@pytest.mark.asyncio
async def test_category_shape_exposes_base_and_display_values(converter, context, source):
    category = {
        "id": "c1",
        "baseCurrency": "EUR",
        "monthlyData": {"2026-01": {"limit": 180.0, "spent": 45.0}},
    }
    shaped = await resources.shape_category_response(converter, category, "GBP", context)
    assert shaped["currency"] == "GBP"
    assert shaped["monthlyData"]["2026-01"] == {
        "baseLimit": 180.0,
        "baseSpent": 45.0,
        "limit": 153.0,
        "spent": 38.25,
        "currency": "GBP",
    }
    # limit and spent share one lookup within the request
    assert source.calls == [("EUR", ("GBP",))]


@pytest.mark.asyncio
async def test_category_without_monthly_data_seeds_current_month(converter, context, monkeypatch):
    monkeypatch.setattr(resources, "current_month", lambda: "2026-03")
    category = await resources.build_category(
        converter, {"name": "Food", "limit": 300, "currency": "EUR"}, "u1", context
    )
    assert category["monthlyData"] == {"2026-03": {"limit": 300.0, "spent": 0.0}}
    assert category["baseCurrency"] == "EUR"
    assert category["userId"] == "u1"


@pytest.mark.asyncio
async def test_category_update_merges_months(converter, context):
    existing = {
        "id": "c1",
        "userId": "u1",
        "name": "Food",
        "currency": "EUR",
        "monthlyData": {"2026-01": {"limit": 100.0, "spent": 10.0}, "2026-02": {"limit": 100.0, "spent": 0.0}},
    }
    updated = await resources.update_category(
        converter, existing, {"currency": "USD", "monthlyData": {"2026-02": {"limit": 50, "spent": 10}}}, context
    )
    assert updated["name"] == "Food"
    assert updated["currency"] == "USD"
    assert updated["monthlyData"] == {
        "2026-01": {"limit": 100.0, "spent": 10.0},
        "2026-02": {"limit": 45.0, "spent": 9.0},
    }


# -- Goals -----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_goal_build_and_shape(converter, context):
    goal = await resources.build_goal(
        converter, {"name": "Car", "target": 1000, "current": 100, "currency": "USD"}, "u1", context
    )
    assert (goal["target"], goal["current"]) == (900.0, 90.0)
    assert goal["baseCurrency"] == "EUR"

    shaped = await resources.shape_goal_response(converter, goal, "USD", context)
    assert (shaped["displayTarget"], shaped["displayCurrent"]) == (990.0, 99.0)
    assert shaped["currency"] == "USD"
    assert shaped["target"] == 900.0

    in_base = await resources.shape_goal_response(converter, goal, "EUR", context)
    assert (in_base["displayTarget"], in_base["displayCurrent"]) == (900.0, 90.0)


@pytest.mark.asyncio
async def test_goal_update_only_touches_provided_amounts(converter, context):
    stored = {"id": "g1", "userId": "u1", "name": "Car", "target": 900.0, "current": 90.0, "currency": "EUR"}
    updated = await resources.update_goal(converter, stored, {"current": 200}, context)
    assert updated["target"] == 900.0
    assert updated["current"] == 200.0
    assert updated["name"] == "Car"
