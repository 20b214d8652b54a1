"""
Unit tests for expense_api/services/expense_service.py

Uses AsyncMock sessions and the in-memory resolver collaborators.
Tests: compute_amounts rounding, create_expense / update_expense writes,
catalog reference checks, all-or-nothing on rate failures, summarize grouping.
"""

import uuid
from datetime import date, timedelta
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import HTTPException

from expense_api.exceptions import RateUnavailable
from expense_api.models.category import Category, Subcategory
from expense_api.models.expense import Expense
from expense_api.schemas.expense import ExpenseCreate
from expense_api.services.expense_service import (
    compute_amounts,
    create_expense,
    round_amount,
    summarize,
    update_expense,
)
from fakes import T0, TENANT_ID, USER_ID, Clock, FakeProvider, FakeRateCache, make_entry, make_resolver

CATEGORY_ID = uuid.UUID("c0000000-0000-0000-0000-000000000001")


def _result(value) -> MagicMock:
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


def _mock_session(*rows) -> AsyncMock:
    """Session whose execute() returns rows in call order."""
    session = AsyncMock()
    session.add = MagicMock()
    session.execute.side_effect = [_result(r) for r in rows]
    return session


def _category(category_id=CATEGORY_ID) -> Category:
    return Category(id=category_id, tenant_id=TENANT_ID, name="Food")


def _body(amount="50", currency="ARS", **kwargs) -> ExpenseCreate:
    return ExpenseCreate(
        category_id=CATEGORY_ID,
        expense_date=date(2026, 3, 1),
        amount=Decimal(amount),
        currency_code=currency,
        **kwargs,
    )


def _ars_resolver(rate_to_usd="0.0012"):
    cache = FakeRateCache({"ARS": make_entry("ARS", T0, rate_to_usd, "1")})
    return make_resolver(cache, FakeProvider()), cache


# ---------------------------------------------------------------------------
# compute_amounts
# ---------------------------------------------------------------------------


def test_round_amount_is_half_up():
    assert round_amount(Decimal("33.335")) == Decimal("33.34")
    assert round_amount(Decimal("0.125")) == Decimal("0.13")
    assert round_amount(Decimal("0.124")) == Decimal("0.12")
    assert round_amount(Decimal("-0.125")) == Decimal("-0.13")


@pytest.mark.asyncio
async def test_reference_currency_amount_is_rounded_half_up():
    resolver = make_resolver(FakeRateCache(), FakeProvider(), references=("USD",))

    amounts = await compute_amounts(resolver, Decimal("33.335"), "USD")

    assert amounts.fx_rate_to_usd == Decimal("1")
    assert amounts.amount_usd == Decimal("33.34")
    assert amounts.amount_ars is None


@pytest.mark.asyncio
async def test_compute_amounts_dual_reference():
    cache = FakeRateCache({"EUR": make_entry("EUR", T0, "1.0845", "1150.25")})
    resolver = make_resolver(cache, FakeProvider())

    amounts = await compute_amounts(resolver, Decimal("12.50"), "eur")

    assert amounts.currency_code == "EUR"
    assert amounts.fx_rate_to_usd == Decimal("1.0845")
    assert amounts.amount_usd == Decimal("13.56")  # 13.55625
    assert amounts.amount_ars == Decimal("14378.13")  # 14378.125


@pytest.mark.asyncio
async def test_compute_amounts_is_idempotent():
    resolver, _ = _ars_resolver()

    first = await compute_amounts(resolver, Decimal("100"), "ARS")
    second = await compute_amounts(resolver, Decimal("100"), "ARS")

    assert first == second
    assert first.amount_usd == Decimal("0.12")
    assert first.amount_ars == Decimal("100.00")


# ---------------------------------------------------------------------------
# create_expense
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_expense_stores_rate_snapshot():
    session = _mock_session(_category())
    resolver, _ = _ars_resolver()

    expense = await create_expense(
        session, resolver, TENANT_ID, USER_ID, _body("50", "ARS", note="taxi")
    )

    session.add.assert_called_once_with(expense)
    session.flush.assert_awaited_once()
    assert isinstance(expense, Expense)
    assert expense.tenant_id == TENANT_ID
    assert expense.created_by == USER_ID
    assert expense.currency_code == "ARS"
    assert expense.amount_original == Decimal("50")
    assert expense.fx_rate_to_usd == Decimal("0.0012")
    assert expense.amount_usd == Decimal("0.06")
    assert expense.amount_ars == Decimal("50.00")
    assert expense.note == "taxi"


@pytest.mark.asyncio
async def test_create_expense_rate_failure_writes_nothing():
    session = _mock_session(_category())
    provider = FakeProvider(error=RateUnavailable("EUR", "provider returned an error"))
    resolver = make_resolver(FakeRateCache(), provider)

    with pytest.raises(RateUnavailable):
        await create_expense(session, resolver, TENANT_ID, USER_ID, _body("10", "EUR"))

    session.add.assert_not_called()
    session.flush.assert_not_awaited()


@pytest.mark.asyncio
async def test_create_expense_unknown_category_is_404_before_rate_lookup():
    session = _mock_session(None)
    resolver, cache = _ars_resolver()

    with pytest.raises(HTTPException) as exc_info:
        await create_expense(session, resolver, TENANT_ID, USER_ID, _body("50", "ARS"))

    assert exc_info.value.status_code == 404
    assert exc_info.value.detail["error"]["code"] == "NOT_FOUND"
    assert cache.lookups == 0
    session.add.assert_not_called()


@pytest.mark.asyncio
async def test_create_expense_subcategory_of_other_category_is_422():
    other = Subcategory(
        id=uuid.uuid4(), tenant_id=TENANT_ID, category_id=uuid.uuid4(), name="Rent"
    )
    session = _mock_session(_category(), other)
    resolver, _ = _ars_resolver()

    with pytest.raises(HTTPException) as exc_info:
        await create_expense(
            session, resolver, TENANT_ID, USER_ID, _body("50", "ARS", subcategory_id=other.id)
        )

    assert exc_info.value.status_code == 422
    session.add.assert_not_called()


@pytest.mark.asyncio
async def test_create_expense_unknown_payment_method_is_404():
    session = _mock_session(_category(), None)
    resolver, _ = _ars_resolver()

    with pytest.raises(HTTPException) as exc_info:
        await create_expense(
            session, resolver, TENANT_ID, USER_ID,
            _body("50", "ARS", payment_method_id=uuid.uuid4()),
        )

    assert exc_info.value.status_code == 404
    assert exc_info.value.detail["error"]["message"] == "Payment method not found"


# ---------------------------------------------------------------------------
# update_expense
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_update_expense_not_found_skips_rate_lookup():
    session = _mock_session(None)
    cache = FakeRateCache()
    resolver = make_resolver(cache, FakeProvider())

    result = await update_expense(
        session, resolver, TENANT_ID, str(uuid.uuid4()), _body("10", "ARS")
    )

    assert result is None
    assert cache.lookups == 0


@pytest.mark.asyncio
async def test_update_expense_reprices_at_current_rate():
    existing = Expense(
        id=uuid.uuid4(),
        tenant_id=TENANT_ID,
        created_by=USER_ID,
        category_id=CATEGORY_ID,
        expense_date=date(2026, 1, 10),
        amount_original=Decimal("50"),
        currency_code="ARS",
        fx_rate_to_usd=Decimal("0.0012"),
        amount_usd=Decimal("0.06"),
        amount_ars=Decimal("50"),
    )
    session = _mock_session(existing, _category())
    # The rate moved since the expense was first written
    cache = FakeRateCache({"ARS": make_entry("ARS", T0, "0.0008", "1")})
    resolver = make_resolver(cache, FakeProvider(), clock=Clock(T0 + timedelta(hours=1)))

    updated = await update_expense(
        session, resolver, TENANT_ID, str(existing.id), _body("50", "ARS")
    )

    assert updated is existing
    assert updated.fx_rate_to_usd == Decimal("0.0008")
    assert updated.amount_usd == Decimal("0.04")
    assert updated.expense_date == date(2026, 3, 1)
    session.flush.assert_awaited_once()


@pytest.mark.asyncio
async def test_update_expense_rate_failure_leaves_row_untouched():
    existing = Expense(
        id=uuid.uuid4(),
        tenant_id=TENANT_ID,
        created_by=USER_ID,
        category_id=CATEGORY_ID,
        expense_date=date(2026, 1, 10),
        amount_original=Decimal("50"),
        currency_code="ARS",
        fx_rate_to_usd=Decimal("0.0012"),
        amount_usd=Decimal("0.06"),
    )
    session = _mock_session(existing, _category())
    provider = FakeProvider(error=RateUnavailable("EUR", "timeout"))
    resolver = make_resolver(FakeRateCache(), provider)

    with pytest.raises(RateUnavailable):
        await update_expense(session, resolver, TENANT_ID, str(existing.id), _body("80", "EUR"))

    assert existing.currency_code == "ARS"
    assert existing.amount_original == Decimal("50")
    session.flush.assert_not_awaited()


# ---------------------------------------------------------------------------
# summarize
# ---------------------------------------------------------------------------


def _row(category, subcategory, usd, ars):
    return SimpleNamespace(
        category_id=category[0],
        category=SimpleNamespace(name=category[1]),
        subcategory_id=subcategory[0] if subcategory else None,
        subcategory=SimpleNamespace(name=subcategory[1]) if subcategory else None,
        amount_usd=Decimal(usd),
        amount_ars=Decimal(ars),
    )


def test_summarize_groups_by_category_and_subcategory():
    food = ("cat-food", "Food")
    home = ("cat-home", "Home")
    groceries = ("sub-groceries", "Groceries")
    rows = [
        _row(food, groceries, "10.00", "11500.00"),
        _row(food, groceries, "5.50", "6325.00"),
        _row(food, None, "2.00", "2300.00"),
        _row(home, None, "300.00", "345000.00"),
    ]

    summary = summarize(rows, date(2026, 3, 1), date(2026, 3, 31))

    assert summary.count == 4
    assert summary.total_usd == Decimal("317.50")
    assert summary.total_ars == Decimal("365125.00")

    food_total = summary.categories["cat-food"]
    assert food_total.name == "Food"
    assert food_total.total_usd == Decimal("17.50")
    assert food_total.subcategories["sub-groceries"].total_usd == Decimal("15.50")
    assert food_total.subcategories["none"].name == "No subcategory"
    assert summary.categories["cat-home"].total_ars == Decimal("345000.00")


def test_summarize_empty():
    summary = summarize([])
    assert summary.count == 0
    assert summary.total_usd == Decimal("0")
    assert summary.categories == {}
