"""
Expense service — amount normalization and tenant-scoped expense queries.

Every write checks its catalog references within the tenant, then resolves
the current FX rate, and only then touches the session, so a 404 or a
RateUnavailable leaves nothing behind. Amounts are rounded to 2 places
with ROUND_HALF_UP (half away from zero): 33.335 -> 33.34.

All functions use the caller's session (no commit). get_db() auto-commits.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload
import structlog

from expense_api.models.expense import Expense
from expense_api.schemas.expense import ExpenseCreate, ExpenseFilters
from expense_api.services.catalog_service import check_expense_references
from expense_api.services.currency_service import RateResolver

logger = structlog.get_logger()

CENT = Decimal("0.01")


def round_amount(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class ExpenseAmounts:
    currency_code: str
    fx_rate_to_usd: Decimal
    amount_usd: Decimal
    amount_ars: Optional[Decimal] = None


async def compute_amounts(
    resolver: RateResolver,
    amount_original: Decimal,
    currency_code: str,
) -> ExpenseAmounts:
    """Resolve the current rates for currency_code and price amount_original."""
    amount = Decimal(str(amount_original))
    resolved = await resolver.resolve(currency_code)
    rate_to_ars = resolved.rate_to_ars
    return ExpenseAmounts(
        currency_code=resolved.quote_currency,
        fx_rate_to_usd=resolved.rate_to_usd,
        amount_usd=round_amount(amount * resolved.rate_to_usd),
        amount_ars=round_amount(amount * rate_to_ars) if rate_to_ars is not None else None,
    )


def _apply(expense: Expense, data: ExpenseCreate, amounts: ExpenseAmounts) -> None:
    expense.category_id = data.category_id
    expense.subcategory_id = data.subcategory_id
    expense.payment_method_id = data.payment_method_id
    expense.expense_date = data.expense_date
    expense.amount_original = data.amount
    expense.currency_code = amounts.currency_code
    expense.fx_rate_to_usd = amounts.fx_rate_to_usd
    expense.amount_usd = amounts.amount_usd
    expense.amount_ars = amounts.amount_ars
    expense.note = data.note


async def _check_references(
    session: AsyncSession, tenant_id: str, data: ExpenseCreate
) -> None:
    await check_expense_references(
        session,
        tenant_id,
        data.category_id,
        subcategory_id=data.subcategory_id,
        payment_method_id=data.payment_method_id,
    )


async def create_expense(
    session: AsyncSession,
    resolver: RateResolver,
    tenant_id: str,
    created_by: str,
    data: ExpenseCreate,
) -> Expense:
    await _check_references(session, tenant_id, data)
    amounts = await compute_amounts(resolver, data.amount, data.currency_code)

    expense = Expense(tenant_id=tenant_id, created_by=created_by)
    _apply(expense, data, amounts)
    session.add(expense)
    await session.flush()
    await session.refresh(expense)

    logger.info(
        "expense_created",
        expense_id=str(expense.id),
        tenant_id=str(tenant_id),
        currency=amounts.currency_code,
        amount_usd=str(amounts.amount_usd),
    )
    return expense


async def update_expense(
    session: AsyncSession,
    resolver: RateResolver,
    tenant_id: str,
    expense_id: str,
    data: ExpenseCreate,
) -> Optional[Expense]:
    """Overwrite an expense, re-pricing it at the current rate. None if absent."""
    result = await session.execute(
        select(Expense).where(
            Expense.id == expense_id,
            Expense.tenant_id == tenant_id,
        )
    )
    expense = result.scalar_one_or_none()
    if expense is None:
        return None

    await _check_references(session, tenant_id, data)
    amounts = await compute_amounts(resolver, data.amount, data.currency_code)
    _apply(expense, data, amounts)
    await session.flush()
    await session.refresh(expense)

    logger.info(
        "expense_updated",
        expense_id=str(expense.id),
        tenant_id=str(tenant_id),
        currency=amounts.currency_code,
        amount_usd=str(amounts.amount_usd),
    )
    return expense


def _filtered_query(tenant_id: str, filters: ExpenseFilters):
    q = select(Expense).where(Expense.tenant_id == tenant_id)
    if filters.category_id:
        q = q.where(Expense.category_id == filters.category_id)
    if filters.user_id:
        q = q.where(Expense.created_by == filters.user_id)
    if filters.currency_code:
        q = q.where(Expense.currency_code == filters.currency_code)
    if filters.start_date:
        q = q.where(Expense.expense_date >= filters.start_date)
    if filters.end_date:
        q = q.where(Expense.expense_date <= filters.end_date)
    return q


async def list_expenses(
    session: AsyncSession, tenant_id: str, filters: ExpenseFilters
) -> list[Expense]:
    q = (
        _filtered_query(tenant_id, filters)
        .options(
            joinedload(Expense.category),
            joinedload(Expense.subcategory),
            joinedload(Expense.payment_method),
        )
        .order_by(Expense.expense_date.desc(), Expense.created_at.desc())
    )
    if filters.limit:
        q = q.limit(filters.limit)
    result = await session.execute(q)
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------


@dataclass
class SubcategoryTotal:
    id: Optional[str]
    name: str
    total_usd: Decimal = Decimal("0")
    total_ars: Decimal = Decimal("0")


@dataclass
class CategoryTotal:
    id: str
    name: str
    total_usd: Decimal = Decimal("0")
    total_ars: Decimal = Decimal("0")
    subcategories: dict[str, SubcategoryTotal] = field(default_factory=dict)


@dataclass
class ExpenseSummary:
    start_date: Optional[date]
    end_date: Optional[date]
    count: int = 0
    total_usd: Decimal = Decimal("0")
    total_ars: Decimal = Decimal("0")
    categories: dict[str, CategoryTotal] = field(default_factory=dict)


def summarize(
    expenses: list[Expense],
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> ExpenseSummary:
    """Group stored amounts by category and subcategory. Nothing is re-priced."""
    summary = ExpenseSummary(start_date=start_date, end_date=end_date)
    for e in expenses:
        usd = Decimal(str(e.amount_usd or 0))
        ars = Decimal(str(e.amount_ars or 0))
        summary.count += 1
        summary.total_usd += usd
        summary.total_ars += ars

        cat_key = str(e.category_id)
        cat = summary.categories.get(cat_key)
        if cat is None:
            name = e.category.name if e.category is not None else "Uncategorized"
            cat = summary.categories[cat_key] = CategoryTotal(id=cat_key, name=name)
        cat.total_usd += usd
        cat.total_ars += ars

        sub_key = str(e.subcategory_id) if e.subcategory_id else "none"
        sub = cat.subcategories.get(sub_key)
        if sub is None:
            name = e.subcategory.name if e.subcategory is not None else "No subcategory"
            sub = cat.subcategories[sub_key] = SubcategoryTotal(
                id=str(e.subcategory_id) if e.subcategory_id else None, name=name
            )
        sub.total_usd += usd
        sub.total_ars += ars
    return summary


async def summarize_expenses(
    session: AsyncSession, tenant_id: str, filters: ExpenseFilters
) -> ExpenseSummary:
    q = _filtered_query(tenant_id, filters).options(
        joinedload(Expense.category),
        joinedload(Expense.subcategory),
    )
    result = await session.execute(q)
    return summarize(
        list(result.scalars().all()), filters.start_date, filters.end_date
    )
