"""
Expenses — /api/v1/expenses

Create and update price the expense at the current FX rate; a rate that
cannot be resolved aborts the request before anything is written.
"""

from datetime import date
from typing import List, Optional
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from expense_api.middleware.tenant import get_current_tenant, get_db_with_tenant
from expense_api.models.expense import Expense
from expense_api.schemas.catalog import (
    CategoryResponse,
    PaymentMethodResponse,
    SubcategoryResponse,
)
from expense_api.schemas.expense import (
    CategoryTotalResponse,
    ExpenseCreate,
    ExpenseFilters,
    ExpenseResponse,
    ExpenseSummaryResponse,
    SubcategoryTotalResponse,
)
from expense_api.services import expense_service
from expense_api.services.currency_service import RateResolver, get_rate_resolver

logger = structlog.get_logger()
router = APIRouter()


def _optional_str(value) -> Optional[str]:
    return str(value) if value else None


def _to_response(e: Expense, include_relations: bool = False) -> ExpenseResponse:
    category = subcategory = payment_method = None
    if include_relations:
        if e.category is not None:
            category = CategoryResponse(id=str(e.category.id), name=e.category.name)
        if e.subcategory is not None:
            subcategory = SubcategoryResponse(
                id=str(e.subcategory.id),
                name=e.subcategory.name,
                category_id=str(e.subcategory.category_id),
            )
        if e.payment_method is not None:
            payment_method = PaymentMethodResponse(
                id=str(e.payment_method.id),
                name=e.payment_method.name,
                is_active=e.payment_method.is_active,
            )

    return ExpenseResponse(
        id=str(e.id),
        tenant_id=str(e.tenant_id),
        category_id=str(e.category_id),
        subcategory_id=_optional_str(e.subcategory_id),
        payment_method_id=_optional_str(e.payment_method_id),
        expense_date=str(e.expense_date),
        amount_original=float(e.amount_original),
        currency_code=e.currency_code,
        fx_rate_to_usd=float(e.fx_rate_to_usd),
        amount_usd=float(e.amount_usd),
        amount_ars=float(e.amount_ars) if e.amount_ars is not None else None,
        note=e.note,
        created_by=str(e.created_by),
        created_at=e.created_at.isoformat() if e.created_at else "",
        category=category,
        subcategory=subcategory,
        payment_method=payment_method,
    )


def _filters(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    category_id: Optional[uuid.UUID] = Query(None),
    user_id: Optional[uuid.UUID] = Query(None),
    currency_code: Optional[str] = Query(None, min_length=3, max_length=3),
    limit: Optional[int] = Query(None, ge=1, le=1000),
) -> ExpenseFilters:
    try:
        return ExpenseFilters(
            start_date=start_date,
            end_date=end_date,
            category_id=category_id,
            user_id=user_id,
            currency_code=currency_code,
            limit=limit,
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"error": {"code": "VALIDATION_ERROR", "message": str(e)}},
        )


@router.get("", response_model=List[ExpenseResponse])
async def list_expenses(
    filters: ExpenseFilters = Depends(_filters),
    current_user: dict = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db_with_tenant),
):
    """List the tenant's expenses, newest expense_date first."""
    expenses = await expense_service.list_expenses(
        db, current_user["tenant_id"], filters
    )
    return [_to_response(e, include_relations=True) for e in expenses]


@router.get("/summary", response_model=ExpenseSummaryResponse)
async def expense_summary(
    filters: ExpenseFilters = Depends(_filters),
    current_user: dict = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db_with_tenant),
):
    """Totals in the reference currencies, overall and per category/subcategory."""
    summary = await expense_service.summarize_expenses(
        db, current_user["tenant_id"], filters
    )
    categories = sorted(
        summary.categories.values(), key=lambda c: c.total_usd, reverse=True
    )
    return ExpenseSummaryResponse(
        start_date=str(summary.start_date) if summary.start_date else None,
        end_date=str(summary.end_date) if summary.end_date else None,
        count=summary.count,
        total_usd=float(summary.total_usd),
        total_ars=float(summary.total_ars),
        categories=[
            CategoryTotalResponse(
                id=c.id,
                name=c.name,
                total_usd=float(c.total_usd),
                total_ars=float(c.total_ars),
                subcategories=[
                    SubcategoryTotalResponse(
                        id=s.id,
                        name=s.name,
                        total_usd=float(s.total_usd),
                        total_ars=float(s.total_ars),
                    )
                    for s in sorted(
                        c.subcategories.values(),
                        key=lambda s: s.total_usd,
                        reverse=True,
                    )
                ],
            )
            for c in categories
        ],
    )


@router.post("", response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED)
async def create_expense(
    body: ExpenseCreate,
    current_user: dict = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db_with_tenant),
    resolver: RateResolver = Depends(get_rate_resolver),
):
    expense = await expense_service.create_expense(
        db,
        resolver,
        tenant_id=current_user["tenant_id"],
        created_by=current_user["user_id"],
        data=body,
    )
    return _to_response(expense)


@router.put("/{expense_id}", response_model=ExpenseResponse)
async def update_expense(
    expense_id: uuid.UUID,
    body: ExpenseCreate,
    current_user: dict = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db_with_tenant),
    resolver: RateResolver = Depends(get_rate_resolver),
):
    """Replace an expense. Amounts are re-priced at today's rate."""
    expense = await expense_service.update_expense(
        db,
        resolver,
        tenant_id=current_user["tenant_id"],
        expense_id=expense_id,
        data=body,
    )
    if expense is None:
        raise HTTPException(status_code=404, detail="Expense not found")
    return _to_response(expense)
