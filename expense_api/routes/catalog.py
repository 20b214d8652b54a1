"""
Categories, subcategories and payment methods — /api/v1

Plain tenant-scoped CRUD. Rows are filtered by tenant_id here and by the
store's RLS policies underneath.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog
import uuid

from expense_api.middleware.tenant import get_current_tenant, get_db_with_tenant
from expense_api.models.category import Category, PaymentMethod, Subcategory
from expense_api.models.tenant import Profile
from expense_api.services.catalog_service import get_owned
from expense_api.schemas.catalog import (
    CategoryCreate,
    CategoryResponse,
    NameUpdate,
    PaymentMethodCreate,
    PaymentMethodResponse,
    PaymentMethodUpdate,
    ProfileResponse,
    SubcategoryCreate,
    SubcategoryResponse,
)

logger = structlog.get_logger()
router = APIRouter()


def _category(c: Category) -> CategoryResponse:
    return CategoryResponse(id=str(c.id), name=c.name)


def _subcategory(s: Subcategory) -> SubcategoryResponse:
    return SubcategoryResponse(id=str(s.id), name=s.name, category_id=str(s.category_id))


def _payment_method(p: PaymentMethod) -> PaymentMethodResponse:
    return PaymentMethodResponse(id=str(p.id), name=p.name, is_active=p.is_active)


def _duplicate(name: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={"error": {"code": "DUPLICATE_NAME", "message": f"'{name}' already exists"}},
    )


async def _flush_or_conflict(db: AsyncSession, name: str) -> None:
    try:
        await db.flush()
    except IntegrityError:
        raise _duplicate(name)


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


@router.get("/categories", response_model=List[CategoryResponse])
async def list_categories(
    current_user: dict = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db_with_tenant),
):
    result = await db.execute(
        select(Category)
        .where(Category.tenant_id == current_user["tenant_id"])
        .order_by(Category.name)
    )
    return [_category(c) for c in result.scalars().all()]


@router.post("/categories", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    body: CategoryCreate,
    current_user: dict = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db_with_tenant),
):
    category = Category(tenant_id=current_user["tenant_id"], name=body.name)
    db.add(category)
    await _flush_or_conflict(db, body.name)
    logger.info("category_created", category_id=str(category.id))
    return _category(category)


@router.patch("/categories/{category_id}", response_model=CategoryResponse)
async def rename_category(
    category_id: uuid.UUID,
    body: NameUpdate,
    current_user: dict = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db_with_tenant),
):
    category = await get_owned(db, Category, category_id, current_user["tenant_id"], "Category")
    category.name = body.name
    await _flush_or_conflict(db, body.name)
    return _category(category)


# ---------------------------------------------------------------------------
# Subcategories
# ---------------------------------------------------------------------------


@router.get("/subcategories", response_model=List[SubcategoryResponse])
async def list_subcategories(
    category_id: uuid.UUID = Query(None),
    current_user: dict = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db_with_tenant),
):
    q = select(Subcategory).where(Subcategory.tenant_id == current_user["tenant_id"])
    if category_id:
        q = q.where(Subcategory.category_id == category_id)
    result = await db.execute(q.order_by(Subcategory.name))
    return [_subcategory(s) for s in result.scalars().all()]


@router.post("/subcategories", response_model=SubcategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_subcategory(
    body: SubcategoryCreate,
    current_user: dict = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db_with_tenant),
):
    tenant_id = current_user["tenant_id"]
    await get_owned(db, Category, body.category_id, tenant_id, "Category")
    sub = Subcategory(tenant_id=tenant_id, category_id=body.category_id, name=body.name)
    db.add(sub)
    await _flush_or_conflict(db, body.name)
    return _subcategory(sub)


@router.patch("/subcategories/{subcategory_id}", response_model=SubcategoryResponse)
async def rename_subcategory(
    subcategory_id: uuid.UUID,
    body: NameUpdate,
    current_user: dict = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db_with_tenant),
):
    sub = await get_owned(
        db, Subcategory, subcategory_id, current_user["tenant_id"], "Subcategory"
    )
    sub.name = body.name
    await _flush_or_conflict(db, body.name)
    return _subcategory(sub)


# ---------------------------------------------------------------------------
# Payment methods
# ---------------------------------------------------------------------------


@router.get("/payment-methods", response_model=List[PaymentMethodResponse])
async def list_payment_methods(
    current_user: dict = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db_with_tenant),
):
    """Active payment methods only."""
    result = await db.execute(
        select(PaymentMethod)
        .where(
            PaymentMethod.tenant_id == current_user["tenant_id"],
            PaymentMethod.is_active.is_(True),
        )
        .order_by(PaymentMethod.name)
    )
    return [_payment_method(p) for p in result.scalars().all()]


@router.post("/payment-methods", response_model=PaymentMethodResponse, status_code=status.HTTP_201_CREATED)
async def create_payment_method(
    body: PaymentMethodCreate,
    current_user: dict = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db_with_tenant),
):
    method = PaymentMethod(tenant_id=current_user["tenant_id"], name=body.name, is_active=True)
    db.add(method)
    await db.flush()
    return _payment_method(method)


@router.patch("/payment-methods/{payment_method_id}", response_model=PaymentMethodResponse)
async def update_payment_method(
    payment_method_id: uuid.UUID,
    body: PaymentMethodUpdate,
    current_user: dict = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db_with_tenant),
):
    method = await get_owned(
        db, PaymentMethod, payment_method_id, current_user["tenant_id"], "Payment method"
    )
    if body.name is not None:
        method.name = body.name
    if body.is_active is not None:
        method.is_active = body.is_active
    await db.flush()
    return _payment_method(method)


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


@router.get("/profiles", response_model=List[ProfileResponse])
async def list_profiles(
    current_user: dict = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_db_with_tenant),
):
    result = await db.execute(select(Profile).order_by(Profile.display_name))
    return [ProfileResponse(id=str(p.id), display_name=p.display_name) for p in result.scalars().all()]


@router.get("/me")
async def me(current_user: dict = Depends(get_current_tenant)):
    return {
        "user_id": current_user["user_id"],
        "email": current_user.get("email"),
        "display_name": current_user.get("display_name"),
        "tenant_id": current_user["tenant_id"],
    }
