"""
Tenant-scoped catalog lookups shared by the catalog routes and expense writes.

RLS hides other tenants' rows from reads, but foreign keys are checked
below RLS, so every referenced row is loaded explicitly within the tenant.
"""

from typing import Optional
import uuid

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from expense_api.models.category import Category, PaymentMethod, Subcategory


async def get_owned(
    session: AsyncSession, model, row_id: uuid.UUID, tenant_id: str, label: str
):
    """Load a row of model by id within the tenant, or raise 404."""
    result = await session.execute(
        select(model).where(model.id == row_id, model.tenant_id == tenant_id)
    )
    row = result.scalar_one_or_none()
    if row is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": {"code": "NOT_FOUND", "message": f"{label} not found"}},
        )
    return row


async def check_expense_references(
    session: AsyncSession,
    tenant_id: str,
    category_id: uuid.UUID,
    subcategory_id: Optional[uuid.UUID] = None,
    payment_method_id: Optional[uuid.UUID] = None,
) -> None:
    await get_owned(session, Category, category_id, tenant_id, "Category")

    if subcategory_id is not None:
        sub = await get_owned(session, Subcategory, subcategory_id, tenant_id, "Subcategory")
        if sub.category_id != category_id:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail={
                    "error": {
                        "code": "VALIDATION_ERROR",
                        "message": "Subcategory does not belong to the category",
                    }
                },
            )

    if payment_method_id is not None:
        await get_owned(session, PaymentMethod, payment_method_id, tenant_id, "Payment method")
