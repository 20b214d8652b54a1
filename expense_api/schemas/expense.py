import uuid
from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from expense_api.schemas.catalog import (
    CategoryResponse,
    PaymentMethodResponse,
    SubcategoryResponse,
)
from expense_api.services.currency_service import normalize_currency


class ExpenseCreate(BaseModel):
    category_id: uuid.UUID
    subcategory_id: Optional[uuid.UUID] = None
    payment_method_id: Optional[uuid.UUID] = None
    expense_date: date = Field(default_factory=date.today)
    amount: Decimal = Field(..., gt=0, max_digits=16, decimal_places=4)
    currency_code: str = Field(..., min_length=3, max_length=3)
    note: Optional[str] = Field(None, max_length=500)

    @field_validator("currency_code", mode="before")
    @classmethod
    def validate_currency(cls, v):
        if isinstance(v, str):
            return normalize_currency(v)
        return v

    @field_validator("note")
    @classmethod
    def blank_note_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


class ExpenseFilters(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    category_id: Optional[uuid.UUID] = None
    user_id: Optional[uuid.UUID] = None
    currency_code: Optional[str] = None
    limit: Optional[int] = Field(None, ge=1, le=1000)

    @field_validator("currency_code", mode="before")
    @classmethod
    def validate_currency(cls, v):
        if isinstance(v, str) and v.strip():
            return normalize_currency(v)
        return None


class ExpenseResponse(BaseModel):
    id: str
    tenant_id: str
    category_id: str
    subcategory_id: Optional[str] = None
    payment_method_id: Optional[str] = None
    expense_date: str
    amount_original: float
    currency_code: str
    fx_rate_to_usd: float
    amount_usd: float
    amount_ars: Optional[float] = None
    note: Optional[str] = None
    created_by: str
    created_at: str
    category: Optional[CategoryResponse] = None
    subcategory: Optional[SubcategoryResponse] = None
    payment_method: Optional[PaymentMethodResponse] = None

    model_config = {"from_attributes": True}


class AmountsResponse(BaseModel):
    currency_code: str
    amount_original: float
    fx_rate_to_usd: float
    amount_usd: float
    amount_ars: Optional[float] = None


class SubcategoryTotalResponse(BaseModel):
    id: Optional[str] = None
    name: str
    total_usd: float
    total_ars: float


class CategoryTotalResponse(BaseModel):
    id: str
    name: str
    total_usd: float
    total_ars: float
    subcategories: List[SubcategoryTotalResponse] = Field(default_factory=list)


class ExpenseSummaryResponse(BaseModel):
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    count: int
    total_usd: float
    total_ars: float
    categories: List[CategoryTotalResponse] = Field(default_factory=list)
