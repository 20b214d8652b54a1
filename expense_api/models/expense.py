import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expense_api.database import Base
from expense_api.models.fx_rate import RATE_PRECISION


class Expense(Base):
    __tablename__ = "expenses"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False
    )
    category_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("categories.id"), nullable=False
    )
    subcategory_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("subcategories.id")
    )
    payment_method_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("payment_methods.id")
    )
    expense_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount_original: Mapped[Decimal] = mapped_column(Numeric(16, 4), nullable=False)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False)
    # Rate snapshot at write time; recomputed only when the expense is edited
    fx_rate_to_usd: Mapped[Decimal] = mapped_column(RATE_PRECISION, nullable=False)
    amount_usd: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    amount_ars: Mapped[Optional[Decimal]] = mapped_column(Numeric(16, 2))
    note: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )

    category = relationship("Category", lazy="raise")
    subcategory = relationship("Subcategory", lazy="raise")
    payment_method = relationship("PaymentMethod", lazy="raise")

    __table_args__ = (
        CheckConstraint("amount_original > 0", name="ck_expense_amount_positive"),
        Index("idx_expenses_tenant_date", "tenant_id", "expense_date"),
        Index("idx_expenses_category", "category_id"),
        Index("idx_expenses_created_by", "created_by"),
    )
