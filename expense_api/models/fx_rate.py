"""
FX rate cache model — one row per quote currency.

Each row holds how many units of each reference currency one unit of the
quote currency buys, and when those rates were fetched from the provider.
Rates are global (not tenant scoped) and are only written by the resolver's
fetch path, which upserts on quote_currency.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from expense_api.database import Base

RATE_PRECISION = Numeric(24, 12)


class FxRate(Base):
    __tablename__ = "fx_rates"

    # The currency being priced (e.g. "EUR")
    quote_currency: Mapped[str] = mapped_column(String(3), primary_key=True)
    # Units of USD per 1 unit of quote_currency
    rate_to_usd: Mapped[Decimal] = mapped_column(RATE_PRECISION, nullable=False)
    # Units of ARS per 1 unit of quote_currency; NULL in USD-only deployments
    rate_to_ars: Mapped[Optional[Decimal]] = mapped_column(
        RATE_PRECISION, nullable=True
    )
    fetched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    def rates(self) -> dict[str, Decimal]:
        """Stored rates keyed by reference currency, skipping empty columns."""
        out = {"USD": self.rate_to_usd}
        if self.rate_to_ars is not None:
            out["ARS"] = self.rate_to_ars
        return {k: Decimal(str(v)) for k, v in out.items() if v is not None}
