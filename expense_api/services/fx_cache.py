"""
FX rate cache — read and upsert rows in fx_rates.

The cache is shared by every tenant. Writes go through a single
INSERT ... ON CONFLICT statement so a reader never sees a half-written row.
Uses the caller's session (no commit); get_db() commits or rolls back.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Mapping, Optional

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from expense_api.models.fx_rate import FxRate

logger = structlog.get_logger()

# Reference currency -> FxRate column
_RATE_COLUMNS = {"USD": "rate_to_usd", "ARS": "rate_to_ars"}


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class RateCache:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def lookup(self, quote_currency: str) -> Optional[FxRate]:
        """Return the stored entry for quote_currency, or None."""
        result = await self.session.execute(
            select(FxRate).where(FxRate.quote_currency == quote_currency.upper())
        )
        return result.scalar_one_or_none()

    @staticmethod
    def is_fresh(
        entry: FxRate, max_age_hours: int, now: Optional[datetime] = None
    ) -> bool:
        now = _as_utc(now or datetime.now(timezone.utc))
        return now - _as_utc(entry.fetched_at) <= timedelta(hours=max_age_hours)

    async def store(
        self,
        quote_currency: str,
        rates: Mapping[str, Decimal],
        fetched_at: datetime,
    ) -> None:
        """Upsert the entry for quote_currency, replacing any previous one."""
        unknown = set(rates) - set(_RATE_COLUMNS)
        if unknown or "USD" not in rates:
            raise ValueError(f"Cannot cache rates for references {sorted(rates)}")

        values = {
            "quote_currency": quote_currency.upper(),
            "rate_to_usd": rates["USD"],
            "rate_to_ars": rates.get("ARS"),
            "fetched_at": _as_utc(fetched_at),
        }
        stmt = insert(FxRate).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[FxRate.quote_currency],
            set_={
                "rate_to_usd": stmt.excluded.rate_to_usd,
                "rate_to_ars": stmt.excluded.rate_to_ars,
                "fetched_at": stmt.excluded.fetched_at,
            },
        )
        await self.session.execute(stmt)
        logger.info(
            "fx_cache_stored",
            quote_currency=values["quote_currency"],
            references=sorted(rates),
        )

    async def list_entries(self) -> list[FxRate]:
        result = await self.session.execute(
            select(FxRate).order_by(FxRate.quote_currency)
        )
        return list(result.scalars().all())
