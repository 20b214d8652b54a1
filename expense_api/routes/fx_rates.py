"""
FX rates — /api/v1/fx-rates

Read access to the shared rate cache. Rates are never entered by hand: a
resolve either returns a fresh cached rate or fetches one from the provider.
"""

from decimal import Decimal
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from expense_api.config import settings
from expense_api.database import get_db
from expense_api.middleware.auth import get_current_user
from expense_api.models.fx_rate import FxRate
from expense_api.schemas.expense import AmountsResponse
from expense_api.services.currency_service import (
    RateResolver,
    get_rate_resolver,
    normalize_currency,
)
from expense_api.services.expense_service import compute_amounts
from expense_api.services.fx_cache import RateCache

router = APIRouter()


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class FxRateEntryResponse(BaseModel):
    quote_currency: str
    rate_to_usd: float
    rate_to_ars: Optional[float] = None
    fetched_at: str
    is_fresh: bool


class ResolvedRatesResponse(BaseModel):
    quote_currency: str
    rates: Dict[str, float]
    source: str
    fetched_at: Optional[str] = None


def _currency_or_422(code: str) -> str:
    try:
        return normalize_currency(code)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"error": {"code": "VALIDATION_ERROR", "message": str(e)}},
        )


def _entry_response(r: FxRate) -> FxRateEntryResponse:
    return FxRateEntryResponse(
        quote_currency=r.quote_currency,
        rate_to_usd=float(r.rate_to_usd),
        rate_to_ars=float(r.rate_to_ars) if r.rate_to_ars is not None else None,
        fetched_at=r.fetched_at.isoformat(),
        is_fresh=RateCache.is_fresh(r, settings.FX_CACHE_HOURS),
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("", response_model=List[FxRateEntryResponse])
async def list_cached_rates(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List every cached rate with its freshness."""
    entries = await RateCache(db).list_entries()
    return [_entry_response(r) for r in entries]


@router.get("/convert", response_model=AmountsResponse)
async def preview_conversion(
    amount: Decimal = Query(..., gt=0, description="Amount in the quote currency"),
    currency: str = Query(..., min_length=3, max_length=3),
    current_user: dict = Depends(get_current_user),
    resolver: RateResolver = Depends(get_rate_resolver),
):
    """Price an amount exactly as an expense write would, without saving it."""
    amounts = await compute_amounts(resolver, amount, _currency_or_422(currency))
    return AmountsResponse(
        currency_code=amounts.currency_code,
        amount_original=float(amount),
        fx_rate_to_usd=float(amounts.fx_rate_to_usd),
        amount_usd=float(amounts.amount_usd),
        amount_ars=float(amounts.amount_ars) if amounts.amount_ars is not None else None,
    )


@router.get("/{currency}", response_model=ResolvedRatesResponse)
async def resolve_rate(
    currency: str = Path(..., min_length=3, max_length=3),
    current_user: dict = Depends(get_current_user),
    resolver: RateResolver = Depends(get_rate_resolver),
):
    """Rates from currency into each reference currency."""
    resolved = await resolver.resolve(_currency_or_422(currency))
    return ResolvedRatesResponse(
        quote_currency=resolved.quote_currency,
        rates={k: float(v) for k, v in resolved.rates.items()},
        source=resolved.source,
        fetched_at=resolved.fetched_at.isoformat() if resolved.fetched_at else None,
    )
