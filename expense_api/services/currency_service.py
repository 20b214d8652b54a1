"""
Currency rate resolution.

Returns, for a quote currency, the rate into every active reference currency
(USD, or USD + ARS). Looks in the fx_rates cache first; on a miss or a stale
entry it asks the external provider once and upserts the fresh rates.

Two requests that miss on the same currency at the same time both fetch and
both upsert. Both writes carry equivalent data and the last one wins, so no
lock is taken.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
import re
from typing import Callable, Optional, Sequence

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from expense_api.config import settings
from expense_api.database import get_db
from expense_api.exceptions import RateUnavailable
from expense_api.services.fx_cache import RateCache
from expense_api.services.rate_provider import RateProvider, get_rate_provider

logger = structlog.get_logger()

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


def normalize_currency(code: str) -> str:
    """Uppercase and validate a 3-letter currency code."""
    normalized = (code or "").strip().upper()
    if not _CURRENCY_RE.match(normalized):
        raise ValueError(f"Invalid currency code '{code}'")
    return normalized


@dataclass(frozen=True)
class ResolvedRates:
    quote_currency: str
    rates: dict[str, Decimal] = field(default_factory=dict)
    source: str = "cache"  # "identity", "cache" or "provider"
    fetched_at: Optional[datetime] = None

    def rate_to(self, reference: str) -> Optional[Decimal]:
        return self.rates.get(reference)

    @property
    def rate_to_usd(self) -> Decimal:
        return self.rates["USD"]

    @property
    def rate_to_ars(self) -> Optional[Decimal]:
        return self.rates.get("ARS")


class RateResolver:
    def __init__(
        self,
        cache: RateCache,
        provider: RateProvider,
        reference_currencies: Sequence[str] = ("USD",),
        max_age_hours: int = 12,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.cache = cache
        self.provider = provider
        self.reference_currencies = tuple(c.upper() for c in reference_currencies)
        self.max_age_hours = max_age_hours
        self.clock = clock

    async def resolve(self, quote_currency: str) -> ResolvedRates:
        quote = normalize_currency(quote_currency)

        if set(self.reference_currencies) == {quote}:
            return ResolvedRates(quote, {quote: Decimal("1")}, source="identity")

        # A reference currency always converts 1:1 into itself
        pinned = {quote: Decimal("1")} if quote in self.reference_currencies else {}
        needed = [c for c in self.reference_currencies if c not in pinned]

        entry = await self.cache.lookup(quote)
        if entry is not None:
            cached = entry.rates()
            complete = all(c in cached for c in needed)
            now = self.clock()
            if complete and self.cache.is_fresh(entry, self.max_age_hours, now=now):
                logger.debug("fx_cache_hit", quote_currency=quote)
                return ResolvedRates(
                    quote,
                    self._ordered({**cached, **pinned}),
                    source="cache",
                    fetched_at=entry.fetched_at,
                )
            logger.info(
                "fx_cache_stale",
                quote_currency=quote,
                complete=complete,
                fetched_at=str(entry.fetched_at),
            )

        fetched = await self.provider.fetch_rates(quote, needed)
        missing = [c for c in needed if c not in fetched]
        if missing:
            logger.warning(
                "fx_provider_missing_reference", quote_currency=quote, missing=missing
            )
            raise RateUnavailable(
                quote, f"provider did not return a rate to {', '.join(missing)}"
            )

        rates = self._ordered({**{c: fetched[c] for c in needed}, **pinned})
        fetched_at = self.clock()
        await self.cache.store(quote, rates, fetched_at)
        logger.info("fx_rates_fetched", quote_currency=quote, references=list(rates))
        return ResolvedRates(quote, rates, source="provider", fetched_at=fetched_at)

    def _ordered(self, rates: dict[str, Decimal]) -> dict[str, Decimal]:
        return {c: rates[c] for c in self.reference_currencies}


async def get_rate_resolver(db: AsyncSession = Depends(get_db)) -> RateResolver:
    """FastAPI dependency: resolver bound to the request's session."""
    return RateResolver(
        cache=RateCache(db),
        provider=get_rate_provider(),
        reference_currencies=settings.reference_currencies,
        max_age_hours=settings.FX_CACHE_HOURS,
    )
