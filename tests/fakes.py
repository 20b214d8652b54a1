"""In-memory collaborators shared by the unit and route tests."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from expense_api.models.fx_rate import FxRate
from expense_api.services.currency_service import RateResolver
from expense_api.services.fx_cache import RateCache
from expense_api.services.rate_provider import RateProvider

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
USER_ID = "5f0c7a4e-1f7b-4d8e-9a61-0d3c2b9e7a10"
TENANT_ID = "a0000000-0000-0000-0000-000000000001"


def make_entry(
    quote_currency: str,
    fetched_at: datetime = T0,
    rate_to_usd="1",
    rate_to_ars=None,
) -> FxRate:
    return FxRate(
        quote_currency=quote_currency,
        rate_to_usd=Decimal(str(rate_to_usd)),
        rate_to_ars=Decimal(str(rate_to_ars)) if rate_to_ars is not None else None,
        fetched_at=fetched_at,
    )


class FakeRateCache:
    """Stand-in for RateCache that keeps entries in a dict and counts calls."""

    is_fresh = staticmethod(RateCache.is_fresh)

    def __init__(self, entries: Optional[dict] = None):
        self.entries = dict(entries or {})
        self.lookups = 0
        self.stores = []

    async def lookup(self, quote_currency):
        self.lookups += 1
        return self.entries.get(quote_currency)

    async def store(self, quote_currency, rates, fetched_at):
        self.stores.append((quote_currency, dict(rates), fetched_at))
        self.entries[quote_currency] = make_entry(
            quote_currency,
            fetched_at,
            rate_to_usd=rates["USD"],
            rate_to_ars=rates.get("ARS"),
        )


class FakeProvider(RateProvider):
    def __init__(self, rates: Optional[dict] = None, error: Optional[Exception] = None):
        self.rates = {k: Decimal(str(v)) for k, v in (rates or {}).items()}
        self.error = error
        self.calls = []

    async def fetch_rates(self, quote_currency, references):
        self.calls.append((quote_currency, list(references)))
        if self.error is not None:
            raise self.error
        return {k: v for k, v in self.rates.items() if k in references}


class Clock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def make_resolver(cache, provider, references=("USD", "ARS"), clock=None) -> RateResolver:
    return RateResolver(
        cache=cache,
        provider=provider,
        reference_currencies=references,
        max_age_hours=12,
        clock=clock or Clock(),
    )
