"""
External exchange-rate provider (exchangerate-api.com v6 style).

Two call shapes are supported:
  latest  GET {base}/{key}/latest/{QUOTE}       -> conversion_rates map,
          already quoted as reference units per 1 QUOTE.
  pair    GET {base}/{key}/pair/{REF}/{QUOTE}   -> single conversion_rate in
          QUOTE units per 1 REF, inverted before returning.

Rates are rounded to the 12 places the fx_rates columns store. Every failure
(missing key, network, timeout, non-2xx, "result" other than "success",
malformed body) is raised as RateUnavailable.
"""

import logging
from abc import ABC, abstractmethod
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Sequence

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
import structlog

from expense_api.config import settings
from expense_api.exceptions import RateUnavailable

logger = structlog.get_logger()
_std_logger = logging.getLogger(__name__)

# Matches the fx_rates column scale
RATE_QUANTUM = Decimal("0.000000000001")

# Module-level singleton, reuses TLS connections across calls
_http_client: Optional[httpx.AsyncClient] = None


def get_http_client() -> httpx.AsyncClient:
    global _http_client
    if _http_client is None or _http_client.is_closed:
        _http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.FX_PROVIDER_TIMEOUT_SECONDS, connect=5.0),
        )
    return _http_client


async def close_http_client() -> None:
    global _http_client
    if _http_client is not None and not _http_client.is_closed:
        await _http_client.aclose()
    _http_client = None


class _ProviderRetryableError(Exception):
    """Raised for 5xx or network errors that warrant a retry."""


def _parse_rate(value) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        rate = Decimal(str(value))
        if not rate.is_finite():
            return None
        rate = rate.quantize(RATE_QUANTUM, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        return None
    if rate <= 0:
        return None
    return rate


class RateProvider(ABC):
    @abstractmethod
    async def fetch_rates(
        self, quote_currency: str, references: Sequence[str]
    ) -> dict[str, Decimal]:
        """
        Return units of each reference currency per 1 unit of quote_currency.

        References the provider could not price are left out of the result;
        the caller decides whether that is fatal.
        """
        raise NotImplementedError


class ExchangeRateApiProvider(RateProvider):
    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://v6.exchangerate-api.com/v6",
        shape: str = "latest",
        timeout: float = 5.0,
        max_attempts: int = 2,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if shape not in ("latest", "pair"):
            raise ValueError(f"Unknown provider shape '{shape}'")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.shape = shape
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client or get_http_client()

    async def fetch_rates(
        self, quote_currency: str, references: Sequence[str]
    ) -> dict[str, Decimal]:
        quote = quote_currency.upper()
        if not self.api_key:
            raise RateUnavailable(quote, "provider API key is not configured")
        if not references:
            return {}

        if self.shape == "latest":
            return await self._fetch_latest(quote, references)
        return await self._fetch_pair(quote, references[0])

    async def _fetch_latest(
        self, quote: str, references: Sequence[str]
    ) -> dict[str, Decimal]:
        payload = await self._get_json(quote, f"latest/{quote}")
        rates = payload.get("conversion_rates")
        if not isinstance(rates, dict):
            raise RateUnavailable(quote, "provider response has no conversion_rates")

        out: dict[str, Decimal] = {}
        for ref in references:
            rate = _parse_rate(rates.get(ref))
            if rate is not None:
                out[ref] = rate
        return out

    async def _fetch_pair(self, quote: str, reference: str) -> dict[str, Decimal]:
        # The pair endpoint is asked for REF -> QUOTE, so invert it.
        payload = await self._get_json(quote, f"pair/{reference}/{quote}")
        rate = _parse_rate(payload.get("conversion_rate"))
        if rate is None:
            return {}
        inverted = (Decimal("1") / rate).quantize(RATE_QUANTUM, rounding=ROUND_HALF_UP)
        if inverted <= 0:
            return {}
        return {reference: inverted}

    async def _get_json(self, quote: str, path: str) -> dict:
        url = f"{self.base_url}/{self.api_key}/{path}"
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(_ProviderRetryableError),
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
                before_sleep=before_sleep_log(_std_logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    response = await self._request(url, path)
        except _ProviderRetryableError as exc:
            logger.error(
                "fx_provider_retries_exhausted", path=path, error=str(exc)
            )
            raise RateUnavailable(quote, "provider request failed") from exc
        except httpx.HTTPError as exc:
            # Decoding and redirect failures are not worth retrying
            logger.error("fx_provider_request_failed", path=path, error=str(exc))
            raise RateUnavailable(quote, "provider request failed") from exc

        if response.status_code != 200:
            logger.error(
                "fx_provider_bad_status",
                path=path,
                status_code=response.status_code,
                response=response.text[:500],
            )
            raise RateUnavailable(
                quote,
                "provider returned an error",
                {"status_code": response.status_code},
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise RateUnavailable(quote, "provider returned invalid JSON") from exc

        if not isinstance(payload, dict) or payload.get("result") != "success":
            error_type = payload.get("error-type") if isinstance(payload, dict) else None
            logger.error("fx_provider_unsuccessful", path=path, error_type=error_type)
            raise RateUnavailable(
                quote, "provider did not return rates", {"error_type": error_type}
            )
        return payload

    async def _request(self, url: str, path: str) -> httpx.Response:
        try:
            response = await self.client.get(url, timeout=self.timeout)
        except httpx.TransportError as exc:
            logger.warning("fx_provider_network_error", path=path, error=str(exc))
            raise _ProviderRetryableError(str(exc)) from exc

        if response.status_code >= 500:
            logger.warning(
                "fx_provider_5xx", path=path, status_code=response.status_code
            )
            raise _ProviderRetryableError(
                f"provider returned {response.status_code}"
            )
        return response


def get_rate_provider() -> RateProvider:
    return ExchangeRateApiProvider(
        api_key=settings.FX_PROVIDER_API_KEY,
        base_url=settings.FX_PROVIDER_BASE_URL,
        shape=settings.FX_PROVIDER_SHAPE,
        timeout=settings.FX_PROVIDER_TIMEOUT_SECONDS,
        max_attempts=settings.FX_PROVIDER_MAX_ATTEMPTS,
    )
