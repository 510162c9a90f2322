"""Currency conversion to USD with a TTL-bounded rate cache."""

from __future__ import annotations

import logging
import time
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

import httpx

from subscription_scanner.config import get_rates_ttl, get_rates_url
from subscription_scanner.currencies import CURRENCIES

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

logger = logging.getLogger(__name__)

BASE_CURRENCY = "USD"
REQUEST_TIMEOUT = 10.0


def fallback_rates() -> dict[str, Decimal]:
    """Static units-per-USD table used when the live source is down."""
    return {code: spec.fallback_rate for code, spec in CURRENCIES.items()}


class RateCache:
    """Holds one rate table for ``ttl`` seconds."""

    def __init__(
        self, ttl: float = 3600.0, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self.ttl = ttl
        self._clock = clock
        self._rates: dict[str, Decimal] | None = None
        self._stored_at = 0.0

    def get(self) -> dict[str, Decimal] | None:
        """Return the cached table, or None when empty or expired."""
        if self._rates is None or self._clock() - self._stored_at >= self.ttl:
            return None
        return self._rates

    def put(self, rates: Mapping[str, Decimal]) -> None:
        self._rates = dict(rates)
        self._stored_at = self._clock()


class CurrencyConverter:
    """Convert amounts to USD using live rates with a static fallback.

    Rates are units of a currency per one USD, so converting divides.
    Accepts an optional httpx client for dependency injection in tests.
    """

    def __init__(
        self,
        url: str | None = None,
        cache: RateCache | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self.url = url or get_rates_url()
        self.cache = cache or RateCache(ttl=get_rates_ttl())
        self._client = client

    def rates(self) -> dict[str, Decimal]:
        """Current rate table, refreshed from the live source when stale."""
        cached = self.cache.get()
        if cached is not None:
            return cached

        try:
            rates = self._fetch()
        except (
            httpx.HTTPError,
            ValueError,
            KeyError,
            AttributeError,
            InvalidOperation,
        ):
            logger.warning(
                "Exchange rate fetch failed, using fallback rates", exc_info=True
            )
            rates = fallback_rates()
        else:
            logger.info("Fetched %d exchange rates", len(rates))

        self.cache.put(rates)
        return rates

    def rate_for(self, currency: str) -> Decimal | None:
        """Units of ``currency`` per USD, or None when unknown."""
        currency = currency.upper()
        if currency == BASE_CURRENCY:
            return Decimal(1)
        rate = self.rates().get(currency) or fallback_rates().get(currency)
        return rate if rate else None

    def convert_to_base(self, amount: Decimal, currency: str) -> Decimal:
        """Convert ``amount`` in ``currency`` to USD; unknown currencies pass 1:1."""
        rate = self.rate_for(currency)
        if rate is None:
            logger.warning("No exchange rate for %s, converting 1:1", currency)
            return amount
        return amount / rate

    def _fetch(self) -> dict[str, Decimal]:
        if self._client is not None:
            return self._parse(self._client.get(self.url))
        with httpx.Client(timeout=REQUEST_TIMEOUT) as client:
            return self._parse(client.get(self.url))

    @staticmethod
    def _parse(response: httpx.Response) -> dict[str, Decimal]:
        response.raise_for_status()
        payload = response.json()
        return {
            code.upper(): Decimal(str(value))
            for code, value in payload["rates"].items()
            if value
        }
