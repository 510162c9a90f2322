"""Currency reference data: plausibility ranges, minor units, fallback rates."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping


@dataclass(frozen=True)
class CurrencySpec:
    """Static facts about one currency.

    ``minimum``/``maximum`` bound a plausible subscription charge; they
    scale with the currency so that a JPY digit string is never read as
    USD. ``fallback_rate`` is units per one USD.
    """

    code: str
    minimum: Decimal
    maximum: Decimal
    minor_digits: int
    fallback_rate: Decimal


def _spec(code: str, lo: str, hi: str, minor: int, rate: str) -> CurrencySpec:
    return CurrencySpec(code, Decimal(lo), Decimal(hi), minor, Decimal(rate))


CURRENCIES: Mapping[str, CurrencySpec] = {
    spec.code: spec
    for spec in (
        _spec("USD", "1", "500", 2, "1.0"),
        _spec("EUR", "1", "500", 2, "0.85"),
        _spec("GBP", "1", "400", 2, "0.73"),
        _spec("CAD", "1", "700", 2, "1.36"),
        _spec("AUD", "1", "750", 2, "1.52"),
        _spec("CHF", "1", "450", 2, "0.88"),
        _spec("MAD", "10", "5000", 2, "10.12"),
        _spec("SAR", "4", "2000", 2, "3.75"),
        _spec("AED", "4", "2000", 2, "3.67"),
        _spec("EGP", "30", "25000", 2, "30.85"),
        _spec("KWD", "0.3", "150", 3, "0.31"),
        _spec("TND", "3", "1500", 3, "3.12"),
        _spec("DZD", "130", "70000", 2, "134.5"),
        _spec("XOF", "500", "300000", 0, "605.0"),
        _spec("ZAR", "15", "9000", 2, "18.75"),
        _spec("INR", "50", "40000", 2, "83.25"),
        _spec("JPY", "100", "75000", 0, "149.50"),
        _spec("CNY", "5", "3500", 2, "7.24"),
        _spec("MXN", "15", "9000", 2, "17.0"),
    )
}

# Default currency for each supported region.
REGION_CURRENCY: Mapping[str, str] = {
    "US": "USD",
    "GB": "GBP",
    "IE": "EUR",
    "CA": "CAD",
    "AU": "AUD",
    "IN": "INR",
    "ZA": "ZAR",
    "FR": "EUR",
    "BE": "EUR",
    "CH": "CHF",
    "MA": "MAD",
    "TN": "TND",
    "DZ": "DZD",
    "SN": "XOF",
    "ES": "EUR",
    "MX": "MXN",
    "DE": "EUR",
    "AT": "EUR",
    "SA": "SAR",
    "AE": "AED",
    "EG": "EGP",
    "KW": "KWD",
    "JP": "JPY",
    "CN": "CNY",
}


def plausibility_range(
    currency: str,
    overrides: Mapping[str, tuple[Decimal, Decimal]] | None = None,
) -> tuple[Decimal, Decimal] | None:
    """Return (min, max) for a currency, or None if it is unknown."""
    if overrides and currency in overrides:
        return overrides[currency]
    spec = CURRENCIES.get(currency)
    if spec is None:
        return None
    return spec.minimum, spec.maximum


def is_plausible(
    value: Decimal,
    currency: str,
    overrides: Mapping[str, tuple[Decimal, Decimal]] | None = None,
) -> bool:
    """True when ``value`` falls inside the currency's plausibility range."""
    bounds = plausibility_range(currency, overrides)
    if bounds is None:
        return False
    low, high = bounds
    return low <= value <= high


def minor_digits(currency: str) -> int:
    """Number of decimal places the currency uses (2 when unknown)."""
    spec = CURRENCIES.get(currency)
    return spec.minor_digits if spec else 2
