"""Locale-aware amount and currency extraction.

An ordered bank of ``(regex, currency, regions)`` patterns. Each pattern
requires the number to sit next to a currency symbol or code, or right
after a financial-context word (in which case the locale's currency is
assumed). Returning nothing is always preferred to returning a wrong
amount: a bad amount silently corrupts every downstream total.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from subscription_scanner.currencies import is_plausible, minor_digits
from subscription_scanner.lexicon import (
    AMOUNT_CONTEXT_WORDS,
    SUPPORTED_LANGUAGES,
    contains_phrase,
    phrases_for,
)
from subscription_scanner.models import ExtractedAmount

if TYPE_CHECKING:
    from collections.abc import Mapping

    from subscription_scanner.models import Locale

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_WINDOW = 40

_DIGIT_FOLD = str.maketrans(
    "٠١٢٣٤٥٦٧٨٩۰۱۲۳۴۵۶۷۸۹٫٬",
    "01234567890123456789.,",
)

# Grouped thousands (1,234.56 / 1.234,56 / 1 234,56) or a plain number.
NUM = (
    r"(?P<num>\d{1,3}(?:[., ]\d{3})+(?:[.,]\d{1,3})?(?!\d)"
    r"|\d+(?:[.,]\d{1,3})?(?!\d))"
)
# Without a symbol the number must carry a fraction or grouping.
FORMATTED_NUM = r"(?P<num>\d{1,3}(?:[., ]\d{3})*[.,]\d{2,3}(?!\d))"


@dataclass(frozen=True)
class AmountPattern:
    """One entry of the pattern bank.

    ``currency`` None means "the locale's currency". Empty ``regions`` or
    ``languages`` mean the pattern is not restricted on that axis.
    """

    regex: re.Pattern[str]
    currency: str | None
    regions: frozenset[str] = frozenset()
    languages: frozenset[str] = frozenset()
    contextual: bool = False

    def applies_to(self, locale: Locale) -> bool:
        if self.regions and locale.region not in self.regions:
            return False
        return not self.languages or locale.language in self.languages


@dataclass
class _Hit:
    start: int
    value: Decimal
    currency: str
    has_context: bool = False


def _before(symbols: str) -> re.Pattern[str]:
    return re.compile(rf"(?:{symbols})\s?{NUM}")


def _after(symbols: str) -> re.Pattern[str]:
    return re.compile(rf"{NUM}\s?(?:{symbols})")


def _pattern(
    regex: re.Pattern[str], currency: str | None, *regions: str
) -> AmountPattern:
    return AmountPattern(regex, currency, frozenset(regions))


def _context_pattern(language: str) -> AmountPattern:
    words = "|".join(
        re.escape(word)
        for word in sorted(AMOUNT_CONTEXT_WORDS[language], key=len, reverse=True)
    )
    regex = re.compile(rf"(?:{words})\s*[:：]?\s*{FORMATTED_NUM}")
    return AmountPattern(
        regex, None, languages=frozenset({language}), contextual=True
    )


PATTERN_BANK: tuple[AmountPattern, ...] = (
    # Regional readings of ambiguous symbols come first.
    _pattern(_before(r"ca?\$|\$"), "CAD", "CA"),
    _pattern(_after(r"\$(?:\s?ca\b)?"), "CAD", "CA"),
    _pattern(_before(r"au?\$|\$"), "AUD", "AU"),
    _pattern(_before(r"mx\$|\$"), "MXN", "MX"),
    _pattern(_before(r"¥"), "CNY", "CN"),
    _pattern(_after(r"درهم"), "AED", "AE"),
    _pattern(_after(r"دينار"), "KWD", "KW"),
    _pattern(_after(r"دينار|\bdt\b"), "TND", "TN"),
    _pattern(_after(r"دينار|\bda\b"), "DZD", "DZ"),
    _pattern(_before(r"\br\s?"), "ZAR", "ZA"),
    _pattern(_before(r"\brs\.?\s?"), "INR", "IN"),
    # Explicit symbols and ISO codes.
    _pattern(_before(r"us\$|\$|\busd\b"), "USD"),
    _pattern(_after(r"\busd\b|\$"), "USD"),
    _pattern(_before(r"€|\beur\b"), "EUR"),
    _pattern(_after(r"€|\beur\b|\beuros?\b"), "EUR"),
    _pattern(_before(r"£|\bgbp\b"), "GBP"),
    _pattern(_after(r"\bgbp\b"), "GBP"),
    _pattern(_before(r"\bcad\b|c\$"), "CAD"),
    _pattern(_after(r"\bcad\b"), "CAD"),
    _pattern(_before(r"\baud\b|a\$"), "AUD"),
    _pattern(_after(r"\baud\b"), "AUD"),
    _pattern(_before(r"\bchf\b"), "CHF"),
    _pattern(_after(r"\bchf\b"), "CHF"),
    _pattern(_before(r"\baed\b|د\.إ"), "AED"),
    _pattern(_after(r"\baed\b|د\.إ|درهم إماراتي"), "AED"),
    _pattern(_before(r"\bmad\b|\bdhs?\b"), "MAD"),
    _pattern(_after(r"\bmad\b|\bdhs?\b|\bdirhams?\b|درهم|د\.م\.?"), "MAD"),
    _pattern(_before(r"\bsar\b|ر\.س"), "SAR"),
    _pattern(_after(r"\bsar\b|ر\.س|ريال"), "SAR"),
    _pattern(_before(r"\begp\b|e£"), "EGP"),
    _pattern(_after(r"\begp\b|ج\.م|جنيه"), "EGP"),
    _pattern(_before(r"\bkwd\b|\bkd\b"), "KWD"),
    _pattern(_after(r"\bkwd\b|د\.ك|دينار كويتي"), "KWD"),
    _pattern(_before(r"\btnd\b"), "TND"),
    _pattern(_after(r"\btnd\b|د\.ت|دينار تونسي|dinars? tunisiens?"), "TND"),
    _pattern(_before(r"\bdzd\b"), "DZD"),
    _pattern(_after(r"\bdzd\b|د\.ج|دينار جزائري|dinars? algériens?"), "DZD"),
    _pattern(_before(r"\bxof\b|\bf?cfa\b"), "XOF"),
    _pattern(_after(r"\bxof\b|\bf?cfa\b"), "XOF"),
    _pattern(_before(r"\bzar\b"), "ZAR"),
    _pattern(_after(r"\bzar\b"), "ZAR"),
    _pattern(_before(r"₹|\binr\b"), "INR"),
    _pattern(_after(r"\binr\b"), "INR"),
    _pattern(_before(r"¥|\bjpy\b"), "JPY"),
    _pattern(_after(r"円|\bjpy\b"), "JPY"),
    _pattern(_before(r"\bcny\b|\brmb\b"), "CNY"),
    _pattern(_after(r"\bcny\b|\brmb\b|元"), "CNY"),
    _pattern(_before(r"\bmxn\b"), "MXN"),
    _pattern(_after(r"\bmxn\b"), "MXN"),
    # Bare numbers after a financial word, in the locale's currency.
    *(_context_pattern(language) for language in SUPPORTED_LANGUAGES),
)


def normalize_text(text: str) -> str:
    """Lowercase, NFKC-fold and map Arabic-Indic digits to ASCII."""
    folded = unicodedata.normalize("NFKC", text).translate(_DIGIT_FOLD)
    return folded.lower()


def parse_number(token: str, locale: Locale, currency: str) -> Decimal | None:
    """Parse a numeric token honoring the locale's separators.

    With both separators present the last one is the decimal mark. A lone
    separator followed by one or two digits is decimal; followed by three
    it is a group separator, unless the currency uses three minor digits
    and the separator is the locale's decimal mark.
    """
    token = token.replace(" ", "")
    decimal_mark = "," if locale.decimal_comma else "."

    has_dot, has_comma = "." in token, "," in token
    if has_dot and has_comma:
        mark = "." if token.rfind(".") > token.rfind(",") else ","
        group = "," if mark == "." else "."
        if token.count(mark) > 1:
            return None
        normalized = token.replace(group, "").replace(mark, ".")
    elif has_dot or has_comma:
        sep = "." if has_dot else ","
        tail = len(token) - token.rfind(sep) - 1
        if token.count(sep) > 1:
            normalized = token.replace(sep, "")
        elif tail in (1, 2):
            normalized = token.replace(sep, ".")
        elif tail == 3 and minor_digits(currency) == 3 and sep == decimal_mark:
            normalized = token.replace(sep, ".")
        else:
            normalized = token.replace(sep, "")
    else:
        normalized = token

    try:
        return Decimal(normalized)
    except InvalidOperation:
        return None


def extract_amount(
    text: str,
    locale: Locale,
    *,
    context_window: int = DEFAULT_CONTEXT_WINDOW,
    range_overrides: Mapping[str, tuple[Decimal, Decimal]] | None = None,
) -> ExtractedAmount | None:
    """Find the most trustworthy plausible amount in normalized ``text``.

    Only patterns for the locale's region/language or global ones are
    tried. A number position claimed by an earlier pattern is not
    re-read by a later one. The first amount with financial context
    wins, else the first plausible amount, else None.
    """
    context_words = phrases_for(AMOUNT_CONTEXT_WORDS, locale.language)
    claimed: set[int] = set()
    hits: list[_Hit] = []

    for pattern in PATTERN_BANK:
        if not pattern.applies_to(locale):
            continue
        currency = pattern.currency or locale.currency
        for match in pattern.regex.finditer(text):
            start = match.start("num")
            if start in claimed:
                continue
            claimed.add(start)

            value = parse_number(match.group("num"), locale, currency)
            if value is None or not is_plausible(value, currency, range_overrides):
                logger.debug(
                    "Discarding implausible amount %r %s", match.group("num"), currency
                )
                continue

            has_context = pattern.contextual or _has_context(
                text, match.start(), context_words, context_window
            )
            hits.append(_Hit(start, value, currency, has_context))

    if not hits:
        return None

    hits.sort(key=lambda hit: hit.start)
    best = next((hit for hit in hits if hit.has_context), hits[0])
    return ExtractedAmount(
        value=best.value, currency=best.currency, has_context=best.has_context
    )


def _has_context(
    text: str, start: int, words: tuple[str, ...], window: int
) -> bool:
    preceding = text[max(0, start - window) : start]
    return any(contains_phrase(preceding, word) for word in words)
