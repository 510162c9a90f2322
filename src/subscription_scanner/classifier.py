"""Stage 1: fail-fast heuristic gates over a single message."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from subscription_scanner.amounts import extract_amount, normalize_text
from subscription_scanner.catalog import catalog_entry
from subscription_scanner.config import DetectionSettings
from subscription_scanner.lexicon import (
    EXCLUSION_PHRASES,
    FINANCIAL_PHRASES,
    RECEIPT_PHRASES,
    SUBSCRIPTION_TERMS,
    first_match,
    phrases_for,
)
from subscription_scanner.locales import detect_locale
from subscription_scanner.services import identify_service

if TYPE_CHECKING:
    from subscription_scanner.models import ExtractedAmount, Locale, ServiceMatch

logger = logging.getLogger(__name__)

BASE_CONFIDENCE = 0.6
BOOST = 0.1
MAX_CONFIDENCE = 0.95


class Gate(StrEnum):
    """Stage-1 gates, in evaluation order."""

    EXCLUSION = "exclusion"
    RECEIPT = "receipt_keyword"
    FINANCIAL = "financial_indicator"
    AMOUNT = "amount"
    SERVICE = "service"
    SUBSCRIPTION = "subscription_context"


@dataclass(frozen=True)
class Stage1Result:
    """Outcome of the Stage-1 gates.

    ``rejected_by`` is None when every gate passed; ``reason`` names the
    phrase or condition that decided.
    """

    locale: Locale
    rejected_by: Gate | None = None
    reason: str = ""
    amount: ExtractedAmount | None = None
    service: ServiceMatch | None = None
    confidence: float = 0.0

    @property
    def passed(self) -> bool:
        return self.rejected_by is None


def classify_message(
    subject: str,
    body: str,
    sender: str,
    settings: DetectionSettings | None = None,
) -> Stage1Result:
    """Run the six gates; the first failing gate decides.

    Every table lookup uses the detected language plus the global
    entries only.
    """
    settings = settings or DetectionSettings()
    locale = detect_locale(f"{subject}\n{body}")
    text = normalize_text(f"{subject}\n{body}")
    language = locale.language

    excluded = first_match(text, phrases_for(EXCLUSION_PHRASES, language))
    if excluded:
        return _reject(locale, Gate.EXCLUSION, f"exclusion phrase {excluded!r}")

    if not first_match(text, phrases_for(RECEIPT_PHRASES, language)):
        return _reject(locale, Gate.RECEIPT, "no receipt keyword")

    if not first_match(text, phrases_for(FINANCIAL_PHRASES, language)):
        return _reject(locale, Gate.FINANCIAL, "no financial indicator")

    amount = extract_amount(
        text,
        locale,
        context_window=settings.context_window,
        range_overrides=settings.range_overrides,
    )
    if amount is None:
        return _reject(locale, Gate.AMOUNT, "no plausible amount")

    service = identify_service(
        normalize_text(subject),
        sender,
        text,
        locale,
        allow_domain_fallback=settings.allow_domain_fallback,
    )
    if service is None:
        return _reject(locale, Gate.SERVICE, "no identifiable service")

    if settings.enforce_service_price_range and not _within_price_range(
        service, amount
    ):
        return _reject(
            locale,
            Gate.AMOUNT,
            f"{amount.value} {amount.currency} outside {service.name} price range",
        )

    if not first_match(text, phrases_for(SUBSCRIPTION_TERMS, language)):
        return _reject(locale, Gate.SUBSCRIPTION, "no recurring-billing term")

    return Stage1Result(
        locale=locale,
        reason="all gates passed",
        amount=amount,
        service=service,
        confidence=heuristic_confidence(locale, amount, service),
    )


def heuristic_confidence(
    locale: Locale, amount: ExtractedAmount, service: ServiceMatch
) -> float:
    """Base score plus one boost per optional signal, capped."""
    score = BASE_CONFIDENCE + service.confidence_boost
    if service.trusted_domain:
        score += BOOST
    if amount.currency == locale.currency:
        score += BOOST
    if amount.has_context:
        score += BOOST
    return round(min(score, MAX_CONFIDENCE), 2)


def _within_price_range(service: ServiceMatch, amount: ExtractedAmount) -> bool:
    if service.key is None or amount.currency != "USD":
        return True
    entry = catalog_entry(service.key)
    if entry is None or entry.price_range is None:
        return True
    low, high = entry.price_range
    return low <= amount.value <= high


def _reject(locale: Locale, gate: Gate, reason: str) -> Stage1Result:
    logger.debug("Rejected at %s gate: %s", gate, reason)
    return Stage1Result(locale=locale, rejected_by=gate, reason=reason)
