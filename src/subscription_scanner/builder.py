"""Merge a Stage-1 candidate and its verdict into a DetectedSubscription."""

from __future__ import annotations

import calendar
import logging
import re
from functools import lru_cache
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from subscription_scanner.amounts import normalize_text
from subscription_scanner.lexicon import (
    CANCELLATION_TERMS,
    NEXT_PAYMENT_PHRASES,
    NUMERIC_DATE_FORMATS,
    TRIAL_TERMS,
    WEEKLY_TERMS,
    YEARLY_TERMS,
    first_match,
    phrases_for,
)
from subscription_scanner.models import DetectedSubscription, subscription_id

if TYPE_CHECKING:
    from subscription_scanner.models import (
        BillingCycle,
        CandidateEmail,
        SemanticVerdict,
        SubscriptionStatus,
    )

logger = logging.getLogger(__name__)

VERIFIED_RECEIPT = "verified_payment_receipt"
HEURISTIC_RECEIPT = "heuristic_payment_receipt"

_UNKNOWN_NAMES = frozenset({"", "unknown", "unknown service", "n/a", "none"})
_UNKNOWN_CATEGORIES = frozenset({"", "unknown", "other", "n/a", "none"})

_MONTHS = "|".join(calendar.month_name[1:])
_ISO_DATE = (re.compile(r"\b(\d{4}-\d{2}-\d{2})\b"), "%Y-%m-%d")
_MONTH_NAME_DATE = (
    re.compile(rf"\b((?:{_MONTHS}) \d{{1,2}}, \d{{4}})\b", re.IGNORECASE),
    "%B %d, %Y",
)
_FORMAT_FIELDS = {"%d": r"\d{1,2}", "%m": r"\d{1,2}", "%Y": r"\d{4}"}
# How far after a "next payment" phrase the date may appear.
_DATE_LOOKAHEAD = 60


def build_subscription(
    user_id: str,
    candidate: CandidateEmail,
    verdict: SemanticVerdict | None,
    year: int | None,
    *,
    now: datetime | None = None,
) -> DetectedSubscription:
    """Build the persisted record for one promoted candidate.

    ``verdict`` is None when Stage 2 did not run.
    """
    now = now or datetime.now(tz=UTC)
    text = normalize_text(candidate.locale_text)
    language = candidate.locale.language

    name, category = _service_fields(candidate, verdict)
    amount = candidate.amount
    if verdict is not None and verdict.amount is not None:
        if abs(verdict.amount - amount.value) > Decimal("0.01") or (
            verdict.currency != amount.currency
        ):
            logger.info(
                "Validator read %s %s for %s, keeping extracted %s %s",
                verdict.amount,
                verdict.currency,
                candidate.message_id,
                amount.value,
                amount.currency,
            )

    cycle = billing_cycle(text, language, verdict)

    return DetectedSubscription(
        id=subscription_id(user_id, candidate.message_id, year),
        user_id=user_id,
        service_name=name,
        amount=amount.value,
        currency=amount.currency,
        billing_cycle=cycle,
        next_payment_date=next_payment_date(candidate.body, language, cycle, now),
        category=category,
        status=subscription_status(text, language),
        source_message_id=candidate.message_id,
        detected_at=now,
        last_email_date=candidate.sent_at,
        email_subject=candidate.subject,
        confidence=(
            verdict.confidence if verdict is not None else candidate.heuristic_confidence
        ),
        receipt_type=VERIFIED_RECEIPT if verdict is not None else HEURISTIC_RECEIPT,
        language=language,
        region=candidate.locale.region,
        processing_year=year,
    )


def _service_fields(
    candidate: CandidateEmail, verdict: SemanticVerdict | None
) -> tuple[str, str]:
    service = candidate.service
    if service.key is not None or verdict is None:
        return service.name, service.category

    name = service.name
    if verdict.service_name.strip().lower() not in _UNKNOWN_NAMES:
        name = verdict.service_name.strip()
    category = service.category
    if verdict.category.strip().lower() not in _UNKNOWN_CATEGORIES:
        category = verdict.category.strip()
    return name, category


def billing_cycle(
    text: str, language: str, verdict: SemanticVerdict | None = None
) -> BillingCycle:
    """The verdict's cycle, else localized cycle keywords, else monthly."""
    if verdict is not None and verdict.billing_cycle is not None:
        return verdict.billing_cycle
    if first_match(text, phrases_for(YEARLY_TERMS, language)):
        return "yearly"
    if first_match(text, phrases_for(WEEKLY_TERMS, language)):
        return "weekly"
    return "monthly"


def subscription_status(text: str, language: str) -> SubscriptionStatus:
    if first_match(text, phrases_for(TRIAL_TERMS, language)):
        return "trial"
    if first_match(text, phrases_for(CANCELLATION_TERMS, language)):
        return "cancelled"
    return "active"


def next_payment_date(
    body: str, language: str, cycle: BillingCycle, now: datetime
) -> datetime:
    """An explicit future next-charge date from the body, else now + one cycle."""
    explicit = find_explicit_payment_date(body, language)
    if explicit is not None and explicit > now:
        return explicit
    return advance(now, cycle)


def find_explicit_payment_date(body: str, language: str) -> datetime | None:
    lowered = normalize_text(body)
    patterns = _date_patterns(language)
    for phrase in phrases_for(NEXT_PAYMENT_PHRASES, language):
        start = lowered.find(phrase)
        if start == -1:
            continue
        window = lowered[start + len(phrase) : start + len(phrase) + _DATE_LOOKAHEAD]
        for pattern, fmt in patterns:
            match = pattern.search(window)
            if match is None:
                continue
            try:
                parsed = datetime.strptime(match.group(1).title(), fmt)  # noqa: DTZ007
            except ValueError:
                continue
            return parsed.replace(tzinfo=UTC)
    return None


@lru_cache(maxsize=None)
def _date_patterns(language: str) -> tuple[tuple[re.Pattern[str], str], ...]:
    formats = NUMERIC_DATE_FORMATS.get(language, NUMERIC_DATE_FORMATS["en"])
    numeric = tuple((_numeric_date_pattern(fmt), fmt) for fmt in formats)
    return (_ISO_DATE, *numeric, _MONTH_NAME_DATE)


def _numeric_date_pattern(fmt: str) -> re.Pattern[str]:
    """Regex for a strptime layout built only from %d, %m, %Y and separators."""
    parts = re.split(r"(%[dmY])", fmt)
    body = "".join(_FORMAT_FIELDS.get(part, re.escape(part)) for part in parts)
    return re.compile(rf"(?<!\d)({body})(?!\d)")


def advance(moment: datetime, cycle: BillingCycle) -> datetime:
    """Add one billing cycle, clamping to the end of shorter months."""
    if cycle == "weekly":
        return moment + timedelta(days=7)
    if cycle == "yearly":
        return _add_months(moment, 12)
    return _add_months(moment, 1)


def _add_months(moment: datetime, months: int) -> datetime:
    index = moment.month - 1 + months
    year, month = moment.year + index // 12, index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)
