"""Service identification from sender, subject and body."""

from __future__ import annotations

import logging
from email.utils import parseaddr
from typing import TYPE_CHECKING

from subscription_scanner.catalog import (
    PAYMENT_PROCESSOR_DOMAINS,
    SERVICE_CATALOG,
    WEBMAIL_DOMAINS,
    ServiceCatalogEntry,
)
from subscription_scanner.lexicon import contains_phrase
from subscription_scanner.models import ServiceMatch

if TYPE_CHECKING:
    from subscription_scanner.models import Locale

logger = logging.getLogger(__name__)

HIGH_QUALITY_BOOST = 0.1
FALLBACK_CATEGORY = "Other"

# Second-level labels under which registrations happen (co.uk, com.au, co.ma).
_SECOND_LEVEL_LABELS = frozenset({"co", "com", "net", "org", "gov", "ac", "ne", "or"})


def sender_domain(sender: str) -> str:
    """Return the lowercased domain of a From header, or empty string."""
    _, address = parseaddr(sender)
    if "@" not in address:
        return ""
    return address.rsplit("@", 1)[1].strip().lower().rstrip(".>")


def registrable_domain(domain: str) -> str:
    """Strip subdomains: ``mail.billing.acme.co.uk`` -> ``acme.co.uk``."""
    labels = [label for label in domain.split(".") if label]
    if len(labels) <= 2:
        return ".".join(labels)
    if len(labels[-1]) == 2 and labels[-2] in _SECOND_LEVEL_LABELS:
        return ".".join(labels[-3:])
    return ".".join(labels[-2:])


def domain_matches(domain: str, candidate: str) -> bool:
    """True when ``domain`` is ``candidate`` or one of its subdomains."""
    return domain == candidate or domain.endswith("." + candidate)


def is_payment_processor(domain: str) -> bool:
    return any(domain_matches(domain, p) for p in PAYMENT_PROCESSOR_DOMAINS)


def identify_service(
    subject: str,
    sender: str,
    text: str,
    locale: Locale,
    *,
    allow_domain_fallback: bool = True,
) -> ServiceMatch | None:
    """Identify the billed service, failing closed.

    Keywords are tried across every applicable catalog entry before any
    sender domain, so a receipt relayed through a shared sender (an app
    store, a reseller) is attributed to the product it names. Payment
    processor domains never identify a service.
    """
    subject = subject.lower()
    haystacks = (subject, text.lower(), sender.lower())
    entries = [e for e in SERVICE_CATALOG if e.applies_to(locale.region)]
    domain = sender_domain(sender)

    for entry in entries:
        for keyword in entry.keywords:
            if any(contains_phrase(h, keyword) for h in haystacks):
                trusted = any(domain_matches(domain, d) for d in entry.domains)
                return _match(entry, trusted_domain=trusted)

    if not domain or is_payment_processor(domain):
        return None

    for entry in entries:
        if any(domain_matches(domain, d) for d in entry.domains):
            return _match(entry, trusted_domain=True)

    if allow_domain_fallback:
        return _brand_fallback(domain, subject, text.lower())
    return None


def _match(entry: ServiceCatalogEntry, *, trusted_domain: bool) -> ServiceMatch:
    return ServiceMatch(
        name=entry.name,
        category=entry.category,
        confidence_boost=HIGH_QUALITY_BOOST if entry.high_quality else 0.0,
        key=entry.key,
        trusted_domain=trusted_domain,
    )


def _brand_fallback(domain: str, subject: str, body: str) -> ServiceMatch | None:
    registrable = registrable_domain(domain)
    if registrable in WEBMAIL_DOMAINS:
        return None
    brand = registrable.split(".", 1)[0]
    if len(brand) < 3:
        return None
    if not (contains_phrase(subject, brand) or contains_phrase(body, brand)):
        return None
    logger.debug("Falling back to sender brand %r for %s", brand, domain)
    return ServiceMatch(
        name=brand.replace("-", " ").title(),
        category=FALLBACK_CATEGORY,
        confidence_boost=0.0,
    )
