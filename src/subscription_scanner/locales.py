"""Locale detection from raw message text."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from subscription_scanner.currencies import REGION_CURRENCY
from subscription_scanner.lexicon import contains_phrase
from subscription_scanner.models import Locale

if TYPE_CHECKING:
    from collections.abc import Mapping

_ARABIC_SCRIPT = re.compile(r"[\u0600-\u06ff\u0750-\u077f]")
_JAPANESE_SCRIPT = re.compile(r"[\u3040-\u30ff\u4e00-\u9fff]")

# Billing nouns that only occur in one language of the supported set.
LANGUAGE_ANCHORS: Mapping[str, tuple[str, ...]] = {
    "fr": (
        "facture",
        "reçu",
        "paiement",
        "prélèvement",
        "montant",
        "renouvellement",
        "abonnement mensuel",
    ),
    "es": (
        "factura",
        "recibo",
        "pago",
        "importe",
        "suscripción",
        "cobro",
        "renovación",
    ),
    "de": (
        "rechnung",
        "zahlung",
        "zahlungsbestätigung",
        "betrag",
        "quittung",
        "abgebucht",
        "verlängerung",
    ),
}

DEFAULT_REGION: Mapping[str, str] = {
    "en": "US",
    "fr": "FR",
    "es": "ES",
    "de": "DE",
    "ar": "MA",
    "ja": "JP",
}

# Ordered (region, hints) per language; first region with a hint wins.
REGION_HINTS: Mapping[str, tuple[tuple[str, tuple[str, ...]], ...]] = {
    "en": (
        ("GB", ("£", "gbp", ".co.uk")),
        ("CA", ("cad", "c$", "ca$", ".ca")),
        ("AU", ("aud", "a$", "au$", ".com.au")),
        ("IN", ("₹", "inr", "rs.", ".in")),
        ("ZA", ("zar", ".co.za")),
        ("IE", ("€", "eur", ".ie")),
    ),
    "fr": (
        ("MA", ("mad", "dh", "dhs", "dirham", "dirhams", ".ma")),
        ("CH", ("chf", "franc suisse", "francs suisses", ".ch")),
        ("SN", ("fcfa", "cfa", "xof", ".sn")),
        ("TN", ("tnd", "dinar tunisien", "dinars tunisiens", ".tn")),
        ("DZ", ("dzd", "dinar algérien", "dinars algériens", ".dz")),
        ("CA", ("cad", "$ ca", "ca$", ".ca")),
        ("BE", (".be",)),
    ),
    "es": (
        ("MX", ("mxn", "mx$", ".mx", "pesos mexicanos")),
    ),
    "de": (
        ("CH", ("chf", ".ch")),
        ("AT", (".at",)),
    ),
    "ar": (
        ("AE", ("د.إ", "درهم إماراتي", "aed", ".ae")),
        ("MA", ("درهم", "mad", "dh", ".ma")),
        ("SA", ("ر.س", "ريال", "sar", ".sa")),
        ("EG", ("ج.م", "جنيه", "egp", ".eg")),
        ("KW", ("د.ك", "دينار كويتي", "kwd", ".kw")),
        ("TN", ("د.ت", "دينار تونسي", "tnd", ".tn")),
        ("DZ", ("د.ج", "دينار جزائري", "dzd", ".dz")),
    ),
}

DECIMAL_COMMA_LANGUAGES = frozenset({"fr", "es", "de"})
DECIMAL_DOT_REGIONS = frozenset({"MX", "CH"})


def detect_locale(text: str) -> Locale:
    """Pick a working language and region for ``text``.

    Script ranges decide first (Arabic, Japanese); otherwise the language
    with the most billing anchors wins; otherwise English. The region is
    then refined from currency and domain hints. Never fails.
    """
    lowered = text.lower()
    language = _detect_language(lowered)
    region = _detect_region(lowered, language)
    return make_locale(language, region)


def make_locale(language: str, region: str) -> Locale:
    """Build a Locale with the region's currency and number style."""
    decimal_comma = language in DECIMAL_COMMA_LANGUAGES and region not in DECIMAL_DOT_REGIONS
    return Locale(
        language=language,
        region=region,
        currency=REGION_CURRENCY.get(region, "USD"),
        decimal_comma=decimal_comma,
    )


def _detect_language(lowered: str) -> str:
    if _ARABIC_SCRIPT.search(lowered):
        return "ar"
    if _JAPANESE_SCRIPT.search(lowered):
        return "ja"

    best, best_hits = "en", 0
    for language, anchors in LANGUAGE_ANCHORS.items():
        hits = sum(1 for anchor in anchors if contains_phrase(lowered, anchor))
        if hits > best_hits:
            best, best_hits = language, hits
    return best


def _detect_region(lowered: str, language: str) -> str:
    for region, hints in REGION_HINTS.get(language, ()):
        if any(_has_hint(lowered, hint) for hint in hints):
            return region
    return DEFAULT_REGION.get(language, "US")


def _has_hint(lowered: str, hint: str) -> bool:
    if hint.startswith("."):
        # Domain suffix: must end a host name, not sit inside a sentence.
        return re.search(re.escape(hint) + r"(?![\w.-])", lowered) is not None
    return contains_phrase(lowered, hint)
