"""Tests for subscription_scanner.services."""

from __future__ import annotations

import pytest

from subscription_scanner.locales import make_locale
from subscription_scanner.services import (
    identify_service,
    is_payment_processor,
    registrable_domain,
    sender_domain,
)

US = make_locale("en", "US")
MA = make_locale("ar", "MA")


class TestSenderDomain:
    """Tests for sender_domain()."""

    def test_display_name_address(self) -> None:
        assert sender_domain("Netflix <info@Mailer.Netflix.com>") == "mailer.netflix.com"

    def test_bare_address(self) -> None:
        assert sender_domain("billing@spotify.com") == "spotify.com"

    def test_no_address(self) -> None:
        assert sender_domain("Netflix") == ""


class TestRegistrableDomain:
    """Tests for registrable_domain()."""

    @pytest.mark.parametrize(
        ("domain", "expected"),
        [
            ("netflix.com", "netflix.com"),
            ("mail.billing.acme.com", "acme.com"),
            ("mail.billing.acme.co.uk", "acme.co.uk"),
            ("billing.shop.co.ma", "shop.co.ma"),
        ],
    )
    def test_strips_subdomains(self, domain: str, expected: str) -> None:
        assert registrable_domain(domain) == expected


class TestIdentifyService:
    """Tests for identify_service()."""

    def test_keyword_with_matching_sender_is_trusted(self) -> None:
        match = identify_service(
            "payment receipt — netflix", "billing@netflix.com", "monthly plan", US
        )

        assert match is not None
        assert match.name == "Netflix"
        assert match.category == "Entertainment"
        assert match.key == "netflix"
        assert match.trusted_domain is True
        assert match.confidence_boost == 0.1

    def test_keyword_from_shared_sender_is_not_trusted(self) -> None:
        match = identify_service(
            "your receipt", "no_reply@email.apple.com", "netflix monthly plan", US
        )

        assert match is not None
        assert match.name == "Netflix"
        assert match.trusted_domain is False

    def test_domain_only(self) -> None:
        match = identify_service(
            "your receipt", "invoices@billing.figma.com", "thank you", US
        )

        assert match is not None
        assert match.name == "Figma"
        assert match.trusted_domain is True

    def test_regional_entry_ignored_outside_region(self) -> None:
        assert (
            identify_service("receipt", "noreply@mail.com", "shahid vip", US) is None
        )

    def test_regional_entry_inside_region(self) -> None:
        match = identify_service("فاتورة", "billing@shahid.net", "اشتراك", MA)

        assert match is not None
        assert match.name == "Shahid VIP"

    def test_payment_processor_never_identifies(self) -> None:
        assert is_payment_processor("invoice.stripe.com")
        assert (
            identify_service("receipt from stripe", "receipts@stripe.com", "", US)
            is None
        )

    def test_brand_fallback(self) -> None:
        match = identify_service(
            "your acmecloud receipt", "billing@acmecloud.io", "acmecloud pro plan", US
        )

        assert match is not None
        assert match.name == "Acmecloud"
        assert match.category == "Other"
        assert match.key is None
        assert match.confidence_boost == 0.0

    def test_brand_fallback_needs_brand_in_text(self) -> None:
        assert (
            identify_service("your receipt", "billing@acmecloud.io", "pro plan", US)
            is None
        )

    def test_brand_fallback_disabled(self) -> None:
        assert (
            identify_service(
                "acmecloud receipt",
                "billing@acmecloud.io",
                "acmecloud",
                US,
                allow_domain_fallback=False,
            )
            is None
        )

    def test_webmail_never_falls_back(self) -> None:
        assert (
            identify_service("gmail receipt", "someone@gmail.com", "gmail", US) is None
        )
