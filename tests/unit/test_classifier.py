"""Tests for subscription_scanner.classifier."""

from __future__ import annotations

from decimal import Decimal

import pytest

from subscription_scanner.classifier import Gate, classify_message, heuristic_confidence
from subscription_scanner.config import STRICTNESS_PRESETS
from subscription_scanner.locales import make_locale
from subscription_scanner.models import ExtractedAmount, ServiceMatch

NETFLIX_SENDER = "billing@netflix.com"


class TestClassifyMessage:
    """Tests for classify_message()."""

    def test_netflix_receipt_passes(self) -> None:
        result = classify_message(
            "Payment Receipt — Netflix",
            "Amount charged: $15.99, monthly subscription renewed",
            NETFLIX_SENDER,
        )

        assert result.passed
        assert result.rejected_by is None
        assert result.amount == ExtractedAmount(Decimal("15.99"), "USD", True)
        assert result.service is not None
        assert result.service.name == "Netflix"
        assert result.confidence == 0.95

    def test_welcome_email_is_excluded(self) -> None:
        result = classify_message(
            "Welcome to Netflix! Start your free trial", "", "welcome@netflix.com"
        )

        assert not result.passed
        assert result.rejected_by is Gate.EXCLUSION

    def test_exclusion_wins_over_every_other_signal(self) -> None:
        result = classify_message(
            "Payment receipt — your order has shipped",
            "Amount charged: $15.99, monthly subscription renewed",
            NETFLIX_SENDER,
        )

        assert result.rejected_by is Gate.EXCLUSION
        assert "has shipped" in result.reason

    @pytest.mark.parametrize(
        ("subject", "body", "sender", "gate"),
        [
            ("Your monthly plan", "Amount: $9.99", NETFLIX_SENDER, Gate.RECEIPT),
            (
                "Payment receipt",
                "Thanks for being a member",
                NETFLIX_SENDER,
                Gate.FINANCIAL,
            ),
            (
                "Payment receipt",
                "Total charged: see your account",
                NETFLIX_SENDER,
                Gate.AMOUNT,
            ),
            (
                "Payment receipt",
                "Total charged: $9.99 monthly",
                "friend@gmail.com",
                Gate.SERVICE,
            ),
            (
                "Payment receipt — Netflix",
                "Total charged: $15.99",
                NETFLIX_SENDER,
                Gate.SUBSCRIPTION,
            ),
        ],
    )
    def test_first_failing_gate_decides(
        self, subject: str, body: str, sender: str, gate: Gate
    ) -> None:
        result = classify_message(subject, body, sender)

        assert result.rejected_by is gate
        assert result.amount is None
        assert result.confidence == 0.0

    def test_arabic_receipt(self) -> None:
        result = classify_message(
            "فاتورة الاشتراك",
            "تأكيد الدفع\nالمبلغ: 150 درهم\nاشتراك شهري",
            "billing@shahid.net",
        )

        assert result.passed
        assert (result.locale.language, result.locale.region) == ("ar", "MA")
        assert result.amount is not None
        assert result.amount.value == Decimal("150")
        assert result.amount.currency == "MAD"
        assert result.service is not None
        assert result.service.name == "Shahid VIP"
        assert result.confidence == 0.9

    def test_arabic_indic_digits(self) -> None:
        result = classify_message(
            "فاتورة الاشتراك",
            "تأكيد الدفع\nالمبلغ: ١٥٠ درهم\nاشتراك شهري",
            "billing@shahid.net",
        )

        assert result.amount is not None
        assert result.amount.value == Decimal("150")

    def test_only_detected_language_tables_apply(self) -> None:
        # An English exclusion phrase inside an Arabic receipt is not consulted.
        result = classify_message(
            "فاتورة الاشتراك",
            "Welcome to Shahid VIP\nتأكيد الدفع\nالمبلغ: 150 درهم\nاشتراك شهري",
            "billing@shahid.net",
        )

        assert result.locale.language == "ar"
        assert result.passed

    def test_strict_profile_enforces_price_range(self) -> None:
        subject = "Payment Receipt — Netflix"
        body = "Amount charged: $4.99, monthly subscription renewed"

        standard = classify_message(subject, body, NETFLIX_SENDER)
        strict = classify_message(
            subject, body, NETFLIX_SENDER, STRICTNESS_PRESETS["strict"]
        )

        assert standard.passed
        assert strict.rejected_by is Gate.AMOUNT
        assert "price range" in strict.reason

    def test_strict_profile_disables_brand_fallback(self) -> None:
        subject = "Your Acmecloud payment receipt"
        body = "Amount charged: $9.99 for your monthly plan"

        standard = classify_message(subject, body, "billing@acmecloud.io")
        strict = classify_message(
            subject, body, "billing@acmecloud.io", STRICTNESS_PRESETS["strict"]
        )

        assert standard.passed
        assert strict.rejected_by is Gate.SERVICE


class TestHeuristicConfidence:
    """Tests for heuristic_confidence()."""

    def test_base_score(self) -> None:
        score = heuristic_confidence(
            make_locale("en", "US"),
            ExtractedAmount(Decimal("9.99"), "EUR", has_context=False),
            ServiceMatch("Acme", "Other", 0.0),
        )
        assert score == 0.6

    def test_each_signal_adds(self) -> None:
        score = heuristic_confidence(
            make_locale("en", "US"),
            ExtractedAmount(Decimal("9.99"), "USD", has_context=True),
            ServiceMatch("Acme", "Other", 0.0, trusted_domain=False),
        )
        assert score == 0.8

    def test_capped(self) -> None:
        score = heuristic_confidence(
            make_locale("en", "US"),
            ExtractedAmount(Decimal("9.99"), "USD", has_context=True),
            ServiceMatch("Netflix", "Entertainment", 0.1, trusted_domain=True),
        )
        assert score == 0.95
