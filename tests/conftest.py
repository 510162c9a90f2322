"""Shared test fixtures."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import pytest

from subscription_scanner.config import DetectionSettings, ImapConfig
from subscription_scanner.locales import make_locale
from subscription_scanner.models import (
    CandidateEmail,
    DetectedSubscription,
    ExtractedAmount,
    FetchedMessage,
    ServiceMatch,
    subscription_id,
)

if TYPE_CHECKING:
    from collections.abc import Callable

NETFLIX_SUBJECT = "Payment Receipt — Netflix"
NETFLIX_BODY = "Amount charged: $15.99, monthly subscription renewed"
NETFLIX_SENDER = "billing@netflix.com"


@pytest.fixture
def imap_config() -> ImapConfig:
    """Provide a test IMAP configuration."""
    return ImapConfig(
        host="imap.example.com",
        username="test@example.com",
        password="secret",  # pragma: allowlist secret
        port=993,
        folder="INBOX",
    )


@pytest.fixture
def settings() -> DetectionSettings:
    """Standard settings without request spacing."""
    return DetectionSettings(min_request_interval=0.0)


@pytest.fixture
def make_message() -> Callable[..., FetchedMessage]:
    """Build FetchedMessage objects with Netflix receipt defaults."""

    def _make(
        message_id: str = "<netflix-1@example.com>",
        *,
        subject: str = NETFLIX_SUBJECT,
        sender: str = NETFLIX_SENDER,
        date: str = "Sat, 15 Jun 2024 10:30:00 +0000",
        body: str = NETFLIX_BODY,
    ) -> FetchedMessage:
        headers = {"Subject": subject, "From": sender}
        if date:
            headers["Date"] = date
        return FetchedMessage(message_id=message_id, headers=headers, body_parts=[body])

    return _make


@pytest.fixture
def sample_candidate() -> CandidateEmail:
    """Provide the Netflix receipt as a Stage-1 candidate."""
    return CandidateEmail(
        message_id="<netflix-1@example.com>",
        subject=NETFLIX_SUBJECT,
        body=NETFLIX_BODY,
        sender=NETFLIX_SENDER,
        sent_at=datetime(2024, 6, 15, 10, 30, tzinfo=UTC),
        locale_text=f"{NETFLIX_SUBJECT}\n{NETFLIX_BODY}",
        locale=make_locale("en", "US"),
        amount=ExtractedAmount(Decimal("15.99"), "USD", has_context=True),
        service=ServiceMatch(
            "Netflix", "Entertainment", 0.1, key="netflix", trusted_domain=True
        ),
        heuristic_confidence=0.95,
    )


@pytest.fixture
def make_subscription() -> Callable[..., DetectedSubscription]:
    """Build DetectedSubscription records with overridable fields."""

    def _make(**overrides: Any) -> DetectedSubscription:
        user_id = overrides.get("user_id", "user-1")
        message_id = overrides.get("source_message_id", "<netflix-1@example.com>")
        year = overrides.get("processing_year", 2024)
        fields: dict[str, Any] = {
            "id": subscription_id(user_id, message_id, year),
            "user_id": user_id,
            "service_name": "Netflix",
            "amount": Decimal("15.99"),
            "currency": "USD",
            "billing_cycle": "monthly",
            "next_payment_date": datetime(2024, 7, 15, tzinfo=UTC),
            "category": "Entertainment",
            "status": "active",
            "source_message_id": message_id,
            "detected_at": datetime(2024, 6, 20, tzinfo=UTC),
            "last_email_date": datetime(2024, 6, 15, tzinfo=UTC),
            "email_subject": NETFLIX_SUBJECT,
            "confidence": 0.9,
            "receipt_type": "verified_payment_receipt",
            "language": "en",
            "region": "US",
            "processing_year": year,
        }
        fields.update(overrides)
        return DetectedSubscription(**fields)

    return _make
