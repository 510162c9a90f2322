"""Domain and validation models for subscription detection."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import NAMESPACE_URL, UUID, uuid5

from pydantic import BaseModel, Field, StrictBool, field_validator

BillingCycle = Literal["monthly", "yearly", "weekly"]
SubscriptionStatus = Literal["active", "trial", "cancelled"]


@dataclass(frozen=True)
class Locale:
    """Working language and region for a message."""

    language: str
    region: str
    currency: str
    decimal_comma: bool = False


@dataclass(frozen=True)
class ExtractedAmount:
    """A plausible amount found in message text."""

    value: Decimal
    currency: str
    has_context: bool


@dataclass(frozen=True)
class ServiceMatch:
    """A subscription service identified from sender and text."""

    name: str
    category: str
    confidence_boost: float
    key: str | None = None
    trusted_domain: bool = False


@dataclass(frozen=True)
class SearchQuery:
    """One mailbox search: a phrase, a sender, or both."""

    phrase: str | None = None
    sender: str | None = None


@dataclass
class FetchedMessage:
    """A message as returned by a mailbox transport."""

    message_id: str
    headers: dict[str, str]
    body_parts: list[str] = field(default_factory=list)
    snippet: str = ""

    def header(self, name: str) -> str:
        """Case-insensitive header lookup, empty string when absent."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return ""


@dataclass
class CandidateEmail:
    """A message that passed every Stage-1 gate."""

    message_id: str
    subject: str
    body: str
    sender: str
    sent_at: datetime
    locale_text: str
    locale: Locale
    amount: ExtractedAmount
    service: ServiceMatch
    heuristic_confidence: float


class SemanticVerdict(BaseModel):
    """Structured verdict from the semantic validator.

    Only ``is_valid_subscription`` is mandatory and it must be a real
    boolean; every other field falls back to an explicit default.
    """

    is_valid_subscription: StrictBool
    service_name: str = "Unknown Service"
    amount: Decimal | None = Field(default=None, ge=0)
    currency: str = Field(default="USD", pattern=r"^[A-Z]{3}$")
    billing_cycle: BillingCycle | None = None
    category: str = "Unknown"
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    reasoning: str = ""

    @field_validator("service_name", mode="before")
    @classmethod
    def _default_service_name(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and not value.strip()):
            return "Unknown Service"
        return value

    @field_validator("category", mode="before")
    @classmethod
    def _default_category(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and not value.strip()):
            return "Unknown"
        return value

    @field_validator("amount", mode="before")
    @classmethod
    def _lenient_amount(cls, value: object) -> object:
        # "$15.99", "N/A" and friends: keep what parses, drop the rest.
        if isinstance(value, str):
            cleaned = value.strip().lstrip("$€£¥").replace(",", "")
            try:
                return Decimal(cleaned)
            except ArithmeticError:
                return None
        return value

    @field_validator("currency", mode="before")
    @classmethod
    def _upper_currency(cls, value: object) -> object:
        if value is None:
            return "USD"
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("billing_cycle", mode="before")
    @classmethod
    def _normalize_cycle(cls, value: object) -> object:
        if isinstance(value, str):
            value = value.strip().lower()
            return value if value in ("monthly", "yearly", "weekly") else None
        return value


class DetectedSubscription(BaseModel):
    """A detected subscription as persisted in the store."""

    id: UUID
    user_id: str = Field(min_length=1)
    service_name: str = Field(min_length=1)
    amount: Decimal = Field(gt=0)
    currency: str = Field(pattern=r"^[A-Z]{3}$")
    billing_cycle: BillingCycle
    next_payment_date: datetime
    category: str
    status: SubscriptionStatus = "active"
    source_message_id: str = Field(min_length=1)
    detected_at: datetime
    last_email_date: datetime
    email_subject: str
    confidence: float = Field(ge=0.0, le=1.0)
    receipt_type: str
    language: str | None = None
    region: str | None = None
    processing_year: int | None = None
    updated_at: datetime | None = None


def subscription_id(user_id: str, message_id: str, year: int | None) -> UUID:
    """Deterministic record id for (user, source message, processing year)."""
    key = f"subscription:{user_id}|{message_id}|{year if year is not None else ''}"
    return uuid5(NAMESPACE_URL, key)
