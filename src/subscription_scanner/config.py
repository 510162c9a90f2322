"""Configuration via environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class ImapConfig:
    """IMAP connection configuration.

    ``password`` is optional: when absent the mailbox authenticates with
    XOAUTH2 using the bearer token from the credential provider.
    """

    host: str
    username: str
    password: str | None = None
    port: int = 993
    folder: str = "INBOX"


@dataclass(frozen=True)
class OAuthClientConfig:
    """OAuth client used to refresh mailbox access tokens."""

    client_id: str
    client_secret: str
    token_url: str = "https://oauth2.googleapis.com/token"


@dataclass(frozen=True)
class DetectionSettings:
    """Tunable knobs of the detection pipeline.

    The thresholds and ranges are empirically chosen; treat them as
    parameters, not truths. ``range_overrides`` replaces the plausibility
    range of individual currencies.
    """

    strictness: str = "standard"
    acceptance_threshold: float = 0.7
    min_request_interval: float = 1.5
    backoff_base: float = 2.0
    backoff_cap: float = 30.0
    max_queries: int = 24
    max_results_per_query: int = 50
    body_excerpt_chars: int = 2000
    context_window: int = 40
    allow_domain_fallback: bool = True
    enforce_service_price_range: bool = False
    range_overrides: dict[str, tuple[Decimal, Decimal]] = field(default_factory=dict)


STRICTNESS_PRESETS: dict[str, DetectionSettings] = {
    "standard": DetectionSettings(),
    "strict": DetectionSettings(
        strictness="strict",
        acceptance_threshold=0.8,
        allow_domain_fallback=False,
        enforce_service_price_range=True,
    ),
}


def get_database_url() -> str:
    """Return the DATABASE_URL from the environment."""
    url = os.environ.get("DATABASE_URL")
    if not url:
        msg = "DATABASE_URL environment variable is required"
        raise ValueError(msg)
    return url


def get_mailbox_backend() -> str:
    """Return the mailbox transport name: ``gmail`` (default) or ``imap``."""
    backend = os.environ.get("MAILBOX_BACKEND", "gmail").lower()
    if backend not in ("gmail", "imap"):
        msg = f"MAILBOX_BACKEND must be 'gmail' or 'imap', got {backend!r}"
        raise ValueError(msg)
    return backend


def get_imap_config() -> ImapConfig:
    """Build IMAP configuration from environment variables.

    Required: IMAP_HOST, IMAP_USERNAME
    Optional: IMAP_PASSWORD, IMAP_PORT (default 993), IMAP_FOLDER (default INBOX)
    """
    host = os.environ.get("IMAP_HOST")
    username = os.environ.get("IMAP_USERNAME")

    missing = []
    if not host:
        missing.append("IMAP_HOST")
    if not username:
        missing.append("IMAP_USERNAME")

    if missing:
        msg = f"Required environment variables not set: {', '.join(missing)}"
        raise ValueError(msg)

    port = int(os.environ.get("IMAP_PORT", "993"))
    folder = os.environ.get("IMAP_FOLDER", "INBOX")

    return ImapConfig(
        host=host,  # type: ignore[arg-type]
        username=username,  # type: ignore[arg-type]
        password=os.environ.get("IMAP_PASSWORD") or None,
        port=port,
        folder=folder,
    )


def get_oauth_client_config() -> OAuthClientConfig:
    """Build the OAuth client configuration.

    Required: GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET
    """
    client_id = os.environ.get("GOOGLE_CLIENT_ID")
    client_secret = os.environ.get("GOOGLE_CLIENT_SECRET")

    missing = []
    if not client_id:
        missing.append("GOOGLE_CLIENT_ID")
    if not client_secret:
        missing.append("GOOGLE_CLIENT_SECRET")

    if missing:
        msg = f"Required environment variables not set: {', '.join(missing)}"
        raise ValueError(msg)

    return OAuthClientConfig(
        client_id=client_id,  # type: ignore[arg-type]
        client_secret=client_secret,  # type: ignore[arg-type]
    )


def get_static_access_token() -> str | None:
    """Return MAILBOX_ACCESS_TOKEN if set (bypasses the OAuth token store)."""
    return os.environ.get("MAILBOX_ACCESS_TOKEN") or None


def get_anthropic_api_key() -> str:
    """Return the ANTHROPIC_API_KEY from the environment."""
    key = os.environ.get("ANTHROPIC_API_KEY")
    if not key:
        msg = "ANTHROPIC_API_KEY environment variable is required"
        raise ValueError(msg)
    return key


def get_llm_model() -> str:
    """Return the LLM model identifier.

    Defaults to claude-haiku-4-5-20251001.
    """
    return os.environ.get("LLM_MODEL", "claude-haiku-4-5-20251001")


def get_rates_url() -> str:
    """Return the exchange-rate endpoint (USD based)."""
    return os.environ.get(
        "EXCHANGE_RATES_URL", "https://api.exchangerate-api.com/v4/latest/USD"
    )


def get_rates_ttl() -> float:
    """Return the exchange-rate cache lifetime in seconds (default one hour)."""
    return float(os.environ.get("EXCHANGE_RATES_TTL", "3600"))


def get_detection_settings() -> DetectionSettings:
    """Build detection settings from SCAN_STRICTNESS plus individual overrides."""
    strictness = os.environ.get("SCAN_STRICTNESS", "standard").lower()
    if strictness not in STRICTNESS_PRESETS:
        msg = (
            f"SCAN_STRICTNESS must be one of {', '.join(STRICTNESS_PRESETS)}, "
            f"got {strictness!r}"
        )
        raise ValueError(msg)
    settings = STRICTNESS_PRESETS[strictness]

    overrides: dict[str, float | int] = {}
    threshold = os.environ.get("SCAN_ACCEPTANCE_THRESHOLD")
    if threshold:
        value = float(threshold)
        if not 0.0 <= value <= 1.0:
            msg = "SCAN_ACCEPTANCE_THRESHOLD must be between 0 and 1"
            raise ValueError(msg)
        overrides["acceptance_threshold"] = value
    interval = os.environ.get("SCAN_MIN_REQUEST_INTERVAL")
    if interval:
        overrides["min_request_interval"] = float(interval)
    max_queries = os.environ.get("SCAN_MAX_QUERIES")
    if max_queries:
        overrides["max_queries"] = int(max_queries)
    max_results = os.environ.get("SCAN_MAX_RESULTS")
    if max_results:
        overrides["max_results_per_query"] = int(max_results)

    return replace(settings, **overrides)  # type: ignore[arg-type]
