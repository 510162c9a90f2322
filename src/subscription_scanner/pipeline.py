"""Scan entry point: gather, validate, build, deduplicate, persist."""

from __future__ import annotations

import logging
import time
from datetime import UTC, datetime
from functools import partial
from typing import TYPE_CHECKING

from pydantic import ValidationError

from subscription_scanner.adapters.gmail import GmailMailbox
from subscription_scanner.adapters.imap import ImapMailbox
from subscription_scanner.builder import build_subscription
from subscription_scanner.config import (
    DetectionSettings,
    get_detection_settings,
    get_imap_config,
    get_mailbox_backend,
    get_oauth_client_config,
    get_static_access_token,
)
from subscription_scanner.credentials import (
    OAuthCredentialProvider,
    PostgresTokenStore,
    StaticTokenProvider,
)
from subscription_scanner.errors import AuthorizationError
from subscription_scanner.gatherer import CandidateGatherer
from subscription_scanner.persistence import (
    PostgresSubscriptionStore,
    collapse_duplicates,
    persist_subscriptions,
)
from subscription_scanner.validation import (
    LLMSemanticValidator,
    SemanticValidationStage,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from subscription_scanner.adapters.base import Mailbox
    from subscription_scanner.credentials import CredentialProvider
    from subscription_scanner.models import (
        CandidateEmail,
        DetectedSubscription,
        SemanticVerdict,
    )
    from subscription_scanner.persistence import SubscriptionStore
    from subscription_scanner.validation import SemanticValidator

logger = logging.getLogger(__name__)


class SubscriptionScanner:
    """Run one user's scan for one year.

    ``mailbox_factory`` receives the user's access token. When
    ``validator`` is None Stage 2 is skipped and records carry the
    Stage-1 confidence.
    """

    def __init__(
        self,
        credentials: CredentialProvider,
        mailbox_factory: Callable[[str], Mailbox],
        store: SubscriptionStore,
        validator: SemanticValidator | None = None,
        settings: DetectionSettings | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.credentials = credentials
        self.mailbox_factory = mailbox_factory
        self.store = store
        self.validator = validator
        self.settings = settings or DetectionSettings()
        self._sleep = sleep
        self._clock = clock
        self._now = now or (lambda: datetime.now(tz=UTC))

    def run_scan(self, user_id: str, year: int) -> list[DetectedSubscription]:
        """Scan ``year`` of the user's mailbox and persist what is found.

        Idempotent per (user, year). Raises AuthorizationError when no
        usable credential exists; every other failure is contained.
        """
        if not self.credentials.is_authorized(user_id):
            msg = f"User {user_id} has not authorized mailbox access"
            raise AuthorizationError(msg)
        token = self.credentials.get_valid_access_token(user_id)
        if not token:
            msg = f"No valid access token for {user_id}"
            raise AuthorizationError(msg)

        logger.info("Scanning %d for %s", year, user_id)
        mailbox = self.mailbox_factory(token)
        try:
            candidates = CandidateGatherer(self.settings).gather(mailbox, year)
        finally:
            mailbox.close()

        promoted = self._validate(candidates)
        now = self._now()
        records: list[DetectedSubscription] = []
        for candidate, verdict in promoted:
            try:
                records.append(
                    build_subscription(user_id, candidate, verdict, year, now=now)
                )
            except ValidationError:
                logger.warning(
                    "Could not build a record for %s",
                    candidate.message_id,
                    exc_info=True,
                )

        report = persist_subscriptions(
            self.store, collapse_duplicates(records), now=now
        )
        logger.info(
            "Scan of %d for %s: %d inserted, %d updated, %d failed",
            year,
            user_id,
            report.inserted,
            report.updated,
            report.failed,
        )
        return report.records

    def _validate(
        self, candidates: list[CandidateEmail]
    ) -> list[tuple[CandidateEmail, SemanticVerdict | None]]:
        if self.validator is None:
            return [(candidate, None) for candidate in candidates]
        stage = SemanticValidationStage(
            self.validator, self.settings, sleep=self._sleep, clock=self._clock
        )
        return list(stage.validate(candidates))


def build_scanner_from_env(*, semantic: bool = True) -> SubscriptionScanner:
    """Wire a scanner from environment configuration."""
    settings = get_detection_settings()
    backend = get_mailbox_backend()
    static_token = get_static_access_token()

    mailbox_factory: Callable[[str], Mailbox]
    credentials: CredentialProvider
    if backend == "imap":
        imap_config = get_imap_config()
        mailbox_factory = partial(ImapMailbox, imap_config)
        # Password login needs no OAuth token; the password is the credential.
        secret = static_token or imap_config.password
        credentials = (
            StaticTokenProvider(secret)
            if secret
            else OAuthCredentialProvider(
                PostgresTokenStore(), get_oauth_client_config()
            )
        )
    else:
        mailbox_factory = partial(
            GmailMailbox, max_results=settings.max_results_per_query
        )
        credentials = (
            StaticTokenProvider(static_token)
            if static_token
            else OAuthCredentialProvider(
                PostgresTokenStore(), get_oauth_client_config()
            )
        )

    return SubscriptionScanner(
        credentials=credentials,
        mailbox_factory=mailbox_factory,
        store=PostgresSubscriptionStore(),
        validator=LLMSemanticValidator() if semantic else None,
        settings=settings,
    )
