"""Stage 2: semantic validation of candidates using pydantic-ai."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import httpx
from pydantic import ValidationError
from pydantic_ai import Agent
from pydantic_ai.exceptions import (
    AgentRunError,
    ModelHTTPError,
    UnexpectedModelBehavior,
)

from subscription_scanner.config import (
    DetectionSettings,
    get_anthropic_api_key,
    get_llm_model,
)
from subscription_scanner.errors import (
    MalformedVerdictError,
    RateLimitedError,
    TransportError,
)
from subscription_scanner.models import SemanticVerdict

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from subscription_scanner.models import CandidateEmail

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = """\
You review emails that a keyword filter flagged as possible recurring \
subscription payment receipts. Decide whether the email confirms that money \
was actually charged for a recurring subscription, and return:

- is_valid_subscription: true only for a receipt or payment confirmation of a \
recurring subscription charge. False for welcome emails, trial starts without \
a charge, marketing, shipping notices, refunds, failed payments and one-time \
purchases.
- service_name: The canonical service name (e.g. "Netflix", not \
"billing@netflix.com")
- amount: The amount charged (numeric, e.g. 15.99)
- currency: ISO 4217 currency code (e.g. "USD", "EUR", "MAD")
- billing_cycle: "monthly", "yearly" or "weekly"
- category: A short category such as Entertainment, Music, Productivity, \
Development, AI, Design, Storage, Security, Education
- confidence: Your confidence from 0.0 to 1.0. Use below 0.5 when the email \
may not be a subscription receipt.
- reasoning: One sentence explaining the decision.

Emails may be in English, French, Spanish, German, Arabic or Japanese.\
"""


@runtime_checkable
class SemanticValidator(Protocol):
    """Protocol for Stage-2 validators.

    Raises MalformedVerdictError, RateLimitedError or TransportError.
    """

    def classify(
        self, subject: str, body_excerpt: str, sender: str
    ) -> SemanticVerdict: ...


def create_validation_agent() -> Agent[None, SemanticVerdict]:
    """Create a pydantic-ai Agent configured for receipt validation."""
    # Ensure API key is available (fail fast)
    get_anthropic_api_key()

    model_name = get_llm_model()
    return Agent(
        f"anthropic:{model_name}",
        output_type=SemanticVerdict,
        system_prompt=_SYSTEM_PROMPT,
    )


class LLMSemanticValidator:
    """SemanticValidator backed by a pydantic-ai Agent.

    Accepts an optional agent for dependency injection in tests.
    """

    def __init__(self, agent: Agent[None, SemanticVerdict] | None = None) -> None:
        self._agent = agent

    @property
    def agent(self) -> Agent[None, SemanticVerdict]:
        if self._agent is None:
            self._agent = create_validation_agent()
        return self._agent

    def classify(self, subject: str, body_excerpt: str, sender: str) -> SemanticVerdict:
        prompt = _build_prompt(subject, body_excerpt, sender)
        try:
            result: Any = self.agent.run_sync(prompt)
        except ModelHTTPError as exc:
            if exc.status_code == 429:
                raise RateLimitedError(str(exc)) from exc
            raise TransportError(str(exc)) from exc
        except (UnexpectedModelBehavior, ValidationError) as exc:
            raise MalformedVerdictError(str(exc)) from exc
        except (AgentRunError, httpx.HTTPError) as exc:
            raise TransportError(str(exc)) from exc

        output = result.output
        if not isinstance(output, SemanticVerdict):
            msg = f"Expected SemanticVerdict, got {type(output).__name__}"
            raise MalformedVerdictError(msg)
        return output


def _build_prompt(subject: str, body_excerpt: str, sender: str) -> str:
    """Build the user prompt from a candidate's fields."""
    return "\n".join(
        [
            f"Subject: {subject}",
            f"From: {sender}",
            "",
            "--- Email Body ---",
            body_excerpt or "(no body content)",
        ]
    )


class SemanticValidationStage:
    """Serial Stage-2 driver with request spacing and rate-limit backoff.

    ``sleep`` and ``clock`` are injectable so tests run without waiting.
    """

    def __init__(
        self,
        validator: SemanticValidator,
        settings: DetectionSettings | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.validator = validator
        self.settings = settings or DetectionSettings()
        self._sleep = sleep
        self._clock = clock
        self._last_request: float | None = None
        self._consecutive_rate_limits = 0

    def validate(
        self, candidates: Iterable[CandidateEmail]
    ) -> list[tuple[CandidateEmail, SemanticVerdict]]:
        """Return the candidates whose verdict clears the acceptance threshold."""
        promoted: list[tuple[CandidateEmail, SemanticVerdict]] = []
        for candidate in candidates:
            verdict = self._verdict_for(candidate)
            if verdict is None:
                continue
            if not verdict.is_valid_subscription:
                logger.debug(
                    "Validator rejected %s: %s", candidate.message_id, verdict.reasoning
                )
                continue
            if verdict.confidence <= self.settings.acceptance_threshold:
                logger.debug(
                    "Dropping %s: confidence %.2f at or below %.2f",
                    candidate.message_id,
                    verdict.confidence,
                    self.settings.acceptance_threshold,
                )
                continue
            promoted.append((candidate, verdict))

        logger.info("Stage 2 promoted %d candidates", len(promoted))
        return promoted

    def backoff_delay(self) -> float:
        """Delay for the current run of consecutive rate-limit signals."""
        exponent = max(self._consecutive_rate_limits - 1, 0)
        delay = self.settings.backoff_base * (2**exponent)
        return min(delay, self.settings.backoff_cap)

    def _verdict_for(self, candidate: CandidateEmail) -> SemanticVerdict | None:
        excerpt = candidate.body[: self.settings.body_excerpt_chars]
        for attempt in (1, 2):
            self._wait_for_slot()
            try:
                verdict = self.validator.classify(
                    candidate.subject, excerpt, candidate.sender
                )
            except RateLimitedError:
                self._consecutive_rate_limits += 1
                if attempt == 2:
                    logger.warning(
                        "Rate limited twice, dropping %s", candidate.message_id
                    )
                    return None
                delay = self.backoff_delay()
                logger.info("Rate limited, backing off %.1fs", delay)
                self._sleep(delay)
                continue
            except MalformedVerdictError:
                self._consecutive_rate_limits = 0
                logger.warning(
                    "No usable verdict for %s", candidate.message_id, exc_info=True
                )
                return None
            except TransportError:
                self._consecutive_rate_limits = 0
                logger.warning(
                    "Validator unavailable for %s", candidate.message_id, exc_info=True
                )
                return None

            self._consecutive_rate_limits = 0
            return verdict
        return None

    def _wait_for_slot(self) -> None:
        now = self._clock()
        if self._last_request is not None:
            remaining = self.settings.min_request_interval - (now - self._last_request)
            if remaining > 0:
                self._sleep(remaining)
                now = self._clock()
        self._last_request = now
