"""Candidate gathering: search, fetch, decode, and run Stage 1."""

from __future__ import annotations

import logging
import re
from datetime import UTC, date, datetime
from email.utils import parsedate_to_datetime
from html.parser import HTMLParser
from itertools import chain, zip_longest
from typing import TYPE_CHECKING

from subscription_scanner.catalog import catalog_sender_domains
from subscription_scanner.classifier import classify_message
from subscription_scanner.config import DetectionSettings
from subscription_scanner.errors import TransportError
from subscription_scanner.lexicon import SEARCH_PHRASES, SUPPORTED_LANGUAGES
from subscription_scanner.models import CandidateEmail, SearchQuery

if TYPE_CHECKING:
    from subscription_scanner.adapters.base import Mailbox
    from subscription_scanner.models import FetchedMessage

logger = logging.getLogger(__name__)

SENDER_PHRASE = "receipt"
CURRENCY_TOKENS = ("درهم", "dirham", "MAD", "EUR", "GBP", "JPY")

_HTML_TAG = re.compile(r"<(?:[a-zA-Z][^>]*|/[a-zA-Z][^>]*|!--.*?--)>", re.DOTALL)
_BLANK_RUNS = re.compile(r"[ \t\r\f\v]+")
_NEWLINE_RUNS = re.compile(r"\n\s*\n+")


class UndecodableMessageError(ValueError):
    """A fetched message lacks the headers or body needed to classify it."""


def build_search_queries(max_queries: int) -> list[SearchQuery]:
    """Interleave receipt phrases, catalog senders and currency tokens.

    Round-robin keeps every family represented when ``max_queries`` cuts
    the list short.
    """
    phrases = [
        SearchQuery(phrase=phrase)
        for language in SUPPORTED_LANGUAGES
        for phrase in SEARCH_PHRASES.get(language, ())
    ]
    senders = [
        SearchQuery(phrase=SENDER_PHRASE, sender=domain)
        for domain in catalog_sender_domains()
    ]
    currencies = [SearchQuery(phrase=token) for token in CURRENCY_TOKENS]

    interleaved = chain.from_iterable(zip_longest(phrases, senders, currencies))
    queries = [query for query in interleaved if query is not None]
    return queries[:max_queries]


class CandidateGatherer:
    """Drive mailbox searches for one year and collect Stage-1 candidates."""

    def __init__(self, settings: DetectionSettings | None = None) -> None:
        self.settings = settings or DetectionSettings()

    def gather(self, mailbox: Mailbox, year: int) -> list[CandidateEmail]:
        """Search, fetch each new message once, and keep the ones that pass.

        Transport failures skip one query or one message. Authorization
        failures propagate.
        """
        after, before = date(year, 1, 1), date(year + 1, 1, 1)
        seen: set[str] = set()
        candidates: list[CandidateEmail] = []

        for query in build_search_queries(self.settings.max_queries):
            try:
                message_ids = mailbox.search(query, after=after, before=before)
            except TransportError:
                logger.warning("Search failed for %s", query, exc_info=True)
                continue

            for message_id in message_ids:
                if message_id in seen:
                    logger.debug("Skipping already-fetched message %s", message_id)
                    continue
                seen.add(message_id)

                candidate = self._process(mailbox, message_id, year)
                if candidate is not None:
                    candidates.append(candidate)

        logger.info(
            "Fetched %d messages for %d, %d passed Stage 1",
            len(seen),
            year,
            len(candidates),
        )
        return candidates

    def _process(
        self, mailbox: Mailbox, message_id: str, year: int
    ) -> CandidateEmail | None:
        try:
            message = mailbox.fetch(message_id)
        except TransportError:
            logger.warning("Fetch failed for message %s", message_id, exc_info=True)
            return None

        try:
            subject, body, sender, sent_at = decode_message(message)
        except UndecodableMessageError as exc:
            logger.warning("Dropping message %s: %s", message_id, exc)
            return None

        if sent_at.year != year:
            logger.debug(
                "Message %s dated %s is outside %d", message_id, sent_at, year
            )
            return None

        result = classify_message(subject, body, sender, self.settings)
        if not result.passed:
            return None
        if result.amount is None or result.service is None:
            return None

        return CandidateEmail(
            message_id=message.message_id or message_id,
            subject=subject,
            body=body,
            sender=sender,
            sent_at=sent_at,
            locale_text=f"{subject}\n{body}",
            locale=result.locale,
            amount=result.amount,
            service=result.service,
            heuristic_confidence=result.confidence,
        )


def decode_message(message: FetchedMessage) -> tuple[str, str, str, datetime]:
    """Return (subject, body, sender, sent_at) for a fetched message.

    The body is the longest part after HTML stripping, falling back to
    the snippet.
    """
    date_header = message.header("Date")
    if not date_header:
        msg = "missing Date header"
        raise UndecodableMessageError(msg)
    try:
        sent_at = parsedate_to_datetime(date_header)
    except (TypeError, ValueError) as exc:
        msg = f"unparseable Date header {date_header!r}"
        raise UndecodableMessageError(msg) from exc
    if sent_at.tzinfo is None:
        sent_at = sent_at.replace(tzinfo=UTC)

    texts = [
        html_to_text(part) if looks_like_html(part) else part
        for part in message.body_parts
    ]
    body = max((text.strip() for text in texts), key=len, default="")
    if not body:
        body = message.snippet.strip()
    if not body:
        msg = "no decodable body"
        raise UndecodableMessageError(msg)

    return message.header("Subject"), body, message.header("From"), sent_at


def looks_like_html(text: str) -> bool:
    return _HTML_TAG.search(text) is not None


def html_to_text(html: str) -> str:
    """Remove HTML tags, returning only text content."""
    stripper = _HTMLTagStripper()
    stripper.feed(html)
    stripper.close()
    text = _BLANK_RUNS.sub(" ", stripper.get_text())
    return _NEWLINE_RUNS.sub("\n", text).strip()


class _HTMLTagStripper(HTMLParser):
    """HTMLParser subclass that strips tags and returns text."""

    _SKIP = frozenset({"script", "style", "head", "title"})
    _BREAKS = frozenset({"br", "p", "div", "tr", "li", "h1", "h2", "h3", "table"})

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self._parts: list[str] = []
        self._skipping = 0

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag in self._SKIP:
            self._skipping += 1
        elif tag in self._BREAKS:
            self._parts.append("\n")

    def handle_endtag(self, tag: str) -> None:
        if tag in self._SKIP and self._skipping:
            self._skipping -= 1
        elif tag in self._BREAKS:
            self._parts.append("\n")

    def handle_data(self, data: str) -> None:
        if not self._skipping:
            self._parts.append(data)

    def get_text(self) -> str:
        return "".join(self._parts)
