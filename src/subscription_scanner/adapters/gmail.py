"""Gmail REST API mailbox transport."""

from __future__ import annotations

import base64
import binascii
import logging
from email.message import Message
from typing import TYPE_CHECKING, Any

import httpx

from subscription_scanner.errors import (
    AuthorizationError,
    RateLimitedError,
    TransportError,
)
from subscription_scanner.models import FetchedMessage

if TYPE_CHECKING:
    from datetime import date

    from subscription_scanner.models import SearchQuery

logger = logging.getLogger(__name__)

GMAIL_API = "https://gmail.googleapis.com/gmail/v1/users/me"
REQUEST_TIMEOUT = 20.0


def build_gmail_query(query: SearchQuery, after: date, before: date) -> str:
    """Render a SearchQuery as a Gmail search expression."""
    terms: list[str] = []
    if query.phrase:
        phrase = query.phrase.replace('"', "")
        terms.append(f'"{phrase}"')
    if query.sender:
        terms.append(f"from:{query.sender}")
    terms.append(f"after:{after:%Y/%m/%d}")
    terms.append(f"before:{before:%Y/%m/%d}")
    return " ".join(terms)


class GmailMailbox:
    """Search and fetch messages through the Gmail REST API.

    Accepts an optional httpx client for dependency injection in tests.
    """

    def __init__(
        self,
        access_token: str,
        *,
        max_results: int = 50,
        client: httpx.Client | None = None,
        base_url: str = GMAIL_API,
    ) -> None:
        self.max_results = max_results
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=REQUEST_TIMEOUT)
        self._headers = {"Authorization": f"Bearer {access_token}"}

    def search(self, query: SearchQuery, after: date, before: date) -> list[str]:
        """Return message ids matching ``query`` inside [after, before)."""
        payload = self._get(
            "/messages",
            params={
                "q": build_gmail_query(query, after, before),
                "maxResults": self.max_results,
            },
        )
        return [item["id"] for item in payload.get("messages", []) if "id" in item]

    def fetch(self, message_id: str) -> FetchedMessage:
        """Fetch one message with headers and decoded text parts."""
        payload = self._get(f"/messages/{message_id}", params={"format": "full"})
        part = payload.get("payload", {})
        headers = {
            header["name"]: header["value"]
            for header in part.get("headers", [])
            if "name" in header and "value" in header
        }
        return FetchedMessage(
            message_id=payload.get("id", message_id),
            headers=headers,
            body_parts=list(_text_parts(part)),
            snippet=payload.get("snippet", ""),
        )

    def close(self) -> None:
        self._client.close()

    def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self._client.get(
                f"{self.base_url}{path}", params=params, headers=self._headers
            )
        except httpx.HTTPError as exc:
            raise TransportError(str(exc)) from exc

        if response.status_code in (401, 403):
            msg = f"Gmail rejected the access token ({response.status_code})"
            raise AuthorizationError(msg)
        if response.status_code == 429:
            raise RateLimitedError("Gmail rate limit exceeded")
        if response.is_error:
            msg = f"Gmail request {path} failed with {response.status_code}"
            raise TransportError(msg)

        try:
            return response.json()  # type: ignore[no-any-return]
        except ValueError as exc:
            msg = f"Gmail returned invalid JSON for {path}"
            raise TransportError(msg) from exc


def _text_parts(part: dict[str, Any]) -> list[str]:
    """Walk a Gmail payload tree and decode every inline text part."""
    mime_type = part.get("mimeType", "")
    if mime_type.startswith("multipart/"):
        texts: list[str] = []
        for child in part.get("parts", []):
            texts.extend(_text_parts(child))
        return texts

    if not mime_type.startswith("text/") or part.get("filename"):
        return []
    data = part.get("body", {}).get("data")
    if not data:
        return []

    try:
        raw = base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))
    except (binascii.Error, ValueError):
        logger.debug("Skipping undecodable %s part", mime_type)
        return []
    return [raw.decode(_charset(part), errors="replace")]


def _charset(part: dict[str, Any]) -> str:
    content_type = next(
        (
            header.get("value", "")
            for header in part.get("headers", [])
            if header.get("name", "").lower() == "content-type"
        ),
        "",
    )
    if not content_type:
        return "utf-8"
    holder = Message()
    holder["Content-Type"] = content_type
    charset = holder.get_content_charset() or "utf-8"
    try:
        "".encode(charset)
    except LookupError:
        return "utf-8"
    return charset
