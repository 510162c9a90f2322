"""Mailbox transport protocol."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from datetime import date

    from subscription_scanner.models import FetchedMessage, SearchQuery


@runtime_checkable
class Mailbox(Protocol):
    """Protocol for mailbox search/fetch transports.

    Both methods raise ``TransportError`` on recoverable failures and
    ``AuthorizationError`` when the credential is rejected.
    """

    def search(self, query: SearchQuery, after: date, before: date) -> list[str]: ...

    def fetch(self, message_id: str) -> FetchedMessage: ...

    def close(self) -> None: ...
