"""IMAP mailbox transport."""

from __future__ import annotations

import hashlib
import imaplib
import logging
from email import message_from_bytes
from email.header import decode_header
from typing import TYPE_CHECKING, cast

from subscription_scanner.errors import AuthorizationError, TransportError
from subscription_scanner.models import FetchedMessage

if TYPE_CHECKING:
    from datetime import date
    from email.message import Message
    from types import TracebackType

    from subscription_scanner.config import ImapConfig
    from subscription_scanner.models import SearchQuery

logger = logging.getLogger(__name__)

# IMAP dates always use English month abbreviations.
_MONTHS = "Jan Feb Mar Apr May Jun Jul Aug Sep Oct Nov Dec".split()


def imap_date(day: date) -> str:
    return f"{day.day:02d}-{_MONTHS[day.month - 1]}-{day.year}"


def build_imap_criteria(query: SearchQuery, after: date, before: date) -> list[str]:
    """SEARCH criteria for the ASCII parts of ``query`` in [after, before)."""
    criteria = ["SINCE", imap_date(after), "BEFORE", imap_date(before)]
    if query.sender:
        criteria += ["FROM", _quote(query.sender)]
    if query.phrase and query.phrase.isascii():
        criteria += ["TEXT", _quote(query.phrase)]
    return criteria


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def parse_message(raw: bytes) -> FetchedMessage:
    """Convert raw RFC 822 bytes into a FetchedMessage."""
    msg = message_from_bytes(raw)
    decode = ImapMailbox._decode_header_value
    message_id = ImapMailbox._get_message_id(msg)
    return FetchedMessage(
        message_id=message_id,
        headers={
            "Subject": decode(msg.get("Subject", "")),
            "From": decode(msg.get("From", "")),
            "Date": msg.get("Date", ""),
            "Message-ID": message_id,
        },
        body_parts=ImapMailbox._extract_text_parts(msg),
    )


class ImapMailbox:
    """Search and fetch messages over IMAP4_SSL.

    Authenticates with the configured password when there is one,
    otherwise with XOAUTH2 using ``access_token``. One connection is
    opened lazily and reused until ``close``.
    """

    def __init__(self, config: ImapConfig, access_token: str | None = None) -> None:
        self.config = config
        self.access_token = access_token
        self._conn: imaplib.IMAP4_SSL | None = None

    def __enter__(self) -> ImapMailbox:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def search(self, query: SearchQuery, after: date, before: date) -> list[str]:
        """Return message UIDs matching ``query`` inside [after, before)."""
        conn = self._connection()
        args = build_imap_criteria(query, after, before)
        if query.phrase and not query.phrase.isascii():
            conn.literal = query.phrase.encode("utf-8")  # type: ignore[attr-defined]
            args = ["CHARSET", "UTF-8", *args, "TEXT"]

        try:
            status, data = conn.uid("SEARCH", *args)
        except (imaplib.IMAP4.error, OSError) as exc:
            self._reset()
            raise TransportError(str(exc)) from exc
        if status != "OK":
            msg = f"IMAP SEARCH failed: {status}"
            raise TransportError(msg)

        raw = data[0] if data else None
        if not raw:
            return []
        return [uid.decode() for uid in cast("bytes", raw).split()]

    def fetch(self, message_id: str) -> FetchedMessage:
        """Fetch a single message by UID."""
        conn = self._connection()
        try:
            status, data = conn.uid("FETCH", message_id, "(RFC822)")
        except (imaplib.IMAP4.error, OSError) as exc:
            self._reset()
            raise TransportError(str(exc)) from exc

        if status != "OK" or not data or data[0] is None:
            msg = f"IMAP FETCH returned nothing for UID {message_id}"
            raise TransportError(msg)
        part = data[0]
        if not isinstance(part, tuple):
            msg = f"Unexpected FETCH response for UID {message_id}"
            raise TransportError(msg)
        return parse_message(part[1])

    def close(self) -> None:
        if self._conn is None:
            return
        try:
            self._conn.logout()
        except (imaplib.IMAP4.error, OSError):
            logger.debug("Error during IMAP logout", exc_info=True)
        self._conn = None

    def _connection(self) -> imaplib.IMAP4_SSL:
        if self._conn is None:
            self._conn = self._connect()
        return self._conn

    def _reset(self) -> None:
        self._conn = None

    def _connect(self) -> imaplib.IMAP4_SSL:
        """Establish an IMAP4_SSL connection, authenticate and select the folder."""
        try:
            conn = imaplib.IMAP4_SSL(self.config.host, self.config.port)
        except OSError as exc:
            raise TransportError(str(exc)) from exc

        try:
            if self.config.password:
                conn.login(self.config.username, self.config.password)
            elif self.access_token:
                auth = (
                    f"user={self.config.username}\x01"
                    f"auth=Bearer {self.access_token}\x01\x01"
                )
                conn.authenticate("XOAUTH2", lambda _challenge: auth.encode())
            else:
                msg = "No IMAP password or access token configured"
                raise AuthorizationError(msg)
        except imaplib.IMAP4.error as exc:
            msg = f"IMAP login rejected for {self.config.username}"
            raise AuthorizationError(msg) from exc

        status, _data = conn.select(self.config.folder, readonly=True)
        if status != "OK":
            msg = f"Cannot select IMAP folder {self.config.folder}"
            raise TransportError(msg)
        return conn

    @staticmethod
    def _get_message_id(msg: Message) -> str:
        """Extract a unique identifier for the message.

        Uses the Message-ID header if present; falls back to a hash
        of subject + date + sender.
        """
        message_id = msg.get("Message-ID")
        if message_id:
            return message_id.strip()

        subject = msg.get("Subject", "")
        sent = msg.get("Date", "")
        sender = msg.get("From", "")
        key = f"{subject}|{sent}|{sender}"
        return hashlib.sha256(key.encode()).hexdigest()

    @staticmethod
    def _decode_header_value(value: str | None) -> str:
        """Decode an RFC 2047 encoded header value."""
        if not value:
            return ""
        parts = decode_header(value)
        decoded_parts: list[str] = []
        for data, charset in parts:
            if isinstance(data, bytes):
                decoded_parts.append(data.decode(charset or "utf-8", errors="replace"))
            else:
                decoded_parts.append(data)
        return "".join(decoded_parts)

    @staticmethod
    def _extract_text_parts(msg: Message) -> list[str]:
        """Walk the MIME tree and decode inline text/plain and text/html parts."""
        texts: list[str] = []
        for part in msg.walk():
            # Skip multipart containers
            if part.get_content_maintype() == "multipart":
                continue
            if part.get_content_type() not in ("text/plain", "text/html"):
                continue
            disposition = str(part.get("Content-Disposition", ""))
            if part.get_filename() or "attachment" in disposition.lower():
                continue

            raw_payload = part.get_payload(decode=True)
            if raw_payload is None:
                continue
            payload = cast("bytes", raw_payload)
            charset = part.get_content_charset() or "utf-8"
            try:
                texts.append(payload.decode(charset, errors="replace"))
            except LookupError:
                texts.append(payload.decode("utf-8", errors="replace"))
        return texts
