"""Tests for subscription_scanner.adapters.imap."""

from __future__ import annotations

import hashlib
import imaplib
from dataclasses import replace
from datetime import date
from email import message_from_bytes
from email.mime.application import MIMEApplication
from email.mime.image import MIMEImage
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import TYPE_CHECKING
from unittest.mock import MagicMock, patch

import pytest

from subscription_scanner.adapters.base import Mailbox
from subscription_scanner.adapters.imap import (
    ImapMailbox,
    build_imap_criteria,
    imap_date,
    parse_message,
)
from subscription_scanner.errors import AuthorizationError, TransportError
from subscription_scanner.models import SearchQuery

if TYPE_CHECKING:
    from subscription_scanner.config import ImapConfig

AFTER = date(2024, 1, 1)
BEFORE = date(2025, 1, 1)


def _make_simple_email(
    *,
    subject: str = "Payment Receipt",
    sender: str = "billing@netflix.com",
    date: str = "Sat, 15 Jun 2024 10:30:00 +0000",
    message_id: str | None = "<test-1@example.com>",
    body: str = "Amount charged: $15.99",
    html: bool = False,
) -> bytes:
    """Build a simple email message as bytes."""
    subtype = "html" if html else "plain"
    msg = MIMEText(body, subtype)
    msg["Subject"] = subject
    msg["From"] = sender
    msg["Date"] = date
    if message_id:
        msg["Message-ID"] = message_id
    return msg.as_bytes()


def _make_multipart_email(
    *,
    text_body: str | None = "Plain text body",
    html_body: str | None = None,
    attachments: list[tuple[str, str, bytes]] | None = None,
    inline_images: list[tuple[str, str, bytes]] | None = None,
) -> bytes:
    """Build a multipart email with optional attachments and inline images."""
    msg = MIMEMultipart("mixed")
    msg["Subject"] = "Payment Receipt"
    msg["From"] = "billing@netflix.com"
    msg["Date"] = "Sat, 15 Jun 2024 10:30:00 +0000"
    msg["Message-ID"] = "<test-multi@example.com>"

    if text_body or html_body:
        alt = MIMEMultipart("alternative")
        if text_body:
            alt.attach(MIMEText(text_body, "plain"))
        if html_body:
            alt.attach(MIMEText(html_body, "html"))
        msg.attach(alt)

    for filename, content_type, data in attachments or []:
        _maintype, subtype = content_type.split("/", 1)
        att = MIMEApplication(data, subtype)
        att.add_header("Content-Disposition", "attachment", filename=filename)
        msg.attach(att)

    for content_id, content_type, data in inline_images or []:
        _maintype, subtype = content_type.split("/", 1)
        img = MIMEImage(data, subtype)
        img.add_header("Content-ID", f"<{content_id}>")
        img.add_header("Content-Disposition", "inline")
        msg.attach(img)

    return msg.as_bytes()


def _mock_imap_connection(messages: dict[str, bytes]) -> MagicMock:
    """Create a mock IMAP4_SSL answering UID SEARCH and UID FETCH."""
    conn = MagicMock()
    conn.select.return_value = ("OK", [b"1"])

    def fake_uid(command: str, *args: str) -> tuple[str, list[object]]:
        if command == "SEARCH":
            return ("OK", [" ".join(messages).encode()])
        data = messages.get(args[0])
        if data is None:
            return ("OK", [None])
        return ("OK", [(f"{args[0]} (RFC822 {{{len(data)}}})".encode(), data)])

    conn.uid.side_effect = fake_uid
    return conn


class TestGetMessageId:
    """Tests for _get_message_id."""

    def test_extracts_message_id_header(self) -> None:
        msg = message_from_bytes(_make_simple_email(message_id="<unique-123@mail.com>"))
        assert ImapMailbox._get_message_id(msg) == "<unique-123@mail.com>"

    def test_fallback_hash_when_no_message_id(self) -> None:
        msg = message_from_bytes(_make_simple_email(message_id=None))
        result = ImapMailbox._get_message_id(msg)

        expected_key = f"{msg['Subject']}|{msg['Date']}|{msg['From']}"
        assert result == hashlib.sha256(expected_key.encode()).hexdigest()


class TestDecodeHeaderValue:
    """Tests for _decode_header_value."""

    def test_simple_ascii(self) -> None:
        assert ImapMailbox._decode_header_value("Hello World") == "Hello World"

    def test_rfc2047_encoded(self) -> None:
        encoded = "=?utf-8?B?SMOpbGzDqA==?="
        assert ImapMailbox._decode_header_value(encoded) == "Héllè"

    def test_none_returns_empty(self) -> None:
        assert ImapMailbox._decode_header_value(None) == ""


class TestExtractTextParts:
    """Tests for _extract_text_parts."""

    def test_plain_text_only(self) -> None:
        msg = message_from_bytes(_make_simple_email(body="Just text"))
        assert ImapMailbox._extract_text_parts(msg) == ["Just text"]

    def test_text_and_html(self) -> None:
        raw = _make_multipart_email(
            text_body="Plain version", html_body="<p>HTML version</p>"
        )
        parts = ImapMailbox._extract_text_parts(message_from_bytes(raw))
        assert parts == ["Plain version", "<p>HTML version</p>"]

    def test_attachments_skipped(self) -> None:
        raw = _make_multipart_email(
            attachments=[
                ("receipt.pdf", "application/pdf", b"%PDF-1.4 fake"),
                ("export.csv", "text/csv", b"amount\n15.99"),
            ],
            inline_images=[("logo123", "image/png", b"\x89PNG\r\n\x1a\n")],
        )
        parts = ImapMailbox._extract_text_parts(message_from_bytes(raw))
        assert parts == ["Plain text body"]


class TestParseMessage:
    """Tests for parse_message()."""

    def test_fields(self) -> None:
        message = parse_message(_make_simple_email())

        assert message.message_id == "<test-1@example.com>"
        assert message.header("subject") == "Payment Receipt"
        assert message.header("from") == "billing@netflix.com"
        assert message.header("date") == "Sat, 15 Jun 2024 10:30:00 +0000"
        assert message.body_parts == ["Amount charged: $15.99"]


class TestCriteria:
    """Tests for imap_date() and build_imap_criteria()."""

    def test_imap_date(self) -> None:
        assert imap_date(date(2024, 1, 5)) == "05-Jan-2024"
        assert imap_date(date(2024, 12, 31)) == "31-Dec-2024"

    def test_phrase_and_sender(self) -> None:
        query = SearchQuery(phrase="payment receipt", sender="netflix.com")

        assert build_imap_criteria(query, AFTER, BEFORE) == [
            "SINCE",
            "01-Jan-2024",
            "BEFORE",
            "01-Jan-2025",
            "FROM",
            '"netflix.com"',
            "TEXT",
            '"payment receipt"',
        ]

    def test_quotes_escaped(self) -> None:
        criteria = build_imap_criteria(SearchQuery(phrase='say "hi"'), AFTER, BEFORE)
        assert criteria[-1] == '"say \\"hi\\""'

    def test_non_ascii_phrase_left_out(self) -> None:
        criteria = build_imap_criteria(SearchQuery(phrase="إيصال"), AFTER, BEFORE)
        assert "TEXT" not in criteria


class TestImapMailbox:
    """Tests for ImapMailbox."""

    def test_is_a_mailbox(self, imap_config: ImapConfig) -> None:
        assert isinstance(ImapMailbox(imap_config), Mailbox)

    @patch("subscription_scanner.adapters.imap.imaplib.IMAP4_SSL")
    def test_search_returns_uids(
        self, mock_ssl: MagicMock, imap_config: ImapConfig
    ) -> None:
        conn = _mock_imap_connection(
            {"1": _make_simple_email(), "2": _make_simple_email()}
        )
        mock_ssl.return_value = conn

        uids = ImapMailbox(imap_config).search(
            SearchQuery(phrase="receipt"), AFTER, BEFORE
        )

        assert uids == ["1", "2"]
        conn.uid.assert_called_once_with(
            "SEARCH",
            "SINCE",
            "01-Jan-2024",
            "BEFORE",
            "01-Jan-2025",
            "TEXT",
            '"receipt"',
        )

    @patch("subscription_scanner.adapters.imap.imaplib.IMAP4_SSL")
    def test_search_empty_folder(
        self, mock_ssl: MagicMock, imap_config: ImapConfig
    ) -> None:
        mock_ssl.return_value = _mock_imap_connection({})

        mailbox = ImapMailbox(imap_config)
        assert mailbox.search(SearchQuery(phrase="x"), AFTER, BEFORE) == []

    @patch("subscription_scanner.adapters.imap.imaplib.IMAP4_SSL")
    def test_non_ascii_search_uses_literal(
        self, mock_ssl: MagicMock, imap_config: ImapConfig
    ) -> None:
        conn = _mock_imap_connection({})
        mock_ssl.return_value = conn

        ImapMailbox(imap_config).search(SearchQuery(phrase="إيصال"), AFTER, BEFORE)

        args = conn.uid.call_args[0]
        assert args[:3] == ("SEARCH", "CHARSET", "UTF-8")
        assert args[-1] == "TEXT"
        assert conn.literal == "إيصال".encode()

    @patch("subscription_scanner.adapters.imap.imaplib.IMAP4_SSL")
    def test_fetch_parses_message(
        self, mock_ssl: MagicMock, imap_config: ImapConfig
    ) -> None:
        conn = _mock_imap_connection(
            {"7": _make_simple_email(message_id="<order-7@netflix.com>")}
        )
        mock_ssl.return_value = conn

        message = ImapMailbox(imap_config).fetch("7")

        assert message.message_id == "<order-7@netflix.com>"
        conn.uid.assert_called_once_with("FETCH", "7", "(RFC822)")

    @patch("subscription_scanner.adapters.imap.imaplib.IMAP4_SSL")
    def test_fetch_missing_uid(
        self, mock_ssl: MagicMock, imap_config: ImapConfig
    ) -> None:
        mock_ssl.return_value = _mock_imap_connection({})

        with pytest.raises(TransportError, match="UID 9"):
            ImapMailbox(imap_config).fetch("9")

    @patch("subscription_scanner.adapters.imap.imaplib.IMAP4_SSL")
    def test_connection_error_reconnects_next_time(
        self, mock_ssl: MagicMock, imap_config: ImapConfig
    ) -> None:
        conn = _mock_imap_connection({})
        conn.uid.side_effect = OSError("connection reset")
        mock_ssl.return_value = conn
        mailbox = ImapMailbox(imap_config)

        with pytest.raises(TransportError, match="connection reset"):
            mailbox.fetch("1")
        with pytest.raises(TransportError):
            mailbox.fetch("1")

        assert mock_ssl.call_count == 2

    @patch("subscription_scanner.adapters.imap.imaplib.IMAP4_SSL")
    def test_connection_uses_config(
        self, mock_ssl: MagicMock, imap_config: ImapConfig
    ) -> None:
        conn = _mock_imap_connection({})
        mock_ssl.return_value = conn
        mailbox = ImapMailbox(imap_config)

        mailbox.search(SearchQuery(phrase="x"), AFTER, BEFORE)
        mailbox.search(SearchQuery(phrase="y"), AFTER, BEFORE)

        mock_ssl.assert_called_once_with("imap.example.com", 993)
        conn.login.assert_called_once_with("test@example.com", "secret")
        conn.select.assert_called_once_with("INBOX", readonly=True)

    @patch("subscription_scanner.adapters.imap.imaplib.IMAP4_SSL")
    def test_xoauth2_without_password(
        self, mock_ssl: MagicMock, imap_config: ImapConfig
    ) -> None:
        conn = _mock_imap_connection({})
        mock_ssl.return_value = conn
        config = replace(imap_config, password=None)

        ImapMailbox(config, access_token="token-123").search(
            SearchQuery(phrase="x"), AFTER, BEFORE
        )

        conn.login.assert_not_called()
        mechanism, responder = conn.authenticate.call_args[0]
        assert mechanism == "XOAUTH2"
        assert responder(b"") == (
            b"user=test@example.com\x01auth=Bearer token-123\x01\x01"
        )

    @patch("subscription_scanner.adapters.imap.imaplib.IMAP4_SSL")
    def test_no_credential(self, mock_ssl: MagicMock, imap_config: ImapConfig) -> None:
        mock_ssl.return_value = _mock_imap_connection({})
        config = replace(imap_config, password=None)

        with pytest.raises(AuthorizationError):
            ImapMailbox(config).search(SearchQuery(phrase="x"), AFTER, BEFORE)

    @patch("subscription_scanner.adapters.imap.imaplib.IMAP4_SSL")
    def test_rejected_login(self, mock_ssl: MagicMock, imap_config: ImapConfig) -> None:
        conn = _mock_imap_connection({})
        conn.login.side_effect = imaplib.IMAP4.error("AUTHENTICATIONFAILED")
        mock_ssl.return_value = conn

        with pytest.raises(AuthorizationError, match="test@example.com"):
            ImapMailbox(imap_config).search(SearchQuery(phrase="x"), AFTER, BEFORE)

    @patch("subscription_scanner.adapters.imap.imaplib.IMAP4_SSL")
    def test_close_logs_out_once(
        self, mock_ssl: MagicMock, imap_config: ImapConfig
    ) -> None:
        conn = _mock_imap_connection({})
        mock_ssl.return_value = conn

        with ImapMailbox(imap_config) as mailbox:
            mailbox.search(SearchQuery(phrase="x"), AFTER, BEFORE)
        mailbox.close()

        conn.logout.assert_called_once()

    def test_close_without_connection(self, imap_config: ImapConfig) -> None:
        ImapMailbox(imap_config).close()
