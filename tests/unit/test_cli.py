"""Tests for subscription_scanner.cli."""

from __future__ import annotations

from decimal import Decimal
from email.mime.text import MIMEText
from typing import TYPE_CHECKING
from unittest.mock import MagicMock, patch

from click.testing import CliRunner

from subscription_scanner.cli import cli
from subscription_scanner.errors import AuthorizationError, TransportError
from subscription_scanner.stats import CategorySpend, CurrencyShare, SpendingStats

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from subscription_scanner.models import DetectedSubscription


def _write_eml(
    path: Path,
    *,
    subject: str,
    body: str,
    sender: str = "billing@netflix.com",
    date: str | None = "Sat, 15 Jun 2024 10:30:00 +0000",
) -> Path:
    msg = MIMEText(body, "plain")
    msg["Subject"] = subject
    msg["From"] = sender
    if date:
        msg["Date"] = date
    msg["Message-ID"] = "<cli-1@example.com>"
    path.write_bytes(msg.as_bytes())
    return path


class TestCheckCommand:
    """Tests for the check command."""

    def test_receipt_passes(self, tmp_path: Path) -> None:
        eml = _write_eml(
            tmp_path / "netflix.eml",
            subject="Payment Receipt - Netflix",
            body="Amount charged: $15.99, monthly subscription renewed",
        )

        result = CliRunner().invoke(cli, ["check", str(eml)])

        assert result.exit_code == 0, result.output
        assert "Locale:   en-US (USD)" in result.output
        assert "Service:  Netflix (Entertainment)" in result.output
        assert "Amount:   15.99 USD" in result.output
        assert "Passed Stage 1 with confidence 0.95" in result.output

    def test_welcome_rejected(self, tmp_path: Path) -> None:
        eml = _write_eml(
            tmp_path / "welcome.eml",
            subject="Welcome to Netflix",
            body="Welcome! Your membership starts today.",
        )

        result = CliRunner().invoke(cli, ["check", str(eml)])

        assert result.exit_code == 0, result.output
        assert "Rejected at exclusion gate" in result.output

    def test_undated_message_fails(self, tmp_path: Path) -> None:
        eml = _write_eml(
            tmp_path / "undated.eml",
            subject="Payment Receipt - Netflix",
            body="Amount charged: $15.99",
            date=None,
        )

        result = CliRunner().invoke(cli, ["check", str(eml)])

        assert result.exit_code == 1
        assert "Cannot decode undated.eml" in result.output

    def test_missing_file(self, tmp_path: Path) -> None:
        result = CliRunner().invoke(cli, ["check", str(tmp_path / "nope.eml")])
        assert result.exit_code == 2


class TestScanCommand:
    """Tests for the scan command."""

    @patch("subscription_scanner.cli.build_scanner_from_env")
    def test_prints_stored_records(
        self,
        mock_build: MagicMock,
        make_subscription: Callable[..., DetectedSubscription],
    ) -> None:
        mock_build.return_value.run_scan.return_value = [make_subscription()]

        result = CliRunner().invoke(
            cli, ["scan", "--user", "user-1", "--year", "2024", "--no-semantic"]
        )

        assert result.exit_code == 0, result.output
        mock_build.assert_called_once_with(semantic=False)
        mock_build.return_value.run_scan.assert_called_once_with("user-1", 2024)
        assert "Netflix" in result.output
        assert "next 2024-07-15" in result.output
        assert "1 subscription(s) stored for 2024." in result.output

    @patch("subscription_scanner.cli.build_scanner_from_env")
    def test_unauthorized_exits_with_2(self, mock_build: MagicMock) -> None:
        mock_build.return_value.run_scan.side_effect = AuthorizationError("no token")

        result = CliRunner().invoke(cli, ["scan", "--user", "user-1", "--year", "2024"])

        assert result.exit_code == 2
        assert "Not authorized: no token" in result.output
        mock_build.assert_called_once_with(semantic=True)

    @patch("subscription_scanner.cli.build_scanner_from_env")
    def test_other_failures_exit_with_1(self, mock_build: MagicMock) -> None:
        mock_build.return_value.run_scan.side_effect = TransportError("imap down")

        result = CliRunner().invoke(cli, ["scan", "--user", "user-1", "--year", "2024"])

        assert result.exit_code == 1
        assert "imap down" in result.output

    @patch("subscription_scanner.cli.build_scanner_from_env")
    def test_bad_configuration(self, mock_build: MagicMock) -> None:
        mock_build.side_effect = ValueError("MAILBOX_BACKEND must be gmail or imap")

        result = CliRunner().invoke(cli, ["scan", "--user", "user-1"])

        assert result.exit_code == 1
        assert "MAILBOX_BACKEND" in result.output


class TestListCommand:
    """Tests for the list command."""

    @patch("subscription_scanner.cli.PostgresSubscriptionStore")
    def test_lists_records(
        self,
        mock_store: MagicMock,
        make_subscription: Callable[..., DetectedSubscription],
    ) -> None:
        mock_store.return_value.list.return_value = [make_subscription()]

        result = CliRunner().invoke(cli, ["list", "--user", "user-1", "--year", "2024"])

        assert result.exit_code == 0, result.output
        mock_store.return_value.list.assert_called_once_with("user-1", 2024)
        assert "Netflix" in result.output

    @patch("subscription_scanner.cli.PostgresSubscriptionStore")
    def test_empty(self, mock_store: MagicMock) -> None:
        mock_store.return_value.list.return_value = []

        result = CliRunner().invoke(cli, ["list", "--user", "user-1"])

        assert result.exit_code == 0
        assert "No subscriptions found." in result.output
        mock_store.return_value.list.assert_called_once_with("user-1", None)


class TestStatsCommand:
    """Tests for the stats command."""

    @patch("subscription_scanner.cli.CurrencyConverter")
    @patch("subscription_scanner.cli.PostgresSubscriptionStore")
    @patch("subscription_scanner.cli.StatsService")
    def test_prints_summary(
        self,
        mock_service: MagicMock,
        _mock_store: MagicMock,
        _mock_converter: MagicMock,
    ) -> None:
        mock_service.return_value.get_stats.return_value = SpendingStats(
            total_monthly_spending=Decimal("25.99"),
            total_yearly_spending=Decimal("311.88"),
            active_subscriptions=2,
            trial_subscriptions=1,
            categories={
                "Entertainment": CategorySpend(count=1, monthly_spend=Decimal("15.99"))
            },
            currency_breakdown=[
                CurrencyShare(
                    currency="EUR",
                    count=1,
                    total_amount=Decimal("9.00"),
                    converted_amount=Decimal("10.00"),
                )
            ],
        )

        result = CliRunner().invoke(cli, ["stats", "--user", "user-1"])

        assert result.exit_code == 0, result.output
        mock_service.return_value.get_stats.assert_called_once_with("user-1", None)
        assert "Monthly spend:  25.99 USD" in result.output
        assert "Yearly spend:   311.88 USD" in result.output
        assert "2 active, 1 trial, 0 cancelled" in result.output
        assert "Entertainment" in result.output
        assert "EUR" in result.output
        assert "= 10.00 USD" in result.output
