"""CLI entry point for subscription-scanner."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

import click

from subscription_scanner.adapters.imap import parse_message
from subscription_scanner.classifier import classify_message
from subscription_scanner.config import get_detection_settings
from subscription_scanner.db import ensure_schema, get_connection
from subscription_scanner.errors import AuthorizationError, ScanError
from subscription_scanner.gatherer import UndecodableMessageError, decode_message
from subscription_scanner.persistence import PostgresSubscriptionStore
from subscription_scanner.pipeline import build_scanner_from_env
from subscription_scanner.rates import CurrencyConverter
from subscription_scanner.stats import StatsService

if TYPE_CHECKING:
    from collections.abc import Iterable

    from subscription_scanner.models import DetectedSubscription

verbose_option = click.option(
    "-v", "--verbose", is_flag=True, help="Log progress at INFO level."
)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _echo_records(records: Iterable[DetectedSubscription]) -> int:
    count = 0
    for record in records:
        click.echo(
            f"{record.last_email_date:%Y-%m-%d}  {record.service_name:<24} "
            f"{record.amount:>10} {record.currency}  {record.billing_cycle:<8} "
            f"{record.status:<9} next {record.next_payment_date:%Y-%m-%d}  "
            f"conf {record.confidence:.2f}"
        )
        count += 1
    return count


@click.group()
def cli() -> None:
    """Subscription Scanner: find recurring charges in your mailbox."""


@cli.command("init-db")
@verbose_option
def init_db(verbose: bool) -> None:
    """Create the database tables."""
    _configure_logging(verbose)
    with get_connection() as conn:
        ensure_schema(conn)
    click.echo("Schema ready.")


@cli.command()
@click.option("--user", "user_id", required=True, help="User to scan for.")
@click.option(
    "--year",
    type=int,
    default=lambda: datetime.now(tz=UTC).year,
    show_default="current year",
    help="Calendar year to scan.",
)
@click.option(
    "--no-semantic",
    is_flag=True,
    help="Skip semantic validation and keep every Stage-1 candidate.",
)
@verbose_option
def scan(user_id: str, year: int, no_semantic: bool, verbose: bool) -> None:
    """Scan one year of a user's mailbox and store detected subscriptions."""
    _configure_logging(verbose)
    try:
        scanner = build_scanner_from_env(semantic=not no_semantic)
        records = scanner.run_scan(user_id, year)
    except AuthorizationError as exc:
        click.echo(f"Not authorized: {exc}", err=True)
        raise SystemExit(2) from exc
    except (ScanError, ValueError) as exc:
        raise click.ClickException(str(exc)) from exc

    count = _echo_records(records)
    click.echo(f"{count} subscription(s) stored for {year}.")


@cli.command("list")
@click.option("--user", "user_id", required=True, help="User whose records to list.")
@click.option("--year", type=int, default=None, help="Only this processing year.")
@verbose_option
def list_records(user_id: str, year: int | None, verbose: bool) -> None:
    """List stored subscriptions."""
    _configure_logging(verbose)
    try:
        records = PostgresSubscriptionStore().list(user_id, year)
    except (ScanError, ValueError) as exc:
        raise click.ClickException(str(exc)) from exc

    if not _echo_records(records):
        click.echo("No subscriptions found.")


@cli.command()
@click.option("--user", "user_id", required=True, help="User to summarize.")
@click.option("--year", type=int, default=None, help="Only this processing year.")
@verbose_option
def stats(user_id: str, year: int | None, verbose: bool) -> None:
    """Print spending statistics in USD."""
    _configure_logging(verbose)
    try:
        service = StatsService(PostgresSubscriptionStore(), CurrencyConverter())
        result = service.get_stats(user_id, year)
    except (ScanError, ValueError) as exc:
        raise click.ClickException(str(exc)) from exc

    click.echo(f"Monthly spend:  {result.total_monthly_spending} USD")
    click.echo(f"Yearly spend:   {result.total_yearly_spending} USD")
    click.echo(
        f"Subscriptions:  {result.active_subscriptions} active, "
        f"{result.trial_subscriptions} trial, "
        f"{result.cancelled_subscriptions} cancelled"
    )
    for name, category in sorted(result.categories.items()):
        click.echo(f"  {name:<16} {category.count:>3}  {category.monthly_spend} USD/mo")
    if result.upcoming_payments:
        click.echo("Upcoming:")
        for payment in result.upcoming_payments:
            click.echo(
                f"  {payment.next_payment_date:%Y-%m-%d}  {payment.service_name:<24} "
                f"{payment.original_amount} {payment.original_currency} "
                f"(in {payment.days_until_payment} days)"
            )
    if result.currency_breakdown:
        click.echo("By currency:")
        for share in result.currency_breakdown:
            click.echo(
                f"  {share.currency}  {share.count:>3}  {share.total_amount} "
                f"= {share.converted_amount} USD"
            )


@cli.command()
@click.argument(
    "eml_file", type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
@verbose_option
def check(eml_file: Path, verbose: bool) -> None:
    """Run Stage 1 on a saved .eml file and show which gate decided."""
    _configure_logging(verbose)
    message = parse_message(eml_file.read_bytes())
    try:
        subject, body, sender, sent_at = decode_message(message)
    except UndecodableMessageError as exc:
        raise click.ClickException(f"Cannot decode {eml_file.name}: {exc}") from exc

    result = classify_message(subject, body, sender, get_detection_settings())
    locale = result.locale
    click.echo(f"Subject:  {subject}")
    click.echo(f"From:     {sender}")
    click.echo(f"Date:     {sent_at:%Y-%m-%d}")
    click.echo(f"Locale:   {locale.language}-{locale.region} ({locale.currency})")
    if not result.passed:
        click.echo(f"Rejected at {result.rejected_by} gate: {result.reason}")
        return

    amount, service = result.amount, result.service
    if amount is not None and service is not None:
        click.echo(f"Service:  {service.name} ({service.category})")
        click.echo(f"Amount:   {amount.value} {amount.currency}")
    click.echo(f"Passed Stage 1 with confidence {result.confidence:.2f}")
