"""Spending statistics over stored subscriptions, in USD."""

from __future__ import annotations

import calendar
import logging
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from subscription_scanner.models import DetectedSubscription
    from subscription_scanner.persistence import SubscriptionStore
    from subscription_scanner.rates import CurrencyConverter

logger = logging.getLogger(__name__)

WEEKS_PER_MONTH = Decimal("4.33")
WEEKS_PER_YEAR = 52
UPCOMING_WINDOW_DAYS = 30
TREND_MONTHS = 6
CENT = Decimal("0.01")


class CategorySpend(BaseModel):
    """Active subscriptions and their monthly spend in one category."""

    count: int = 0
    monthly_spend: Decimal = Decimal(0)


class UpcomingPayment(BaseModel):
    """A charge due within the upcoming window."""

    service_name: str
    amount: Decimal
    original_amount: Decimal
    original_currency: str
    next_payment_date: datetime
    days_until_payment: int


class TrendPoint(BaseModel):
    """Monthly-equivalent spend for one calendar month."""

    month: str
    label: str
    spending: Decimal


class CurrencyShare(BaseModel):
    """All subscriptions billed in one currency."""

    currency: str
    count: int
    total_amount: Decimal
    converted_amount: Decimal


class SpendingStats(BaseModel):
    """Aggregate spend for one user, all amounts in USD."""

    total_monthly_spending: Decimal = Decimal(0)
    total_yearly_spending: Decimal = Decimal(0)
    active_subscriptions: int = 0
    trial_subscriptions: int = 0
    cancelled_subscriptions: int = 0
    categories: dict[str, CategorySpend] = Field(default_factory=dict)
    upcoming_payments: list[UpcomingPayment] = Field(default_factory=list)
    monthly_trend: list[TrendPoint] = Field(default_factory=list)
    currency_breakdown: list[CurrencyShare] = Field(default_factory=list)


def monthly_equivalent(amount: Decimal, cycle: str) -> Decimal:
    if cycle == "yearly":
        return amount / 12
    if cycle == "weekly":
        return amount * WEEKS_PER_MONTH
    return amount


def yearly_equivalent(amount: Decimal, cycle: str) -> Decimal:
    if cycle == "monthly":
        return amount * 12
    if cycle == "weekly":
        return amount * WEEKS_PER_YEAR
    return amount


def _cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


class StatsService:
    """Compute SpendingStats from a store and a currency converter."""

    def __init__(
        self,
        store: SubscriptionStore,
        converter: CurrencyConverter,
        *,
        now: datetime | None = None,
    ) -> None:
        self.store = store
        self.converter = converter
        self._now = now

    def get_stats(self, user_id: str, year: int | None = None) -> SpendingStats:
        """Aggregate the user's subscriptions, optionally for one processing year."""
        now = self._now or datetime.now(tz=UTC)
        records = self.store.list(user_id, year)
        converted = [
            (record, self.converter.convert_to_base(record.amount, record.currency))
            for record in records
        ]
        active = [(r, usd) for r, usd in converted if r.status == "active"]

        monthly = sum(
            (monthly_equivalent(usd, r.billing_cycle) for r, usd in active), Decimal(0)
        )
        yearly = sum(
            (yearly_equivalent(usd, r.billing_cycle) for r, usd in active), Decimal(0)
        )

        stats = SpendingStats(
            total_monthly_spending=_cents(monthly),
            total_yearly_spending=_cents(yearly),
            active_subscriptions=len(active),
            trial_subscriptions=sum(1 for r in records if r.status == "trial"),
            cancelled_subscriptions=sum(1 for r in records if r.status == "cancelled"),
            categories=self._categories(active),
            upcoming_payments=self._upcoming(active, now),
            monthly_trend=(
                self._year_trend(active, year, now)
                if year is not None
                else self._recent_trend(active, now)
            ),
            currency_breakdown=self._currency_breakdown(converted),
        )
        logger.info(
            "Stats for %s: %d active, %s USD/month",
            user_id,
            stats.active_subscriptions,
            stats.total_monthly_spending,
        )
        return stats

    @staticmethod
    def _categories(
        active: list[tuple[DetectedSubscription, Decimal]],
    ) -> dict[str, CategorySpend]:
        categories: dict[str, CategorySpend] = {}
        for record, usd in active:
            entry = categories.setdefault(record.category, CategorySpend())
            entry.count += 1
            entry.monthly_spend += monthly_equivalent(usd, record.billing_cycle)
        for entry in categories.values():
            entry.monthly_spend = _cents(entry.monthly_spend)
        return categories

    @staticmethod
    def _upcoming(
        active: list[tuple[DetectedSubscription, Decimal]], now: datetime
    ) -> list[UpcomingPayment]:
        upcoming = []
        for record, usd in active:
            days = (record.next_payment_date.date() - now.date()).days
            if 0 <= days <= UPCOMING_WINDOW_DAYS:
                upcoming.append(
                    UpcomingPayment(
                        service_name=record.service_name,
                        amount=_cents(usd),
                        original_amount=record.amount,
                        original_currency=record.currency,
                        next_payment_date=record.next_payment_date,
                        days_until_payment=days,
                    )
                )
        return sorted(upcoming, key=lambda payment: payment.days_until_payment)

    @staticmethod
    def _year_trend(
        active: list[tuple[DetectedSubscription, Decimal]], year: int, now: datetime
    ) -> list[TrendPoint]:
        """January through the current month (or December for past years)."""
        if year > now.year:
            return []
        last_month = now.month if year == now.year else 12
        points = []
        for month in range(1, last_month + 1):
            month_end = datetime(
                year, month, calendar.monthrange(year, month)[1], 23, 59, 59, tzinfo=UTC
            )
            spending = sum(
                (
                    monthly_equivalent(usd, record.billing_cycle)
                    for record, usd in active
                    if record.last_email_date <= month_end
                ),
                Decimal(0),
            )
            points.append(
                TrendPoint(
                    month=f"{year:04d}-{month:02d}",
                    label=calendar.month_abbr[month],
                    spending=_cents(spending),
                )
            )
        return points

    @staticmethod
    def _recent_trend(
        active: list[tuple[DetectedSubscription, Decimal]], now: datetime
    ) -> list[TrendPoint]:
        """The last six months at the current run rate."""
        run_rate = _cents(
            sum(
                (monthly_equivalent(usd, r.billing_cycle) for r, usd in active),
                Decimal(0),
            )
        )
        points = []
        for offset in range(TREND_MONTHS - 1, -1, -1):
            index = now.year * 12 + now.month - 1 - offset
            year, month = divmod(index, 12)
            points.append(
                TrendPoint(
                    month=f"{year:04d}-{month + 1:02d}",
                    label=calendar.month_abbr[month + 1],
                    spending=run_rate,
                )
            )
        return points

    @staticmethod
    def _currency_breakdown(
        converted: list[tuple[DetectedSubscription, Decimal]],
    ) -> list[CurrencyShare]:
        totals: dict[str, tuple[int, Decimal, Decimal]] = {}
        for record, usd in converted:
            count, original, in_usd = totals.get(
                record.currency, (0, Decimal(0), Decimal(0))
            )
            totals[record.currency] = (count + 1, original + record.amount, in_usd + usd)
        shares = [
            CurrencyShare(
                currency=currency,
                count=count,
                total_amount=_cents(original),
                converted_amount=_cents(in_usd),
            )
            for currency, (count, original, in_usd) in totals.items()
        ]
        return sorted(shares, key=lambda share: share.converted_amount, reverse=True)
