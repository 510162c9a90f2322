"""Subscription stores, batch deduplication and idempotent persistence."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Protocol

import psycopg

from subscription_scanner.db import get_connection
from subscription_scanner.errors import PersistenceError
from subscription_scanner.models import DetectedSubscription

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from uuid import UUID

logger = logging.getLogger(__name__)

DUPLICATE_TOLERANCE = Decimal("0.01")

_COLUMNS = tuple(DetectedSubscription.model_fields)
_IMMUTABLE = frozenset({"id", "detected_at"})

_UPSERT_SQL = (
    "INSERT INTO subscriptions ("
    + ", ".join(_COLUMNS)
    + ") VALUES ("
    + ", ".join(f"%({column})s" for column in _COLUMNS)
    + ") ON CONFLICT (id) DO UPDATE SET "
    + ", ".join(
        f"{column} = EXCLUDED.{column}"
        for column in _COLUMNS
        if column not in _IMMUTABLE
    )
    + " RETURNING *"
)


class SubscriptionStore(Protocol):
    """Protocol for subscription record storage backends."""

    def find(
        self, user_id: str, message_id: str, year: int | None = None
    ) -> DetectedSubscription | None: ...

    def upsert(self, record: DetectedSubscription) -> DetectedSubscription: ...

    def list(
        self, user_id: str, year: int | None = None
    ) -> list[DetectedSubscription]: ...


class InMemorySubscriptionStore:
    """Dict-backed SubscriptionStore, keyed by record id."""

    def __init__(self) -> None:
        self.records: dict[UUID, DetectedSubscription] = {}

    def find(
        self, user_id: str, message_id: str, year: int | None = None
    ) -> DetectedSubscription | None:
        for record in self.records.values():
            if (
                record.user_id == user_id
                and record.source_message_id == message_id
                and record.processing_year == year
            ):
                return record
        return None

    def upsert(self, record: DetectedSubscription) -> DetectedSubscription:
        self.records[record.id] = record
        return record

    def list(
        self, user_id: str, year: int | None = None
    ) -> list[DetectedSubscription]:
        return [
            record
            for record in self.records.values()
            if record.user_id == user_id
            and (year is None or record.processing_year == year)
        ]


class PostgresSubscriptionStore:
    """SubscriptionStore backed by the ``subscriptions`` table.

    Database errors surface as PersistenceError.
    """

    def __init__(
        self,
        connect: Callable[[], psycopg.Connection[dict[str, object]]] = get_connection,
    ) -> None:
        self._connect = connect

    def find(
        self, user_id: str, message_id: str, year: int | None = None
    ) -> DetectedSubscription | None:
        row = self._fetch_one(
            "SELECT * FROM subscriptions WHERE user_id = %s "
            "AND source_message_id = %s AND processing_year IS NOT DISTINCT FROM %s",
            (user_id, message_id, year),
        )
        return DetectedSubscription.model_validate(row) if row else None

    def upsert(self, record: DetectedSubscription) -> DetectedSubscription:
        row = self._fetch_one(_UPSERT_SQL, record.model_dump())
        if row is None:
            msg = f"Upsert of {record.id} returned no row"
            raise PersistenceError(msg)
        return DetectedSubscription.model_validate(row)

    def list(
        self, user_id: str, year: int | None = None
    ) -> list[DetectedSubscription]:
        query = "SELECT * FROM subscriptions WHERE user_id = %s"
        params: tuple[object, ...] = (user_id,)
        if year is not None:
            query += " AND processing_year = %s"
            params = (user_id, year)
        query += " ORDER BY last_email_date DESC"
        try:
            with self._connect() as conn, conn.cursor() as cur:
                cur.execute(query, params)
                rows = cur.fetchall()
        except psycopg.Error as exc:
            raise PersistenceError(str(exc)) from exc
        return [DetectedSubscription.model_validate(row) for row in rows]

    def _fetch_one(
        self, query: str, params: tuple[object, ...] | dict[str, object]
    ) -> dict[str, object] | None:
        try:
            with self._connect() as conn, conn.cursor() as cur:
                cur.execute(query, params)
                return cur.fetchone()
        except psycopg.Error as exc:
            raise PersistenceError(str(exc)) from exc


def collapse_duplicates(
    records: Iterable[DetectedSubscription],
) -> list[DetectedSubscription]:
    """Drop near-duplicates within one batch, keeping the first seen.

    Two records collide when they share the service name and currency,
    their amounts differ by at most one cent, and they come from
    different messages (forwarded copies, reply chains).
    """
    kept: list[DetectedSubscription] = []
    for record in records:
        duplicate = next((k for k in kept if _same_charge(k, record)), None)
        if duplicate is not None:
            logger.debug(
                "Collapsing %s (%s) into %s",
                record.source_message_id,
                record.service_name,
                duplicate.source_message_id,
            )
            continue
        kept.append(record)
    return kept


def _same_charge(a: DetectedSubscription, b: DetectedSubscription) -> bool:
    if a.id == b.id:
        return True
    return (
        a.source_message_id != b.source_message_id
        and a.service_name.casefold() == b.service_name.casefold()
        and a.currency == b.currency
        and abs(a.amount - b.amount) <= DUPLICATE_TOLERANCE
    )


@dataclass
class PersistReport:
    """What a persistence pass did."""

    records: list[DetectedSubscription] = field(default_factory=list)
    inserted: int = 0
    updated: int = 0
    failed: int = 0


def persist_subscriptions(
    store: SubscriptionStore,
    records: Iterable[DetectedSubscription],
    *,
    now: datetime | None = None,
) -> PersistReport:
    """Find-then-update-or-insert each record; one failure never stops the batch.

    Updates keep the stored id and detection time and stamp ``updated_at``.
    """
    now = now or datetime.now(tz=UTC)
    report = PersistReport()

    for record in records:
        try:
            existing = store.find(
                record.user_id, record.source_message_id, record.processing_year
            )
            to_store = record
            if existing is not None:
                to_store = record.model_copy(
                    update={
                        "id": existing.id,
                        "detected_at": existing.detected_at,
                        "updated_at": now,
                    }
                )
            stored = store.upsert(to_store)
        except PersistenceError:
            logger.error(
                "Failed to persist %s from message %s",
                record.service_name,
                record.source_message_id,
                exc_info=True,
            )
            report.failed += 1
            continue

        if existing is not None:
            report.updated += 1
            logger.info("Updated %s (%s)", stored.service_name, stored.id)
        else:
            report.inserted += 1
            logger.info("Inserted %s (%s)", stored.service_name, stored.id)
        report.records.append(stored)

    return report
