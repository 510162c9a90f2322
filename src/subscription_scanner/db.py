"""Database connection helper and schema."""

from __future__ import annotations

import logging

import psycopg
from psycopg.rows import dict_row

from subscription_scanner.config import get_database_url

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS subscriptions (
        id UUID PRIMARY KEY,
        user_id TEXT NOT NULL,
        service_name TEXT NOT NULL,
        amount NUMERIC(14, 3) NOT NULL CHECK (amount > 0),
        currency CHAR(3) NOT NULL,
        billing_cycle TEXT NOT NULL,
        next_payment_date TIMESTAMPTZ NOT NULL,
        category TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'active',
        source_message_id TEXT NOT NULL,
        detected_at TIMESTAMPTZ NOT NULL,
        last_email_date TIMESTAMPTZ NOT NULL,
        email_subject TEXT NOT NULL,
        confidence DOUBLE PRECISION NOT NULL,
        receipt_type TEXT NOT NULL,
        language TEXT,
        region TEXT,
        processing_year INTEGER,
        updated_at TIMESTAMPTZ,
        UNIQUE NULLS NOT DISTINCT (user_id, source_message_id, processing_year)
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS subscriptions_user_year_idx
        ON subscriptions (user_id, processing_year)
    """,
    """
    CREATE TABLE IF NOT EXISTS oauth_tokens (
        user_id TEXT PRIMARY KEY,
        access_token TEXT NOT NULL,
        refresh_token TEXT,
        expires_at TIMESTAMPTZ NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
)


def get_connection() -> psycopg.Connection[dict[str, object]]:
    """Create and return a new database connection."""
    return psycopg.connect(get_database_url(), row_factory=dict_row)


def ensure_schema(conn: psycopg.Connection[dict[str, object]]) -> None:
    """Create the tables used by the scanner if they do not exist."""
    with conn.cursor() as cur:
        for statement in SCHEMA_STATEMENTS:
            cur.execute(statement)
    conn.commit()
    logger.debug("Schema ensured")
