"""Mailbox credential providers and OAuth token storage."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import httpx
import psycopg

from subscription_scanner.db import get_connection
from subscription_scanner.errors import PersistenceError, TransportError

if TYPE_CHECKING:
    from collections.abc import Callable

    from subscription_scanner.config import OAuthClientConfig

logger = logging.getLogger(__name__)

REFRESH_BUFFER = timedelta(minutes=5)
DEFAULT_TOKEN_LIFETIME = 3600
REQUEST_TIMEOUT = 10.0


@runtime_checkable
class CredentialProvider(Protocol):
    """Protocol for mailbox credential sources."""

    def is_authorized(self, user_id: str) -> bool: ...

    def get_valid_access_token(self, user_id: str) -> str | None: ...


@dataclass(frozen=True)
class StoredToken:
    """An OAuth token pair as kept in the token store."""

    access_token: str
    expires_at: datetime
    refresh_token: str | None = None


class TokenStore(Protocol):
    """Protocol for per-user OAuth token storage."""

    def load(self, user_id: str) -> StoredToken | None: ...

    def save(self, user_id: str, token: StoredToken) -> None: ...


class InMemoryTokenStore:
    """Dict-backed TokenStore."""

    def __init__(self, tokens: dict[str, StoredToken] | None = None) -> None:
        self.tokens: dict[str, StoredToken] = dict(tokens or {})

    def load(self, user_id: str) -> StoredToken | None:
        return self.tokens.get(user_id)

    def save(self, user_id: str, token: StoredToken) -> None:
        self.tokens[user_id] = token


class PostgresTokenStore:
    """TokenStore backed by the ``oauth_tokens`` table."""

    def __init__(
        self,
        connect: Callable[[], psycopg.Connection[dict[str, object]]] = get_connection,
    ) -> None:
        self._connect = connect

    def load(self, user_id: str) -> StoredToken | None:
        try:
            with self._connect() as conn, conn.cursor() as cur:
                cur.execute(
                    "SELECT access_token, refresh_token, expires_at "
                    "FROM oauth_tokens WHERE user_id = %s",
                    (user_id,),
                )
                row = cur.fetchone()
        except psycopg.Error as exc:
            raise PersistenceError(str(exc)) from exc
        if row is None:
            return None
        return StoredToken(
            access_token=str(row["access_token"]),
            refresh_token=row["refresh_token"],  # type: ignore[arg-type]
            expires_at=row["expires_at"],  # type: ignore[arg-type]
        )

    def save(self, user_id: str, token: StoredToken) -> None:
        try:
            with self._connect() as conn, conn.cursor() as cur:
                cur.execute(
                    "INSERT INTO oauth_tokens "
                    "(user_id, access_token, refresh_token, expires_at, updated_at) "
                    "VALUES (%s, %s, %s, %s, now()) "
                    "ON CONFLICT (user_id) DO UPDATE SET "
                    "access_token = EXCLUDED.access_token, "
                    "refresh_token = EXCLUDED.refresh_token, "
                    "expires_at = EXCLUDED.expires_at, "
                    "updated_at = now()",
                    (user_id, token.access_token, token.refresh_token, token.expires_at),
                )
        except psycopg.Error as exc:
            raise PersistenceError(str(exc)) from exc


class OAuthCredentialProvider:
    """Serve stored access tokens, refreshing them shortly before expiry.

    Returns None when the user has no token or the refresh grant is
    rejected; network failures during a refresh raise TransportError.
    """

    def __init__(
        self,
        store: TokenStore,
        client_config: OAuthClientConfig,
        *,
        client: httpx.Client | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.client_config = client_config
        self._client = client
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    def is_authorized(self, user_id: str) -> bool:
        token = self.store.load(user_id)
        if token is None:
            return False
        return token.refresh_token is not None or not self._expiring(token)

    def get_valid_access_token(self, user_id: str) -> str | None:
        token = self.store.load(user_id)
        if token is None:
            logger.info("No stored token for %s", user_id)
            return None
        if not self._expiring(token):
            return token.access_token
        if token.refresh_token is None:
            logger.warning("Token for %s expired and cannot be refreshed", user_id)
            return None

        refreshed = self._refresh(token)
        if refreshed is None:
            return None
        self.store.save(user_id, refreshed)
        logger.info("Refreshed access token for %s", user_id)
        return refreshed.access_token

    def _expiring(self, token: StoredToken) -> bool:
        return token.expires_at - self._clock() <= REFRESH_BUFFER

    def _refresh(self, token: StoredToken) -> StoredToken | None:
        data = {
            "client_id": self.client_config.client_id,
            "client_secret": self.client_config.client_secret,
            "refresh_token": token.refresh_token,
            "grant_type": "refresh_token",
        }
        try:
            if self._client is not None:
                response = self._client.post(self.client_config.token_url, data=data)
            else:
                with httpx.Client(timeout=REQUEST_TIMEOUT) as client:
                    response = client.post(self.client_config.token_url, data=data)
        except httpx.HTTPError as exc:
            raise TransportError(str(exc)) from exc

        if response.status_code in (400, 401):
            logger.warning("Refresh grant rejected: %s", response.text)
            return None
        if response.is_error:
            msg = f"Token endpoint returned {response.status_code}"
            raise TransportError(msg)

        payload = response.json()
        lifetime = int(payload.get("expires_in", DEFAULT_TOKEN_LIFETIME))
        return StoredToken(
            access_token=payload["access_token"],
            expires_at=self._clock() + timedelta(seconds=lifetime),
            refresh_token=payload.get("refresh_token", token.refresh_token),
        )


class StaticTokenProvider:
    """Serve a fixed access token from configuration to every user."""

    def __init__(self, token: str | None) -> None:
        self._token = token

    def is_authorized(self, user_id: str) -> bool:
        return bool(self._token)

    def get_valid_access_token(self, user_id: str) -> str | None:
        return self._token or None
