"""Refresh-before-use policy for stored LinkedIn tokens."""
from __future__ import annotations
import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Dict, Iterator, List, Optional

from prometheus_client import Counter
from sqlalchemy.orm import Session

from ..db import models
from .token_client import TokenExchangeClient

logger = logging.getLogger(__name__)

TOKEN_REFRESH_COUNT = Counter(
    "content_publisher_token_refresh_total", "Token refresh decisions", ["outcome"]
)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def narrow_scopes(stored: Optional[List[str]], refreshed: List[str]) -> List[str]:
    """Scopes after a refresh: never more than what was granted at connection."""
    stored = list(stored or [])
    if not refreshed:
        return stored
    if not stored:
        return list(refreshed)
    refreshed_set = set(refreshed)
    return [s for s in stored if s in refreshed_set]


class TokenRefreshPolicy:
    """Refreshes an integration's access token when it has expired.

    States:
      * expiry absent or in the future -> returned untouched, no network call
      * expired with a refresh token   -> refreshed and committed
      * expired without refresh token  -> returned untouched (publish fails later)

    Refreshes of one integration are serialized with a per-id lock, and the
    record is re-read under the lock so a second caller sees the token the
    first one just stored.
    """

    def __init__(self, token_client: TokenExchangeClient, clock: Optional[Callable[[], datetime]] = None):
        self.token_client = token_client
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        # integration id -> (lock, number of callers holding or waiting on it)
        self._locks: Dict[str, List] = {}
        self._locks_guard = threading.Lock()

    def needs_refresh(self, integration: models.SocialIntegration) -> bool:
        expires_at = as_utc(integration.token_expires_at)
        return expires_at is not None and expires_at <= self.clock()

    def refresh_if_needed(self, db: Session, integration: models.SocialIntegration) -> models.SocialIntegration:
        if not self.needs_refresh(integration):
            TOKEN_REFRESH_COUNT.labels(outcome="valid").inc()
            return integration
        if not integration.refresh_token:
            TOKEN_REFRESH_COUNT.labels(outcome="no_refresh_token").inc()
            logger.warning("integration %s token expired and no refresh token is stored", integration.id)
            return integration

        with self._lock_for(integration.id):
            db.refresh(integration)
            if not self.needs_refresh(integration):
                TOKEN_REFRESH_COUNT.labels(outcome="refreshed_concurrently").inc()
                return integration
            if not integration.refresh_token:
                TOKEN_REFRESH_COUNT.labels(outcome="no_refresh_token").inc()
                return integration

            tokens = self.token_client.refresh_token(integration.refresh_token)
            integration.access_token = tokens.access_token
            integration.refresh_token = tokens.refresh_token or integration.refresh_token
            integration.token_expires_at = tokens.expires_at
            integration.scopes = narrow_scopes(integration.scopes, tokens.scopes)
            db.commit()
            TOKEN_REFRESH_COUNT.labels(outcome="refreshed").inc()
            logger.info("integration %s token refreshed, expires_at=%s", integration.id, tokens.expires_at)
        return integration

    @contextmanager
    def _lock_for(self, integration_id: str) -> Iterator[None]:
        with self._locks_guard:
            entry = self._locks.setdefault(integration_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[integration_id]
