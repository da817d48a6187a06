"""OAuth session manager for the LinkedIn authorization-code + PKCE flow.

Generates the per-attempt secrets (state, code verifier), derives the S256
challenge, builds the authorization URL and keeps the handshake in a
session-scoped store until the provider redirects back.
"""
from __future__ import annotations
import base64
import hashlib
import logging
import secrets
import time
from dataclasses import dataclass, asdict
from typing import Optional, Callable, Tuple
from urllib.parse import urlencode, quote

from prometheus_client import Counter, Gauge

from ..config import LinkedInSettings
from ..errors import ConfigurationError
from .state_store import StateStore, MemoryStateStore, RedisStateStore

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://www.linkedin.com/oauth/v2/authorization"

OAUTH_START_COUNT = Counter(
    "content_publisher_oauth_start_total", "OAuth handshakes started", ["provider"]
)
OAUTH_STATE_SIZE = Gauge(
    "content_publisher_oauth_state_store_size", "Number of pending OAuth handshakes", ["backend"]
)


@dataclass
class Handshake:
    state: str
    code_verifier: str
    team_id: Optional[str]
    created_at: float
    user_id: Optional[str] = None


class OAuthSessionManager:
    SESSION_KEY = "linkedin.oauth"
    STATE_BYTES = 30       # 40 url-safe characters
    VERIFIER_BYTES = 72    # 96 url-safe characters

    def __init__(
        self,
        settings: LinkedInSettings,
        state_store: StateStore,
        time_provider: Optional[Callable[[], float]] = None,
    ):
        self.settings = settings
        self.state_store = state_store
        self.time_provider = time_provider or time.time

    # --- secret material ---
    def generate_state(self) -> str:
        return secrets.token_urlsafe(self.STATE_BYTES)

    def generate_code_verifier(self) -> str:
        return secrets.token_urlsafe(self.VERIFIER_BYTES)

    @staticmethod
    def derive_code_challenge(code_verifier: str) -> str:
        digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
        return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")

    def authorization_url(self, state: str, code_verifier: str) -> str:
        if not self.settings.is_configured:
            raise ConfigurationError("OAUTH_CONFIG_MISSING", "LinkedIn OAuth credentials not configured")
        code_challenge = self.derive_code_challenge(code_verifier)
        params = {
            "response_type": "code",
            "client_id": self.settings.client_id,
            "redirect_uri": self.settings.redirect_uri,
            "state": state,
            "scope": " ".join(self.settings.scopes),
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        logger.info(
            "LinkedIn OAuth: generating authorization URL redirect_uri=%s client_id_tail=%s scopes=%s "
            "verifier_len=%d challenge_len=%d state_len=%d",
            self.settings.redirect_uri,
            self.settings.client_id[-4:],
            params["scope"],
            len(code_verifier),
            len(code_challenge),
            len(state),
        )
        return f"{AUTHORIZE_URL}?{urlencode(params, quote_via=quote)}"

    # --- handshake lifecycle ---
    def begin(
        self, session_id: str, team_id: Optional[str], user_id: Optional[str] = None
    ) -> Tuple[Handshake, str]:
        """Start one authorization attempt and return it with the redirect URL."""
        handshake = Handshake(
            state=self.generate_state(),
            code_verifier=self.generate_code_verifier(),
            team_id=team_id,
            created_at=self.time_provider(),
            user_id=user_id,
        )
        url = self.authorization_url(handshake.state, handshake.code_verifier)
        self.state_store.put(self._key(session_id), asdict(handshake), handshake.created_at)
        OAUTH_START_COUNT.labels(provider="linkedin").inc()
        OAUTH_STATE_SIZE.labels(backend=self._backend_label()).set(self.state_store.size())
        return handshake, url

    def consume(self, session_id: str) -> Optional[Handshake]:
        data = self.state_store.pull(self._key(session_id))
        OAUTH_STATE_SIZE.labels(backend=self._backend_label()).set(self.state_store.size())
        if not data:
            return None
        return Handshake(
            state=data.get("state") or "",
            code_verifier=data.get("code_verifier") or "",
            team_id=data.get("team_id"),
            created_at=float(data.get("created_at") or 0.0),
            user_id=data.get("user_id"),
        )

    def _key(self, session_id: str) -> str:
        return f"{self.SESSION_KEY}:{session_id}"

    def _backend_label(self) -> str:
        if isinstance(self.state_store, RedisStateStore):
            return "redis"
        if isinstance(self.state_store, MemoryStateStore):
            return "memory"
        return "custom"
