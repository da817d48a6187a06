"""LinkedIn token endpoint client.

Performs the authorization-code exchange and the refresh-token exchange and
normalizes both responses into a ``TokenSet``.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

import requests
from opentelemetry import trace
from prometheus_client import Counter, Histogram

from ..config import LinkedInSettings
from ..errors import ConfigurationError, TokenExchangeError
from .http_retry import send_with_retry

logger = logging.getLogger(__name__)
_tracer = trace.get_tracer(__name__)

TOKEN_URL = "https://www.linkedin.com/oauth/v2/accessToken"

OAUTH_EXCHANGE_COUNT = Counter(
    "content_publisher_oauth_exchange_total", "Token endpoint calls", ["grant_type", "outcome"]
)
OAUTH_EXCHANGE_LATENCY = Histogram(
    "content_publisher_oauth_exchange_duration_seconds", "Token endpoint latency", ["grant_type"]
)


def parse_scopes(raw: Union[str, Iterable[str], None]) -> List[str]:
    """Scopes arrive either space-delimited or as a JSON array."""
    if raw is None:
        return []
    if isinstance(raw, str):
        return [s for s in raw.replace(",", " ").split() if s]
    return [str(s) for s in raw if s]


def validate_scopes(granted: Iterable[str], required: Iterable[str]) -> List[str]:
    """Return the required scopes that were not granted (empty means valid)."""
    granted_set = set(granted)
    return [s for s in required if s not in granted_set]


@dataclass
class TokenSet:
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    expires_at: Optional[datetime] = None
    scopes: List[str] = field(default_factory=list)

    @classmethod
    def from_response(cls, data: Dict[str, Any], now: datetime) -> "TokenSet":
        access_token = data.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise TokenExchangeError(200, data, "token response missing access_token")
        refresh_token = data.get("refresh_token")
        expires_in_raw = data.get("expires_in")
        try:
            expires_in = int(expires_in_raw) if expires_in_raw is not None else None
        except (TypeError, ValueError):
            raise TokenExchangeError(200, data, "token response has a non-numeric expires_in")
        return cls(
            access_token=access_token,
            refresh_token=refresh_token if isinstance(refresh_token, str) and refresh_token else None,
            expires_in=expires_in,
            expires_at=now + timedelta(seconds=expires_in) if expires_in is not None else None,
            scopes=parse_scopes(data.get("scope")),
        )


class TokenExchangeClient:
    def __init__(
        self,
        settings: LinkedInSettings,
        session: Optional[requests.Session] = None,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.settings = settings
        self.session = session or requests.Session()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.sleep = sleep

    def exchange_code(self, code: str, code_verifier: str) -> TokenSet:
        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.settings.redirect_uri,
            "code_verifier": code_verifier,
        }
        logger.info(
            "LinkedIn OAuth: exchanging code code_len=%d code_prefix=%s... verifier_len=%d redirect_uri=%s",
            len(code), code[:10], len(code_verifier), self.settings.redirect_uri,
        )
        return self._post_token(payload)

    def refresh_token(self, refresh_token: str) -> TokenSet:
        payload = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }
        return self._post_token(payload)

    def _post_token(self, payload: Dict[str, str]) -> TokenSet:
        if not self.settings.client_id or not self.settings.client_secret:
            raise ConfigurationError("OAUTH_CONFIG_MISSING", "LinkedIn OAuth credentials not configured")
        grant_type = payload["grant_type"]

        def send() -> requests.Response:
            return self.session.post(
                TOKEN_URL,
                data=payload,
                auth=(self.settings.client_id, self.settings.client_secret),
                headers={"Accept": "application/json"},
                timeout=self.settings.request_timeout,
            )

        with _tracer.start_as_current_span("linkedin.token_exchange") as span:
            span.set_attribute("oauth.grant_type", grant_type)
            try:
                with OAUTH_EXCHANGE_LATENCY.labels(grant_type=grant_type).time():
                    response = send_with_retry(
                        send,
                        retries=self.settings.max_retries,
                        backoff_seconds=self.settings.retry_backoff_seconds,
                        label=f"LinkedIn token ({grant_type})",
                        sleep=self.sleep,
                    )
            except requests.RequestException as exc:
                OAUTH_EXCHANGE_COUNT.labels(grant_type=grant_type, outcome="error").inc()
                logger.error("LinkedIn token request failed before a response: %s", exc)
                raise TokenExchangeError(None, str(exc)) from exc
            span.set_attribute("http.status_code", response.status_code)

        if not response.ok:
            body = _response_body(response)
            OAUTH_EXCHANGE_COUNT.labels(grant_type=grant_type, outcome="error").inc()
            logger.error(
                "LinkedIn token request failed status=%d grant_type=%s body=%s client_id_tail=%s "
                "code_len=%s verifier_len=%s",
                response.status_code,
                grant_type,
                body,
                self.settings.client_id[-4:],
                len(payload["code"]) if "code" in payload else None,
                len(payload["code_verifier"]) if "code_verifier" in payload else None,
            )
            raise TokenExchangeError(response.status_code, body)

        data = _response_body(response)
        if not isinstance(data, dict):
            OAUTH_EXCHANGE_COUNT.labels(grant_type=grant_type, outcome="error").inc()
            raise TokenExchangeError(response.status_code, data, "token response is not a JSON object")
        tokens = TokenSet.from_response(data, self.clock())
        OAUTH_EXCHANGE_COUNT.labels(grant_type=grant_type, outcome="success").inc()
        logger.info(
            "LinkedIn OAuth: token request successful grant_type=%s has_refresh=%s expires_in=%s",
            grant_type, bool(tokens.refresh_token), tokens.expires_in,
        )
        return tokens


def _response_body(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
