"""Environment-driven settings for the LinkedIn integration.

Values are read once per process (``get_linkedin_settings`` is cached); tests
build ``LinkedInSettings`` directly instead of touching the environment.
"""
from __future__ import annotations
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List

DEFAULT_SCOPES = "openid profile w_member_social r_basicprofile"


def _split_scopes(raw: str) -> List[str]:
    return [s for s in raw.replace(",", " ").split() if s]


@dataclass(frozen=True)
class LinkedInSettings:
    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = ""
    scopes: List[str] = field(default_factory=lambda: _split_scopes(DEFAULT_SCOPES))
    request_timeout: float = 30.0
    max_retries: int = 2
    retry_backoff_seconds: float = 0.2

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.redirect_uri)

    @classmethod
    def from_env(cls) -> "LinkedInSettings":
        app_url = os.getenv("APP_URL", "http://localhost:8000").rstrip("/")
        return cls(
            client_id=os.getenv("LINKEDIN_CLIENT_ID", ""),
            client_secret=os.getenv("LINKEDIN_CLIENT_SECRET", ""),
            redirect_uri=os.getenv(
                "LINKEDIN_REDIRECT_URI", f"{app_url}/integrations/linkedin/callback-member"
            ),
            scopes=_split_scopes(os.getenv("LINKEDIN_SCOPES", DEFAULT_SCOPES)),
            request_timeout=float(os.getenv("LINKEDIN_HTTP_TIMEOUT", "30")),
        )


@lru_cache(maxsize=1)
def get_linkedin_settings() -> LinkedInSettings:
    return LinkedInSettings.from_env()


def settings_url() -> str:
    return os.getenv("SETTINGS_URL", "/team-settings")
