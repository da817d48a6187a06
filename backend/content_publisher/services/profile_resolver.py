"""LinkedIn member profile lookup.

``/v2/userinfo`` (OpenID Connect) is the primary identity source and must
succeed. The legacy ``/v2/me`` projection only adds the vanity name and a
fallback picture, so its failure is tolerated.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import requests

from ..config import LinkedInSettings
from ..errors import ProfileFetchError
from .http_retry import send_with_retry

logger = logging.getLogger(__name__)

USERINFO_URL = "https://api.linkedin.com/v2/userinfo"
ME_URL = (
    "https://api.linkedin.com/v2/me?projection=(id,localizedFirstName,localizedLastName,"
    "vanityName,profilePicture(displayImage~:playableStreams))"
)
REST_VERSION = "202405"


@dataclass
class LinkedInProfile:
    platform_user_id: str
    name: Optional[str] = None
    username: Optional[str] = None
    picture: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def display_name(self) -> Optional[str]:
        return self.username or self.name


def _largest_picture(me: Dict[str, Any]) -> Optional[str]:
    elements = ((me.get("profilePicture") or {}).get("displayImage~") or {}).get("elements") or []

    def width(element: Dict[str, Any]) -> int:
        size = (((element.get("data") or {}).get("com.linkedin.digitalmedia.mediaartifact.StillImage") or {})
                .get("storageSize") or {})
        return int(size.get("width") or 0)

    for element in sorted(elements, key=width, reverse=True):
        for ident in element.get("identifiers") or []:
            if ident.get("identifier"):
                return ident["identifier"]
    return None


class ProfileResolver:
    def __init__(
        self,
        settings: LinkedInSettings,
        session: Optional[requests.Session] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.settings = settings
        self.session = session or requests.Session()
        self.sleep = sleep

    def resolve(self, access_token: str) -> LinkedInProfile:
        userinfo = self._get(USERINFO_URL, access_token, "userinfo")
        try:
            me = self._get(ME_URL, access_token, "me")
        except ProfileFetchError as exc:
            logger.warning("LinkedIn legacy profile unavailable, continuing without it: %s", exc.message)
            me = {}

        platform_user_id = userinfo.get("sub") or me.get("id")
        if not platform_user_id:
            raise ProfileFetchError("LinkedIn profile did not include a member id")

        name = userinfo.get("name")
        if not name:
            name = " ".join(p for p in (me.get("localizedFirstName"), me.get("localizedLastName")) if p) or None

        return LinkedInProfile(
            platform_user_id=str(platform_user_id),
            name=name,
            username=me.get("vanityName"),
            picture=userinfo.get("picture") or _largest_picture(me),
            raw={"userinfo": userinfo, "me": me},
        )

    def _get(self, url: str, access_token: str, label: str) -> Dict[str, Any]:
        def send() -> requests.Response:
            return self.session.get(
                url,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "LinkedIn-Version": REST_VERSION,
                    "X-Restli-Protocol-Version": "2.0.0",
                },
                timeout=self.settings.request_timeout,
            )

        try:
            response = send_with_retry(
                send,
                retries=self.settings.max_retries,
                backoff_seconds=self.settings.retry_backoff_seconds,
                label=f"LinkedIn {label}",
                sleep=self.sleep,
            )
        except requests.RequestException as exc:
            raise ProfileFetchError(f"LinkedIn {label} request failed: {exc}") from exc
        if not response.ok:
            raise ProfileFetchError(f"LinkedIn {label} returned {response.status_code}", response.status_code)
        try:
            data = response.json()
        except ValueError as exc:
            raise ProfileFetchError(f"LinkedIn {label} returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise ProfileFetchError(f"LinkedIn {label} returned unexpected payload")
        return data
