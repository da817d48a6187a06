"""Publishes content pieces to LinkedIn through the REST Posts API."""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import requests
from opentelemetry import trace
from prometheus_client import Counter
from sqlalchemy.orm import Session

from ..config import LinkedInSettings
from ..db import models
from ..errors import PublishError
from .events import EventChannel, ContentPublished, PublishingFailed
from .http_retry import send_with_retry
from .token_refresh import TokenRefreshPolicy

logger = logging.getLogger(__name__)
_tracer = trace.get_tracer(__name__)

POSTS_URL = "https://api.linkedin.com/rest/posts"
REST_VERSION = "202405"
MAX_POST_LENGTH = 3000
ELLIPSIS = "..."

PUBLISH_COUNT = Counter(
    "content_publisher_publish_total", "LinkedIn publish attempts", ["outcome"]
)


@dataclass
class PublishResult:
    platform_post_id: Optional[str]
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"urn": self.platform_post_id, "payload": self.payload}


def author_urn(platform_user_id: str) -> str:
    if platform_user_id.startswith("urn:li:"):
        return platform_user_id
    return f"urn:li:person:{platform_user_id}"


def truncate(text: str, limit: int = MAX_POST_LENGTH) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - len(ELLIPSIS)] + ELLIPSIS


def build_message(content: models.ContentPiece) -> str:
    for candidate in (content.edited_text, content.research_text, content.briefing_text, content.internal_name):
        if candidate and candidate.strip():
            return truncate(candidate.strip())
    return ""


def collect_media_urns(content: models.ContentPiece) -> List[str]:
    # LinkedIn upload is not wired yet; only media that already carry a URN are attached.
    urns = []
    for media in content.media or []:
        urn = (media.meta or {}).get("linkedin_urn")
        if urn:
            urns.append(urn)
    return urns


def build_post_payload(author: str, message: str, media_urns: Optional[List[str]] = None) -> Dict[str, Any]:
    media_urns = media_urns or []
    content: Dict[str, Any] = {}
    if len(media_urns) == 1:
        content = {"media": {"id": media_urns[0]}}
    elif len(media_urns) > 1:
        content = {"multiImage": {"images": [{"id": urn} for urn in media_urns]}}
    return {
        "author": author,
        "commentary": message,
        "visibility": "PUBLIC",
        "distribution": {
            "feedDistribution": "MAIN_FEED",
            "targetEntities": [],
            "thirdPartyDistributionChannels": [],
        },
        "content": content,
        "lifecycleState": "PUBLISHED",
        "isReshareDisabledByAuthor": False,
    }


class PostPublisher:
    def __init__(
        self,
        settings: LinkedInSettings,
        refresh_policy: TokenRefreshPolicy,
        events: EventChannel,
        session: Optional[requests.Session] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.settings = settings
        self.refresh_policy = refresh_policy
        self.events = events
        self.session = session or requests.Session()
        self.sleep = sleep

    def publish(
        self,
        db: Session,
        integration: models.SocialIntegration,
        content: models.ContentPiece,
    ) -> PublishResult:
        try:
            with _tracer.start_as_current_span("linkedin.publish") as span:
                span.set_attribute("content_piece.id", str(content.id))
                integration = self.refresh_policy.refresh_if_needed(db, integration)
                payload = build_post_payload(
                    author_urn(integration.platform_user_id),
                    build_message(content),
                    collect_media_urns(content),
                )
                response = self._submit(integration.access_token, payload)
                span.set_attribute("http.status_code", response.status_code)
                response.raise_for_status()
        except Exception as exc:
            PUBLISH_COUNT.labels(outcome="error").inc()
            logger.warning(
                "LinkedIn publish failed integration=%s content=%s error=%s",
                integration.id, content.id, exc,
            )
            self.events.emit(PublishingFailed(integration.id, content.id, exc))
            status_code = getattr(getattr(exc, "response", None), "status_code", None)
            raise PublishError(f"LinkedIn publish failed: {exc}", status_code) from exc

        result = PublishResult(platform_post_id=response.headers.get("x-restli-id"), payload=payload)
        PUBLISH_COUNT.labels(outcome="success").inc()
        logger.info("LinkedIn post created integration=%s urn=%s", integration.id, result.platform_post_id)
        self.events.emit(ContentPublished(integration.id, content.id, result.platform_post_id, payload))
        return result

    def _submit(self, access_token: str, payload: Dict[str, Any]) -> requests.Response:
        def send() -> requests.Response:
            return self.session.post(
                POSTS_URL,
                json=payload,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "LinkedIn-Version": REST_VERSION,
                    "X-Restli-Protocol-Version": "2.0.0",
                },
                timeout=self.settings.request_timeout,
            )

        return send_with_retry(
            send,
            retries=self.settings.max_retries,
            backoff_seconds=self.settings.retry_backoff_seconds,
            label="LinkedIn post",
            sleep=self.sleep,
        )
