from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from ..db import models
from ..domain.enums import Platform, PublishStatus
from ..errors import NotFoundError, PublishError, ValidationAppError
from ..services.post_publisher import PostPublisher
from ..services.token_refresh import as_utc

logger = logging.getLogger(__name__)


@dataclass
class PublishRequestResult:
    content_piece_id: str
    integration_id: str
    status: str
    scheduled_publish_at: Optional[datetime] = None


def request_publish(
    db: Session,
    content: models.ContentPiece,
    integration: models.SocialIntegration,
    schedule_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> PublishRequestResult:
    """Record the publish target and either schedule it or mark it as publishing.

    The caller runs ``PublishContentJob`` for the immediate case.
    """
    now = now or datetime.now(timezone.utc)
    if integration.team_id != content.team_id:
        raise NotFoundError("INTEGRATION_NOT_FOUND", "integration not found")
    if not integration.is_active:
        raise ValidationAppError("INTEGRATION_INACTIVE", "integration is disconnected")
    schedule_at = as_utc(schedule_at)
    if schedule_at is not None and schedule_at <= now:
        raise ValidationAppError("SCHEDULE_IN_PAST", "schedule_at must be in the future")

    targets = dict(content.publish_to_platforms or {})
    targets[Platform.LINKEDIN.value] = integration.id
    content.publish_to_platforms = targets
    if schedule_at is not None:
        content.scheduled_publish_at = schedule_at
        content.publish_status = PublishStatus.SCHEDULED.value
    else:
        content.scheduled_publish_at = None
        content.publish_status = PublishStatus.PUBLISHING.value
    db.commit()
    return PublishRequestResult(
        content_piece_id=content.id,
        integration_id=integration.id,
        status=content.publish_status,
        scheduled_publish_at=content.scheduled_publish_at,
    )


class PublishContentJob:
    """Publishes one content piece with one integration in its own DB session."""

    def __init__(self, publisher: PostPublisher, session_factory: Callable[[], Session]):
        self.publisher = publisher
        self.session_factory = session_factory

    def run(self, content_piece_id: str, integration_id: str) -> Optional[dict]:
        db = self.session_factory()
        try:
            content = db.get(models.ContentPiece, content_piece_id)
            integration = db.get(models.SocialIntegration, integration_id)
            if not content or not integration or integration.team_id != content.team_id or not integration.is_active:
                logger.info(
                    "skipping publish content=%s integration=%s (missing, inactive or other team)",
                    content_piece_id, integration_id,
                )
                if content:
                    content.publish_status = PublishStatus.FAILED.value
                    db.commit()
                return None
            try:
                result = self.publisher.publish(db, integration, content)
            except PublishError as exc:
                logger.warning(
                    "LinkedIn publishing job failed content=%s integration=%s error=%s",
                    content_piece_id, integration_id, exc.message,
                )
                content.publish_status = PublishStatus.FAILED.value
                db.commit()
                return None

            published = dict(content.published_platforms or {})
            published[Platform.LINKEDIN.value] = result.to_dict()
            content.published_platforms = published
            content.published_at = content.published_at or datetime.now(timezone.utc)
            content.publish_status = PublishStatus.PUBLISHED.value
            db.commit()
            return result.to_dict()
        finally:
            db.close()


def due_for_publishing(db: Session, now: Optional[datetime] = None) -> List[models.ContentPiece]:
    now = now or datetime.now(timezone.utc)
    return (
        db.query(models.ContentPiece)
        .filter(
            models.ContentPiece.publish_status == PublishStatus.SCHEDULED.value,
            models.ContentPiece.scheduled_publish_at.isnot(None),
            models.ContentPiece.scheduled_publish_at <= now,
        )
        .all()
    )


def publish_due(db: Session, job: PublishContentJob, now: Optional[datetime] = None) -> int:
    """Run the job for every scheduled piece whose time has come; returns the dispatch count."""
    dispatched = 0
    for content in due_for_publishing(db, now):
        integration_id = (content.publish_to_platforms or {}).get(Platform.LINKEDIN.value)
        if not integration_id:
            logger.warning("scheduled content=%s has no LinkedIn target", content.id)
            content.publish_status = PublishStatus.FAILED.value
            db.commit()
            continue
        content.publish_status = PublishStatus.PUBLISHING.value
        db.commit()
        job.run(content.id, integration_id)
        dispatched += 1
    return dispatched
