from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..db import models
from ..db.session import get_db
from ..dependencies import IntegrationServices, get_services
from ..domain.enums import PublishStatus
from ..errors import NotFoundError
from ..policies import authorize_manage
from ..usecases.publish_content import request_publish
from .auth import get_team_member

router = APIRouter(prefix="/content-pieces", tags=["content"])


class PublishRequest(BaseModel):
    integration_id: str = Field(..., min_length=1)
    schedule_at: Optional[datetime] = None


class PublishOut(BaseModel):
    content_piece_id: str
    integration_id: str
    publish_status: str
    scheduled_publish_at: Optional[datetime] = None


@router.post("/{content_piece_id}/publish", response_model=PublishOut, status_code=202)
def publish_content_piece(
    content_piece_id: str,
    body: PublishRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_team_member),
    services: IntegrationServices = Depends(get_services),
):
    content = db.get(models.ContentPiece, content_piece_id)
    if not content:
        raise NotFoundError("CONTENT_NOT_FOUND", "content piece not found")
    authorize_manage(user, content)
    integration = db.get(models.SocialIntegration, body.integration_id)
    if not integration or integration.team_id != user.current_team_id:
        raise NotFoundError("INTEGRATION_NOT_FOUND", "integration not found")

    result = request_publish(db, content, integration, schedule_at=body.schedule_at)
    if result.status == PublishStatus.PUBLISHING.value:
        background_tasks.add_task(services.publish_job.run, content.id, integration.id)
    return {
        "content_piece_id": result.content_piece_id,
        "integration_id": result.integration_id,
        "publish_status": result.status,
        "scheduled_publish_at": result.scheduled_publish_at,
    }
