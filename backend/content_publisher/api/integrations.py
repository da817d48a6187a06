import logging
import uuid
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from ..config import settings_url
from ..db import models
from ..db.session import get_db
from ..dependencies import IntegrationServices, get_services
from ..errors import AuthorizationDeclined, HandshakeError, NotFoundError, ScopeValidationError
from ..policies import authorize_manage
from ..repositories.integration_repository import SqlAlchemyIntegrationRepository
from ..services.events import IntegrationDisconnected
from ..usecases.connect_linkedin import CallbackParams
from .auth import get_team_member

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/integrations/linkedin", tags=["integrations"])

SESSION_COOKIE = "cp_session"

integration_repo = SqlAlchemyIntegrationRepository()


def _settings_redirect(http_status: int = status.HTTP_302_FOUND, **flash: str) -> RedirectResponse:
    query = urlencode({"tab": "integrations", **flash})
    return RedirectResponse(f"{settings_url()}?{query}", status_code=http_status)


def _serialize(i: models.SocialIntegration) -> dict:
    return {
        "id": i.id,
        "platform": i.platform,
        "platform_user_id": i.platform_user_id,
        "platform_username": i.platform_username,
        "profile_data": i.profile_data,
        "scopes": i.scopes or [],
        "is_active": bool(i.is_active),
        "connected_at": i.created_at.isoformat() if i.created_at else None,
        "token_expires_at": i.token_expires_at.isoformat() if i.token_expires_at else None,
    }


@router.get("")
def list_integrations(db: Session = Depends(get_db), user: models.User = Depends(get_team_member)):
    integrations = integration_repo.list_by_team(db, user.current_team_id)
    return {"integrations": [_serialize(i) for i in integrations]}


@router.get("/connect")
def connect(
    request: Request,
    user: models.User = Depends(get_team_member),
    services: IntegrationServices = Depends(get_services),
):
    session_id = request.cookies.get(SESSION_COOKIE) or uuid.uuid4().hex
    _, authorization_url = services.sessions.begin(session_id, user.current_team_id, user.id)
    response = RedirectResponse(authorization_url, status_code=status.HTTP_302_FOUND)
    response.set_cookie(SESSION_COOKIE, session_id, httponly=True, samesite="lax")
    return response


def _callback(
    request: Request,
    state: Optional[str],
    code: Optional[str],
    error: Optional[str],
    error_description: Optional[str],
    db: Session,
    services: IntegrationServices,
) -> RedirectResponse:
    debug_id = str(uuid.uuid4())
    params = CallbackParams(state=state, code=code, error=error, error_description=error_description)
    try:
        integration = services.connect.execute(
            db, request.cookies.get(SESSION_COOKIE, ""), params, debug_id=debug_id
        )
    except (AuthorizationDeclined, HandshakeError, ScopeValidationError) as e:
        return _settings_redirect(error=e.message)
    except Exception:
        logger.exception("LinkedIn OAuth callback failed debug_id=%s", debug_id)
        return _settings_redirect(
            error=f"Unable to complete LinkedIn authorization. Please try again. (Ref: {debug_id})"
        )
    return _settings_redirect(success=f"LinkedIn profile '{integration.platform_username}' connected.")


@router.get("/callback")
def callback(
    request: Request,
    state: Optional[str] = Query(None),
    code: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    services: IntegrationServices = Depends(get_services),
):
    return _callback(request, state, code, error, error_description, db, services)


@router.get("/callback-member")
def callback_member(
    request: Request,
    state: Optional[str] = Query(None),
    code: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    services: IntegrationServices = Depends(get_services),
):
    return _callback(request, state, code, error, error_description, db, services)


@router.delete("/{integration_id}")
def disconnect(
    integration_id: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_team_member),
    services: IntegrationServices = Depends(get_services),
):
    integration = integration_repo.get(db, integration_id)
    if not integration:
        raise NotFoundError("INTEGRATION_NOT_FOUND", "integration not found")
    authorize_manage(user, integration)
    # the token is left valid at LinkedIn; only the local flag changes
    integration.is_active = False
    db.commit()
    services.events.emit(IntegrationDisconnected(
        integration_id=integration.id,
        team_id=integration.team_id,
        user_id=user.id,
        platform=integration.platform,
    ))
    return _settings_redirect(http_status=status.HTTP_303_SEE_OTHER, success="LinkedIn integration disconnected.")
