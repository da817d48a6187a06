from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from ..db import models
from ..domain.enums import Platform
from ..errors import AuthorizationDeclined, HandshakeError, ScopeValidationError
from ..repositories.integration_repository import IntegrationRepository, SqlAlchemyIntegrationRepository
from ..services.events import EventChannel, IntegrationConnected
from ..services.oauth_session import OAuthSessionManager
from ..services.profile_resolver import ProfileResolver
from ..services.token_client import TokenExchangeClient, validate_scopes

logger = logging.getLogger(__name__)


@dataclass
class CallbackParams:
    state: Optional[str] = None
    code: Optional[str] = None
    error: Optional[str] = None
    error_description: Optional[str] = None


class CompleteLinkedInConnection:
    """Handles the provider redirect for one session.

    The stored handshake is consumed first, so a replayed or late callback
    finds nothing and fails. The acting user is the one recorded when the
    handshake began, so the browser redirect carries no bearer token. Every
    handshake check runs before any request leaves the process.
    """

    def __init__(
        self,
        sessions: OAuthSessionManager,
        token_client: TokenExchangeClient,
        profile_resolver: ProfileResolver,
        events: EventChannel,
        integration_repo: IntegrationRepository | None = None,
    ):
        self.sessions = sessions
        self.token_client = token_client
        self.profile_resolver = profile_resolver
        self.events = events
        self.integration_repo = integration_repo or SqlAlchemyIntegrationRepository()

    def execute(
        self,
        db: Session,
        session_id: str,
        params: CallbackParams,
        debug_id: str = "",
    ) -> models.SocialIntegration:
        handshake = self.sessions.consume(session_id) if session_id else None
        logger.info(
            "LinkedIn callback debug_id=%s code_present=%s code_len=%d handshake_present=%s verifier_len=%d",
            debug_id,
            bool(params.code),
            len(params.code or ""),
            handshake is not None,
            len(handshake.code_verifier) if handshake else 0,
        )

        if params.error:
            raise AuthorizationDeclined(params.error_description or "LinkedIn authorization was cancelled.")

        if handshake is None or not params.state or params.state != handshake.state:
            logger.warning("LinkedIn OAuth state mismatch debug_id=%s", debug_id)
            raise HandshakeError(
                "OAUTH_STATE_INVALID",
                "Invalid or expired LinkedIn authorization. Please start the connection again.",
            )

        user = db.get(models.User, handshake.user_id) if handshake.user_id else None
        if user is None:
            raise HandshakeError(
                "OAUTH_USER_UNKNOWN",
                "Could not identify who started the LinkedIn connection. Please sign in and retry.",
            )

        if handshake.team_id != user.current_team_id:
            raise HandshakeError(
                "OAUTH_TEAM_MISMATCH",
                "LinkedIn connection was started for a different team. Please retry.",
            )

        if not params.code or not handshake.code_verifier:
            logger.warning(
                "LinkedIn callback missing code or verifier debug_id=%s code_present=%s verifier_present=%s",
                debug_id, bool(params.code), bool(handshake.code_verifier),
            )
            raise HandshakeError(
                "OAUTH_CODE_MISSING",
                "Authorization code missing from LinkedIn. Please try again.",
            )

        tokens = self.token_client.exchange_code(params.code, handshake.code_verifier)

        missing = validate_scopes(tokens.scopes, self.sessions.settings.scopes)
        if missing:
            raise ScopeValidationError(missing)

        profile = self.profile_resolver.resolve(tokens.access_token)

        integration = self.integration_repo.upsert(
            db,
            team_id=user.current_team_id,
            platform=Platform.LINKEDIN.value,
            platform_user_id=profile.platform_user_id,
            values={
                "user_id": user.id,
                "platform_username": profile.display_name,
                "access_token": tokens.access_token,
                "refresh_token": tokens.refresh_token,
                "token_expires_at": tokens.expires_at,
                "scopes": tokens.scopes,
                "profile_data": profile.raw,
                "is_active": True,
            },
        )
        self.events.emit(IntegrationConnected(
            integration_id=integration.id,
            team_id=integration.team_id,
            user_id=user.id,
            platform=integration.platform,
            platform_username=integration.platform_username,
        ))
        return integration
