from __future__ import annotations
from typing import Protocol, List, Optional, Dict, Any
from sqlalchemy.orm import Session
from ..db import models


class IntegrationRepository(Protocol):
    def get(self, db: Session, integration_id: str) -> Optional[models.SocialIntegration]:
        ...

    def list_by_team(self, db: Session, team_id: str) -> List[models.SocialIntegration]:
        ...

    def upsert(
        self,
        db: Session,
        team_id: str,
        platform: str,
        platform_user_id: str,
        values: Dict[str, Any],
    ) -> models.SocialIntegration:
        ...


class SqlAlchemyIntegrationRepository:
    def get(self, db: Session, integration_id: str) -> Optional[models.SocialIntegration]:
        return db.get(models.SocialIntegration, integration_id)

    def list_by_team(self, db: Session, team_id: str) -> List[models.SocialIntegration]:
        return (
            db.query(models.SocialIntegration)
            .filter(models.SocialIntegration.team_id == team_id)
            .order_by(models.SocialIntegration.created_at.desc())
            .all()
        )

    def upsert(
        self,
        db: Session,
        team_id: str,
        platform: str,
        platform_user_id: str,
        values: Dict[str, Any],
    ) -> models.SocialIntegration:
        """Create or update the record keyed on (team, platform, platform user id)."""
        existing = (
            db.query(models.SocialIntegration)
            .filter(
                models.SocialIntegration.team_id == team_id,
                models.SocialIntegration.platform == platform,
                models.SocialIntegration.platform_user_id == platform_user_id,
            )
            .first()
        )
        if existing:
            for key, value in values.items():
                setattr(existing, key, value)
            db.commit()
            return existing
        integration = models.SocialIntegration(
            team_id=team_id,
            platform=platform,
            platform_user_id=platform_user_id,
            **values,
        )
        db.add(integration)
        db.commit()
        return integration
