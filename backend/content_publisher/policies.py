"""Team-scoped authorization rules for integrations and content."""
from .db import models
from .errors import ForbiddenError


def can_manage(user: models.User, resource) -> bool:
    return user.current_team_id is not None and resource.team_id == user.current_team_id


def authorize_manage(user: models.User, resource) -> None:
    if not can_manage(user, resource):
        raise ForbiddenError("FORBIDDEN", "resource belongs to another team")
