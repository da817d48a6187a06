import pytest
from cryptography.fernet import Fernet
from sqlalchemy import text

from content_publisher.db import models
from content_publisher.services.encryption_service import EncryptionService


def test_tokens_are_encrypted_at_rest(db_session):
    team = models.Team(name="t")
    db_session.add(team)
    db_session.flush()
    integration = models.SocialIntegration(
        team_id=team.id,
        platform="linkedin",
        platform_user_id="m",
        access_token="access123",
        refresh_token="refresh123",
    )
    db_session.add(integration)
    db_session.commit()

    row = db_session.execute(
        text("SELECT access_token, refresh_token FROM social_integrations WHERE id = :id"),
        {"id": integration.id},
    ).one()
    assert "access123" not in row.access_token
    assert "refresh123" not in row.refresh_token

    db_session.expire_all()
    reloaded = db_session.get(models.SocialIntegration, integration.id)
    assert reloaded.access_token == "access123"
    assert reloaded.refresh_token == "refresh123"


def test_decrypt_with_wrong_key_fails():
    token = EncryptionService(Fernet.generate_key()).encrypt("secret")
    with pytest.raises(ValueError):
        EncryptionService(Fernet.generate_key()).decrypt(token)


def test_rotation_keeps_old_values_readable():
    old_key, new_key = Fernet.generate_key(), Fernet.generate_key()
    stored = EncryptionService(old_key).encrypt("token-v1")

    rotated_service = EncryptionService(f"{new_key.decode()},{old_key.decode()}")
    assert rotated_service.decrypt(stored) == "token-v1"

    rotated = rotated_service.rotate(stored)
    assert EncryptionService(new_key).decrypt(rotated) == "token-v1"
