from unittest.mock import Mock, patch

from content_publisher import jobs
from content_publisher.config import LinkedInSettings, settings_url
from content_publisher.dependencies import build_services
from content_publisher.services.state_store import MemoryStateStore


def test_settings_from_env():
    env = {
        'LINKEDIN_CLIENT_ID': 'id',
        'LINKEDIN_CLIENT_SECRET': 'secret',
        'LINKEDIN_SCOPES': 'openid,w_member_social',
        'APP_URL': 'https://app.example.com/',
    }
    with patch.dict('os.environ', env):
        settings = LinkedInSettings.from_env()
    assert settings.is_configured
    assert settings.scopes == ['openid', 'w_member_social']
    assert settings.redirect_uri == 'https://app.example.com/integrations/linkedin/callback-member'


def test_settings_defaults():
    with patch.dict('os.environ', {}, clear=True):
        settings = LinkedInSettings.from_env()
        assert settings_url() == '/team-settings'
    assert not settings.is_configured
    assert settings.scopes == ['openid', 'profile', 'w_member_social', 'r_basicprofile']
    assert settings.max_retries == 2


def test_connect_without_credentials_is_configuration_error(client, login):
    headers, _ = login()
    client.app.state.services = build_services(settings=LinkedInSettings(), state_store=MemoryStateStore())
    r = client.get('/integrations/linkedin/connect', headers=headers, follow_redirects=False)
    assert r.status_code == 500
    assert r.json()['detail']['code'] == 'OAUTH_CONFIG_MISSING'


def test_publish_due_job_entry_point(monkeypatch):
    services = Mock()
    publish_due = Mock(return_value=3)
    db = Mock()
    monkeypatch.setattr(jobs, 'build_services', lambda: services)
    monkeypatch.setattr(jobs, 'publish_due', publish_due)
    monkeypatch.setattr(jobs, 'ensure_tables', lambda: None)
    monkeypatch.setattr(jobs, 'SessionLocal', lambda: db)

    assert jobs.main() == 0
    publish_due.assert_called_once_with(db, services.publish_job)
    db.close.assert_called_once()
