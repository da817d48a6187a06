from datetime import datetime, timedelta, timezone

import pytest
import requests

from content_publisher.db import models
from content_publisher.errors import PublishError
from content_publisher.services.events import ContentPublished, EventChannel, PublishingFailed
from content_publisher.services.post_publisher import (
    POSTS_URL, PostPublisher, author_urn, build_message, build_post_payload, truncate,
)
from content_publisher.services.token_client import TOKEN_URL, TokenExchangeClient
from content_publisher.services.token_refresh import TokenRefreshPolicy
from conftest import TEST_SETTINGS, FakeHttp, make_response


@pytest.fixture
def channel():
    events = EventChannel()
    received = []
    events.subscribe(ContentPublished, received.append)
    events.subscribe(PublishingFailed, received.append)
    events.received = received
    return events


def _publisher(http, events):
    client = TokenExchangeClient(TEST_SETTINGS, session=http, sleep=lambda s: None)
    return PostPublisher(TEST_SETTINGS, TokenRefreshPolicy(client), events, session=http, sleep=lambda s: None)


def _setup(db, text="Hello LinkedIn", media_urns=(), expires_at=None):
    team = models.Team(name="t")
    db.add(team)
    db.flush()
    integration = models.SocialIntegration(
        team_id=team.id,
        platform="linkedin",
        platform_user_id="member-1",
        access_token="access-1",
        refresh_token="refresh-1",
        token_expires_at=expires_at or datetime.now(timezone.utc) + timedelta(hours=1),
        scopes=["openid", "w_member_social"],
    )
    content = models.ContentPiece(team_id=team.id, internal_name="draft", edited_text=text)
    for i, urn in enumerate(media_urns):
        content.media.append(models.Media(team_id=team.id, filename=f"img{i}.png", meta={"linkedin_urn": urn}))
    db.add_all([integration, content])
    db.commit()
    return integration, content


def test_single_media_payload_and_headers(db_session, channel):
    http = FakeHttp()
    http.queue("POST", POSTS_URL, make_response(201, headers={"x-restli-id": "urn:li:share:1"}))
    integration, content = _setup(db_session, media_urns=["urn:li:image:A"])

    result = _publisher(http, channel).publish(db_session, integration, content)

    assert result.platform_post_id == "urn:li:share:1"
    (call,) = http.calls_to("POST", POSTS_URL)
    payload = call["json"]
    assert payload["author"] == "urn:li:person:member-1"
    assert payload["commentary"] == "Hello LinkedIn"
    assert payload["visibility"] == "PUBLIC"
    assert payload["lifecycleState"] == "PUBLISHED"
    assert payload["content"] == {"media": {"id": "urn:li:image:A"}}
    assert call["headers"]["Authorization"] == "Bearer access-1"
    assert call["headers"]["LinkedIn-Version"] == "202405"
    assert call["headers"]["X-Restli-Protocol-Version"] == "2.0.0"
    assert result.to_dict() == {"urn": "urn:li:share:1", "payload": payload}
    assert [type(e) for e in channel.received] == [ContentPublished]
    assert channel.received[0].platform_post_id == "urn:li:share:1"


def test_content_block_shapes():
    assert build_post_payload("urn:li:person:x", "m", [])["content"] == {}
    assert build_post_payload("urn:li:person:x", "m", ["u1"])["content"] == {"media": {"id": "u1"}}
    assert build_post_payload("urn:li:person:x", "m", ["u1", "u2"])["content"] == {
        "multiImage": {"images": [{"id": "u1"}, {"id": "u2"}]}
    }


def test_multi_image_publish(db_session, channel):
    http = FakeHttp()
    http.queue("POST", POSTS_URL, make_response(201, headers={"x-restli-id": "urn:li:share:2"}))
    integration, content = _setup(db_session, media_urns=["urn:li:image:A", "urn:li:image:B"])
    _publisher(http, channel).publish(db_session, integration, content)
    payload = http.calls_to("POST", POSTS_URL)[0]["json"]
    assert sorted(img["id"] for img in payload["content"]["multiImage"]["images"]) == ["urn:li:image:A", "urn:li:image:B"]


def test_long_body_is_truncated_with_ellipsis(db_session, channel):
    http = FakeHttp()
    http.queue("POST", POSTS_URL, make_response(201, headers={"x-restli-id": "urn:li:share:3"}))
    integration, content = _setup(db_session, text="x" * 4000)
    _publisher(http, channel).publish(db_session, integration, content)
    commentary = http.calls_to("POST", POSTS_URL)[0]["json"]["commentary"]
    assert len(commentary) == 3000
    assert commentary.endswith("...")
    assert truncate("short") == "short"


def test_server_error_retried_twice_then_fails(db_session, channel):
    http = FakeHttp()
    http.queue("POST", POSTS_URL, make_response(500, {"message": "oops"}))
    integration, content = _setup(db_session)

    with pytest.raises(PublishError) as exc:
        _publisher(http, channel).publish(db_session, integration, content)

    assert len(http.calls_to("POST", POSTS_URL)) == 3
    assert exc.value.status_code == 500
    assert isinstance(exc.value.__cause__, requests.HTTPError)
    assert [type(e) for e in channel.received] == [PublishingFailed]


def test_client_error_not_retried(db_session, channel):
    http = FakeHttp()
    http.queue("POST", POSTS_URL, make_response(400, {"message": "bad"}))
    integration, content = _setup(db_session)
    with pytest.raises(PublishError) as exc:
        _publisher(http, channel).publish(db_session, integration, content)
    assert len(http.calls_to("POST", POSTS_URL)) == 1
    assert exc.value.status_code == 400
    assert channel.received[0].error is exc.value.__cause__


def test_expired_token_is_refreshed_before_posting(db_session, channel):
    http = FakeHttp()
    http.queue("POST", TOKEN_URL, make_response(200, {"access_token": "access-2", "expires_in": 3600}))
    http.queue("POST", POSTS_URL, make_response(201, headers={"x-restli-id": "urn:li:share:4"}))
    integration, content = _setup(db_session, expires_at=datetime.now(timezone.utc) - timedelta(minutes=1))

    _publisher(http, channel).publish(db_session, integration, content)

    assert [u for (_, u, _) in http.calls] == [TOKEN_URL, POSTS_URL]
    assert http.calls_to("POST", POSTS_URL)[0]["headers"]["Authorization"] == "Bearer access-2"


def test_refresh_failure_reported_as_publishing_failed(db_session, channel):
    http = FakeHttp()
    http.queue("POST", TOKEN_URL, make_response(401, {"error": "invalid_client"}))
    integration, content = _setup(db_session, expires_at=datetime.now(timezone.utc) - timedelta(minutes=1))
    with pytest.raises(PublishError):
        _publisher(http, channel).publish(db_session, integration, content)
    assert http.calls_to("POST", POSTS_URL) == []
    assert [type(e) for e in channel.received] == [PublishingFailed]


def test_message_fallback_and_author_urn():
    content = models.ContentPiece(internal_name="Name", edited_text="  ", research_text=None, briefing_text="brief ")
    assert build_message(content) == "brief"
    assert author_urn("abc") == "urn:li:person:abc"
    assert author_urn("urn:li:organization:5") == "urn:li:organization:5"


def test_broken_subscriber_does_not_block_publish(db_session):
    events = EventChannel()

    def explode(event):
        raise RuntimeError("subscriber bug")

    events.subscribe(ContentPublished, explode)
    http = FakeHttp()
    http.queue("POST", POSTS_URL, make_response(201, headers={"x-restli-id": "urn:li:share:5"}))
    integration, content = _setup(db_session)
    result = _publisher(http, events).publish(db_session, integration, content)
    assert result.platform_post_id == "urn:li:share:5"
