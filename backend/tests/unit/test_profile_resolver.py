import pytest

from content_publisher.errors import ProfileFetchError
from content_publisher.services.profile_resolver import ME_URL, USERINFO_URL, ProfileResolver
from conftest import TEST_SETTINGS, FakeHttp, make_response


def _resolver(http):
    return ProfileResolver(TEST_SETTINGS, session=http, sleep=lambda s: None)


ME_BODY = {
    "id": "legacy-id",
    "localizedFirstName": "Ada",
    "localizedLastName": "Lovelace",
    "vanityName": "ada-l",
    "profilePicture": {
        "displayImage~": {
            "elements": [
                {
                    "data": {"com.linkedin.digitalmedia.mediaartifact.StillImage": {"storageSize": {"width": 100}}},
                    "identifiers": [{"identifier": "https://img/small"}],
                },
                {
                    "data": {"com.linkedin.digitalmedia.mediaartifact.StillImage": {"storageSize": {"width": 800}}},
                    "identifiers": [{"identifier": "https://img/large"}],
                },
            ]
        }
    },
}


def test_userinfo_and_me_are_merged():
    http = FakeHttp()
    http.queue("GET", USERINFO_URL, make_response(200, {"sub": "abc123", "name": "Ada Lovelace"}))
    http.queue("GET", ME_URL, make_response(200, ME_BODY))

    profile = _resolver(http).resolve("token-1")

    assert profile.platform_user_id == "abc123"
    assert profile.name == "Ada Lovelace"
    assert profile.username == "ada-l"
    assert profile.display_name == "ada-l"
    assert profile.picture == "https://img/large"
    assert profile.raw["userinfo"]["sub"] == "abc123"
    headers = http.calls_to("GET", USERINFO_URL)[0]["headers"]
    assert headers["Authorization"] == "Bearer token-1"
    assert headers["LinkedIn-Version"] == "202405"


def test_me_failure_is_tolerated():
    http = FakeHttp()
    http.queue("GET", USERINFO_URL, make_response(200, {"sub": "abc123", "name": "Ada", "picture": "https://p"}))
    http.queue("GET", ME_URL, make_response(403, {"message": "not enough permissions"}))

    profile = _resolver(http).resolve("t")

    assert profile.platform_user_id == "abc123"
    assert profile.display_name == "Ada"
    assert profile.picture == "https://p"
    assert profile.raw["me"] == {}


def test_userinfo_failure_raises():
    http = FakeHttp()
    http.queue("GET", USERINFO_URL, make_response(401, {"message": "expired"}))
    with pytest.raises(ProfileFetchError) as exc:
        _resolver(http).resolve("t")
    assert exc.value.status_code == 401
    assert http.calls_to("GET", ME_URL) == []


def test_missing_member_id_raises():
    http = FakeHttp()
    http.queue("GET", USERINFO_URL, make_response(200, {"name": "No Id"}))
    http.queue("GET", ME_URL, make_response(200, {"localizedFirstName": "No"}))
    with pytest.raises(ProfileFetchError):
        _resolver(http).resolve("t")


def test_name_falls_back_to_legacy_fields():
    http = FakeHttp()
    http.queue("GET", USERINFO_URL, make_response(200, {"sub": "x"}))
    http.queue("GET", ME_URL, make_response(200, {"localizedFirstName": "Grace", "localizedLastName": "Hopper"}))
    profile = _resolver(http).resolve("t")
    assert profile.name == "Grace Hopper"
    assert profile.display_name == "Grace Hopper"
