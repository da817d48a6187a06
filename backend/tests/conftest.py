import json
import os
import sys
import tempfile

import pytest
import requests
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient

# Put backend/ first on sys.path so the local content_publisher package wins
backend_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if backend_root not in sys.path:
    sys.path.insert(0, backend_root)

# File-based SQLite: the background publish job opens its own session
_db_dir = tempfile.mkdtemp(prefix="content-publisher-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+pysqlite:///{os.path.join(_db_dir, 'test.db')}")
os.environ.setdefault("APP_ENCRYPTION_KEY", Fernet.generate_key().decode())

from content_publisher.config import LinkedInSettings  # noqa: E402
from content_publisher.db.session import engine, Base, SessionLocal  # noqa: E402
from content_publisher.dependencies import build_services  # noqa: E402
from content_publisher.main import app  # noqa: E402
from content_publisher.services.state_store import MemoryStateStore  # noqa: E402

TEST_SETTINGS = LinkedInSettings(
    client_id="cid-1234",
    client_secret="csecret",
    redirect_uri="http://testserver/integrations/linkedin/callback-member",
)


def make_response(status_code=200, json_body=None, headers=None, text=None):
    """Build a real requests.Response without touching the network."""
    response = requests.Response()
    response.status_code = status_code
    if json_body is not None:
        response._content = json.dumps(json_body).encode("utf-8")
        response.headers["Content-Type"] = "application/json"
    else:
        response._content = (text or "").encode("utf-8")
    response.headers.update(headers or {})
    response.encoding = "utf-8"
    return response


class FakeHttp:
    """Stands in for requests.Session: canned responses per (method, url).

    Queued items are consumed in order; the last one is repeated. An item may
    be an exception instance, which is raised instead of returned.
    """

    def __init__(self):
        self.routes = {}
        self.calls = []

    def queue(self, method, url, *items):
        self.routes.setdefault((method, url), []).extend(items)

    def calls_to(self, method, url):
        return [kwargs for (m, u, kwargs) in self.calls if m == method and u == url]

    def _dispatch(self, method, url, kwargs):
        self.calls.append((method, url, kwargs))
        queued = self.routes.get((method, url))
        if not queued:
            raise AssertionError(f"unexpected {method} {url}")
        item = queued.pop(0) if len(queued) > 1 else queued[0]
        if isinstance(item, Exception):
            raise item
        return item

    def post(self, url, **kwargs):
        return self._dispatch("POST", url, kwargs)

    def get(self, url, **kwargs):
        return self._dispatch("GET", url, kwargs)


@pytest.fixture
def fake_http():
    return FakeHttp()


@pytest.fixture
def db_session():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function")  # fresh database and services per test
def client(fake_http):
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    previous = app.state.services
    app.state.services = build_services(
        settings=TEST_SETTINGS,
        state_store=MemoryStateStore(),
        http=fake_http,
        sleep=lambda seconds: None,
    )
    try:
        yield TestClient(app)
    finally:
        app.state.services = previous


@pytest.fixture
def login(client):
    """Return a callable that signs in (auto-registering) and yields (headers, team_id)."""
    def _login(email="owner@example.com", password="pass123"):
        r = client.post(
            '/auth/token',
            data={'username': email, 'password': password},
            headers={'Content-Type': 'application/x-www-form-urlencoded'},
        )
        assert r.status_code == 200, r.text
        body = r.json()
        return {'Authorization': f"Bearer {body['access_token']}"}, body['team_id']
    return _login
