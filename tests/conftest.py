"""Pytest fixtures for API tests.

MongoDB is replaced by mongomock, Cloudinary by a recording storage object,
and outbound HTTP (mail relay, GitHub) by an httpx MockTransport.
"""
import itertools
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Tuple

import httpx
import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings
from context import AppContext
from main import create_app
from storage import MediaStorage, public_id_from_url

API = "/api/v1"


class FakeMediaStorage(MediaStorage):
    """Keeps the real hosted-url rules, records calls instead of talking to Cloudinary."""

    def __init__(self, settings: Settings):
        super().__init__(settings)
        self.uploaded: List[str] = []
        self.deleted: List[str] = []
        self._ids = itertools.count(1)

    def upload(self, upload) -> str:
        n = next(self._ids)
        self.uploaded.append(upload.filename)
        stem = upload.filename.rsplit(".", 1)[0]
        return f"https://res.cloudinary.com/demo/image/upload/v{n}/portfolio/{stem}-{n}.png"

    def delete(self, url: str) -> None:
        self.deleted.append(public_id_from_url(url))


@dataclass
class MockUpstream:
    """Canned responses for outbound HTTP keyed by (method, url)."""

    responses: Dict[Tuple[str, str], httpx.Response] = field(default_factory=dict)
    requests: List[httpx.Request] = field(default_factory=list)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, str(request.url))
        if key in self.responses:
            return self.responses[key]
        return httpx.Response(404, json={"message": "Not Found"})


@dataclass
class Session:
    id: str
    username: str
    access_token: str
    refresh_token: str

    @property
    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}


@pytest.fixture
def api() -> str:
    return API


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_name="portfolio_test",
        access_token_secret="test-access-secret",
        refresh_token_secret="test-refresh-secret",
        cookie_secure=False,  # Allow HTTP in tests
        mail_relay_url="https://mail.test/emails",
        mail_relay_key="relay-key",
        mail_from="portfolio@example.com",
        contact_to="owner@example.com",
        github_api_url="https://github.test",
    )


@pytest.fixture
def db(settings):
    return mongomock.MongoClient()[settings.database_name]


@pytest.fixture
def media(settings) -> FakeMediaStorage:
    return FakeMediaStorage(settings)


@pytest.fixture
def upstream() -> MockUpstream:
    return MockUpstream()


@pytest.fixture
def context(settings, db, media, upstream) -> AppContext:
    return AppContext(
        settings=settings,
        db=db,
        media=media,
        http=httpx.Client(transport=httpx.MockTransport(upstream.handle)),
    )


@pytest.fixture
def client(context):
    with TestClient(create_app(context)) as test_client:
        yield test_client


@pytest.fixture
def make_session(client, db) -> Callable[..., Session]:
    """Register, optionally promote, and log in a user; cookies are cleared so
    each request authenticates only through the headers a test passes."""

    def _make(username: str, password: str = "secret123", role: str = "user") -> Session:
        response = client.post(
            f"{API}/users/register",
            json={"username": username, "email": f"{username}@x.com", "password": password},
        )
        assert response.status_code == 201, response.text
        user_id = response.json()["data"]["user"]["id"]
        if role != "user":
            db["user"].update_one({"username": username}, {"$set": {"role": role}})

        response = client.post(
            f"{API}/users/login", json={"username": username, "password": password}
        )
        assert response.status_code == 200, response.text
        data = response.json()["data"]
        client.cookies.clear()
        return Session(user_id, username, data["access_token"], data["refresh_token"])

    return _make


@pytest.fixture
def owner(make_session) -> Session:
    return make_session("dev1", role="admin")


@pytest.fixture
def other_admin(make_session) -> Session:
    return make_session("dev2", role="admin")


@pytest.fixture
def visitor(make_session) -> Session:
    return make_session("guest")
