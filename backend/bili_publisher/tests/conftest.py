"""
Shared pytest fixtures for the publish bridge.

FakeBiliup is an in-process stand-in for the biliup REST API, served to
BiliupClient through httpx.MockTransport. It enforces the session cookie
the same way biliup does with ``--auth``: any request without the current
cookie gets 401.
"""

import json
from typing import Callable, Optional, Union

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bili_publisher.config.settings import BiliupConfig
from bili_publisher.credentials.vault import CredentialVault
from bili_publisher.db_base import Base
from bili_publisher.integrations.biliup.client import BiliupClient
from bili_publisher.models import BiliCredential  # noqa: F401
from bili_publisher.services.reconciler import CredentialReconciler
from bili_publisher.storage.artifacts import ArtifactStore
from bili_publisher.utils.encryption import CredentialEncryptor

SERVICE_USERNAME = "biliup"

SAMPLE_COOKIE = json.dumps({
    "cookie_info": {
        "cookies": [
            {"name": "SESSDATA", "value": "fake-sessdata-not-real"},
            {"name": "bili_jct", "value": "fake-jct-not-real"},
            {"name": "DedeUserID", "value": "42"},
        ]
    },
    "token_info": {"mid": 42},
})

Route = Union[dict, list, Callable[[httpx.Request], httpx.Response]]


# ============================================================================
# FAKE BILIUP
# ============================================================================

class FakeBiliup:
    """Scriptable biliup. Register responses with ``route(method, path, ...)``."""

    def __init__(self, account_exists: bool = True, cookie_name: str = "session"):
        self.account_exists = account_exists
        self.cookie_name = cookie_name
        self.valid_cookie: Optional[str] = None
        self.handshakes = 0
        self.calls: list[tuple[str, str]] = []
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], Route] = {}

    def route(self, method: str, path: str, response: Route) -> None:
        self.routes[(method, path)] = response

    def count(self, method: str, path: str) -> int:
        return self.calls.count((method, path))

    def handler(self, request: httpx.Request) -> httpx.Response:
        method, path = request.method, request.url.path
        self.calls.append((method, path))
        self.requests.append(request)

        if method == "GET" and path == f"/v1/users/{SERVICE_USERNAME}":
            return httpx.Response(200 if self.account_exists else 404, json={})

        if method == "POST" and path in ("/v1/users/register", "/v1/users/login"):
            self.handshakes += 1
            self.account_exists = True
            self.valid_cookie = f"{self.cookie_name}=token-{self.handshakes}"
            return httpx.Response(
                200,
                json={"username": SERVICE_USERNAME},
                headers=[
                    ("set-cookie", "theme=dark; Path=/"),
                    ("set-cookie", f"{self.valid_cookie}; Path=/; HttpOnly"),
                ],
            )

        if self.valid_cookie is None or request.headers.get("cookie") != self.valid_cookie:
            return httpx.Response(401, json={"error": "unauthorized"})

        response = self.routes.get((method, path))
        if response is None:
            return httpx.Response(404, json={"error": "no route"})
        if callable(response):
            return response(request)
        return httpx.Response(200, json=response)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def biliup_config():
    return BiliupConfig(
        base_url="http://biliup.test",
        auth_username=SERVICE_USERNAME,
        auth_password="test-password-not-real",
        connect_timeout=1.0,
        read_timeout=1.0,
        confirm_timeout=2.0,
    )


@pytest.fixture
def fake_biliup():
    return FakeBiliup()


@pytest.fixture
def biliup_client(biliup_config, fake_biliup):
    client = BiliupClient(biliup_config, transport=fake_biliup.transport())
    yield client
    client.close()


@pytest.fixture
def encryptor():
    return CredentialEncryptor(key=CredentialEncryptor.generate_key())


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    session = sessionmaker(bind=db_engine)()
    yield session
    session.close()


@pytest.fixture
def vault(db_session, encryptor):
    return CredentialVault(db_session, encryptor, ttl_days=30)


@pytest.fixture
def artifact_store(tmp_path):
    return ArtifactStore(str(tmp_path / "biliup"))


@pytest.fixture
def reconciler(vault, biliup_client, artifact_store):
    return CredentialReconciler(
        vault,
        biliup_client,
        artifact_store,
        persist_attempts=2,
        persist_delay_seconds=0,
        sleep=lambda _seconds: None,
    )


@pytest.fixture
def sample_cookie():
    return SAMPLE_COOKIE


@pytest.fixture
def live_profile():
    """A space/myinfo payload for a live cookie (mid 42)."""
    return {
        "code": 0,
        "message": "0",
        "data": {
            "mid": 42,
            "name": "uploader",
            "face": "https://i0.hdslb.com/bfs/face/test.jpg",
            "level": 5,
            "vip": {"status": 1},
        },
    }


@pytest.fixture
def dead_profile():
    """What Bilibili answers for a revoked cookie."""
    return {"code": -101, "message": "账号未登录", "data": None}
